# moose_tracker/scraper/session.py
"""
Browser session management for Playwright-based scraping.

One browser, one context, one page per scrape invocation.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from playwright.async_api import Browser, Page, async_playwright

from .. import config

logger = logging.getLogger(__name__)

LAUNCH_ARGS = ["--no-sandbox", "--disable-setuid-sandbox"]


@asynccontextmanager
async def browser_page(headless: bool = True) -> AsyncIterator[Page]:
    """
    Launch Chromium and yield a single page; the browser is closed on exit.

    Args:
        headless: Run without a visible window

    Raises:
        RuntimeError: If the browser cannot be launched
    """
    async with async_playwright() as playwright:
        try:
            browser = await playwright.chromium.launch(headless=headless, args=LAUNCH_ARGS)
        except Exception as e:
            raise RuntimeError(f"Failed to launch browser: {e}") from e

        try:
            context = await browser.new_context(
                user_agent=config.USER_AGENT,
                viewport=config.VIEWPORT,
                locale="en-US",
            )
            yield await context.new_page()
        finally:
            await close_browser(browser)


async def close_browser(browser: Browser) -> None:
    try:
        await browser.close()
    except Exception as e:  # Best effort cleanup
        logger.debug("Browser close failed: %s", e)

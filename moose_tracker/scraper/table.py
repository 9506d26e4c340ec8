# moose_tracker/scraper/table.py
"""
DOM operations against the moose.gg stats table.

Everything here works on one shared Playwright page: a single search field, a single
active tab and a table body that re-renders while the dashboard polls. Interactive
steps go through the retry envelope in ``retry.py``; every wait carries a timeout.
"""

import logging
import re
from typing import Callable, List, Optional

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Locator, Page, expect

from .. import config
from .retry import is_transient_ui_error, retry_on

logger = logging.getLogger(__name__)

SEARCH_INPUT_SELECTOR = (
    'input[placeholder="Search" i], input[type="search"], table input[type="text"], '
    "input.mud-input-root-outlined, input.mud-input-root, input.mud-input-slot"
)
TOOLTIP_SELECTORS = (
    ".mud-popover-cascading-value",
    '[id*="popover"]',
    ".mud-tooltip-root",
    ".mud-tooltip-inline",
    ".mud-tooltip",
    '[role="tooltip"]',
)

_HEADER_MARKER_JS = """
(tokens) => {
  const headers = Array.from(document.querySelectorAll('table thead th'))
    .map((th) => (th.textContent || '').trim().toLowerCase());
  return headers.some((h) => tokens.some((t) => h.includes(t)));
}
"""

_TOOLTIP_TEXT_JS = """
(selectors) => selectors
  .flatMap((sel) => Array.from(document.querySelectorAll(sel)))
  .map((node) => node.textContent || '')
"""

_AVATAR_COLOR_JS = """
async (url) => {
  const resp = await fetch(url, { cache: 'no-store' });
  if (!resp.ok) return null;
  const img = await createImageBitmap(await resp.blob());
  const w = Math.min(64, Math.max(8, img.width));
  const h = Math.max(8, Math.round((img.height / img.width) * w));
  const canvas = new OffscreenCanvas(w, h);
  const ctx = canvas.getContext('2d', { willReadFrequently: true });
  ctx.drawImage(img, 0, 0, w, h);
  const { data } = ctx.getImageData(0, 0, w, h);
  let r = 0, g = 0, b = 0, count = 0;
  const step = Math.max(4, Math.floor(data.length / 800));
  for (let i = 0; i < data.length; i += step) {
    if (i % 4 !== 0) continue;
    r += data[i]; g += data[i + 1]; b += data[i + 2]; count += 1;
  }
  if (!count) return null;
  const hex = (v) => Math.min(255, Math.round(v / count)).toString(16).padStart(2, '0');
  return `#${hex(r)}${hex(g)}${hex(b)}`;
}
"""


def escape_attr_value(value: str) -> str:
    """Escape a value for use inside a double-quoted CSS attribute selector."""
    return str(value).replace("\\", "\\\\").replace('"', '\\"')


class StatsTable:
    """The stats page: server dropdown, tab strip, search box and the player table."""

    def __init__(self, page: Page):
        self.page = page

    # --- Locators ---

    def search_input(self) -> Locator:
        return self.page.locator(SEARCH_INPUT_SELECTOR).first

    def list_container(self) -> Locator:
        return self.page.locator("table tbody").first

    def row_locator(self, key: str) -> Locator:
        link = self.page.locator(f'a[href*="{escape_attr_value(key)}"]')
        return self.page.locator("table tbody tr", has=link).first

    def cell_locator(self, key: str, idx: int) -> Locator:
        return self.row_locator(key).locator("td").nth(idx)

    def is_closed(self) -> bool:
        return self.page.is_closed()

    # --- Retry-wrapped primitives ---

    async def _ensure_ready(self, locator: Locator, timeout_ms: Optional[int] = None) -> None:
        await expect(locator).to_be_visible(timeout=timeout_ms)
        await expect(locator).to_be_attached(timeout=timeout_ms)

    async def _in_viewport(self, locator: Locator) -> bool:
        box = await locator.bounding_box()
        viewport = self.page.viewport_size
        if not box or not viewport:
            return False
        return (
            box["x"] >= 0
            and box["y"] >= 0
            and box["x"] + box["width"] <= viewport["width"]
            and box["y"] + box["height"] <= viewport["height"]
        )

    async def _scroll_if_needed(self, locator: Locator) -> None:
        if not await self._in_viewport(locator):
            await locator.scroll_into_view_if_needed()

    async def safe_click(
        self,
        locator_fn: Callable[[], Locator],
        label: str = "click",
        player: str = "Unknown player",
        in_table: bool = False,
        force: bool = False,
        trial: bool = True,
    ) -> None:
        async def _click() -> None:
            if in_table:
                await self._ensure_ready(self.list_container())
            locator = locator_fn()
            await self._ensure_ready(locator)
            needs_scroll = not trial
            if trial:
                try:
                    await locator.click(trial=True)
                except PlaywrightError as exc:
                    if is_transient_ui_error(exc):
                        raise
                    needs_scroll = True
            if needs_scroll:
                await self._scroll_if_needed(locator)
            await locator.click(force=force)

        await retry_on(_click, player=player, label=label)

    async def safe_hover(self, locator_fn: Callable[[], Locator], label: str = "hover",
                         player: str = "Unknown player") -> None:
        async def _hover() -> None:
            await self._ensure_ready(self.list_container())
            locator = locator_fn()
            await self._ensure_ready(locator)
            await self._scroll_if_needed(locator)
            await locator.hover(force=True)

        await retry_on(_hover, player=player, label=label)

    async def safe_scroll_into_view(self, locator_fn: Callable[[], Locator], label: str = "scroll",
                                    player: str = "Unknown player") -> None:
        async def _scroll() -> None:
            await self._ensure_ready(self.list_container())
            locator = locator_fn()
            await self._ensure_ready(locator)
            await self._scroll_if_needed(locator)

        await retry_on(_scroll, player=player, label=label)

    # --- Page-level operations ---

    async def open(self, url: str = config.MOOSE_URL) -> None:
        await self.page.goto(url, wait_until="networkidle")

    async def select_server(self, server_name: str) -> dict:
        """Pick a server from the MudBlazor dropdown and wait for the table to reload."""
        dropdown = lambda: self.page.locator("input.mud-select-input").first  # noqa: E731
        await self._ensure_ready(dropdown(), timeout_ms=config.DROPDOWN_WAIT_MS)
        await self.safe_click(dropdown, label="open server dropdown", force=True)

        popover = self.page.locator(".mud-popover").first
        try:
            await popover.wait_for(state="visible", timeout=config.POPOVER_WAIT_MS)
        except PlaywrightError:
            select_root = lambda: self.page.locator(".mud-select").first  # noqa: E731
            if await select_root().count() > 0:
                await self.safe_click(select_root, label="open server dropdown fallback", force=True)
            await dropdown().focus()
            await self.page.keyboard.press("ArrowDown")
            await popover.wait_for(state="visible", timeout=config.POPOVER_FALLBACK_WAIT_MS)

        items = lambda: self.page.locator(".mud-popover .mud-list-item")  # noqa: E731
        await expect(items().first).to_be_visible(timeout=config.DROPDOWN_WAIT_MS)
        option = lambda: items().filter(has_text=server_name).first  # noqa: E731
        target_found = await items().filter(has_text=server_name).count() > 0
        if not target_found:
            logger.warning("Server option %r not listed; using the first option", server_name)
            option = lambda: items().first  # noqa: E731
        await self.safe_click(option, label="select server option", force=True)
        await self.page.wait_for_timeout(config.SERVER_SETTLE_MS)
        await self.list_container().wait_for(state="visible", timeout=config.ROW_WAIT_MS)
        return {"selectionLabel": server_name, "targetFound": target_found}

    async def select_tab(self, label: str) -> bool:
        """Click the tab control for ``label``; returns False if no such tab is shown."""
        candidates = [
            lambda: self.page.get_by_role("tab", name=label, exact=True),
            lambda: self.page.locator('[role="tab"]', has_text=label).first,
        ]
        for locator_fn in candidates:
            if await locator_fn().count() == 0:
                continue
            await self.safe_click(locator_fn, label=f"tab {label}", force=True)
            await self.page.wait_for_timeout(config.TAB_SETTLE_MS)
            return True
        logger.info("Tab %s not found; continuing", label)
        return False

    async def wait_for_headers(self, markers: List[str], timeout_ms: int = config.HEADER_WAIT_MS) -> bool:
        if not markers:
            return True
        tokens = [str(m).lower() for m in markers]
        try:
            await self.page.wait_for_function(_HEADER_MARKER_JS, arg=tokens, timeout=timeout_ms)
            return True
        except PlaywrightError:
            return False

    async def header_texts(self) -> List[str]:
        headers = self.page.locator("table thead th")
        await headers.first.wait_for(state="visible", timeout=config.ROW_WAIT_MS)
        return await headers.evaluate_all("(ths) => ths.map((th) => (th.textContent || '').trim())")

    async def wait_for_rows(self) -> None:
        await self.page.locator("table tbody tr").first.wait_for(state="visible", timeout=config.ROW_WAIT_MS)

    async def reset_search(self) -> None:
        search = self.search_input()
        if await search.count() == 0:
            return
        await self._ensure_ready(search)
        await search.fill("")
        await self.page.keyboard.press("Enter")
        await self.page.wait_for_timeout(config.RESET_SETTLE_MS)

    async def search(self, text: str) -> None:
        search = self.search_input()
        await self._ensure_ready(search, timeout_ms=config.ROW_WAIT_MS)
        await self._ensure_ready(self.list_container(), timeout_ms=config.ROW_WAIT_MS)
        await search.fill("")
        await search.fill(text)
        await self.page.keyboard.press("Enter")
        await self.page.wait_for_timeout(config.SEARCH_SETTLE_MS)

    async def row_count(self, key: str) -> int:
        link = self.page.locator(f'a[href*="{escape_attr_value(key)}"]')
        return await self.page.locator("table tbody tr", has=link).count()

    async def wait_for_row(self, key: str) -> None:
        await self._ensure_ready(self.row_locator(key), timeout_ms=config.ROW_WAIT_MS)

    async def scroll_row_into_view(self, key: str, player: str = "Unknown player") -> None:
        await self.safe_scroll_into_view(lambda: self.row_locator(key), label="player row", player=player)

    async def wait_for_cell_digits(self, key: str, idx: int, timeout_ms: int = config.CELL_DIGITS_WAIT_MS) -> bool:
        cell = self.cell_locator(key, idx)
        try:
            await expect(cell).to_be_visible(timeout=timeout_ms)
            await expect(cell).to_have_text(re.compile(r"\d"), timeout=timeout_ms)
            return True
        except (AssertionError, PlaywrightError):
            return False

    async def cell_text(self, key: str, idx: int) -> str:
        return (await self.cell_locator(key, idx).inner_text()).strip()

    async def hover_cell(self, key: str, idx: int, label: str = "tooltip", player: str = "Unknown player") -> None:
        await self.safe_hover(lambda: self.cell_locator(key, idx), label=label, player=player)

    async def tooltip_texts(self) -> List[str]:
        return await self.page.evaluate(_TOOLTIP_TEXT_JS, list(TOOLTIP_SELECTORS))

    async def settle(self, ms: int) -> None:
        await self.page.wait_for_timeout(ms)

    async def sample_avatar_color(self, image_url: str) -> Optional[str]:
        """Average colour of an avatar image, computed in the page; None on failure."""
        if not image_url:
            return None
        try:
            return await self.page.evaluate(_AVATAR_COLOR_JS, image_url)
        except PlaywrightError as exc:
            logger.debug("Avatar colour sampling failed for %s: %s", image_url, exc)
            return None

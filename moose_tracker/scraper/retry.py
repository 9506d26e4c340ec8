# moose_tracker/scraper/retry.py
"""
Retry envelope for interactions with the live stats table.

The dashboard re-renders its table while polling, so an element handle can be
detached between "found it" and "clicked it". Those failures are retried on a short
fixed backoff; anything else propagates on the first attempt.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional, Sequence

from tenacity import AsyncRetrying, RetryCallState, retry_if_exception, stop_after_attempt

from ..config import RETRY_ATTEMPTS, RETRY_BACKOFFS_MS

logger = logging.getLogger(__name__)

TRANSIENT_MARKERS = (
    "not attached to the dom",
    "target closed",
    "target page, context or browser has been closed",
    "execution context was destroyed",
    "frame was detached",
)


class TransientUIError(Exception):
    """Raised when the page changed underneath an interaction."""


def is_transient_ui_error(exc: BaseException) -> bool:
    if isinstance(exc, TransientUIError):
        return True
    message = str(exc).lower()
    return any(marker in message for marker in TRANSIENT_MARKERS)


def backoff_schedule(backoffs_ms: Sequence[int]) -> Callable[[RetryCallState], float]:
    """Wait function: backoffs_ms[n-1] after attempt n, holding at the last value."""
    schedule = list(backoffs_ms) or [250]

    def _wait(retry_state: RetryCallState) -> float:
        idx = min(retry_state.attempt_number - 1, len(schedule) - 1)
        return schedule[idx] / 1000.0

    return _wait


async def retry_on(
    action: Callable[[], Awaitable[Any]],
    *,
    classify: Callable[[BaseException], bool] = is_transient_ui_error,
    attempts: int = RETRY_ATTEMPTS,
    backoffs_ms: Sequence[int] = RETRY_BACKOFFS_MS,
    player: str = "Unknown player",
    label: str = "action",
    sleep: Optional[Callable[[float], Awaitable[None]]] = None,
) -> Any:
    """Run ``action`` and retry it while ``classify`` says the failure is transient.

    Non-transient errors, and the last transient error once ``attempts`` is used up,
    are re-raised unchanged.
    """

    def _log_retry(retry_state: RetryCallState) -> None:
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        logger.warning(
            "Retry %s/%s for %s (%s): %s",
            retry_state.attempt_number, attempts, player, label, exc,
        )

    retrying = AsyncRetrying(
        retry=retry_if_exception(classify),
        stop=stop_after_attempt(max(1, attempts)),
        wait=backoff_schedule(backoffs_ms),
        before_sleep=_log_retry,
        sleep=sleep or asyncio.sleep,
        reraise=True,
    )
    return await retrying(action)

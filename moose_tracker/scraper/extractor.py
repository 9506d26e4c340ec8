# moose_tracker/scraper/extractor.py
"""
Read metric values out of a located player row.

Plain metrics come from the cell text. Tooltip metrics (the headshot percentage) are
read from the hover popover when one shows up, and derived ratios are recomputed from
their raw counts after the row has been read, overriding anything the UI displayed.
"""

import logging
import re
import time
from typing import Dict, List, Optional, Union

from playwright.async_api import Error as PlaywrightError

from .. import config
from .retry import is_transient_ui_error, retry_on

logger = logging.getLogger(__name__)

Number = Union[int, float]

# metric -> column to hover when the metric has no column of its own
TOOLTIP_METRICS: Dict[str, str] = {"Headshot %": "Headshots"}

# (derived metric, numerator, denominator)
DERIVED_PERCENTAGES = [("Headshot %", "Headshots", "Shots Hit")]


def parse_numeric(text: Optional[str]) -> Number:
    """Keep only digits and dots; empty or malformed text reads as 0."""
    cleaned = re.sub(r"[^0-9.]", "", text or "")
    if not cleaned:
        return 0
    try:
        if "." in cleaned:
            return float(cleaned)
        return int(cleaned)
    except ValueError:
        return 0


def first_numeric(texts: List[str]) -> Optional[Number]:
    for text in texts:
        if re.sub(r"[^0-9.]", "", text or ""):
            return parse_numeric(text)
    return None


def recompute_derived(stats: Dict[str, Number], labels: List[str]) -> Dict[str, Number]:
    for derived, numerator, denominator in DERIVED_PERCENTAGES:
        if derived not in labels or numerator not in stats or denominator not in stats:
            continue
        if stats[denominator] > 0:
            stats[derived] = round(stats[numerator] / stats[denominator] * 100, 2)
    return stats


class StatExtractor:
    """Reads one row's metrics from a ``StatsTable``."""

    def __init__(self, table, tooltip_timeout_ms: int = config.TOOLTIP_TIMEOUT_MS,
                 tooltip_settle_ms: int = config.TOOLTIP_SETTLE_MS):
        self.table = table
        self.tooltip_timeout_ms = tooltip_timeout_ms
        self.tooltip_settle_ms = tooltip_settle_ms

    async def read_numeric(self, row_key: str, idx: int, player: str = "Unknown player") -> Number:
        text = await retry_on(lambda: self.table.cell_text(row_key, idx), player=player, label="cell text")
        return parse_numeric(text)

    async def read_tooltip(self, row_key: str, idx: int, label: str, player: str) -> Optional[Number]:
        """Hover a cell and poll the popover selectors for a number until the timeout."""
        try:
            await self.table.hover_cell(row_key, idx, label=f"{label} tooltip", player=player)
            await self.table.settle(self.tooltip_settle_ms)
            deadline = time.monotonic() + self.tooltip_timeout_ms / 1000.0
            while True:
                value = first_numeric(await self.table.tooltip_texts())
                if value is not None:
                    return value
                if time.monotonic() >= deadline:
                    return None
                await self.table.settle(self.tooltip_settle_ms)
        except (AssertionError, PlaywrightError) as exc:
            if is_transient_ui_error(exc):
                raise
            logger.debug("No %s tooltip for %s: %s", label, player, exc)
            return None

    async def read_metric(self, row_key: str, column_map: Dict[str, int], label: str, player: str) -> Number:
        idx = column_map.get(label)
        if label in TOOLTIP_METRICS:
            hover_idx = idx if idx is not None else column_map.get(TOOLTIP_METRICS[label])
            if hover_idx is not None:
                value = await self.read_tooltip(row_key, hover_idx, label, player)
                if value is not None:
                    return value
        if idx is None:
            return 0
        return await self.read_numeric(row_key, idx, player)

    async def extract(self, row_key: str, column_map: Dict[str, int], metric_labels: List[str],
                      player: str = "Unknown player") -> Dict[str, Number]:
        labels = list(metric_labels) if metric_labels else list(column_map)
        stats: Dict[str, Number] = {}
        for label in labels:
            stats[label] = await self.read_metric(row_key, column_map, label, player)
        return recompute_derived(stats, labels)

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, Iterator, List, Optional, Set, Tuple

from playwright.async_api import Error as PlaywrightError

from .. import config
from ..identity import SteamProfileClient, profile_label
from .columns import ColumnMapping, map_by_labels, map_columns
from .extractor import StatExtractor
from .locator import PlayerNotFoundError, locate_row
from .profiles import prepare_profiles
from .retry import TransientUIError, retry_on
from .session import browser_page
from .table import StatsTable
from .tabs import PRIMARY_TAB, TabDefinition, select_tabs

logger = logging.getLogger(__name__)

ProgressFn = Callable[[str], None]


class ScrapeSessionError(Exception):
    """Raised when the browsing session itself dies; aborts the whole pass."""


class ColumnMappingFailure(Exception):
    """Raised by a mapping step that resolved no columns."""


class TabState(Enum):
    NOT_READY = "not_ready"
    COLUMNS_UNMAPPED = "columns_unmapped"
    READY = "ready"


# --- Column mapping ladder ---

@dataclass(frozen=True)
class MappingStep:
    name: str
    mapper: Callable[[List[str], TabDefinition], ColumnMapping]
    reselect_tab: bool = False


def _map_with_patterns(headers: List[str], tab: TabDefinition) -> ColumnMapping:
    return map_columns(headers, tab.patterns)


def _map_with_labels(headers: List[str], tab: TabDefinition) -> ColumnMapping:
    return map_by_labels(headers, tab.metric_labels)


MAPPING_LADDER: Tuple[MappingStep, ...] = (
    MappingStep("header patterns", _map_with_patterns),
    MappingStep("header patterns after tab reselect", _map_with_patterns, reselect_tab=True),
    MappingStep("exact header labels", _map_with_labels),
)


# --- Traversal strategies ---

class Traversal:
    """Order in which (tab, player) pairs are visited."""

    name = ""
    reuse_row_key = False

    def work_items(self, tabs: List[TabDefinition], player_count: int) -> Iterator[Tuple[TabDefinition, int]]:
        raise NotImplementedError


class PerTabTraversal(Traversal):
    """Outer loop over tabs: each tab is selected once."""

    name = config.STRATEGY_PER_TAB

    def work_items(self, tabs, player_count):
        for tab in tabs:
            for index in range(player_count):
                yield tab, index


class PerPlayerTraversal(Traversal):
    """Outer loop over players: a found row is reused across tabs without re-searching."""

    name = config.STRATEGY_PER_PLAYER
    reuse_row_key = True

    def work_items(self, tabs, player_count):
        for index in range(player_count):
            for tab in tabs:
                yield tab, index


STRATEGIES: Dict[str, Traversal] = {
    config.STRATEGY_PER_TAB: PerTabTraversal(),
    config.STRATEGY_PER_PLAYER: PerPlayerTraversal(),
}


class TabSession:
    """Per-pass tab readiness: select, wait for headers, map columns, then cache."""

    def __init__(self, table: Any):
        self.table = table
        self.states: Dict[str, TabState] = {}
        self.mappings: Dict[str, ColumnMapping] = {}
        self.active_tab: Optional[str] = None

    def state(self, tab_key: str) -> TabState:
        return self.states.get(tab_key, TabState.NOT_READY)

    async def _select(self, tab: TabDefinition, report: ProgressFn) -> None:
        report(f"Switching to {tab.label} tab...")
        if not await self.table.select_tab(tab.label):
            report(f"Tab {tab.label} not found; continuing.")
        self.active_tab = tab.key
        if tab.header_markers and not await self.table.wait_for_headers(tab.header_markers, config.HEADER_WAIT_MS):
            logger.info("%s header markers not detected after tab switch", tab.label)
            report(f"{tab.label} headers not detected after tab switch.")

    async def _run_step(self, step: MappingStep, tab: TabDefinition) -> ColumnMapping:
        try:
            headers = await self.table.header_texts()
        except (AssertionError, PlaywrightError) as exc:
            raise ColumnMappingFailure(f"{tab.label}: headers unreadable ({exc})") from exc
        mapping = step.mapper(headers, tab)
        mapping.strategy = step.name
        if tab.patterns is not None and mapping.is_empty():
            raise ColumnMappingFailure(f"{tab.label}: no columns matched by {step.name}")
        return mapping

    async def _map_columns(self, tab: TabDefinition, report: ProgressFn) -> ColumnMapping:
        report(f"{tab.label}: Mapping table columns...")
        steps = MAPPING_LADDER if tab.patterns is not None else MAPPING_LADDER[:1]
        for position, step in enumerate(steps):
            if position > 0:
                logger.info("%s: escalating column mapping to %s", tab.label, step.name)
                report(f"No {tab.label} columns matched. Trying {step.name}...")
            if step.reselect_tab:
                await self._select(tab, report)
                await self._wait_for_rows(tab)
            try:
                return await self._run_step(step, tab)
            except ColumnMappingFailure as exc:
                logger.info("%s", exc)
        logger.warning("%s: no columns mapped; metrics will read as 0", tab.label)
        return ColumnMapping(metrics=tab.metric_labels, strategy="none")

    async def _wait_for_rows(self, tab: TabDefinition) -> None:
        try:
            await self.table.wait_for_rows()
        except (AssertionError, PlaywrightError) as exc:
            logger.warning("%s: table rows did not appear: %s", tab.label, exc)

    async def ensure_ready(self, tab: TabDefinition, report: ProgressFn) -> ColumnMapping:
        if self.state(tab.key) is TabState.READY:
            if self.active_tab != tab.key:
                await self._select(tab, report)
            return self.mappings[tab.key]

        await self._select(tab, report)
        self.states[tab.key] = TabState.COLUMNS_UNMAPPED
        await self.table.reset_search()
        await self._wait_for_rows(tab)
        mapping = await self._map_columns(tab, report)
        self.mappings[tab.key] = mapping
        self.states[tab.key] = TabState.READY
        return mapping


class TabOrchestrator:
    """Runs one scrape pass over a set of tabs and prepared profiles."""

    def __init__(self, table: Any, report: Optional[ProgressFn] = None,
                 extractor: Optional[StatExtractor] = None):
        self.table = table
        self.report = report or (lambda message: None)
        self.extractor = extractor or StatExtractor(table)
        self.session = TabSession(table)

    def _progress(self, position: int, total: int) -> ProgressFn:
        prefix = f"Loading... ({position}/{total})"
        return lambda detail: self.report(f"{prefix}||{detail}")

    async def extract_for_player(
        self,
        tab: TabDefinition,
        mapping: ColumnMapping,
        profile: Dict[str, Any],
        known_key: Optional[str] = None,
    ) -> Tuple[Dict[str, Any], str]:
        label = profile_label(profile)
        key = await locate_row(self.table, profile, known_key=known_key)

        # scroll, hover and cell reads carry their own envelope; only the bare wait is wrapped here
        await retry_on(lambda: self.table.wait_for_row(key), player=label, label="player row")
        await self.table.scroll_row_into_view(key, player=label)
        ready_idx = mapping.column_map.get(tab.readiness_metric) if tab.readiness_metric else None
        if ready_idx is not None:
            await self.table.wait_for_cell_digits(key, ready_idx, config.CELL_DIGITS_WAIT_MS)
        stats = await self.extractor.extract(key, mapping.column_map, mapping.metrics, player=label)
        return stats, key

    async def run(self, profiles: List[Dict[str, Any]], tabs: List[TabDefinition],
                  traversal: Traversal) -> Dict[str, Any]:
        results: Dict[str, Dict[str, Any]] = {}
        missing: List[Dict[str, Any]] = []
        missing_indexes: Set[int] = set()
        row_keys: Dict[int, str] = {}
        primary_in_pass = any(tab.key == PRIMARY_TAB for tab in tabs)
        positions = {tab.key: n for n, tab in enumerate(tabs, 1)}
        total = len(tabs) or 1

        for tab, index in traversal.work_items(tabs, len(profiles)):
            if primary_in_pass and index in missing_indexes and tab.key != PRIMARY_TAB:
                continue
            progress = self._progress(positions[tab.key], total)
            mapping = await self.session.ensure_ready(tab, progress)
            tab_result = results.setdefault(tab.key, {**mapping.to_dict(), "stats": {}})

            profile = profiles[index]
            label = profile_label(profile)
            known_key = row_keys.get(index) if traversal.reuse_row_key else None
            progress(f"{tab.label}: Scraping {label}...")
            try:
                stats, row_keys[index] = await self.extract_for_player(tab, mapping, profile, known_key)
            except (PlayerNotFoundError, TransientUIError, AssertionError, PlaywrightError) as exc:
                if self.table.is_closed():
                    raise ScrapeSessionError(f"Browser page closed while scraping {label}: {exc}") from exc
                row_keys.pop(index, None)
                reason = str(exc) or "Missing player stats"
                if tab.key == PRIMARY_TAB:
                    missing_indexes.add(index)
                    missing.append({
                        "label": label,
                        "steamId": profile.get("steamId"),
                        "steamUrl": profile.get("steamUrl"),
                        "reason": reason,
                        "tab": tab.key,
                    })
                    logger.info("%s missing from %s: %s", label, tab.label, reason)
                else:
                    logger.warning("Failed %s for %s: %s", tab.label, label, reason)
                    progress(f"Failed {tab.label} for {label}: {reason}")
                continue
            tab_result["stats"][label] = stats

        ordered = {tab.key: results[tab.key] for tab in tabs if tab.key in results}
        return {
            "tabs": ordered,
            "missing": missing,
            "missingIndexes": missing_indexes,
            "primaryInPass": primary_in_pass,
        }


def build_scrape_result(
    profiles: List[Dict[str, Any]],
    outcome: Dict[str, Any],
    server_info: Optional[Dict[str, Any]],
    strategy: str,
    duration_ms: int,
) -> Dict[str, Any]:
    flagged = [
        {**profile, "missing": outcome["primaryInPass"] and index in outcome["missingIndexes"]}
        for index, profile in enumerate(profiles)
    ]
    return {
        "profiles": flagged,
        "tabs": outcome["tabs"],
        "missing": outcome["missing"],
        "serverInfo": server_info,
        "timings": {"strategy": strategy, "durationMs": duration_ms},
        "scrapedAt": datetime.now(timezone.utc).isoformat(),
    }


class MooseScraper:
    """Automated moose.gg stats scraper using Playwright."""

    def __init__(
        self,
        headless: bool = config.HEADLESS,
        resolver: Optional[SteamProfileClient] = None,
        url: str = config.MOOSE_URL,
    ):
        self.headless = headless
        self.resolver = resolver if resolver is not None else SteamProfileClient()
        self.url = url

    async def scrape(
        self,
        players: List[Dict[str, Any]],
        server_name: str = config.DEFAULT_SERVER,
        progress: Optional[ProgressFn] = None,
        strategy: Optional[str] = None,
        tabs: Optional[List[str]] = None,
    ) -> Dict[str, Any]:
        """Scrape every requested tab for every player on one server."""
        report = progress or (lambda message: None)
        strategy_name = config.normalize_strategy(strategy)
        tab_defs = select_tabs(tabs)
        started = time.monotonic()

        try:
            async with browser_page(headless=self.headless) as page:
                table = StatsTable(page)
                report("Opening Moose stats...")
                await table.open(self.url)
                report(f"Selecting server: {server_name}")
                server_info = await table.select_server(server_name)

                report("Loading player profiles...")
                profiles = await prepare_profiles(players, self.resolver, table.sample_avatar_color)

                report(f"Scraping tabs: {', '.join(t.key for t in tab_defs)} ({strategy_name})")
                orchestrator = TabOrchestrator(table, report=report)
                outcome = await orchestrator.run(profiles, tab_defs, STRATEGIES[strategy_name])
        except (AssertionError, PlaywrightError, RuntimeError) as exc:
            raise ScrapeSessionError(f"Scrape session failed: {exc}") from exc

        duration_ms = int((time.monotonic() - started) * 1000)
        report(f"Scrape complete ({strategy_name}, {duration_ms}ms).")
        logger.info("Scrape complete server=%s strategy=%s players=%s duration=%sms",
                    server_name, strategy_name, len(players), duration_ms)
        return build_scrape_result(profiles, outcome, server_info, strategy_name, duration_ms)


async def scrape_players(
    players: List[Dict[str, Any]],
    server_name: str = config.DEFAULT_SERVER,
    progress: Optional[ProgressFn] = None,
    strategy: Optional[str] = None,
    tabs: Optional[List[str]] = None,
    headless: bool = config.HEADLESS,
) -> Dict[str, Any]:
    return await MooseScraper(headless=headless).scrape(players, server_name, progress, strategy, tabs)

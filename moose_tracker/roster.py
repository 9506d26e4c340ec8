# moose_tracker/roster.py

import asyncio
import logging
import threading
import time
from typing import Any, Awaitable, Callable, Dict, List, Optional

from . import config
from .cache import reconcile
from .identity import SteamProfileClient, build_steam_url, identity_key, is_valid_steam_id, steam_id_from_url
from .scraper import ScrapeSessionError, scrape_players
from .store import STORE_LOCK, CacheStore, RosterStore

logger = logging.getLogger(__name__)

ScrapeFn = Callable[..., Awaitable[Dict[str, Any]]]


class RefreshInProgressError(Exception):
    """Raised when a scrape is requested while another one is running."""


def _now_ms() -> int:
    return int(time.time() * 1000)


def _clean(value: Any) -> Optional[str]:
    if value is None:
        return None
    return str(value).strip() or None


class RosterService:
    """Roster edits, refreshes and cached views for the tracked players."""

    def __init__(
        self,
        roster_store: Optional[RosterStore] = None,
        cache_store: Optional[CacheStore] = None,
        resolver: Optional[SteamProfileClient] = None,
        scrape_fn: Optional[ScrapeFn] = None,
    ):
        self.roster_store = roster_store or RosterStore()
        self.cache_store = cache_store or CacheStore()
        self.resolver = resolver or SteamProfileClient()
        self.scrape_fn = scrape_fn or scrape_players
        self._refresh_guard = threading.Lock()
        self.last_status = {"message": "Idle", "at": _now_ms()}

    # --- Status ---

    def set_status(self, message: str) -> None:
        self.last_status = {"message": message, "at": _now_ms()}
        logger.debug("Status: %s", message)

    def status(self) -> Dict[str, Any]:
        return dict(self.last_status)

    def is_refreshing(self) -> bool:
        return self._refresh_guard.locked()

    # --- Helpers ---

    @staticmethod
    def with_ids(players: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        return [{"id": index, **player} for index, player in enumerate(players)]

    async def _hydrated_roster(self) -> List[Dict[str, Any]]:
        players = self.roster_store.load()
        hydrated, changed = await asyncio.to_thread(self.resolver.hydrate_players, players)
        if changed:
            with STORE_LOCK:
                # Skip the write if the roster was edited while we were hydrating
                if self.roster_store.load() == players:
                    self.roster_store.save(hydrated)
        return hydrated

    def _view(self, server_name: str, players: List[Dict[str, Any]]) -> Dict[str, Any]:
        return reconcile(self.cache_store.server_cache(server_name), players, server_name)

    def _commit(self, server_name: str, result: Dict[str, Any]) -> Dict[str, Any]:
        with STORE_LOCK:
            roster = self.roster_store.load()
            return self.cache_store.merge(server_name, result, roster)

    # --- Roster ---

    async def list_players(self) -> List[Dict[str, Any]]:
        return self.with_ids(await self._hydrated_roster())

    async def add_player(self, steam_url: Optional[str], server_name: Optional[str] = None) -> Dict[str, Any]:
        """Add a player by profile URL, then scrape just that player into the cache."""
        steam_url = _clean(steam_url)
        if not steam_url:
            raise ValueError("steamUrl required")
        server = config.normalize_server_name(server_name)
        self._check_can_add(self.roster_store.load(), steam_url)

        normalized = await asyncio.to_thread(self.resolver.normalize_player, steam_url)
        with STORE_LOCK:
            players = self.roster_store.load()
            self._check_can_add(players, steam_url)
            players.append(normalized)
            self.roster_store.save(players)
        logger.info("Added player %s", normalized.get("steamId") or steam_url)

        if is_valid_steam_id(normalized.get("steamId")):
            try:
                result = await self.scrape_fn([normalized], server, self.set_status)
                self._commit(server, result)
            except (ScrapeSessionError, RuntimeError) as e:
                logger.error("Scrape for new player %s failed: %s", steam_url, e)
                self.set_status(f"Refresh error: {e}")
        return self._view(server, await self._hydrated_roster())

    @staticmethod
    def _check_can_add(players: List[Dict[str, Any]], steam_url: str) -> None:
        if len(players) >= config.MAX_PLAYERS:
            raise ValueError(f"Max {config.MAX_PLAYERS} players")
        if any(p.get("steamUrl") == steam_url for p in players):
            raise ValueError("Player already added")

    async def remove_player(
        self,
        identifier: Any,
        steam_url: Optional[str] = None,
        server_name: Optional[str] = None,
        by_index: bool = False,
    ) -> Dict[str, Any]:
        """Remove a player by roster index or by SteamID/URL key, purging every server cache."""
        server = config.normalize_server_name(server_name)
        with STORE_LOCK:
            players = self.roster_store.load()
            removed = None
            if by_index:
                try:
                    index = int(identifier)
                except (TypeError, ValueError):
                    index = -1
                if 0 <= index < len(players):
                    removed = players.pop(index)
            if removed is None:
                targets = {t for t in (_clean(identifier), steam_id_from_url(steam_url)) if t}
                matches = [p for p in players if identity_key(p) in targets]
                if not matches:
                    raise LookupError("Player not found")
                removed = matches[0]
                players = [p for p in players if identity_key(p) not in targets]
            self.roster_store.save(players)
            self.cache_store.remove_player(removed)
        logger.info("Removed player %s", identity_key(removed))
        return self._view(server, players)

    async def update_player(
        self,
        index: int,
        steam_url: Optional[str] = None,
        steam_id: Optional[str] = None,
        steam_name: Optional[str] = None,
        server_name: Optional[str] = None,
    ) -> Dict[str, Any]:
        next_url, next_id, next_name = _clean(steam_url), _clean(steam_id), _clean(steam_name)
        if not next_url and not next_id and not next_name:
            raise ValueError("steamName, steamUrl, or steamId required")

        players = self.roster_store.load()
        if not 0 <= index < len(players):
            raise LookupError("Player not found")
        previous = dict(players[index])

        resolved_id = None
        if not next_id and next_url:
            resolved_id = await asyncio.to_thread(self.resolver.resolve_steam_id64, next_url)
        final_id = next_id or resolved_id or previous.get("steamId")
        updated = {
            **previous,
            "steamUrl": build_steam_url(next_url, final_id) or next_url or previous.get("steamUrl"),
            "steamId": final_id,
            "displayName": next_name or previous.get("displayName"),
        }

        with STORE_LOCK:
            players = self.roster_store.load()
            if not 0 <= index < len(players):
                raise LookupError("Player not found")
            players[index] = updated
            self.roster_store.save(players)
            self.cache_store.rename_player(previous, updated)

        hydrated = await self._hydrated_roster()
        self.cache_store.apply_roster(hydrated)
        return self._view(config.normalize_server_name(server_name), hydrated)

    async def reorder(self, order: Optional[List[Any]], server_name: Optional[str] = None) -> Dict[str, Any]:
        """Reorder the roster by SteamID/URL keys; unlisted players keep their order at the end."""
        keys = [str(k) for k in order or []]
        if not keys:
            raise ValueError("order required")

        with STORE_LOCK:
            players = self.roster_store.load()
            by_key = {identity_key(p): p for p in players if identity_key(p)}
            ordered, seen = [], set()
            for key in keys:
                if key in by_key and key not in seen:
                    ordered.append(by_key[key])
                    seen.add(key)
            rest = [p for p in players if identity_key(p) not in seen]
            self.roster_store.save(ordered + rest)

        hydrated = await self._hydrated_roster()
        self.cache_store.apply_roster(hydrated)
        return self._view(config.normalize_server_name(server_name), hydrated)

    # --- Refresh / data ---

    async def refresh(
        self,
        server_name: Optional[str] = None,
        strategy: Optional[str] = None,
        tabs: Optional[List[str]] = None,
    ) -> Dict[str, Any]:
        """Scrape every tracked player and commit the result to the server's cache."""
        players = await self._hydrated_roster()
        if len(players) < config.MIN_COMPARE_PLAYERS:
            raise ValueError(f"Add at least {config.MIN_COMPARE_PLAYERS} players")
        server = config.normalize_server_name(server_name)

        if not self._refresh_guard.acquire(blocking=False):
            raise RefreshInProgressError("Refresh already in progress")
        try:
            self.set_status("Starting refresh...")
            started = time.monotonic()
            logger.info("Refresh start server=%s players=%s strategy=%s",
                        server, len(players), config.normalize_strategy(strategy))
            try:
                result = await self.scrape_fn(players, server, self.set_status, strategy, tabs)
            except (ScrapeSessionError, RuntimeError) as e:
                logger.error("Refresh failed: %s", e)
                self.set_status(f"Refresh error: {e}")
                raise
            cache = self._commit(server, result)
            logger.info("Refresh done in %.1fs", time.monotonic() - started)
            self.set_status("Refresh complete.")
        finally:
            self._refresh_guard.release()

        response = reconcile(cache, players, server)
        response["timings"] = result.get("timings")
        return response

    async def data(self, server_name: Optional[str] = None) -> Dict[str, Any]:
        """Cached view for a server; scrapes on a cache miss when enough players are tracked."""
        players = await self._hydrated_roster()
        server = config.normalize_server_name(server_name)
        cache = self.cache_store.server_cache(server)
        if cache is not None:
            return reconcile(cache, players, server)
        if len(players) >= config.MIN_COMPARE_PLAYERS:
            logger.info("Cache miss for %s, scraping %s players", server, len(players))
            try:
                return await self.refresh(server)
            except RefreshInProgressError:
                logger.info("Refresh already running; serving placeholder view")
        return reconcile(None, players, server)

    async def resolve_steam(self, steam_url: Optional[str] = None, steam_id: Optional[str] = None) -> Dict[str, Optional[str]]:
        next_url, next_id = _clean(steam_url), _clean(steam_id)
        if not next_url and not next_id:
            raise ValueError("steamUrl or steamId required")
        if is_valid_steam_id(next_id):
            resolved = next_id
        else:
            resolved = await asyncio.to_thread(self.resolver.resolve_steam_id64, next_url)
        return {
            "steamId": resolved or next_id,
            "steamUrl": build_steam_url(next_url, resolved) or next_url,
        }

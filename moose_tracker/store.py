# moose_tracker/store.py
"""
JSON document persistence for the roster (players.json) and the per-server stats
cache (data.json).

Documents are read and written whole. A missing or malformed file loads as empty.
Roster and cache stores share one process-wide lock, so a roster edit's cache write
and a scrape's cache commit never interleave.
"""

import json
import logging
import os
import threading
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional

from . import cache as cache_engine
from . import config

logger = logging.getLogger(__name__)

STORE_LOCK = threading.RLock()


class JsonDocumentStore:
    """Whole-document JSON file with atomic replace on save."""

    def __init__(self, path: str, lock: Optional[threading.RLock] = None):
        self.path = path
        self.lock = lock or STORE_LOCK

    def load(self, default: Any = None) -> Any:
        expected = type(default) if default is not None else None
        with self.lock:
            if not os.path.exists(self.path):
                return default
            try:
                with open(self.path, "r", encoding="utf-8") as f:
                    doc = json.load(f)
            except (OSError, ValueError) as e:
                logger.warning("Ignoring unreadable document %s: %s", self.path, e)
                return default
        if expected is not None and not isinstance(doc, expected):
            logger.warning("Ignoring %s: expected %s, got %s", self.path, expected.__name__, type(doc).__name__)
            return default
        return doc

    def save(self, doc: Any) -> None:
        with self.lock:
            directory = os.path.dirname(self.path) or "."
            os.makedirs(directory, exist_ok=True)
            tmp = self.path + ".tmp"
            with open(tmp, "w", encoding="utf-8") as f:
                json.dump(doc, f, ensure_ascii=False, indent=2)
            os.replace(tmp, self.path)


class RosterStore(JsonDocumentStore):
    """Ordered list of tracked players."""

    def __init__(self, path: str = config.PLAYERS_FILE, lock: Optional[threading.RLock] = None):
        super().__init__(path, lock)

    def load(self, default: Any = None) -> List[Dict[str, Any]]:
        players = super().load([])
        return [p for p in players if isinstance(p, dict)]


class CacheStore(JsonDocumentStore):
    """``{"servers": {server_name: server_cache}}`` document."""

    def __init__(self, path: str = config.CACHE_FILE, lock: Optional[threading.RLock] = None):
        super().__init__(path, lock)

    def load(self, default: Any = None) -> Dict[str, Any]:
        raw = super().load({})
        if isinstance(raw.get("servers"), dict):
            return raw
        if raw.get("serverName"):
            # Single-server layout written before per-server caching
            name = config.normalize_server_name(raw["serverName"])
            logger.info("Migrating single-server cache to per-server layout (%s)", name)
            return {"servers": {name: raw}}
        return {"servers": {}}

    @contextmanager
    def transaction(self) -> Iterator[Dict[str, Any]]:
        """Load, yield for in-place edits, save on clean exit; lock held throughout."""
        with self.lock:
            doc = self.load()
            yield doc
            self.save(doc)

    def server_cache(self, server_name: str) -> Optional[Dict[str, Any]]:
        return self.load()["servers"].get(server_name)

    def merge(self, server_name: str, result: Dict[str, Any],
              roster: Optional[List[Dict[str, Any]]] = None) -> Dict[str, Any]:
        """Commit a scrape result; players dropped from ``roster`` meanwhile are left out."""
        if roster is not None:
            result = cache_engine.restrict_to_roster(result, roster)
        with self.transaction() as doc:
            merged = cache_engine.merge_scrape_result(doc["servers"].get(server_name), result, server_name)
            doc["servers"][server_name] = merged
        return merged

    def remove_player(self, player: Optional[Dict[str, Any]]) -> Dict[str, Any]:
        with self.transaction() as doc:
            doc["servers"] = cache_engine.remove_player_from_servers(doc, player)["servers"]
        return doc

    def rename_player(self, previous: Dict[str, Any], current: Dict[str, Any]) -> Dict[str, Any]:
        with self.transaction() as doc:
            for name, server_cache in doc["servers"].items():
                if server_cache:
                    doc["servers"][name] = cache_engine.rename_player(server_cache, previous, current)
        return doc

    def apply_roster(self, roster: List[Dict[str, Any]]) -> Dict[str, Any]:
        with self.transaction() as doc:
            for name, server_cache in doc["servers"].items():
                if server_cache:
                    doc["servers"][name] = cache_engine.apply_roster(server_cache, roster)
        return doc

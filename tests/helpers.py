# tests/helpers.py

import copy
from typing import Any, Dict, List, Optional

from moose_tracker import config

PVP_HEADERS = ["Player", "KDR", "PvP Kills", "PvP Deaths", "Suicides",
               "Shots Fired", "Shots Hit", "Headshots"]
PVE_HEADERS = ["Player", "Scientist", "Tunnel Dweller", "Bear", "Bradley APC"]

ALICE = {"steamUrl": "https://steamcommunity.com/profiles/76561198000000001",
         "steamId": "76561198000000001", "displayName": "Alice",
         "avatarUrl": "https://avatars.example/alice.jpg", "color": "#aa0000"}
BOB = {"steamUrl": "https://steamcommunity.com/profiles/76561198000000002",
       "steamId": "76561198000000002", "displayName": "Bob",
       "avatarUrl": "https://avatars.example/bob.jpg", "color": "#00bb00"}
CARL = {"steamUrl": "https://steamcommunity.com/profiles/76561198000000003",
        "steamId": "76561198000000003", "displayName": "Carl",
        "avatarUrl": "https://avatars.example/carl.jpg", "color": "#0000cc"}


def sample_players() -> List[Dict[str, Any]]:
    return [dict(ALICE), dict(BOB), dict(CARL)]


def as_profile(player: Dict[str, Any]) -> Dict[str, Any]:
    """Roster entry as it looks after profile preparation."""
    return {**player, "fallbackName": player["displayName"], "searchKey": player["steamId"]}


def sample_tables() -> Dict[str, Dict[str, Any]]:
    """Two tabs, rows for Alice and Bob only."""
    return {
        "PvP": {
            "headers": list(PVP_HEADERS),
            "rows": {
                ALICE["steamId"]: ["Alice", "2.5", "50", "20", "1", "1,000", "200", "50"],
                BOB["steamId"]: ["Bob", "1.0", "10", "10", "0", "400", "0", "0"],
            },
        },
        "PvE": {
            "headers": list(PVE_HEADERS),
            "rows": {
                ALICE["steamId"]: ["Alice", "12", "3", "1", "0"],
                BOB["steamId"]: ["Bob", "4", "0", "2", "1"],
            },
        },
    }


class FakeTable:
    """In-memory stand-in for ``StatsTable`` with the same coroutine interface.

    Rows are keyed by the id their link carries; a search keeps the rows whose key
    contains the search text.
    """

    def __init__(self, tables: Dict[str, Dict[str, Any]], tooltips: Optional[Dict[tuple, str]] = None,
                 header_script: Optional[Dict[str, List[List[str]]]] = None):
        self.tables = tables
        self.tooltips = tooltips or {}
        self.header_script = {k: list(v) for k, v in (header_script or {}).items()}
        self.active: Optional[str] = None
        self.query = ""
        self.hovered: Optional[tuple] = None
        self.closed = False
        self.calls: List[tuple] = []
        self.cell_errors: Dict[tuple, List[BaseException]] = {}

    def _visible_rows(self) -> Dict[str, List[str]]:
        rows = self.tables.get(self.active, {}).get("rows", {})
        return {key: cells for key, cells in rows.items() if self.query in key}

    def is_closed(self) -> bool:
        return self.closed

    async def select_tab(self, label: str) -> bool:
        self.calls.append(("select_tab", label))
        if label not in self.tables:
            return False
        self.active = label
        return True

    async def wait_for_headers(self, markers, timeout_ms=0) -> bool:
        headers = [h.lower() for h in self.tables.get(self.active, {}).get("headers", [])]
        return any(m.lower() in h for h in headers for m in markers)

    async def header_texts(self) -> List[str]:
        self.calls.append(("header_texts", self.active))
        script = self.header_script.get(self.active)
        if script:
            return script.pop(0) if len(script) > 1 else list(script[0])
        return list(self.tables.get(self.active, {}).get("headers", []))

    async def wait_for_rows(self) -> None:
        pass

    async def reset_search(self) -> None:
        self.calls.append(("reset_search",))
        self.query = ""

    async def search(self, text: str) -> None:
        self.calls.append(("search", text))
        self.query = text

    async def row_count(self, key: str) -> int:
        return 1 if key in self._visible_rows() else 0

    async def wait_for_row(self, key: str) -> None:
        if key not in self._visible_rows():
            raise AssertionError(f"row {key} not visible")

    async def scroll_row_into_view(self, key: str, player: str = "Unknown player") -> None:
        pass

    async def wait_for_cell_digits(self, key: str, idx: int, timeout_ms: int = 0) -> bool:
        self.calls.append(("wait_for_cell_digits", self.active, key, idx))
        return True

    async def cell_text(self, key: str, idx: int) -> str:
        errors = self.cell_errors.get((self.active, key, idx))
        if errors:
            raise errors.pop(0)
        return self._visible_rows()[key][idx]

    async def hover_cell(self, key: str, idx: int, label: str = "tooltip", player: str = "Unknown player") -> None:
        self.hovered = (self.active, key, idx)

    async def tooltip_texts(self) -> List[str]:
        text = self.tooltips.get(self.hovered)
        return [text] if text else []

    async def settle(self, ms: int) -> None:
        pass


class FakeResolver:
    """Steam client stand-in: echoes stored identity, never touches the network."""

    def __init__(self, names: Optional[Dict[str, str]] = None, vanity_ids: Optional[Dict[str, str]] = None):
        self.names = names or {}
        self.vanity_ids = vanity_ids or {}
        self.fetched: List[tuple] = []

    def fetch_profile(self, steam_url, steam_id):
        self.fetched.append((steam_url, steam_id))
        return {
            "steamUrl": steam_url,
            "steamId": steam_id,
            "displayName": self.names.get(steam_id) or steam_id,
            "avatarUrl": config.FALLBACK_AVATAR,
            "color": config.DEFAULT_COLOR,
        }

    def resolve_steam_id64(self, steam_url):
        if not steam_url:
            return None
        tail = steam_url.rstrip("/").split("/")[-1]
        if tail.isdigit() and len(tail) == 17:
            return tail
        return self.vanity_ids.get(tail)

    def normalize_player(self, steam_url):
        steam_id = self.resolve_steam_id64(steam_url)
        return {
            "steamUrl": f"https://steamcommunity.com/profiles/{steam_id}" if steam_id else steam_url,
            "steamId": steam_id or steam_url.rstrip("/").split("/")[-1],
            "displayName": self.names.get(steam_id),
            "avatarUrl": None,
        }

    def hydrate_players(self, players):
        return players, False


def make_result(players: List[Dict[str, Any]], kills: int = 10, missing: Optional[List[Dict[str, Any]]] = None,
                scraped_at: str = "2026-01-20T12:00:00+00:00", server_info: Optional[dict] = None) -> Dict[str, Any]:
    """Scrape result shaped like ``MooseScraper.scrape`` output."""
    missing = missing or []
    missing_ids = {m.get("steamId") for m in missing}
    profiles = [{**as_profile(p), "missing": p["steamId"] in missing_ids} for p in players]
    found = [p for p in profiles if not p["missing"]]
    return {
        "profiles": profiles,
        "tabs": {
            "pvp": {
                "metrics": ["KDR", "PvP Kills"],
                "columnMap": {"KDR": 1, "PvP Kills": 2},
                "stats": {p["displayName"]: {"KDR": 1.5, "PvP Kills": kills} for p in found},
            },
            "pve": {
                "metrics": ["Scientist"],
                "columnMap": {"Scientist": 1},
                "stats": {p["displayName"]: {"Scientist": kills * 2} for p in found},
            },
        },
        "missing": copy.deepcopy(missing),
        "serverInfo": server_info or {"selectionLabel": config.DEFAULT_SERVER, "targetFound": True},
        "timings": {"strategy": config.STRATEGY_PER_TAB, "durationMs": 1234},
        "scrapedAt": scraped_at,
    }


class FakeScrape:
    """Async scrape function recording its calls; returns ``make_result`` for the given players."""

    def __init__(self, kills: int = 10, error: Optional[BaseException] = None):
        self.kills = kills
        self.error = error
        self.calls: List[tuple] = []

    async def __call__(self, players, server_name, progress=None, strategy=None, tabs=None):
        self.calls.append((list(players), server_name, strategy, tabs))
        if progress:
            progress("Scraping...")
        if self.error is not None:
            raise self.error
        return make_result(players, kills=self.kills)

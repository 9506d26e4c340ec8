# moose_tracker/config.py

import os
from typing import Optional

MOOSE_URL = os.environ.get("MOOSE_URL", "https://beta.moose.gg/stats")

ALLOWED_SERVERS = ("US Monthly (Premium)", "US Biweekly (Premium)")
DEFAULT_SERVER = ALLOWED_SERVERS[0]

DATA_DIR = os.environ.get("MOOSE_DATA_DIR", os.getcwd())
PLAYERS_FILE = os.environ.get("MOOSE_PLAYERS_FILE", os.path.join(DATA_DIR, "players.json"))
CACHE_FILE = os.environ.get("MOOSE_CACHE_FILE", os.path.join(DATA_DIR, "data.json"))

HEADLESS = os.environ.get("MOOSE_HEADLESS", "1").strip().lower() not in ("0", "false", "no")

MAX_PLAYERS = 10
MIN_COMPARE_PLAYERS = 2

FALLBACK_AVATAR = (
    "https://steamcommunity-a.akamaihd.net/public/shared/images/responsive/share_steam_logo.png"
)
DEFAULT_COLOR = "#66c0f4"

USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
    "AppleWebKit/537.36 (KHTML, like Gecko) "
    "Chrome/120.0.0.0 Safari/537.36"
)
VIEWPORT = {"width": 1280, "height": 900}

# Retry envelope for live-UI interactions
RETRY_ATTEMPTS = 3
RETRY_BACKOFFS_MS = (250, 500, 750)

# Settle intervals and bounded waits (milliseconds)
SEARCH_SETTLE_MS = 1200
RESET_SETTLE_MS = 400
TAB_SETTLE_MS = 500
HEADER_WAIT_MS = 8000
ROW_WAIT_MS = 10000
TOOLTIP_SETTLE_MS = 250
TOOLTIP_TIMEOUT_MS = 1500
CELL_DIGITS_WAIT_MS = 4000
SERVER_SETTLE_MS = 1500
DROPDOWN_WAIT_MS = 10000
POPOVER_WAIT_MS = 3000
POPOVER_FALLBACK_WAIT_MS = 5000

IDENTITY_TIMEOUT_SECONDS = 5

STRATEGY_PER_TAB = "per_tab"
STRATEGY_PER_PLAYER = "per_player"

_STRATEGY_ALIASES = {
    "per_tab": STRATEGY_PER_TAB,
    "per-tab": STRATEGY_PER_TAB,
    "pertab": STRATEGY_PER_TAB,
    "per_player": STRATEGY_PER_PLAYER,
    "per-player": STRATEGY_PER_PLAYER,
    "perplayer": STRATEGY_PER_PLAYER,
}


def normalize_server_name(server_name: Optional[str]) -> str:
    """Map a requested server name onto an allowed one (case-insensitive)."""
    if not server_name:
        return DEFAULT_SERVER
    wanted = str(server_name).strip().lower()
    for name in ALLOWED_SERVERS:
        if name.lower() == wanted:
            return name
    return DEFAULT_SERVER


def normalize_strategy(strategy: Optional[str]) -> str:
    if not strategy:
        return STRATEGY_PER_TAB
    return _STRATEGY_ALIASES.get(str(strategy).strip().lower(), STRATEGY_PER_TAB)

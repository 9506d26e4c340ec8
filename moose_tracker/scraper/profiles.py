# moose_tracker/scraper/profiles.py
"""
Profile preparation before a scrape pass.

Roster entries are topped up with Steam identity (name, avatar, 64-bit id, colour)
only when something is missing. A Steam lookup that fails yields placeholders, never
an error.
"""

import asyncio
import logging
from collections import Counter
from typing import Any, Awaitable, Callable, Dict, List, Optional

from .. import config
from ..identity import SteamProfileClient, is_valid_steam_id, profile_label, steam_id_from_url

logger = logging.getLogger(__name__)


def needs_profile(player: Dict[str, Any]) -> bool:
    return (
        not player.get("displayName")
        or not player.get("avatarUrl")
        or not is_valid_steam_id(player.get("steamId"))
        or not player.get("color")
    )


def merge_identity(player: Dict[str, Any], fetched: Dict[str, Any]) -> Dict[str, Any]:
    """Combine a stored roster entry with freshly fetched Steam identity."""
    stored_id = str(player["steamId"]) if is_valid_steam_id(player.get("steamId")) else None
    fetched_id = str(fetched["steamId"]) if is_valid_steam_id(fetched.get("steamId")) else None
    steam_id = fetched_id or stored_id or fetched.get("steamId")

    fetched_name = fetched.get("displayName")
    placeholder_names = {fetched.get("steamId"), player.get("steamId"), player.get("steamUrl")}
    if player.get("displayName") and fetched_name in placeholder_names:
        display_name = player["displayName"]
    else:
        display_name = fetched_name or player.get("displayName")

    avatar_url = fetched.get("avatarUrl")
    if (not avatar_url or avatar_url == config.FALLBACK_AVATAR) and player.get("avatarUrl"):
        avatar_url = player["avatarUrl"]

    steam_url = fetched.get("steamUrl") or player.get("steamUrl")
    return {
        **fetched,
        "steamUrl": steam_url,
        "steamId": steam_id,
        "displayName": display_name,
        "avatarUrl": avatar_url or config.FALLBACK_AVATAR,
        "fallbackName": player.get("fallbackName") or display_name or player.get("steamId") or player.get("steamUrl"),
        "searchKey": steam_id or steam_id_from_url(player.get("steamUrl")) or player.get("steamUrl"),
        "color": fetched.get("color") or player.get("color") or config.DEFAULT_COLOR,
    }


def stored_identity(player: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "steamUrl": player.get("steamUrl"),
        "steamId": player.get("steamId"),
        "displayName": player.get("displayName"),
        "avatarUrl": player.get("avatarUrl"),
        "color": player.get("color") or config.DEFAULT_COLOR,
    }


async def prepare_profiles(
    players: List[Dict[str, Any]],
    resolver: Optional[SteamProfileClient] = None,
    color_sampler: Optional[Callable[[str], Awaitable[Optional[str]]]] = None,
) -> List[Dict[str, Any]]:
    """Build the per-pass profile list, in roster order."""
    profiles = []
    for player in players:
        if needs_profile(player) and resolver is not None:
            fetched = await asyncio.to_thread(resolver.fetch_profile, player.get("steamUrl"), player.get("steamId"))
            if player.get("color"):
                fetched["color"] = player["color"]
            elif color_sampler is not None:
                fetched["color"] = await color_sampler(fetched.get("avatarUrl")) or fetched.get("color")
        else:
            fetched = stored_identity(player)
        profiles.append(merge_identity(player, fetched))

    duplicates = [label for label, n in Counter(profile_label(p) for p in profiles).items() if n > 1]
    if duplicates:
        # Stats are stored per display label, so these players will overwrite each other.
        logger.warning("Players share a display name; their stats will collide: %s", ", ".join(duplicates))
    return profiles

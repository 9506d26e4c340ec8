# moose_tracker/scraper/locator.py

import logging
from typing import Any, Dict, List, Optional

from ..identity import is_valid_steam_id, profile_label

logger = logging.getLogger(__name__)


class PlayerNotFoundError(Exception):
    """Raised when no identity candidate finds the player's row in the table."""


def identity_candidates(profile: Dict[str, Any]) -> List[str]:
    """Search keys to try, in order: numeric steamId, the alternate search key, the raw id.

    Row links embed the player's 64-bit id, so a valid 17-digit id is always tried first.
    """
    steam_id = str(profile.get("steamId") or "").strip()
    search_key = str(profile.get("searchKey") or "").strip()

    candidates: List[str] = []
    if is_valid_steam_id(steam_id):
        candidates.append(steam_id)
    elif is_valid_steam_id(search_key):
        candidates.append(search_key)
    for key in (search_key, steam_id):
        if key and key not in candidates:
            candidates.append(key)
    return candidates


async def locate_row(table, profile: Dict[str, Any], known_key: Optional[str] = None) -> str:
    """Filter the table down to the player's row and return the key that matched it.

    ``known_key`` is the key that matched on the previous tab for the same player; when
    its row is still on screen the search field is left alone.
    """
    label = profile_label(profile)
    if known_key and await table.row_count(known_key) > 0:
        await table.wait_for_row(known_key)
        return known_key

    candidates = identity_candidates(profile)
    if not candidates:
        raise PlayerNotFoundError(f"No SteamID or search key to look up {label}")

    for key in candidates:
        await table.search(key)
        count = await table.row_count(key)
        if count == 0:
            continue
        if count > 1:
            logger.warning("%s rows match %r for %s; using the first", count, key, label)
        await table.wait_for_row(key)
        return key

    raise PlayerNotFoundError(
        f"Could not find player row by SteamID/searchKey for {label} (tried {', '.join(candidates)})"
    )

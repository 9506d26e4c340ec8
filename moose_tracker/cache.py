# moose_tracker/cache.py
"""
Per-server stats cache: folding scrape results in, purging players, and building the
caller-facing view.

Every function here is pure: inputs are never mutated, and the returned document is
a fresh copy.

Cache document shape (one per server)::

    {
        "serverName": str,
        "profiles": [profile, ...],            # roster order
        "tabs": {tab_key: {"metrics": [...], "stats": {label: {metric: number}},
                           "columnMap": {metric: idx}}},
        "missing": [{"label", "steamId", "steamUrl", "reason", "tab"}],
        "serverInfo": dict | None,
        "updatedAt": str | None,               # ISO-8601
    }

Stats are keyed by the player's display label, not by SteamID. Two players sharing a
display name, or a rename between scrapes, will mix or orphan stat entries.
"""

import copy
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from . import config
from .identity import identity_key, needs_steam64, profile_label


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def same_player(a: Dict[str, Any], b: Dict[str, Any]) -> bool:
    """Identity match: equal steamId or equal steamUrl."""
    if a.get("steamId") and b.get("steamId") and str(a["steamId"]) == str(b["steamId"]):
        return True
    return bool(a.get("steamUrl") and b.get("steamUrl") and str(a["steamUrl"]) == str(b["steamUrl"]))


def _find_index(profiles: List[Dict[str, Any]], player: Dict[str, Any]) -> Optional[int]:
    for idx, profile in enumerate(profiles):
        if same_player(profile, player):
            return idx
    return None


def _stat_labels(profiles: List[Dict[str, Any]]) -> set:
    return {profile_label(p) for p in profiles}


# --- Merge ---

def merge_scrape_result(cache: Optional[Dict[str, Any]], result: Dict[str, Any],
                        server_name: Optional[str] = None) -> Dict[str, Any]:
    """Fold one scrape result into a server cache.

    Profiles are matched by identity and shallow-overwritten (last write wins); new
    ones are appended. Stats are overwritten per label. A tab's ``metrics`` are only
    filled when the cache had none. Missing entries for every identity the pass
    covered are replaced by the pass's own entries.
    """
    merged = copy.deepcopy(cache) if cache else {}
    incoming = copy.deepcopy(result)

    merged["serverName"] = server_name or incoming.get("serverName") or merged.get("serverName") or config.DEFAULT_SERVER
    merged["serverInfo"] = incoming.get("serverInfo") or merged.get("serverInfo")
    merged["updatedAt"] = incoming.get("scrapedAt") or _now()

    profiles = merged.get("profiles") or []
    for profile in incoming.get("profiles") or []:
        idx = _find_index(profiles, profile)
        if idx is None:
            profiles.append(profile)
        else:
            profiles[idx] = {**profiles[idx], **profile}
    merged["profiles"] = profiles

    tabs = merged.get("tabs") or {}
    for tab_key, tab_data in (incoming.get("tabs") or {}).items():
        existing = tabs.get(tab_key) or {}
        stats = dict(existing.get("stats") or {})
        stats.update(tab_data.get("stats") or {})
        tabs[tab_key] = {
            **existing,
            **tab_data,
            "stats": stats,
            "metrics": existing.get("metrics") or tab_data.get("metrics") or [],
            "columnMap": tab_data.get("columnMap") or existing.get("columnMap") or {},
        }
    merged["tabs"] = tabs

    covered = list(incoming.get("profiles") or []) + list(incoming.get("missing") or [])
    kept = [
        entry for entry in merged.get("missing") or []
        if not any(same_player(entry, player) for player in covered)
    ]
    merged["missing"] = kept + list(incoming.get("missing") or [])
    return merged


def restrict_to_roster(result: Dict[str, Any], roster: List[Dict[str, Any]]) -> Dict[str, Any]:
    """Drop players from a scrape result that are no longer on the roster."""
    restricted = copy.deepcopy(result)
    profiles = [p for p in restricted.get("profiles") or [] if _find_index(roster, p) is not None]
    labels = _stat_labels(profiles)
    restricted["profiles"] = profiles
    restricted["tabs"] = {
        key: {**tab, "stats": {label: v for label, v in (tab.get("stats") or {}).items() if label in labels}}
        for key, tab in (restricted.get("tabs") or {}).items()
    }
    restricted["missing"] = [m for m in restricted.get("missing") or [] if _find_index(roster, m) is not None]
    return restricted


# --- Removal ---

def remove_player(cache: Optional[Dict[str, Any]], player: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """Purge a player's profile, stat entries and missing entries from one server cache."""
    if cache is None:
        return None
    updated = copy.deepcopy(cache)
    if not player:
        return updated

    stat_keys = {str(v) for v in (player.get("displayName"), player.get("steamId"), player.get("steamUrl")) if v}
    updated["profiles"] = [p for p in updated.get("profiles") or [] if not same_player(p, player)]
    for tab_key, tab_data in (updated.get("tabs") or {}).items():
        stats = tab_data.get("stats") or {}
        updated["tabs"][tab_key] = {**tab_data, "stats": {k: v for k, v in stats.items() if k not in stat_keys}}
    updated["missing"] = [m for m in updated.get("missing") or [] if not same_player(m, player)]
    updated["updatedAt"] = _now()
    return updated


def remove_player_from_servers(document: Dict[str, Any], player: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    updated = copy.deepcopy(document)
    servers = updated.get("servers") or {}
    for name, cache in servers.items():
        if cache:
            servers[name] = remove_player(cache, player)
    updated["servers"] = servers
    return updated


# --- Roster edits ---

def rename_player(cache: Optional[Dict[str, Any]], previous: Dict[str, Any],
                  current: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """Carry a roster edit (new URL, id or name) onto the matching cached profile.

    Stat bodies stay under their old label until the next scrape.
    """
    if cache is None:
        return None
    updated = copy.deepcopy(cache)
    profiles = updated.get("profiles") or []
    idx = _find_index(profiles, previous)
    if idx is not None:
        profile = profiles[idx]
        for field in ("steamUrl", "steamId", "displayName", "avatarUrl"):
            if current.get(field):
                profile[field] = current[field]
        updated["updatedAt"] = _now()
    return updated


def apply_roster(cache: Optional[Dict[str, Any]], roster: List[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """Refresh cached display fields from the roster and mirror its order.

    Cached profiles with no roster match keep their relative order at the end.
    """
    if cache is None:
        return None
    updated = copy.deepcopy(cache)
    profiles = updated.get("profiles") or []

    ordered: List[Dict[str, Any]] = []
    for player in roster:
        idx = _find_index(profiles, player)
        if idx is None:
            continue
        profile = profiles.pop(idx)
        for field in ("steamUrl", "steamId", "displayName", "avatarUrl"):
            if player.get(field):
                profile[field] = player[field]
        ordered.append(profile)

    updated["profiles"] = ordered + profiles
    updated["updatedAt"] = _now()
    return updated


# --- Response view ---

def attach_player_ids(profiles: List[Dict[str, Any]], players: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Tag each profile with its roster index and the roster's stored id/URL."""
    tagged = []
    for profile in profiles:
        match = None
        for index, player in enumerate(players):
            if profile.get("steamId") and player.get("steamId") and str(profile["steamId"]) == str(player["steamId"]):
                match = (index, player)
                break
        if match is None:
            for index, player in enumerate(players):
                if profile.get("steamUrl") and player.get("steamUrl") and str(profile["steamUrl"]) == str(player["steamUrl"]):
                    match = (index, player)
                    break
        if match is None:
            tagged.append(dict(profile))
            continue
        index, player = match
        tagged.append({
            **profile,
            "playerId": index,
            "storedSteamUrl": player.get("steamUrl"),
            "storedSteamId": player.get("steamId"),
        })
    return tagged


def placeholder_profile(player: Dict[str, Any]) -> Dict[str, Any]:
    name = player.get("displayName") or player.get("steamId") or player.get("steamUrl")
    return {
        "steamUrl": player.get("steamUrl"),
        "steamId": player.get("steamId"),
        "displayName": name,
        "fallbackName": name,
        "avatarUrl": player.get("avatarUrl") or config.FALLBACK_AVATAR,
    }


def fallback_response(server_name: str, players: List[Dict[str, Any]]) -> Dict[str, Any]:
    """View for a server with no cache yet: one placeholder per roster player."""
    profiles = [
        {**p, "needsSteam64": needs_steam64(p)}
        for p in attach_player_ids([placeholder_profile(player) for player in players], players)
    ]
    return {
        "serverName": server_name,
        "metrics": [],
        "stats": {},
        "profiles": profiles,
        "tabs": {},
        "missing": [],
        "serverInfo": None,
        "updatedAt": None,
        "cached": False,
    }


def reconcile(cache: Optional[Dict[str, Any]], players: List[Dict[str, Any]],
              server_name: Optional[str] = None) -> Dict[str, Any]:
    """Build the caller-facing view of a server cache for the current roster.

    Cached profiles not on the roster are hidden; roster players never scraped get a
    placeholder, so no tracked player is dropped from the view.
    """
    if cache is None:
        return fallback_response(server_name or config.DEFAULT_SERVER, players)

    tracked = []
    for profile in cache.get("profiles") or []:
        idx = _find_index(players, profile)
        if idx is None:
            continue
        player = players[idx]
        tracked.append({
            **profile,
            "steamUrl": player.get("steamUrl") or profile.get("steamUrl"),
            "steamId": player.get("steamId") or profile.get("steamId"),
            "displayName": player.get("displayName") or profile.get("displayName"),
            "avatarUrl": player.get("avatarUrl") or profile.get("avatarUrl"),
        })

    placeholders = [
        placeholder_profile(player) for player in players
        if identity_key(player) and not any(same_player(player, t) for t in tracked)
    ]
    combined = tracked + placeholders
    profiles = [{**p, "needsSteam64": needs_steam64(p)} for p in attach_player_ids(combined, players)]

    labels = _stat_labels(combined)
    tabs = {
        key: {**tab, "stats": {label: v for label, v in (tab.get("stats") or {}).items() if label in labels}}
        for key, tab in copy.deepcopy(cache.get("tabs") or {}).items()
    }
    primary = tabs.get("pvp") or {}
    return {
        "serverName": cache.get("serverName") or server_name or config.DEFAULT_SERVER,
        "metrics": primary.get("metrics") or [],
        "stats": primary.get("stats") or {},
        "profiles": profiles,
        "tabs": tabs,
        "missing": copy.deepcopy(cache.get("missing") or []),
        "serverInfo": cache.get("serverInfo"),
        "updatedAt": cache.get("updatedAt"),
        "cached": True,
    }

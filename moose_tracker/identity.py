from __future__ import annotations

import logging
import re
from typing import Any, Dict, List, Optional, Tuple
from urllib.error import URLError
from urllib.parse import quote, urlparse
from urllib.request import Request, urlopen

from bs4 import BeautifulSoup

from . import config

logger = logging.getLogger(__name__)

STEAM_ID_RE = re.compile(r"^\d{17}$")
VANITY_URL_RE = re.compile(r"steamcommunity\.com/id/[^/]+", re.I)


class IdentityResolutionError(Exception):
    """Raised inside the Steam client when a profile page cannot be fetched."""


def is_valid_steam_id(value: Any) -> bool:
    return bool(STEAM_ID_RE.match(str(value or "")))


def steam_id_from_url(steam_url: Optional[str]) -> Optional[str]:
    """Last path segment of a profile URL: the 64-bit id or the vanity name."""
    if not steam_url:
        return None
    try:
        parsed = urlparse(str(steam_url))
    except ValueError:
        return None
    if not parsed.scheme or not parsed.netloc:
        return None
    parts = [p for p in parsed.path.split("/") if p]
    return parts[-1] if parts else None


def build_steam_url(steam_url: Optional[str], steam_id: Optional[str]) -> Optional[str]:
    if steam_url and re.match(r"^https?://", str(steam_url), re.I):
        return str(steam_url)
    if is_valid_steam_id(steam_id):
        return f"https://steamcommunity.com/profiles/{steam_id}"
    return None


def needs_steam64(profile: Dict[str, Any]) -> bool:
    """True when a player has no 64-bit id yet but has something that could resolve to one."""
    steam_id = profile.get("steamId") or profile.get("storedSteamId")
    if is_valid_steam_id(steam_id):
        return False
    steam_url = profile.get("steamUrl") or profile.get("storedSteamUrl") or ""
    return bool(steam_id) or bool(VANITY_URL_RE.search(steam_url))


def profile_label(profile: Dict[str, Any]) -> str:
    """Key under which a player's stats are stored in every tab."""
    return (
        profile.get("displayName")
        or profile.get("fallbackName")
        or profile.get("steamId")
        or profile.get("steamUrl")
        or "Unknown player"
    )


def identity_key(profile: Dict[str, Any]) -> Optional[str]:
    """Roster key used by edit/reorder requests: steamId, else the id parsed from the URL."""
    if profile.get("steamId"):
        return str(profile["steamId"])
    return steam_id_from_url(profile.get("steamUrl"))


class SteamProfileClient:
    """Fetches display name, avatar and 64-bit id from Steam Community pages.

    Every public method is non-fatal: network and parse failures fall back to
    placeholder values.
    """

    HEADERS = {
        "User-Agent": config.USER_AGENT,
        "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
        "Accept-Language": "en-US,en;q=0.9",
    }
    LOOKUP_URL = "https://steamid.io/lookup/{vanity}"

    def __init__(self, timeout_seconds: float = config.IDENTITY_TIMEOUT_SECONDS):
        self.timeout_seconds = timeout_seconds

    def _get_text(self, url: str) -> str:
        req = Request(url, headers=self.HEADERS, method="GET")
        try:
            with urlopen(req, timeout=self.timeout_seconds) as resp:
                return resp.read().decode("utf-8", errors="replace")
        except (URLError, OSError, ValueError) as exc:
            raise IdentityResolutionError(f"GET {url} failed: {exc}") from exc

    @staticmethod
    def parse_profile_html(html: str) -> Dict[str, Optional[str]]:
        soup = BeautifulSoup(html or "", "html.parser")

        display_name = None
        og_title = soup.find("meta", attrs={"property": "og:title"})
        if og_title and og_title.get("content"):
            match = re.match(r"Steam Community :: (.+)", og_title["content"])
            if match:
                display_name = match.group(1).strip()
        if not display_name:
            persona = soup.select_one(".actual_persona_name")
            if persona and persona.get_text(strip=True):
                display_name = persona.get_text(strip=True)

        avatar_url = None
        avatar_img = soup.select_one(".playerAvatarAutoSizeInner img")
        if avatar_img and avatar_img.get("src"):
            avatar_url = avatar_img["src"]
        else:
            og_image = soup.find("meta", attrs={"property": "og:image"})
            if og_image and og_image.get("content"):
                avatar_url = og_image["content"]

        id_match = re.search(r'"steamid"\s*:\s*"(\d{17})"', html or "", re.I)
        return {
            "displayName": display_name,
            "avatarUrl": avatar_url,
            "steamId": id_match.group(1) if id_match else None,
        }

    def fetch_profile_summary_from_url(self, steam_url: Optional[str]) -> Dict[str, Optional[str]]:
        if not steam_url:
            return {}
        try:
            return self.parse_profile_html(self._get_text(steam_url))
        except IdentityResolutionError as exc:
            logger.info("Steam profile fetch failed: %s", exc)
            return {}

    def fetch_profile_summary(self, steam_url: Optional[str], steam_id: Optional[str]) -> Dict[str, Optional[str]]:
        """Try the stored URL, then the /profiles/<id> URL for whatever is still missing."""
        primary_url = build_steam_url(steam_url, None)
        fallback_url = build_steam_url(None, steam_id)
        primary = self.fetch_profile_summary_from_url(primary_url)
        if primary.get("displayName") and primary.get("avatarUrl"):
            return primary
        if fallback_url and fallback_url != primary_url:
            fallback = self.fetch_profile_summary_from_url(fallback_url)
            return {
                "displayName": primary.get("displayName") or fallback.get("displayName"),
                "avatarUrl": primary.get("avatarUrl") or fallback.get("avatarUrl"),
                "steamId": primary.get("steamId") or fallback.get("steamId"),
            }
        return primary

    def resolve_steam_id64(self, steam_url: Optional[str]) -> Optional[str]:
        if not steam_url:
            return None
        normalized = str(steam_url).rstrip("/")
        vanity = steam_id_from_url(normalized)
        if is_valid_steam_id(vanity):
            return vanity

        if vanity:
            try:
                html = self._get_text(self.LOOKUP_URL.format(vanity=quote(vanity)))
                table_match = re.search(r"SteamID64</td>\s*<td[^>]*>(\d{17})", html, re.I)
                loose_match = re.search(r"\b(\d{17})\b", html)
                resolved = table_match or loose_match
                if resolved:
                    return resolved.group(1)
            except IdentityResolutionError as exc:
                logger.info("steamid.io lookup failed for %s: %s", vanity, exc)

        try:
            xml = self._get_text(normalized + "/?xml=1")
        except IdentityResolutionError as exc:
            logger.info("Steam XML lookup failed for %s: %s", normalized, exc)
            return None
        match = re.search(r"<steamID64>(\d{17})</steamID64>", xml)
        return match.group(1) if match else None

    def fetch_profile(self, steam_url: Optional[str], steam_id: Optional[str]) -> Dict[str, Optional[str]]:
        """Full identity for a player, with placeholders for anything unresolvable."""
        profile_url = build_steam_url(steam_url, steam_id)
        parsed_id = steam_id_from_url(profile_url or steam_url)
        summary = self.fetch_profile_summary_from_url(profile_url)

        resolved_id = summary.get("steamId") or steam_id or parsed_id
        if not is_valid_steam_id(resolved_id):
            resolved_id = self.resolve_steam_id64(profile_url or steam_url) or resolved_id

        return {
            "steamUrl": profile_url or steam_url,
            "steamId": resolved_id or parsed_id,
            "displayName": summary.get("displayName") or parsed_id or steam_url,
            "avatarUrl": summary.get("avatarUrl") or config.FALLBACK_AVATAR,
            "color": config.DEFAULT_COLOR,
        }

    def normalize_player(self, steam_url: str) -> Dict[str, Optional[str]]:
        """Roster entry for a newly added profile URL."""
        resolved = self.resolve_steam_id64(steam_url)
        normalized_url = build_steam_url(steam_url, resolved)
        summary = self.fetch_profile_summary(normalized_url or steam_url, resolved)
        return {
            "steamUrl": normalized_url or steam_url,
            "steamId": resolved or steam_id_from_url(steam_url),
            "displayName": summary.get("displayName"),
            "avatarUrl": summary.get("avatarUrl"),
        }

    def hydrate_player(self, player: Dict[str, Any]) -> Dict[str, Any]:
        needs_id = not is_valid_steam_id(player.get("steamId"))
        needs_profile = not player.get("displayName") or not player.get("avatarUrl")
        if not needs_id and not needs_profile:
            return player

        normalized_url = build_steam_url(player.get("steamUrl"), player.get("steamId"))
        resolved_id = self.resolve_steam_id64(normalized_url or player.get("steamUrl")) if needs_id else None
        summary = (
            self.fetch_profile_summary(normalized_url or player.get("steamUrl"), resolved_id or player.get("steamId"))
            if needs_profile
            else {}
        )
        return {
            **player,
            "steamUrl": normalized_url or player.get("steamUrl"),
            "steamId": player["steamId"] if not needs_id else (resolved_id or player.get("steamId")),
            "displayName": player.get("displayName") or summary.get("displayName"),
            "avatarUrl": player.get("avatarUrl") or summary.get("avatarUrl"),
        }

    def hydrate_players(self, players: List[Dict[str, Any]]) -> Tuple[List[Dict[str, Any]], bool]:
        """Fill in missing ids, names and avatars. Returns (players, changed)."""
        hydrated = [self.hydrate_player(p) for p in players]
        changed = any(
            new.get(k) != old.get(k)
            for new, old in zip(hydrated, players)
            for k in ("steamId", "displayName", "avatarUrl")
        )
        return hydrated, changed

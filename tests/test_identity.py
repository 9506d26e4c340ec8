# tests/test_identity.py

import pytest

from moose_tracker import config
from moose_tracker.identity import (
    IdentityResolutionError,
    SteamProfileClient,
    build_steam_url,
    identity_key,
    is_valid_steam_id,
    needs_steam64,
    profile_label,
    steam_id_from_url,
)

PROFILE_HTML = """
<html><head>
<meta property="og:title" content="Steam Community :: Alice">
<meta property="og:image" content="https://avatars.example/og.jpg">
</head><body>
<div class="playerAvatarAutoSizeInner"><img src="https://avatars.example/full.jpg"></div>
<script>g_rgProfileData = {"url":"https://steamcommunity.com/id/alice/","steamid":"76561198000000001"};</script>
</body></html>
"""

PERSONA_ONLY_HTML = """
<html><head><meta property="og:image" content="https://avatars.example/og.jpg"></head>
<body><span class="actual_persona_name">Bob  </span></body></html>
"""


class StubClient(SteamProfileClient):
    """Serves canned responses per URL; unknown URLs fail like a network error."""

    def __init__(self, pages):
        super().__init__(timeout_seconds=1)
        self.pages = pages
        self.requested = []

    def _get_text(self, url):
        self.requested.append(url)
        if url not in self.pages:
            raise IdentityResolutionError(f"GET {url} failed: unreachable")
        return self.pages[url]


class TestHelpers:

    def test_valid_steam_id(self):
        assert is_valid_steam_id("76561198000000001")
        assert is_valid_steam_id(76561198000000001)
        assert not is_valid_steam_id("7656119800000000")
        assert not is_valid_steam_id(None)

    def test_steam_id_from_url(self):
        assert steam_id_from_url("https://steamcommunity.com/id/alice/") == "alice"
        assert steam_id_from_url("https://steamcommunity.com/profiles/76561198000000001") == "76561198000000001"
        assert steam_id_from_url("not a url") is None
        assert steam_id_from_url(None) is None

    def test_build_steam_url(self):
        assert build_steam_url("https://steamcommunity.com/id/alice", None) == "https://steamcommunity.com/id/alice"
        assert build_steam_url(None, "76561198000000001") == "https://steamcommunity.com/profiles/76561198000000001"
        assert build_steam_url("alice", "bad") is None

    def test_needs_steam64(self):
        assert needs_steam64({"steamUrl": "https://steamcommunity.com/id/alice"})
        assert needs_steam64({"steamId": "alice"})
        assert not needs_steam64({"steamId": "76561198000000001"})
        assert not needs_steam64({"steamUrl": "https://steamcommunity.com/profiles/x"})

    def test_identity_key_and_label(self):
        assert identity_key({"steamUrl": "https://steamcommunity.com/id/alice"}) == "alice"
        assert profile_label({"fallbackName": "al", "steamId": "1"}) == "al"
        assert profile_label({}) == "Unknown player"


class TestParseProfile:

    def test_og_title_avatar_and_id(self):
        parsed = SteamProfileClient.parse_profile_html(PROFILE_HTML)
        assert parsed == {
            "displayName": "Alice",
            "avatarUrl": "https://avatars.example/full.jpg",
            "steamId": "76561198000000001",
        }

    def test_persona_and_og_image_fallbacks(self):
        parsed = SteamProfileClient.parse_profile_html(PERSONA_ONLY_HTML)
        assert parsed["displayName"] == "Bob"
        assert parsed["avatarUrl"] == "https://avatars.example/og.jpg"
        assert parsed["steamId"] is None

    def test_empty_html(self):
        assert SteamProfileClient.parse_profile_html("") == {"displayName": None, "avatarUrl": None, "steamId": None}


class TestResolve:

    def test_direct_numeric_id_needs_no_request(self):
        client = StubClient({})
        assert client.resolve_steam_id64("https://steamcommunity.com/profiles/76561198000000001/") == "76561198000000001"
        assert client.requested == []

    def test_vanity_resolved_via_lookup_table(self):
        client = StubClient({
            "https://steamid.io/lookup/alice": "<tr><td>SteamID64</td>\n<td class='x'>76561198000000001</td></tr>",
        })
        assert client.resolve_steam_id64("https://steamcommunity.com/id/alice") == "76561198000000001"

    def test_vanity_falls_back_to_xml(self):
        client = StubClient({
            "https://steamcommunity.com/id/alice/?xml=1": "<profile><steamID64>76561198000000001</steamID64></profile>",
        })
        assert client.resolve_steam_id64("https://steamcommunity.com/id/alice/") == "76561198000000001"

    def test_unresolvable_returns_none(self):
        assert StubClient({}).resolve_steam_id64("https://steamcommunity.com/id/ghost") is None


class TestFetchProfile:

    def test_network_failure_yields_placeholders(self):
        client = StubClient({})
        profile = client.fetch_profile("https://steamcommunity.com/id/ghost", None)
        assert profile["displayName"] == "ghost"
        assert profile["avatarUrl"] == config.FALLBACK_AVATAR
        assert profile["color"] == config.DEFAULT_COLOR

    def test_profile_page_supplies_identity(self):
        url = "https://steamcommunity.com/id/alice"
        profile = StubClient({url: PROFILE_HTML}).fetch_profile(url, None)
        assert profile["steamId"] == "76561198000000001"
        assert profile["displayName"] == "Alice"

    def test_hydrate_reports_changes(self):
        url = "https://steamcommunity.com/profiles/76561198000000001"
        client = StubClient({url: PROFILE_HTML})
        players, changed = client.hydrate_players([{"steamUrl": url, "steamId": "76561198000000001"}])
        assert changed
        assert players[0]["displayName"] == "Alice"

    def test_hydrate_skips_complete_players(self):
        client = StubClient({})
        player = {"steamUrl": "u", "steamId": "76561198000000001", "displayName": "A", "avatarUrl": "x"}
        players, changed = client.hydrate_players([player])
        assert not changed
        assert client.requested == []


@pytest.mark.parametrize("value", ["", "   ", "abc"])
def test_normalize_strategy_defaults_to_per_tab(value):
    assert config.normalize_strategy(value) == config.STRATEGY_PER_TAB

# tests/test_profiles.py

import asyncio
import logging

from moose_tracker import config
from moose_tracker.scraper.profiles import merge_identity, needs_profile, prepare_profiles
from tests.helpers import ALICE, BOB, FakeResolver


def test_complete_player_needs_no_fetch():
    assert not needs_profile(ALICE)
    assert needs_profile({**ALICE, "color": None})


def test_stored_name_kept_when_fetched_name_is_placeholder():
    player = {"steamUrl": "https://steamcommunity.com/id/al", "steamId": "al", "displayName": "Alice"}
    fetched = {"steamUrl": player["steamUrl"], "steamId": "76561198000000001", "displayName": "al",
               "avatarUrl": config.FALLBACK_AVATAR}
    merged = merge_identity(player, fetched)
    assert merged["displayName"] == "Alice"
    assert merged["steamId"] == "76561198000000001"
    assert merged["searchKey"] == "76561198000000001"
    assert merged["fallbackName"] == "Alice"


def test_stored_avatar_kept_over_fallback():
    player = {**ALICE, "avatarUrl": "https://avatars.example/mine.jpg"}
    merged = merge_identity(player, {"avatarUrl": config.FALLBACK_AVATAR, "steamId": ALICE["steamId"]})
    assert merged["avatarUrl"] == "https://avatars.example/mine.jpg"


def test_search_key_from_url_without_valid_id():
    player = {"steamUrl": "https://steamcommunity.com/id/carl"}
    merged = merge_identity(player, {"steamUrl": player["steamUrl"]})
    assert merged["searchKey"] == "carl"


def test_prepare_only_fetches_incomplete_players():
    resolver = FakeResolver(names={"76561198000000009": "Dana"})
    dana = {"steamUrl": "https://steamcommunity.com/profiles/76561198000000009", "steamId": "76561198000000009"}
    profiles = asyncio.run(prepare_profiles([ALICE, dana], resolver))
    assert resolver.fetched == [(dana["steamUrl"], dana["steamId"])]
    assert [p["displayName"] for p in profiles] == ["Alice", "Dana"]
    assert profiles[0]["color"] == ALICE["color"]


def test_stored_colour_beats_sampled_colour():
    async def sampler(url):
        return "#123456"

    player = {**BOB, "avatarUrl": None}
    no_colour = {**ALICE, "avatarUrl": None, "color": None}
    profiles = asyncio.run(prepare_profiles([player, no_colour], FakeResolver(), sampler))
    assert profiles[0]["color"] == BOB["color"]
    assert profiles[1]["color"] == "#123456"


def test_duplicate_labels_are_warned(caplog):
    twin = {**BOB, "displayName": "Alice"}
    with caplog.at_level(logging.WARNING, logger="moose_tracker.scraper.profiles"):
        asyncio.run(prepare_profiles([ALICE, twin], FakeResolver()))
    assert "Alice" in caplog.text

"""
Video source tests: actor input, TikTok item normalization, static fixtures.
"""

import json
from unittest.mock import MagicMock

import pytest

from trendintel.core.guardrails import ApifyDisabledError
from trendintel.etl.validation import validate_video
from trendintel.integrations.apify.video_source import (
    ApifyVideoSource,
    StaticVideoSource,
    VideoFilter,
    build_actor_input,
    normalize_tiktok_item,
)
from tests.helpers.builders import raw_video

SCRAPER_ITEM = {
    "id": "7301",
    "text": "Morning routine #vlog",
    "createTime": 1718400000,
    "authorMeta": {"id": "a1", "name": "creator", "avatar": "https://cdn.example.com/a1.jpg"},
    "videoMeta": {"duration": 21, "coverUrl": "https://cdn.example.com/7301.jpg"},
    "hashtags": [{"name": "vlog"}],
    "webVideoUrl": "https://www.tiktok.com/@creator/video/7301",
    "playCount": 120_000,
    "diggCount": 9_000,
    "shareCount": 300,
    "commentCount": 150,
    "musicMeta": {
        "musicId": 6800,
        "musicName": "original sound",
        "musicAuthor": "creator",
        "playUrl": "https://cdn.example.com/6800.mp3",
        "coverMediumUrl": "https://cdn.example.com/6800.jpg",
        "musicOriginal": True,
    },
}


class TestBuildActorInput:
    def test_trending(self):
        assert build_actor_input(VideoFilter(max_items=25)) == {
            "resultsPerPage": 25,
            "shouldDownloadVideos": False,
            "shouldDownloadCovers": False,
            "hashtags": ["fyp"],
        }

    def test_hashtag_strips_marker(self):
        assert build_actor_input(VideoFilter(mode="hashtag", query="#dance"))["hashtags"] == ["dance"]

    def test_category_uses_hashtags(self):
        assert build_actor_input(VideoFilter(mode="category", query="fitness"))["hashtags"] == ["fitness"]

    def test_search(self):
        actor_input = build_actor_input(VideoFilter(mode="search", query="Summer Vibes"))
        assert actor_input["searchQueries"] == ["Summer Vibes"]
        assert "hashtags" not in actor_input

    def test_single_video_by_id_or_url(self):
        by_id = build_actor_input(VideoFilter(mode="video", query="7301", max_items=1))
        assert by_id["postURLs"] == ["https://www.tiktok.com/video/7301"]
        assert "hashtags" not in by_id

        url = "https://www.tiktok.com/@creator/video/7301"
        assert build_actor_input(VideoFilter(mode="video", query=url))["postURLs"] == [url]


class TestNormalizeTiktokItem:
    def test_flat_stats_and_music_meta(self):
        record = normalize_tiktok_item(SCRAPER_ITEM)

        assert record["id"] == "7301"
        assert record["authorMeta"]["nickname"] == "creator"
        assert record["videoUrl"] == "https://www.tiktok.com/@creator/video/7301"
        assert record["stats"] == {
            "playCount": 120_000,
            "diggCount": 9_000,
            "shareCount": 300,
            "commentCount": 150,
        }
        assert record["music"]["id"] == "6800"
        assert record["music"]["title"] == "original sound"
        assert record["music"]["coverMedium"] == "https://cdn.example.com/6800.jpg"
        assert record["music"]["original"] is True
        assert validate_video(record)

    def test_nested_stats(self):
        item = {**SCRAPER_ITEM, "stats": {"playCount": 5}}
        for key in ("playCount", "diggCount", "shareCount", "commentCount"):
            item.pop(key)
        assert normalize_tiktok_item(item)["stats"] == {"playCount": 5}

    def test_item_without_id(self):
        assert normalize_tiktok_item({"text": "no id"}) is None

    def test_missing_stats_left_out_for_validation(self):
        item = {key: value for key, value in SCRAPER_ITEM.items() if key != "playCount"}
        record = normalize_tiktok_item(item)
        assert "playCount" not in record["stats"]
        assert not validate_video(record)

    def test_no_music(self):
        item = {key: value for key, value in SCRAPER_ITEM.items() if key != "musicMeta"}
        assert "music" not in normalize_tiktok_item(item)


class TestApifyVideoSource:
    def test_blocked_when_disabled(self):
        client = MagicMock()
        with pytest.raises(ApifyDisabledError):
            ApifyVideoSource(client, "clockworks/tiktok-scraper").fetch(VideoFilter())
        client.run_actor.assert_not_called()

    @pytest.mark.usefixtures("enable_apify")
    def test_runs_actor_and_normalizes(self):
        client = MagicMock()
        client.run_actor.return_value = [SCRAPER_ITEM, {"text": "dropped"}]

        source = ApifyVideoSource(client, "clockworks/tiktok-scraper", timeout_s=60)
        records = source.fetch(VideoFilter(mode="hashtag", query="vlog", max_items=10))

        assert [r["id"] for r in records] == ["7301"]
        client.run_actor.assert_called_once_with(
            "clockworks/tiktok-scraper",
            build_actor_input(VideoFilter(mode="hashtag", query="vlog", max_items=10)),
            limit=10,
            timeout_s=60,
        )


class TestStaticVideoSource:
    @pytest.fixture
    def source(self):
        return StaticVideoSource(
            [
                raw_video("v1", hashtags=[{"name": "dance"}]),
                raw_video("v2", music_title="Night Drive"),
                raw_video("v3", hashtags=["#Dance", "fyp"]),
            ]
        )

    def test_trending_returns_everything_up_to_max(self, source):
        assert [r["id"] for r in source.fetch(VideoFilter(max_items=2))] == ["v1", "v2"]

    def test_hashtag_filter_is_case_insensitive(self, source):
        records = source.fetch(VideoFilter(mode="hashtag", query="#dance"))
        assert [r["id"] for r in records] == ["v1", "v3"]

    def test_search_matches_music_title(self, source):
        records = source.fetch(VideoFilter(mode="search", query="night drive"))
        assert [r["id"] for r in records] == ["v2"]

    def test_video_mode_matches_id(self, source):
        records = source.fetch(VideoFilter(mode="video", query="v2", max_items=1))
        assert [r["id"] for r in records] == ["v2"]
        assert source.fetch(VideoFilter(mode="video", query="v9")) == []

    def test_returns_copies(self, source):
        source.fetch(VideoFilter())[0]["id"] = "changed"
        assert source.fetch(VideoFilter())[0]["id"] == "v1"

    def test_from_file(self, tmp_path):
        path = tmp_path / "videos.json"
        path.write_text(json.dumps({"items": [raw_video("v1")]}), encoding="utf-8")

        records = StaticVideoSource.from_file(path).fetch(VideoFilter())

        assert [r["id"] for r in records] == ["v1"]

"""
Video sources.

A VideoSource returns raw video records in the canonical wire shape the
ETL parses:

    {id, text, createTime, authorMeta{id, nickname, avatar},
     videoMeta{duration, coverUrl}, hashtags, videoUrl,
     stats{playCount, diggCount, shareCount, commentCount},
     music{id, title, authorName, usageCount, playUrl, coverThumb, ...}}

ApifyVideoSource runs the TikTok scraper actor and normalizes its items
(flat or nested stats, musicMeta, authorMeta.name) into that shape.
StaticVideoSource serves records from memory or a JSON fixture file.
"""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Literal, Sequence

from trendintel.core.guardrails import require_apify_enabled
from trendintel.integrations.apify.client import ApifyClient

logger = logging.getLogger(__name__)

TIKTOK_VIDEO_URL = "https://www.tiktok.com/video"

FilterMode = Literal["trending", "hashtag", "search", "category", "video"]


@dataclass(frozen=True)
class VideoFilter:
    """What to fetch. `query` is the hashtag, search term, category or video id."""

    mode: FilterMode = "trending"
    query: str = ""
    max_items: int = 30


class VideoSource(ABC):
    @abstractmethod
    def fetch(self, video_filter: VideoFilter) -> list[dict[str, Any]]:
        """
        Fetch raw video records.

        Raises:
            ApifyError: If the upstream source fails
        """
        pass


# =============================================================================
# APIFY
# =============================================================================


def build_actor_input(video_filter: VideoFilter) -> dict[str, Any]:
    """
    Build input for clockworks~tiktok-scraper.

    - trending: the scraper's trending feed
    - hashtag / category: hashtags=[query]
    - search: searchQueries=[query]
    - video: postURLs=[query], a video URL or a bare video id
    """
    base: dict[str, Any] = {
        "resultsPerPage": video_filter.max_items,
        "shouldDownloadVideos": False,
        "shouldDownloadCovers": False,
    }
    query = video_filter.query.lstrip("#")
    if video_filter.mode in ("hashtag", "category") and query:
        base["hashtags"] = [query]
    elif video_filter.mode == "search" and query:
        base["searchQueries"] = [query]
    elif video_filter.mode == "video" and query:
        base["postURLs"] = [_video_url(video_filter.query)]
    else:
        base["hashtags"] = ["fyp"]
    return base


def _video_url(video_id: str) -> str:
    if video_id.startswith("http"):
        return video_id
    return f"{TIKTOK_VIDEO_URL}/{video_id}"


def _first(*values: Any) -> Any:
    for value in values:
        if value not in (None, ""):
            return value
    return None


def normalize_tiktok_item(raw: dict[str, Any]) -> dict[str, Any] | None:
    """
    Normalize one clockworks/tiktok-scraper item to the canonical shape.

    Returns None for items without an id. Missing fields are left out
    rather than defaulted so validation can still reject them.
    """
    video_id = _first(raw.get("id"))
    if video_id is None:
        return None

    author = raw.get("authorMeta") or raw.get("author") or {}
    stats = raw.get("stats") or {}
    video_meta = raw.get("videoMeta") or {}
    music = raw.get("musicMeta") or raw.get("music") or {}

    record: dict[str, Any] = {
        "id": str(video_id),
        "text": _first(raw.get("text"), raw.get("desc")) or "",
        "createTime": raw.get("createTime"),
        "authorMeta": {
            "id": _first(author.get("id"), author.get("uniqueId")),
            "nickname": _first(
                author.get("nickName"), author.get("nickname"), author.get("name")
            ),
            "avatar": _first(author.get("avatar"), author.get("avatarThumb")) or "",
        },
        "videoMeta": {
            "duration": video_meta.get("duration"),
            "coverUrl": _first(video_meta.get("coverUrl"), video_meta.get("originalCoverUrl")) or "",
        },
        "hashtags": raw.get("hashtags") or [],
        "videoUrl": _first(raw.get("webVideoUrl"), raw.get("videoUrl")) or "",
        "stats": {},
    }

    # Stats come either nested under "stats" or flat on the item
    for key in ("playCount", "diggCount", "shareCount", "commentCount"):
        value = _first(stats.get(key), raw.get(key))
        if value is not None:
            record["stats"][key] = value

    music_id = _first(music.get("musicId"), music.get("id"))
    if music_id is not None:
        record["music"] = {
            "id": str(music_id),
            "title": _first(music.get("musicName"), music.get("title")) or "",
            "authorName": _first(music.get("musicAuthor"), music.get("authorName")) or "",
            "playUrl": _first(music.get("playUrl"), music.get("musicUrl")) or "",
            "coverThumb": _first(music.get("coverThumbUrl"), music.get("coverThumb")) or "",
            "coverMedium": _first(music.get("coverMediumUrl"), music.get("coverMedium")) or "",
            "coverLarge": _first(music.get("coverLargeUrl"), music.get("coverLarge")) or "",
            "duration": music.get("duration"),
            "usageCount": _first(music.get("usageCount"), music.get("videoCount")),
            "original": bool(_first(music.get("musicOriginal"), music.get("original"))),
        }

    return record


class ApifyVideoSource(VideoSource):
    """Fetches videos by running the TikTok scraper actor."""

    def __init__(self, client: ApifyClient, actor_id: str, timeout_s: int = 180):
        self.client = client
        self.actor_id = actor_id
        self.timeout_s = timeout_s

    def fetch(self, video_filter: VideoFilter) -> list[dict[str, Any]]:
        require_apify_enabled()

        items = self.client.run_actor(
            self.actor_id,
            build_actor_input(video_filter),
            limit=video_filter.max_items,
            timeout_s=self.timeout_s,
        )

        records = []
        for item in items:
            record = normalize_tiktok_item(item)
            if record is not None:
                records.append(record)

        logger.info(
            "Normalized %d/%d items from %s",
            len(records),
            len(items),
            self.actor_id,
            extra={"mode": video_filter.mode, "query": video_filter.query},
        )
        return records


# =============================================================================
# STATIC
# =============================================================================


class StaticVideoSource(VideoSource):
    """Serves fixed records. Used by --fixture runs and tests."""

    def __init__(self, records: Sequence[dict[str, Any]]):
        self.records = list(records)

    @classmethod
    def from_file(cls, path: str | Path) -> "StaticVideoSource":
        data = json.loads(Path(path).read_text(encoding="utf-8"))
        if isinstance(data, dict):
            data = data.get("items") or data.get("videos") or []
        return cls(data)

    def fetch(self, video_filter: VideoFilter) -> list[dict[str, Any]]:
        records = self.records
        query = video_filter.query.lstrip("#").lower()
        if video_filter.mode == "video":
            records = [r for r in records if str(r.get("id")) == video_filter.query]
        elif video_filter.mode in ("hashtag", "category") and query:
            records = [r for r in records if query in _hashtag_names(r)]
        elif video_filter.mode == "search" and query:
            records = [r for r in records if query in _searchable_text(r)]
        return [dict(r) for r in records[: video_filter.max_items]]


def _hashtag_names(record: dict[str, Any]) -> set[str]:
    names = set()
    for tag in record.get("hashtags") or []:
        name = tag.get("name") if isinstance(tag, dict) else tag
        if name:
            names.add(str(name).lstrip("#").lower())
    return names


def _searchable_text(record: dict[str, Any]) -> str:
    music = record.get("music") or {}
    return f"{record.get('text', '')} {music.get('title', '')}".lower()

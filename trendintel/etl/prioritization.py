"""
Processing priority for a batch of candidate videos.

Rules, first match wins:
1. high   - video belongs to a known trending template
2. high   - play count > 500,000 or like count > 100,000
3. medium - attached sound used more than 50,000 times
4. low    - everything else

The order is advisory: every item is still processed.
"""

from __future__ import annotations

from collections.abc import Collection, Sequence
from dataclasses import dataclass

from trendintel.core.enums import Priority
from trendintel.etl.dto import RawVideoDTO

HIGH_PLAY_COUNT = 500_000
HIGH_LIKE_COUNT = 100_000
POPULAR_SOUND_USAGE = 50_000

REASON_TRENDING_TEMPLATE = "Associated with trending template"
REASON_HIGH_ENGAGEMENT = "High engagement metrics"
REASON_POPULAR_SOUND = "Popular sound with high usage"
REASON_STANDARD = "Standard processing"


@dataclass(frozen=True)
class PrioritizedItem:
    item: RawVideoDTO
    priority: Priority
    reason: str
    processing_order: int

    @property
    def item_id(self) -> str:
        return self.item.id


def assign_priority(
    video: RawVideoDTO, known_trending_ids: Collection[str]
) -> tuple[Priority, str]:
    if video.id in known_trending_ids:
        return Priority.HIGH, REASON_TRENDING_TEMPLATE

    stats = video.stats
    if stats.play_count > HIGH_PLAY_COUNT or stats.digg_count > HIGH_LIKE_COUNT:
        return Priority.HIGH, REASON_HIGH_ENGAGEMENT

    usage = video.music.usage_count if video.music else None
    if usage is not None and usage > POPULAR_SOUND_USAGE:
        return Priority.MEDIUM, REASON_POPULAR_SOUND

    return Priority.LOW, REASON_STANDARD


def prioritize(
    videos: Sequence[RawVideoDTO], known_trending_ids: Collection[str] = ()
) -> list[PrioritizedItem]:
    """
    Assign a priority to every video and order them high -> low.

    The sort is stable, so videos of equal priority keep their input order.
    processing_order is the 0-based position in the returned list.
    """
    trending = set(known_trending_ids)
    ranked = []
    for video in videos:
        priority, reason = assign_priority(video, trending)
        ranked.append((priority, reason, video))

    ranked.sort(key=lambda entry: entry[0].rank)

    return [
        PrioritizedItem(item=video, priority=priority, reason=reason, processing_order=index)
        for index, (priority, reason, video) in enumerate(ranked)
    ]

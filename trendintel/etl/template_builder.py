"""
Template construction from an analyzed source video.

Template ids are derived from the source video id, so re-running the AI
pass over the same video upserts the same template instead of adding a
duplicate.
"""

from __future__ import annotations

import logging
import uuid
from datetime import date, datetime, timezone
from typing import Any, Mapping

from pydantic import ValidationError as PydanticValidationError

from trendintel.etl.dto import (
    RawVideoDTO,
    TemplateDTO,
    TemplateMetadataDTO,
    TemplateSectionDTO,
    TemplateStatsDTO,
    TrendDataDTO,
)

logger = logging.getLogger(__name__)

DEFAULT_CATEGORY = "Trending"
TITLE_MAX_LENGTH = 100

_SECTION_KEY_ALIASES = {"startTime": "start_time"}


def template_id_for_video(video_id: str) -> str:
    return str(uuid.uuid5(uuid.NAMESPACE_URL, f"template:{video_id}"))


def engagement_rate(video: RawVideoDTO) -> float:
    """Likes, comments and shares as a percentage of plays."""
    stats = video.stats
    if stats.play_count <= 0:
        return 0.0
    return stats.engagement_total / stats.play_count * 100


def _sections(raw_sections: Any) -> list[TemplateSectionDTO]:
    sections = []
    for raw in raw_sections or []:
        if not isinstance(raw, Mapping):
            continue
        data = {_SECTION_KEY_ALIASES.get(key, key): value for key, value in raw.items()}
        data = {key: value for key, value in data.items() if value is not None}
        try:
            sections.append(TemplateSectionDTO.model_validate(data))
        except PydanticValidationError:
            logger.debug("Dropping malformed section", extra={"section": data})
    return sections


def build_template(
    video: RawVideoDTO,
    analysis: Mapping[str, Any],
    created_by: str = "ai-etl-system",
    existing: TemplateDTO | None = None,
    today: date | None = None,
    category: str | None = None,
) -> TemplateDTO:
    """
    Build (or refresh) the template for a video from a sanitized analysis.

    A refresh keeps the stored trend history: daily views gain today's
    point and similar templates are left for the metrics pass to update.
    An explicit `category` wins over the detected one, which is still kept
    in metadata.ai_detected_category.
    """
    today = today or date.today()
    category = category or analysis.get("category") or DEFAULT_CATEGORY
    title = video.text[:TITLE_MAX_LENGTH] or f"Template by @{video.author_meta.nickname}"

    trend_data = existing.trend_data.model_copy(deep=True) if existing else TrendDataDTO()
    trend_data.daily_views[today] = video.stats.play_count

    return TemplateDTO(
        id=template_id_for_video(video.id),
        title=title,
        description=video.text,
        category=category,
        source_video_id=video.id,
        author_id=video.author_meta.id,
        author_name=video.author_meta.nickname,
        thumbnail_url=video.video_meta.cover_url,
        video_url=video.video_url,
        stats=TemplateStatsDTO(
            views=video.stats.play_count,
            likes=video.stats.digg_count,
            comments=video.stats.comment_count,
            shares=video.stats.share_count,
            engagement_rate=engagement_rate(video),
        ),
        metadata=TemplateMetadataDTO(
            duration=video.video_meta.duration,
            hashtags=video.hashtags,
            ai_detected_category=analysis.get("category") or "",
        ),
        sections=_sections(analysis.get("sections")),
        analysis=dict(analysis),
        trend_data=trend_data,
        created_by=created_by,
        created_at=existing.created_at if existing else datetime.now(timezone.utc),
    )

"""
Sound extraction from raw video records.

A video yields a candidate sound only when its music metadata carries an
id. The candidate starts life as an emerging sound with a single usage
point for today.
"""

from __future__ import annotations

import logging
from datetime import date
from typing import Any, Mapping

from pydantic import ValidationError as PydanticValidationError

from trendintel.core.enums import LifecycleStage, SoundCategory, TrendCycle
from trendintel.etl.dto import (
    RawVideoDTO,
    SoundDTO,
    SoundLifecycleDTO,
    SoundProvenanceDTO,
    SoundStatsDTO,
    TemplateUsageDTO,
)
from trendintel.etl.errors import ExtractionError

logger = logging.getLogger(__name__)


def parse_video(raw: Mapping[str, Any]) -> RawVideoDTO:
    """
    Parse a raw record into a RawVideoDTO.

    Raises:
        ExtractionError: If the record does not fit the wire shape
    """
    try:
        return RawVideoDTO.model_validate(raw)
    except PydanticValidationError as e:
        raise ExtractionError(
            f"Unparseable video record {raw.get('id', '?')}: {e.error_count()} field error(s)",
            original_error=e,
        ) from e


def extract_sound(video: RawVideoDTO, today: date | None = None) -> SoundDTO | None:
    """
    Derive a candidate sound from a video's music metadata.

    Returns None when the video has no identifiable sound. The candidate is
    not validated here; see trendintel.etl.validation.validate_sound.
    """
    music = video.music
    if music is None or not music.id:
        logger.debug("No identifiable sound on video %s", video.id)
        return None

    today = today or date.today()
    usage_count = music.usage_count
    today_usage = usage_count if usage_count and usage_count > 0 else 1

    try:
        return SoundDTO(
            id=music.id,
            title=music.title,
            author_name=music.author_name,
            play_url=music.play_url,
            cover_thumb=music.cover_thumb,
            cover_medium=music.cover_medium,
            cover_large=music.cover_large,
            duration=music.duration,
            usage_count=usage_count,
            genre=music.genre,
            sound_category=SoundCategory.ORIGINAL if music.original else SoundCategory.MUSIC,
            usage_history={today: today_usage},
            stats=SoundStatsDTO(usage_count=max(usage_count or 0, 0)),
            lifecycle=SoundLifecycleDTO(
                stage=LifecycleStage.EMERGING,
                discovery_date=today,
                last_detected_date=today,
            ),
            trend_cycle=TrendCycle.EMERGING,
        )
    except PydanticValidationError as e:
        raise ExtractionError(
            f"Could not build sound {music.id} from video {video.id}",
            original_error=e,
        ) from e


def merge_sound(
    existing: SoundDTO | None,
    candidate: SoundDTO,
    usage_entry: TemplateUsageDTO,
    provenance: SoundProvenanceDTO,
    today: date,
) -> SoundDTO:
    """
    Fold a freshly extracted candidate into the stored sound (if any).

    New sounds start with the source video as their only template usage.
    Existing sounds gain today's usage point and the source video's usage
    entry, unless that source is already recorded; every other field that
    metrics passes own (stats, lifecycle stage, correlations) is kept.
    """
    if existing is None:
        return candidate.model_copy(
            update={"template_usage": [usage_entry], "metadata": provenance}
        )

    history = dict(existing.usage_history)
    history[today] = candidate.usage_history.get(today, 1)

    template_usage = list(existing.template_usage)
    if all(entry.template_id != usage_entry.template_id for entry in template_usage):
        template_usage.append(usage_entry)

    stats = existing.stats
    if candidate.usage_count is not None:
        stats = stats.model_copy(update={"usage_count": max(candidate.usage_count, 0)})

    return existing.model_copy(
        update={
            "title": candidate.title or existing.title,
            "author_name": candidate.author_name or existing.author_name,
            "play_url": candidate.play_url or existing.play_url,
            "cover_thumb": candidate.cover_thumb or existing.cover_thumb,
            "cover_medium": candidate.cover_medium or existing.cover_medium,
            "cover_large": candidate.cover_large or existing.cover_large,
            "usage_count": (
                candidate.usage_count
                if candidate.usage_count is not None
                else existing.usage_count
            ),
            "usage_history": history,
            "stats": stats,
            "lifecycle": existing.lifecycle.model_copy(
                update={"last_detected_date": today}
            ),
            "template_usage": template_usage,
            "metadata": provenance,
        }
    )

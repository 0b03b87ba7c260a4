"""
Steps shared by the sound and template pipelines.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from trendintel.core.enums import ErrorType
from trendintel.etl.dto import RawVideoDTO
from trendintel.etl.errors import ExtractionError, JobFatalError, normalize_error
from trendintel.etl.extraction import parse_video
from trendintel.etl.jobs import JobProgress, JobResult
from trendintel.etl.run_context import RunContext
from trendintel.etl.validation import validate_video
from trendintel.integrations.apify.video_source import VideoFilter, VideoSource

logger = logging.getLogger(__name__)


@dataclass
class ParsedVideos:
    videos: list[RawVideoDTO] = field(default_factory=list)
    rejected: list[dict[str, str]] = field(default_factory=list)


def fetch_videos(
    source: VideoSource, video_filter: VideoFilter, ctx: RunContext
) -> list[dict[str, Any]]:
    """
    Fetch raw records for a run.

    Raises:
        JobFatalError: If the source fails or returns nothing
    """
    try:
        records = source.fetch(video_filter)
    except Exception as e:
        error = normalize_error(e, phase="extract")
        raise JobFatalError(
            f"Video fetch failed: {error.message}",
            error_type=ErrorType.EXTRACT_ERROR,
            original_error=e,
        ) from e

    if not records:
        raise JobFatalError(
            f"No videos returned from source (mode={video_filter.mode})",
            error_type=ErrorType.EXTRACT_ERROR,
        )

    logger.info(
        "Extracted %d videos",
        len(records),
        extra={"run_id": str(ctx.run_id), "mode": video_filter.mode},
    )
    return records


def parse_valid_videos(
    records: list[dict[str, Any]], progress: JobProgress | None = None
) -> ParsedVideos:
    """
    Validate and parse raw records. Rejected records count as failed.
    """
    parsed = ParsedVideos()
    for index, record in enumerate(records):
        result = validate_video(record)
        raw_id = record.get("id") if isinstance(record, Mapping) else None
        record_id = str(raw_id or f"#{index}")
        if not result:
            logger.info("Skipping invalid video %s: %s", record_id, result.reason)
            parsed.rejected.append({"item_id": record_id, "reason": result.reason})
            if progress is not None:
                progress.record_failed()
            continue

        try:
            parsed.videos.append(parse_video(record))
        except ExtractionError as e:
            parsed.rejected.append({"item_id": record_id, "reason": e.summary()})
            if progress is not None:
                progress.record_failed()

    return parsed


def fold_rejected(result: JobResult, rejected: list[dict[str, str]]) -> JobResult:
    """Count rejected raw records into a scheduler result."""
    result.failed += len(rejected)
    if rejected:
        result.details["invalid_videos"] = len(rejected)
        result.details["failures"] = list(rejected) + list(result.details.get("failures", []))
    return result

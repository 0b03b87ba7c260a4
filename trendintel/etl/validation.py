"""
Structural validation of raw video records and candidate sounds.

Both validators are pure predicates: they never raise, they return a
ValidationResult whose reason explains the first rule that failed.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping

from trendintel.etl.dto import SoundDTO

TITLE_MIN_LENGTH = 2
TITLE_MAX_LENGTH = 200
MAX_SOUND_DURATION_S = 600
MAX_USAGE_COUNT = 1_000_000_000

# Markers left behind by broken scrapes that stringified objects
CORRUPT_TITLE_MARKERS = ("[object Object]", "undefined")


@dataclass(frozen=True)
class ValidationResult:
    valid: bool
    reason: str = ""

    def __bool__(self) -> bool:
        return self.valid


VALID = ValidationResult(valid=True)


def _invalid(reason: str) -> ValidationResult:
    return ValidationResult(valid=False, reason=reason)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _non_empty(value: Any) -> bool:
    if value is None:
        return False
    return bool(str(value).strip())


def validate_video(raw: Mapping[str, Any]) -> ValidationResult:
    """Check that a raw video record has the fields the engine relies on."""
    if not isinstance(raw, Mapping):
        return _invalid("Record is not an object")

    if not _non_empty(raw.get("id")):
        return _invalid("Missing video id")

    author = raw.get("authorMeta")
    if not isinstance(author, Mapping) or not _non_empty(author.get("id")):
        return _invalid("Missing author id")
    if not _non_empty(author.get("nickname")):
        return _invalid("Missing author nickname")

    video_meta = raw.get("videoMeta")
    if not isinstance(video_meta, Mapping) or not _is_number(video_meta.get("duration")):
        return _invalid("Missing or non-numeric duration")

    stats = raw.get("stats")
    if not isinstance(stats, Mapping) or "playCount" not in stats:
        return _invalid("Missing play count")
    play_count = stats.get("playCount")
    if not _is_number(play_count) or play_count < 0:
        return _invalid("Invalid play count")

    return VALID


def validate_sound(sound: SoundDTO) -> ValidationResult:
    """Check a candidate sound before it is merged into the store."""
    if not sound.id or not sound.title:
        return _invalid("Missing required fields (id, title)")

    if not TITLE_MIN_LENGTH <= len(sound.title) <= TITLE_MAX_LENGTH:
        return _invalid("Invalid title length")

    if any(marker in sound.title for marker in CORRUPT_TITLE_MARKERS):
        return _invalid("Title contains suspicious values")

    if sound.duration is not None and not 0 < sound.duration <= MAX_SOUND_DURATION_S:
        return _invalid("Invalid duration")

    if sound.usage_count is not None and not 0 <= sound.usage_count <= MAX_USAGE_COUNT:
        return _invalid("Invalid usage count")

    if not (sound.play_url or sound.cover_thumb or sound.cover_medium or sound.cover_large):
        return _invalid("No media URLs provided")

    return VALID

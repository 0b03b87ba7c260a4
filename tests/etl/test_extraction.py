"""
Sound extraction and merge tests.
"""

from datetime import datetime, timedelta, timezone

import pytest

from trendintel.core.enums import LifecycleStage, Priority, SoundCategory
from trendintel.etl.dto import SoundProvenanceDTO, TemplateUsageDTO
from trendintel.etl.errors import ExtractionError
from trendintel.etl.extraction import extract_sound, merge_sound, parse_video
from tests.helpers.builders import TODAY, raw_video, video

NOW = datetime(2024, 6, 15, 12, tzinfo=timezone.utc)


def _usage(template_id="v1"):
    return TemplateUsageDTO(template_id=template_id, average_engagement=10.0, last_used=NOW)


def _provenance(video_id="v1"):
    return SoundProvenanceDTO(
        extracted_from=video_id,
        extraction_priority=Priority.LOW,
        extraction_reason="Standard processing",
        processing_timestamp=NOW,
    )


class TestParseVideo:
    def test_parses_camel_case_wire_shape(self):
        v = parse_video(raw_video("v9", play_count=42))
        assert v.id == "v9"
        assert v.stats.play_count == 42
        assert v.author_meta.nickname == "creator_v9"
        assert v.music.usage_count == 1_000

    def test_flattens_hashtag_objects(self):
        v = parse_video(raw_video(hashtags=[{"name": "dance"}, "#fyp", {"name": ""}]))
        assert v.hashtags == ["dance", "fyp"]

    def test_unparseable_record_raises_extraction_error(self):
        record = raw_video()
        record["authorMeta"] = "nobody"
        with pytest.raises(ExtractionError):
            parse_video(record)


class TestExtractSound:
    def test_no_music_yields_none(self):
        assert extract_sound(video(music_id=None), today=TODAY) is None

    def test_blank_music_id_yields_none(self):
        assert extract_sound(video(music_id="  "), today=TODAY) is None

    def test_candidate_starts_emerging_with_todays_usage(self):
        candidate = extract_sound(video(usage_count=250), today=TODAY)
        assert candidate.id == "s1"
        assert candidate.usage_history == {TODAY: 250}
        assert candidate.lifecycle.stage == LifecycleStage.EMERGING
        assert candidate.lifecycle.discovery_date == TODAY
        assert candidate.sound_category == SoundCategory.MUSIC

    def test_missing_usage_count_records_one_use(self):
        candidate = extract_sound(video(usage_count=None), today=TODAY)
        assert candidate.usage_history == {TODAY: 1}
        assert candidate.usage_count is None


class TestMergeSound:
    def test_new_sound_gets_single_usage_entry_and_provenance(self):
        candidate = extract_sound(video(), today=TODAY)
        merged = merge_sound(None, candidate, _usage(), _provenance(), TODAY)
        assert [u.template_id for u in merged.template_usage] == ["v1"]
        assert merged.template_usage[0].use_count == 1
        assert merged.metadata.extracted_from == "v1"

    def test_existing_sound_gains_todays_point_and_keeps_history(self):
        yesterday = TODAY - timedelta(days=1)
        first = extract_sound(video(usage_count=100), today=yesterday)
        stored = merge_sound(None, first, _usage("v1"), _provenance("v1"), yesterday)

        candidate = extract_sound(video("v2", usage_count=180), today=TODAY)
        merged = merge_sound(stored, candidate, _usage("v2"), _provenance("v2"), TODAY)

        assert merged.usage_history == {yesterday: 100, TODAY: 180}
        assert [u.template_id for u in merged.template_usage] == ["v1", "v2"]
        assert merged.lifecycle.discovery_date == yesterday

    def test_same_source_is_not_duplicated(self):
        candidate = extract_sound(video(), today=TODAY)
        stored = merge_sound(None, candidate, _usage("v1"), _provenance(), TODAY)
        merged = merge_sound(stored, candidate, _usage("v1"), _provenance(), TODAY)
        assert len(merged.template_usage) == 1

    def test_merge_does_not_mutate_stored_sound(self):
        candidate = extract_sound(video(), today=TODAY)
        stored = merge_sound(None, candidate, _usage("v1"), _provenance(), TODAY)
        merge_sound(stored, candidate, _usage("v2"), _provenance("v2"), TODAY)
        assert len(stored.template_usage) == 1

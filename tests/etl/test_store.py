"""
Entity store tests: in-memory and Django ORM implementations.
"""

import uuid
from datetime import datetime, timezone

import pytest
from pydantic import ValidationError as PydanticValidationError

from trendintel.core.enums import ErrorType, LifecycleStage, Priority
from trendintel.etl.dto import (
    SoundDTO,
    SoundProvenanceDTO,
    SoundStatsDTO,
    TemplateDTO,
    TopSoundsDTO,
    TrendReportDTO,
)
from trendintel.etl.errors import ETLError
from trendintel.etl.store import (
    DjangoReportStore,
    DjangoSoundStore,
    DjangoTemplateStore,
    InMemoryEntityStore,
    get_path,
    set_path,
)
from tests.helpers.builders import TODAY, history, sound, template


def report(report_id=None, **overrides):
    data = {
        "id": report_id or str(uuid.uuid4()),
        "date": TODAY,
        "top_sounds": TopSoundsDTO(daily=("s1", "s2"), weekly=("s2",), monthly=()),
        "emerging_sounds": ("s3",),
        "genre_distribution": {"pop": 2},
        "created_at": datetime(2024, 6, 15, 12, tzinfo=timezone.utc),
    }
    data.update(overrides)
    return TrendReportDTO(**data)


class TestPathHelpers:
    def test_get_path(self):
        data = {"stats": {"usage_count": 5}}
        assert get_path(data, "stats.usage_count") == 5
        assert get_path(data, "stats.missing", "x") == "x"
        assert get_path(data, "title.length") is None

    def test_set_path_requires_existing_keys(self):
        data = {"stats": {"usage_count": 5}}
        set_path(data, "stats.usage_count", 9)
        assert data == {"stats": {"usage_count": 9}}

        with pytest.raises(ValueError):
            set_path(data, "stats.nope", 1)
        with pytest.raises(ValueError):
            set_path(data, "nope.usage_count", 1)


class TestInMemoryEntityStore:
    def test_put_get_roundtrip(self):
        sounds = InMemoryEntityStore(SoundDTO)
        original = sound("s1")
        sounds.put(original)

        assert sounds.get("s1") == original
        assert sounds.get("missing") is None

    def test_returned_entities_are_copies(self):
        sounds = InMemoryEntityStore(SoundDTO)
        sounds.put(sound("s1"))

        fetched = sounds.get("s1")
        fetched.related_templates.append("t9")
        assert sounds.get("s1").related_templates == []

    def test_put_replaces(self):
        sounds = InMemoryEntityStore(SoundDTO)
        sounds.put(sound("s1", genre="pop"))
        sounds.put(sound("s1", genre="rock"))

        assert len(sounds) == 1
        assert sounds.get("s1").genre == "rock"

    def test_update_dotted_paths(self):
        sounds = InMemoryEntityStore(SoundDTO)
        sounds.put(sound("s1"))

        updated = sounds.update(
            "s1",
            {"stats.growth_velocity_7d": 12.5, "lifecycle.stage": LifecycleStage.PEAKING},
        )

        assert updated.stats.growth_velocity_7d == 12.5
        assert sounds.get("s1").lifecycle.stage == LifecycleStage.PEAKING

    def test_update_revalidates(self):
        sounds = InMemoryEntityStore(SoundDTO)
        sounds.put(sound("s1"))
        with pytest.raises(PydanticValidationError):
            # peak_date must be a usage_history date
            sounds.update("s1", {"stats.peak_date": TODAY.replace(year=2020)})
        assert sounds.get("s1").stats.peak_date is None

    def test_update_missing_entity(self):
        sounds = InMemoryEntityStore(SoundDTO)
        with pytest.raises(ETLError) as excinfo:
            sounds.update("nope", {"genre": "pop"})
        assert excinfo.value.error_type == ErrorType.LOAD_ERROR

    def test_update_unknown_path(self):
        sounds = InMemoryEntityStore(SoundDTO)
        sounds.put(sound("s1"))
        with pytest.raises(ValueError):
            sounds.update("s1", {"stats.bogus": 1})

    def test_query_by_field(self):
        sounds = InMemoryEntityStore(SoundDTO)
        sounds.put(sound("s1", stage=LifecycleStage.PEAKING))
        sounds.put(sound("s2", stage=LifecycleStage.EMERGING))
        sounds.put(sound("s3", stage=LifecycleStage.PEAKING))

        peaking = sounds.query_by_field("lifecycle.stage", "peaking")
        assert [s.id for s in peaking] == ["s1", "s3"]
        assert len(sounds.query_by_field("lifecycle.stage", "peaking", limit=1)) == 1

    def test_query_top_by_metric(self):
        sounds = InMemoryEntityStore(SoundDTO)
        sounds.put(sound("slow", velocity_7d=1.0))
        sounds.put(sound("fast", velocity_7d=9.0))
        sounds.put(sound("mid", velocity_7d=5.0))
        sounds.put(sound("also-mid", velocity_7d=5.0))

        top = sounds.query_top_by_metric("stats.growth_velocity_7d", limit=3)
        assert [s.id for s in top] == ["fast", "mid", "also-mid"]

    def test_query_top_by_unknown_metric(self):
        sounds = InMemoryEntityStore(SoundDTO)
        sounds.put(sound("s1"))
        with pytest.raises(ValueError):
            sounds.query_top_by_metric("stats.nope", limit=3)

    def test_list_limit(self):
        templates = InMemoryEntityStore(TemplateDTO)
        for template_id in "abc":
            templates.put(template(template_id))
        assert [t.id for t in templates.list(2)] == ["a", "b"]
        assert len(templates.list()) == 3


class TestImmutableStore:
    def test_report_cannot_be_overwritten(self):
        reports = InMemoryEntityStore(TrendReportDTO, immutable=True)
        first = report("r1")
        reports.put(first)

        with pytest.raises(ETLError) as excinfo:
            reports.put(report("r1", genre_distribution={}))
        assert excinfo.value.error_type == ErrorType.IMMUTABLE_RECORD
        assert reports.get("r1") == first

    def test_report_cannot_be_updated(self):
        reports = InMemoryEntityStore(TrendReportDTO, immutable=True)
        reports.put(report("r1"))
        with pytest.raises(ETLError) as excinfo:
            reports.update("r1", {"genre_distribution": {}})
        assert excinfo.value.error_type == ErrorType.IMMUTABLE_RECORD


@pytest.mark.django_db
class TestDjangoSoundStore:
    def test_roundtrip(self):
        store = DjangoSoundStore()
        original = sound(
            "s1",
            usage_history=history(10, 20, 40),
            genre="pop",
            stage=LifecycleStage.GROWING,
            velocity_7d=4.5,
            related_templates=["t1", "t2"],
            metadata=SoundProvenanceDTO(
                extracted_from="v1",
                extraction_priority=Priority.HIGH,
                extraction_reason="trending",
                processing_timestamp=datetime(2024, 6, 15, tzinfo=timezone.utc),
            ),
        )
        store.put(original)

        loaded = store.get("s1")
        assert loaded.usage_history == original.usage_history
        assert loaded.stats.growth_velocity_7d == 4.5
        assert loaded.lifecycle.stage == LifecycleStage.GROWING
        assert loaded.related_templates == ["t1", "t2"]
        assert loaded.metadata.extracted_from == "v1"
        assert loaded.genre == "pop"

    def test_source_usage_count_kept_apart_from_stats(self):
        store = DjangoSoundStore()
        store.put(sound("s-none", usage_count=None, stats=SoundStatsDTO(usage_count=7)))
        store.put(sound("s-raw", usage_count=1_500, stats=SoundStatsDTO(usage_count=9)))

        missing = store.get("s-none")
        assert missing.usage_count is None
        assert missing.stats.usage_count == 7

        reported = store.get("s-raw")
        assert reported.usage_count == 1_500
        assert reported.stats.usage_count == 9

    def test_put_upserts(self):
        store = DjangoSoundStore()
        store.put(sound("s1", genre="pop"))
        store.put(sound("s1", genre="rock"))

        assert len(store.list()) == 1
        assert store.get("s1").genre == "rock"

    def test_update_dotted_path(self):
        store = DjangoSoundStore()
        store.put(sound("s1"))
        store.update("s1", {"lifecycle.stage": LifecycleStage.DECLINING})
        assert store.get("s1").lifecycle.stage == LifecycleStage.DECLINING

    def test_query_by_stage_and_top_by_velocity(self):
        store = DjangoSoundStore()
        store.put(sound("s1", stage=LifecycleStage.PEAKING, velocity_7d=1.0))
        store.put(sound("s2", stage=LifecycleStage.EMERGING, velocity_7d=8.0))
        store.put(sound("s3", stage=LifecycleStage.PEAKING, velocity_7d=3.0))

        assert {s.id for s in store.query_by_field("lifecycle.stage", "peaking")} == {"s1", "s3"}
        top = store.query_top_by_metric("stats.growth_velocity_7d", limit=2)
        assert [s.id for s in top] == ["s2", "s3"]

    def test_unqueryable_field(self):
        with pytest.raises(ValueError):
            DjangoSoundStore().query_by_field("template_usage", [])


@pytest.mark.django_db
class TestDjangoTemplateStore:
    def test_roundtrip(self):
        store = DjangoTemplateStore()
        store.put(
            template(
                "t1",
                source_video_id="v1",
                daily_views=history(100, 150),
                velocity_score=12.0,
                analysis={"category": "dance"},
            )
        )

        loaded = store.get("t1")
        assert loaded.source_video_id == "v1"
        assert loaded.trend_data.daily_views == history(100, 150)
        assert loaded.trend_data.velocity_score == 12.0
        assert [s.type for s in loaded.sections] == ["intro", "content", "outro"]
        assert loaded.analysis == {"category": "dance"}
        assert loaded.created_at is not None

    def test_query_by_source_video(self):
        store = DjangoTemplateStore()
        store.put(template("t1", source_video_id="v1"))
        store.put(template("t2", source_video_id="v2"))
        assert [t.id for t in store.query_by_field("source_video_id", "v2")] == ["t2"]


@pytest.mark.django_db
class TestDjangoReportStore:
    def test_roundtrip(self):
        store = DjangoReportStore()
        original = report()
        store.put(original)

        loaded = store.get(original.id)
        assert loaded.id == original.id
        assert loaded.date == TODAY
        assert loaded.top_sounds == original.top_sounds
        assert loaded.emerging_sounds == ("s3",)
        assert loaded.genre_distribution == {"pop": 2}

    def test_reports_are_immutable(self):
        store = DjangoReportStore()
        original = report()
        store.put(original)

        with pytest.raises(ETLError) as excinfo:
            store.put(report(original.id, genre_distribution={}))
        assert excinfo.value.error_type == ErrorType.IMMUTABLE_RECORD

        with pytest.raises(ETLError):
            store.update(original.id, {"genre_distribution": {}})
        assert store.get(original.id).genre_distribution == {"pop": 2}

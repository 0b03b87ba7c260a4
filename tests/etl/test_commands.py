"""
Management command tests.

Commands read videos from JSON fixtures written to tmp_path, so no
provider is contacted.
"""

import json
from io import StringIO

import pytest
from django.core.management import call_command
from django.core.management.base import CommandError

from trendintel.core.enums import JobStatus
from trendintel.etl.models import EtlJob, Sound, Template, TrendReport
from trendintel.etl.store import DjangoSoundStore, DjangoTemplateStore
from tests.helpers.builders import raw_video, sound, template


@pytest.fixture
def fixture_file(tmp_path):
    """Write records to a fixture file and return its path."""

    def write(records, name="videos.json"):
        path = tmp_path / name
        path.write_text(json.dumps(records), encoding="utf-8")
        return str(path)

    return write


def sound_records():
    return [
        raw_video("v1", music_id="s1"),
        raw_video("v2", music_id="s2", hashtags=[{"name": "dance"}]),
        raw_video("v3", music_id="s1"),
    ]


class TestEtlSoundsCommand:
    def test_dry_run(self, fixture_file):
        out = StringIO()
        call_command("etl_sounds", "--dry-run", f"--fixture={fixture_file(sound_records())}", stdout=out)

        output = out.getvalue()
        assert "Dry run" in output
        assert "Stored: 2" in output
        assert "Skipped: 1" in output
        assert "low=2" in output
        assert "Sound ETL complete" in output

    @pytest.mark.django_db
    def test_persists_sounds_and_job(self, fixture_file):
        out = StringIO()
        call_command("etl_sounds", f"--fixture={fixture_file(sound_records())}", "--batch-size=2", stdout=out)

        assert set(Sound.objects.values_list("id", flat=True)) == {"s1", "s2"}
        assert TrendReport.objects.count() == 1
        job = EtlJob.objects.get()
        assert job.status == JobStatus.COMPLETED
        assert job.result_json["processed"] == 2

    @pytest.mark.django_db
    def test_hashtag_filter(self, fixture_file):
        out = StringIO()
        call_command("etl_sounds", "--hashtag=dance", f"--fixture={fixture_file(sound_records())}", stdout=out)

        assert list(Sound.objects.values_list("id", flat=True)) == ["s2"]

    @pytest.mark.django_db
    def test_link_and_update_stats(self, fixture_file):
        DjangoTemplateStore().put(template("t1", source_video_id="v1"))
        out = StringIO()
        call_command(
            "etl_sounds",
            f"--fixture={fixture_file(sound_records())}",
            "--link-templates",
            "--update-stats",
            stdout=out,
        )

        output = out.getvalue()
        assert "Linked: 1 sounds" in output
        assert "Usage refreshed" in output
        assert DjangoSoundStore().get("s1").related_templates == ["t1"]

    def test_empty_fixture_fails(self, fixture_file):
        with pytest.raises(CommandError, match="Sound ETL failed"):
            call_command("etl_sounds", "--dry-run", f"--fixture={fixture_file([])}", stdout=StringIO())


class TestEtlTemplatesCommand:
    def test_dry_run_heuristic(self, fixture_file):
        records = [raw_video("v1", play_count=50_000, like_count=5_000), raw_video("v2")]
        out = StringIO()
        call_command(
            "etl_templates", "--dry-run", "--heuristic", f"--fixture={fixture_file(records)}", stdout=out
        )

        output = out.getvalue()
        assert "Processed: 1" in output
        assert "Skipped: 1" in output
        assert "Template ETL complete" in output

    @pytest.mark.django_db
    def test_category_run_persists(self, fixture_file):
        records = [raw_video("v1", play_count=50_000, like_count=5_000, hashtags=[{"name": "gym"}])]
        call_command(
            "etl_templates", "--heuristic", "--category=gym", f"--fixture={fixture_file(records)}", stdout=StringIO()
        )

        stored = Template.objects.get()
        assert stored.category == "gym"
        assert stored.ai_detected_category == "fitness"

    def test_video_ids(self, fixture_file):
        records = [raw_video("v1"), raw_video("v2")]
        out = StringIO()
        call_command(
            "etl_templates",
            "--dry-run",
            "--heuristic",
            "--video-ids=v1, v9",
            "--batch-size=1",
            f"--fixture={fixture_file(records)}",
            stdout=out,
        )

        output = out.getvalue()
        assert "Analyzing 2 videos..." in output
        assert "Processed: 1" in output
        assert "Failed: 1" in output

    @pytest.mark.django_db
    def test_update_metrics(self):
        DjangoTemplateStore().put(template("t1"))
        DjangoTemplateStore().put(template("t2"))
        out = StringIO()
        call_command("etl_templates", "--update-metrics", "--heuristic", stdout=out)

        assert "Processed: 2" in out.getvalue()
        assert DjangoTemplateStore().get("t1").trend_data.similar_templates == ["t2"]


@pytest.mark.django_db
class TestEtlSimilarCommand:
    def test_lists_pairs(self):
        templates = DjangoTemplateStore()
        templates.put(template("a"))
        templates.put(template("b"))
        out = StringIO()

        call_command("etl_similar", "--category=dance", stdout=out)

        output = out.getvalue()
        assert "1.00  a ~ b  [dance]" in output
        assert "Found 1 similar pairs, showing 1" in output

    def test_rejects_out_of_range_threshold(self):
        with pytest.raises(CommandError):
            call_command("etl_similar", "--min-similarity=1.5", stdout=StringIO())


@pytest.mark.django_db
class TestEtlReportCommand:
    def test_generates_report(self):
        DjangoSoundStore().put(sound("s1", genre="pop", velocity_7d=3.0))
        out = StringIO()

        call_command("etl_report", "--recalculate", stdout=out)

        output = out.getvalue()
        assert "Metrics updated: 0 (1 without enough history)" in output
        assert "Daily top: s1" in output
        assert "pop: 1" in output
        assert TrendReport.objects.count() == 1

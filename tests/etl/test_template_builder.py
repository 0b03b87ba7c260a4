"""
Template builder tests.
"""

from datetime import datetime, timedelta, timezone

import pytest

from trendintel.etl.sanitize import sanitize_analysis
from trendintel.etl.template_builder import build_template, engagement_rate, template_id_for_video
from tests.helpers.builders import TODAY, template, video


class TestTemplateId:
    def test_deterministic_per_video(self):
        assert template_id_for_video("v1") == template_id_for_video("v1")
        assert template_id_for_video("v1") != template_id_for_video("v2")


class TestEngagementRate:
    def test_percentage_of_plays(self):
        assert engagement_rate(video()) == pytest.approx(11.5)

    def test_no_plays(self):
        assert engagement_rate(video(play_count=0)) == 0.0


class TestBuildTemplate:
    def test_from_analysis(self):
        subject = video(play_count=50_000, like_count=5_000)
        analysis = sanitize_analysis({"category": "dance", "sections": [{"type": "hook", "duration": 2}]})

        built = build_template(subject, analysis, today=TODAY)

        assert built.id == template_id_for_video("v1")
        assert built.category == "dance"
        assert built.metadata.ai_detected_category == "dance"
        assert built.source_video_id == "v1"
        assert built.title == subject.text
        assert built.stats.views == 50_000
        assert built.metadata.hashtags == ["summer", "vlog"]
        assert built.trend_data.daily_views == {TODAY: 50_000}
        assert [s.type for s in built.sections] == ["hook"]
        assert built.created_at is not None

    def test_explicit_category_wins(self):
        built = build_template(video(), {"category": "dance"}, category="fitness", today=TODAY)
        assert built.category == "fitness"
        assert built.metadata.ai_detected_category == "dance"

    def test_default_category(self):
        assert build_template(video(), sanitize_analysis({}), today=TODAY).category == "Trending"

    def test_title_fallbacks(self):
        long_text = "x" * 150
        assert len(build_template(video(text=long_text), {}, today=TODAY).title) == 100
        assert build_template(video(text=""), {}, today=TODAY).title == "Template by @creator_v1"

    def test_section_aliases_and_malformed_entries(self):
        analysis = {
            "sections": [
                {"type": "hook", "startTime": 1.5, "duration": 2},
                "not a section",
                {"type": "broken", "duration": "long"},
            ]
        }
        built = build_template(video(), analysis, today=TODAY)

        [section] = built.sections
        assert section.type == "hook"
        assert section.start_time == 1.5

    def test_refresh_keeps_history_and_created_at(self):
        yesterday = TODAY - timedelta(days=1)
        created = datetime(2024, 1, 1, tzinfo=timezone.utc)
        existing = template(
            template_id_for_video("v1"),
            daily_views={yesterday: 20_000},
            created_at=created,
        )

        built = build_template(video(play_count=30_000), {}, existing=existing, today=TODAY)

        assert built.trend_data.daily_views == {yesterday: 20_000, TODAY: 30_000}
        assert built.created_at == created
        # The stored entity is untouched
        assert existing.trend_data.daily_views == {yesterday: 20_000}

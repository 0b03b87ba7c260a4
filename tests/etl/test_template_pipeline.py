"""
Template ETL pipeline tests.
"""

from datetime import timedelta

import pytest

from trendintel.core.enums import ErrorType, JobStatus, JobType
from trendintel.etl.config import EtlConfig
from trendintel.etl.errors import JobFatalError
from trendintel.etl.pipelines import TemplateEtlPipeline
from trendintel.etl.template_builder import template_id_for_video
from trendintel.integrations.apify import ApifyError
from trendintel.integrations.apify.video_source import VideoFilter
from trendintel.integrations.llm import LLMCallError
from tests.helpers.builders import TODAY, raw_video, template
from tests.helpers.fakes import FakeAnalyzer, FakeVideoSource, RecordingSleep

YESTERDAY = TODAY - timedelta(days=1)


def make_pipeline(store, tracker, etl_config, records=None, analyzer=None):
    source = FakeVideoSource(records)
    pipeline = TemplateEtlPipeline(
        store,
        source,
        analyzer or FakeAnalyzer(),
        tracker,
        config=etl_config,
        sleep=RecordingSleep(),
        today=lambda: TODAY,
    )
    return pipeline, source


def popular(video_id, **kwargs):
    return raw_video(video_id, play_count=50_000, like_count=5_000, **kwargs)


class TestProcessWithAi:
    def test_trending_pass(self, store, tracker, etl_config):
        records = [
            popular("v1"),
            raw_video("v2", play_count=100),
            raw_video("v3", stats={}),
        ]
        pipeline, source = make_pipeline(store, tracker, etl_config, records)

        result = pipeline.process_trending_with_ai(max_items=20)

        assert (result.processed, result.skipped, result.failed) == (1, 1, 1)
        assert source.filters == [VideoFilter(mode="trending", max_items=20)]
        stored = store.templates.get(template_id_for_video("v1"))
        assert stored.category == "lifestyle"
        assert stored.analysis["analysis"]["engagement_insights"]
        job = tracker.get_job(result.job_id)
        assert job.job_type == JobType.AI_TRENDING
        assert job.status == JobStatus.COMPLETED

    def test_category_pass_keeps_detected_category(self, store, tracker, etl_config):
        pipeline, source = make_pipeline(store, tracker, etl_config, [popular("v1")])

        result = pipeline.process_category_with_ai("fitness", max_items=5)

        assert source.filters == [VideoFilter(mode="category", query="fitness", max_items=5)]
        stored = store.templates.get(result.output_ids[0])
        assert stored.category == "fitness"
        assert stored.metadata.ai_detected_category == "lifestyle"

    def test_analyzer_failure_is_per_item(self, store, tracker, etl_config):
        analyzer = FakeAnalyzer(failures={"v1": LLMCallError("rate limited")})
        pipeline, _ = make_pipeline(
            store, tracker, etl_config, [popular("v1"), popular("v2")], analyzer=analyzer
        )

        result = pipeline.process_trending_with_ai()

        assert result.processed == 1
        assert result.failed == 1
        assert tracker.get_job(result.job_id).status == JobStatus.COMPLETED

    def test_rerun_refreshes_existing_template(self, store, tracker, etl_config):
        pipeline, _ = make_pipeline(store, tracker, etl_config, [popular("v1")])
        pipeline.process_trending_with_ai()
        first = store.templates.get(template_id_for_video("v1"))

        pipeline.process_trending_with_ai()

        assert len(store.templates.list()) == 1
        assert store.templates.get(first.id).created_at == first.created_at

    def test_empty_fetch_is_fatal(self, store, tracker, etl_config):
        pipeline, _ = make_pipeline(store, tracker, etl_config, [])
        with pytest.raises(JobFatalError):
            pipeline.process_trending_with_ai()
        assert tracker.list_jobs()[0].status == JobStatus.FAILED


class UnreachableVideos(FakeVideoSource):
    """Fails the fetch for selected video ids."""

    def __init__(self, records, unreachable_ids):
        super().__init__(records)
        self.unreachable_ids = set(unreachable_ids)

    def fetch(self, video_filter):
        if video_filter.query in self.unreachable_ids:
            raise ApifyError("actor run failed", status_code=502)
        return super().fetch(video_filter)


class TestProcessBatchVideos:
    def test_fetches_each_id_and_counts_missing_as_failed(self, store, tracker):
        config = EtlConfig(batch_size=10, inter_batch_delay_seconds=0.5, max_workers=1)
        records = [raw_video("v1"), popular("v2"), raw_video("v-bad", stats={})]
        pipeline, source = make_pipeline(store, tracker, config, records)

        result = pipeline.process_batch_videos(["v1", "missing", "v2", "v-bad"], batch_size=1)

        assert (result.processed, result.failed, result.skipped) == (2, 2, 0)
        assert result.details["requested"] == 4
        assert result.details["failures"] == [
            {"item_id": "missing", "reason": "Video not found"},
            {"item_id": "v-bad", "reason": "Missing play count"},
        ]
        assert source.filters == [
            VideoFilter(mode="video", query=video_id, max_items=1)
            for video_id in ["v1", "missing", "v2", "v-bad"]
        ]
        # Below the engagement floor, still analyzed when asked for explicitly
        assert store.templates.get(template_id_for_video("v1")) is not None
        assert pipeline.sleep.calls == [0.5]
        job = tracker.get_job(result.job_id)
        assert job.job_type == JobType.AI_BATCH
        assert job.status == JobStatus.COMPLETED

    def test_fetch_failure_is_isolated(self, store, tracker, etl_config):
        source = UnreachableVideos([popular("v1"), popular("v2")], unreachable_ids={"v2"})
        pipeline = TemplateEtlPipeline(
            store, source, FakeAnalyzer(), tracker, config=etl_config, today=lambda: TODAY
        )

        result = pipeline.process_batch_videos(["v1", "v2"])

        assert (result.processed, result.failed) == (1, 1)
        [failure] = result.details["failures"]
        assert failure["item_id"] == "v2"
        assert failure["reason"].startswith("transient_io_error: ApifyError")

    def test_analyzer_failure_is_isolated(self, store, tracker, etl_config):
        analyzer = FakeAnalyzer(failures={"v2": LLMCallError("provider down")})
        pipeline, _ = make_pipeline(
            store, tracker, etl_config, [popular("v1"), popular("v2")], analyzer=analyzer
        )

        result = pipeline.process_batch_videos(["v1", "v2"])

        assert (result.processed, result.failed) == (1, 1)
        assert result.output_ids == [template_id_for_video("v1")]

    def test_repeated_id_is_analyzed_once(self, store, tracker, etl_config):
        analyzer = FakeAnalyzer()
        pipeline, _ = make_pipeline(store, tracker, etl_config, [popular("v1")], analyzer=analyzer)

        result = pipeline.process_batch_videos(["v1", "v1"])

        assert (result.processed, result.skipped) == (1, 1)
        assert analyzer.calls == ["v1"]

    def test_rejects_empty_batches(self, store, tracker, etl_config):
        pipeline, _ = make_pipeline(store, tracker, etl_config, [popular("v1")])
        with pytest.raises(ValueError):
            pipeline.process_batch_videos(["v1"], batch_size=0)
        assert tracker.list_jobs() == []


class TestTemplateMetrics:
    def test_update_single_template(self, store, tracker, etl_config):
        store.templates.put(template("t1", daily_views={YESTERDAY: 100, TODAY: 150}, growth_rate=10))
        store.templates.put(template("t2"))
        store.templates.put(template("t3", category="comedy"))
        pipeline, _ = make_pipeline(store, tracker, etl_config)

        result = pipeline.update_template_metrics("t1")

        assert result.output_ids == ["t1"]
        trend = store.templates.get("t1").trend_data
        assert trend.velocity_score == 50.0
        assert trend.daily_growth == 50.0
        assert trend.weekly_growth == 10.0
        assert trend.similar_templates == ["t2"]

    def test_missing_template_fails_job(self, store, tracker, etl_config):
        pipeline, _ = make_pipeline(store, tracker, etl_config)

        with pytest.raises(JobFatalError) as excinfo:
            pipeline.update_template_metrics("ghost")

        assert excinfo.value.error_type == ErrorType.LOAD_ERROR
        [job] = tracker.list_jobs()
        assert job.status == JobStatus.FAILED

    def test_update_all(self, store, tracker, etl_config):
        for template_id in ("t1", "t2", "t3"):
            store.templates.put(template(template_id))
        pipeline, _ = make_pipeline(store, tracker, etl_config)

        result = pipeline.update_all_template_metrics(limit=2)

        assert result.output_ids == ["t1", "t2"]
        assert store.templates.get("t1").trend_data.similar_templates == ["t2", "t3"]


class TestFindAllSimilarTemplates:
    @pytest.fixture
    def corpus(self, store):
        for template_id in ("a", "b", "c"):
            store.templates.put(template(template_id))
        store.templates.put(template("d", category="comedy"))
        return store

    def test_category_scan(self, corpus, tracker, etl_config):
        pipeline, _ = make_pipeline(corpus, tracker, etl_config)

        found = pipeline.find_all_similar_templates(category="dance", max_results=1)

        assert found.total_pairs == 3
        assert len(found.pairs) == 1
        assert found.pairs[0].score == 1.0
        assert found.job.processed == 3
        assert tracker.get_job(found.job.job_id).job_type == JobType.TEMPLATE_SIMILARITY

    def test_corpus_scan(self, corpus, tracker, etl_config):
        pipeline, _ = make_pipeline(corpus, tracker, etl_config)
        found = pipeline.find_all_similar_templates(max_results=20)
        assert found.total_pairs == 6

    def test_threshold(self, corpus, tracker, etl_config):
        corpus.templates.put(template("far", duration=60, hashtags=["x"], section_types=["content"]))
        pipeline, _ = make_pipeline(corpus, tracker, etl_config)

        found = pipeline.find_all_similar_templates(min_similarity=0.9)

        assert all("far" not in (pair.id_a, pair.id_b) for pair in found.pairs)


class TestDetectTrendingTemplates:
    def test_ranks_and_backfills_velocity(self, store, tracker, etl_config):
        store.templates.put(template("stored", daily_views={TODAY: 10}, velocity_score=20.0, growth_rate=3.0))
        store.templates.put(template("computed", daily_views={YESTERDAY: 100, TODAY: 150}, growth_rate=10))
        store.templates.put(template("slow", daily_views={YESTERDAY: 100, TODAY: 101}))
        store.templates.put(template("no-views"))
        pipeline, _ = make_pipeline(store, tracker, etl_config)

        detected = pipeline.detect_trending_templates(window="7d", min_velocity=5.0, limit=10)

        assert [t.template.id for t in detected.templates] == ["computed", "stored"]
        assert [t.velocity_score for t in detected.templates] == [50.0, 20.0]
        assert detected.templates[1].growth_rate == 3.0
        assert detected.job.skipped == 1
        backfilled = store.templates.get("computed").trend_data
        assert backfilled.velocity_score == 50.0
        assert backfilled.growth_rate == 10.0
        assert store.templates.get("slow").trend_data.velocity_score == 0.0

    def test_limit(self, store, tracker, etl_config):
        store.templates.put(template("a", daily_views={TODAY: 1}, velocity_score=30.0))
        store.templates.put(template("b", daily_views={TODAY: 1}, velocity_score=40.0))
        pipeline, _ = make_pipeline(store, tracker, etl_config)

        detected = pipeline.detect_trending_templates(limit=1)

        assert [t.template.id for t in detected.templates] == ["b"]
        assert detected.job.output_ids == ["b"]

    def test_unknown_window(self, store, tracker, etl_config):
        pipeline, _ = make_pipeline(store, tracker, etl_config)
        with pytest.raises(ValueError):
            pipeline.detect_trending_templates(window="2w")

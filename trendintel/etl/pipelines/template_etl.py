"""
AI template ETL pipeline.

process_trending_with_ai / process_category_with_ai:
fetch -> validate -> prioritize -> schedule (engagement floor, analyze,
sanitize, build template, store).
process_batch_videos runs the same steps over an explicit list of video
ids, fetched one at a time, without the engagement floor.

The metrics passes refresh template velocity and similar templates;
find_all_similar_templates and detect_trending_templates are read-mostly
scans over the stored corpus.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from datetime import date
from typing import Any

from trendintel.core.enums import ErrorType, JobType
from trendintel.etl.analyzer import ContentAnalyzer
from trendintel.etl.config import EtlConfig, load_etl_config
from trendintel.etl.dto import TemplateDTO
from trendintel.etl.errors import JobFatalError, RunCancelledError, normalize_error
from trendintel.etl.jobs import JobHandle, JobOrchestrator, JobResult, JobTracker
from trendintel.etl.observability import log_etl_event
from trendintel.etl.pipelines.common import fetch_videos, fold_rejected, parse_valid_videos
from trendintel.etl.prioritization import prioritize
from trendintel.etl.run_context import TriggerSource
from trendintel.etl.scheduler import BatchScheduler, RunState, TemplateItemProcessor
from trendintel.etl.similarity import SimilarityEngine, SimilarityPair
from trendintel.etl.store import TrendStore
from trendintel.etl.velocity import estimate_template_velocity
from trendintel.integrations.apify.video_source import VideoFilter, VideoSource

logger = logging.getLogger(__name__)

COMPONENT = "template_etl"

SIMILAR_TEMPLATES_TOP_N = 5
CATEGORY_SCAN_LIMIT = 100
CORPUS_SCAN_LIMIT = 200
TRENDING_SCAN_LIMIT = 100
TIME_WINDOWS = {"1d": 1, "7d": 7, "30d": 30}


@dataclass
class SimilarTemplatesResult:
    pairs: list[SimilarityPair]
    total_pairs: int
    job: JobResult


@dataclass(frozen=True)
class TrendingTemplate:
    template: TemplateDTO
    velocity_score: float
    growth_rate: float


@dataclass
class TrendingTemplatesResult:
    window: str
    templates: list[TrendingTemplate] = field(default_factory=list)
    job: JobResult = field(default_factory=JobResult)


class TemplateEtlPipeline:
    def __init__(
        self,
        store: TrendStore,
        video_source: VideoSource,
        analyzer: ContentAnalyzer,
        tracker: JobTracker,
        config: EtlConfig | None = None,
        sleep: Callable[[float], None] = time.sleep,
        today: Callable[[], date] = date.today,
        trigger_source: TriggerSource = "manual",
    ):
        self.store = store
        self.video_source = video_source
        self.analyzer = analyzer
        self.config = config or load_etl_config()
        self.sleep = sleep
        self.today = today
        self.orchestrator = JobOrchestrator(tracker, trigger_source)
        self.similarity = SimilarityEngine(
            store.templates, max_candidates=self.config.similarity_max_candidates
        )

    # -------------------------------------------------------------------------
    # AI passes
    # -------------------------------------------------------------------------

    def process_trending_with_ai(
        self, max_items: int = 30, cancel_event: threading.Event | None = None
    ) -> JobResult:
        """
        Turn trending videos into analyzed templates.

        Raises:
            JobFatalError: If no videos could be fetched
        """
        return self._process_with_ai(
            "process_trending_with_ai",
            VideoFilter(mode="trending", max_items=max_items),
            category=None,
            cancel_event=cancel_event,
        )

    def process_category_with_ai(
        self,
        category: str,
        max_items: int = 30,
        cancel_event: threading.Event | None = None,
    ) -> JobResult:
        """
        Like process_trending_with_ai, for one category.

        Templates are stored under `category`; the analyzer's own category
        is kept as metadata.ai_detected_category.
        """
        return self._process_with_ai(
            "process_category_with_ai",
            VideoFilter(mode="category", query=category, max_items=max_items),
            category=category,
            cancel_event=cancel_event,
        )

    def _process_with_ai(
        self,
        name: str,
        video_filter: VideoFilter,
        category: str | None,
        cancel_event: threading.Event | None,
    ) -> JobResult:
        def work(handle: JobHandle) -> JobResult:
            records = fetch_videos(
                self.video_source, video_filter, handle.context.with_step("extract")
            )
            parsed = parse_valid_videos(records, handle.progress)
            prioritized = prioritize(parsed.videos, self._known_template_video_ids())

            log_etl_event(
                handle.context.with_step("transform"),
                COMPONENT,
                name,
                "start",
                extra={"videos": len(prioritized), "invalid_videos": len(parsed.rejected)},
            )

            scheduler = BatchScheduler(
                TemplateItemProcessor(self.store.templates, self.analyzer, category=category),
                batch_size=self.config.batch_size,
                inter_batch_delay=self.config.inter_batch_delay_seconds,
                max_workers=self.config.max_workers,
                sleep=self.sleep,
            )
            try:
                run = scheduler.run(
                    prioritized,
                    progress=handle.progress,
                    cancel_event=handle.cancel_event,
                    state=RunState(today=self.today()),
                )
            except RunCancelledError as e:
                if e.partial_result is not None:
                    fold_rejected(e.partial_result, parsed.rejected)
                raise

            result = fold_rejected(run.as_job_result(), parsed.rejected)
            result.details["fetched"] = len(records)
            result.message = (
                f"Created {run.stored} templates from {len(records)} videos "
                f"({result.failed} failed, {result.skipped} skipped)"
            )
            return result

        return self.orchestrator.run_job(
            name,
            JobType.AI_TRENDING,
            work,
            parameters={
                "mode": video_filter.mode,
                "category": category,
                "max_items": video_filter.max_items,
            },
            cancel_event=cancel_event,
        )

    def process_batch_videos(
        self,
        video_ids: Sequence[str],
        batch_size: int = 5,
        cancel_event: threading.Event | None = None,
    ) -> JobResult:
        """
        Analyze an explicit list of videos into templates.

        Each id is fetched on its own; ids that cannot be fetched, are not
        found or fail validation count as failed. There is no engagement
        floor for explicitly requested videos.

        Raises:
            ValueError: If batch_size is less than 1
        """
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")

        def work(handle: JobHandle) -> JobResult:
            ctx = handle.context.with_step("extract")
            records = []
            missing: list[dict[str, str]] = []
            for video_id in video_ids:
                record, reason = self._fetch_video(video_id)
                if record is None:
                    logger.warning(
                        "Video %s unavailable: %s", video_id, reason, extra={"run_id": str(ctx.run_id)}
                    )
                    missing.append({"item_id": video_id, "reason": reason})
                    handle.progress.record_failed()
                    continue
                records.append(record)

            parsed = parse_valid_videos(records, handle.progress)
            rejected = missing + parsed.rejected
            prioritized = prioritize(parsed.videos, self._known_template_video_ids())

            log_etl_event(
                handle.context.with_step("transform"),
                COMPONENT,
                "process_batch_videos",
                "start",
                extra={"videos": len(prioritized), "unavailable": len(rejected)},
            )

            scheduler = BatchScheduler(
                TemplateItemProcessor(
                    self.store.templates, self.analyzer, min_play_count=0, min_like_count=0
                ),
                batch_size=batch_size,
                inter_batch_delay=self.config.inter_batch_delay_seconds,
                max_workers=self.config.max_workers,
                sleep=self.sleep,
            )
            try:
                run = scheduler.run(
                    prioritized,
                    progress=handle.progress,
                    cancel_event=handle.cancel_event,
                    state=RunState(today=self.today()),
                )
            except RunCancelledError as e:
                if e.partial_result is not None:
                    fold_rejected(e.partial_result, rejected)
                raise

            result = fold_rejected(run.as_job_result(), rejected)
            result.details["requested"] = len(video_ids)
            result.message = (
                f"Created {run.stored} templates from {len(video_ids)} requested videos "
                f"({result.failed} failed, {result.skipped} skipped)"
            )
            return result

        return self.orchestrator.run_job(
            "process_batch_videos",
            JobType.AI_BATCH,
            work,
            parameters={"video_ids": list(video_ids), "batch_size": batch_size},
            cancel_event=cancel_event,
        )

    def _fetch_video(self, video_id: str) -> tuple[dict[str, Any] | None, str]:
        try:
            records = self.video_source.fetch(VideoFilter(mode="video", query=video_id, max_items=1))
        except Exception as e:
            return None, normalize_error(e, phase="extract").summary()

        for record in records:
            if isinstance(record, Mapping) and str(record.get("id")) == video_id:
                return record, ""
        if any(not isinstance(record, Mapping) for record in records):
            return None, "Invalid video data format"
        return None, "Video not found"

    # -------------------------------------------------------------------------
    # Metrics
    # -------------------------------------------------------------------------

    def update_template_metrics(self, template_id: str) -> JobResult:
        """
        Refresh velocity and the top similar templates for one template.

        Raises:
            JobFatalError: If the template does not exist
        """

        def work(handle: JobHandle) -> JobResult:
            if not self._refresh_metrics(template_id):
                raise JobFatalError(
                    f"Template {template_id} not found",
                    error_type=ErrorType.LOAD_ERROR,
                )
            return JobResult(processed=1, output_ids=[template_id])

        return self.orchestrator.run_job(
            "update_template_metrics",
            JobType.TEMPLATE_METRICS,
            work,
            parameters={"template_id": template_id},
        )

    def update_all_template_metrics(self, limit: int = 50) -> JobResult:
        def work(handle: JobHandle) -> JobResult:
            templates = self.store.templates.list(limit)
            logger.info("Updating metrics for %d templates", len(templates))
            for template in templates:
                try:
                    self._refresh_metrics(template.id)
                except Exception as e:
                    logger.warning(
                        "Error updating template %s: %s",
                        template.id,
                        normalize_error(e, phase="transform").summary(),
                    )
                    handle.progress.record_failed()
                    continue
                handle.progress.record_processed(template.id)
            return handle.progress.snapshot()

        return self.orchestrator.run_job(
            "update_all_template_metrics",
            JobType.TEMPLATE_METRICS,
            work,
            parameters={"limit": limit},
        )

    def _refresh_metrics(self, template_id: str) -> TemplateDTO | None:
        template = self.store.templates.get(template_id)
        if template is None:
            return None

        velocity = estimate_template_velocity(template.trend_data)
        similar = self.similarity.find_similar(template_id, top_n=SIMILAR_TEMPLATES_TOP_N)
        return self.store.templates.update(
            template_id,
            {
                "trend_data.velocity_score": velocity.velocity_score,
                "trend_data.daily_growth": velocity.daily_growth,
                "trend_data.weekly_growth": velocity.weekly_growth,
                "trend_data.similar_templates": [match.id for match in similar],
            },
        )

    # -------------------------------------------------------------------------
    # Corpus scans
    # -------------------------------------------------------------------------

    def find_all_similar_templates(
        self,
        category: str | None = None,
        min_similarity: float = 0.6,
        max_results: int = 20,
    ) -> SimilarTemplatesResult:
        """
        Find every similar template pair in a category (or the corpus).

        total_pairs counts every pair above the threshold; `pairs` holds
        the top `max_results` of them.
        """
        found: list[SimilarTemplatesResult] = []

        def work(handle: JobHandle) -> JobResult:
            if category:
                templates = self.store.templates.query_by_field(
                    "category", category, limit=CATEGORY_SCAN_LIMIT
                )
            else:
                templates = self.store.templates.list(CORPUS_SCAN_LIMIT)

            pairs = self.similarity.find_all_pairs(
                templates, min_similarity=min_similarity, max_results=None
            )
            result = JobResult(
                processed=len(templates),
                message=f"Found {len(pairs)} similar template pairs",
                details={"total_pairs": len(pairs)},
            )
            found.append(SimilarTemplatesResult(pairs[:max_results], len(pairs), result))
            return result

        job = self.orchestrator.run_job(
            "find_all_similar_templates",
            JobType.TEMPLATE_SIMILARITY,
            work,
            parameters={
                "category": category,
                "min_similarity": min_similarity,
                "max_results": max_results,
            },
        )
        found[0].job = job
        return found[0]

    def detect_trending_templates(
        self, window: str = "7d", min_velocity: float = 5.0, limit: int = 10
    ) -> TrendingTemplatesResult:
        """
        Rank templates by velocity score.

        A stored score at or above min_velocity is used as is. Otherwise
        the velocity is recomputed from daily views and, when it clears the
        threshold, written back to the template.

        Raises:
            ValueError: If window is not one of 1d, 7d, 30d
        """
        if window not in TIME_WINDOWS:
            raise ValueError(f"Unknown time window {window!r}; expected one of {sorted(TIME_WINDOWS)}")

        detected = TrendingTemplatesResult(window=window)

        def work(handle: JobHandle) -> JobResult:
            candidates = [
                t for t in self.store.templates.list(TRENDING_SCAN_LIMIT) if t.trend_data.daily_views
            ]
            trending = []
            for template in candidates:
                stored = template.trend_data.velocity_score
                if stored and stored >= min_velocity:
                    trending.append(
                        TrendingTemplate(template, stored, template.trend_data.growth_rate)
                    )
                    continue

                try:
                    velocity = estimate_template_velocity(template.trend_data)
                    if velocity.velocity_score < min_velocity:
                        handle.progress.record_skipped()
                        continue
                    updated = self.store.templates.update(
                        template.id,
                        {
                            "trend_data.velocity_score": velocity.velocity_score,
                            "trend_data.daily_growth": velocity.daily_growth,
                            "trend_data.weekly_growth": velocity.weekly_growth,
                            "trend_data.growth_rate": velocity.weekly_growth,
                        },
                    )
                except Exception as e:
                    logger.warning(
                        "Error calculating velocity for template %s: %s",
                        template.id,
                        normalize_error(e, phase="transform").summary(),
                    )
                    handle.progress.record_failed()
                    continue
                trending.append(
                    TrendingTemplate(updated, velocity.velocity_score, velocity.weekly_growth)
                )

            trending.sort(key=lambda t: t.velocity_score, reverse=True)
            detected.templates = trending[:limit]
            for entry in detected.templates:
                handle.progress.record_processed(entry.template.id)

            result = handle.progress.snapshot()
            result.message = f"Found {len(trending)} trending templates"
            result.details = {"window": window, "total_trending": len(trending)}
            return result

        detected.job = self.orchestrator.run_job(
            "detect_trending_templates",
            JobType.TEMPLATE_METRICS,
            work,
            parameters={"window": window, "min_velocity": min_velocity, "limit": limit},
        )
        return detected

    def _known_template_video_ids(self) -> set[str]:
        return {t.source_video_id for t in self.store.templates.list() if t.source_video_id}

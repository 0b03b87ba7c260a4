"""
Sound ETL pipeline.

process_sounds_from_trending is the main pass:
fetch -> validate -> prioritize -> schedule (extract + store) ->
growth metrics -> template correlations -> trend report.

The metrics, correlation, linking and stats passes can also run on their
own. Every pass runs as a tracked job and returns a JobResult.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable, Iterable
from datetime import date

from trendintel.core.enums import JobType
from trendintel.etl.config import EtlConfig, load_etl_config
from trendintel.etl.correlation import CorrelationAnalyzer
from trendintel.etl.dto import SoundDTO, TrendReportDTO
from trendintel.etl.errors import RunCancelledError, normalize_error
from trendintel.etl.jobs import JobHandle, JobOrchestrator, JobResult, JobTracker
from trendintel.etl.lifecycle import classify_lifecycle, derive_trend_cycle
from trendintel.etl.observability import log_etl_event
from trendintel.etl.pipelines.common import fetch_videos, fold_rejected, parse_valid_videos
from trendintel.etl.prioritization import prioritize
from trendintel.etl.reports import ReportBuilder
from trendintel.etl.run_context import TriggerSource
from trendintel.etl.scheduler import BatchScheduler, RunState, SoundItemProcessor
from trendintel.etl.store import TrendStore
from trendintel.etl.velocity import estimate_velocity
from trendintel.integrations.apify.video_source import VideoFilter, VideoSource

logger = logging.getLogger(__name__)

COMPONENT = "sound_etl"

# Search results checked per sound when refreshing usage counts
STATS_SEARCH_ITEMS = 10


class SoundEtlPipeline:
    """
    Usage:
        pipeline = SoundEtlPipeline(DjangoTrendStore(), source, DjangoJobTracker())
        result = pipeline.process_sounds_from_trending(VideoFilter(max_items=50))
    """

    def __init__(
        self,
        store: TrendStore,
        video_source: VideoSource,
        tracker: JobTracker,
        config: EtlConfig | None = None,
        sleep: Callable[[float], None] = time.sleep,
        today: Callable[[], date] = date.today,
        trigger_source: TriggerSource = "manual",
    ):
        self.store = store
        self.video_source = video_source
        self.config = config or load_etl_config()
        self.sleep = sleep
        self.today = today
        self.orchestrator = JobOrchestrator(tracker, trigger_source)
        self.correlations = CorrelationAnalyzer(store.templates)

    # -------------------------------------------------------------------------
    # Main pass
    # -------------------------------------------------------------------------

    def process_sounds_from_trending(
        self,
        video_filter: VideoFilter | None = None,
        cancel_event: threading.Event | None = None,
    ) -> JobResult:
        """
        Run the full sound pass over freshly fetched videos.

        processed + failed + skipped always equals the number of fetched
        records: invalid records count as failed.

        Raises:
            JobFatalError: If no videos could be fetched
            RunCancelledError: If cancel_event was set between batches
        """
        video_filter = video_filter or VideoFilter()

        def work(handle: JobHandle) -> JobResult:
            ctx = handle.context.with_step("extract")
            records = fetch_videos(self.video_source, video_filter, ctx)
            parsed = parse_valid_videos(records, handle.progress)

            trending_ids = self._known_trending_ids()
            prioritized = prioritize(parsed.videos, trending_ids)
            log_etl_event(
                handle.context.with_step("transform"),
                COMPONENT,
                "process_sounds_progressively",
                "start",
                extra={
                    "videos": len(prioritized),
                    "invalid_videos": len(parsed.rejected),
                    "trending_templates": len(trending_ids),
                },
            )

            scheduler = BatchScheduler(
                SoundItemProcessor(self.store.sounds),
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
            sound_ids = list(dict.fromkeys(run.output_ids))

            metrics = self._growth_metrics(sound_ids)
            correlations = self._template_correlations(sound_ids)
            report = self._build_report()

            result.details.update(
                {
                    "fetched": len(records),
                    "growth_metrics": metrics.to_dict(),
                    "template_correlations": correlations.to_dict(),
                    "report_id": report.id,
                }
            )
            result.message = (
                f"Stored {run.stored} sounds from {len(records)} videos "
                f"({result.failed} failed, {result.skipped} skipped)"
            )
            return result

        return self.orchestrator.run_job(
            "process_sounds_from_trending",
            JobType.SOUND_TRENDING,
            work,
            parameters={
                "mode": video_filter.mode,
                "query": video_filter.query,
                "max_items": video_filter.max_items,
            },
            cancel_event=cancel_event,
        )

    # -------------------------------------------------------------------------
    # Standalone passes
    # -------------------------------------------------------------------------

    def calculate_growth_metrics(self, sound_ids: Iterable[str] | None = None) -> JobResult:
        """Recompute velocity, lifecycle and trend cycle for stored sounds."""
        ids = list(sound_ids) if sound_ids is not None else None

        def work(handle: JobHandle) -> JobResult:
            target = ids if ids is not None else [s.id for s in self.store.sounds.list()]
            return self._growth_metrics(target)

        return self.orchestrator.run_job(
            "calculate_growth_metrics",
            JobType.SOUND_METRICS,
            work,
            parameters={"sound_ids": ids},
        )

    def update_template_correlations(self, sound_ids: Iterable[str] | None = None) -> JobResult:
        ids = list(sound_ids) if sound_ids is not None else None

        def work(handle: JobHandle) -> JobResult:
            target = ids if ids is not None else [s.id for s in self.store.sounds.list()]
            return self._template_correlations(target)

        return self.orchestrator.run_job(
            "update_template_correlations",
            JobType.SOUND_METRICS,
            work,
            parameters={"sound_ids": ids},
        )

    def link_sounds_to_templates(self, limit: int = 100) -> JobResult:
        """
        Link each template's source-video sound to the template.

        The sound is found through the usage entries and provenance recorded
        at extraction time. Templates without a source video, or whose
        source video carried no stored sound, are skipped.
        """

        def work(handle: JobHandle) -> JobResult:
            sound_by_video = self._sound_index()
            result = JobResult()
            for template in self.store.templates.list(limit):
                sound_id = sound_by_video.get(template.source_video_id)
                if not template.source_video_id or sound_id is None:
                    logger.debug("No source sound for template %s", template.id)
                    result.skipped += 1
                    continue
                try:
                    sound = self.store.sounds.get(sound_id)
                    self.store.sounds.update(
                        sound_id,
                        {"related_templates": [*sound.related_templates, template.id]},
                    )
                except Exception as e:
                    logger.warning(
                        "Failed to link sound %s to template %s: %s",
                        sound_id,
                        template.id,
                        normalize_error(e, phase="load").summary(),
                    )
                    result.failed += 1
                    continue
                result.processed += 1
                result.output_ids.append(sound_id)
            return result

        return self.orchestrator.run_job(
            "link_sounds_to_templates",
            JobType.SOUND_LINKING,
            work,
            parameters={"limit": limit},
        )

    def update_sound_stats(self, limit: int = 50) -> JobResult:
        """
        Refresh usage counts for the fastest-growing sounds.

        Searches the video source by sound title and adds the number of
        results that actually use the sound. Sounds with no matches are
        skipped; source errors count as failed for that sound only.
        """

        def work(handle: JobHandle) -> JobResult:
            today = self.today()
            result = JobResult()
            for sound in self.store.sounds.query_top_by_metric("stats.growth_velocity_7d", limit):
                try:
                    records = self.video_source.fetch(
                        VideoFilter(mode="search", query=sound.title, max_items=STATS_SEARCH_ITEMS)
                    )
                except Exception as e:
                    logger.warning(
                        "Usage search failed for sound %s: %s",
                        sound.id,
                        normalize_error(e, phase="extract").summary(),
                    )
                    result.failed += 1
                    continue

                matches = sum(
                    1 for record in records if str((record.get("music") or {}).get("id")) == sound.id
                )
                if matches == 0:
                    result.skipped += 1
                    continue

                usage = (sound.usage_count or 0) + matches
                history = dict(sound.usage_history)
                history[today] = usage
                self.store.sounds.update(
                    sound.id,
                    {
                        "usage_count": usage,
                        "stats.usage_count": usage,
                        "usage_history": history,
                        "lifecycle.last_detected_date": today,
                    },
                )
                result.processed += 1
                result.output_ids.append(sound.id)
            return result

        return self.orchestrator.run_job(
            "update_sound_stats",
            JobType.SOUND_STATS,
            work,
            parameters={"limit": limit},
        )

    def generate_report(self) -> TrendReportDTO:
        """Build and store a trend report as its own tracked job."""
        built: list[TrendReportDTO] = []

        def work(handle: JobHandle) -> JobResult:
            report = self._build_report()
            built.append(report)
            return JobResult(processed=1, output_ids=[report.id])

        self.orchestrator.run_job("generate_sound_trend_report", JobType.TREND_REPORT, work)
        return built[0]

    # -------------------------------------------------------------------------
    # Steps
    # -------------------------------------------------------------------------

    def _known_trending_ids(self) -> set[str]:
        """Ids by which a video can be tied to a stored template."""
        ids = set()
        for template in self.store.templates.list():
            ids.add(template.id)
            if template.source_video_id:
                ids.add(template.source_video_id)
        return ids

    def _sound_index(self) -> dict[str, str]:
        """Source video id -> sound id, first recorded wins."""
        index: dict[str, str] = {}
        for sound in self.store.sounds.list():
            for usage in sound.template_usage:
                index.setdefault(usage.template_id, sound.id)
            if sound.metadata is not None:
                index.setdefault(sound.metadata.extracted_from, sound.id)
        return index

    def _growth_metrics(self, sound_ids: Iterable[str]) -> JobResult:
        result = JobResult()
        for sound_id in sound_ids:
            try:
                sound = self.store.sounds.get(sound_id)
                if sound is None or len(sound.usage_history) < 2:
                    logger.debug("Not enough history for sound %s", sound_id)
                    result.skipped += 1
                    continue
                self._apply_growth_metrics(sound)
            except Exception as e:
                logger.warning(
                    "Failed to calculate metrics for sound %s: %s",
                    sound_id,
                    normalize_error(e, phase="transform").summary(),
                )
                result.failed += 1
                continue
            result.processed += 1
            result.output_ids.append(sound_id)
        return result

    def _apply_growth_metrics(self, sound: SoundDTO) -> SoundDTO:
        estimate = estimate_velocity(sound.usage_history)
        stage = classify_lifecycle(
            estimate.peak_date,
            estimate.latest_date,
            estimate.velocity_7d,
            estimate.velocity_14d,
            estimate.history_length,
        )
        return self.store.sounds.update(
            sound.id,
            {
                "stats.growth_velocity_7d": estimate.velocity_7d,
                "stats.growth_velocity_14d": estimate.velocity_14d,
                "stats.growth_velocity_30d": estimate.velocity_30d,
                "stats.trend": estimate.trend,
                "stats.peak_usage": estimate.peak_usage,
                "stats.peak_date": estimate.peak_date,
                "lifecycle.stage": stage,
                "trend_cycle": derive_trend_cycle(stage, estimate.peak_usage),
            },
        )

    def _template_correlations(self, sound_ids: Iterable[str]) -> JobResult:
        result = JobResult()
        for sound_id in sound_ids:
            try:
                sound = self.store.sounds.get(sound_id)
                related = self._related_template_ids(sound) if sound is not None else []
                correlations = self.correlations.correlate(sound_id, related)
                if not correlations:
                    result.skipped += 1
                    continue
                self.store.sounds.update(
                    sound_id,
                    {"template_correlations": [c.model_dump() for c in correlations]},
                )
            except Exception as e:
                logger.warning(
                    "Failed to update template correlations for sound %s: %s",
                    sound_id,
                    normalize_error(e, phase="transform").summary(),
                )
                result.failed += 1
                continue
            result.processed += 1
            result.output_ids.append(sound_id)
        return result

    def _related_template_ids(self, sound: SoundDTO) -> list[str]:
        related = list(sound.related_templates)
        for usage in sound.template_usage:
            related.append(usage.template_id)
            related.extend(
                t.id for t in self.store.templates.query_by_field("source_video_id", usage.template_id)
            )
        return related

    def _build_report(self) -> TrendReportDTO:
        return ReportBuilder(
            self.store.sounds, self.store.reports, top_n=self.config.report_top_n
        ).build()

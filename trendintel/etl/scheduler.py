"""
Batch scheduler.

Processes prioritized items in chunks of `batch_size`, in priority order.
Items inside a chunk fan out over a bounded thread pool (inline when
max_workers is 1). Every item produces exactly one ItemOutcome; per-item
exceptions are caught and recorded, never propagated.

Between chunks the scheduler sleeps for `inter_batch_delay` seconds (not
after the last chunk) and checks the cancel event before starting the next
one. A cancelled run raises RunCancelledError carrying the partial result.

Per-run state (the seen-id set) lives in an explicit RunState so two runs
never share dedup state.
"""

from __future__ import annotations

import logging
import threading
import time
from abc import ABC, abstractmethod
from collections.abc import Callable, Sequence
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Literal

from django.db import connections

from trendintel.core.enums import Priority
from trendintel.etl.analyzer import ContentAnalyzer
from trendintel.etl.dto import SoundDTO, SoundProvenanceDTO, TemplateDTO, TemplateUsageDTO
from trendintel.etl.errors import (
    ExtractionError,
    RunCancelledError,
    ValidationError,
    normalize_error,
)
from trendintel.etl.extraction import extract_sound, merge_sound
from trendintel.etl.jobs.orchestrator import JobProgress
from trendintel.etl.jobs.tracker import JobResult
from trendintel.etl.prioritization import PrioritizedItem
from trendintel.etl.sanitize import sanitize_analysis
from trendintel.etl.store import EntityStore
from trendintel.etl.template_builder import build_template, template_id_for_video
from trendintel.etl.validation import validate_sound

logger = logging.getLogger(__name__)

OutcomeStatus = Literal["stored", "skipped", "failed"]

# Engagement floor for the AI template pass
MIN_TEMPLATE_PLAY_COUNT = 10_000
MIN_TEMPLATE_LIKE_COUNT = 1_000


# =============================================================================
# RESULT TYPES
# =============================================================================


@dataclass
class RunState:
    """Dedup state for a single scheduler run."""

    today: date = field(default_factory=date.today)
    seen_ids: set[str] = field(default_factory=set)
    lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def seen(self, entity_id: str) -> bool:
        with self.lock:
            return entity_id in self.seen_ids

    def claim(self, entity_id: str) -> bool:
        """Atomically mark an id as processed. False if already claimed."""
        with self.lock:
            if entity_id in self.seen_ids:
                return False
            self.seen_ids.add(entity_id)
            return True


@dataclass(frozen=True)
class ItemOutcome:
    item_id: str
    status: OutcomeStatus
    priority: Priority
    entity_id: str | None = None
    reason: str = ""
    extracted: bool = False


@dataclass(frozen=True)
class ItemFailure:
    item_id: str
    reason: str


@dataclass
class BatchRunResult:
    total: int = 0
    extracted: int = 0
    stored: int = 0
    failed: int = 0
    skipped: int = 0
    by_priority: dict[str, int] = field(
        default_factory=lambda: {p.value: 0 for p in Priority}
    )
    output_ids: list[str] = field(default_factory=list)
    failures: list[ItemFailure] = field(default_factory=list)
    batches: int = 0
    cancelled: bool = False

    def record(self, outcome: ItemOutcome) -> None:
        if outcome.extracted:
            self.extracted += 1
            self.by_priority[outcome.priority.value] += 1

        if outcome.status == "stored":
            self.stored += 1
            if outcome.entity_id:
                self.output_ids.append(outcome.entity_id)
        elif outcome.status == "failed":
            self.failed += 1
            self.failures.append(ItemFailure(outcome.item_id, outcome.reason))
        else:
            self.skipped += 1

    def as_job_result(self, message: str = "") -> JobResult:
        return JobResult(
            processed=self.stored,
            failed=self.failed,
            skipped=self.skipped,
            output_ids=list(self.output_ids),
            message=message,
            details={
                "extracted": self.extracted,
                "by_priority": dict(self.by_priority),
                "batches": self.batches,
                "failures": [
                    {"item_id": f.item_id, "reason": f.reason} for f in self.failures
                ],
            },
        )


# =============================================================================
# ITEM PROCESSORS
# =============================================================================


class ItemProcessor(ABC):
    """Turns one prioritized video into one outcome."""

    # Used in log lines and event payloads
    name = "item"

    @abstractmethod
    def process(self, entry: PrioritizedItem, state: RunState) -> ItemOutcome:
        """
        Process one item.

        May raise; the scheduler records raised ValidationError and
        ExtractionError as skipped and anything else as failed.
        """


class SoundItemProcessor(ItemProcessor):
    """Extract, validate, dedup and store the sound used by a video."""

    name = "sound"

    def __init__(self, sounds_store: EntityStore[SoundDTO]):
        self.sounds_store = sounds_store

    def process(self, entry: PrioritizedItem, state: RunState) -> ItemOutcome:
        video = entry.item
        candidate = extract_sound(video, today=state.today)
        if candidate is None:
            return ItemOutcome(
                video.id, "skipped", entry.priority, reason="No identifiable sound"
            )

        if state.seen(candidate.id):
            return ItemOutcome(
                video.id,
                "skipped",
                entry.priority,
                candidate.id,
                "Sound already processed in this run",
            )

        validation = validate_sound(candidate)
        if not validation:
            logger.info(
                "Sound %s validation failed: %s", candidate.id, validation.reason
            )
            return ItemOutcome(
                video.id, "failed", entry.priority, candidate.id, validation.reason
            )

        if not state.claim(candidate.id):
            return ItemOutcome(
                video.id,
                "skipped",
                entry.priority,
                candidate.id,
                "Sound already processed in this run",
            )

        now = datetime.now(timezone.utc)
        provenance = SoundProvenanceDTO(
            extracted_from=video.id,
            extraction_priority=entry.priority,
            extraction_reason=entry.reason,
            processing_timestamp=now,
        )
        usage_entry = TemplateUsageDTO(
            template_id=video.id,
            use_count=1,
            average_engagement=video.stats.engagement_total / 3,
            last_used=now,
        )

        existing = self.sounds_store.get(candidate.id)
        sound = merge_sound(existing, candidate, usage_entry, provenance, state.today)
        self.sounds_store.put(sound)

        logger.debug(
            "Processed sound %r from video %s (priority: %s)",
            sound.title,
            video.id,
            entry.priority.value,
        )
        return ItemOutcome(
            video.id, "stored", entry.priority, sound.id, extracted=True
        )


class TemplateItemProcessor(ItemProcessor):
    """Analyze a video and store it as a content template."""

    name = "template"

    def __init__(
        self,
        templates_store: EntityStore[TemplateDTO],
        analyzer: ContentAnalyzer,
        created_by: str = "ai-etl-system",
        min_play_count: int = MIN_TEMPLATE_PLAY_COUNT,
        min_like_count: int = MIN_TEMPLATE_LIKE_COUNT,
        category: str | None = None,
    ):
        self.templates_store = templates_store
        self.analyzer = analyzer
        self.created_by = created_by
        self.min_play_count = min_play_count
        self.min_like_count = min_like_count
        self.category = category

    def process(self, entry: PrioritizedItem, state: RunState) -> ItemOutcome:
        video = entry.item
        stats = video.stats
        if stats.play_count < self.min_play_count or stats.digg_count < self.min_like_count:
            return ItemOutcome(video.id, "skipped", entry.priority, reason="Low engagement")

        if not state.claim(video.id):
            return ItemOutcome(
                video.id, "skipped", entry.priority, reason="Video already processed in this run"
            )

        try:
            raw_analysis = self.analyzer.analyze(video)
        except Exception as e:
            raise normalize_error(e, phase="transform") from e

        analysis = sanitize_analysis(raw_analysis)
        existing = self.templates_store.get(template_id_for_video(video.id))
        template = build_template(
            video,
            analysis,
            created_by=self.created_by,
            existing=existing,
            today=state.today,
            category=self.category,
        )
        self.templates_store.put(template)

        return ItemOutcome(
            video.id, "stored", entry.priority, template.id, extracted=True
        )


# =============================================================================
# SCHEDULER
# =============================================================================


class BatchScheduler:
    """
    Chunked, rate-limited item processing.

    Usage:
        scheduler = BatchScheduler(SoundItemProcessor(store.sounds), batch_size=10)
        result = scheduler.run(prioritize(videos))
    """

    def __init__(
        self,
        processor: ItemProcessor,
        batch_size: int = 10,
        inter_batch_delay: float = 0.5,
        max_workers: int = 5,
        sleep: Callable[[float], None] = time.sleep,
    ):
        if batch_size < 1:
            raise ValueError("batch_size must be at least 1")
        self.processor = processor
        self.batch_size = batch_size
        self.inter_batch_delay = inter_batch_delay
        self.max_workers = max(1, min(max_workers, 10))
        self.sleep = sleep

    def run(
        self,
        items: Sequence[PrioritizedItem],
        progress: JobProgress | None = None,
        cancel_event: threading.Event | None = None,
        state: RunState | None = None,
    ) -> BatchRunResult:
        state = state or RunState()
        result = BatchRunResult(total=len(items))
        chunks = [
            items[start : start + self.batch_size]
            for start in range(0, len(items), self.batch_size)
        ]

        executor = ThreadPoolExecutor(max_workers=self.max_workers) if self.max_workers > 1 else None
        try:
            for index, chunk in enumerate(chunks):
                if cancel_event is not None and cancel_event.is_set():
                    result.cancelled = True
                    logger.warning(
                        "Run cancelled before batch %d/%d", index + 1, len(chunks)
                    )
                    raise RunCancelledError(
                        f"Cancelled after {result.batches} of {len(chunks)} batches",
                        partial_result=result.as_job_result("cancelled"),
                    )

                logger.info(
                    "Processing batch %d/%d (%d items)",
                    index + 1,
                    len(chunks),
                    len(chunk),
                    extra={"processor": self.processor.name},
                )
                for outcome in self._run_chunk(chunk, state, executor):
                    result.record(outcome)
                    if progress is not None:
                        _record_progress(progress, outcome)
                result.batches += 1

                if index < len(chunks) - 1 and self.inter_batch_delay > 0:
                    self.sleep(self.inter_batch_delay)
        finally:
            if executor is not None:
                executor.shutdown(wait=True)

        return result

    def _run_chunk(
        self,
        chunk: Sequence[PrioritizedItem],
        state: RunState,
        executor: ThreadPoolExecutor | None,
    ) -> list[ItemOutcome]:
        if executor is None:
            return [self._process_one(entry, state) for entry in chunk]

        # Outcomes keep the chunk's priority order regardless of completion order
        outcomes: list[ItemOutcome | None] = [None] * len(chunk)
        futures = {
            executor.submit(self._process_in_worker, entry, state): index
            for index, entry in enumerate(chunk)
        }
        for future in as_completed(futures):
            outcomes[futures[future]] = future.result()
        return outcomes

    def _process_in_worker(self, entry: PrioritizedItem, state: RunState) -> ItemOutcome:
        try:
            return self._process_one(entry, state)
        finally:
            connections.close_all()

    def _process_one(self, entry: PrioritizedItem, state: RunState) -> ItemOutcome:
        try:
            return self.processor.process(entry, state)
        except (ValidationError, ExtractionError) as e:
            logger.info("Skipping item %s: %s", entry.item_id, e.summary())
            return ItemOutcome(entry.item_id, "skipped", entry.priority, reason=e.summary())
        except Exception as e:
            error = normalize_error(e, phase="load")
            logger.warning(
                "Failed to process %s item %s: %s",
                self.processor.name,
                entry.item_id,
                error.summary(),
                exc_info=True,
            )
            return ItemOutcome(entry.item_id, "failed", entry.priority, reason=error.summary())


def _record_progress(progress: JobProgress, outcome: ItemOutcome) -> None:
    if outcome.status == "stored":
        progress.record_processed(outcome.entity_id)
    elif outcome.status == "failed":
        progress.record_failed()
    else:
        progress.record_skipped()

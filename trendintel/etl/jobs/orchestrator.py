"""
Job orchestration.

run_job wraps one unit of ETL work in a tracked job:
create RUNNING -> work(handle) -> complete, or on any exception fail with
the partial result and re-raise. The job is sealed exactly once.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any
from uuid import UUID

from trendintel.etl.errors import ETLError
from trendintel.etl.jobs.tracker import JobResult, JobTracker
from trendintel.etl.observability import log_etl_event
from trendintel.etl.run_context import RunContext, TriggerSource

logger = logging.getLogger(__name__)


class JobProgress:
    """
    Thread-safe running tally for a job.

    Work functions record outcomes as they go so that a failure part-way
    through still seals the job with what was achieved.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._processed = 0
        self._failed = 0
        self._skipped = 0
        self._output_ids: list[str] = []

    def record_processed(self, output_id: str | None = None) -> None:
        with self._lock:
            self._processed += 1
            if output_id is not None:
                self._output_ids.append(output_id)

    def record_failed(self) -> None:
        with self._lock:
            self._failed += 1

    def record_skipped(self) -> None:
        with self._lock:
            self._skipped += 1

    def snapshot(self) -> JobResult:
        with self._lock:
            return JobResult(
                processed=self._processed,
                failed=self._failed,
                skipped=self._skipped,
                output_ids=list(self._output_ids),
            )


@dataclass
class JobHandle:
    """What a work function gets to see of its job."""

    job_id: UUID
    context: RunContext
    progress: JobProgress = field(default_factory=JobProgress)
    cancel_event: threading.Event = field(default_factory=threading.Event)

    @property
    def cancelled(self) -> bool:
        return self.cancel_event.is_set()


Work = Callable[[JobHandle], JobResult]


class JobOrchestrator:
    """Runs work functions inside tracked ETL jobs."""

    def __init__(self, tracker: JobTracker, trigger_source: TriggerSource = "manual"):
        self.tracker = tracker
        self.trigger_source = trigger_source

    def run_job(
        self,
        name: str,
        job_type: str,
        work: Work,
        parameters: dict[str, Any] | None = None,
        trigger_source: TriggerSource | None = None,
        cancel_event: threading.Event | None = None,
    ) -> JobResult:
        """
        Execute `work` as a tracked job.

        Returns:
            The work's JobResult, stamped with the job id

        Raises:
            Whatever `work` raised, after the job has been sealed FAILED
        """
        source = trigger_source or self.trigger_source
        job_id = self.tracker.create_job(name, job_type, parameters, source)
        ctx = RunContext(job_type=job_type, trigger_source=source, job_id=job_id)
        handle = JobHandle(
            job_id=job_id,
            context=ctx,
            cancel_event=cancel_event or threading.Event(),
        )

        log_etl_event(ctx, "job_orchestrator", name, "start", extra={"parameters": parameters})

        try:
            result = work(handle)
        except BaseException as exc:
            # Seal before propagating so the job never stays RUNNING
            partial = getattr(exc, "partial_result", None) or handle.progress.snapshot()
            partial.job_id = job_id
            reason = (
                exc.summary()
                if isinstance(exc, ETLError)
                else f"{exc.__class__.__name__}: {exc}"
            )
            self.tracker.fail_job(job_id, reason, partial)
            log_etl_event(
                ctx,
                "job_orchestrator",
                name,
                "failure",
                extra={"processed": partial.processed, "failed": partial.failed},
                error_summary=reason,
            )
            raise

        if result is None:
            result = handle.progress.snapshot()
        result.job_id = job_id
        self.tracker.complete_job(job_id, result)

        log_etl_event(
            ctx,
            "job_orchestrator",
            name,
            "partial" if result.failed else "success",
            extra={
                "processed": result.processed,
                "failed": result.failed,
                "skipped": result.skipped,
            },
        )
        return result

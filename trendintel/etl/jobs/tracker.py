"""
ETL job tracking.

A job is created RUNNING when a run starts and sealed exactly once:
COMPLETED with its JobResult, or FAILED with a reason and the partial
result collected so far. Trackers refuse to seal a job that is not
RUNNING, which is what makes the terminal transition single-shot.
"""

from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any
from uuid import UUID, uuid4

from django.utils import timezone

from trendintel.core.enums import JobStatus
from trendintel.etl.dto import EtlJobDTO
from trendintel.etl.sanitize import to_json_safe

logger = logging.getLogger(__name__)


# =============================================================================
# RESULT TYPES
# =============================================================================


@dataclass
class JobResult:
    """Summary every top-level ETL operation returns to its caller."""

    processed: int = 0
    failed: int = 0
    skipped: int = 0
    output_ids: list[str] = field(default_factory=list)
    message: str = ""
    job_id: UUID | None = None
    details: dict[str, Any] = field(default_factory=dict)

    @property
    def total(self) -> int:
        return self.processed + self.failed + self.skipped

    def to_dict(self) -> dict[str, Any]:
        data = {
            "processed": self.processed,
            "failed": self.failed,
            "skipped": self.skipped,
            "output_ids": list(self.output_ids),
        }
        if self.message:
            data["message"] = self.message
        if self.details:
            data["details"] = to_json_safe(self.details)
        return data


def _duration_ms(started_at: datetime, ended_at: datetime) -> int:
    return max(0, int((ended_at - started_at).total_seconds() * 1000))


# =============================================================================
# INTERFACE
# =============================================================================


class JobTracker(ABC):
    @abstractmethod
    def create_job(
        self,
        name: str,
        job_type: str,
        parameters: dict[str, Any] | None = None,
        trigger_source: str = "manual",
    ) -> UUID:
        pass

    @abstractmethod
    def complete_job(self, job_id: UUID, result: JobResult) -> bool:
        """Seal a RUNNING job as COMPLETED. False if not found or not running."""
        pass

    @abstractmethod
    def fail_job(
        self, job_id: UUID, reason: str, partial_result: JobResult | None = None
    ) -> bool:
        """Seal a RUNNING job as FAILED. False if not found or not running."""
        pass

    @abstractmethod
    def get_job(self, job_id: UUID) -> EtlJobDTO | None:
        pass

    @abstractmethod
    def list_jobs(
        self,
        status: JobStatus | None = None,
        job_type: str | None = None,
        limit: int = 20,
    ) -> list[EtlJobDTO]:
        """Most recent jobs first, optionally filtered by status and type."""
        pass


# =============================================================================
# DJANGO TRACKER
# =============================================================================


class DjangoJobTracker(JobTracker):
    """Job records as EtlJob rows."""

    def create_job(
        self,
        name: str,
        job_type: str,
        parameters: dict[str, Any] | None = None,
        trigger_source: str = "manual",
    ) -> UUID:
        from trendintel.etl.models import EtlJob

        job = EtlJob.objects.create(
            name=name,
            job_type=job_type,
            status=JobStatus.RUNNING,
            trigger_source=trigger_source,
            parameters=to_json_safe(parameters or {}),
        )
        logger.info("Created ETL job %s (%s)", job.id, job_type)
        return job.id

    def complete_job(self, job_id: UUID, result: JobResult) -> bool:
        return self._seal(job_id, JobStatus.COMPLETED, result.to_dict(), "")

    def fail_job(
        self, job_id: UUID, reason: str, partial_result: JobResult | None = None
    ) -> bool:
        result_json = partial_result.to_dict() if partial_result else {}
        return self._seal(job_id, JobStatus.FAILED, result_json, reason)

    def get_job(self, job_id: UUID) -> EtlJobDTO | None:
        from trendintel.etl.models import EtlJob

        job = EtlJob.objects.filter(id=job_id).first()
        return self._to_dto(job) if job is not None else None

    def list_jobs(
        self,
        status: JobStatus | None = None,
        job_type: str | None = None,
        limit: int = 20,
    ) -> list[EtlJobDTO]:
        from trendintel.etl.models import EtlJob

        queryset = EtlJob.objects.all()
        if status:
            queryset = queryset.filter(status=status)
        if job_type:
            queryset = queryset.filter(job_type=job_type)
        return [self._to_dto(job) for job in queryset.order_by("-started_at")[:limit]]

    def _seal(
        self, job_id: UUID, status: JobStatus, result_json: dict[str, Any], reason: str
    ) -> bool:
        from trendintel.etl.models import EtlJob

        job = EtlJob.objects.filter(id=job_id, status=JobStatus.RUNNING).first()
        if job is None:
            logger.warning("Cannot seal job %s as %s (not found or not running)", job_id, status)
            return False

        now = timezone.now()
        # Conditional update: a concurrent sealer that got there first wins
        rows_updated = EtlJob.objects.filter(id=job_id, status=JobStatus.RUNNING).update(
            status=status,
            ended_at=now,
            duration_ms=_duration_ms(job.started_at, now),
            result_json=result_json,
            failure_reason=reason,
        )
        if rows_updated == 0:
            logger.warning("Cannot seal job %s as %s (sealed concurrently)", job_id, status)
            return False

        if status == JobStatus.FAILED:
            logger.warning("Failed ETL job %s: %s", job_id, reason)
        else:
            logger.info("Completed ETL job %s", job_id)
        return True

    def _to_dto(self, job) -> EtlJobDTO:
        return EtlJobDTO(
            id=job.id,
            name=job.name,
            job_type=job.job_type,
            status=job.status,
            trigger_source=job.trigger_source,
            started_at=job.started_at,
            ended_at=job.ended_at,
            duration_ms=job.duration_ms,
            parameters=job.parameters or {},
            result=job.result_json or {},
            failure_reason=job.failure_reason,
        )


# =============================================================================
# IN-MEMORY TRACKER
# =============================================================================


class InMemoryJobTracker(JobTracker):
    """Process-local job records for dry runs and tests."""

    def __init__(self):
        self._jobs: dict[UUID, EtlJobDTO] = {}
        self._lock = threading.Lock()

    def create_job(
        self,
        name: str,
        job_type: str,
        parameters: dict[str, Any] | None = None,
        trigger_source: str = "manual",
    ) -> UUID:
        job = EtlJobDTO(
            id=uuid4(),
            name=name,
            job_type=job_type,
            status=JobStatus.RUNNING,
            trigger_source=trigger_source,
            started_at=timezone.now(),
            parameters=to_json_safe(parameters or {}),
        )
        with self._lock:
            self._jobs[job.id] = job
        logger.info("Created ETL job %s (%s)", job.id, job_type)
        return job.id

    def complete_job(self, job_id: UUID, result: JobResult) -> bool:
        return self._seal(job_id, JobStatus.COMPLETED, result.to_dict(), "")

    def fail_job(
        self, job_id: UUID, reason: str, partial_result: JobResult | None = None
    ) -> bool:
        result_json = partial_result.to_dict() if partial_result else {}
        return self._seal(job_id, JobStatus.FAILED, result_json, reason)

    def get_job(self, job_id: UUID) -> EtlJobDTO | None:
        with self._lock:
            job = self._jobs.get(job_id)
        return job.model_copy(deep=True) if job is not None else None

    def list_jobs(
        self,
        status: JobStatus | None = None,
        job_type: str | None = None,
        limit: int = 20,
    ) -> list[EtlJobDTO]:
        with self._lock:
            jobs = list(self._jobs.values())
        jobs = [
            job
            for job in jobs
            if (not status or job.status == status) and (not job_type or job.job_type == job_type)
        ]
        jobs.sort(key=lambda job: job.started_at, reverse=True)
        return [job.model_copy(deep=True) for job in jobs[:limit]]

    def _seal(
        self, job_id: UUID, status: JobStatus, result_json: dict[str, Any], reason: str
    ) -> bool:
        with self._lock:
            job = self._jobs.get(job_id)
            if job is None or job.status != JobStatus.RUNNING:
                logger.warning(
                    "Cannot seal job %s as %s (not found or not running)", job_id, status
                )
                return False
            now = timezone.now()
            self._jobs[job_id] = job.model_copy(
                update={
                    "status": status,
                    "ended_at": now,
                    "duration_ms": _duration_ms(job.started_at, now),
                    "result": result_json,
                    "failure_reason": reason,
                }
            )
        return True

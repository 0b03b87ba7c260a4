"""
Run context for ETL jobs.

RunContext is an in-memory value carried through one job run. It is never
persisted; the durable record of a run is the EtlJob row.

It carries:
- run_id: unique identifier for this execution
- job_id: id of the tracked job, once the tracker has created it
- job_type: which ETL pass is executing (sound-trending, ai-trending, ...)
- trigger_source: what initiated the run (cron, manual, test)
- step: optional current step within the pipeline
"""

from dataclasses import dataclass, field, replace
from typing import Literal
from uuid import UUID, uuid4

TriggerSource = Literal["cron", "manual", "test"]


@dataclass(frozen=True)
class RunContext:
    job_type: str
    trigger_source: TriggerSource = "manual"
    job_id: UUID | None = None
    run_id: UUID = field(default_factory=uuid4)
    step: str | None = None

    def with_step(self, step: str) -> "RunContext":
        return replace(self, step=step)

    def with_job(self, job_id: UUID) -> "RunContext":
        return replace(self, job_id=job_id)

"""
Observability utilities for ETL pipelines.

Every pipeline step logs a "start" event and exactly one of "success",
"partial" or "failure". The payload always includes run_id, job_id,
job_type and trigger_source from the RunContext.
"""

from __future__ import annotations

import logging
from typing import Any, Literal, Mapping

from trendintel.etl.run_context import RunContext

logger = logging.getLogger("trendintel.etl.events")

Status = Literal["start", "success", "partial", "failure"]


def log_etl_event(
    ctx: RunContext,
    component: str,
    operation: str,
    status: Status,
    extra: Mapping[str, Any] | None = None,
    error_summary: str | None = None,
) -> None:
    """
    Log one structured ETL event.

    Args:
        ctx: RunContext for this run
        component: Name of the component (e.g., "batch_scheduler")
        operation: Name of the operation (e.g., "process_sounds_from_trending")
        status: "start", "success", "partial" or "failure"
        extra: Optional additional fields to include in the log
        error_summary: Short error description for failure status
    """
    payload: dict[str, Any] = {
        "run_id": str(ctx.run_id),
        "job_id": str(ctx.job_id) if ctx.job_id else None,
        "job_type": ctx.job_type,
        "trigger_source": ctx.trigger_source,
        "component": component,
        "operation": operation,
        "status": status,
    }

    if ctx.step:
        payload["step"] = ctx.step

    if error_summary:
        payload["error_summary"] = error_summary

    if extra:
        payload.update(extra)

    level = logging.WARNING if status == "failure" else logging.INFO
    logger.log(level, "etl_event %s.%s %s", component, operation, status, extra=payload)

"""
ETL job tracking and orchestration.
"""

from .orchestrator import JobHandle, JobOrchestrator, JobProgress
from .tracker import DjangoJobTracker, InMemoryJobTracker, JobResult, JobTracker

__all__ = [
    "DjangoJobTracker",
    "InMemoryJobTracker",
    "JobHandle",
    "JobOrchestrator",
    "JobProgress",
    "JobResult",
    "JobTracker",
]

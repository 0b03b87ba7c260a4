"""
ETL tuning configuration.

EtlConfig is a frozen snapshot of the ETL_* settings, built once per
pipeline and passed down explicitly.
"""

from __future__ import annotations

from dataclasses import dataclass

from django.conf import settings

MAX_WORKERS_CAP = 10


@dataclass(frozen=True)
class EtlConfig:
    batch_size: int = 10
    inter_batch_delay_seconds: float = 0.5
    max_workers: int = 5
    similarity_max_candidates: int = 200
    report_top_n: int = 10
    tiktok_actor_id: str = "clockworks/tiktok-scraper"

    def __post_init__(self):
        if self.batch_size < 1:
            raise ValueError(f"batch_size must be >= 1, got {self.batch_size}")
        if self.inter_batch_delay_seconds < 0:
            raise ValueError("inter_batch_delay_seconds must be >= 0")
        # Bounded fan-out: 1 (inline) .. MAX_WORKERS_CAP
        object.__setattr__(
            self, "max_workers", max(1, min(MAX_WORKERS_CAP, self.max_workers))
        )

    def with_overrides(self, **overrides) -> "EtlConfig":
        """Return a copy with the non-None overrides applied."""
        values = {k: v for k, v in overrides.items() if v is not None}
        if not values:
            return self
        current = {
            "batch_size": self.batch_size,
            "inter_batch_delay_seconds": self.inter_batch_delay_seconds,
            "max_workers": self.max_workers,
            "similarity_max_candidates": self.similarity_max_candidates,
            "report_top_n": self.report_top_n,
            "tiktok_actor_id": self.tiktok_actor_id,
        }
        current.update(values)
        return EtlConfig(**current)


def load_etl_config() -> EtlConfig:
    """Build an EtlConfig from Django settings."""
    return EtlConfig(
        batch_size=int(getattr(settings, "ETL_BATCH_SIZE", 10)),
        inter_batch_delay_seconds=float(
            getattr(settings, "ETL_INTER_BATCH_DELAY_SECONDS", 0.5)
        ),
        max_workers=int(getattr(settings, "ETL_MAX_WORKERS", 5)),
        similarity_max_candidates=int(
            getattr(settings, "ETL_SIMILARITY_MAX_CANDIDATES", 200)
        ),
        report_top_n=int(getattr(settings, "ETL_REPORT_TOP_N", 10)),
        tiktok_actor_id=getattr(
            settings, "APIFY_TIKTOK_ACTOR_ID", "clockworks/tiktok-scraper"
        ),
    )

"""
Trend report builder.

Reads the sound store and writes one immutable TrendReport. Sounds and
templates are never modified here.
"""

from __future__ import annotations

import logging
import uuid
from collections import Counter
from collections.abc import Callable
from datetime import datetime, timezone

from trendintel.core.enums import LifecycleStage
from trendintel.etl.dto import SoundDTO, TopSoundsDTO, TrendReportDTO
from trendintel.etl.store import EntityStore

logger = logging.getLogger(__name__)

DEFAULT_TOP_N = 10
UNKNOWN_GENRE = "unknown"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def genre_distribution(sounds: list[SoundDTO]) -> dict[str, int]:
    """Count sounds per genre, falling back to the sound category."""
    counts = Counter(sound.genre or sound.sound_category or UNKNOWN_GENRE for sound in sounds)
    return dict(sorted(counts.items(), key=lambda item: (-item[1], item[0])))


class ReportBuilder:
    def __init__(
        self,
        sounds_store: EntityStore[SoundDTO],
        reports_store: EntityStore[TrendReportDTO],
        top_n: int = DEFAULT_TOP_N,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.sounds_store = sounds_store
        self.reports_store = reports_store
        self.top_n = top_n
        self.clock = clock

    def _top_ids(self, metric: str) -> tuple[str, ...]:
        return tuple(s.id for s in self.sounds_store.query_top_by_metric(metric, self.top_n))

    def _stage_ids(self, stage: LifecycleStage) -> tuple[str, ...]:
        sounds = self.sounds_store.query_by_field("lifecycle.stage", stage.value, limit=self.top_n)
        return tuple(s.id for s in sounds)

    def build(self) -> TrendReportDTO:
        """
        Build and persist today's trend report.

        Returns:
            The stored, frozen TrendReportDTO
        """
        now = self.clock()
        report = TrendReportDTO(
            id=str(uuid.uuid4()),
            date=now.date(),
            top_sounds=TopSoundsDTO(
                daily=self._top_ids("stats.growth_velocity_7d"),
                weekly=self._top_ids("stats.growth_velocity_14d"),
                monthly=self._top_ids("stats.growth_velocity_30d"),
            ),
            emerging_sounds=self._stage_ids(LifecycleStage.EMERGING),
            peaking_sounds=self._stage_ids(LifecycleStage.PEAKING),
            declining_trends=self._stage_ids(LifecycleStage.DECLINING),
            genre_distribution=genre_distribution(self.sounds_store.list()),
            created_at=now,
        )
        self.reports_store.put(report)

        logger.info(
            "Generated trend report %s",
            report.id,
            extra={
                "report_date": report.date.isoformat(),
                "emerging": len(report.emerging_sounds),
                "peaking": len(report.peaking_sounds),
                "declining": len(report.declining_trends),
            },
        )
        return report

"""
Entity stores for Sound, Template and TrendReport records.

EntityStore[T] is the only persistence interface the engine sees:
get / put / update / query_by_field / query_top_by_metric / list.
Field names are dotted DTO paths ("stats.growth_velocity_7d",
"lifecycle.stage"). Multi-entity writes are never transactional.

Implementations:
- InMemoryEntityStore: dry runs and tests
- DjangoSoundStore / DjangoTemplateStore / DjangoReportStore: ORM rows in
  trendintel.etl.models

TrendStore bundles the three stores an ETL pass needs.
"""

from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from datetime import date
from typing import Any, Generic, Mapping, TypeVar

from django.db.models import F, Model
from pydantic import BaseModel

from trendintel.core.enums import ErrorType
from trendintel.etl import models
from trendintel.etl.dto import (
    SoundDTO,
    SoundLifecycleDTO,
    SoundProvenanceDTO,
    SoundStatsDTO,
    TemplateDTO,
    TemplateMetadataDTO,
    TemplateStatsDTO,
    TopSoundsDTO,
    TrendDataDTO,
    TrendReportDTO,
)
from trendintel.etl.errors import ETLError

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=BaseModel)

_MISSING = object()


# =============================================================================
# DOTTED PATH HELPERS
# =============================================================================


def get_path(data: Mapping[str, Any], path: str, default: Any = None) -> Any:
    """Read a dotted path out of nested mappings."""
    current: Any = data
    for part in path.split("."):
        if not isinstance(current, Mapping) or part not in current:
            return default
        current = current[part]
    return current


def set_path(data: dict[str, Any], path: str, value: Any) -> None:
    """
    Write a dotted path into nested dicts in place.

    Raises:
        ValueError: If any segment of the path is not an existing key
    """
    parts = path.split(".")
    current: Any = data
    for part in parts[:-1]:
        if not isinstance(current, dict) or not isinstance(current.get(part), dict):
            raise ValueError(f"Unknown field path: {path}")
        current = current[part]
    if not isinstance(current, dict) or parts[-1] not in current:
        raise ValueError(f"Unknown field path: {path}")
    current[parts[-1]] = value


def _metric_key(value: Any) -> tuple[int, Any]:
    # Missing metrics sort after every real value
    return (1, 0) if value is None else (0, -value)


# =============================================================================
# INTERFACE
# =============================================================================


class EntityStore(ABC, Generic[T]):
    """Keyed persistence for one DTO type."""

    dto_class: type[T]
    immutable: bool = False

    @abstractmethod
    def get(self, entity_id: str) -> T | None:
        pass

    @abstractmethod
    def put(self, entity: T) -> T:
        """Insert or replace an entity by id."""
        pass

    @abstractmethod
    def query_by_field(self, field: str, value: Any, limit: int | None = None) -> list[T]:
        pass

    @abstractmethod
    def query_top_by_metric(self, metric: str, limit: int) -> list[T]:
        """Highest values of `metric` first; ties keep store order."""
        pass

    @abstractmethod
    def list(self, limit: int | None = None) -> list[T]:
        pass

    def update(self, entity_id: str, fields: Mapping[str, Any]) -> T:
        """
        Apply dotted-path field updates to a stored entity.

        The merged record is re-validated before it is written.

        Raises:
            ETLError: If the store is immutable or the entity does not exist
            ValueError: If a field path is unknown
        """
        if self.immutable:
            raise ETLError(
                f"{self.dto_class.__name__} {entity_id} is immutable",
                error_type=ErrorType.IMMUTABLE_RECORD,
            )
        existing = self.get(entity_id)
        if existing is None:
            raise ETLError(
                f"{self.dto_class.__name__} {entity_id} not found",
                error_type=ErrorType.LOAD_ERROR,
            )
        data = existing.model_dump()
        for path, value in fields.items():
            set_path(data, path, value)
        return self.put(self.dto_class.model_validate(data))

    def _refuse_overwrite(self, entity_id: str) -> None:
        raise ETLError(
            f"{self.dto_class.__name__} {entity_id} already exists and is immutable",
            error_type=ErrorType.IMMUTABLE_RECORD,
        )


# =============================================================================
# IN-MEMORY
# =============================================================================


class InMemoryEntityStore(EntityStore[T]):
    """
    Dict-backed store. Entities are deep-copied on the way in and out so
    callers can never mutate stored state by accident.
    """

    def __init__(self, dto_class: type[T], immutable: bool = False):
        self.dto_class = dto_class
        self.immutable = immutable
        self._items: dict[str, T] = {}
        self._lock = threading.Lock()

    def get(self, entity_id: str) -> T | None:
        with self._lock:
            entity = self._items.get(entity_id)
        return entity.model_copy(deep=True) if entity is not None else None

    def put(self, entity: T) -> T:
        with self._lock:
            if self.immutable and entity.id in self._items:
                self._refuse_overwrite(entity.id)
            self._items[entity.id] = entity.model_copy(deep=True)
        return entity

    def query_by_field(self, field: str, value: Any, limit: int | None = None) -> list[T]:
        matches = [
            entity
            for entity in self._snapshot()
            if get_path(entity.model_dump(), field, _MISSING) == value
        ]
        return matches[:limit] if limit is not None else matches

    def query_top_by_metric(self, metric: str, limit: int) -> list[T]:
        entities = self._snapshot()
        if entities and get_path(entities[0].model_dump(), metric, _MISSING) is _MISSING:
            raise ValueError(f"Unknown metric path: {metric}")
        ranked = sorted(
            entities, key=lambda entity: _metric_key(get_path(entity.model_dump(), metric))
        )
        return ranked[:limit]

    def list(self, limit: int | None = None) -> list[T]:
        entities = self._snapshot()
        return entities[:limit] if limit is not None else entities

    def __len__(self) -> int:
        return len(self._items)

    def _snapshot(self) -> list[T]:
        with self._lock:
            items = list(self._items.values())
        return [entity.model_copy(deep=True) for entity in items]


# =============================================================================
# DJANGO ORM
# =============================================================================


class DjangoEntityStore(EntityStore[T]):
    """
    Base for ORM-backed stores.

    Subclasses declare the row model, the dotted-path -> column map used by
    queries, and the row <-> DTO conversions.
    """

    model_class: type[Model]
    field_columns: dict[str, str]

    @abstractmethod
    def to_row(self, entity: T) -> dict[str, Any]:
        pass

    @abstractmethod
    def from_row(self, row: Any) -> T:
        pass

    def column_for(self, field: str) -> str:
        try:
            return self.field_columns[field]
        except KeyError:
            raise ValueError(
                f"Field {field!r} is not queryable on {self.model_class.__name__}"
            ) from None

    def get(self, entity_id: str) -> T | None:
        row = self.model_class.objects.filter(pk=entity_id).first()
        return self.from_row(row) if row is not None else None

    def put(self, entity: T) -> T:
        if self.immutable and self.model_class.objects.filter(pk=entity.id).exists():
            self._refuse_overwrite(entity.id)
        self.model_class.objects.update_or_create(id=entity.id, defaults=self.to_row(entity))
        logger.debug("Stored %s %s", self.model_class.__name__, entity.id)
        return entity

    def query_by_field(self, field: str, value: Any, limit: int | None = None) -> list[T]:
        queryset = self.model_class.objects.filter(**{self.column_for(field): value}).order_by(
            "created_at", "pk"
        )
        if limit is not None:
            queryset = queryset[:limit]
        return [self.from_row(row) for row in queryset]

    def query_top_by_metric(self, metric: str, limit: int) -> list[T]:
        column = self.column_for(metric)
        queryset = self.model_class.objects.order_by(
            F(column).desc(nulls_last=True), "created_at", "pk"
        )[:limit]
        return [self.from_row(row) for row in queryset]

    def list(self, limit: int | None = None) -> list[T]:
        queryset = self.model_class.objects.order_by("created_at", "pk")
        if limit is not None:
            queryset = queryset[:limit]
        return [self.from_row(row) for row in queryset]


def _json_dates(mapping: Mapping[date, int]) -> dict[str, int]:
    return {day.isoformat(): value for day, value in sorted(mapping.items())}


class DjangoSoundStore(DjangoEntityStore[SoundDTO]):
    dto_class = SoundDTO
    model_class = models.Sound
    field_columns = {
        "id": "id",
        "title": "title",
        "genre": "genre",
        "sound_category": "sound_category",
        "usage_count": "source_usage_count",
        "stats.usage_count": "usage_count",
        "stats.growth_velocity_7d": "growth_velocity_7d",
        "stats.growth_velocity_14d": "growth_velocity_14d",
        "stats.growth_velocity_30d": "growth_velocity_30d",
        "stats.trend": "trend",
        "stats.peak_usage": "peak_usage",
        "stats.peak_date": "peak_date",
        "lifecycle.stage": "lifecycle_stage",
        "lifecycle.discovery_date": "discovery_date",
        "lifecycle.last_detected_date": "last_detected_date",
        "trend_cycle": "trend_cycle",
    }

    def to_row(self, entity: SoundDTO) -> dict[str, Any]:
        dumped = entity.model_dump(mode="json")
        return {
            "title": entity.title,
            "author_name": entity.author_name,
            "play_url": entity.play_url,
            "cover_thumb": entity.cover_thumb,
            "cover_medium": entity.cover_medium,
            "cover_large": entity.cover_large,
            "duration": entity.duration,
            "genre": entity.genre,
            "sound_category": entity.sound_category,
            "source_usage_count": entity.usage_count,
            "usage_count": entity.stats.usage_count,
            "growth_velocity_7d": entity.stats.growth_velocity_7d,
            "growth_velocity_14d": entity.stats.growth_velocity_14d,
            "growth_velocity_30d": entity.stats.growth_velocity_30d,
            "trend": entity.stats.trend,
            "peak_usage": entity.stats.peak_usage,
            "peak_date": entity.stats.peak_date,
            "lifecycle_stage": entity.lifecycle.stage,
            "discovery_date": entity.lifecycle.discovery_date,
            "last_detected_date": entity.lifecycle.last_detected_date,
            "trend_cycle": entity.trend_cycle,
            "usage_history": _json_dates(entity.usage_history),
            "template_usage": dumped["template_usage"],
            "related_templates": list(entity.related_templates),
            "template_correlations": dumped["template_correlations"],
            "metadata": dumped["metadata"] or {},
        }

    def from_row(self, row: models.Sound) -> SoundDTO:
        return SoundDTO(
            id=row.id,
            title=row.title,
            author_name=row.author_name,
            play_url=row.play_url,
            cover_thumb=row.cover_thumb,
            cover_medium=row.cover_medium,
            cover_large=row.cover_large,
            duration=row.duration,
            usage_count=row.source_usage_count,
            genre=row.genre,
            sound_category=row.sound_category,
            usage_history=row.usage_history or {},
            stats=SoundStatsDTO(
                usage_count=row.usage_count,
                growth_velocity_7d=row.growth_velocity_7d,
                growth_velocity_14d=row.growth_velocity_14d,
                growth_velocity_30d=row.growth_velocity_30d,
                trend=row.trend,
                peak_usage=row.peak_usage,
                peak_date=row.peak_date,
            ),
            lifecycle=SoundLifecycleDTO(
                stage=row.lifecycle_stage,
                discovery_date=row.discovery_date,
                last_detected_date=row.last_detected_date,
            ),
            trend_cycle=row.trend_cycle,
            template_usage=row.template_usage or [],
            related_templates=row.related_templates or [],
            template_correlations=row.template_correlations or [],
            metadata=SoundProvenanceDTO.model_validate(row.metadata) if row.metadata else None,
        )


class DjangoTemplateStore(DjangoEntityStore[TemplateDTO]):
    dto_class = TemplateDTO
    model_class = models.Template
    field_columns = {
        "id": "id",
        "category": "category",
        "source_video_id": "source_video_id",
        "author_id": "author_id",
        "created_by": "created_by",
        "stats.views": "views",
        "stats.likes": "likes",
        "stats.comments": "comments",
        "stats.shares": "shares",
        "stats.engagement_rate": "engagement_rate",
        "metadata.duration": "duration",
        "metadata.ai_detected_category": "ai_detected_category",
        "trend_data.velocity_score": "velocity_score",
        "trend_data.daily_growth": "daily_growth",
        "trend_data.weekly_growth": "weekly_growth",
        "trend_data.growth_rate": "growth_rate",
    }

    def to_row(self, entity: TemplateDTO) -> dict[str, Any]:
        dumped = entity.model_dump(mode="json")
        return {
            "title": entity.title,
            "description": entity.description,
            "category": entity.category,
            "source_video_id": entity.source_video_id,
            "author_id": entity.author_id,
            "author_name": entity.author_name,
            "thumbnail_url": entity.thumbnail_url,
            "video_url": entity.video_url,
            "created_by": entity.created_by,
            "views": entity.stats.views,
            "likes": entity.stats.likes,
            "comments": entity.stats.comments,
            "shares": entity.stats.shares,
            "engagement_rate": entity.stats.engagement_rate,
            "duration": entity.metadata.duration,
            "hashtags": list(entity.metadata.hashtags),
            "ai_detected_category": entity.metadata.ai_detected_category,
            "sections": dumped["sections"],
            "analysis": dumped["analysis"],
            "velocity_score": entity.trend_data.velocity_score,
            "daily_growth": entity.trend_data.daily_growth,
            "weekly_growth": entity.trend_data.weekly_growth,
            "growth_rate": entity.trend_data.growth_rate,
            "similar_templates": list(entity.trend_data.similar_templates),
            "daily_views": _json_dates(entity.trend_data.daily_views),
        }

    def from_row(self, row: models.Template) -> TemplateDTO:
        return TemplateDTO(
            id=row.id,
            title=row.title,
            description=row.description,
            category=row.category,
            source_video_id=row.source_video_id,
            author_id=row.author_id,
            author_name=row.author_name,
            thumbnail_url=row.thumbnail_url,
            video_url=row.video_url,
            created_by=row.created_by,
            stats=TemplateStatsDTO(
                views=row.views,
                likes=row.likes,
                comments=row.comments,
                shares=row.shares,
                engagement_rate=row.engagement_rate,
            ),
            metadata=TemplateMetadataDTO(
                duration=row.duration,
                hashtags=row.hashtags or [],
                ai_detected_category=row.ai_detected_category,
            ),
            sections=row.sections or [],
            analysis=row.analysis or {},
            trend_data=TrendDataDTO(
                velocity_score=row.velocity_score,
                daily_growth=row.daily_growth,
                weekly_growth=row.weekly_growth,
                growth_rate=row.growth_rate,
                similar_templates=row.similar_templates or [],
                daily_views=row.daily_views or {},
            ),
            created_at=row.created_at,
        )


class DjangoReportStore(DjangoEntityStore[TrendReportDTO]):
    dto_class = TrendReportDTO
    model_class = models.TrendReport
    immutable = True
    field_columns = {
        "id": "id",
        "date": "report_date",
        "created_at": "created_at",
    }

    def to_row(self, entity: TrendReportDTO) -> dict[str, Any]:
        return {
            "report_date": entity.date,
            "top_sounds_daily": list(entity.top_sounds.daily),
            "top_sounds_weekly": list(entity.top_sounds.weekly),
            "top_sounds_monthly": list(entity.top_sounds.monthly),
            "emerging_sounds": list(entity.emerging_sounds),
            "peaking_sounds": list(entity.peaking_sounds),
            "declining_trends": list(entity.declining_trends),
            "genre_distribution": dict(entity.genre_distribution),
            "created_at": entity.created_at,
        }

    def from_row(self, row: models.TrendReport) -> TrendReportDTO:
        return TrendReportDTO(
            id=str(row.id),
            date=row.report_date,
            top_sounds=TopSoundsDTO(
                daily=row.top_sounds_daily,
                weekly=row.top_sounds_weekly,
                monthly=row.top_sounds_monthly,
            ),
            emerging_sounds=row.emerging_sounds,
            peaking_sounds=row.peaking_sounds,
            declining_trends=row.declining_trends,
            genre_distribution=row.genre_distribution,
            created_at=row.created_at,
        )


# =============================================================================
# BUNDLES
# =============================================================================


class TrendStore:
    """The three entity stores one ETL pass reads and writes."""

    def __init__(
        self,
        sounds: EntityStore[SoundDTO],
        templates: EntityStore[TemplateDTO],
        reports: EntityStore[TrendReportDTO],
    ):
        self.sounds = sounds
        self.templates = templates
        self.reports = reports


class InMemoryTrendStore(TrendStore):
    def __init__(self):
        super().__init__(
            sounds=InMemoryEntityStore(SoundDTO),
            templates=InMemoryEntityStore(TemplateDTO),
            reports=InMemoryEntityStore(TrendReportDTO, immutable=True),
        )


class DjangoTrendStore(TrendStore):
    def __init__(self):
        super().__init__(
            sounds=DjangoSoundStore(),
            templates=DjangoTemplateStore(),
            reports=DjangoReportStore(),
        )

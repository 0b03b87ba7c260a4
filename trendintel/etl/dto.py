"""
trendintel ETL DTOs.

Pydantic v2 models for the records the engine reads and writes:
- Raw video records from the video source (camelCase on the wire)
- Sound, Template and TrendReport domain records
- ETL job records and analyzer responses

Enums come straight from trendintel.core.enums. TextChoices inherit from
str and Enum, so pydantic validates them natively and values never drift
between the ORM and the DTOs.
"""

from datetime import date, datetime
from typing import Any
from uuid import UUID

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    NonNegativeInt,
    field_validator,
    model_validator,
)
from pydantic.alias_generators import to_camel

from trendintel.core.enums import (
    JobStatus,
    LifecycleStage,
    Priority,
    TrendCycle,
    TrendDirection,
)

# TrendReportDTO has a field named "date", which would shadow the type
ReportDate = date


# =============================================================================
# RAW VIDEO RECORDS (video source wire shape)
# =============================================================================


class _WireModel(BaseModel):
    """Base for camelCase records coming from the video source."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="allow",
        coerce_numbers_to_str=True,
    )


class AuthorMetaDTO(_WireModel):
    id: str
    nickname: str
    avatar: str = ""


class VideoMetaDTO(_WireModel):
    duration: float = 0.0
    cover_url: str = ""


class VideoStatsDTO(_WireModel):
    play_count: int = 0
    digg_count: int = 0
    share_count: int = 0
    comment_count: int = 0

    @property
    def engagement_total(self) -> int:
        return self.digg_count + self.share_count + self.comment_count


class MusicMetaDTO(_WireModel):
    id: str | None = None
    title: str = ""
    author_name: str = ""
    usage_count: int | None = None
    play_url: str = ""
    cover_thumb: str = ""
    cover_medium: str = ""
    cover_large: str = ""
    duration: float | None = None
    original: bool = False
    genre: str = ""

    @field_validator("id", mode="before")
    @classmethod
    def _blank_id_is_none(cls, value: Any) -> Any:
        if value is None or (isinstance(value, str) and not value.strip()):
            return None
        return value


class RawVideoDTO(_WireModel):
    """
    One scraped short-video record.

    Only validated records (see trendintel.etl.validation.validate_video)
    should be parsed into this model.
    """

    id: str
    text: str = ""
    create_time: int | str | None = None
    author_meta: AuthorMetaDTO
    video_meta: VideoMetaDTO = Field(default_factory=VideoMetaDTO)
    hashtags: list[str] = Field(default_factory=list)
    stats: VideoStatsDTO = Field(default_factory=VideoStatsDTO)
    video_url: str = ""
    music: MusicMetaDTO | None = None

    @field_validator("hashtags", mode="before")
    @classmethod
    def _flatten_hashtags(cls, value: Any) -> Any:
        # Scrapers emit either ["tag"] or [{"name": "tag"}]
        if not value:
            return []
        tags = []
        for tag in value:
            if isinstance(tag, dict):
                tag = tag.get("name") or tag.get("title") or ""
            tag = str(tag).strip().lstrip("#")
            if tag:
                tags.append(tag)
        return tags


# =============================================================================
# SOUND
# =============================================================================


class SoundStatsDTO(BaseModel):
    usage_count: int = 0
    growth_velocity_7d: float = 0.0
    growth_velocity_14d: float = 0.0
    growth_velocity_30d: float = 0.0
    trend: TrendDirection = TrendDirection.STABLE
    peak_usage: int = 0
    peak_date: date | None = None


class SoundLifecycleDTO(BaseModel):
    stage: LifecycleStage = LifecycleStage.EMERGING
    discovery_date: date
    last_detected_date: date


class TemplateUsageDTO(BaseModel):
    """How one template (or source video) has used a sound."""
    template_id: str
    use_count: int = 1
    average_engagement: float = 0.0
    last_used: datetime


class TemplateCorrelationDTO(BaseModel):
    template_id: str
    correlation_score: float
    engagement_lift: float


class SoundProvenanceDTO(BaseModel):
    """Where and why a sound was extracted."""
    extracted_from: str
    extraction_priority: Priority
    extraction_reason: str
    processing_timestamp: datetime


class SoundDTO(BaseModel):
    """
    A sound tracked across videos.

    Field-level constraints (title length, duration range, media URLs) are
    enforced by validate_sound, not here, so that candidates can be built
    first and rejected with a reason afterwards.
    """

    id: str
    title: str = ""
    author_name: str = ""
    play_url: str = ""
    cover_thumb: str = ""
    cover_medium: str = ""
    cover_large: str = ""
    duration: float | None = None
    usage_count: int | None = None
    genre: str = ""
    sound_category: str = ""

    usage_history: dict[date, NonNegativeInt] = Field(default_factory=dict)
    stats: SoundStatsDTO = Field(default_factory=SoundStatsDTO)
    lifecycle: SoundLifecycleDTO
    trend_cycle: TrendCycle = TrendCycle.EMERGING

    template_usage: list[TemplateUsageDTO] = Field(default_factory=list)
    related_templates: list[str] = Field(default_factory=list)
    template_correlations: list[TemplateCorrelationDTO] = Field(default_factory=list)
    metadata: SoundProvenanceDTO | None = None

    @field_validator("related_templates")
    @classmethod
    def _dedupe_related(cls, value: list[str]) -> list[str]:
        return list(dict.fromkeys(value))

    @model_validator(mode="after")
    def _peak_date_in_history(self) -> "SoundDTO":
        peak_date = self.stats.peak_date
        if peak_date is not None and peak_date not in self.usage_history:
            raise ValueError(
                f"stats.peak_date {peak_date.isoformat()} is not a usage_history date"
            )
        return self


# =============================================================================
# TEMPLATE
# =============================================================================


class TemplateSectionDTO(BaseModel):
    model_config = ConfigDict(extra="allow")

    type: str = "content"
    start_time: float = 0.0
    duration: float = 0.0
    text: str = ""


class TemplateStatsDTO(BaseModel):
    views: int = 0
    likes: int = 0
    comments: int = 0
    shares: int = 0
    engagement_rate: float = 0.0


class TemplateMetadataDTO(BaseModel):
    duration: float = 0.0
    hashtags: list[str] = Field(default_factory=list)
    ai_detected_category: str = ""


class TrendDataDTO(BaseModel):
    velocity_score: float = 0.0
    daily_growth: float = 0.0
    weekly_growth: float = 0.0
    growth_rate: float = 0.0
    similar_templates: list[str] = Field(default_factory=list)
    daily_views: dict[date, int] = Field(default_factory=dict)


class TemplateDTO(BaseModel):
    """A content template derived from an analyzed trending video."""

    id: str
    title: str = ""
    description: str = ""
    category: str = "Trending"
    source_video_id: str = ""
    author_id: str = ""
    author_name: str = ""
    thumbnail_url: str = ""
    video_url: str = ""
    stats: TemplateStatsDTO = Field(default_factory=TemplateStatsDTO)
    metadata: TemplateMetadataDTO = Field(default_factory=TemplateMetadataDTO)
    sections: list[TemplateSectionDTO] = Field(default_factory=list)
    analysis: dict[str, Any] = Field(default_factory=dict)
    trend_data: TrendDataDTO = Field(default_factory=TrendDataDTO)
    created_by: str = "etl"
    created_at: datetime | None = None

    @model_validator(mode="after")
    def _clean_similar_templates(self) -> "TemplateDTO":
        # No self-reference, no duplicates, first occurrence wins
        cleaned = [
            template_id
            for template_id in dict.fromkeys(self.trend_data.similar_templates)
            if template_id != self.id
        ]
        self.trend_data.similar_templates = cleaned
        return self


# =============================================================================
# TREND REPORT
# =============================================================================


class TopSoundsDTO(BaseModel):
    model_config = ConfigDict(frozen=True)

    daily: tuple[str, ...] = ()
    weekly: tuple[str, ...] = ()
    monthly: tuple[str, ...] = ()


class TrendReportDTO(BaseModel):
    """Immutable snapshot of sound trends. Frozen once built."""

    model_config = ConfigDict(frozen=True)

    id: str
    date: ReportDate
    top_sounds: TopSoundsDTO = Field(default_factory=TopSoundsDTO)
    emerging_sounds: tuple[str, ...] = ()
    peaking_sounds: tuple[str, ...] = ()
    declining_trends: tuple[str, ...] = ()
    genre_distribution: dict[str, int] = Field(default_factory=dict)
    created_at: datetime


# =============================================================================
# ETL JOB
# =============================================================================


class EtlJobDTO(BaseModel):
    id: UUID
    name: str
    job_type: str
    status: JobStatus
    trigger_source: str = "manual"
    started_at: datetime
    ended_at: datetime | None = None
    duration_ms: int | None = None
    parameters: dict[str, Any] = Field(default_factory=dict)
    result: dict[str, Any] = Field(default_factory=dict)
    failure_reason: str = ""


# =============================================================================
# CONTENT ANALYZER RESPONSE
# =============================================================================


class AnalyzerResponseDTO(BaseModel):
    """
    Loose shape of a content analyzer response.

    Every field may be missing; sanitize_analysis fills the gaps.
    """

    model_config = ConfigDict(extra="allow")

    sections: list[dict[str, Any]] | None = None
    category: str | None = None
    analysis: dict[str, Any] | None = None

"""
trendintel domain enums.

All enums are Django TextChoices so they store as lowercase strings on the
ORM side and validate as plain str enums inside pydantic DTOs.
"""

from django.db import models


class LifecycleStage(models.TextChoices):
    """Where a sound sits on its usage curve."""
    EMERGING = "emerging", "Emerging"
    GROWING = "growing", "Growing"
    PEAKING = "peaking", "Peaking"
    DECLINING = "declining", "Declining"
    STABLE = "stable", "Stable"


class TrendDirection(models.TextChoices):
    """Sign of the 7-day growth velocity."""
    RISING = "rising", "Rising"
    FALLING = "falling", "Falling"
    STABLE = "stable", "Stable"


class TrendCycle(models.TextChoices):
    """Social-context tier derived from the lifecycle stage."""
    EMERGING = "emerging", "Emerging"
    GROWING = "growing", "Growing"
    PEAKING = "peaking", "Peaking"
    DECLINING = "declining", "Declining"
    MAINSTREAM = "mainstream", "Mainstream"


class Priority(models.TextChoices):
    """Processing priority assigned by the prioritizer."""
    HIGH = "high", "High"
    MEDIUM = "medium", "Medium"
    LOW = "low", "Low"

    @property
    def rank(self) -> int:
        """Numeric sort rank: high=1, medium=2, low=3."""
        return _PRIORITY_RANK[self.value]


_PRIORITY_RANK = {"high": 1, "medium": 2, "low": 3}


class JobStatus(models.TextChoices):
    """Status of a tracked ETL job."""
    RUNNING = "running", "Running"
    COMPLETED = "completed", "Completed"
    FAILED = "failed", "Failed"


class JobType(models.TextChoices):
    """Kinds of ETL runs the orchestrator tracks."""
    SOUND_TRENDING = "sound-trending", "Sound ETL (trending)"
    SOUND_METRICS = "sound-metrics", "Sound growth metrics"
    SOUND_STATS = "sound-stats", "Sound usage refresh"
    SOUND_LINKING = "sound-linking", "Sound/template linking"
    AI_TRENDING = "ai-trending", "AI template analysis (trending)"
    AI_BATCH = "ai-batch", "AI template analysis (video ids)"
    TEMPLATE_METRICS = "template-metrics", "Template metrics refresh"
    TEMPLATE_SIMILARITY = "template-similarity", "Template similarity scan"
    TREND_REPORT = "trend-report", "Trend report"


class SoundCategory(models.TextChoices):
    """Coarse sound category used as a genre fallback."""
    MUSIC = "music", "Music"
    VOICEOVER = "voiceover", "Voiceover"
    SOUND_EFFECT = "sound_effect", "Sound Effect"
    ORIGINAL = "original", "Original Sound"
    OTHER = "other", "Other"


class ErrorType(models.TextChoices):
    """ETL error classification, keyed by the phase the error surfaced in."""
    EXTRACT_ERROR = "extract_error", "Extract"
    TRANSFORM_ERROR = "transform_error", "Transform"
    LOAD_ERROR = "load_error", "Load"
    VALIDATION_ERROR = "validation_error", "Validation"
    TRANSIENT_IO_ERROR = "transient_io_error", "Transient I/O"
    JOB_FATAL_ERROR = "job_fatal_error", "Job Fatal"
    CANCELLED = "cancelled", "Cancelled"
    IMMUTABLE_RECORD = "immutable_record", "Immutable Record"
    UNKNOWN_ERROR = "unknown_error", "Unknown"

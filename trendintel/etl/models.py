"""
ETL persistence models.

Models:
- Sound: audio track tracked across scraped videos, with usage history
- Template: content template derived from an analyzed source video
- TrendReport: immutable snapshot of sound trends for one run
- EtlJob: one tracked ETL run (running -> completed | failed)

Rows are the storage shape only; trendintel.etl.store maps them to and
from the pydantic DTOs the engine works with.
"""

from __future__ import annotations

import uuid

from django.db import models
from django.utils import timezone

from trendintel.core.enums import JobStatus, LifecycleStage, TrendCycle, TrendDirection


class Sound(models.Model):
    """
    A sound (audio track) seen on trending videos.

    usage_history maps ISO date strings to usage counts and only ever gains
    or overwrites keys for the current day.
    """

    id = models.CharField(primary_key=True, max_length=255)
    title = models.CharField(max_length=200)
    author_name = models.CharField(max_length=255, blank=True)
    play_url = models.URLField(max_length=2000, blank=True)
    cover_thumb = models.URLField(max_length=2000, blank=True)
    cover_medium = models.URLField(max_length=2000, blank=True)
    cover_large = models.URLField(max_length=2000, blank=True)
    duration = models.FloatField(null=True, blank=True)  # seconds
    genre = models.CharField(max_length=100, blank=True)
    sound_category = models.CharField(max_length=50, blank=True)

    # Usage count as reported by the source; null when it reported none
    source_usage_count = models.BigIntegerField(null=True, blank=True)

    # Stats
    usage_count = models.BigIntegerField(default=0)
    growth_velocity_7d = models.FloatField(default=0.0)
    growth_velocity_14d = models.FloatField(default=0.0)
    growth_velocity_30d = models.FloatField(default=0.0)
    trend = models.CharField(
        max_length=20, choices=TrendDirection.choices, default=TrendDirection.STABLE
    )
    peak_usage = models.BigIntegerField(default=0)
    peak_date = models.DateField(null=True, blank=True)

    # Lifecycle
    lifecycle_stage = models.CharField(
        max_length=20, choices=LifecycleStage.choices, default=LifecycleStage.EMERGING
    )
    discovery_date = models.DateField(default=timezone.localdate)
    last_detected_date = models.DateField(default=timezone.localdate)
    trend_cycle = models.CharField(
        max_length=20, choices=TrendCycle.choices, default=TrendCycle.EMERGING
    )

    usage_history = models.JSONField(default=dict, blank=True)  # {"2024-05-01": 1200}
    template_usage = models.JSONField(default=list, blank=True)
    related_templates = models.JSONField(default=list, blank=True)
    template_correlations = models.JSONField(default=list, blank=True)
    metadata = models.JSONField(default=dict, blank=True)  # extraction provenance

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "etl_sound"
        indexes = [
            models.Index(fields=["lifecycle_stage"]),
            models.Index(fields=["-growth_velocity_7d"]),
            models.Index(fields=["-usage_count"]),
        ]

    def __str__(self) -> str:
        return f"{self.title} ({self.id})"


class Template(models.Model):
    """
    A reusable content template derived from one analyzed trending video.
    """

    id = models.CharField(primary_key=True, max_length=255)
    title = models.CharField(max_length=500, blank=True)
    description = models.TextField(blank=True)
    category = models.CharField(max_length=100, default="Trending")
    source_video_id = models.CharField(max_length=255, blank=True)
    author_id = models.CharField(max_length=255, blank=True)
    author_name = models.CharField(max_length=255, blank=True)
    thumbnail_url = models.URLField(max_length=2000, blank=True)
    video_url = models.URLField(max_length=2000, blank=True)
    created_by = models.CharField(max_length=100, default="etl")

    # Stats
    views = models.BigIntegerField(default=0)
    likes = models.BigIntegerField(default=0)
    comments = models.BigIntegerField(default=0)
    shares = models.BigIntegerField(default=0)
    engagement_rate = models.FloatField(default=0.0)

    # Metadata
    duration = models.FloatField(default=0.0)
    hashtags = models.JSONField(default=list, blank=True)
    ai_detected_category = models.CharField(max_length=100, blank=True)

    sections = models.JSONField(default=list, blank=True)
    analysis = models.JSONField(default=dict, blank=True)  # sanitized analyzer payload

    # Trend data
    velocity_score = models.FloatField(default=0.0)
    daily_growth = models.FloatField(default=0.0)
    weekly_growth = models.FloatField(default=0.0)
    growth_rate = models.FloatField(default=0.0)
    similar_templates = models.JSONField(default=list, blank=True)
    daily_views = models.JSONField(default=dict, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "etl_template"
        indexes = [
            models.Index(fields=["category"]),
            models.Index(fields=["source_video_id"]),
            models.Index(fields=["-velocity_score"]),
        ]

    def __str__(self) -> str:
        return f"{self.title or self.id} [{self.category}]"


class TrendReport(models.Model):
    """
    Immutable trend snapshot. Written once per reporting run, never updated.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    report_date = models.DateField(default=timezone.localdate)
    top_sounds_daily = models.JSONField(default=list, blank=True)
    top_sounds_weekly = models.JSONField(default=list, blank=True)
    top_sounds_monthly = models.JSONField(default=list, blank=True)
    emerging_sounds = models.JSONField(default=list, blank=True)
    peaking_sounds = models.JSONField(default=list, blank=True)
    declining_trends = models.JSONField(default=list, blank=True)
    genre_distribution = models.JSONField(default=dict, blank=True)
    created_at = models.DateTimeField(default=timezone.now)

    class Meta:
        db_table = "etl_trend_report"
        indexes = [
            models.Index(fields=["-report_date"]),
        ]

    def __str__(self) -> str:
        return f"TrendReport {self.report_date.isoformat()}"


class EtlJob(models.Model):
    """
    One tracked ETL run.

    Lifecycle: RUNNING -> COMPLETED | FAILED, sealed exactly once.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    name = models.CharField(max_length=255)
    job_type = models.CharField(max_length=50)
    status = models.CharField(
        max_length=20, choices=JobStatus.choices, default=JobStatus.RUNNING
    )
    trigger_source = models.CharField(max_length=20, default="manual")
    started_at = models.DateTimeField(default=timezone.now)
    ended_at = models.DateTimeField(null=True, blank=True)
    duration_ms = models.PositiveIntegerField(null=True, blank=True)
    parameters = models.JSONField(default=dict, blank=True)
    result_json = models.JSONField(default=dict, blank=True)
    failure_reason = models.TextField(blank=True)

    class Meta:
        db_table = "etl_job"
        indexes = [
            models.Index(fields=["status", "started_at"]),
            models.Index(fields=["job_type", "started_at"]),
        ]

    def __str__(self) -> str:
        return f"{self.name} ({self.job_type}) [{self.status}]"

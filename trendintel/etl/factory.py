"""
Wiring for management commands.

Builds stores, trackers, sources and analyzers from Django settings.
A dry run keeps everything in memory so nothing is written to the
database.
"""

from __future__ import annotations

from pathlib import Path

from django.conf import settings

from trendintel.etl.analyzer import ContentAnalyzer, HeuristicContentAnalyzer, LLMContentAnalyzer
from trendintel.etl.config import EtlConfig, load_etl_config
from trendintel.etl.jobs import DjangoJobTracker, InMemoryJobTracker, JobTracker
from trendintel.etl.store import DjangoTrendStore, InMemoryTrendStore, TrendStore
from trendintel.integrations.apify import ApifyClient, ApifyVideoSource, StaticVideoSource, VideoSource
from trendintel.integrations.llm import LLMClient


def build_store(dry_run: bool = False) -> TrendStore:
    return InMemoryTrendStore() if dry_run else DjangoTrendStore()


def build_tracker(dry_run: bool = False) -> JobTracker:
    return InMemoryJobTracker() if dry_run else DjangoJobTracker()


def build_video_source(
    fixture: str | Path | None = None, config: EtlConfig | None = None
) -> VideoSource:
    """
    Fixture file if given, otherwise the Apify TikTok actor.

    The Apify source still refuses to run unless APIFY_ENABLED is set.
    """
    if fixture:
        return StaticVideoSource.from_file(fixture)

    config = config or load_etl_config()
    client = ApifyClient(
        token=settings.APIFY_TOKEN or "disabled",
        base_url=settings.APIFY_BASE_URL,
    )
    return ApifyVideoSource(
        client,
        actor_id=config.tiktok_actor_id,
        timeout_s=getattr(settings, "APIFY_RUN_TIMEOUT_S", 180),
    )


def build_analyzer(heuristic: bool = False) -> ContentAnalyzer:
    if heuristic:
        return HeuristicContentAnalyzer()
    return LLMContentAnalyzer(LLMClient())

"""
Management command to run the sound ETL.

Usage:
    python manage.py etl_sounds
    python manage.py etl_sounds --max-items=50 --batch-size=10 --delay=0.5
    python manage.py etl_sounds --fixture=videos.json --dry-run
    python manage.py etl_sounds --link-templates --update-stats
"""

from __future__ import annotations

import logging

from django.core.management.base import BaseCommand, CommandError

from trendintel.etl.config import load_etl_config
from trendintel.etl.errors import ETLError
from trendintel.etl.factory import build_store, build_tracker, build_video_source
from trendintel.etl.pipelines import SoundEtlPipeline
from trendintel.integrations.apify import VideoFilter

logger = logging.getLogger(__name__)


class Command(BaseCommand):
    help = "Extract sounds from trending videos, update growth metrics and write a trend report"

    def add_arguments(self, parser):
        parser.add_argument(
            "--max-items",
            type=int,
            default=30,
            help="Maximum number of videos to fetch (default: 30)",
        )
        parser.add_argument(
            "--hashtag",
            type=str,
            default="",
            help="Fetch videos for a hashtag instead of the trending feed",
        )
        parser.add_argument(
            "--batch-size",
            type=int,
            default=None,
            help="Videos per batch (default: ETL_BATCH_SIZE)",
        )
        parser.add_argument(
            "--delay",
            type=float,
            default=None,
            help="Seconds to wait between batches (default: ETL_INTER_BATCH_DELAY_SECONDS)",
        )
        parser.add_argument(
            "--dry-run",
            action="store_true",
            help="Use in-memory stores; nothing is written to the database",
        )
        parser.add_argument(
            "--fixture",
            type=str,
            default=None,
            help="Read videos from a JSON file instead of Apify",
        )
        parser.add_argument(
            "--link-templates",
            action="store_true",
            help="Also link stored sounds to the templates made from their videos",
        )
        parser.add_argument(
            "--update-stats",
            action="store_true",
            help="Also refresh usage counts for the fastest-growing sounds",
        )

    def handle(self, *args, **options):
        dry_run = options["dry_run"]
        config = load_etl_config().with_overrides(
            batch_size=options["batch_size"],
            inter_batch_delay_seconds=options["delay"],
        )
        hashtag = options["hashtag"]
        video_filter = VideoFilter(
            mode="hashtag" if hashtag else "trending",
            query=hashtag,
            max_items=options["max_items"],
        )

        pipeline = SoundEtlPipeline(
            store=build_store(dry_run),
            video_source=build_video_source(options["fixture"], config),
            tracker=build_tracker(dry_run),
            config=config,
        )

        if dry_run:
            self.stdout.write(self.style.WARNING("Dry run: results are not persisted"))

        self.stdout.write(f"Running sound ETL ({video_filter.mode}, max {video_filter.max_items})...")
        try:
            result = pipeline.process_sounds_from_trending(video_filter)
        except ETLError as e:
            raise CommandError(f"Sound ETL failed: {e.summary()}")

        by_priority = result.details.get("by_priority", {})
        self.stdout.write(f"  Stored: {result.processed}")
        self.stdout.write(f"  Failed: {result.failed}")
        self.stdout.write(f"  Skipped: {result.skipped}")
        self.stdout.write(
            "  By priority: "
            + ", ".join(f"{name}={count}" for name, count in by_priority.items())
        )
        self.stdout.write(f"  Report: {result.details.get('report_id')}")

        if options["link_templates"]:
            linked = pipeline.link_sounds_to_templates()
            self.stdout.write(f"  Linked: {linked.processed} sounds ({linked.skipped} templates skipped)")

        if options["update_stats"]:
            stats = pipeline.update_sound_stats()
            self.stdout.write(f"  Usage refreshed: {stats.processed} sounds ({stats.failed} failed)")

        self.stdout.write(self.style.SUCCESS(f"Sound ETL complete (job {result.job_id})"))

"""
Management command to run the AI template ETL.

Usage:
    python manage.py etl_templates
    python manage.py etl_templates --category=dance --max-items=20
    python manage.py etl_templates --update-metrics
    python manage.py etl_templates --video-ids=7301,7302 --batch-size=2
    python manage.py etl_templates --fixture=videos.json --dry-run
"""

from __future__ import annotations

import logging

from django.core.management.base import BaseCommand, CommandError

from trendintel.etl.config import load_etl_config
from trendintel.etl.errors import ETLError
from trendintel.etl.factory import build_analyzer, build_store, build_tracker, build_video_source
from trendintel.etl.pipelines import TemplateEtlPipeline

logger = logging.getLogger(__name__)


class Command(BaseCommand):
    help = "Analyze trending videos into content templates"

    def add_arguments(self, parser):
        parser.add_argument(
            "--max-items",
            type=int,
            default=30,
            help="Maximum number of videos to fetch (default: 30)",
        )
        parser.add_argument(
            "--category",
            type=str,
            default="",
            help="Fetch and file templates under this category",
        )
        parser.add_argument(
            "--video-ids",
            type=str,
            default="",
            help="Comma-separated video ids to analyze instead of a feed",
        )
        parser.add_argument(
            "--batch-size",
            type=int,
            default=5,
            help="Videos per batch with --video-ids (default: 5)",
        )
        parser.add_argument(
            "--update-metrics",
            action="store_true",
            help="Only refresh velocity and similar templates for stored templates",
        )
        parser.add_argument(
            "--limit",
            type=int,
            default=50,
            help="Templates to refresh with --update-metrics (default: 50)",
        )
        parser.add_argument(
            "--heuristic",
            action="store_true",
            help="Skip the LLM and use the keyword analyzer",
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

    def handle(self, *args, **options):
        dry_run = options["dry_run"]
        config = load_etl_config()
        update_metrics = options["update_metrics"]

        pipeline = TemplateEtlPipeline(
            store=build_store(dry_run),
            video_source=build_video_source(options["fixture"], config),
            analyzer=build_analyzer(heuristic=options["heuristic"]),
            tracker=build_tracker(dry_run),
            config=config,
        )

        if dry_run:
            self.stdout.write(self.style.WARNING("Dry run: results are not persisted"))

        try:
            if update_metrics:
                self.stdout.write(f"Updating metrics for up to {options['limit']} templates...")
                result = pipeline.update_all_template_metrics(options["limit"])
            elif options["video_ids"]:
                video_ids = [v.strip() for v in options["video_ids"].split(",") if v.strip()]
                self.stdout.write(f"Analyzing {len(video_ids)} videos...")
                result = pipeline.process_batch_videos(
                    video_ids, batch_size=options["batch_size"]
                )
            elif options["category"]:
                self.stdout.write(f"Running AI template ETL for category {options['category']!r}...")
                result = pipeline.process_category_with_ai(
                    options["category"], max_items=options["max_items"]
                )
            else:
                self.stdout.write("Running AI template ETL for trending videos...")
                result = pipeline.process_trending_with_ai(max_items=options["max_items"])
        except ETLError as e:
            raise CommandError(f"Template ETL failed: {e.summary()}")

        self.stdout.write(f"  Processed: {result.processed}")
        self.stdout.write(f"  Failed: {result.failed}")
        self.stdout.write(f"  Skipped: {result.skipped}")
        self.stdout.write(self.style.SUCCESS(f"Template ETL complete (job {result.job_id})"))

"""
Management command to generate a sound trend report.

Usage:
    python manage.py etl_report
"""

from __future__ import annotations

from django.core.management.base import BaseCommand

from trendintel.etl.config import load_etl_config
from trendintel.etl.factory import build_store, build_tracker, build_video_source
from trendintel.etl.pipelines import SoundEtlPipeline


class Command(BaseCommand):
    help = "Generate today's sound trend report from stored sounds"

    def add_arguments(self, parser):
        parser.add_argument(
            "--recalculate",
            action="store_true",
            help="Recompute growth metrics for every stored sound first",
        )

    def handle(self, *args, **options):
        config = load_etl_config()
        pipeline = SoundEtlPipeline(
            store=build_store(),
            video_source=build_video_source(config=config),
            tracker=build_tracker(),
            config=config,
        )

        if options["recalculate"]:
            metrics = pipeline.calculate_growth_metrics()
            self.stdout.write(
                f"  Metrics updated: {metrics.processed} ({metrics.skipped} without enough history)"
            )

        report = pipeline.generate_report()
        self.stdout.write(f"  Daily top: {', '.join(report.top_sounds.daily) or '-'}")
        self.stdout.write(f"  Emerging: {len(report.emerging_sounds)}")
        self.stdout.write(f"  Peaking: {len(report.peaking_sounds)}")
        self.stdout.write(f"  Declining: {len(report.declining_trends)}")
        for genre, count in report.genre_distribution.items():
            self.stdout.write(f"  {genre}: {count}")
        self.stdout.write(self.style.SUCCESS(f"Report {report.id} for {report.date.isoformat()}"))

"""
Management command to list similar template pairs.

Usage:
    python manage.py etl_similar
    python manage.py etl_similar --category=dance --min-similarity=0.7 --max-results=10
"""

from __future__ import annotations

from django.core.management.base import BaseCommand, CommandError

from trendintel.etl.config import load_etl_config
from trendintel.etl.factory import build_analyzer, build_store, build_tracker, build_video_source
from trendintel.etl.pipelines import TemplateEtlPipeline


class Command(BaseCommand):
    help = "Find similar template pairs across stored templates"

    def add_arguments(self, parser):
        parser.add_argument("--category", type=str, default="", help="Limit to one category")
        parser.add_argument(
            "--min-similarity",
            type=float,
            default=0.6,
            help="Minimum similarity score, 0..1 (default: 0.6)",
        )
        parser.add_argument(
            "--max-results",
            type=int,
            default=20,
            help="Maximum pairs to show (default: 20)",
        )

    def handle(self, *args, **options):
        min_similarity = options["min_similarity"]
        if not 0 <= min_similarity <= 1:
            raise CommandError("--min-similarity must be between 0 and 1")

        config = load_etl_config()
        pipeline = TemplateEtlPipeline(
            store=build_store(),
            video_source=build_video_source(config=config),
            analyzer=build_analyzer(heuristic=True),
            tracker=build_tracker(),
            config=config,
        )
        found = pipeline.find_all_similar_templates(
            category=options["category"] or None,
            min_similarity=min_similarity,
            max_results=options["max_results"],
        )

        for pair in found.pairs:
            self.stdout.write(f"  {pair.score:.2f}  {pair.id_a} ~ {pair.id_b}  [{pair.category}]")
        self.stdout.write(
            self.style.SUCCESS(
                f"Found {found.total_pairs} similar pairs, showing {len(found.pairs)}"
            )
        )

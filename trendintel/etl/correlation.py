"""
Sound <-> template engagement correlation.

A template's engagement (likes + shares) is compared to the average of its
category. The lift maps onto a 0..1 correlation score centred on 0.5.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass

from trendintel.etl.dto import TemplateCorrelationDTO, TemplateDTO
from trendintel.etl.store import EntityStore

logger = logging.getLogger(__name__)


def template_engagement(template: TemplateDTO) -> int:
    return template.stats.likes + template.stats.shares


def correlation_score(engagement_lift: float) -> float:
    """0.5 means average; clamped to [0, 1]."""
    return min(1.0, max(0.0, 0.5 + engagement_lift / 2))


@dataclass
class CorrelationAnalyzer:
    templates_store: EntityStore[TemplateDTO]

    def category_average_engagement(self, category: str) -> float:
        templates = self.templates_store.query_by_field("category", category)
        if not templates:
            return 0.0
        return sum(template_engagement(t) for t in templates) / len(templates)

    def correlate(
        self, entity_id: str, related_ids: Iterable[str]
    ) -> list[TemplateCorrelationDTO]:
        """
        Score each related template against its category average.

        Templates missing from the store are skipped. Results are sorted by
        correlation_score descending.
        """
        averages: dict[str, float] = {}
        correlations = []
        for template_id in dict.fromkeys(related_ids):
            template = self.templates_store.get(template_id)
            if template is None:
                logger.debug(
                    "Skipping missing template",
                    extra={"entity_id": entity_id, "template_id": template_id},
                )
                continue

            if template.category not in averages:
                averages[template.category] = self.category_average_engagement(template.category)
            average = averages[template.category]

            lift = template_engagement(template) / average - 1 if average > 0 else 0.0
            correlations.append(
                TemplateCorrelationDTO(
                    template_id=template.id,
                    correlation_score=correlation_score(lift),
                    engagement_lift=lift,
                )
            )

        correlations.sort(key=lambda c: c.correlation_score, reverse=True)
        return correlations

"""
Template similarity search.

Scores are the comparator's raw 0-100 value divided by 100. Two modes:
- find_similar: rank same-category templates against one target
- find_all_pairs: every unordered pair of a capped candidate set, thresholded

The corpus-wide scan is O(n^2), so the candidate set is capped at
max_candidates before any comparison runs.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass

from trendintel.etl.dto import TemplateDTO
from trendintel.etl.store import EntityStore

logger = logging.getLogger(__name__)

Comparator = Callable[[TemplateDTO, TemplateDTO], float]

DEFAULT_MAX_CANDIDATES = 200
MAX_RAW_SCORE = 100.0


def template_similarity(a: TemplateDTO, b: TemplateDTO) -> float:
    """
    Default comparator on a 0-100 scale. Symmetric in its arguments.

    - duration closeness: up to 20 (2 points lost per second apart)
    - section structure: 10 for equal section counts plus up to 30 for
      matching section types position by position
    - hashtag overlap: up to 20, shared tags over the larger tag set
    - engagement-rate closeness: up to 20 (10 points lost per unit apart)
    """
    score = 0.0

    duration_diff = abs(a.metadata.duration - b.metadata.duration)
    score += max(0.0, 20 - duration_diff * 2)

    if len(a.sections) == len(b.sections):
        score += 10
        if a.sections:
            matching = sum(
                1 for left, right in zip(a.sections, b.sections) if left.type == right.type
            )
            score += 30 * (matching / len(a.sections))

    tags_a = set(a.metadata.hashtags)
    tags_b = set(b.metadata.hashtags)
    score += 20 * (len(tags_a & tags_b) / max(len(tags_a), len(tags_b), 1))

    engagement_diff = abs(a.stats.engagement_rate - b.stats.engagement_rate)
    score += max(0.0, 20 - engagement_diff * 10)

    return score


@dataclass(frozen=True)
class SimilarityMatch:
    id: str
    score: float


@dataclass(frozen=True)
class SimilarityPair:
    id_a: str
    id_b: str
    score: float
    category: str


class SimilarityEngine:
    """Pairwise template similarity over a template store."""

    def __init__(
        self,
        templates_store: EntityStore[TemplateDTO],
        comparator: Comparator = template_similarity,
        max_candidates: int = DEFAULT_MAX_CANDIDATES,
    ):
        if max_candidates < 2:
            raise ValueError("max_candidates must be at least 2")
        self.templates_store = templates_store
        self.comparator = comparator
        self.max_candidates = max_candidates

    def score(self, a: TemplateDTO, b: TemplateDTO) -> float:
        return self.comparator(a, b) / MAX_RAW_SCORE

    def find_similar(self, template_id: str, top_n: int = 5) -> list[SimilarityMatch]:
        """
        Rank same-category templates by similarity to `template_id`.

        Returns an empty list when the target does not exist.
        """
        target = self.templates_store.get(template_id)
        if target is None:
            logger.warning("Similarity target not found", extra={"template_id": template_id})
            return []

        # One extra slot so the target itself does not eat into the cap
        candidates = self.templates_store.query_by_field(
            "category", target.category, limit=self.max_candidates + 1
        )
        matches = [
            SimilarityMatch(id=candidate.id, score=self.score(target, candidate))
            for candidate in candidates
            if candidate.id != target.id
        ]
        matches.sort(key=lambda match: match.score, reverse=True)
        return matches[:top_n]

    def find_all_pairs(
        self,
        templates: Iterable[TemplateDTO],
        min_similarity: float = 0.6,
        max_results: int | None = 20,
    ) -> list[SimilarityPair]:
        """
        Compare every unordered pair once and keep those scoring >= min_similarity.

        Results are sorted by score descending; equal scores keep enumeration
        order. max_results=None returns every kept pair.
        """
        candidates = list(templates)
        if len(candidates) > self.max_candidates:
            logger.warning(
                "Similarity candidate set capped",
                extra={"candidates": len(candidates), "cap": self.max_candidates},
            )
            candidates = candidates[: self.max_candidates]

        pairs = []
        for i, first in enumerate(candidates):
            for second in candidates[i + 1:]:
                if first.id == second.id:
                    continue
                score = self.score(first, second)
                if score >= min_similarity:
                    pairs.append(
                        SimilarityPair(
                            id_a=first.id,
                            id_b=second.id,
                            score=score,
                            category=first.category,
                        )
                    )

        # sort() is stable, so ties stay in enumeration order
        pairs.sort(key=lambda pair: pair.score, reverse=True)
        return pairs if max_results is None else pairs[:max_results]

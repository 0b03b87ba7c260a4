"""
Content analyzers.

A ContentAnalyzer looks at one video and returns
{sections, category, analysis: {detected_elements, engagement_insights,
similarity_patterns}}. Responses are treated as untrusted and always go
through sanitize_analysis before they are stored.

LLMContentAnalyzer prompts the LLM client for that structure. When the LLM
is disabled it falls back to heuristic_analysis, a keyword and timing
based estimate that needs no provider.
"""

from __future__ import annotations

import json
import logging
import re
from abc import ABC, abstractmethod
from typing import Any, Mapping

from trendintel.etl.dto import AnalyzerResponseDTO, RawVideoDTO
from trendintel.integrations.llm.client import LLMClient, parse_structured_output

logger = logging.getLogger(__name__)

# Keyword lists checked against hashtags first, then caption text
CATEGORY_KEYWORDS = {
    "product": ["product", "unboxing", "review", "haul", "shopping"],
    "tutorial": ["tutorial", "how to", "diy", "learn", "step by step", "tips"],
    "dance": ["dance", "choreography", "challenge", "trending dance"],
    "comedy": ["comedy", "funny", "joke", "humor", "prank"],
    "lifestyle": ["lifestyle", "day in the life", "routine", "vlog"],
    "fashion": ["fashion", "outfit", "style", "clothing", "accessories"],
    "beauty": ["beauty", "makeup", "skincare", "haircare", "cosmetics"],
    "food": ["food", "recipe", "cooking", "baking", "meal prep"],
    "fitness": ["fitness", "workout", "exercise", "gym", "training"],
    "educational": ["facts", "learn", "education", "knowledge", "science"],
}

CTA_PATTERNS = (
    "follow", "subscribe", "like", "comment", "share",
    "click", "link in bio", "check out", "try", "get",
    "buy", "shop", "order", "sign up", "join",
    "learn more", "find out", "discover", "visit", "contact",
)

SYSTEM_PROMPT = """You analyze short-form vertical videos and describe them as reusable content templates.
Respond with a single JSON object and nothing else, shaped as:
{
  "category": "<one word category>",
  "sections": [{"type": "intro|content|outro|hook|cta", "start_time": <seconds>, "duration": <seconds>, "text": "<on-screen text>"}],
  "analysis": {
    "detected_elements": {"has_caption": <bool>, "has_cta": <bool>, "has_text_overlay": <bool>},
    "engagement_insights": ["<short insight>", ...],
    "similarity_patterns": "<what makes this format recognizable>"
  }
}"""


class ContentAnalyzer(ABC):
    """Returns structural and semantic analysis for one video."""

    @abstractmethod
    def analyze(self, video: RawVideoDTO) -> Mapping[str, Any]:
        pass


# =============================================================================
# HEURISTICS
# =============================================================================


def categorize_video(video: RawVideoDTO) -> str:
    """First category whose keywords appear in a hashtag, else in the caption."""
    hashtags = [tag.lower() for tag in video.hashtags]
    for category, keywords in CATEGORY_KEYWORDS.items():
        if any(keyword in tag for tag in hashtags for keyword in keywords):
            return category

    text = video.text.lower()
    for category, keywords in CATEGORY_KEYWORDS.items():
        if any(keyword in text for keyword in keywords):
            return category

    return "other"


def detect_cta(text: str) -> bool:
    lowered = text.lower()
    return any(pattern in lowered for pattern in CTA_PATTERNS)


def estimate_sections(video: RawVideoDTO) -> list[dict[str, Any]]:
    """
    Split a video into intro (20%), content (60%) and outro (20%).

    Videos without a positive duration get no sections.
    """
    total = video.video_meta.duration or 0
    if total <= 0:
        return []

    sentences = [s for s in re.split(r"[.!?] ", video.text) if len(s) > 10]
    intro = round(total * 0.2, 1)
    content = round(total * 0.6, 1)
    outro = round(total * 0.2, 1)

    content_text = sentences[1][:50] if len(sentences) > 1 else ""
    if video.hashtags:
        tags = " ".join(f"#{tag}" for tag in video.hashtags[:3])
        content_text = f"{content_text} {tags}".strip()

    return [
        {
            "type": "intro",
            "start_time": 0.0,
            "duration": intro,
            "text": sentences[0][:50] if sentences else "",
        },
        {"type": "content", "start_time": intro, "duration": content, "text": content_text},
        {
            "type": "outro",
            "start_time": round(intro + content, 1),
            "duration": outro,
            "text": f"Follow for more! @{video.author_meta.nickname}",
        },
    ]


def heuristic_analysis(video: RawVideoDTO) -> dict[str, Any]:
    """Provider-free analysis built from captions, hashtags and timing."""
    sections = estimate_sections(video)
    stats = video.stats
    insights = []
    if stats.play_count:
        rate = stats.engagement_total / stats.play_count * 100
        insights.append(f"Engagement rate {rate:.1f}% over {stats.play_count} plays")
    if stats.share_count > stats.comment_count:
        insights.append("Shared more than commented on")

    return {
        "category": categorize_video(video),
        "sections": sections,
        "analysis": {
            "detected_elements": {
                "has_caption": bool(video.text),
                "has_cta": detect_cta(video.text),
                "has_text_overlay": any(section["text"] for section in sections),
            },
            "engagement_insights": insights,
            "similarity_patterns": {
                "section_types": [section["type"] for section in sections],
                "hashtags": video.hashtags[:5],
            },
        },
    }


class HeuristicContentAnalyzer(ContentAnalyzer):
    def analyze(self, video: RawVideoDTO) -> Mapping[str, Any]:
        return heuristic_analysis(video)


# =============================================================================
# LLM ANALYZER
# =============================================================================


def _video_prompt(video: RawVideoDTO) -> str:
    summary = {
        "caption": video.text[:500],
        "duration_seconds": video.video_meta.duration,
        "hashtags": video.hashtags[:15],
        "plays": video.stats.play_count,
        "likes": video.stats.digg_count,
        "shares": video.stats.share_count,
        "comments": video.stats.comment_count,
        "sound": video.music.title if video.music else None,
    }
    return "Analyze this video as a reusable template:\n" + json.dumps(summary, indent=2)


class LLMContentAnalyzer(ContentAnalyzer):
    """
    Analyzer backed by the LLM client.

    Provider failures surface as LLMCallError and unusable output as
    StructuredOutputError; the scheduler turns both into per-item outcomes.
    """

    def __init__(self, client: LLMClient | None = None, run_id: Any = None):
        self.client = client or LLMClient()
        self.run_id = run_id

    def analyze(self, video: RawVideoDTO) -> Mapping[str, Any]:
        if self.client.disabled:
            return heuristic_analysis(video)

        response = self.client.call(
            flow="template_analysis",
            prompt=_video_prompt(video),
            system_prompt=SYSTEM_PROMPT,
            run_id=self.run_id,
        )
        parsed = parse_structured_output(response.raw_text, AnalyzerResponseDTO)
        logger.debug("Analyzed video %s as %s", video.id, parsed.category)
        return parsed.model_dump()

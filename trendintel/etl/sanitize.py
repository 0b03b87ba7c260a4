"""
Analysis sanitizer.

Content analyzer payloads arrive with missing keys, NaNs, nested models and
loosely typed insight fields. sanitize_analysis returns a fresh JSON-safe
tree with a predictable shape; the input is never modified.
"""

from __future__ import annotations

import dataclasses
import json
import logging
import math
from collections.abc import Mapping
from datetime import date, datetime, time
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

from pydantic import BaseModel

logger = logging.getLogger(__name__)

SanitizedAnalysis = dict[str, Any]

TOP_LEVEL_KEYS = ("sections", "category", "analysis")
ANALYSIS_KEYS = ("detected_elements", "engagement_insights", "similarity_patterns")

# camelCase spellings some analyzers emit for the known keys
_KEY_ALIASES = {
    "detectedElements": "detected_elements",
    "engagementInsights": "engagement_insights",
    "similarityPatterns": "similarity_patterns",
}


def to_json_safe(value: Any) -> Any:
    """Recursively convert a value into plain JSON types, building new containers."""
    if value is None or isinstance(value, (bool, int, str)):
        return value
    if isinstance(value, float):
        return None if math.isnan(value) or math.isinf(value) else value
    if isinstance(value, Enum):
        return to_json_safe(value.value)
    if isinstance(value, (datetime, date, time)):
        return value.isoformat()
    if isinstance(value, UUID):
        return str(value)
    if isinstance(value, Decimal):
        return to_json_safe(float(value))
    if isinstance(value, BaseModel):
        return to_json_safe(value.model_dump())
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return to_json_safe(dataclasses.asdict(value))
    if isinstance(value, Mapping):
        return {str(key): to_json_safe(item) for key, item in value.items()}
    if isinstance(value, (set, frozenset)):
        return [to_json_safe(item) for item in sorted(value, key=str)]
    if isinstance(value, (list, tuple)):
        return [to_json_safe(item) for item in value]
    return str(value)


def _canonical_keys(tree: dict[str, Any]) -> dict[str, Any]:
    result = {}
    for key, item in tree.items():
        canonical = _KEY_ALIASES.get(key, key)
        if canonical in result and key != canonical:
            continue
        result[canonical] = item
    return result


def _insights_list(value: Any) -> list[str]:
    if not value:
        return []
    if isinstance(value, list):
        return [item if isinstance(item, str) else json.dumps(item, sort_keys=True)
                for item in value if item is not None]
    return [value if isinstance(value, str) else json.dumps(value, sort_keys=True)]


def sanitize_analysis(payload: Any) -> SanitizedAnalysis:
    """
    Produce a clean copy of an analyzer payload.

    - models, dataclasses, sets, dates and enums become JSON values
    - NaN and infinite floats become None
    - absent top-level and analysis keys are present with value None
    - analysis.engagement_insights is always a list of strings
    - a non-string analysis.similarity_patterns is serialized to JSON
    """
    tree = to_json_safe(payload)
    if not isinstance(tree, dict):
        logger.warning(
            "Analyzer payload is not an object; wrapping it",
            extra={"payload_type": type(payload).__name__},
        )
        tree = {"raw": tree}

    cleaned: dict[str, Any] = dict(tree)
    for key in TOP_LEVEL_KEYS:
        cleaned.setdefault(key, None)

    analysis = cleaned["analysis"]
    analysis = _canonical_keys(analysis) if isinstance(analysis, dict) else {}
    for key in ANALYSIS_KEYS:
        analysis.setdefault(key, None)

    analysis["engagement_insights"] = _insights_list(analysis["engagement_insights"])

    patterns = analysis["similarity_patterns"]
    if patterns is not None and not isinstance(patterns, str):
        analysis["similarity_patterns"] = json.dumps(patterns, sort_keys=True)

    cleaned["analysis"] = analysis
    return cleaned

"""
End-to-end ETL passes over sounds and templates.
"""

from .sound_etl import SoundEtlPipeline
from .template_etl import (
    SimilarTemplatesResult,
    TemplateEtlPipeline,
    TrendingTemplate,
    TrendingTemplatesResult,
)

__all__ = [
    "SimilarTemplatesResult",
    "SoundEtlPipeline",
    "TemplateEtlPipeline",
    "TrendingTemplate",
    "TrendingTemplatesResult",
]

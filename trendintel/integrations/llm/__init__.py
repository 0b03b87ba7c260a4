"""
LLM integration: the single client every analyzer prompt goes through.
"""

from trendintel.integrations.llm.client import (
    LLMCallError,
    LLMClient,
    LLMConfig,
    LLMResponse,
    StructuredOutputError,
    load_config_from_settings,
    parse_structured_output,
)

__all__ = [
    "LLMCallError",
    "LLMClient",
    "LLMConfig",
    "LLMResponse",
    "StructuredOutputError",
    "load_config_from_settings",
    "parse_structured_output",
]

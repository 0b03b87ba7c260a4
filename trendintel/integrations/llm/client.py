"""
LLM Client Module.

Provides a single LLM client with:
- Settings-driven model selection and timeout
- Stable call interface with RunContext-style observability fields
- Structured output parsing helper
- LLM_DISABLED mode for tests and dry runs

All LLM calls go through this client; nothing else in the codebase talks to
the provider SDK directly.
"""

from __future__ import annotations

import json
import logging
import re
import time
from dataclasses import dataclass
from typing import Any, Literal, TypeVar

import openai
from django.conf import settings
from pydantic import BaseModel, ValidationError

logger = logging.getLogger("trendintel.llm")

# =============================================================================
# TYPE DEFINITIONS
# =============================================================================

Status = Literal["success", "failure", "disabled"]

T = TypeVar("T", bound=BaseModel)

DISABLED_STUB_PREFIX = "[LLM_DISABLED STUB]"


# =============================================================================
# EXCEPTIONS
# =============================================================================


class LLMCallError(Exception):
    """
    Exception raised when an LLM call fails.

    Wraps the underlying provider error. No provider-specific exception
    types escape this module.
    """

    def __init__(self, message: str, original_error: Exception | None = None):
        super().__init__(message)
        self.original_error = original_error


class StructuredOutputError(Exception):
    """
    Raised when LLM output is not valid JSON or does not match the target model.
    """

    pass


# =============================================================================
# CONFIGURATION
# =============================================================================


@dataclass(frozen=True)
class LLMConfig:
    """
    LLM client configuration.

    Settings:
    - OPENAI_API_KEY: API key (required for real calls)
    - TRENDINTEL_LLM_MODEL: model name (default: gpt-4o-mini)
    - TRENDINTEL_LLM_TIMEOUT: request timeout in seconds (default: 30)
    - LLM_DISABLED: return stub responses instead of calling the provider
    """

    model_name: str = "gpt-4o-mini"
    api_key: str | None = None
    llm_disabled: bool = False
    timeout: float = 30.0
    max_tokens: int = 1500
    temperature: float = 0.0


def load_config_from_settings() -> LLMConfig:
    """Build an LLMConfig from Django settings, defaulting every knob."""
    return LLMConfig(
        model_name=getattr(settings, "TRENDINTEL_LLM_MODEL", "gpt-4o-mini"),
        api_key=getattr(settings, "OPENAI_API_KEY", "") or None,
        llm_disabled=bool(getattr(settings, "LLM_DISABLED", False)),
        timeout=float(getattr(settings, "TRENDINTEL_LLM_TIMEOUT", 30.0)),
    )


# =============================================================================
# RESPONSE MODEL
# =============================================================================


@dataclass
class LLMResponse:
    """Raw text output plus usage and timing metadata."""

    raw_text: str
    model: str
    usage_tokens_in: int
    usage_tokens_out: int
    latency_ms: int
    status: Status = "success"


# =============================================================================
# STRUCTURED OUTPUT PARSING
# =============================================================================


def parse_structured_output(raw_text: str, target: type[T]) -> T:
    """
    Parse raw LLM output into a Pydantic model.

    Accepts pure JSON or JSON fenced by markdown triple-backticks.

    Raises:
        StructuredOutputError: If JSON is invalid or validation fails
    """
    text = raw_text.strip()

    match = re.search(r"```(?:json)?\s*([\s\S]*?)\s*```", text)
    if match:
        text = match.group(1).strip()

    try:
        return target.model_validate_json(text)
    except json.JSONDecodeError as e:
        raise StructuredOutputError(
            f"Invalid JSON in LLM output: {e}. Raw text: {raw_text[:200]}..."
        ) from e
    except ValidationError as e:
        error_summary = "; ".join(
            f"{'.'.join(str(loc) for loc in err['loc'])}: {err['msg']}"
            for err in e.errors()
        )
        raise StructuredOutputError(
            f"Schema validation failed: {error_summary}. Raw text: {raw_text[:200]}..."
        ) from e


# =============================================================================
# LLM CLIENT
# =============================================================================


class LLMClient:
    """
    Single LLM client for all trendintel LLM usage.

    Usage:
        client = LLMClient()
        response = client.call(
            flow="template_analysis",
            prompt="Analyze this video...",
            system_prompt="You are a short-form video analyst...",
            run_id=ctx.run_id,
        )
    """

    def __init__(self, config: LLMConfig | None = None):
        self.config = config or load_config_from_settings()

    @property
    def disabled(self) -> bool:
        return self.config.llm_disabled

    def call(
        self,
        *,
        flow: str,
        prompt: str,
        system_prompt: str | None = None,
        max_output_tokens: int | None = None,
        run_id: Any = None,
        trigger_source: str = "manual",
    ) -> LLMResponse:
        """
        Make an LLM call.

        Raises:
            LLMCallError: If the provider call fails (wraps all provider exceptions)
        """
        model = self.config.model_name
        start_time = time.perf_counter()

        if self.config.llm_disabled:
            response = LLMResponse(
                raw_text=f"{DISABLED_STUB_PREFIX} prompt={prompt[:100]}...",
                model=model,
                usage_tokens_in=len(prompt.split()),
                usage_tokens_out=10,
                latency_ms=0,
                status="disabled",
            )
            self._log_call(
                run_id=run_id,
                flow=flow,
                trigger_source=trigger_source,
                model=model,
                latency_ms=0,
                tokens_in=response.usage_tokens_in,
                tokens_out=response.usage_tokens_out,
                status="disabled",
            )
            return response

        try:
            result = self._call_provider(
                model=model,
                prompt=prompt,
                system_prompt=system_prompt,
                max_tokens=max_output_tokens or self.config.max_tokens,
                temperature=self.config.temperature,
                timeout=self.config.timeout,
            )
        except Exception as exc:
            latency_ms = int((time.perf_counter() - start_time) * 1000)
            self._log_call(
                run_id=run_id,
                flow=flow,
                trigger_source=trigger_source,
                model=model,
                latency_ms=latency_ms,
                tokens_in=0,
                tokens_out=0,
                status="failure",
                error_summary=f"{exc.__class__.__name__}: {str(exc)[:100]}",
            )
            if isinstance(exc, LLMCallError):
                raise
            raise LLMCallError(f"LLM call failed: {exc}", original_error=exc) from exc

        latency_ms = int((time.perf_counter() - start_time) * 1000)
        response = LLMResponse(
            raw_text=result["content"],
            model=model,
            usage_tokens_in=result["usage"]["prompt_tokens"],
            usage_tokens_out=result["usage"]["completion_tokens"],
            latency_ms=latency_ms,
        )
        self._log_call(
            run_id=run_id,
            flow=flow,
            trigger_source=trigger_source,
            model=model,
            latency_ms=latency_ms,
            tokens_in=response.usage_tokens_in,
            tokens_out=response.usage_tokens_out,
            status="success",
        )
        return response

    def _call_provider(
        self,
        *,
        model: str,
        prompt: str,
        system_prompt: str | None,
        max_tokens: int,
        temperature: float,
        timeout: float,
    ) -> dict[str, Any]:
        """
        Call the OpenAI chat completions API.

        Tests patch this method to avoid real HTTP calls.

        Returns:
            Dict with 'content' and 'usage' keys
        """
        if not self.config.api_key:
            raise LLMCallError(
                "OPENAI_API_KEY not set. Set it or use LLM_DISABLED=true for testing."
            )

        messages: list[dict[str, str]] = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": prompt})

        client = openai.OpenAI(api_key=self.config.api_key, timeout=timeout)
        response = client.chat.completions.create(
            model=model,
            messages=messages,
            max_tokens=max_tokens,
            temperature=temperature,
            response_format={"type": "json_object"},
        )

        usage = response.usage
        return {
            "content": response.choices[0].message.content or "",
            "usage": {
                "prompt_tokens": usage.prompt_tokens if usage else 0,
                "completion_tokens": usage.completion_tokens if usage else 0,
            },
        }

    def _log_call(
        self,
        *,
        run_id: Any,
        flow: str,
        trigger_source: str,
        model: str,
        latency_ms: int,
        tokens_in: int,
        tokens_out: int,
        status: Status,
        error_summary: str | None = None,
    ) -> None:
        log_data = {
            "run_id": str(run_id) if run_id is not None else None,
            "flow": flow,
            "trigger_source": trigger_source,
            "model": model,
            "latency_ms": latency_ms,
            "tokens_in": tokens_in,
            "tokens_out": tokens_out,
            "status": status,
        }
        if error_summary:
            log_data["error_summary"] = error_summary

        if status == "failure":
            logger.error("LLM call failed", extra=log_data)
        else:
            logger.info("LLM call completed", extra=log_data)

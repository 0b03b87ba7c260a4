"""
ETL error taxonomy.

Every error the engine raises on purpose is an ETLError carrying a message,
an ErrorType and (optionally) the collaborator exception it wraps:

- ValidationError: malformed or incomplete input; the item is skipped
- ExtractionError: a collaborator returned unusable data; the item is skipped
- TransientIOError: a collaborator call failed; the item is recorded as failed
- JobFatalError: the whole run cannot continue; carries the partial result
- RunCancelledError: the run was cancelled between batches

Per-item errors are caught at the scheduler boundary. Only JobFatalError
(and programming errors) reach the job orchestrator.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

import requests

from trendintel.core.enums import ErrorType

if TYPE_CHECKING:
    from trendintel.etl.jobs.tracker import JobResult


class ETLError(Exception):
    """Base class for all engine errors."""

    default_error_type = ErrorType.UNKNOWN_ERROR

    def __init__(
        self,
        message: str,
        error_type: ErrorType | None = None,
        original_error: Exception | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.error_type = error_type or self.default_error_type
        self.original_error = original_error

    def summary(self) -> str:
        """Short "<type>: <message>" form used in failure reasons."""
        return f"{self.error_type.value}: {self.message}"


class ValidationError(ETLError):
    default_error_type = ErrorType.VALIDATION_ERROR


class ExtractionError(ETLError):
    default_error_type = ErrorType.EXTRACT_ERROR


class TransientIOError(ETLError):
    default_error_type = ErrorType.TRANSIENT_IO_ERROR


class JobFatalError(ETLError):
    """Aborts a run. The orchestrator seals the job with partial_result."""

    default_error_type = ErrorType.JOB_FATAL_ERROR

    def __init__(
        self,
        message: str,
        error_type: ErrorType | None = None,
        original_error: Exception | None = None,
        partial_result: "JobResult | None" = None,
    ):
        super().__init__(message, error_type, original_error)
        self.partial_result = partial_result


class RunCancelledError(JobFatalError):
    default_error_type = ErrorType.CANCELLED


# Phase name -> error type for errors that are not already ETLErrors
_PHASE_ERROR_TYPES = {
    "extract": ErrorType.EXTRACT_ERROR,
    "transform": ErrorType.TRANSFORM_ERROR,
    "load": ErrorType.LOAD_ERROR,
    "validate": ErrorType.VALIDATION_ERROR,
}


def normalize_error(exc: Exception, phase: str | None = None) -> ETLError:
    """
    Convert any exception into an ETLError.

    ETLErrors pass through untouched. Collaborator failures (Apify, LLM,
    requests) become TransientIOError. Anything else is classified by the
    phase it surfaced in, falling back to UNKNOWN_ERROR.
    """
    if isinstance(exc, ETLError):
        return exc

    # Imported here so errors.py stays importable from the integration layer
    from trendintel.integrations.apify.client import ApifyError
    from trendintel.integrations.llm.client import LLMCallError, StructuredOutputError

    if isinstance(exc, (ApifyError, LLMCallError, requests.RequestException, TimeoutError)):
        return TransientIOError(
            f"{exc.__class__.__name__}: {exc}",
            original_error=exc,
        )
    if isinstance(exc, StructuredOutputError):
        return ExtractionError(str(exc), original_error=exc)

    error_type = _PHASE_ERROR_TYPES.get(phase or "", ErrorType.UNKNOWN_ERROR)
    return ETLError(
        f"{exc.__class__.__name__}: {exc}",
        error_type=error_type,
        original_error=exc,
    )

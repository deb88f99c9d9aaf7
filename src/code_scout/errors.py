"""Exception hierarchy for code-scout.

Tool failures are not exceptions: they come back as failed ``ToolResult``
envelopes. The classes here cover configuration, caller validation, the
transport, and the session lifecycle.
"""

from __future__ import annotations

from typing import Any, Optional


class ScoutError(Exception):
    """Base class for all code-scout errors. Carries a stable error code."""

    code = "SCOUT_ERROR"

    def __init__(self, message: str, details: Optional[dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ConfigError(ScoutError):
    """Raised when configuration is invalid or missing."""

    code = "CONFIGURATION_ERROR"


class ValidationError(ScoutError):
    """Raised for bad or missing caller arguments, before any I/O happens."""

    code = "VALIDATION_ERROR"


class ClosedSessionError(ScoutError):
    """Raised when a closed session is used."""

    code = "CLOSED_SESSION"

    def __init__(self, message: str = "Cannot use a closed session. Create a new one instead.") -> None:
        super().__init__(message)


class TransportError(ScoutError):
    """Raised when the model provider call fails after any retries."""

    code = "API_ERROR"

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message, {"status_code": status_code})
        self.status_code = status_code


class InvalidStreamError(ScoutError):
    """Raised when the provider stream is truncated or malformed."""

    code = "INVALID_STREAM"


class AnalysisError(ScoutError):
    """Raised by the orchestrator when a turn ends in a terminal failure."""

    code = "ANALYSIS_FAILED"

    def __init__(self, message: str, status_code: Optional[int] = None, code: Optional[str] = None) -> None:
        super().__init__(message, {"status_code": status_code})
        self.status_code = status_code
        if code is not None:
            self.code = code


class AnalysisTimeoutError(ScoutError):
    """Raised when an analysis exceeds its configured timeout."""

    code = "TIMEOUT"

    def __init__(self, timeout_seconds: float, elapsed_seconds: float) -> None:
        super().__init__(
            f"Analysis exceeded timeout of {timeout_seconds:g}s",
            {"timeout_seconds": timeout_seconds, "elapsed_seconds": elapsed_seconds},
        )
        self.timeout_seconds = timeout_seconds
        self.elapsed_seconds = elapsed_seconds

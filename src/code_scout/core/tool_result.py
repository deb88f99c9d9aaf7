from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

INVALID_ARGS = "INVALID_ARGS"
DENIED_BY_POLICY = "DENIED_BY_POLICY"
PATH_OUTSIDE_WORKSPACE = "PATH_OUTSIDE_WORKSPACE"
FILE_NOT_FOUND = "FILE_NOT_FOUND"
DIR_NOT_FOUND = "DIR_NOT_FOUND"
NOT_A_FILE = "NOT_A_FILE"
NOT_A_DIR = "NOT_A_DIR"
PERMISSION_DENIED = "PERMISSION_DENIED"
READ_ERROR = "READ_ERROR"
INVALID_PATTERN = "INVALID_PATTERN"
CANCELLED = "CANCELLED"
UNKNOWN_TOOL = "UNKNOWN_TOOL"
TOOL_EXECUTION_ERROR = "TOOL_EXECUTION_ERROR"

# Failures caused by the file system rather than by the caller or the boundary.
READ_FAILURES = frozenset(
    {FILE_NOT_FOUND, DIR_NOT_FOUND, NOT_A_FILE, NOT_A_DIR, PERMISSION_DENIED, READ_ERROR}
)


@dataclass
class ToolResult:
    """Standard envelope for all tool responses.

    ``output`` is the plain-text payload shown to the model. ``data`` holds
    structured metadata (counts, truncation flags, matched paths) for the
    orchestrator's own bookkeeping.
    """

    ok: bool
    output: str = ""
    data: Dict[str, Any] = field(default_factory=dict)
    error_code: Optional[str] = None
    error: Optional[str] = None
    warnings: List[str] = field(default_factory=list)

    @property
    def truncated(self) -> bool:
        return bool(self.data.get("truncated", False))

    @property
    def is_cancelled(self) -> bool:
        return self.error_code == CANCELLED

    @property
    def is_boundary_violation(self) -> bool:
        return self.error_code == PATH_OUTSIDE_WORKSPACE

    @property
    def is_read_failure(self) -> bool:
        return self.error_code in READ_FAILURES

    def to_model_text(self) -> str:
        """Text handed back to the model for this call."""
        if self.ok:
            return self.output
        return f"Error: {self.error}"

    @classmethod
    def success(
        cls,
        output: str,
        data: Optional[Dict[str, Any]] = None,
        warnings: Optional[List[str]] = None,
    ) -> "ToolResult":
        return cls(ok=True, output=output, data=data or {}, warnings=warnings or [])

    @classmethod
    def failure(
        cls,
        error_code: str,
        message: str,
        data: Optional[Dict[str, Any]] = None,
    ) -> "ToolResult":
        return cls(
            ok=False,
            output=f"Error: {message}",
            data=data or {},
            error_code=error_code,
            error=message,
        )

    @classmethod
    def cancelled(cls, tool_name: str) -> "ToolResult":
        return cls.failure(CANCELLED, f"{tool_name} was cancelled before it completed")

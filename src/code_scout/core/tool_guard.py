import logging
from pathlib import Path
from typing import Any, Dict, Iterable, Optional

from code_scout.core.path_validator import validate
from code_scout.core.tool_result import (
    DENIED_BY_POLICY,
    INVALID_ARGS,
    PATH_OUTSIDE_WORKSPACE,
    ToolResult,
)

_log = logging.getLogger(__name__)

_TYPE_MAP = {
    "string": str,
    "integer": int,
    "number": (int, float),
    "boolean": bool,
    "array": list,
    "object": dict,
}


class ToolGuard:
    """Pre-flight checks shared by every tool: policy, arguments, boundary."""

    def __init__(self, workspace_root: str | Path, policy: Optional[Dict[str, Any]] = None):
        self.workspace_root = Path(workspace_root).resolve()
        self.policy = policy or {}

    def check(
        self,
        tool_name: str,
        args: Any,
        schema: Optional[Dict[str, Any]] = None,
        path_params: Iterable[str] = (),
    ) -> Optional[ToolResult]:
        """Return a failed ToolResult if the call must not run, else None."""
        # 1. Check deny_tools list
        if tool_name in self.policy.get("deny_tools", []):
            _log.warning("Tool '%s' denied by policy", tool_name)
            return ToolResult.failure(DENIED_BY_POLICY, f"Tool '{tool_name}' is denied by policy.")

        if not isinstance(args, dict):
            return ToolResult.failure(
                INVALID_ARGS, f"Arguments must be an object, got {type(args).__name__}."
            )

        # 2. Validate args against schema
        if schema is not None:
            error = self._validate(args, schema)
            if error:
                _log.debug("Invalid arguments for %s: %s", tool_name, error)
                return ToolResult.failure(INVALID_ARGS, error)

        # 3. Boundary check for every path-like argument
        for param in path_params:
            raw = args.get(param)
            if raw is None:
                continue
            result = validate(raw, self.workspace_root)
            if result.valid:
                continue
            if result.malformed:
                return ToolResult.failure(INVALID_ARGS, f"Field '{param}': {result.reason}")
            _log.warning("Blocked %s: '%s' resolves outside the workspace", tool_name, raw)
            return ToolResult.failure(
                PATH_OUTSIDE_WORKSPACE,
                f"Path '{raw}' resolves outside the workspace. Access denied.",
                data={"requested_path": str(raw), "workspace": str(self.workspace_root)},
            )

        return None

    def _validate(self, args: Dict[str, Any], schema: Dict[str, Any]) -> Optional[str]:
        """Minimal JSON-schema-style validation (required, type, enum)."""
        for field in schema.get("required", []):
            if field not in args or args[field] is None:
                return f"Missing required field: '{field}'"

        properties = schema.get("properties", {})
        for key, value in args.items():
            spec = properties.get(key)
            if spec is None or value is None:
                continue
            expected_type = spec.get("type")
            if expected_type in _TYPE_MAP and not _matches_type(value, expected_type):
                return f"Field '{key}' expected type '{expected_type}', got {type(value).__name__}."
            enum = spec.get("enum")
            if enum and value not in enum:
                return f"Field '{key}' must be one of {', '.join(map(str, enum))}; got {value!r}."
            if expected_type == "array":
                item_type = spec.get("items", {}).get("type")
                if item_type in _TYPE_MAP and not all(_matches_type(v, item_type) for v in value):
                    return f"Field '{key}' must contain only {item_type} values."
        return None


def _matches_type(value: Any, expected_type: str) -> bool:
    # bool is an int subclass; JSON integers may arrive as 3.0
    if expected_type in ("integer", "number") and isinstance(value, bool):
        return False
    if expected_type == "integer" and isinstance(value, float):
        return value.is_integer()
    return isinstance(value, _TYPE_MAP[expected_type])

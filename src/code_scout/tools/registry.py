"""
code_scout.tools.registry
~~~~~~~~~~~~~~~~~~~~~~~~~
Owns the tools one session may call and dispatches calls to them by name.

Build one per session with :func:`build_registry`; there is no process-wide
registry::

    registry = build_registry(config)
    schemas = registry.function_schemas()      # handed to litellm.completion
    result = registry.execute("grep", {"pattern": "TODO"}, cancel)
"""
from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from code_scout.core.cancellation import CancellationToken
from code_scout.core.tool_result import (
    TOOL_EXECUTION_ERROR,
    UNKNOWN_TOOL,
    ToolResult,
)
from code_scout.tools.base import ToolDescriptor, WorkspaceTool
from code_scout.tools.glob import GlobTool
from code_scout.tools.grep import GrepTool
from code_scout.tools.list_directory import ListDirectoryTool
from code_scout.tools.read_file import ReadFileTool

if TYPE_CHECKING:
    from code_scout.config import ScoutConfig

_log = logging.getLogger(__name__)


class ToolRegistry:
    def __init__(self) -> None:
        self._tools: Dict[str, WorkspaceTool] = {}

    def register(self, tool: WorkspaceTool) -> None:
        """Add a tool. Registering a name twice replaces the earlier tool."""
        if tool.name in self._tools:
            _log.debug("Replacing registered tool '%s'", tool.name)
        self._tools[tool.name] = tool

    def get(self, name: str) -> Optional[WorkspaceTool]:
        return self._tools.get(name)

    def names(self) -> List[str]:
        return list(self._tools)

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)

    def list_descriptors(self) -> List[ToolDescriptor]:
        return [tool.descriptor for tool in self._tools.values()]

    def function_schemas(self) -> List[Dict[str, Any]]:
        """Declarations in the OpenAI function-calling format."""
        return [d.to_function_schema() for d in self.list_descriptors()]

    def execute(
        self, name: str, args: Dict[str, Any], cancel: Optional[CancellationToken] = None
    ) -> ToolResult:
        tool = self._tools.get(name)
        if tool is None:
            available = ", ".join(sorted(self._tools)) or "none"
            return ToolResult.failure(
                UNKNOWN_TOOL, f"Tool '{name}' is not available. Available tools: {available}."
            )
        if cancel is not None and cancel.is_cancelled():
            return ToolResult.cancelled(name)

        _log.debug("Executing %s(%s)", name, args)
        try:
            result = tool.run(args, cancel)
        except Exception as exc:
            _log.exception("Tool %s raised", name)
            return ToolResult.failure(TOOL_EXECUTION_ERROR, f"{name} failed: {exc}")

        if not result.ok and not result.is_cancelled:
            _log.info("%s failed [%s]: %s", name, result.error_code, result.error)
        return result


def build_registry(config: "ScoutConfig") -> ToolRegistry:
    """Register the read-only tool set configured for one session."""
    root = config.workspace_root
    policy = {"deny_tools": list(config.deny_tools)}
    ignore = list(config.ignore_patterns)
    limits = config.limits

    registry = ToolRegistry()
    registry.register(ReadFileTool(root, policy, ignore, max_chars=limits.max_read_chars))
    registry.register(
        ListDirectoryTool(
            root, policy, ignore,
            max_entries=limits.max_list_entries,
            max_depth=limits.max_list_depth,
        )
    )
    registry.register(GlobTool(root, policy, ignore, max_results=limits.max_glob_results))
    registry.register(
        GrepTool(
            root, policy, ignore,
            max_results=limits.max_grep_results,
            max_context_lines=limits.max_context_lines,
        )
    )
    return registry

"""
code_scout.tools
~~~~~~~~~~~~~~~~
The read-only tools the model may call. Import from here so callers don't
need to know individual module paths.
"""
from __future__ import annotations

from code_scout.tools.base import ToolDescriptor, ToolParameter, WorkspaceTool
from code_scout.tools.glob import GlobTool
from code_scout.tools.grep import GrepTool
from code_scout.tools.list_directory import ListDirectoryTool
from code_scout.tools.read_file import ReadFileTool
from code_scout.tools.registry import ToolRegistry, build_registry

__all__ = [
    "ToolDescriptor", "ToolParameter", "WorkspaceTool",
    "ReadFileTool", "ListDirectoryTool", "GlobTool", "GrepTool",
    "ToolRegistry", "build_registry",
]

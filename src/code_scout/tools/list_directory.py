from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from code_scout.core.cancellation import CancellationToken
from code_scout.core.path_validator import validate
from code_scout.core.tool_result import DIR_NOT_FOUND, NOT_A_DIR, PERMISSION_DENIED, ToolResult
from code_scout.tools.base import ToolDescriptor, ToolParameter, WorkspaceTool, int_arg

DESCRIPTOR = ToolDescriptor(
    name="list_directory",
    description=(
        "List files and directories in a workspace directory, directories first. "
        "Use this to explore the project structure. "
        'Example: {"path": "src", "recursive": true, "max_depth": 2} lists src and its immediate subdirectories.'
    ),
    parameters=(
        ToolParameter(
            "path", "string",
            'Directory to list, relative to the workspace root. Examples: ".", "src", "src/components".',
            is_path=True,
        ),
        ToolParameter(
            "recursive", "boolean",
            "Whether to list recursively (default: false). Use with caution in large directories.",
        ),
        ToolParameter("show_hidden", "boolean", "Whether to show hidden files/directories (default: false)."),
        ToolParameter("max_depth", "integer", "Maximum depth for recursive listing (default: 2, max: 5)."),
    ),
)


@dataclass
class _Entry:
    rel: str
    is_dir: bool
    size: Optional[int] = None


def format_size(size: int) -> str:
    if size < 1024:
        return f"{size}B"
    if size < 1024 * 1024:
        return f"{size / 1024:.1f}KB"
    return f"{size / (1024 * 1024):.1f}MB"


class ListDirectoryTool(WorkspaceTool):
    descriptor = DESCRIPTOR

    def __init__(
        self,
        workspace_root: str | Path,
        policy: Optional[Dict[str, Any]] = None,
        ignore_patterns: Iterable[str] = (),
        max_entries: int = 500,
        max_depth: int = 5,
    ) -> None:
        super().__init__(workspace_root, policy, ignore_patterns)
        self._max_entries = max_entries
        self._max_depth = max_depth

    def _execute(self, args: Dict[str, Any], cancel: CancellationToken) -> ToolResult:
        raw_path = args.get("path") or "."
        root = self._resolve(raw_path)
        recursive = bool(args.get("recursive", False))
        show_hidden = bool(args.get("show_hidden", False))
        depth = int_arg(args, "max_depth", 2, minimum=1, maximum=self._max_depth) if recursive else 1

        if not root.exists():
            return ToolResult.failure(DIR_NOT_FOUND, f"Directory does not exist: {raw_path}")
        if not root.is_dir():
            return ToolResult.failure(NOT_A_DIR, f"Path is not a directory: {raw_path}")

        entries: List[_Entry] = []
        try:
            truncated = self._walk(root, root, 0, depth, show_hidden, entries, cancel)
        except PermissionError:
            return ToolResult.failure(PERMISSION_DENIED, f"Permission denied: {raw_path}")

        display_path = self._relative(root)
        return ToolResult.success(
            self._format(entries, display_path, recursive, depth, truncated),
            data={
                "path": display_path,
                "recursive": recursive,
                "max_depth": depth,
                "entry_count": len(entries),
                "truncated": truncated,
                "entries": [
                    {"name": e.rel, "type": "directory" if e.is_dir else "file", "size": e.size}
                    for e in entries
                ],
            },
        )

    def _walk(
        self,
        directory: Path,
        base: Path,
        depth: int,
        max_depth: int,
        show_hidden: bool,
        out: List[_Entry],
        cancel: CancellationToken,
    ) -> bool:
        """Append entries under directory to out. Returns True when capped."""
        with os.scandir(directory) as it:
            items = sorted(it, key=lambda e: (not e.is_dir(), e.name.lower()))

        for item in items:
            cancel.raise_if_cancelled()
            rel = Path(item.path).relative_to(base).as_posix()
            workspace_rel = Path(item.path).relative_to(self._workspace_root).as_posix()
            if self._is_ignored(item.name, show_hidden, workspace_rel=workspace_rel):
                continue
            # Symlinks may point anywhere; only follow what stays in bounds.
            if not validate(item.path, self._workspace_root).valid:
                continue
            if len(out) >= self._max_entries:
                return True

            is_dir = item.is_dir()
            entry = _Entry(rel=rel, is_dir=is_dir)
            if not is_dir:
                try:
                    entry.size = item.stat().st_size
                except OSError:
                    pass
            out.append(entry)

            if is_dir and depth + 1 < max_depth:
                try:
                    if self._walk(Path(item.path), base, depth + 1, max_depth, show_hidden, out, cancel):
                        return True
                except PermissionError:
                    continue
        return False

    def _format(
        self, entries: List[_Entry], path: str, recursive: bool, depth: int, truncated: bool
    ) -> str:
        if not entries:
            return f'Directory "{path}" is empty'

        header = f'Contents of "{path}"' + (f" (recursive, depth {depth})" if recursive else "") + ":"
        lines = [header, ""]

        if recursive:
            by_dir: Dict[str, List[_Entry]] = {}
            for entry in entries:
                parent = entry.rel.rsplit("/", 1)[0] if "/" in entry.rel else "."
                by_dir.setdefault(parent, []).append(entry)
            for parent in sorted(by_dir):
                if parent != ".":
                    lines.append(f"{parent}/:")
                for entry in by_dir[parent]:
                    lines.append(self._format_entry(entry, entry.rel.rsplit("/", 1)[-1]))
                lines.append("")
        else:
            lines.extend(self._format_entry(e, e.rel) for e in entries)

        if truncated:
            lines.append("")
            lines.append(
                f"(Listing truncated at {self._max_entries} entries. "
                f"List a subdirectory to see more.)"
            )
        return "\n".join(lines).rstrip()

    @staticmethod
    def _format_entry(entry: _Entry, name: str) -> str:
        kind = "[DIR]" if entry.is_dir else "[FILE]"
        size = f" ({format_size(entry.size)})" if entry.size is not None else ""
        return f"  {kind} {name}{size}"

from __future__ import annotations

import base64
from pathlib import Path
from typing import Any, Dict, Iterable, Optional

from code_scout.core.cancellation import CancellationToken
from code_scout.core.tool_result import (
    FILE_NOT_FOUND,
    NOT_A_FILE,
    PERMISSION_DENIED,
    READ_ERROR,
    ToolResult,
)
from code_scout.tools.base import ToolDescriptor, ToolParameter, WorkspaceTool, int_arg

ENCODINGS = ("utf-8", "ascii", "base64")

DESCRIPTOR = ToolDescriptor(
    name="read_file",
    description=(
        "Read the contents of a file within the workspace. Use this to examine source code, "
        "configuration files, or any text file. Lines are returned numbered from 1. "
        'Example: {"file_path": "src/app.py", "offset": 100, "limit": 50} returns lines 101-150.'
    ),
    parameters=(
        ToolParameter(
            "file_path", "string",
            'Path to the file, relative to the workspace root. Examples: "README.md", "src/index.ts".',
            required=True, is_path=True,
        ),
        ToolParameter(
            "encoding", "string",
            "File encoding (default: utf-8). Use base64 for binary files.",
            enum=ENCODINGS,
        ),
        ToolParameter("offset", "integer", "0-based line index to start reading from. Default: 0."),
        ToolParameter("limit", "integer", "Maximum number of lines to return. Omit to read to the end."),
    ),
)

_BINARY_SNIFF_BYTES = 8192


class ReadFileTool(WorkspaceTool):
    descriptor = DESCRIPTOR

    def __init__(
        self,
        workspace_root: str | Path,
        policy: Optional[Dict[str, Any]] = None,
        ignore_patterns: Iterable[str] = (),
        max_chars: int = 100_000,
    ) -> None:
        super().__init__(workspace_root, policy, ignore_patterns)
        self._max_chars = max_chars

    def _execute(self, args: Dict[str, Any], cancel: CancellationToken) -> ToolResult:
        raw_path = args["file_path"]
        path = self._resolve(raw_path)
        encoding: str = args.get("encoding") or "utf-8"
        offset = int_arg(args, "offset", 0)
        limit: Optional[int] = int_arg(args, "limit", 0, minimum=0) if args.get("limit") is not None else None

        if not path.exists():
            return ToolResult.failure(FILE_NOT_FOUND, f"File not found: {raw_path}")
        if not path.is_file():
            return ToolResult.failure(NOT_A_FILE, f"Path is not a file: {raw_path}")

        try:
            raw = path.read_bytes()
        except PermissionError:
            return ToolResult.failure(PERMISSION_DENIED, f"Permission denied: {raw_path}")
        except OSError as exc:
            return ToolResult.failure(READ_ERROR, f"Could not read file {raw_path}: {exc.strerror or exc}")

        cancel.raise_if_cancelled()
        display_path = self._relative(path)

        if encoding == "base64":
            return self._finish(display_path, base64.b64encode(raw).decode("ascii"), encoding, None)

        if b"\x00" in raw[:_BINARY_SNIFF_BYTES]:
            return ToolResult.failure(
                READ_ERROR,
                f"{raw_path} appears to be a binary file. Read it with encoding 'base64' instead.",
            )
        try:
            text = raw.decode(encoding, errors="strict" if encoding == "ascii" else "replace")
        except UnicodeDecodeError as exc:
            return ToolResult.failure(READ_ERROR, f"Could not decode {raw_path} as {encoding}: {exc.reason}")

        lines = text.splitlines()
        sliced = lines[offset:] if limit is None else lines[offset: offset + limit]
        numbered = "\n".join(f"{offset + i + 1:6}  {line}" for i, line in enumerate(sliced))
        meta = {"total_lines": len(lines), "returned_lines": len(sliced), "offset": offset}
        return self._finish(display_path, numbered, encoding, meta)

    def _finish(
        self, display_path: str, content: str, encoding: str, meta: Optional[Dict[str, Any]]
    ) -> ToolResult:
        total_chars = len(content)
        truncated = total_chars > self._max_chars
        if truncated:
            content = content[: self._max_chars] + (
                f"\n\n[Truncated: showing first {self._max_chars} of {total_chars} characters. "
                f"Use offset and limit to read the rest.]"
            )
        data: Dict[str, Any] = {
            "path": display_path,
            "encoding": encoding,
            "characters": total_chars,
            "truncated": truncated,
        }
        data.update(meta or {})
        return ToolResult.success(content, data=data)

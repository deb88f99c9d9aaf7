from __future__ import annotations

import fnmatch
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional

from code_scout.core.cancellation import CancellationToken
from code_scout.core.tool_result import (
    DIR_NOT_FOUND,
    INVALID_ARGS,
    INVALID_PATTERN,
    NOT_A_DIR,
    ToolResult,
)
from code_scout.tools.base import (
    ToolDescriptor,
    ToolParameter,
    WorkspaceTool,
    compile_glob,
    int_arg,
    plural,
)

DESCRIPTOR = ToolDescriptor(
    name="glob",
    description=(
        "Find files matching a glob pattern within the workspace. Returns file paths sorted "
        "alphabetically. Supports *, ?, [abc], {a,b} and ** for any number of directories. "
        'Example: {"pattern": "**/*.{ts,tsx}", "path": "src"} finds every TypeScript file under src.'
    ),
    parameters=(
        ToolParameter(
            "pattern", "string",
            'Glob pattern relative to the search directory. Examples: "**/*.py", "src/**/*.ts", "*.json".',
            required=True,
        ),
        ToolParameter(
            "path", "string",
            "Directory to search in, relative to the workspace root. Defaults to the root.",
            is_path=True,
        ),
        ToolParameter(
            "ignore", "array",
            'Extra patterns to exclude, e.g. ["**/*.test.ts", "vendor/**"].',
            items_type="string",
        ),
        ToolParameter("max_results", "integer", "Maximum number of paths to return (default: 100)."),
    ),
)


class GlobTool(WorkspaceTool):
    descriptor = DESCRIPTOR

    def __init__(
        self,
        workspace_root: str | Path,
        policy: Optional[Dict[str, Any]] = None,
        ignore_patterns: Iterable[str] = (),
        max_results: int = 100,
    ) -> None:
        super().__init__(workspace_root, policy, ignore_patterns)
        self._max_results = max_results

    def _execute(self, args: Dict[str, Any], cancel: CancellationToken) -> ToolResult:
        pattern: str = args["pattern"].strip()
        if not pattern:
            return ToolResult.failure(INVALID_ARGS, "pattern must not be empty")
        if pattern.startswith("/") or Path(pattern).is_absolute():
            return ToolResult.failure(INVALID_PATTERN, f"Pattern must be relative: {pattern}")
        if ".." in pattern.split("/"):
            return ToolResult.failure(INVALID_PATTERN, f"Pattern may not contain '..': {pattern}")
        try:
            matcher = compile_glob(pattern)
        except ValueError as exc:
            return ToolResult.failure(INVALID_PATTERN, f"Invalid glob pattern: {exc}")

        raw_path = args.get("path") or "."
        base = self._resolve(raw_path)
        if not base.exists():
            return ToolResult.failure(DIR_NOT_FOUND, f"Directory does not exist: {raw_path}")
        if not base.is_dir():
            return ToolResult.failure(NOT_A_DIR, f"Path is not a directory: {raw_path}")

        ignore: List[str] = list(args.get("ignore") or [])
        max_results = int_arg(args, "max_results", self._max_results, minimum=1, maximum=self._max_results)

        matches: List[str] = []
        for path, rel in self._iter_files(base, cancel):
            if not matcher.match(rel):
                continue
            workspace_rel = self._relative(path)
            if any(fnmatch.fnmatch(rel, p) or fnmatch.fnmatch(workspace_rel, p) for p in ignore):
                continue
            matches.append(workspace_rel)

        matches.sort()
        returned = matches[:max_results]
        truncated = len(matches) > max_results
        display_path = self._relative(base)

        warnings = []
        if truncated:
            warnings.append(
                f"Results truncated at {max_results}. Use a more specific pattern or a narrower path."
            )

        return ToolResult.success(
            self._format(pattern, display_path, returned, len(matches), truncated),
            data={
                "pattern": pattern,
                "path": display_path,
                "matches": returned,
                "total_matches": len(matches),
                "returned": len(returned),
                "truncated": truncated,
            },
            warnings=warnings,
        )

    @staticmethod
    def _format(pattern: str, path: str, returned: List[str], total: int, truncated: bool) -> str:
        where = "" if path == "." else f' in "{path}"'
        if not returned:
            return f'No files found matching "{pattern}"{where}'
        header = f'Found {plural(total, "file")} matching "{pattern}"{where}'
        if truncated:
            header += f" (showing first {len(returned)})"
        return header + ":\n" + "\n".join(returned)

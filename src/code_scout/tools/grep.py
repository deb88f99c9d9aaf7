from __future__ import annotations

import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Tuple

from code_scout.core.cancellation import CancellationToken
from code_scout.core.tool_result import (
    DIR_NOT_FOUND,
    INVALID_ARGS,
    INVALID_PATTERN,
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
    name="grep",
    description=(
        "Search file contents with a regular expression. Returns matching lines with their "
        "file paths and line numbers, grouped by file. "
        'Example: {"pattern": "def \\\\w+_handler", "file_pattern": "**/*.py", "context_lines": 2}.'
    ),
    parameters=(
        ToolParameter("pattern", "string", "Regular expression to search for (Python syntax).", required=True),
        ToolParameter(
            "file_pattern", "string",
            'Glob limiting which files are searched (default: "**/*"). '
            'A pattern without "/" such as "*.py" matches file names at any depth.',
        ),
        ToolParameter(
            "path", "string",
            "File or directory to search, relative to the workspace root. Defaults to the root.",
            is_path=True,
        ),
        ToolParameter("case_sensitive", "boolean", "Whether the search is case-sensitive (default: false)."),
        ToolParameter("max_results", "integer", "Maximum number of matching lines to return (default: 50)."),
        ToolParameter("context_lines", "integer", "Lines of context before and after each match (default: 0, max: 5)."),
    ),
)

_BINARY_SNIFF_BYTES = 8192
_MAX_FILE_BYTES = 2 * 1024 * 1024


@dataclass
class _Match:
    file: str
    line: int
    content: str
    before: List[Tuple[int, str]] = field(default_factory=list)
    after: List[Tuple[int, str]] = field(default_factory=list)


class GrepTool(WorkspaceTool):
    descriptor = DESCRIPTOR

    def __init__(
        self,
        workspace_root: str | Path,
        policy: Optional[Dict[str, Any]] = None,
        ignore_patterns: Iterable[str] = (),
        max_results: int = 50,
        max_context_lines: int = 5,
    ) -> None:
        super().__init__(workspace_root, policy, ignore_patterns)
        self._max_results = max_results
        self._max_context_lines = max_context_lines

    def _execute(self, args: Dict[str, Any], cancel: CancellationToken) -> ToolResult:
        pattern: str = args["pattern"]
        if not pattern:
            return ToolResult.failure(INVALID_ARGS, "pattern must not be empty")
        flags = 0 if args.get("case_sensitive", False) else re.IGNORECASE
        try:
            regex = re.compile(pattern, flags)
        except re.error as exc:
            return ToolResult.failure(INVALID_PATTERN, f"Invalid regex pattern: {exc}")

        file_pattern: str = args.get("file_pattern") or "**/*"
        try:
            file_matcher = compile_glob(file_pattern)
        except ValueError as exc:
            return ToolResult.failure(INVALID_PATTERN, f"Invalid file pattern: {exc}")
        by_name = "/" not in file_pattern

        raw_path = args.get("path") or "."
        base = self._resolve(raw_path)
        if not base.exists():
            return ToolResult.failure(DIR_NOT_FOUND, f"Path does not exist: {raw_path}")

        max_results = int_arg(args, "max_results", self._max_results, minimum=1, maximum=self._max_results)
        context = int_arg(args, "context_lines", 0, minimum=0, maximum=self._max_context_lines)

        single_file = base.is_file()
        if single_file:
            candidates: Iterable[Tuple[Path, str]] = [(base, base.name)]
        else:
            candidates = self._iter_files(base, cancel)

        matches: List[_Match] = []
        files_searched = 0
        truncated = False
        for path, rel in candidates:
            target = rel.rsplit("/", 1)[-1] if by_name else rel
            # A file named outright is searched whatever file_pattern says.
            if not single_file and not file_matcher.match(target):
                continue
            lines = self._read_lines(path)
            if lines is None:
                continue
            files_searched += 1
            truncated = self._scan(regex, self._relative(path), lines, context, max_results, matches, cancel)
            if truncated:
                break

        files = sorted({m.file for m in matches})
        display_path = self._relative(base)
        warnings = []
        if truncated:
            warnings.append(f"Results truncated at {max_results}. Narrow the pattern or the path.")

        return ToolResult.success(
            self._format(pattern, display_path, matches, files_searched, truncated),
            data={
                "pattern": pattern,
                "path": display_path,
                "file_pattern": file_pattern,
                "files_searched": files_searched,
                "files_with_matches": files,
                "match_count": len(matches),
                "truncated": truncated,
                "matches": [{"file": m.file, "line": m.line, "content": m.content} for m in matches],
            },
            warnings=warnings,
        )

    @staticmethod
    def _read_lines(path: Path) -> Optional[List[str]]:
        """Text lines of path, or None for binary, oversized or unreadable files."""
        try:
            if path.stat().st_size > _MAX_FILE_BYTES:
                return None
            raw = path.read_bytes()
        except OSError:
            return None
        if b"\x00" in raw[:_BINARY_SNIFF_BYTES]:
            return None
        return raw.decode("utf-8", errors="replace").splitlines()

    @staticmethod
    def _scan(
        regex: "re.Pattern[str]",
        rel: str,
        lines: List[str],
        context: int,
        max_results: int,
        out: List[_Match],
        cancel: CancellationToken,
    ) -> bool:
        """Append matches from one file. Returns True once a match beyond the cap is seen."""
        for i, line in enumerate(lines):
            if i % 1000 == 0:
                cancel.raise_if_cancelled()
            if not regex.search(line):
                continue
            if len(out) >= max_results:
                return True
            match = _Match(file=rel, line=i + 1, content=line.strip())
            if context:
                start = max(0, i - context)
                match.before = [(n + 1, lines[n]) for n in range(start, i)]
                match.after = [(n + 1, lines[n]) for n in range(i + 1, min(len(lines), i + context + 1))]
            out.append(match)
        return False

    @staticmethod
    def _format(
        pattern: str, path: str, matches: List[_Match], files_searched: int, truncated: bool
    ) -> str:
        where = "" if path == "." else f' in "{path}"'
        if not matches:
            return f'No matches found for pattern "{pattern}"{where} (searched {plural(files_searched, "file")})'

        files = sorted({m.file for m in matches})
        lines = [
            f'Found {plural(len(matches), "match", "es")} for "{pattern}"{where} '
            f'in {plural(len(files), "file")} (searched {plural(files_searched, "file")}):'
        ]
        by_file: Dict[str, List[_Match]] = {}
        for m in matches:
            by_file.setdefault(m.file, []).append(m)
        for file in files:
            lines.append("")
            lines.append(f"{file}:")
            for m in by_file[file]:
                lines.extend(f"  {n}- {text}" for n, text in m.before)
                lines.append(f"  {m.line}: {m.content}")
                lines.extend(f"  {n}- {text}" for n, text in m.after)
        if truncated:
            lines.append("")
            lines.append(f"(Results truncated at {len(matches)} matches.)")
        return "\n".join(lines)

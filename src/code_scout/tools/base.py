"""Base types for the read-only tool system."""

from __future__ import annotations

import fnmatch
import logging
import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, Optional, Tuple

from code_scout.core.cancellation import CancellationToken, OperationCancelled
from code_scout.core.path_validator import validate
from code_scout.core.tool_guard import ToolGuard
from code_scout.core.tool_result import (
    INVALID_ARGS,
    PATH_OUTSIDE_WORKSPACE,
    ToolResult,
)

_log = logging.getLogger(__name__)

# Directory and file names skipped by every tool that walks the tree.
DEFAULT_IGNORED_NAMES = frozenset(
    {
        "node_modules",
        ".git",
        "dist",
        "build",
        ".next",
        "coverage",
        ".nyc_output",
        "__pycache__",
        ".pytest_cache",
        ".mypy_cache",
        ".venv",
        ".DS_Store",
    }
)


@dataclass(frozen=True)
class ToolParameter:
    """One named parameter of a tool's schema."""

    name: str
    type: str
    description: str
    required: bool = False
    enum: Optional[Tuple[Any, ...]] = None
    items_type: Optional[str] = None
    is_path: bool = False

    def json_schema(self) -> Dict[str, Any]:
        spec: Dict[str, Any] = {"type": self.type, "description": self.description}
        if self.enum:
            spec["enum"] = list(self.enum)
        if self.type == "array":
            spec["items"] = {"type": self.items_type or "string"}
        return spec


@dataclass(frozen=True)
class ToolDescriptor:
    """Name, description and parameter schema a tool advertises to the model."""

    name: str
    description: str
    parameters: Tuple[ToolParameter, ...] = ()

    @property
    def required(self) -> list[str]:
        return [p.name for p in self.parameters if p.required]

    @property
    def path_params(self) -> list[str]:
        return [p.name for p in self.parameters if p.is_path]

    def json_schema(self) -> Dict[str, Any]:
        return {
            "type": "object",
            "properties": {p.name: p.json_schema() for p in self.parameters},
            "required": self.required,
        }

    def to_function_schema(self) -> Dict[str, Any]:
        """OpenAI-format function declaration, as LiteLLM expects it."""
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.json_schema(),
            },
        }


class WorkspaceBoundaryError(Exception):
    """A path resolved outside the workspace root."""

    def __init__(self, path: Any, reason: Optional[str] = None, malformed: bool = False) -> None:
        super().__init__(reason or f"Path '{path}' resolves outside the workspace.")
        self.path = path
        self.malformed = malformed


class WorkspaceTool:
    """Shared plumbing for tools that read inside one workspace root.

    Subclasses set ``descriptor`` and implement ``_execute``. ``run`` applies
    the guard, honours the cancellation token, and converts boundary and
    cancellation exceptions into typed failures.
    """

    descriptor: ToolDescriptor

    def __init__(
        self,
        workspace_root: str | Path,
        policy: Optional[Dict[str, Any]] = None,
        ignore_patterns: Iterable[str] = (),
    ) -> None:
        self._guard = ToolGuard(workspace_root=workspace_root, policy=policy)
        self._workspace_root = Path(workspace_root).resolve()
        self._ignore_patterns = tuple(ignore_patterns)

    @property
    def name(self) -> str:
        return self.descriptor.name

    def run(self, args: Dict[str, Any], cancel: Optional[CancellationToken] = None) -> ToolResult:
        blocked = self._guard.check(
            self.name,
            args,
            schema=self.descriptor.json_schema(),
            path_params=self.descriptor.path_params,
        )
        if blocked is not None:
            return blocked

        cancel = cancel or CancellationToken()
        try:
            cancel.raise_if_cancelled()
            return self._execute(args, cancel)
        except OperationCancelled:
            _log.debug("%s cancelled", self.name)
            return ToolResult.cancelled(self.name)
        except WorkspaceBoundaryError as exc:
            if exc.malformed:
                return ToolResult.failure(INVALID_ARGS, str(exc))
            _log.warning("Blocked %s: %s", self.name, exc)
            return ToolResult.failure(
                PATH_OUTSIDE_WORKSPACE,
                f"{exc} Access denied.",
                data={"requested_path": str(exc.path), "workspace": str(self._workspace_root)},
            )

    def _execute(self, args: Dict[str, Any], cancel: CancellationToken) -> ToolResult:
        raise NotImplementedError

    # ------------------------------------------------------------ helpers

    def _resolve(self, raw: Any) -> Path:
        """Resolve a path argument against the root; raise if out of bounds."""
        result = validate(raw, self._workspace_root)
        if not result.valid:
            raise WorkspaceBoundaryError(raw, result.reason, malformed=result.malformed)
        return result.resolved

    def _relative(self, path: Path) -> str:
        rel = path.relative_to(self._workspace_root).as_posix()
        return rel or "."

    def _is_ignored(self, rel_path: str, include_hidden: bool = False, workspace_rel: Optional[str] = None) -> bool:
        """Check a path against the built-in skip list and ignore patterns.

        ``rel_path`` is relative to the directory being searched; hidden and
        skip-listed names are looked for in its parts only. Ignore patterns
        are matched against ``workspace_rel`` (defaults to ``rel_path``).
        """
        parts = rel_path.split("/")
        for part in parts:
            if part in DEFAULT_IGNORED_NAMES:
                return True
            if not include_hidden and part.startswith(".") and part != ".":
                return True
        target = workspace_rel or rel_path
        return any(
            fnmatch.fnmatch(target, pattern) or fnmatch.fnmatch(parts[-1], pattern)
            for pattern in self._ignore_patterns
        )

    def _iter_files(
        self, base: Path, cancel: CancellationToken, include_hidden: bool = False
    ) -> Iterator[Tuple[Path, str]]:
        """Walk base top-down, yielding (path, path relative to base) for files.

        Skip-listed, hidden and ignored entries are pruned, and nothing that
        resolves outside the workspace is yielded or descended into. The token
        is checked for every directory and every file.
        """
        for dirpath, dirnames, filenames in os.walk(base):
            cancel.raise_if_cancelled()
            current = Path(dirpath)
            dirnames[:] = sorted(
                d for d in dirnames
                if not self._is_ignored(d, include_hidden, workspace_rel=self._relative(current / d))
                and validate(current / d, self._workspace_root).valid
            )
            for name in sorted(filenames):
                cancel.raise_if_cancelled()
                path = current / name
                if self._is_ignored(name, include_hidden, workspace_rel=self._relative(path)):
                    continue
                if not validate(path, self._workspace_root).valid:
                    continue
                yield path, path.relative_to(base).as_posix()


def int_arg(args: Dict[str, Any], name: str, default: int, minimum: int = 0, maximum: Optional[int] = None) -> int:
    """Read an optional integer argument, falling back and clamping."""
    value = args.get(name)
    if value is None:
        value = default
    value = max(int(value), minimum)
    if maximum is not None:
        value = min(value, maximum)
    return value


def plural(count: int, word: str, suffix: str = "s") -> str:
    return f"{count} {word}{'' if count == 1 else suffix}"


def compile_glob(pattern: str) -> "re.Pattern[str]":
    """Translate a glob into a regex over '/'-separated relative paths.

    Supports ``*``, ``?``, ``[...]``, ``{a,b}`` alternation and ``**`` for
    any number of directories. Raises ValueError for malformed patterns.
    """
    out = []
    depth = 0
    i, n = 0, len(pattern)
    while i < n:
        c = pattern[i]
        if c == "*":
            if pattern.startswith("**", i):
                i += 2
                if i < n and pattern[i] == "/":
                    out.append("(?:.*/)?")
                    i += 1
                else:
                    out.append(".*")
                continue
            out.append("[^/]*")
        elif c == "?":
            out.append("[^/]")
        elif c == "[":
            j = pattern.find("]", i + 2)
            if j == -1:
                raise ValueError(f"unterminated character class in {pattern!r}")
            body = pattern[i + 1:j].replace("\\", "\\\\")
            if body.startswith("!"):
                body = "^" + body[1:]
            out.append(f"[{body}]")
            i = j + 1
            continue
        elif c == "{":
            out.append("(?:")
            depth += 1
        elif c == "," and depth:
            out.append("|")
        elif c == "}" and depth:
            out.append(")")
            depth -= 1
        else:
            out.append(re.escape(c))
        i += 1
    if depth:
        raise ValueError(f"unbalanced '{{' in {pattern!r}")
    try:
        return re.compile("".join(out) + r"\Z", re.DOTALL)
    except re.error as exc:
        raise ValueError(f"invalid glob {pattern!r}: {exc}") from None

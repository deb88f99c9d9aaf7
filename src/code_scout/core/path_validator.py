"""Workspace boundary check for every file-system-facing path."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Optional


@dataclass(frozen=True)
class PathValidation:
    """Outcome of a boundary check. ``resolved`` is set only when valid."""

    valid: bool
    reason: Optional[str] = None
    resolved: Optional[Path] = None
    malformed: bool = False

    def __bool__(self) -> bool:
        return self.valid


def canonicalize(path: str | os.PathLike, base: Optional[Path] = None) -> Path:
    """Return the absolute, symlink-free form of ``path``.

    Backslashes are treated as separators so ``..\\`` sequences cannot slip
    through on POSIX. Relative paths are anchored at ``base`` when given.
    """
    text = os.fspath(path)
    if "\x00" in text:
        raise ValueError("path contains a NUL byte")
    text = text.replace("\\", "/")
    candidate = Path(text)
    if not candidate.is_absolute() and base is not None:
        candidate = base / candidate
    return candidate.resolve()


def validate(candidate: Any, workspace_root: Any) -> PathValidation:
    """Decide whether ``candidate`` lies inside ``workspace_root``.

    Valid iff the canonical candidate equals the canonical root or starts with
    the canonical root plus a separator. Relative candidates are resolved
    against the root. Never raises: malformed input is reported as invalid.
    """
    if not isinstance(candidate, (str, os.PathLike)) or not os.fspath(candidate):
        return PathValidation(False, f"Invalid path: expected a non-empty path, got {candidate!r}", malformed=True)
    if not isinstance(workspace_root, (str, os.PathLike)) or not os.fspath(workspace_root):
        return PathValidation(False, f"Invalid workspace root: {workspace_root!r}", malformed=True)

    try:
        root = canonicalize(workspace_root)
        resolved = canonicalize(candidate, base=root)
    except (OSError, ValueError, RuntimeError, TypeError) as exc:
        return PathValidation(False, f"Invalid path: {exc}", malformed=True)

    root_text = root.as_posix()
    resolved_text = resolved.as_posix()
    prefix = root_text if root_text.endswith("/") else root_text + "/"
    if resolved_text != root_text and not resolved_text.startswith(prefix):
        return PathValidation(
            False,
            f"Path must be within the workspace directory. Path: {os.fspath(candidate)}, Workspace: {root_text}",
        )
    return PathValidation(True, resolved=resolved)

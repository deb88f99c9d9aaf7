"""Shared pytest fixtures and helpers for code_scout tests."""

from __future__ import annotations

from pathlib import Path
from typing import Iterable, Iterator, List, Optional

import pytest

from code_scout.config import ScoutConfig
from code_scout.core.cancellation import CancellationToken
from code_scout.core.tool_result import ToolResult
from code_scout.core.transport import FunctionCall, ProviderChunk, RawChunk


@pytest.fixture
def workspace(tmp_path):
    """A temporary directory that acts as the workspace root."""
    return tmp_path.resolve()


@pytest.fixture
def config(workspace):
    return ScoutConfig(model="gemini/gemini-2.0-flash", workspace_root=workspace)


# ── Plain helper functions ─────────────────────────────────────────────────
# Each test file imports these directly:
#   from conftest import assert_ok, assert_fail, make_file

def make_file(workspace: Path, relative_path: str, content: str = "hello\n") -> Path:
    p = workspace / relative_path
    p.parent.mkdir(parents=True, exist_ok=True)
    p.write_text(content, encoding="utf-8")
    return p


def assert_ok(result: ToolResult) -> None:
    assert result.ok, f"Expected ok=True but got error: {result.error_code}: {result.error}"


def assert_fail(result: ToolResult, error_code: str | None = None) -> None:
    assert not result.ok, f"Expected ok=False but result succeeded: {result.output[:200]}"
    if error_code:
        assert result.error_code == error_code, (
            f"Expected error_code={error_code!r}, got {result.error_code!r}"
        )


# ── Scripted transport ─────────────────────────────────────────────────────

def text(*parts: str) -> ProviderChunk:
    return ProviderChunk(text_parts=list(parts))


def finish(reason: str = "stop", **usage: int) -> ProviderChunk:
    return ProviderChunk(finish_reason=reason, usage=dict(usage))


def call(name: Optional[str], **args) -> FunctionCall:
    return FunctionCall(name=name, args=args)


class FakeTransport:
    """Stands in for StreamingTransport; replays one script per send().

    A script item that is an exception instance is raised at that point.
    ``on_chunk`` (if set) is called with the chunk index before each yield.
    """

    def __init__(self, *scripts: Iterable) -> None:
        self.scripts: List[list] = [list(s) for s in scripts]
        self.sent: List[str] = []
        self.closed = False
        self.yielded = 0
        self.on_chunk = None

    def send(self, model: str, message: str, cancel: Optional[CancellationToken] = None) -> Iterator[RawChunk]:
        self.sent.append(message)
        script = self.scripts.pop(0) if self.scripts else []
        return self._replay(script)

    def _replay(self, script: list) -> Iterator[RawChunk]:
        for index, item in enumerate(script):
            if isinstance(item, BaseException):
                raise item
            if self.on_chunk is not None:
                self.on_chunk(index)
            self.yielded += 1
            yield item

    def close(self) -> None:
        self.closed = True

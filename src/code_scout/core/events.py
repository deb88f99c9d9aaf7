"""Events emitted by a turn.

A turn yields any number of non-terminal events followed by exactly one
terminal event: ``FinishedEvent``, ``ErrorEvent``, ``CancelledEvent`` or
``InvalidStreamEvent``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Tuple, Union


class EventType(str, Enum):
    CONTENT = "content"
    THOUGHT = "thought"
    TOOL_CALL_REQUEST = "tool_call_request"
    CITATION = "citation"
    RETRY = "retry"
    INVALID_STREAM = "invalid_stream"
    FINISHED = "finished"
    ERROR = "error"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class ContentEvent:
    text: str
    type: EventType = field(default=EventType.CONTENT, init=False)


@dataclass(frozen=True)
class ThoughtEvent:
    text: str
    summary: str
    type: EventType = field(default=EventType.THOUGHT, init=False)


@dataclass(frozen=True)
class ToolCallRequest:
    """A tool invocation requested by the model. ``call_id`` is unique per process."""

    call_id: str
    name: str
    args: Dict[str, Any]
    prompt_id: str
    type: EventType = field(default=EventType.TOOL_CALL_REQUEST, init=False)


@dataclass(frozen=True)
class CitationEvent:
    sources: Tuple[str, ...]
    type: EventType = field(default=EventType.CITATION, init=False)

    @property
    def text(self) -> str:
        return "Citations:\n" + "\n".join(self.sources)


@dataclass(frozen=True)
class RetryEvent:
    attempt: int = 0
    type: EventType = field(default=EventType.RETRY, init=False)


@dataclass(frozen=True)
class InvalidStreamEvent:
    message: str = "The model returned an invalid or truncated stream"
    type: EventType = field(default=EventType.INVALID_STREAM, init=False)


@dataclass(frozen=True)
class FinishedEvent:
    reason: str
    usage: Dict[str, int] = field(default_factory=dict)
    type: EventType = field(default=EventType.FINISHED, init=False)


@dataclass(frozen=True)
class ErrorEvent:
    message: str
    status: Optional[int] = None
    type: EventType = field(default=EventType.ERROR, init=False)


@dataclass(frozen=True)
class CancelledEvent:
    type: EventType = field(default=EventType.CANCELLED, init=False)


StreamEvent = Union[
    ContentEvent,
    ThoughtEvent,
    ToolCallRequest,
    CitationEvent,
    RetryEvent,
    InvalidStreamEvent,
    FinishedEvent,
    ErrorEvent,
    CancelledEvent,
]

TERMINAL_TYPES = frozenset(
    {EventType.FINISHED, EventType.ERROR, EventType.CANCELLED, EventType.INVALID_STREAM}
)


def is_terminal(event: StreamEvent) -> bool:
    return event.type in TERMINAL_TYPES

"""The turn engine.

A ``Turn`` consumes the transport's chunk stream for one outbound message and
yields normalised events, ending with exactly one terminal event. It never
executes tools and never re-enters the transport: tool calls are reported as
``ToolCallRequest`` events for the caller to act on.
"""

from __future__ import annotations

import itertools
import logging
import time
import uuid
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Iterator, List, Optional, Set

from code_scout.core.cancellation import CancellationToken
from code_scout.core.events import (
    CancelledEvent,
    CitationEvent,
    ContentEvent,
    ErrorEvent,
    FinishedEvent,
    InvalidStreamEvent,
    RetryEvent,
    StreamEvent,
    ThoughtEvent,
    ToolCallRequest,
)
from code_scout.core.transport import FunctionCall, ProviderChunk, RetryMarker
from code_scout.errors import InvalidStreamError

if TYPE_CHECKING:
    from code_scout.core.transport import StreamingTransport

_log = logging.getLogger(__name__)

UNDEFINED_TOOL_NAME = "undefined_tool_name"
_THOUGHT_SUMMARY_CHARS = 100

_call_counter = itertools.count(1)


def new_call_id(name: str) -> str:
    """Process-unique call id: tool name, wall-clock millis, a counter and random hex."""
    millis = int(time.time() * 1000)
    return f"{name}-{millis}-{next(_call_counter)}-{uuid.uuid4().hex[:12]}"


def summarize_thought(text: str) -> str:
    for line in text.splitlines():
        if line.strip():
            return line.strip()
    return text[:_THOUGHT_SUMMARY_CHARS]


@dataclass
class TurnState:
    text: str = ""
    pending_tool_calls: List[ToolCallRequest] = field(default_factory=list)
    pending_citations: Set[str] = field(default_factory=set)
    finish_reason: Optional[str] = None


class Turn:
    """One run of the agentic loop against one transport.

    Usage::

        turn = Turn(transport, prompt_id="analysis-1")
        for event in turn.run(model, prompt, cancel):
            ...
        turn.state.pending_tool_calls   # what the model asked for
    """

    def __init__(self, transport: "StreamingTransport", prompt_id: str) -> None:
        self._transport = transport
        self.prompt_id = prompt_id
        self.state = TurnState()

    def run(
        self, model: str, prompt: str, cancel: Optional[CancellationToken] = None
    ) -> Iterator[StreamEvent]:
        self.state = TurnState()
        cancel = cancel or CancellationToken()
        if cancel.is_cancelled():
            _log.debug("Turn %s cancelled before sending", self.prompt_id)
            yield CancelledEvent()
            return

        stream = None
        try:
            stream = self._transport.send(model, prompt, cancel)
            for chunk in stream:
                if cancel.is_cancelled():
                    _log.debug("Turn %s cancelled mid-stream", self.prompt_id)
                    yield CancelledEvent()
                    return

                if isinstance(chunk, RetryMarker):
                    yield RetryEvent(attempt=chunk.attempt)
                    continue

                terminal = False
                for event in self._handle_chunk(chunk):
                    terminal = terminal or isinstance(event, FinishedEvent)
                    yield event
                if terminal:
                    return

            # The transport only stops early when it was cancelled.
            if cancel.is_cancelled():
                yield CancelledEvent()
            else:
                yield InvalidStreamEvent("Model stream ended without a finish reason")
        except Exception as e:
            yield self._classify(e, cancel)
        finally:
            if stream is not None and hasattr(stream, "close"):
                stream.close()

    def _handle_chunk(self, chunk: ProviderChunk) -> Iterator[StreamEvent]:
        if chunk.thought:
            yield ThoughtEvent(text=chunk.thought, summary=summarize_thought(chunk.thought))

        text = chunk.text
        if text:
            self.state.text += text
            yield ContentEvent(text)

        for call in chunk.function_calls:
            yield self._tool_call_request(call)

        self.state.pending_citations.update(chunk.citations)

        if chunk.finish_reason:
            if self.state.pending_citations:
                yield CitationEvent(tuple(sorted(self.state.pending_citations)))
                self.state.pending_citations.clear()
            self.state.finish_reason = chunk.finish_reason
            _log.debug("Turn %s finished: %s", self.prompt_id, chunk.finish_reason)
            yield FinishedEvent(reason=chunk.finish_reason, usage=dict(chunk.usage))

    def _tool_call_request(self, call: FunctionCall) -> ToolCallRequest:
        name = call.name or UNDEFINED_TOOL_NAME
        request = ToolCallRequest(
            call_id=new_call_id(name),
            name=name,
            args=dict(call.args or {}),
            prompt_id=self.prompt_id,
        )
        self.state.pending_tool_calls.append(request)
        return request

    def _classify(self, error: Exception, cancel: CancellationToken) -> StreamEvent:
        if cancel.is_cancelled():
            _log.debug("Turn %s cancelled: %s", self.prompt_id, error)
            return CancelledEvent()
        if isinstance(error, InvalidStreamError):
            _log.warning("Turn %s: invalid stream: %s", self.prompt_id, error)
            return InvalidStreamEvent(str(error))
        _log.error("Turn %s failed: %s", self.prompt_id, error)
        return ErrorEvent(message=str(error), status=_status_of(error))


def _status_of(error: Exception) -> Optional[int]:
    for attr in ("status_code", "status"):
        value: Any = getattr(error, attr, None)
        if isinstance(value, int) and not isinstance(value, bool):
            return value
    return None

"""Tests for the turn engine, driven by a scripted transport."""

from __future__ import annotations

import pytest

from code_scout.core.cancellation import CancellationToken, OperationCancelled
from code_scout.core.events import (
    CancelledEvent,
    CitationEvent,
    ContentEvent,
    ErrorEvent,
    EventType,
    FinishedEvent,
    InvalidStreamEvent,
    RetryEvent,
    ThoughtEvent,
    ToolCallRequest,
    is_terminal,
)
from code_scout.core.transport import ProviderChunk, RetryMarker
from code_scout.core.turn import Turn, new_call_id, summarize_thought
from code_scout.errors import InvalidStreamError, TransportError
from conftest import FakeTransport, call, finish, text


def run_turn(*script, cancel=None, prompt_id="p-1"):
    transport = FakeTransport(list(script))
    turn = Turn(transport, prompt_id)
    events = list(turn.run("model-x", "question", cancel))
    return events, turn, transport


def types(events):
    return [e.type for e in events]


class TestScenarios:
    def test_plain_content(self):
        events, turn, _ = run_turn(text("Hello "), text("world"), finish("stop"))
        assert events == [ContentEvent("Hello "), ContentEvent("world"), FinishedEvent("stop", {})]
        assert turn.state.text == "Hello world"
        assert turn.state.finish_reason == "stop"

    def test_two_calls_in_one_chunk(self):
        chunk = ProviderChunk(function_calls=[call("glob", pattern="*.py"), call("read_file", file_path="a.py")])
        events, turn, _ = run_turn(chunk, finish("tool_calls"))
        requests = [e for e in events if isinstance(e, ToolCallRequest)]
        assert [r.name for r in requests] == ["glob", "read_file"]
        assert requests[0].args == {"pattern": "*.py"}
        assert requests[0].call_id != requests[1].call_id
        assert all(r.prompt_id == "p-1" for r in requests)
        assert turn.state.pending_tool_calls == requests

    def test_cancelled_before_run_sends_nothing(self):
        token = CancellationToken()
        token.cancel()
        events, _, transport = run_turn(text("never"), finish(), cancel=token)
        assert events == [CancelledEvent()]
        assert transport.sent == []


class TestOrdering:
    def test_single_content_event_per_chunk(self):
        events, _, _ = run_turn(text("a", "b", "c"), finish())
        assert events[0] == ContentEvent("abc")

    def test_finish_chunk_content_comes_before_finished(self):
        chunk = ProviderChunk(text_parts=["done"], finish_reason="stop", usage={"total_tokens": 7})
        events, _, _ = run_turn(chunk)
        assert events == [ContentEvent("done"), FinishedEvent("stop", {"total_tokens": 7})]

    def test_exactly_one_terminal_event_last(self):
        events, _, _ = run_turn(text("x"), finish(), text("after"))
        assert sum(is_terminal(e) for e in events) == 1
        assert is_terminal(events[-1])
        assert ContentEvent("after") not in events

    def test_retry_is_not_terminal(self):
        events, _, _ = run_turn(RetryMarker(attempt=1), text("ok"), finish())
        assert types(events) == [EventType.RETRY, EventType.CONTENT, EventType.FINISHED]
        assert events[0] == RetryEvent(attempt=1)


class TestThoughts:
    def test_thought_not_emitted_as_content(self):
        chunk = ProviderChunk(thought="Plan:\nread the file")
        events, turn, _ = run_turn(chunk, finish())
        assert events[0] == ThoughtEvent(text="Plan:\nread the file", summary="Plan:")
        assert not any(isinstance(e, ContentEvent) for e in events)
        assert turn.state.text == ""

    def test_summary_skips_blank_lines(self):
        assert summarize_thought("\n\n  first real line\nsecond") == "first real line"

    def test_summary_without_newlines_truncates(self):
        assert summarize_thought("x" * 300) == "x" * 100


class TestCitations:
    def test_sorted_and_deduplicated_before_finished(self):
        events, _, _ = run_turn(
            ProviderChunk(text_parts=["a"], citations=["https://b.example", "https://a.example"]),
            ProviderChunk(citations=["https://a.example"]),
            finish(),
        )
        assert types(events) == [EventType.CONTENT, EventType.CITATION, EventType.FINISHED]
        citation = events[1]
        assert citation == CitationEvent(("https://a.example", "https://b.example"))
        assert citation.text == "Citations:\nhttps://a.example\nhttps://b.example"

    def test_no_citation_event_without_sources(self):
        events, _, _ = run_turn(text("a"), finish())
        assert not any(isinstance(e, CitationEvent) for e in events)


class TestToolCalls:
    def test_missing_name_gets_placeholder(self):
        events, _, _ = run_turn(ProviderChunk(function_calls=[call(None)]), finish())
        assert events[0].name == "undefined_tool_name"

    def test_call_ids_unique_across_turns(self):
        ids = {new_call_id("grep") for _ in range(1000)}
        assert len(ids) == 1000
        assert all(i.startswith("grep-") for i in ids)

    def test_state_reset_between_runs(self):
        transport = FakeTransport(
            [ProviderChunk(function_calls=[call("glob", pattern="*")]), finish()],
            [text("second"), finish()],
        )
        turn = Turn(transport, "p")
        list(turn.run("m", "one"))
        assert len(turn.state.pending_tool_calls) == 1
        list(turn.run("m", "two"))
        assert turn.state.pending_tool_calls == []
        assert turn.state.text == "second"


class TestFailures:
    def test_transport_error_with_status(self):
        events, _, _ = run_turn(text("partial"), TransportError("rate limited", status_code=429))
        assert events[-1] == ErrorEvent(message="rate limited", status=429)

    def test_error_without_status(self):
        events, _, _ = run_turn(RuntimeError("boom"))
        assert events == [ErrorEvent(message="boom", status=None)]

    def test_status_attribute_is_used(self):
        error = RuntimeError("server")
        error.status = 503
        events, _, _ = run_turn(error)
        assert events[-1].status == 503

    def test_invalid_stream(self):
        events, _, _ = run_turn(text("x"), InvalidStreamError("truncated"))
        assert events[-1] == InvalidStreamEvent("truncated")

    def test_stream_ending_without_finish(self):
        events, _, _ = run_turn(text("x"))
        assert isinstance(events[-1], InvalidStreamEvent)

    def test_exception_while_cancelled_is_cancelled(self):
        token = CancellationToken()
        transport = FakeTransport([text("a"), OperationCancelled("stop")])
        transport.on_chunk = lambda index: token.cancel()
        events = list(Turn(transport, "p").run("m", "q", token))
        assert events[-1] == CancelledEvent()


class TestCancellation:
    @pytest.mark.parametrize("k", [0, 1, 2])
    def test_cancel_before_kth_chunk(self, k):
        token = CancellationToken()
        script = [text("c0"), text("c1"), text("c2"), finish()]
        transport = FakeTransport(script)

        def cancel_at(index):
            if index == k:
                token.cancel()

        transport.on_chunk = cancel_at
        events = list(Turn(transport, "p").run("m", "q", token))
        assert events[-1] == CancelledEvent()
        assert [e.text for e in events if isinstance(e, ContentEvent)] == [f"c{i}" for i in range(k)]
        assert transport.yielded == k + 1

    def test_stream_closed_after_finish(self):
        closed = []

        def stream():
            try:
                yield text("a")
                yield finish()
                yield text("never")
            finally:
                closed.append(True)

        class OneShot:
            def send(self, model, message, cancel=None):
                return stream()

        events = list(Turn(OneShot(), "p").run("m", "q"))
        assert isinstance(events[-1], FinishedEvent)
        assert closed == [True]

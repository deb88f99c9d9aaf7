"""Tests for AnalysisSession: lifecycle, tool rounds, failure mapping and canned tasks."""

from __future__ import annotations

import pytest

from code_scout.config import ScoutConfig, ToolLimits
from code_scout.core.cancellation import CancellationToken
from code_scout.core.events import ContentEvent, FinishedEvent, ToolCallRequest
from code_scout.core.transport import ProviderChunk
from code_scout.errors import (
    AnalysisError,
    AnalysisTimeoutError,
    ClosedSessionError,
    TransportError,
    ValidationError,
)
from code_scout.session import AnalysisSession, build_prompt
from conftest import FakeTransport, call, finish, make_file, text


def tool_round(*calls, **usage):
    return [ProviderChunk(function_calls=list(calls)), finish("tool_calls", **usage)]


def answer(reply="Done.", **usage):
    return [text(reply), finish("stop", **usage)]


class BlockingTransport:
    """Never produces a chunk; waits until its token is cancelled."""

    closed = False

    def send(self, model, message, cancel=None):
        cancel.wait(5)
        return
        yield

    def close(self):
        self.closed = True


class TestLifecycle:
    def test_close_is_idempotent(self, config):
        transport = FakeTransport()
        session = AnalysisSession(config, transport=transport)
        session.close()
        session.close()
        assert session.closed
        assert transport.closed

    def test_run_after_close_raises(self, config):
        session = AnalysisSession(config, transport=FakeTransport())
        session.close()
        with pytest.raises(ClosedSessionError):
            session.run("hello")

    def test_analyze_after_close_raises(self, config):
        session = AnalysisSession(config, transport=FakeTransport())
        session.close()
        with pytest.raises(ClosedSessionError):
            session.analyze("hello")

    def test_context_manager_closes(self, config):
        transport = FakeTransport()
        with AnalysisSession(config, transport=transport) as session:
            assert not session.closed
        assert transport.closed

    def test_default_wiring_registers_read_tools(self, config):
        with AnalysisSession(config) as session:
            assert sorted(session.registry.names()) == ["glob", "grep", "list_directory", "read_file"]

    def test_prompt_ids_are_distinct(self, config):
        session = AnalysisSession(config, transport=FakeTransport())
        assert session.new_turn().prompt_id != session.new_turn().prompt_id

    def test_run_streams_one_turn(self, config):
        session = AnalysisSession(config, transport=FakeTransport(answer("hi")))
        events = list(session.run("hello"))
        assert events == [ContentEvent("hi"), FinishedEvent("stop", {})]


class TestAnalyze:
    def test_single_round_answer(self, config):
        transport = FakeTransport(answer("The answer.", prompt_tokens=10, completion_tokens=3))
        result = AnalysisSession(config, transport=transport).analyze("What is this?")
        assert result.response == "The answer."
        assert result.rounds == 1
        assert result.tool_calls == 0
        assert result.prompt_tokens == 10
        assert result.completion_tokens == 3
        assert result.total_tokens == 13
        assert not result.cancelled

    def test_tool_results_fed_into_next_round(self, config, workspace):
        make_file(workspace, "app.py", "print('hi')\n")
        transport = FakeTransport(
            tool_round(call("read_file", file_path="app.py"), prompt_tokens=5, completion_tokens=1),
            answer("It prints hi.", prompt_tokens=20, completion_tokens=4),
        )
        result = AnalysisSession(config, transport=transport).analyze("Explain app.py")

        assert len(transport.sent) == 2
        follow_up = transport.sent[1]
        assert '### read_file {"file_path": "app.py"}' in follow_up
        assert "print('hi')" in follow_up
        assert result.response == "It prints hi."
        assert result.rounds == 2
        assert result.tool_calls == 1
        assert result.tool_calls_by_name == {"read_file": 1}
        assert result.total_tokens == 30

    def test_tool_failure_reported_to_model_and_warned(self, config):
        transport = FakeTransport(
            tool_round(call("read_file", file_path="../etc/passwd")),
            answer("Could not read it."),
        )
        result = AnalysisSession(config, transport=transport).analyze("Read it")
        assert "Error:" in transport.sent[1]
        assert any("read_file failed" in w for w in result.warnings)

    def test_unknown_tool_does_not_abort(self, config):
        transport = FakeTransport(tool_round(call("write_file", path="x")), answer("ok"))
        result = AnalysisSession(config, transport=transport).analyze("Do it")
        assert result.response == "ok"
        assert "Available tools" in transport.sent[1]

    def test_tool_output_capped(self, workspace):
        make_file(workspace, "big.txt", "x" * 5000 + "\n")
        config = ScoutConfig(
            model="m", workspace_root=workspace, limits=ToolLimits(max_tool_output_chars=100),
        )
        transport = FakeTransport(tool_round(call("read_file", file_path="big.txt")), answer())
        AnalysisSession(config, transport=transport).analyze("Read it")
        assert "[Output truncated" in transport.sent[1]

    def test_round_limit_adds_warning(self, workspace):
        config = ScoutConfig(model="m", workspace_root=workspace, max_tool_rounds=2)
        transport = FakeTransport(
            tool_round(call("list_directory")),
            tool_round(call("list_directory")),
            answer("never reached"),
        )
        result = AnalysisSession(config, transport=transport).analyze("Explore")
        assert result.rounds == 2
        assert len(transport.sent) == 2
        assert any("Stopped after 2 tool rounds" in w for w in result.warnings)

    def test_callbacks(self, config, workspace):
        make_file(workspace, "a.txt", "a\n")
        events, tool_results = [], []
        transport = FakeTransport(tool_round(call("read_file", file_path="a.txt")), answer())
        AnalysisSession(config, transport=transport).analyze(
            "Read a.txt",
            on_event=events.append,
            on_tool_result=lambda req, res: tool_results.append((req.name, res.ok)),
        )
        assert any(isinstance(e, ToolCallRequest) for e in events)
        assert tool_results == [("read_file", True)]

    def test_responses_joined_across_rounds(self, config):
        transport = FakeTransport(
            [text("Looking around."), ProviderChunk(function_calls=[call("list_directory")]), finish("tool_calls")],
            answer("Found it."),
        )
        result = AnalysisSession(config, transport=transport).analyze("Where?")
        assert result.response == "Looking around.\n\nFound it."


class TestFailures:
    def test_error_event_raises_analysis_error(self, config):
        transport = FakeTransport([TransportError("server exploded", status_code=500)])
        with pytest.raises(AnalysisError) as exc_info:
            AnalysisSession(config, transport=transport).analyze("Hi")
        assert exc_info.value.status_code == 500
        assert "server exploded" in str(exc_info.value)

    def test_invalid_stream_raises_analysis_error(self, config):
        transport = FakeTransport([text("cut off")])
        with pytest.raises(AnalysisError) as exc_info:
            AnalysisSession(config, transport=transport).analyze("Hi")
        assert exc_info.value.code == "INVALID_STREAM"

    def test_timeout(self, workspace):
        config = ScoutConfig(model="m", workspace_root=workspace, timeout_seconds=0.05)
        session = AnalysisSession(config, transport=BlockingTransport())
        with pytest.raises(AnalysisTimeoutError) as exc_info:
            session.analyze("Hi")
        assert exc_info.value.timeout_seconds == 0.05

    def test_user_cancel_returns_partial_result(self, config):
        token = CancellationToken()
        token.cancel("user")
        result = AnalysisSession(config, transport=FakeTransport(answer())).analyze("Hi", cancel=token)
        assert result.cancelled is True
        assert result.response == ""

    def test_cancel_between_rounds(self, config):
        token = CancellationToken()
        transport = FakeTransport(tool_round(call("list_directory")), answer("never"))

        def cancel_on_tool(request, tool_result):
            token.cancel("user")

        result = AnalysisSession(config, transport=transport).analyze(
            "Explore", cancel=token, on_tool_result=cancel_on_tool,
        )
        assert result.cancelled is True
        assert result.rounds == 2
        assert len(transport.sent) == 1

    def test_reused_token_keeps_no_callbacks(self, config):
        token = CancellationToken()
        session = AnalysisSession(config, transport=FakeTransport(*[answer() for _ in range(20)]))
        for _ in range(20):
            assert session.analyze("Hi", cancel=token).cancelled is False
        assert token._callbacks == []


class TestBuildPrompt:
    def test_prompt_only(self):
        assert build_prompt("Explain") == "Explain"

    def test_files_listed_not_read(self, workspace):
        prompt = build_prompt("Explain", files=["src/a.py", "b.py"])
        assert "- src/a.py\n- b.py" in prompt
        assert "read_file" in prompt

    def test_additional_context(self):
        assert build_prompt("Explain", additional_context="stack trace").endswith(
            "Additional Context:\nstack trace"
        )

    @pytest.mark.parametrize("prompt", ["", "   ", None, 42])
    def test_bad_prompt(self, prompt):
        with pytest.raises(ValidationError):
            build_prompt(prompt)

    @pytest.mark.parametrize("files", ["a.py", [1], [""]])
    def test_bad_files(self, files):
        with pytest.raises(ValidationError):
            build_prompt("x", files=files)

    def test_bad_context(self):
        with pytest.raises(ValidationError):
            build_prompt("x", additional_context=["not", "a", "string"])


class TestCannedTasks:
    def test_explain_code(self, config):
        transport = FakeTransport(answer())
        AnalysisSession(config, transport=transport).explain_code("src/app.py", detail="expert", line_start=1, line_end=20)
        sent = transport.sent[0]
        assert 'Explain the code in file "src/app.py" (lines 1-20)' in sent
        assert "expert-level" in sent
        assert "- src/app.py" in sent

    def test_explain_code_bad_detail(self, config):
        with pytest.raises(ValidationError):
            AnalysisSession(config, transport=FakeTransport()).explain_code("a.py", detail="shallow")

    def test_summarize_codebase(self, config):
        transport = FakeTransport(answer())
        AnalysisSession(config, transport=transport).summarize_codebase(depth="overview", focus=["quality"])
        sent = transport.sent[0]
        assert "Quality:" in sent
        assert "code metrics" in sent

    def test_summarize_bad_focus(self, config):
        with pytest.raises(ValidationError):
            AnalysisSession(config, transport=FakeTransport()).summarize_codebase(focus=["vibes"])

    def test_ci_failure_requires_log(self, config):
        with pytest.raises(ValidationError):
            AnalysisSession(config, transport=FakeTransport()).analyze_ci_failure()

    def test_ci_failure_inline_log(self, config):
        transport = FakeTransport(answer())
        AnalysisSession(config, transport=transport).analyze_ci_failure(
            log_content="E   AssertionError", build_command="pytest",
        )
        sent = transport.sent[0]
        assert "Build command: pytest" in sent
        assert "CI/CD Logs:\n```\nE   AssertionError\n```" in sent

    def test_ci_failure_log_file(self, config):
        transport = FakeTransport(answer())
        AnalysisSession(config, transport=transport).analyze_ci_failure(log_file="ci.log")
        assert 'Read the log file "ci.log"' in transport.sent[0]

    def test_review_changes_with_diff(self, config):
        transport = FakeTransport(answer())
        AnalysisSession(config, transport=transport).review_changes(
            "main", focus=["security"], output_format="json", diff="+x = 1",
        )
        sent = transport.sent[0]
        assert 'between branches "main" and "HEAD"' in sent
        assert "Output format: Structured JSON" in sent
        assert "```diff\n+x = 1\n```" in sent

    def test_review_requires_base(self, config):
        with pytest.raises(ValidationError):
            AnalysisSession(config, transport=FakeTransport()).review_changes("")

"""AnalysisSession - composition root and tool-round orchestrator."""

from __future__ import annotations

import itertools
import json
import logging
import time
import uuid
from collections.abc import Callable, Iterator
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

from code_scout import prompts
from code_scout.config import ScoutConfig
from code_scout.core.cancellation import CancellationToken
from code_scout.core.events import (
    CancelledEvent,
    ErrorEvent,
    FinishedEvent,
    InvalidStreamEvent,
    StreamEvent,
    ToolCallRequest,
)
from code_scout.core.tool_result import ToolResult
from code_scout.core.transport import StreamingTransport
from code_scout.core.turn import Turn
from code_scout.errors import (
    AnalysisError,
    AnalysisTimeoutError,
    ClosedSessionError,
    InvalidStreamError,
    ValidationError,
)
from code_scout.tools.registry import ToolRegistry, build_registry
from code_scout.utils import truncate_output

_log = logging.getLogger(__name__)

EventCallback = Callable[[StreamEvent], None]
ToolCallback = Callable[[ToolCallRequest, ToolResult], None]


@dataclass
class AnalysisResult:
    response: str
    model: str
    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0
    tool_calls: int = 0
    tool_calls_by_name: Dict[str, int] = field(default_factory=dict)
    rounds: int = 0
    duration_seconds: float = 0.0
    warnings: List[str] = field(default_factory=list)
    cancelled: bool = False

    def add_usage(self, usage: Dict[str, int]) -> None:
        prompt = usage.get("prompt_tokens", 0)
        completion = usage.get("completion_tokens", 0)
        self.prompt_tokens += prompt
        self.completion_tokens += completion
        self.total_tokens += usage.get("total_tokens", prompt + completion)

    def count_tool_call(self, name: str) -> None:
        self.tool_calls += 1
        self.tool_calls_by_name[name] = self.tool_calls_by_name.get(name, 0) + 1


class AnalysisSession:
    """Read-only codebase analysis against one workspace.

    Owns one transport (and so one history) and one tool registry holding
    only the read tools. ``run`` drives a single turn; ``analyze`` loops turns
    and tool executions until the model answers without asking for tools.

    Usage::

        with AnalysisSession(config) as session:
            result = session.analyze("Where is the retry policy defined?")
            print(result.response)
    """

    def __init__(
        self,
        config: ScoutConfig,
        transport: Optional[StreamingTransport] = None,
        registry: Optional[ToolRegistry] = None,
    ) -> None:
        self.config = config
        self.registry = registry or build_registry(config)
        self.transport = transport or StreamingTransport(config, tools=self.registry.function_schemas())
        self.session_id = uuid.uuid4().hex[:8]
        self._turns = itertools.count(1)
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        """Release the transport and its history. Safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        self.transport.close()
        _log.debug("Session %s closed", self.session_id)

    def __enter__(self) -> "AnalysisSession":
        return self

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    def _ensure_open(self) -> None:
        if self._closed:
            raise ClosedSessionError()

    def new_turn(self) -> Turn:
        self._ensure_open()
        return Turn(self.transport, prompt_id=f"code-scout-{self.session_id}-{next(self._turns)}")

    def run(
        self,
        prompt: str,
        cancel: Optional[CancellationToken] = None,
        model: Optional[str] = None,
    ) -> Iterator[StreamEvent]:
        """Send one message and return the turn's event stream."""
        turn = self.new_turn()
        return turn.run(model or self.config.model, prompt, cancel)

    # ---------------------------------------------------------------- analyze

    def analyze(
        self,
        prompt: str,
        files: Optional[Sequence[str]] = None,
        additional_context: Optional[str] = None,
        cancel: Optional[CancellationToken] = None,
        on_event: Optional[EventCallback] = None,
        on_tool_result: Optional[ToolCallback] = None,
    ) -> AnalysisResult:
        """Answer prompt, letting the model call the read tools as it sees fit.

        Args:
            prompt: The question or task.
            files: Workspace paths to point the model at. Only the paths are
                sent; the model reads them through read_file.
            additional_context: Text included verbatim, e.g. a diff or a log.
            cancel: Caller's token. Cancelling it ends the analysis with a
                partial result flagged ``cancelled``.
            on_event: Called with every turn event, for live display.
            on_tool_result: Called after each tool call completes.

        Raises:
            ValidationError: If the arguments are malformed.
            AnalysisTimeoutError: If ``timeout_seconds`` elapses first.
            AnalysisError: If a turn ends in an error or an invalid stream.
        """
        self._ensure_open()
        message = build_prompt(prompt, files, additional_context)

        started = time.monotonic()
        timeout = self.config.timeout_seconds
        token = cancel.child() if cancel is not None else CancellationToken()
        timer = token.cancel_after(timeout, reason="timeout")
        result = AnalysisResult(response="", model=self.config.model)
        responses: List[str] = []

        try:
            for round_no in range(1, self.config.max_tool_rounds + 1):
                result.rounds = round_no
                turn = self.new_turn()
                terminal: Optional[StreamEvent] = None
                for event in turn.run(self.config.model, message, token):
                    if on_event is not None:
                        on_event(event)
                    if isinstance(event, (FinishedEvent, ErrorEvent, InvalidStreamEvent, CancelledEvent)):
                        terminal = event

                if turn.state.text:
                    responses.append(turn.state.text)

                if isinstance(terminal, CancelledEvent):
                    if token.reason == "timeout" and not (cancel is not None and cancel.is_cancelled()):
                        raise AnalysisTimeoutError(timeout, time.monotonic() - started)
                    _log.info("Analysis cancelled after %d round(s)", round_no)
                    result.cancelled = True
                    break
                if isinstance(terminal, ErrorEvent):
                    raise AnalysisError(terminal.message, status_code=terminal.status)
                if isinstance(terminal, InvalidStreamEvent):
                    raise AnalysisError(terminal.message, code=InvalidStreamError.code)
                if isinstance(terminal, FinishedEvent):
                    result.add_usage(terminal.usage)

                calls = turn.state.pending_tool_calls
                if not calls:
                    break
                if round_no == self.config.max_tool_rounds:
                    result.warnings.append(
                        f"Stopped after {round_no} tool rounds; the answer may be incomplete."
                    )
                    break

                outputs = self._execute_calls(calls, token, result, on_tool_result)
                message = self._fold_results(outputs)
        finally:
            timer.cancel()
            token.detach()

        result.response = "\n\n".join(r.strip() for r in responses if r.strip())
        result.duration_seconds = time.monotonic() - started
        _log.info(
            "Analysis finished: %d round(s), %d tool call(s), %.1fs",
            result.rounds, result.tool_calls, result.duration_seconds,
        )
        return result

    def _execute_calls(
        self,
        calls: List[ToolCallRequest],
        token: CancellationToken,
        result: AnalysisResult,
        on_tool_result: Optional[ToolCallback],
    ) -> List[Tuple[ToolCallRequest, ToolResult]]:
        outputs = []
        for call in calls:
            result.count_tool_call(call.name)
            tool_result = self.registry.execute(call.name, call.args, token)
            outputs.append((call, tool_result))
            if on_tool_result is not None:
                on_tool_result(call, tool_result)
            if tool_result.is_cancelled:
                break
            if not tool_result.ok:
                result.warnings.append(f"Tool {call.name} failed: {tool_result.error}")
            result.warnings.extend(tool_result.warnings)
        return outputs

    def _fold_results(self, outputs: List[Tuple[ToolCallRequest, ToolResult]]) -> str:
        """Render tool outputs as the next message to the model."""
        limit = self.config.limits.max_tool_output_chars
        sections = ["Results of the tools you called:"]
        for call, tool_result in outputs:
            args = json.dumps(call.args, sort_keys=True)
            sections.append(f"### {call.name} {args}\n{truncate_output(tool_result.to_model_text(), limit)}")
        sections.append(
            "Continue the analysis with these results. Call more tools if you need them, "
            "otherwise give your final answer."
        )
        return "\n\n".join(sections)

    # ------------------------------------------------------------ canned tasks

    def explain_code(
        self,
        file: str,
        detail: str = "detailed",
        line_start: Optional[int] = None,
        line_end: Optional[int] = None,
        **kwargs: Any,
    ) -> AnalysisResult:
        if not isinstance(file, str) or not file.strip():
            raise ValidationError("file is required and must be a string")
        try:
            prompt = prompts.explain_code_prompt(file, detail, line_start, line_end)
        except ValueError as e:
            raise ValidationError(str(e)) from None
        return self.analyze(prompt, files=[file], **kwargs)

    def summarize_codebase(
        self,
        depth: str = "moderate",
        focus: Sequence[str] = ("architecture", "patterns"),
        include_metrics: bool = True,
        **kwargs: Any,
    ) -> AnalysisResult:
        try:
            prompt = prompts.summarize_codebase_prompt(depth, focus, include_metrics)
        except ValueError as e:
            raise ValidationError(str(e)) from None
        return self.analyze(prompt, **kwargs)

    def analyze_ci_failure(
        self,
        log_file: Optional[str] = None,
        log_content: Optional[str] = None,
        build_command: Optional[str] = None,
        context_files: Sequence[str] = (),
        **kwargs: Any,
    ) -> AnalysisResult:
        if not log_file and not log_content:
            raise ValidationError("Either log_file or log_content must be provided")
        prompt = prompts.ci_failure_prompt(
            log_file=None if log_content else log_file,
            build_command=build_command,
            context_files=context_files,
        )
        files = ([log_file] if log_file and not log_content else []) + list(context_files)
        context = f"CI/CD Logs:\n```\n{log_content}\n```" if log_content else None
        return self.analyze(prompt, files=files or None, additional_context=context, **kwargs)

    def review_changes(
        self,
        base_branch: str,
        head_branch: str = "HEAD",
        focus: Sequence[str] = ("bugs", "security", "performance"),
        output_format: str = "markdown",
        diff: Optional[str] = None,
        **kwargs: Any,
    ) -> AnalysisResult:
        if not isinstance(base_branch, str) or not base_branch.strip():
            raise ValidationError("base_branch is required and must be a string")
        prompt = prompts.review_prompt(base_branch, head_branch, focus, output_format)
        context = f"Diff:\n```diff\n{diff}\n```" if diff else None
        return self.analyze(prompt, additional_context=context, **kwargs)


def build_prompt(
    prompt: str,
    files: Optional[Sequence[str]] = None,
    additional_context: Optional[str] = None,
) -> str:
    """Compose the first message: the prompt, file paths (never contents) and context.

    Raises:
        ValidationError: If prompt is empty or files is not a list of strings.
    """
    if not isinstance(prompt, str) or not prompt.strip():
        raise ValidationError("prompt is required and must be a non-empty string")
    if files is not None and (
        isinstance(files, str) or not all(isinstance(f, str) and f for f in files)
    ):
        raise ValidationError("files must be a list of non-empty path strings")
    if additional_context is not None and not isinstance(additional_context, str):
        raise ValidationError("additional_context must be a string")

    text = prompt
    if files:
        text += "\n\nAnalyze the following files:\n"
        text += "\n".join(f"- {f}" for f in files)
        text += "\n\nUse the read_file tool to read these files."
    if additional_context:
        text += f"\n\nAdditional Context:\n{additional_context}"
    return text

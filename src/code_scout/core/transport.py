"""LiteLLM streaming transport: one outbound message in, normalised chunks out."""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Union

import litellm

from code_scout.core.cancellation import CancellationToken, OperationCancelled
from code_scout.errors import ClosedSessionError, InvalidStreamError, TransportError

if TYPE_CHECKING:
    from code_scout.config import ScoutConfig

_log = logging.getLogger(__name__)

# Failures worth another attempt when nothing has been delivered yet.
_TRANSIENT_ERRORS = (
    litellm.RateLimitError,
    litellm.APIConnectionError,
    litellm.Timeout,
    litellm.ServiceUnavailableError,
    litellm.InternalServerError,
)


@dataclass(frozen=True)
class FunctionCall:
    name: Optional[str]
    args: Dict[str, Any]
    id: Optional[str] = None


@dataclass
class ProviderChunk:
    """One provider response chunk, stripped of provider-specific shape."""

    text_parts: List[str] = field(default_factory=list)
    thought: Optional[str] = None
    function_calls: List[FunctionCall] = field(default_factory=list)
    citations: List[str] = field(default_factory=list)
    finish_reason: Optional[str] = None
    usage: Dict[str, int] = field(default_factory=dict)

    @property
    def text(self) -> str:
        return "".join(self.text_parts)

    def is_empty(self) -> bool:
        return not (
            self.text_parts or self.thought or self.function_calls
            or self.citations or self.finish_reason
        )


@dataclass(frozen=True)
class RetryMarker:
    """Yielded before the transport re-sends after a transient failure."""

    attempt: int
    error: str = ""


RawChunk = Union[ProviderChunk, RetryMarker]


class StreamingTransport:
    """Streams completions from LiteLLM and keeps the conversation history.

    History is append-only: each ``send`` appends the user message before the
    request goes out and, with the finishing chunk, the assistant reply.
    One ``send`` may be in flight at a time.
    """

    def __init__(self, config: "ScoutConfig", tools: Optional[List[Dict[str, Any]]] = None) -> None:
        self._config = config
        self._tools = list(tools) if tools else None
        self._history: List[Dict[str, str]] = []
        self._closed = False

    @property
    def history(self) -> List[Dict[str, str]]:
        return list(self._history)

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        if self._closed:
            return
        self._history.clear()
        self._closed = True
        _log.debug("Transport closed")

    # ------------------------------------------------------------------ send

    def send(
        self, model: str, message: str, cancel: Optional[CancellationToken] = None
    ) -> Iterator[RawChunk]:
        """Send message with the held history; yield chunks as they arrive.

        Raises:
            ClosedSessionError: If the transport was closed.
            InvalidStreamError: If the stream is truncated or malformed.
            TransportError: If the provider call fails after any retries.
            OperationCancelled: If the token is cancelled during a backoff wait.
        """
        if self._closed:
            raise ClosedSessionError()
        cancel = cancel or CancellationToken()

        messages = [{"role": "system", "content": self._config.system_instruction}]
        messages.extend(self._history)
        messages.append({"role": "user", "content": message})
        self._history.append({"role": "user", "content": message})

        attempt = 0
        while True:
            cancel.raise_if_cancelled()
            delivered = False
            text: List[str] = []
            calls: List[FunctionCall] = []
            try:
                stream = litellm.completion(**self._request_params(model, messages))
                for chunk in self._normalise(stream, cancel):
                    delivered = True
                    text.extend(chunk.text_parts)
                    calls.extend(chunk.function_calls)
                    if chunk.finish_reason:
                        self._record_reply(text, calls)
                    yield chunk
            except (InvalidStreamError, OperationCancelled):
                raise
            except Exception as e:
                if delivered or attempt >= self._config.max_retries or not isinstance(e, _TRANSIENT_ERRORS):
                    raise self._handle_llm_error(e) from None
                attempt += 1
                delay = self._config.retry_backoff_seconds * attempt
                _log.warning(
                    "Transient error from %s (%s); retry %d/%d in %.1fs",
                    model, type(e).__name__, attempt, self._config.max_retries, delay,
                )
                yield RetryMarker(attempt=attempt, error=str(e))
                if cancel.wait(delay):
                    raise OperationCancelled(cancel.reason or "Operation cancelled") from None
                continue
            return

    def verify_connection(self) -> None:
        """Send a one-token ping to confirm the provider is reachable.

        Raises:
            TransportError: With differentiated messages for connectivity,
                authentication, timeout, and server errors.
        """
        try:
            litellm.completion(
                model=self._config.model,
                messages=[{"role": "user", "content": "ping"}],
                api_base=self._config.api_base,
                api_key=self._config.api_key,
                max_tokens=1,
                timeout=10,
            )
        except Exception as e:
            raise self._handle_llm_error(e) from None

    # --------------------------------------------------------------- helpers

    def _request_params(self, model: str, messages: List[Dict[str, str]]) -> Dict[str, Any]:
        params: Dict[str, Any] = {
            "model": model,
            "messages": messages,
            "api_base": self._config.api_base,
            "api_key": self._config.api_key,
            "stream": True,
            "stream_options": {"include_usage": True},
            "timeout": self._config.timeout_seconds,
            "max_tokens": self._config.max_output_tokens,
            "temperature": self._config.temperature,
            "top_p": self._config.top_p,
        }
        if self._tools:
            params["tools"] = self._tools
        return params

    def _record_reply(self, text: List[str], calls: List[FunctionCall]) -> None:
        lines = ["".join(text)] if text else []
        lines.extend(f"[Tool: {c.name}({json.dumps(c.args, sort_keys=True)})]" for c in calls)
        content = "\n".join(lines).strip()
        if content:
            self._history.append({"role": "assistant", "content": content})

    def _normalise(self, stream: Iterable[Any], cancel: CancellationToken) -> Iterator[ProviderChunk]:
        """Turn LiteLLM stream chunks into ProviderChunks.

        Tool-call fragments are assembled by index and released with the chunk
        that carries the finish reason. That chunk is held back until the
        stream ends so a trailing usage-only chunk can be merged into it.
        """
        fragments: Dict[int, Dict[str, Any]] = {}
        finished: Optional[ProviderChunk] = None

        for raw in stream:
            cancel.raise_if_cancelled()
            usage = _usage_of(raw)
            choices = getattr(raw, "choices", None) or []
            if not choices:
                if finished is not None and usage:
                    finished.usage = usage
                continue

            choice = choices[0]
            delta = getattr(choice, "delta", None)
            chunk = ProviderChunk(citations=_citations_of(raw), usage=usage)
            content = getattr(delta, "content", None)
            if content:
                chunk.text_parts.append(content)
            reasoning = getattr(delta, "reasoning_content", None)
            if reasoning:
                chunk.thought = reasoning
            for position, tc in enumerate(getattr(delta, "tool_calls", None) or []):
                _add_fragment(fragments, tc, position)

            if finished is not None:
                # Only usage may follow the finish chunk; late content is dropped.
                if chunk.text_parts or chunk.citations:
                    _log.debug("Dropping content received after the finish reason")
                finished.usage = usage or finished.usage
                continue

            finish_reason = getattr(choice, "finish_reason", None)
            if finish_reason:
                chunk.finish_reason = finish_reason
                chunk.function_calls = _assemble(fragments)
                finished = chunk
                continue
            if not chunk.is_empty():
                yield chunk

        if finished is None:
            raise InvalidStreamError("Model stream ended without a finish reason")
        yield finished

    def _handle_llm_error(self, error: Exception) -> TransportError:
        """Convert an exception from a LiteLLM call into a TransportError with a clear message."""
        server = self._config.api_base or "provider default"
        detail = getattr(error, "message", None) or str(error)
        status = getattr(error, "status_code", None)
        status = status if isinstance(status, int) else None

        if isinstance(error, litellm.AuthenticationError):
            return TransportError(
                f"Authentication failed for model {self._config.model}.\n\n"
                f"  Server: {server}\n"
                f"  Error: {detail}\n\n"
                f"Check api_key in your code-scout config.",
                status_code=status or 401,
            )
        if isinstance(error, litellm.RateLimitError):
            return TransportError(
                f"Rate limited by the provider.\n\n"
                f"  Server: {server}\n"
                f"  Error: {detail}",
                status_code=status or 429,
            )
        if isinstance(error, litellm.Timeout):
            return TransportError(
                f"Request to the model timed out.\n\n"
                f"  Server: {server}\n\n"
                f"The server may be overloaded or unreachable.",
                status_code=status,
            )
        if isinstance(error, litellm.APIConnectionError):
            return TransportError(
                f"Cannot connect to the model provider.\n\n"
                f"  Server: {server}\n"
                f"  Error: {detail}\n\n"
                f"Verify api_base and your network settings.",
                status_code=status,
            )
        if isinstance(error, litellm.BadRequestError):
            return TransportError(
                f"Model rejected the request.\n\n"
                f"  Server: {server}\n"
                f"  Error: {detail}\n\n"
                f"The model may not support tool calls or this message format.",
                status_code=status or 400,
            )
        if isinstance(error, litellm.APIError) or status is not None:
            return TransportError(
                f"Model request failed (status {status}).\n\n"
                f"  Server: {server}\n"
                f"  Error: {detail}",
                status_code=status,
            )
        return TransportError(
            f"Unexpected error from LiteLLM.\n\n"
            f"  Server: {server}\n"
            f"  Error: {type(error).__name__}: {error}"
        )


def _add_fragment(fragments: Dict[int, Dict[str, Any]], tc: Any, position: int) -> None:
    index = getattr(tc, "index", None)
    if not isinstance(index, int):
        index = position
    entry = fragments.setdefault(index, {"id": None, "name": None, "arguments": ""})
    if getattr(tc, "id", None):
        entry["id"] = tc.id
    function = getattr(tc, "function", None)
    if function is None:
        return
    if getattr(function, "name", None):
        entry["name"] = function.name
    arguments = getattr(function, "arguments", None)
    if isinstance(arguments, dict):
        entry["arguments"] = json.dumps(arguments)
    elif arguments:
        entry["arguments"] += arguments


def _assemble(fragments: Dict[int, Dict[str, Any]]) -> List[FunctionCall]:
    calls = []
    for index in sorted(fragments):
        entry = fragments[index]
        raw_args = entry["arguments"].strip()
        try:
            args = json.loads(raw_args) if raw_args else {}
        except json.JSONDecodeError as e:
            raise InvalidStreamError(
                f"Malformed arguments for tool call {entry['name'] or index}: {e.msg}"
            ) from None
        if not isinstance(args, dict):
            raise InvalidStreamError(f"Tool call {entry['name'] or index} arguments are not an object")
        calls.append(FunctionCall(name=entry["name"], args=args, id=entry["id"]))
    fragments.clear()
    return calls


def _usage_of(raw: Any) -> Dict[str, int]:
    usage = getattr(raw, "usage", None)
    if usage is None:
        return {}
    if not isinstance(usage, dict):
        usage = {
            key: getattr(usage, key, None)
            for key in ("prompt_tokens", "completion_tokens", "total_tokens")
        }
    return {k: v for k, v in usage.items() if isinstance(v, int) and not isinstance(v, bool)}


def _citations_of(raw: Any) -> List[str]:
    sources = []
    for citation in getattr(raw, "citations", None) or []:
        if isinstance(citation, str):
            sources.append(citation)
        elif isinstance(citation, dict) and citation.get("uri"):
            title = citation.get("title")
            sources.append(f"({title}) {citation['uri']}" if title else citation["uri"])
    return sources

"""Memory-bounded folding of streaming chunks into one message."""

from __future__ import annotations

import json
from collections.abc import AsyncIterable
from dataclasses import dataclass, field
from typing import NoReturn

from llm_core.errors import StreamError, StreamLimitExceeded
from llm_core.logging import StructuredLogger, get_logger, log_error
from llm_core.types import Chunk, Message, Tokens, ToolCall

DEFAULT_MAX_CONTENT_BYTES = 10 * 1024 * 1024
DEFAULT_MAX_TOOL_CALLS = 100
DEFAULT_MAX_ARGUMENT_BYTES = 1024 * 1024


@dataclass(frozen=True)
class StreamLimits:
    """Ceilings applied while accumulating one stream.

    Byte sizes are UTF-8 encoded lengths and the ceilings are inclusive.
    """

    max_content_bytes: int = DEFAULT_MAX_CONTENT_BYTES
    max_tool_calls: int = DEFAULT_MAX_TOOL_CALLS
    max_argument_bytes: int = DEFAULT_MAX_ARGUMENT_BYTES

    def __post_init__(self) -> None:
        if self.max_content_bytes < 0:
            raise ValueError("max_content_bytes must be >= 0")
        if self.max_tool_calls < 0:
            raise ValueError("max_tool_calls must be >= 0")
        if self.max_argument_bytes < 0:
            raise ValueError("max_argument_bytes must be >= 0")


@dataclass
class _PendingToolCall:
    name: str
    arguments: list[str] = field(default_factory=list)
    size: int = 0


def _utf8_size(text: str) -> int:
    return len(text.encode("utf-8"))


def _parse_arguments(raw: str) -> dict[str, object]:
    if not raw:
        return {}
    try:
        parsed = json.loads(raw)
    except ValueError:
        return {}
    return parsed if isinstance(parsed, dict) else {}


class StreamAccumulator:
    """Fold an ordered sequence of chunks into one assistant message.

    Not safe for concurrent use. Any limit violation raises from :meth:`add`
    and poisons the accumulator: the stream must be abandoned.
    """

    def __init__(
        self,
        limits: StreamLimits | None = None,
        *,
        logger: StructuredLogger | None = None,
    ) -> None:
        self.limits = StreamLimits() if limits is None else limits
        self._logger = get_logger(__name__) if logger is None else logger
        self._content: list[str] = []
        self._content_size = 0
        self._thinking: list[str] = []
        self._thinking_size = 0
        self._tool_calls: dict[str, _PendingToolCall] = {}
        self._stop_reason: str | None = None
        self._tokens: Tokens | None = None
        self._failed = False

    @property
    def content(self) -> str:
        return "".join(self._content)

    @property
    def thinking(self) -> str:
        return "".join(self._thinking)

    def get_content(self) -> str:
        """Return the content accumulated so far."""
        return self.content

    def get_thinking(self) -> str:
        """Return the thinking text accumulated so far."""
        return self.thinking

    def _fail(
        self,
        message: str,
        *,
        limit_name: str,
        limit: int,
        **fields: object,
    ) -> NoReturn:
        self._failed = True
        log_error(
            self._logger,
            "stream.limit_exceeded",
            limit_name=limit_name,
            limit=limit,
            **fields,
        )
        raise StreamLimitExceeded(message, limit_name=limit_name, limit=limit)

    def _ensure_usable(self) -> None:
        if self._failed:
            raise StreamError(
                "Stream accumulator cannot be reused after a limit violation"
            )

    def add(self, chunk: Chunk) -> None:
        """Fold one chunk.

        Raises:
            StreamLimitExceeded: When a content, thinking, tool-count or
                per-tool argument ceiling would be exceeded.
        """
        self._ensure_usable()
        limits = self.limits

        if chunk.content is not None:
            size = _utf8_size(chunk.content)
            if self._content_size + size > limits.max_content_bytes:
                self._fail(
                    "Stream content exceeded maximum size of "
                    f"{limits.max_content_bytes} bytes",
                    limit_name="max_content_bytes",
                    limit=limits.max_content_bytes,
                    current_size=self._content_size,
                    chunk_size=size,
                )
            self._content.append(chunk.content)
            self._content_size += size

        if chunk.thinking is not None:
            size = _utf8_size(chunk.thinking)
            if self._thinking_size + size > limits.max_content_bytes:
                self._fail(
                    "Stream thinking content exceeded maximum size of "
                    f"{limits.max_content_bytes} bytes",
                    limit_name="max_content_bytes",
                    limit=limits.max_content_bytes,
                    current_size=self._thinking_size,
                    chunk_size=size,
                )
            self._thinking.append(chunk.thinking)
            self._thinking_size += size

        for tool_call in chunk.tool_calls:
            self._add_tool_call(tool_call)

        if chunk.stop_reason is not None:
            self._stop_reason = chunk.stop_reason
        if chunk.tokens is not None:
            self._tokens = chunk.tokens

    def _add_tool_call(self, tool_call: ToolCall) -> None:
        limits = self.limits
        pending = self._tool_calls.get(tool_call.id)
        if pending is None:
            if len(self._tool_calls) >= limits.max_tool_calls:
                self._fail(
                    f"Stream exceeded maximum of {limits.max_tool_calls} tool calls",
                    limit_name="max_tool_calls",
                    limit=limits.max_tool_calls,
                    count=len(self._tool_calls),
                )
            pending = _PendingToolCall(name=tool_call.name)
            self._tool_calls[tool_call.id] = pending
        elif tool_call.name and not pending.name:
            pending.name = tool_call.name

        arguments = tool_call.arguments
        if not arguments:
            return
        if isinstance(arguments, str):
            fragment = arguments
        else:
            fragment = json.dumps(dict(arguments))
        size = _utf8_size(fragment)
        if pending.size + size > limits.max_argument_bytes:
            self._fail(
                "Tool arguments exceeded maximum size of "
                f"{limits.max_argument_bytes} bytes",
                limit_name="max_argument_bytes",
                limit=limits.max_argument_bytes,
                tool_id=tool_call.id,
                current_size=pending.size,
            )
        pending.arguments.append(fragment)
        pending.size += size

    def to_message(self, model: str | None = None) -> Message:
        """Build the final assistant message.

        Tool arguments that are empty or not a JSON object become ``{}``.
        """
        self._ensure_usable()
        tool_calls = tuple(
            ToolCall(
                id=tool_id,
                name=pending.name,
                arguments=_parse_arguments("".join(pending.arguments)),
            )
            for tool_id, pending in self._tool_calls.items()
        )
        thinking = self.thinking
        return Message.assistant(
            self.content,
            tool_calls=tool_calls,
            tokens=self._tokens,
            model=model,
            stop_reason=self._stop_reason,
            thinking=thinking or None,
        )


async def fold_stream(
    chunks: AsyncIterable[Chunk],
    *,
    model: str | None = None,
    limits: StreamLimits | None = None,
) -> Message:
    """Consume ``chunks`` in order and return the accumulated message."""
    accumulator = StreamAccumulator(limits)
    async for chunk in chunks:
        accumulator.add(chunk)
    return accumulator.to_message(model)

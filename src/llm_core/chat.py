"""Conversation state and the tool-calling loop over a provider."""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping

from llm_core.accumulator import StreamAccumulator, StreamLimits
from llm_core.logging import StructuredLogger, get_logger, log_debug, log_warning
from llm_core.providers import Capability, Provider, require_capability
from llm_core.tools import (
    Tool,
    ToolFailure,
    ToolOutcome,
    invoke_tool,
    outcome_to_message,
)
from llm_core.types import AttachmentInput, Chunk, Message, ToolCall

MAX_TOOL_ITERATIONS = 10

MessageCallback = Callable[[Message], None]
ToolCallCallback = Callable[[ToolCall, ToolOutcome], None]
ChunkCallback = Callable[[Chunk], None]


class Chat:
    """A conversation with one provider and model.

    Holds the message history, system instructions, request options and
    tools. :meth:`ask` appends the user message and keeps calling the
    provider while the model requests tools, up to ``max_iterations``
    model responses. Not safe for concurrent use.
    """

    def __init__(
        self,
        provider: Provider,
        model: str,
        *,
        limits: StreamLimits | None = None,
        logger: StructuredLogger | None = None,
        max_iterations: int = MAX_TOOL_ITERATIONS,
    ) -> None:
        if max_iterations < 1:
            raise ValueError("max_iterations must be >= 1")
        self.provider = provider
        self.model = model
        self.max_iterations = max_iterations
        self._limits = limits
        self._logger = get_logger(__name__) if logger is None else logger
        self._messages: list[Message] = []
        self._instructions: str | None = None
        self._tools: dict[str, Tool] = {}
        self._temperature: float | None = None
        self._max_tokens: int | None = None
        self._headers: dict[str, str] = {}
        self._on_new_message: MessageCallback | None = None
        self._on_tool_call: ToolCallCallback | None = None

    def with_instructions(self, instructions: str) -> Chat:
        self._instructions = instructions
        return self

    def with_tool(self, tool: Tool) -> Chat:
        """Register ``tool``, replacing any tool with the same name."""
        self._tools[tool.get_name()] = tool
        return self

    def with_tools(self, tools: Iterable[Tool]) -> Chat:
        for tool in tools:
            self.with_tool(tool)
        return self

    def with_temperature(self, temperature: float) -> Chat:
        self._temperature = temperature
        return self

    def with_max_tokens(self, max_tokens: int) -> Chat:
        self._max_tokens = max_tokens
        return self

    def with_headers(self, headers: Mapping[str, str]) -> Chat:
        self._headers.update(headers)
        return self

    def on_new_message(self, callback: MessageCallback) -> Chat:
        """Call ``callback`` with every message appended to the history."""
        self._on_new_message = callback
        return self

    def on_tool_call(self, callback: ToolCallCallback) -> Chat:
        """Call ``callback`` with each tool call and its outcome."""
        self._on_tool_call = callback
        return self

    @property
    def messages(self) -> tuple[Message, ...]:
        return tuple(self._messages)

    @property
    def tools(self) -> dict[str, Tool]:
        return dict(self._tools)

    def last_message(self) -> Message | None:
        return self._messages[-1] if self._messages else None

    def add_message(self, message: Message) -> Chat:
        self._messages.append(message)
        if self._on_new_message is not None:
            self._on_new_message(message)
        return self

    def clear(self) -> Chat:
        """Drop the history; instructions, options and tools are kept."""
        self._messages.clear()
        return self

    async def ask(
        self,
        text: str,
        *,
        attachments: AttachmentInput | None = None,
        on_chunk: ChunkCallback | None = None,
    ) -> Message:
        """Send a user message and return the final assistant response.

        With ``on_chunk`` the provider is streamed and every chunk is passed
        to the callback before it is folded into the response.

        Raises:
            ConfigurationError: When tools or streaming are requested from a
                provider without that capability.
            FileNotFoundError: When a local attachment does not exist.
        """
        self.add_message(Message.user(text, attachments))
        return await self._complete_with_tool_calls(on_chunk)

    async def _complete_with_tool_calls(
        self, on_chunk: ChunkCallback | None
    ) -> Message:
        if self._tools:
            require_capability(self.provider, Capability.TOOLS)
        if on_chunk is not None:
            require_capability(self.provider, Capability.STREAMING)

        response: Message | None = None
        for iteration in range(1, self.max_iterations + 1):
            response = await self._respond(on_chunk)
            self.add_message(response)
            if not response.has_tool_calls():
                return response
            log_debug(
                self._logger,
                "chat.tool_calls",
                provider=self.provider.slug,
                iteration=iteration,
                tools=[call.name for call in response.tool_calls],
            )
            for call in response.tool_calls:
                await self._run_tool(call)

        log_warning(
            self._logger,
            "chat.max_iterations_reached",
            provider=self.provider.slug,
            max_iterations=self.max_iterations,
        )
        assert response is not None
        return response

    async def _respond(self, on_chunk: ChunkCallback | None) -> Message:
        messages = self._build_messages()
        options = self._build_options()
        if on_chunk is None:
            return await self.provider.complete(messages, **options)

        accumulator = StreamAccumulator(self._limits, logger=self._logger)
        async for chunk in self.provider.stream(messages, **options):
            on_chunk(chunk)
            accumulator.add(chunk)
        return accumulator.to_message(self.model)

    async def _run_tool(self, call: ToolCall) -> None:
        outcome = await invoke_tool(self._tools, call)
        if isinstance(outcome, ToolFailure):
            log_warning(
                self._logger,
                "chat.tool_failed",
                tool=call.name,
                tool_call_id=call.id,
                error=outcome.error.message,
            )
        if self._on_tool_call is not None:
            self._on_tool_call(call, outcome)
        self.add_message(outcome_to_message(outcome))

    def _build_messages(self) -> list[Message]:
        if self._instructions is None:
            return list(self._messages)
        return [Message.system(self._instructions), *self._messages]

    def _build_options(self) -> dict[str, object]:
        options: dict[str, object] = {"model": self.model}
        if self._temperature is not None:
            options["temperature"] = self._temperature
        if self._max_tokens is not None:
            options["max_tokens"] = self._max_tokens
        if self._tools:
            options["tools"] = [tool.to_schema() for tool in self._tools.values()]
        if self._headers:
            options["headers"] = dict(self._headers)
        return options

"""Tool definitions and explicit success/failure tool invocation."""

from __future__ import annotations

import inspect
import re
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Mapping
from dataclasses import dataclass
from typing import ClassVar, cast

from llm_core.errors import ToolExecutionError
from llm_core.types import Message, ToolCall

_CAMEL_BOUNDARY = re.compile(r"(?<!^)(?=[A-Z])")
_PASSTHROUGH_PROPERTY_KEYS = ("description", "enum", "default", "items")


class Tool(ABC):
    """Base class for callable tools exposed to a model.

    Subclasses describe their parameters with :meth:`parameters`, a mapping
    of parameter name to ``{"type", "description", "enum", "default",
    "items", "required"}``, and implement :meth:`execute` either as a plain
    or an ``async`` method.
    """

    name: ClassVar[str] = ""
    description: ClassVar[str] = ""

    def get_name(self) -> str:
        """Return the tool name, derived from the class name when unset."""
        if self.name:
            return self.name
        return _CAMEL_BOUNDARY.sub("_", type(self).__name__).lower()

    def parameters(self) -> Mapping[str, Mapping[str, object]]:
        return {}

    def get_parameters(self) -> dict[str, object]:
        """Return the JSON schema for the tool arguments."""
        properties: dict[str, object] = {}
        required: list[str] = []
        for param_name, config in self.parameters().items():
            prop: dict[str, object] = {"type": config.get("type", "string")}
            for key in _PASSTHROUGH_PROPERTY_KEYS:
                if key in config:
                    prop[key] = config[key]
            properties[param_name] = prop
            if config.get("required", False):
                required.append(param_name)

        schema: dict[str, object] = {"type": "object", "properties": properties}
        if required:
            schema["required"] = required
        return schema

    def to_schema(self) -> dict[str, object]:
        """Return the function-calling schema sent to providers."""
        return {
            "type": "function",
            "function": {
                "name": self.get_name(),
                "description": self.description,
                "parameters": self.get_parameters(),
            },
        }

    @abstractmethod
    def execute(self, arguments: Mapping[str, object]) -> object | Awaitable[object]:
        """Run the tool with decoded arguments."""


@dataclass(frozen=True)
class ToolSuccess:
    """Tool call that returned a value."""

    call: ToolCall
    value: object

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True)
class ToolFailure:
    """Tool call that could not be resolved or raised."""

    call: ToolCall
    error: ToolExecutionError

    @property
    def ok(self) -> bool:
        return False


ToolOutcome = ToolSuccess | ToolFailure


async def invoke_tool(tools: Mapping[str, Tool], call: ToolCall) -> ToolOutcome:
    """Run the tool named by ``call`` and capture the outcome.

    Tool errors are returned as :class:`ToolFailure`, never raised; the
    caller decides whether to surface them or report them back to the model.
    """
    tool = tools.get(call.name)
    if tool is None:
        return ToolFailure(
            call=call,
            error=ToolExecutionError.unknown_tool(call, sorted(tools)),
        )

    arguments: Mapping[str, object] = (
        {} if isinstance(call.arguments, str) else call.arguments
    )
    try:
        result = tool.execute(arguments)
        if inspect.isawaitable(result):
            result = await cast(Awaitable[object], result)
    except Exception as exc:
        return ToolFailure(
            call=call,
            error=ToolExecutionError.from_exception(exc, call),
        )
    return ToolSuccess(call=call, value=result)


def index_tools(tools: list[Tool] | tuple[Tool, ...]) -> dict[str, Tool]:
    """Map tools by name; later tools replace earlier ones with the same name."""
    return {tool.get_name(): tool for tool in tools}


def outcome_to_message(outcome: ToolOutcome) -> Message:
    """Convert an outcome into the tool-result message for the next turn."""
    if isinstance(outcome, ToolSuccess):
        return Message.tool_result(outcome.call.id, outcome.value)
    return Message.tool_result(outcome.call.id, {"error": outcome.error.message})

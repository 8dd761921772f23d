"""Shared error types for llm_core."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from llm_core.types import ToolCall


class TransientError(RuntimeError):
    """Generic retry-safe transient dependency failure."""


class LLMError(Exception):
    """Base exception for all llm_core failures."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int = 0,
        provider: str | None = None,
        response_body: Mapping[str, object] | None = None,
    ) -> None:
        """Initialize error metadata.

        Args:
            message: Human-readable error message.
            status_code: HTTP status observed, or ``0`` when not HTTP-level.
            provider: Optional provider slug the failure belongs to.
            response_body: Optional decoded vendor response payload.
        """
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.provider = provider
        self.response_body = response_body


class ApiError(LLMError):
    """Raised for provider API failures that are not more specific."""


class AuthenticationError(ApiError):
    """Raised when the provider rejects credentials (HTTP 401/403)."""


class RateLimitError(ApiError):
    """Raised when the provider rate-limits the caller (HTTP 429).

    Attributes:
        retry_after: Seconds the provider asked the caller to wait, if sent.
    """

    def __init__(
        self,
        message: str = "Rate limit exceeded",
        *,
        provider: str | None = None,
        response_body: Mapping[str, object] | None = None,
        retry_after: float | None = None,
    ) -> None:
        super().__init__(
            message,
            status_code=429,
            provider=provider,
            response_body=response_body,
        )
        self.retry_after = retry_after


class RetriesExhaustedError(ApiError):
    """Raised when connection or server failures persist past the retry bound."""

    def __init__(
        self,
        message: str,
        *,
        attempts: int,
        status_code: int = 0,
        provider: str | None = None,
        response_body: Mapping[str, object] | None = None,
    ) -> None:
        super().__init__(
            message,
            status_code=status_code,
            provider=provider,
            response_body=response_body,
        )
        self.attempts = attempts


class ResponseDecodeError(ApiError):
    """Raised when a successful response body is not a JSON object."""


class StreamError(LLMError):
    """Raised when a stream cannot be opened or breaks mid-flight."""


class StreamLimitExceeded(StreamError):
    """Raised when accumulated stream data exceeds a configured ceiling.

    Attributes:
        limit_name: Which ceiling was hit.
        limit: Configured ceiling value.
    """

    def __init__(self, message: str, *, limit_name: str, limit: int) -> None:
        super().__init__(message)
        self.limit_name = limit_name
        self.limit = limit


class ConfigurationError(LLMError):
    """Raised when configuration is invalid or missing."""

    @classmethod
    def missing_api_key(cls, provider: str) -> ConfigurationError:
        """Build the error for a provider without a configured API key."""
        return cls(
            f"API key for {provider} is not configured. "
            f"Set LLM_{provider.upper()}_API_KEY or pass it to LLMSettings.",
            provider=provider,
        )

    @classmethod
    def invalid_provider(cls, provider: str) -> ConfigurationError:
        """Build the error for an unknown provider slug."""
        return cls(f"Unknown provider: {provider}", provider=provider)


class ToolExecutionError(LLMError):
    """Describes a failed tool invocation.

    Attributes:
        tool_name: Name of the tool the model asked for.
        tool_call: Originating tool call, when known.
        arguments: Arguments the tool was invoked with.
    """

    def __init__(
        self,
        message: str,
        *,
        tool_name: str,
        tool_call: ToolCall | None = None,
        arguments: object = None,
    ) -> None:
        super().__init__(message)
        self.tool_name = tool_name
        self.tool_call = tool_call
        self.arguments = arguments

    @classmethod
    def from_exception(cls, exc: Exception, tool_call: ToolCall) -> ToolExecutionError:
        """Wrap an exception raised by a tool."""
        error = cls(
            f"Tool '{tool_call.name}' failed: {exc}",
            tool_name=tool_call.name,
            tool_call=tool_call,
            arguments=tool_call.arguments,
        )
        error.__cause__ = exc
        return error

    @classmethod
    def unknown_tool(
        cls,
        tool_call: ToolCall,
        available_tools: Sequence[str] = (),
    ) -> ToolExecutionError:
        """Build the error for a tool name with no registered tool."""
        available = ""
        if available_tools:
            available = " Available tools: " + ", ".join(available_tools)
        return cls(
            f"Unknown tool: '{tool_call.name}'.{available}",
            tool_name=tool_call.name,
            tool_call=tool_call,
            arguments=tool_call.arguments,
        )

from __future__ import annotations

from typing import Literal

import httpx
from pydantic import ValidationInfo, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from llm_core.accumulator import StreamLimits
from llm_core.circuit_breaker import CircuitBreakerConfig
from llm_core.errors import ConfigurationError
from llm_core.logging import get_log_level_value
from llm_core.retry import RetryPolicy

ProviderSlug = Literal["openai", "anthropic", "gemini", "ollama"]

REQUEST_TIMEOUT_RANGE = (1, 600)
MAX_RETRIES_RANGE = (0, 10)
_KEYLESS_PROVIDERS = frozenset({"ollama"})


def prefixed_settings_config(prefix: str) -> SettingsConfigDict:
    """Build standard Pydantic settings config for prefixed environments."""
    return SettingsConfigDict(env_prefix=prefix, case_sensitive=False)


class LLMSettings(BaseSettings):
    """Configuration value injected into the transport and provider adapters.

    Reads ``LLM_*`` environment variables; explicit keyword arguments win.
    """

    model_config = prefixed_settings_config("LLM_")

    openai_api_key: str | None = None
    anthropic_api_key: str | None = None
    gemini_api_key: str | None = None

    openai_api_base: str = "https://api.openai.com/v1"
    anthropic_api_base: str = "https://api.anthropic.com/v1"
    gemini_api_base: str = "https://generativelanguage.googleapis.com/v1beta"
    ollama_api_base: str = "http://localhost:11434"

    default_model: str = "gpt-4o-mini"
    default_provider: ProviderSlug | None = None

    request_timeout: float = 120
    connect_timeout: float = 10
    max_retries: int = 3
    retry_base_delay: float = 0.1
    retry_max_delay: float = 30.0

    breaker_failure_threshold: int = 5
    breaker_cooldown_seconds: float = 30.0
    breaker_success_threshold: int = 2

    stream_max_content_bytes: int = 10 * 1024 * 1024
    stream_max_tool_calls: int = 100
    stream_max_argument_bytes: int = 1024 * 1024

    log_level: str = "INFO"

    @field_validator("default_provider", mode="before")
    @classmethod
    def _normalize_provider(cls, value: object) -> object:
        if isinstance(value, str):
            normalized = value.strip().lower()
            return normalized or None
        return value

    @field_validator(
        "openai_api_base",
        "anthropic_api_base",
        "gemini_api_base",
        "ollama_api_base",
        mode="before",
    )
    @classmethod
    def _validate_api_base(cls, value: object, info: ValidationInfo) -> object:
        if not isinstance(value, str):
            return value
        normalized = value.strip().rstrip("/")
        if not normalized.startswith(("http://", "https://")):
            raise ValueError(f"{info.field_name} must be an http(s) URL")
        return normalized

    @field_validator("log_level")
    @classmethod
    def _validate_log_level(cls, value: str) -> str:
        get_log_level_value(value)
        return value.strip().upper()

    @model_validator(mode="after")
    def _validate_ranges(self) -> LLMSettings:
        low, high = REQUEST_TIMEOUT_RANGE
        if not low <= self.request_timeout <= high:
            raise ValueError(f"request_timeout must be between {low} and {high}")
        low, high = MAX_RETRIES_RANGE
        if not low <= self.max_retries <= high:
            raise ValueError(f"max_retries must be between {low} and {high}")
        if self.connect_timeout <= 0:
            raise ValueError("connect_timeout must be > 0")
        if self.retry_base_delay < 0:
            raise ValueError("retry_base_delay must be >= 0")
        if self.retry_max_delay < self.retry_base_delay:
            raise ValueError("retry_max_delay must be >= retry_base_delay")
        if self.breaker_failure_threshold < 1:
            raise ValueError("breaker_failure_threshold must be >= 1")
        if self.breaker_success_threshold < 1:
            raise ValueError("breaker_success_threshold must be >= 1")
        if self.breaker_cooldown_seconds < 0:
            raise ValueError("breaker_cooldown_seconds must be >= 0")
        if min(
            self.stream_max_content_bytes,
            self.stream_max_tool_calls,
            self.stream_max_argument_bytes,
        ) < 0:
            raise ValueError("stream_max_* limits must be >= 0")
        return self

    def httpx_timeout(self) -> httpx.Timeout:
        """Build the httpx timeout for transport clients."""
        return httpx.Timeout(self.request_timeout, connect=self.connect_timeout)

    def retry_policy(self) -> RetryPolicy:
        """Build the per-request retry policy."""
        return RetryPolicy.from_max_retries(
            self.max_retries,
            base_delay=self.retry_base_delay,
            max_delay=self.retry_max_delay,
        )

    def circuit_breaker_config(self) -> CircuitBreakerConfig:
        """Build circuit breaker thresholds."""
        return CircuitBreakerConfig(
            failure_threshold=self.breaker_failure_threshold,
            cooldown_seconds=self.breaker_cooldown_seconds,
            success_threshold=self.breaker_success_threshold,
        )

    def stream_limits(self) -> StreamLimits:
        """Build accumulator ceilings."""
        return StreamLimits(
            max_content_bytes=self.stream_max_content_bytes,
            max_tool_calls=self.stream_max_tool_calls,
            max_argument_bytes=self.stream_max_argument_bytes,
        )

    def api_base_for(self, provider: str) -> str:
        """Return the API base URL for ``provider``."""
        field_name = f"{provider}_api_base"
        if field_name not in type(self).model_fields:
            raise ConfigurationError.invalid_provider(provider)
        return str(getattr(self, field_name))

    def api_key_for(self, provider: str) -> str | None:
        """Return the API key for ``provider``; keyless providers return None.

        Raises:
            ConfigurationError: For unknown providers or missing keys.
        """
        self.api_base_for(provider)
        if provider in _KEYLESS_PROVIDERS:
            return None
        key = getattr(self, f"{provider}_api_key")
        if not key:
            raise ConfigurationError.missing_api_key(provider)
        return str(key)

    def redacted(self) -> dict[str, object]:
        """Return a loggable view of the settings with API keys masked."""
        data = self.model_dump()
        for name in ("openai_api_key", "anthropic_api_key", "gemini_api_key"):
            data[name] = "***" if data.get(name) else None
        return data

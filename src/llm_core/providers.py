"""Capability protocols implemented by provider adapters.

Adapters translate :class:`~llm_core.types.Message` values into vendor
payloads and call :class:`~llm_core.transport.Transport`. None ship here.
"""

from __future__ import annotations

from collections.abc import AsyncIterator, Sequence
from enum import StrEnum
from typing import Protocol, runtime_checkable

from llm_core.errors import ConfigurationError
from llm_core.types import Chunk, Embedding, GeneratedImage, Message


class Capability(StrEnum):
    """Optional features a provider may support."""

    CHAT = "chat"
    STREAMING = "streaming"
    TOOLS = "tools"
    VISION = "vision"
    EMBEDDINGS = "embeddings"
    IMAGES = "images"
    THINKING = "thinking"


@runtime_checkable
class Provider(Protocol):
    """Conversational provider surface."""

    slug: str

    def is_configured(self) -> bool:
        """Return true when credentials and endpoints are available."""

    def supports(self, capability: Capability) -> bool:
        """Return true when ``capability`` is available."""

    async def complete(self, messages: Sequence[Message], **options: object) -> Message:
        """Return one assistant message for ``messages``."""

    def stream(
        self, messages: Sequence[Message], **options: object
    ) -> AsyncIterator[Chunk]:
        """Yield response chunks for ``messages`` in arrival order."""

    async def list_models(self) -> list[str]:
        """Return the model identifiers the provider exposes."""


@runtime_checkable
class EmbeddingProvider(Protocol):
    """Provider that can embed text."""

    async def embed(self, inputs: str | Sequence[str], **options: object) -> Embedding:
        """Return embedding vectors for ``inputs``."""


@runtime_checkable
class ImageProvider(Protocol):
    """Provider that can generate images."""

    async def generate_image(self, prompt: str, **options: object) -> GeneratedImage:
        """Return one generated image for ``prompt``."""


def require_configured(provider: Provider) -> None:
    """Raise when ``provider`` has no usable configuration."""
    if not provider.is_configured():
        raise ConfigurationError.missing_api_key(provider.slug)


def require_capability(provider: Provider, capability: Capability) -> None:
    """Raise when ``provider`` does not support ``capability``."""
    if not provider.supports(capability):
        raise ConfigurationError(
            f"Provider {provider.slug} does not support {capability.value}",
            provider=provider.slug,
        )

"""Immutable value types exchanged between providers and the transport."""

from __future__ import annotations

import base64
import json
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from enum import StrEnum
from pathlib import Path, PurePosixPath
from types import MappingProxyType
from typing import cast
from urllib.parse import urlsplit


class Role(StrEnum):
    """Conversation role of a message author."""

    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"


def _first_int(data: Mapping[str, object], *keys: str) -> int:
    for key in keys:
        value = data.get(key)
        if isinstance(value, int) and not isinstance(value, bool):
            return value
    return 0


@dataclass(frozen=True)
class Tokens:
    """Token usage for one completion."""

    input: int = 0
    output: int = 0
    cache_creation: int = 0
    cache_read: int = 0

    @property
    def total(self) -> int:
        return self.input + self.output

    @classmethod
    def from_mapping(cls, data: Mapping[str, object]) -> Tokens:
        """Build usage from OpenAI, Anthropic or normalized key names."""
        return cls(
            input=_first_int(data, "input", "prompt_tokens", "input_tokens"),
            output=_first_int(data, "output", "completion_tokens", "output_tokens"),
            cache_creation=_first_int(
                data, "cache_creation", "cache_creation_input_tokens"
            ),
            cache_read=_first_int(data, "cache_read", "cache_read_input_tokens"),
        )

    def to_dict(self) -> dict[str, int]:
        return {
            "input": self.input,
            "output": self.output,
            "cache_creation": self.cache_creation,
            "cache_read": self.cache_read,
            "total": self.total,
        }


@dataclass(frozen=True)
class ToolCall:
    """A tool invocation requested by the model.

    ``arguments`` is a mapping for complete calls and a raw JSON fragment
    string for partial calls seen mid-stream.
    """

    id: str
    name: str
    arguments: Mapping[str, object] | str = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not isinstance(self.arguments, str):
            frozen = MappingProxyType(dict(self.arguments))
            object.__setattr__(self, "arguments", frozen)

    @classmethod
    def from_mapping(cls, data: Mapping[str, object]) -> ToolCall:
        """Build a call from a flat or ``{"function": {...}}`` shaped mapping."""
        function = data.get("function")
        nested = (
            cast(Mapping[str, object], function) if isinstance(function, Mapping) else {}
        )
        name = data.get("name", nested.get("name", ""))
        arguments = data.get("arguments", nested.get("arguments", {}))
        if not isinstance(arguments, (str, Mapping)):
            arguments = {}
        return cls(
            id=str(data.get("id", "")),
            name=str(name),
            arguments=cast(Mapping[str, object] | str, arguments),
        )

    def to_dict(self) -> dict[str, object]:
        arguments: object = self.arguments
        if not isinstance(arguments, str):
            arguments = dict(cast(Mapping[str, object], arguments))
        return {"id": self.id, "name": self.name, "arguments": arguments}


@dataclass(frozen=True)
class Chunk:
    """One incremental fragment of a streaming model response."""

    content: str | None = None
    thinking: str | None = None
    tool_calls: tuple[ToolCall, ...] = ()
    stop_reason: str | None = None
    tokens: Tokens | None = None
    is_first: bool = False
    is_last: bool = False

    def __post_init__(self) -> None:
        object.__setattr__(self, "tool_calls", tuple(self.tool_calls))

    def has_content(self) -> bool:
        return bool(self.content)

    def has_thinking(self) -> bool:
        return bool(self.thinking)

    def is_done(self) -> bool:
        """Return true for the final chunk of a stream."""
        return self.is_last or self.stop_reason is not None


_MIME_TYPES: Mapping[str, str] = MappingProxyType(
    {
        "jpg": "image/jpeg",
        "jpeg": "image/jpeg",
        "png": "image/png",
        "gif": "image/gif",
        "webp": "image/webp",
        "svg": "image/svg+xml",
        "pdf": "application/pdf",
        "mp3": "audio/mpeg",
        "wav": "audio/wav",
        "mp4": "video/mp4",
        "webm": "video/webm",
        "json": "application/json",
        "txt": "text/plain",
        "md": "text/markdown",
        "html": "text/html",
        "css": "text/css",
        "js": "application/javascript",
    }
)
_DEFAULT_MIME_TYPE = "application/octet-stream"
_TEXT_MIME_TYPES = ("application/json", "application/xml", "application/javascript")


def guess_mime_type(name: str) -> str:
    """Return the MIME type for a file name or URL path by its extension."""
    suffix = PurePosixPath(urlsplit(name).path or name).suffix.lstrip(".").lower()
    return _MIME_TYPES.get(suffix, _DEFAULT_MIME_TYPE)


@dataclass(frozen=True)
class Attachment:
    """A file, URL or inline payload sent alongside a user message.

    Exactly one source is set: ``url``, ``path`` or ``data`` (raw bytes).
    File contents are read lazily.
    """

    mime_type: str
    url: str | None = None
    path: Path | None = None
    data: bytes | None = None
    filename: str | None = None

    @classmethod
    def from_path(cls, path: str | Path, mime_type: str | None = None) -> Attachment:
        """Reference a local file.

        Raises:
            FileNotFoundError: When ``path`` is not an existing file.
        """
        resolved = Path(path)
        if not resolved.is_file():
            raise FileNotFoundError(f"Attachment file not found: {resolved}")
        return cls(
            mime_type=mime_type or guess_mime_type(resolved.name),
            path=resolved,
            filename=resolved.name,
        )

    @classmethod
    def from_url(cls, url: str, mime_type: str | None = None) -> Attachment:
        return cls(mime_type=mime_type or guess_mime_type(url), url=url)

    @classmethod
    def from_content(
        cls,
        content: bytes | str,
        mime_type: str,
        filename: str | None = None,
    ) -> Attachment:
        data = content.encode("utf-8") if isinstance(content, str) else content
        return cls(mime_type=mime_type, data=data, filename=filename)

    @classmethod
    def from_base64(
        cls,
        encoded: str,
        mime_type: str,
        filename: str | None = None,
    ) -> Attachment:
        """Build an inline attachment from base64 text.

        Raises:
            ValueError: When ``encoded`` is not valid base64.
        """
        data = base64.b64decode(encoded, validate=True)
        return cls(mime_type=mime_type, data=data, filename=filename)

    def is_url(self) -> bool:
        return self.url is not None

    def is_image(self) -> bool:
        return self.mime_type.startswith("image/")

    def is_pdf(self) -> bool:
        return self.mime_type == "application/pdf"

    def is_audio(self) -> bool:
        return self.mime_type.startswith("audio/")

    def is_text(self) -> bool:
        return self.mime_type.startswith("text/") or self.mime_type in _TEXT_MIME_TYPES

    def get_content(self) -> bytes:
        """Return the raw bytes; URL attachments have no local content.

        Raises:
            ValueError: For URL attachments.
        """
        if self.data is not None:
            return self.data
        if self.path is not None:
            return self.path.read_bytes()
        raise ValueError("URL attachments have no local content")

    def to_base64(self) -> str:
        return base64.b64encode(self.get_content()).decode("ascii")

    def data_url(self) -> str:
        """Return the URL, or a ``data:`` URL embedding the content."""
        if self.url is not None:
            return self.url
        return f"data:{self.mime_type};base64,{self.to_base64()}"


AttachmentInput = str | Path | Attachment | Sequence[str | Path | Attachment]


def to_attachments(items: AttachmentInput | None) -> tuple[Attachment, ...]:
    """Normalize attachment arguments.

    Strings starting with ``http://`` or ``https://`` become URL attachments;
    other strings and paths are read as local files.
    """
    if items is None:
        return ()
    if isinstance(items, (str, Path, Attachment)):
        items = [items]
    normalized: list[Attachment] = []
    for item in items:
        if isinstance(item, Attachment):
            normalized.append(item)
        elif isinstance(item, str) and item.startswith(("http://", "https://")):
            normalized.append(Attachment.from_url(item))
        else:
            normalized.append(Attachment.from_path(item))
    return tuple(normalized)


@dataclass(frozen=True)
class Message:
    """A single conversation message. Immutable once constructed."""

    role: Role
    text: str = ""
    model: str | None = None
    tool_calls: tuple[ToolCall, ...] = ()
    tool_call_id: str | None = None
    tokens: Tokens | None = None
    stop_reason: str | None = None
    thinking: str | None = None
    attachments: tuple[Attachment, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "tool_calls", tuple(self.tool_calls))
        object.__setattr__(self, "attachments", tuple(self.attachments))

    @classmethod
    def system(cls, text: str) -> Message:
        return cls(role=Role.SYSTEM, text=text)

    @classmethod
    def user(
        cls,
        text: str,
        attachments: AttachmentInput | None = None,
    ) -> Message:
        """Build a user message; see :func:`to_attachments` for accepted forms."""
        return cls(role=Role.USER, text=text, attachments=to_attachments(attachments))

    @classmethod
    def assistant(
        cls,
        text: str,
        *,
        tool_calls: tuple[ToolCall, ...] | list[ToolCall] = (),
        tokens: Tokens | None = None,
        model: str | None = None,
        stop_reason: str | None = None,
        thinking: str | None = None,
    ) -> Message:
        return cls(
            role=Role.ASSISTANT,
            text=text,
            model=model,
            tool_calls=tuple(tool_calls),
            tokens=tokens,
            stop_reason=stop_reason,
            thinking=thinking,
        )

    @classmethod
    def tool_result(cls, tool_call_id: str, result: object) -> Message:
        """Build a tool-result message; non-string results are JSON encoded."""
        text = result if isinstance(result, str) else json.dumps(result, default=str)
        return cls(role=Role.TOOL, text=text, tool_call_id=tool_call_id)

    def has_tool_calls(self) -> bool:
        return len(self.tool_calls) > 0

    def has_thinking(self) -> bool:
        return self.thinking is not None

    def has_attachments(self) -> bool:
        return len(self.attachments) > 0

    def is_tool_result(self) -> bool:
        return self.role == Role.TOOL

    def to_dict(self) -> dict[str, object]:
        """Return the generic request representation of this message."""
        data: dict[str, object] = {"role": self.role.value, "content": self.text}
        if self.tool_call_id is not None:
            data["tool_call_id"] = self.tool_call_id
        if self.has_tool_calls():
            data["tool_calls"] = [call.to_dict() for call in self.tool_calls]
        if self.has_attachments():
            data["attachments"] = [
                {"mime_type": item.mime_type, "url": item.data_url()}
                for item in self.attachments
            ]
        return data


@dataclass(frozen=True)
class Embedding:
    """Embedding vectors returned by an embedding-capable provider."""

    vectors: tuple[tuple[float, ...], ...]
    model: str | None = None
    tokens: Tokens | None = None

    @property
    def dimensions(self) -> int:
        return len(self.vectors[0]) if self.vectors else 0


@dataclass(frozen=True)
class GeneratedImage:
    """One image returned by an image-generation provider."""

    url: str | None = None
    data: str | None = None
    revised_prompt: str | None = None
    mime_type: str = "image/png"

    def is_base64(self) -> bool:
        return self.data is not None

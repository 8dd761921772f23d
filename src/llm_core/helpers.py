"""Helpers for endpoint keying and decoding provider error responses."""

from __future__ import annotations

import json
from collections.abc import Mapping
from datetime import UTC, datetime
from email.utils import parsedate_to_datetime
from typing import cast
from urllib.parse import urlsplit

from llm_core.circuit_breaker.state import EndpointKey

ENDPOINT_PATH_SEGMENTS = 2
RESPONSE_PREVIEW_LENGTH = 1000


def endpoint_key(url: str) -> EndpointKey:
    """Derive the circuit key (host + first two path segments) for ``url``."""
    parsed = urlsplit(url)
    host = parsed.hostname or "unknown"
    segments = [segment for segment in parsed.path.split("/") if segment]
    path_prefix = "/" + "/".join(segments[:ENDPOINT_PATH_SEGMENTS])
    return EndpointKey(host=host, path_prefix=path_prefix)


def decode_error_body(content: bytes | str) -> dict[str, object] | None:
    """Decode a vendor error body into a JSON object, if it is one."""
    if not content:
        return None
    try:
        decoded = json.loads(content)
    except ValueError:
        return None
    if not isinstance(decoded, dict):
        return None
    return cast(dict[str, object], decoded)


def extract_error_message(body: Mapping[str, object] | None, default: str) -> str:
    """Pull the human-readable message out of a vendor error payload.

    Understands ``{"error": {"message": ...}}`` (OpenAI, Anthropic, Gemini),
    ``{"error": "..."}`` (Ollama) and ``{"message": "..."}``.
    """
    if body is None:
        return default
    error = body.get("error")
    if isinstance(error, Mapping):
        message = cast(Mapping[str, object], error).get("message")
        if isinstance(message, str) and message:
            return message
    if isinstance(error, str) and error:
        return error
    message = body.get("message")
    if isinstance(message, str) and message:
        return message
    return default


def parse_retry_after(
    value: str | None, *, now: datetime | None = None
) -> float | None:
    """Parse a ``Retry-After`` header in delta-seconds or HTTP-date form.

    Dates in the past yield ``0.0``; unparseable values yield ``None``.
    """
    if value is None:
        return None
    text = value.strip()
    try:
        seconds = float(text)
    except ValueError:
        return _seconds_until(text, now)
    if seconds < 0:
        return None
    return seconds


def _seconds_until(http_date: str, now: datetime | None) -> float | None:
    try:
        moment = parsedate_to_datetime(http_date)
    except (TypeError, ValueError):
        return None
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=UTC)
    current = datetime.now(UTC) if now is None else now
    return max((moment - current).total_seconds(), 0.0)


def preview(content: str, *, limit: int = RESPONSE_PREVIEW_LENGTH) -> str:
    """Truncate raw response text for error payloads."""
    return content[:limit]

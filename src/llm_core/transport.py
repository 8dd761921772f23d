"""Resilient HTTP transport shared by every provider adapter."""

from __future__ import annotations

import time
from collections.abc import AsyncIterator, Awaitable, Callable, Mapping
from contextlib import aclosing
from types import TracebackType
from typing import cast

import httpx
from tenacity import RetryCallState, retry_if_exception_type

from llm_core.circuit_breaker import CircuitBreaker, EndpointKey
from llm_core.errors import (
    ApiError,
    AuthenticationError,
    RateLimitError,
    ResponseDecodeError,
    RetriesExhaustedError,
    StreamError,
    TransientError,
)
from llm_core.helpers import (
    decode_error_body,
    endpoint_key,
    extract_error_message,
    parse_retry_after,
    preview,
)
from llm_core.logging import (
    StructuredLogger,
    get_logger,
    log_debug,
    log_error,
    log_warning,
    redact,
    truncate_body,
)
from llm_core.retry import RetryPolicy, build_capped_exponential_retrying
from llm_core.settings import LLMSettings
from llm_core.sse import SSEDecoder

JsonObject = dict[str, object]
Headers = Mapping[str, str]


class _TransientFailure(ApiError, TransientError):
    """Connection or server failure eligible for another attempt."""


class Transport:
    """Execute provider HTTP calls with circuit breaking and bounded retries.

    One breaker is shared by every call made through this transport, keyed
    per endpoint. Distinct transports never share circuits unless the same
    ``breaker`` is passed to both.
    """

    def __init__(
        self,
        settings: LLMSettings | None = None,
        *,
        client: httpx.AsyncClient | None = None,
        breaker: CircuitBreaker | None = None,
        sleep: Callable[[float], Awaitable[None]] | None = None,
        logger: StructuredLogger | None = None,
        provider: str | None = None,
    ) -> None:
        """Create a transport.

        Args:
            settings: Injected configuration. Defaults to ``LLMSettings()``.
            client: Shared async HTTP client. When omitted the transport owns
                one and closes it in :meth:`aclose`.
            breaker: Circuit breaker. Defaults to one built from settings.
            sleep: Backoff sleep override, mainly for tests.
            logger: Structured logger. Defaults to the module logger.
            provider: Provider slug stamped on raised errors.
        """
        self.settings = LLMSettings() if settings is None else settings
        self._owns_client = client is None
        self._client = (
            httpx.AsyncClient(timeout=self.settings.httpx_timeout())
            if client is None
            else client
        )
        self.breaker = (
            CircuitBreaker(config=self.settings.circuit_breaker_config())
            if breaker is None
            else breaker
        )
        self._sleep = sleep
        self._logger = get_logger(__name__) if logger is None else logger
        self.provider = provider

    async def __aenter__(self) -> Transport:
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        traceback: TracebackType | None,
    ) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Close the HTTP client if this transport created it."""
        if self._owns_client:
            await self._client.aclose()

    async def get(self, url: str, headers: Headers | None = None) -> JsonObject:
        """Send a GET request and return the decoded JSON object."""
        return await self._request_json("GET", url, headers, None)

    async def post(
        self,
        url: str,
        headers: Headers | None,
        body: Mapping[str, object],
    ) -> JsonObject:
        """Send a JSON POST request and return the decoded JSON object."""
        return await self._request_json("POST", url, headers, body)

    async def stream(
        self,
        url: str,
        headers: Headers | None,
        body: Mapping[str, object],
    ) -> AsyncIterator[str]:
        """Send a streaming POST and lazily yield SSE ``data:`` payloads.

        ``stream`` is forced to ``True`` in the sent payload. The iterator is
        single-pass; closing it early closes the underlying response.
        The breaker records success only once the stream ends or is closed
        by the caller; a mid-stream disconnect records a failure.

        Raises:
            CircuitOpenError: When the endpoint circuit is open.
            StreamError: When the connection cannot be established, the
                server answers 5xx, or the stream breaks mid-flight.
            ApiError: Typed 4xx errors, as for :meth:`post`.
        """
        payload = {**body, "stream": True}
        endpoint = endpoint_key(url)
        await self.breaker.allow_request(endpoint)

        log_debug(
            self._logger,
            "llm.stream_request",
            method="POST",
            url=url,
            headers=redact(dict(headers or {})),
            body=truncate_body(payload),
        )
        request = self._client.build_request(
            "POST",
            url,
            headers=self._request_headers(headers),
            json=payload,
        )
        try:
            response = await self._client.send(request, stream=True)
        except httpx.TransportError as exc:
            await self.breaker.record_failure(endpoint)
            log_error(
                self._logger,
                "llm.stream_connect_failed",
                url=url,
                error=str(exc),
            )
            raise StreamError(
                f"Failed to establish stream connection: {exc}",
                provider=self.provider,
            ) from exc

        try:
            await self._raise_for_stream_status(response, endpoint, url)
            try:
                async with aclosing(self._iter_events(response, url)) as events:
                    async for data in events:
                        yield data
            except StreamError:
                await self.breaker.record_failure(endpoint)
                raise
            except GeneratorExit:
                # Closed early by the consumer.
                await self.breaker.record_success(endpoint)
                raise
            await self.breaker.record_success(endpoint)
        finally:
            await response.aclose()

    async def _iter_events(
        self, response: httpx.Response, url: str
    ) -> AsyncIterator[str]:
        decoder = SSEDecoder()
        try:
            async for raw in response.aiter_bytes():
                if not raw:
                    continue
                for data in decoder.feed(raw):
                    yield data
        except (httpx.TransportError, httpx.StreamError) as exc:
            log_error(
                self._logger,
                "llm.stream_disconnected",
                url=url,
                error=str(exc),
                buffer_length=decoder.buffered,
            )
            raise StreamError(
                f"Stream disconnected unexpectedly: {exc}",
                provider=self.provider,
            ) from exc
        for data in decoder.flush():
            yield data

    async def _raise_for_stream_status(
        self,
        response: httpx.Response,
        endpoint: EndpointKey,
        url: str,
    ) -> None:
        status = response.status_code
        if 200 <= status < 300:
            return
        await response.aread()
        body = decode_error_body(response.content)
        if status >= 500:
            await self.breaker.record_failure(endpoint)
            log_error(self._logger, "llm.stream_server_error", url=url, status=status)
            raise StreamError(
                f"Stream request failed: HTTP {status}",
                status_code=status,
                provider=self.provider,
                response_body=body,
            )
        log_error(self._logger, "llm.client_error", url=url, status=status)
        raise self._client_error(response, body, url)

    async def _request_json(
        self,
        method: str,
        url: str,
        headers: Headers | None,
        body: Mapping[str, object] | None,
    ) -> JsonObject:
        started = time.monotonic()
        log_debug(
            self._logger,
            "llm.request",
            method=method,
            url=url,
            headers=redact(dict(headers or {})),
            body=truncate_body(body) if body else None,
        )

        response = await self._request(method, url, headers, body)
        decoded = self._decode_json(response, url)

        log_debug(
            self._logger,
            "llm.response",
            status=response.status_code,
            duration_ms=round((time.monotonic() - started) * 1000, 2),
            body=truncate_body(decoded),
        )
        return decoded

    async def _request(
        self,
        method: str,
        url: str,
        headers: Headers | None,
        body: Mapping[str, object] | None,
    ) -> httpx.Response:
        endpoint = endpoint_key(url)
        await self.breaker.allow_request(endpoint)

        policy = self.settings.retry_policy()
        retrying = build_capped_exponential_retrying(
            retry=retry_if_exception_type(TransientError),
            policy=policy,
            sleep=self._sleep,
            before_sleep=self._build_before_sleep(url, policy),
        )
        try:
            async for attempt in retrying:
                with attempt:
                    return await self._attempt(method, url, endpoint, headers, body)
        except _TransientFailure as exc:
            log_error(
                self._logger,
                "llm.retries_exhausted",
                url=url,
                attempts=policy.attempts,
                error=exc.message,
            )
            raise RetriesExhaustedError(
                f"{exc.message} after {policy.attempts} attempts",
                attempts=policy.attempts,
                status_code=exc.status_code,
                provider=self.provider,
                response_body=exc.response_body,
            ) from (exc.__cause__ or exc)

        raise RuntimeError("Request retry loop exited unexpectedly.")

    async def _attempt(
        self,
        method: str,
        url: str,
        endpoint: EndpointKey,
        headers: Headers | None,
        body: Mapping[str, object] | None,
    ) -> httpx.Response:
        try:
            response = await self._client.request(
                method,
                url,
                headers=self._request_headers(headers),
                json=body,
            )
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            status = exc.response.status_code
            error_body = decode_error_body(exc.response.content)
            if status >= 500:
                await self.breaker.record_failure(endpoint)
                raise _TransientFailure(
                    f"Server error: HTTP {status}",
                    status_code=status,
                    provider=self.provider,
                    response_body=error_body,
                ) from exc
            log_error(self._logger, "llm.client_error", url=url, status=status)
            raise self._client_error(exc.response, error_body, url) from exc
        except httpx.TransportError as exc:
            await self.breaker.record_failure(endpoint)
            raise _TransientFailure(
                f"Connection failed: {exc}",
                provider=self.provider,
            ) from exc

        await self.breaker.record_success(endpoint)
        return response

    def _build_before_sleep(
        self, url: str, policy: RetryPolicy
    ) -> Callable[[RetryCallState], None]:
        def _before_sleep(state: RetryCallState) -> None:
            outcome = state.outcome
            error = outcome.exception() if outcome is not None else None
            delay = state.next_action.sleep if state.next_action is not None else None
            log_warning(
                self._logger,
                "llm.retrying",
                url=url,
                attempt=state.attempt_number,
                max_attempts=policy.attempts,
                delay_seconds=delay,
                error=str(error),
            )

        return _before_sleep

    def _client_error(
        self,
        response: httpx.Response,
        body: JsonObject | None,
        url: str,
    ) -> ApiError:
        status = response.status_code
        message = extract_error_message(body, f"HTTP {status} returned by {url}")
        if status in {401, 403}:
            return AuthenticationError(
                message,
                status_code=status,
                provider=self.provider,
                response_body=body,
            )
        if status == 429:
            return RateLimitError(
                message,
                provider=self.provider,
                response_body=body,
                retry_after=parse_retry_after(response.headers.get("Retry-After")),
            )
        return ApiError(
            message,
            status_code=status,
            provider=self.provider,
            response_body=body,
        )

    def _decode_json(self, response: httpx.Response, url: str) -> JsonObject:
        if not response.content:
            return {}
        try:
            decoded = response.json()
        except ValueError as exc:
            log_error(
                self._logger,
                "llm.invalid_json",
                url=url,
                error=str(exc),
                content_preview=preview(response.text, limit=200),
            )
            raise ResponseDecodeError(
                f"Invalid JSON response from API: {exc}",
                provider=self.provider,
                response_body={"raw_content": preview(response.text)},
            ) from exc
        if not isinstance(decoded, dict):
            raise ResponseDecodeError(
                "JSON response from API is not an object",
                provider=self.provider,
                response_body={"raw_content": preview(response.text)},
            )
        return cast(JsonObject, decoded)

    @staticmethod
    def _request_headers(headers: Headers | None) -> dict[str, str]:
        return {**(headers or {}), "Content-Type": "application/json"}

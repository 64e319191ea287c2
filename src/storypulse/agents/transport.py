# src/storypulse/agents/transport.py
"""Transports the world builder uses to reach a model.

:class:`~storypulse.core.dispatcher.UpstreamDispatcher` already satisfies
:class:`ChatTransport` for in-process use; :class:`HttpChatTransport` talks to
a running StoryPulse server instead.
"""

from __future__ import annotations

import json
from collections.abc import AsyncIterable, AsyncIterator, Callable
from typing import Any, Protocol

import httpx
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_fixed,
)

from storypulse.config import StoryPulseConfig
from storypulse.core.errors import UpstreamError
from storypulse.core.logging import get_logger
from storypulse.models.chat import (
    ChatCompletion,
    LogicalChatRequest,
    UnifiedChatResponse,
)

logger = get_logger(__name__)

CHAT_PATH = "/api/chat"
STREAM_PATH = "/api/chat/stream"


class ChatTransport(Protocol):
    async def dispatch(self, request: LogicalChatRequest) -> UnifiedChatResponse: ...


def request_body(request: LogicalChatRequest) -> dict[str, Any]:
    """Inbound wire body for a logical request; unset sampling fields are left out."""
    body: dict[str, Any] = {
        "model": request.model,
        "messages": [m.model_dump() for m in request.messages],
    }
    if request.wants_json:
        body["format"] = "json"
    body.update(request.sampling.model_dump(exclude_none=True))
    return body


def completion_to_unified(data: Any) -> UnifiedChatResponse:
    completion = ChatCompletion.model_validate(data)
    if not completion.choices:
        return UnifiedChatResponse()
    choice = completion.choices[0]
    return UnifiedChatResponse(
        message=choice.message, finish_reason=choice.finish_reason or "stop"
    )


def _error_from_response(response: httpx.Response) -> UpstreamError:
    try:
        body = response.json()
    except (ValueError, RecursionError):
        body = None
    if isinstance(body, dict):
        message = str(body.get("error") or f"Server responded with {response.status_code}")
        payload = body.get("upstream")
    else:
        message = f"Server responded with {response.status_code}"
        payload = response.text or None
    return UpstreamError(message, status_code=response.status_code, payload=payload)


async def iter_sse_deltas(chunks: AsyncIterable[str]) -> AsyncIterator[str]:
    """Yield content deltas from unified SSE frames until ``[DONE]``."""
    buffer = ""
    async for chunk in chunks:
        buffer += chunk.replace("\r\n", "\n")
        *frames, buffer = buffer.split("\n\n")
        for frame in frames:
            frame = frame.strip()
            if not frame.startswith("data:"):
                # ": ping" heartbeats and blank keep-alives
                continue
            raw = frame[5:].strip()
            if raw == "[DONE]":
                return
            try:
                data = json.loads(raw)
            except json.JSONDecodeError:
                logger.debug("Skipping malformed SSE frame: %.120s", raw)
                continue
            choices = data.get("choices") if isinstance(data, dict) else None
            first = choices[0] if isinstance(choices, list) and choices else None
            if not isinstance(first, dict):
                continue
            delta = first.get("delta") or {}
            content = delta.get("content") if isinstance(delta, dict) else None
            if isinstance(content, str) and content:
                yield content


class HttpChatTransport:
    """Client for the StoryPulse HTTP surface."""

    def __init__(
        self,
        api_base: str,
        *,
        timeout: float = 120.0,
        retry_attempts: int = 1,
        retry_wait: float = 0.5,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.api_base = api_base.rstrip("/")
        self.timeout = timeout
        self.retry_attempts = max(1, retry_attempts)
        self.retry_wait = retry_wait
        self._transport = transport

    @classmethod
    def from_config(
        cls,
        settings: StoryPulseConfig,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> HttpChatTransport:
        return cls(
            settings.client.api_base,
            timeout=settings.client.timeout,
            retry_attempts=settings.client.retry_attempts,
            transport=transport,
        )

    def _client(self, timeout: float | None) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.api_base,
            timeout=httpx.Timeout(timeout),
            transport=self._transport,
        )

    async def dispatch(self, request: LogicalChatRequest) -> UnifiedChatResponse:
        body = request_body(request)
        try:
            # Only connection-level failures are retried, and only when configured.
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self.retry_attempts),
                wait=wait_fixed(self.retry_wait),
                retry=retry_if_exception_type(httpx.TransportError),
                reraise=True,
            ):
                with attempt:
                    async with self._client(self.timeout) as client:
                        response = await client.post(CHAT_PATH, json=body)
        except httpx.HTTPError as exc:
            logger.error("Request to %s failed: %s", self.api_base, exc)
            raise UpstreamError(str(exc) or type(exc).__name__) from exc

        if not response.is_success:
            raise _error_from_response(response)
        try:
            return completion_to_unified(response.json())
        except (ValueError, RecursionError) as exc:
            raise UpstreamError(
                "Server returned an unreadable completion", payload=response.text
            ) from exc

    async def stream_chat(
        self,
        request: LogicalChatRequest,
        on_token: Callable[[str], None] | None = None,
    ) -> AsyncIterator[str]:
        """Yield content deltas from ``/api/chat/stream`` as they arrive."""
        body = {**request_body(request), "stream": True}
        try:
            async with self._client(None) as client:
                async with client.stream("POST", STREAM_PATH, json=body) as response:
                    if not response.is_success:
                        await response.aread()
                        raise _error_from_response(response)
                    async for delta in iter_sse_deltas(response.aiter_text()):
                        if on_token is not None:
                            on_token(delta)
                        yield delta
        except httpx.HTTPError as exc:
            logger.error("Stream from %s failed: %s", self.api_base, exc)
            raise UpstreamError(str(exc) or type(exc).__name__) from exc


__all__ = [
    "ChatTransport",
    "HttpChatTransport",
    "completion_to_unified",
    "iter_sse_deltas",
    "request_body",
]

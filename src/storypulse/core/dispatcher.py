# src/storypulse/core/dispatcher.py
"""Talk to the upstream model server in either of its two wire flavors.

The OpenAI-compatible flavor posts to ``/v1/chat/completions`` and reads
``choices[0]``; the native flavor posts ``options``/``format`` and reads
``message``/``done`` (or ``response`` for generate-style replies). Either way
the caller gets one :class:`UnifiedChatResponse`.
"""

from __future__ import annotations

import json
import time
from collections.abc import AsyncIterator, Mapping
from typing import Any

import httpx

from storypulse.config import StoryPulseConfig
from storypulse.core.adapter import (
    AdaptedMessages,
    ModelBehaviorTable,
    ModelProfile,
    adapt,
)
from storypulse.core.errors import UpstreamError
from storypulse.core.json_extract import scan_json_object
from storypulse.core.logging import get_logger
from storypulse.core.output_utils import write_debug_snapshot
from storypulse.core.stream import StreamDecoder, StreamDelta
from storypulse.models.chat import (
    ChatMessage,
    LogicalChatRequest,
    SamplingParams,
    UnifiedChatResponse,
    UpstreamFlavor,
)

logger = get_logger(__name__)

DEFAULT_MAX_TOKENS = 600
DEFAULT_TEMPERATURE = 0.6
DEFAULT_TIMEOUT = 90.0

REASONING_KEYS = ("thinking", "reasoning", "reasoning_content")

# generic sampling name -> native option name
NATIVE_OPTION_NAMES = {
    "temperature": "temperature",
    "top_p": "top_p",
    "max_tokens": "num_predict",
    "num_ctx": "num_ctx",
    "num_batch": "num_batch",
}


def strip_reasoning(message: Mapping[str, Any]) -> dict[str, Any]:
    """Drop rendered "thought" fields so they never reach the consumer."""
    return {k: v for k, v in message.items() if k not in REASONING_KEYS}


def native_options(
    sampling: SamplingParams, profile: ModelProfile
) -> dict[str, Any] | None:
    """Translate provided sampling fields; absent fields are omitted, not defaulted."""
    options: dict[str, Any] = {}
    for field_name, option_name in NATIVE_OPTION_NAMES.items():
        value = getattr(sampling, field_name)
        if value is None:
            continue
        if field_name == "temperature":
            value = profile.clamp_temperature(value)
        options[option_name] = value
    return options or None


def parse_upstream_reply(data: Any) -> UnifiedChatResponse:
    """Normalize an OpenAI-style, native chat or native generate reply."""
    message: Mapping[str, Any] = {"role": "assistant", "content": ""}
    finish = "stop"

    if isinstance(data, Mapping):
        choices = data.get("choices")
        if isinstance(choices, list) and choices and isinstance(choices[0], Mapping):
            first = choices[0]
            if isinstance(first.get("message"), Mapping):
                message = first["message"]
            finish = first.get("finish_reason") or "stop"
        elif isinstance(data.get("message"), Mapping):
            message = data["message"]
            finish = data.get("done_reason") or "stop"
        elif isinstance(data.get("response"), str):
            message = {"role": "assistant", "content": data["response"]}
            finish = data.get("done_reason") or "stop"

    cleaned = strip_reasoning(message)
    if not isinstance(cleaned.get("role"), str):
        cleaned["role"] = "assistant"
    return UnifiedChatResponse(message=ChatMessage.model_validate(cleaned), finish_reason=finish)


def rescue_json_content(response: UnifiedChatResponse) -> UnifiedChatResponse:
    """Replace string content with the re-serialized first JSON object, if any."""
    content = response.message.content
    if not isinstance(content, str):
        return response
    result = scan_json_object(content)
    if not result.ok:
        logger.debug("JSON rescue found nothing usable (%s)", result.status.value)
        return response
    rescued = json.dumps(result.value, ensure_ascii=False)
    if rescued != content:
        logger.debug("Rescued JSON object from %d chars of model output", len(content))
    message = response.message.model_copy(update={"content": rescued})
    return response.model_copy(update={"message": message})


def stream_fragment(delta: StreamDelta) -> UnifiedChatResponse:
    return UnifiedChatResponse(
        message=ChatMessage(content=delta.content), finish_reason=delta.finish_reason
    )


def _error_payload(response: httpx.Response) -> Any:
    try:
        return response.json()
    except (ValueError, RecursionError):
        return response.text or None


class UpstreamStream:
    """An open streaming upstream response; close it exactly once."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        response: httpx.Response,
        *,
        model: str,
        flavor: UpstreamFlavor,
    ) -> None:
        self._client = client
        self._response = response
        self.model = model
        self.flavor = flavor
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def aiter_text(self) -> AsyncIterator[str]:
        return self._response.aiter_text()

    async def aclose(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            await self._response.aclose()
        finally:
            await self._client.aclose()
        logger.info("Upstream stream closed for %s", self.model)

    async def __aenter__(self) -> UpstreamStream:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()


class UpstreamDispatcher:
    """Build upstream payloads and normalize replies for one configured upstream."""

    def __init__(
        self,
        url: str,
        flavor: UpstreamFlavor,
        *,
        api_key: str = "",
        timeout: float = DEFAULT_TIMEOUT,
        default_max_tokens: int = DEFAULT_MAX_TOKENS,
        default_temperature: float = DEFAULT_TEMPERATURE,
        behavior_table: ModelBehaviorTable | None = None,
        debug_dir: str = "",
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.url = url
        self.flavor = flavor
        self.api_key = api_key
        self.timeout = timeout
        self.default_max_tokens = default_max_tokens
        self.default_temperature = default_temperature
        self.behavior_table = behavior_table
        self.debug_dir = debug_dir
        self._transport = transport

    @classmethod
    def from_config(
        cls,
        settings: StoryPulseConfig,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> UpstreamDispatcher:
        upstream = settings.upstream
        return cls(
            upstream.url,
            upstream.flavor,
            api_key=upstream.api_key,
            timeout=upstream.timeout,
            default_max_tokens=upstream.default_max_tokens,
            default_temperature=upstream.default_temperature,
            behavior_table=ModelBehaviorTable.from_config(settings.models),
            debug_dir=settings.system.debug_dir,
            transport=transport,
        )

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    def build_payload(
        self, request: LogicalChatRequest, *, stream: bool
    ) -> tuple[dict[str, Any], AdaptedMessages]:
        """Return the upstream JSON body for ``request`` and the adaptation used."""
        adapted = adapt(
            request.model, request.messages, request.wants_json, self.behavior_table
        )
        native_json = request.wants_json and not adapted.force_plain
        messages = [m.model_dump() for m in adapted.messages]
        sampling = request.sampling

        if self.flavor is UpstreamFlavor.OPENAI:
            temperature = (
                sampling.temperature
                if sampling.temperature is not None
                else self.default_temperature
            )
            payload: dict[str, Any] = {
                "model": request.model,
                "messages": messages,
                "max_tokens": sampling.max_tokens
                if sampling.max_tokens is not None
                else self.default_max_tokens,
                "temperature": adapted.profile.clamp_temperature(temperature),
                "stream": stream,
            }
            if native_json:
                payload["response_format"] = {"type": "json_object"}
            return payload, adapted

        payload = {"model": request.model, "messages": messages, "stream": stream}
        options = native_options(sampling, adapted.profile)
        if options:
            payload["options"] = options
        if native_json:
            payload["format"] = "json"
        return payload, adapted

    def _status_error(self, response: httpx.Response) -> UpstreamError:
        payload = _error_payload(response)
        logger.error(
            "Upstream error %s from %s: %s", response.status_code, self.url, payload
        )
        return UpstreamError(
            f"Upstream responded with status {response.status_code}",
            status_code=response.status_code,
            payload=payload,
        )

    def _transport_error(self, exc: httpx.HTTPError) -> UpstreamError:
        if isinstance(exc, httpx.TimeoutException):
            message = f"Upstream timed out after {self.timeout:g}s"
        else:
            message = str(exc) or type(exc).__name__
        logger.error("Upstream request to %s failed: %s", self.url, message)
        return UpstreamError(message)

    async def dispatch(self, request: LogicalChatRequest) -> UnifiedChatResponse:
        """Send one non-streaming turn and return the normalized reply."""
        payload, adapted = self.build_payload(request, stream=False)
        start = time.monotonic()
        try:
            async with httpx.AsyncClient(
                timeout=httpx.Timeout(self.timeout), transport=self._transport
            ) as client:
                response = await client.post(self.url, json=payload, headers=self._headers())
        except httpx.HTTPError as exc:
            raise self._transport_error(exc) from exc

        if not response.is_success:
            raise self._status_error(response)

        await write_debug_snapshot(
            self.debug_dir,
            base_slug=f"upstream_{request.model}",
            part="response",
            header=f"model={request.model}; flavor={self.flavor.value}",
            body=response.text,
        )
        try:
            data = response.json()
        except (ValueError, RecursionError) as exc:
            logger.error("Upstream returned a non-JSON body: %.200s", response.text)
            raise UpstreamError(
                "Upstream returned a non-JSON body", payload=response.text
            ) from exc

        result = parse_upstream_reply(data)
        if request.wants_json:
            result = rescue_json_content(result)

        logger.info(
            "Upstream reply | model=%s flavor=%s stubborn=%s finish=%s duration=%.2fs",
            request.model,
            self.flavor.value,
            adapted.profile.stubborn,
            result.finish_reason,
            time.monotonic() - start,
        )
        return result

    async def open_stream(self, request: LogicalChatRequest) -> UpstreamStream:
        """Start a streaming turn; raises before any frame if the upstream fails."""
        payload, adapted = self.build_payload(request, stream=True)
        # Generation length is unknown, so streaming has no deadline.
        client = httpx.AsyncClient(timeout=httpx.Timeout(None), transport=self._transport)
        try:
            upstream_request = client.build_request(
                "POST", self.url, json=payload, headers=self._headers()
            )
            response = await client.send(upstream_request, stream=True)
        except httpx.HTTPError as exc:
            await client.aclose()
            raise self._transport_error(exc) from exc

        if not response.is_success:
            try:
                await response.aread()
            finally:
                await response.aclose()
                await client.aclose()
            raise self._status_error(response)

        logger.info(
            "Upstream stream opened | model=%s flavor=%s stubborn=%s",
            request.model,
            self.flavor.value,
            adapted.profile.stubborn,
        )
        return UpstreamStream(client, response, model=request.model, flavor=self.flavor)

    async def dispatch_stream(
        self, request: LogicalChatRequest
    ) -> AsyncIterator[UnifiedChatResponse]:
        """Yield content fragments, ending with one ``finish_reason="stop"`` fragment."""
        decoder = StreamDecoder(self.flavor)
        async with await self.open_stream(request) as upstream:
            async for chunk in upstream.aiter_text():
                for delta in decoder.feed(chunk):
                    yield stream_fragment(delta)
                if decoder.finished:
                    return
            for delta in decoder.finish():
                yield stream_fragment(delta)


__all__ = [
    "DEFAULT_MAX_TOKENS",
    "DEFAULT_TEMPERATURE",
    "UpstreamDispatcher",
    "UpstreamStream",
    "native_options",
    "parse_upstream_reply",
    "rescue_json_content",
    "stream_fragment",
    "strip_reasoning",
]

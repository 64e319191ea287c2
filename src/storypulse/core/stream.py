# src/storypulse/core/stream.py
"""Re-emit either upstream streaming format as one unified SSE delta format.

OpenAI-compatible upstreams send ``data: <json>`` lines ending with
``data: [DONE]``; the native API sends one raw JSON object per line with a
``done`` flag. Browsers always receive ``data: <chunk>`` frames, one stop
frame, then ``data: [DONE]``, with ``: ping`` comments in between.
"""

from __future__ import annotations

import asyncio
import json
import time
from collections.abc import AsyncIterable, AsyncIterator, Awaitable, Callable, Mapping
from typing import Any, NamedTuple

from storypulse.core.logging import get_logger
from storypulse.models.chat import UpstreamFlavor

logger = get_logger(__name__)

DONE_FRAME = "data: [DONE]\n\n"
PING_FRAME = ": ping\n\n"
HEARTBEAT_INTERVAL = 15.0

_END = object()


def format_frame(payload: Mapping[str, Any]) -> str:
    return f"data: {json.dumps(payload, ensure_ascii=False)}\n\n"


def chunk_payload(
    model: str, content: str | None = None, finish_reason: str | None = None
) -> dict[str, Any]:
    """A unified delta chunk; an empty delta plus ``finish_reason`` is the stop frame."""
    now = time.time()
    return {
        "id": f"chatcmpl_{int(now * 1000)}",
        "object": "chat.completion.chunk",
        "created": int(now),
        "model": model,
        "choices": [
            {
                "index": 0,
                "delta": {"content": content} if content else {},
                "finish_reason": finish_reason,
            }
        ],
    }


def openai_delta_text(data: Mapping[str, Any]) -> str:
    choices = data.get("choices")
    if not (isinstance(choices, list) and choices and isinstance(choices[0], Mapping)):
        return ""
    choice = choices[0]
    delta = choice.get("delta")
    if isinstance(delta, Mapping) and isinstance(delta.get("content"), str):
        if delta["content"]:
            return delta["content"]
    message = choice.get("message")
    if isinstance(message, Mapping) and isinstance(message.get("content"), str):
        return message["content"]
    return ""


def native_delta_text(data: Mapping[str, Any]) -> str:
    message = data.get("message")
    if isinstance(message, Mapping) and isinstance(message.get("content"), str):
        return message["content"]
    # generate-style streams
    if isinstance(data.get("response"), str):
        return data["response"]
    return ""


class StreamDelta(NamedTuple):
    """One decoded piece of an upstream stream; ``finish_reason`` marks the end."""

    content: str = ""
    finish_reason: str | None = None

    @property
    def is_final(self) -> bool:
        return self.finish_reason is not None


class StreamDecoder:
    """Split upstream text chunks into :class:`StreamDelta` values.

    Lines split across reads are buffered until their newline arrives. A
    complete line that still fails to parse is dropped. After the completion
    signal every further input is ignored, so exactly one final delta is
    ever produced.
    """

    def __init__(self, flavor: UpstreamFlavor) -> None:
        self.flavor = flavor
        self._buffer = ""
        self._finished = False

    @property
    def finished(self) -> bool:
        return self._finished

    def feed(self, chunk: str) -> list[StreamDelta]:
        if self._finished or not chunk:
            return []
        self._buffer += chunk
        *lines, self._buffer = self._buffer.split("\n")
        deltas: list[StreamDelta] = []
        for line in lines:
            deltas.extend(self._handle_line(line))
            if self._finished:
                self._buffer = ""
                break
        return deltas

    def finish(self) -> list[StreamDelta]:
        """Flush a trailing unterminated line and close the stream if still open."""
        if self._finished:
            return []
        deltas: list[StreamDelta] = []
        if self._buffer.strip():
            deltas.extend(self._handle_line(self._buffer))
        self._buffer = ""
        if not self._finished:
            deltas.extend(self._complete())
        return deltas

    def _complete(self) -> list[StreamDelta]:
        self._finished = True
        return [StreamDelta(finish_reason="stop")]

    def _parse(self, raw: str) -> Mapping[str, Any] | None:
        try:
            data = json.loads(raw)
        except (json.JSONDecodeError, RecursionError):
            logger.debug("Dropping unparseable stream line: %.120s", raw)
            return None
        return data if isinstance(data, Mapping) else None

    def _handle_line(self, line: str) -> list[StreamDelta]:
        if self.flavor is UpstreamFlavor.OPENAI:
            return self._handle_openai_line(line.strip())
        return self._handle_native_line(line.strip())

    def _handle_openai_line(self, line: str) -> list[StreamDelta]:
        if not line.startswith("data:"):
            return []
        raw = line[5:].strip()
        if raw == "[DONE]":
            return self._complete()
        data = self._parse(raw)
        if data is None:
            return []
        text = openai_delta_text(data)
        return [StreamDelta(text)] if text else []

    def _handle_native_line(self, line: str) -> list[StreamDelta]:
        if not line:
            return []
        data = self._parse(line)
        if data is None:
            return []
        if data.get("error"):
            logger.warning("Upstream reported a stream error: %s", data["error"])
        text = native_delta_text(data)
        deltas = [StreamDelta(text)] if text else []
        if data.get("done"):
            deltas.extend(self._complete())
        return deltas


class StreamReframer:
    """Turn upstream text chunks into unified SSE frames.

    Each content delta becomes one ``data:`` frame; the final delta becomes
    the stop frame followed by the done marker.
    """

    def __init__(self, model: str, flavor: UpstreamFlavor) -> None:
        self.model = model
        self.flavor = flavor
        self._decoder = StreamDecoder(flavor)

    @property
    def finished(self) -> bool:
        return self._decoder.finished

    def feed(self, chunk: str) -> list[str]:
        return self._frames(self._decoder.feed(chunk))

    def finish(self) -> list[str]:
        return self._frames(self._decoder.finish())

    def _frames(self, deltas: list[StreamDelta]) -> list[str]:
        frames: list[str] = []
        for delta in deltas:
            payload = chunk_payload(self.model, delta.content, delta.finish_reason)
            frames.append(format_frame(payload))
            if delta.is_final:
                frames.append(DONE_FRAME)
        return frames


async def reframe_stream(
    chunks: AsyncIterable[str],
    reframer: StreamReframer,
    *,
    heartbeat_interval: float | None = HEARTBEAT_INTERVAL,
    is_disconnected: Callable[[], Awaitable[bool]] | None = None,
) -> AsyncIterator[str]:
    """Yield unified frames from ``chunks`` interleaved with heartbeat pings.

    Ends when the upstream ends, fails, or ``is_disconnected`` reports the
    client gone. The reading and heartbeat tasks are cancelled on every exit
    path.
    """
    queue: asyncio.Queue[Any] = asyncio.Queue()

    async def _pump() -> None:
        try:
            async for chunk in chunks:
                for frame in reframer.feed(chunk):
                    queue.put_nowait(frame)
                if reframer.finished:
                    break
            for frame in reframer.finish():
                queue.put_nowait(frame)
        except Exception as exc:
            logger.warning("Upstream stream for %s failed: %s", reframer.model, exc)
        finally:
            queue.put_nowait(_END)

    async def _heartbeat(interval: float) -> None:
        while True:
            await asyncio.sleep(interval)
            queue.put_nowait(PING_FRAME)

    tasks = [asyncio.create_task(_pump())]
    if heartbeat_interval and heartbeat_interval > 0:
        tasks.append(asyncio.create_task(_heartbeat(heartbeat_interval)))
    try:
        while True:
            item = await queue.get()
            if item is _END:
                break
            yield item
            if is_disconnected is not None and await is_disconnected():
                logger.info("Client disconnected from %s stream", reframer.model)
                break
    finally:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)


__all__ = [
    "DONE_FRAME",
    "HEARTBEAT_INTERVAL",
    "PING_FRAME",
    "StreamDecoder",
    "StreamDelta",
    "StreamReframer",
    "chunk_payload",
    "format_frame",
    "native_delta_text",
    "openai_delta_text",
    "reframe_stream",
]

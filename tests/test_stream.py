from __future__ import annotations

import asyncio
import json
from collections.abc import AsyncIterator

from storypulse.core.stream import (
    DONE_FRAME,
    PING_FRAME,
    StreamDecoder,
    StreamDelta,
    StreamReframer,
    reframe_stream,
)
from storypulse.models.chat import UpstreamFlavor


def _payloads(frames: list[str]) -> list[dict]:
    return [
        json.loads(f[len("data: ") :])
        for f in frames
        if f.startswith("data: ") and f != DONE_FRAME
    ]


def _is_stop(frame: str) -> bool:
    if not frame.startswith("data: {"):
        return False
    return json.loads(frame[len("data: ") :])["choices"][0]["finish_reason"] == "stop"


async def _chunks(*parts: str, delay: float = 0.0) -> AsyncIterator[str]:
    for part in parts:
        if delay:
            await asyncio.sleep(delay)
        yield part


def test_native_done_produces_one_stop_and_one_done() -> None:
    reframer = StreamReframer("llama3", UpstreamFlavor.NATIVE)
    lines = [
        json.dumps({"message": {"content": piece}, "done": False}) + "\n"
        for piece in ("Once", " upon", " a", " time")
    ]
    lines.append(json.dumps({"message": {"content": ""}, "done": True}) + "\n")

    frames: list[str] = []
    for line in lines:
        frames.extend(reframer.feed(line))
    frames.extend(reframer.finish())

    assert frames.count(DONE_FRAME) == 1
    assert sum(_is_stop(f) for f in frames) == 1
    assert frames[-1] == DONE_FRAME
    assert _is_stop(frames[-2])
    text = "".join(
        p["choices"][0]["delta"].get("content", "") for p in _payloads(frames)
    )
    assert text == "Once upon a time"


def test_input_after_completion_is_ignored() -> None:
    reframer = StreamReframer("llama3", UpstreamFlavor.NATIVE)
    frames = reframer.feed('{"done": true}\n{"message": {"content": "late"}}\n')
    frames += reframer.feed('{"done": true}\n')
    frames += reframer.finish()

    assert frames.count(DONE_FRAME) == 1
    assert all("late" not in f for f in frames)


def test_lines_split_across_reads_are_buffered() -> None:
    reframer = StreamReframer("llama3", UpstreamFlavor.NATIVE)
    line = json.dumps({"message": {"content": "whole"}, "done": False}) + "\n"
    frames = reframer.feed(line[:10])
    assert frames == []
    frames += reframer.feed(line[10:])

    assert len(frames) == 1
    assert _payloads(frames)[0]["choices"][0]["delta"] == {"content": "whole"}


def test_trailing_line_without_newline_is_flushed() -> None:
    reframer = StreamReframer("llama3", UpstreamFlavor.NATIVE)
    frames = reframer.feed('{"message": {"content": "end"}, "done": true}')
    assert frames == []
    frames += reframer.finish()
    assert _payloads(frames)[0]["choices"][0]["delta"] == {"content": "end"}
    assert frames.count(DONE_FRAME) == 1


def test_openai_lines_are_reframed_until_done_marker() -> None:
    reframer = StreamReframer("gpt-oss:20b", UpstreamFlavor.OPENAI)
    body = (
        'data: {"choices":[{"delta":{"role":"assistant"}}]}\n\n'
        'data: {"choices":[{"delta":{"content":"Hel"}}]}\n\n'
        "data: not-json\n\n"
        ": keep-alive\n\n"
        'data: {"choices":[{"delta":{"content":"lo"}}]}\n\n'
        "data: [DONE]\n\n"
        'data: {"choices":[{"delta":{"content":"ignored"}}]}\n\n'
    )
    frames = reframer.feed(body) + reframer.finish()

    contents = [p["choices"][0]["delta"].get("content") for p in _payloads(frames)]
    assert contents == ["Hel", "lo", None]
    assert frames.count(DONE_FRAME) == 1
    assert all(p["model"] == "gpt-oss:20b" for p in _payloads(frames))
    assert all(p["object"] == "chat.completion.chunk" for p in _payloads(frames))


def test_clean_end_without_done_signal_still_closes() -> None:
    reframer = StreamReframer("llama3", UpstreamFlavor.OPENAI)
    frames = reframer.feed('data: {"choices":[{"delta":{"content":"x"}}]}\n')
    frames += reframer.finish()
    assert _is_stop(frames[-2])
    assert frames[-1] == DONE_FRAME
    assert reframer.finish() == []


def test_reframe_stream_interleaves_heartbeats() -> None:
    async def run() -> list[str]:
        reframer = StreamReframer("llama3", UpstreamFlavor.NATIVE)
        chunks = _chunks(
            '{"message":{"content":"a"}}\n',
            '{"message":{"content":"b"},"done":true}\n',
            delay=0.05,
        )
        return [f async for f in reframe_stream(chunks, reframer, heartbeat_interval=0.01)]

    frames = asyncio.run(run())
    assert PING_FRAME in frames
    assert frames[-1] == DONE_FRAME
    assert frames.count(DONE_FRAME) == 1


def test_reframe_stream_stops_on_client_disconnect() -> None:
    async def forever() -> AsyncIterator[str]:
        while True:
            yield '{"message":{"content":"tick"}}\n'
            await asyncio.sleep(0)

    async def run() -> list[str]:
        reframer = StreamReframer("llama3", UpstreamFlavor.NATIVE)
        calls = 0

        async def is_disconnected() -> bool:
            nonlocal calls
            calls += 1
            return calls >= 3

        return [
            f
            async for f in reframe_stream(
                forever(), reframer, heartbeat_interval=None, is_disconnected=is_disconnected
            )
        ]

    frames = asyncio.run(run())
    assert len(frames) == 3
    assert DONE_FRAME not in frames


def test_reframe_stream_upstream_failure_ends_without_done() -> None:
    async def broken() -> AsyncIterator[str]:
        yield '{"message":{"content":"partial"}}\n'
        raise ConnectionError("reset by peer")

    async def run() -> list[str]:
        reframer = StreamReframer("llama3", UpstreamFlavor.NATIVE)
        return [f async for f in reframe_stream(broken(), reframer, heartbeat_interval=None)]

    frames = asyncio.run(run())
    assert len(frames) == 1
    assert "partial" in frames[0]
    assert DONE_FRAME not in frames


def test_decoder_reads_generate_style_native_lines() -> None:
    decoder = StreamDecoder(UpstreamFlavor.NATIVE)
    deltas = decoder.feed('{"response":"par"}\n{"response":"tial"}\n{"response":"","done":true}\n')
    assert deltas == [
        StreamDelta("par"),
        StreamDelta("tial"),
        StreamDelta(finish_reason="stop"),
    ]
    assert decoder.finished
    assert decoder.finish() == []


def test_openai_line_split_mid_json_is_buffered() -> None:
    reframer = StreamReframer("llama3", UpstreamFlavor.OPENAI)
    line = 'data: {"choices":[{"delta":{"content":"whole"}}]}\n\n'
    frames = reframer.feed(line[:25])
    assert frames == []
    frames += reframer.feed(line[25:])

    assert len(frames) == 1
    assert _payloads(frames)[0]["choices"][0]["delta"] == {"content": "whole"}
    assert not reframer.finished


def test_deeply_nested_line_is_dropped_and_stream_still_closes() -> None:
    decoder = StreamDecoder(UpstreamFlavor.NATIVE)
    deep = '{"a":' * 2000 + "1" + "}" * 2000
    deltas = decoder.feed(deep + "\n" + '{"message":{"content":"ok"},"done":true}\n')
    assert deltas == [StreamDelta("ok"), StreamDelta(finish_reason="stop")]

# src/storypulse/web/routes.py
import asyncio
from contextlib import aclosing

from fastapi import APIRouter, Request
from fastapi.responses import StreamingResponse

from storypulse.config import StoryPulseConfig
from storypulse.core.dispatcher import UpstreamDispatcher
from storypulse.core.stream import StreamReframer, reframe_stream
from storypulse.models.chat import ChatCompletionRequest

# Create the router
router = APIRouter()

SSE_HEADERS = {
    "Cache-Control": "no-cache, no-transform",
    "Connection": "keep-alive",
}


def _settings(request: Request) -> StoryPulseConfig:
    return request.app.state.settings


def _dispatcher(request: Request) -> UpstreamDispatcher:
    return request.app.state.dispatcher


@router.get("/health")
async def health_check(request: Request):
    """Report the configured upstream and its detected flavor."""
    dispatcher = _dispatcher(request)
    return {"ok": True, "upstream": dispatcher.url, "mode": dispatcher.flavor.label}


@router.post("/api/chat")
async def chat(body: ChatCompletionRequest, request: Request):
    """Non-streaming turn; returns a chat.completion envelope."""
    logical = body.to_logical(_settings(request).upstream.default_model)
    result = await _dispatcher(request).dispatch(logical)
    return result.to_completion(logical.model).model_dump()


@router.post("/api/chat/stream")
async def chat_stream(body: ChatCompletionRequest, request: Request):
    """Streaming turn; re-emits upstream output as unified SSE frames."""
    settings = _settings(request)
    logical = body.to_logical(settings.upstream.default_model)
    # Upstream failures raise here, before any SSE headers go out.
    upstream = await _dispatcher(request).open_stream(logical)
    reframer = StreamReframer(logical.model, upstream.flavor)

    async def frames():
        try:
            async with aclosing(
                reframe_stream(
                    upstream.aiter_text(),
                    reframer,
                    heartbeat_interval=settings.server.heartbeat_interval,
                    is_disconnected=request.is_disconnected,
                )
            ) as stream:
                async for frame in stream:
                    yield frame
        finally:
            await asyncio.shield(upstream.aclose())

    return StreamingResponse(frames(), media_type="text/event-stream", headers=SSE_HEADERS)

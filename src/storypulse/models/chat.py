# src/storypulse/models/chat.py
"""Chat request/response models shared by the server and client paths."""

from __future__ import annotations

import re
import time
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

_VERSIONED_PATH_RE = re.compile(r"/v\d+/")


class UpstreamFlavor(str, Enum):
    """Wire format spoken by the upstream model server."""

    OPENAI = "openai"
    NATIVE = "native"

    @property
    def label(self) -> str:
        """Short label reported by the health probe."""
        return "v1" if self is UpstreamFlavor.OPENAI else "native"


def detect_flavor(url: str) -> UpstreamFlavor:
    """Pick the flavor from the upstream URL: a versioned API path means OpenAI."""
    return UpstreamFlavor.OPENAI if _VERSIONED_PATH_RE.search(url or "") else UpstreamFlavor.NATIVE


class ChatMessage(BaseModel):
    """A single chat turn."""

    model_config = ConfigDict(extra="ignore")

    role: str = "assistant"
    content: Any = ""


class SamplingParams(BaseModel):
    """Generic sampling knobs; ``None`` means "not provided"."""

    temperature: float | None = None
    max_tokens: int | None = None
    top_p: float | None = None
    num_ctx: int | None = None
    num_batch: int | None = None


class LogicalChatRequest(BaseModel):
    """What the caller wants, before any model-specific adaptation."""

    model: str
    messages: list[ChatMessage] = Field(default_factory=list)
    wants_json: bool = False
    sampling: SamplingParams = Field(default_factory=SamplingParams)


class Choice(BaseModel):
    index: int = 0
    message: ChatMessage
    finish_reason: str | None = "stop"


class ChatCompletion(BaseModel):
    """Non-streaming envelope returned to the browser client."""

    id: str
    object: Literal["chat.completion"] = "chat.completion"
    created: int
    model: str
    choices: list[Choice]


class UnifiedChatResponse(BaseModel):
    """The single shape both upstream flavors are normalized into."""

    message: ChatMessage = Field(default_factory=ChatMessage)
    finish_reason: str | None = "stop"

    @property
    def content(self) -> Any:
        return self.message.content

    def to_completion(self, model: str) -> ChatCompletion:
        now = time.time()
        return ChatCompletion(
            id=f"chatcmpl_{int(now * 1000)}",
            created=int(now),
            model=model,
            choices=[Choice(index=0, message=self.message, finish_reason=self.finish_reason)],
        )


class ChatCompletionRequest(BaseModel):
    """Inbound request body for both ``/api/chat`` and ``/api/chat/stream``."""

    model_config = ConfigDict(extra="ignore")

    model: str | None = None
    messages: list[ChatMessage] = Field(default_factory=list)
    format: str | None = None
    temperature: float | None = None
    max_tokens: int | None = None
    top_p: float | None = None
    num_ctx: int | None = None
    num_batch: int | None = None
    stream: bool | None = None

    def to_logical(self, default_model: str) -> LogicalChatRequest:
        return LogicalChatRequest(
            model=self.model or default_model,
            messages=self.messages,
            wants_json=self.format == "json",
            sampling=SamplingParams(
                temperature=self.temperature,
                max_tokens=self.max_tokens,
                top_p=self.top_p,
                num_ctx=self.num_ctx,
                num_batch=self.num_batch,
            ),
        )


__all__ = [
    "ChatCompletion",
    "ChatCompletionRequest",
    "ChatMessage",
    "Choice",
    "LogicalChatRequest",
    "SamplingParams",
    "UnifiedChatResponse",
    "UpstreamFlavor",
    "detect_flavor",
]

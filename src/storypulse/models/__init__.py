# src/storypulse/models/__init__.py
"""Pydantic models for story elements and chat traffic."""

from .base_model import StoryPulseBaseModel
from .chat import (
    ChatCompletion,
    ChatCompletionRequest,
    ChatMessage,
    Choice,
    LogicalChatRequest,
    SamplingParams,
    UnifiedChatResponse,
    UpstreamFlavor,
    detect_flavor,
)
from .elements import (
    CATEGORIES,
    Element,
    ElementKind,
    Shape,
    Size,
    StoryElements,
    SummaryEntry,
    WorldState,
    WorldStateSummary,
)

__all__ = [
    "StoryPulseBaseModel",
    "CATEGORIES",
    "Element",
    "ElementKind",
    "Shape",
    "Size",
    "StoryElements",
    "SummaryEntry",
    "WorldState",
    "WorldStateSummary",
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

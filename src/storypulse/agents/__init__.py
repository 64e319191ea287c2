# src/storypulse/agents/__init__.py
"""Client-side agents for StoryPulse."""

from .transport import ChatTransport, HttpChatTransport
from .world_builder import WorldBuilder, request_world_update

__all__ = [
    "ChatTransport",
    "HttpChatTransport",
    "WorldBuilder",
    "request_world_update",
]

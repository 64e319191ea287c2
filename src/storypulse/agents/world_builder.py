# src/storypulse/agents/world_builder.py
"""WorldBuilder agent: turn a user's story seed into validated world elements."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from storypulse.agents.transport import ChatTransport
from storypulse.config import StoryPulseConfig
from storypulse.core.json_extract import scan_json_object
from storypulse.core.logging import get_logger
from storypulse.core.prompts import WORLD_BUILDER_SYSTEM_PROMPT
from storypulse.core.sanitizer import SanitizeResult, sanitize, sanitize_with_status
from storypulse.models.chat import ChatMessage, LogicalChatRequest, SamplingParams
from storypulse.models.elements import StoryElements, WorldState, WorldStateSummary

logger = get_logger(__name__)

DEFAULT_MODE = "education"
DEFAULT_MAX_TOKENS = 600

# Anything a caller may hold as "the world so far"; raw mappings are sanitized first.
WorldSource = StoryElements | WorldStateSummary | Mapping[str, Any] | None


def build_world_messages(
    user_input: str, summary: WorldStateSummary, mode: str = DEFAULT_MODE
) -> list[ChatMessage]:
    """System instruction plus one user turn carrying mode, summary and seed."""
    user_turn = (
        f"Mode: {mode}\n"
        f"Existing world (most recent entries): {summary.to_prompt_json()}\n"
        f"Seed: {user_input.strip() if user_input else '(none)'}"
    )
    return [
        ChatMessage(role="system", content=WORLD_BUILDER_SYSTEM_PROMPT),
        ChatMessage(role="user", content=user_turn),
    ]


def summarize_world(world: WorldSource, limit: int) -> WorldStateSummary:
    """Accept whatever the caller holds and return a bounded summary."""
    if isinstance(world, WorldStateSummary):
        return world
    if isinstance(world, WorldState):
        return world.summarize(limit)
    if isinstance(world, StoryElements):
        return WorldState.from_elements(world).summarize(limit)
    # Raw client state goes through the sanitizer so bad entries cannot leak into the prompt
    return WorldState.from_elements(sanitize(world)).summarize(limit)


def content_to_elements(content: Any) -> SanitizeResult:
    """Never trust the model: extract when given text, always sanitize."""
    candidate = content
    if isinstance(content, str):
        scan = scan_json_object(content, lenient=True)
        if not scan.ok:
            logger.info("No JSON object in model reply (%s)", scan.status.value)
        candidate = scan.value
    return sanitize_with_status(candidate)


class WorldBuilder:
    """Client-side entry point for world updates."""

    def __init__(
        self,
        transport: ChatTransport,
        *,
        model: str | None = None,
        summary_limit: int | None = None,
        max_tokens: int = DEFAULT_MAX_TOKENS,
        temperature: float | None = None,
        settings: StoryPulseConfig | None = None,
    ) -> None:
        # Defaults come from the environment at construction time, not import time.
        settings = settings or StoryPulseConfig.load()
        self.transport = transport
        self.model = model or settings.upstream.default_model
        self.summary_limit = (
            summary_limit if summary_limit is not None else settings.client.summary_limit
        )
        self.max_tokens = max_tokens
        self.temperature = temperature

    def build_request(
        self,
        user_input: str,
        world: WorldSource,
        mode: str = DEFAULT_MODE,
    ) -> LogicalChatRequest:
        summary = summarize_world(world, self.summary_limit)
        return LogicalChatRequest(
            model=self.model,
            messages=build_world_messages(user_input, summary, mode),
            wants_json=True,
            sampling=SamplingParams(max_tokens=self.max_tokens, temperature=self.temperature),
        )

    async def request_world_update(
        self,
        user_input: str,
        world: WorldSource,
        mode: str = DEFAULT_MODE,
    ) -> StoryElements:
        """Ask the model for new elements and return them sanitized.

        Transport failures propagate as :class:`~storypulse.core.errors.UpstreamError`.
        """
        request = self.build_request(user_input, world, mode)
        response = await self.transport.dispatch(request)
        elements, status = content_to_elements(response.content)
        logger.info(
            "World update | model=%s mode=%s status=%s elements=%d",
            self.model,
            mode,
            status.value,
            elements.count(),
        )
        return elements

    async def apply_turn(
        self, user_input: str, world: WorldState, mode: str = DEFAULT_MODE
    ) -> tuple[WorldState, StoryElements]:
        """Request an update and append it to ``world``."""
        delta = await self.request_world_update(user_input, world, mode)
        return world.extend(delta), delta


async def request_world_update(
    user_input: str,
    world: WorldSource,
    mode: str,
    transport: ChatTransport,
    *,
    model: str | None = None,
) -> StoryElements:
    return await WorldBuilder(transport, model=model).request_world_update(
        user_input, world, mode
    )


__all__ = [
    "WorldBuilder",
    "build_world_messages",
    "content_to_elements",
    "request_world_update",
    "summarize_world",
]

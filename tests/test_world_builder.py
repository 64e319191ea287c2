from __future__ import annotations

import asyncio
import json

from storypulse.agents.world_builder import (
    WorldBuilder,
    build_world_messages,
    content_to_elements,
    request_world_update,
    summarize_world,
)
from storypulse.core.prompts import WORLD_BUILDER_SYSTEM_PROMPT
from storypulse.core.sanitizer import ParseStatus
from storypulse.models.chat import ChatMessage, LogicalChatRequest, UnifiedChatResponse
from storypulse.models.elements import Element, Shape, StoryElements, WorldState

REPLY = {
    "locations": [{"name": "Salt Harbor", "shape": "village", "color": "#336699", "size": "large"}],
    "characters": [{"name": "Mira", "shape": "mage", "color": "#aa00aa"}],
    "items": [],
    "events": [],
}


class FakeTransport:
    """Records requests and answers with canned content."""

    def __init__(self, content) -> None:
        self.content = content
        self.requests: list[LogicalChatRequest] = []

    async def dispatch(self, request: LogicalChatRequest) -> UnifiedChatResponse:
        self.requests.append(request)
        return UnifiedChatResponse(message=ChatMessage(content=self.content))


def _element(name: str, shape: Shape = Shape.TREE) -> Element:
    return Element(name=name, description="d", shape=shape, color="#000000")


def test_request_carries_mode_summary_and_seed() -> None:
    transport = FakeTransport(json.dumps(REPLY))
    builder = WorldBuilder(transport, model="llama3", summary_limit=5)
    world = WorldState(locations=[_element("Old Forest")])

    elements = asyncio.run(builder.request_world_update("  a storm rolls in ", world, "fantasy"))

    request = transport.requests[0]
    assert request.model == "llama3"
    assert request.wants_json is True
    assert request.sampling.max_tokens == 600
    assert request.messages[0].role == "system"
    assert request.messages[0].content == WORLD_BUILDER_SYSTEM_PROMPT
    user_turn = request.messages[1].content
    assert "Mode: fantasy" in user_turn
    assert "Old Forest" in user_turn
    assert "Seed: a storm rolls in" in user_turn

    assert [loc.name for loc in elements.locations] == ["Salt Harbor"]
    assert elements.characters[0].shape is Shape.MAGE
    assert elements.items == []


def test_chatty_and_sloppy_replies_are_recovered() -> None:
    content = "Sure thing!\n```json\n{'locations': [{'name': 'Dune',}], 'events': []}\n```"
    elements = asyncio.run(
        request_world_update("desert", None, "education", FakeTransport(content), model="m")
    )
    assert [loc.name for loc in elements.locations] == ["Dune"]


def test_unusable_reply_yields_empty_elements() -> None:
    result = content_to_elements("I cannot help with that.")
    assert result.status is ParseStatus.EMPTY_FALLBACK
    assert result.elements.is_empty()

    # content already decoded into an object
    assert content_to_elements(REPLY).status is ParseStatus.VALIDATED


def test_summary_keeps_most_recent_entries_only() -> None:
    world = WorldState(characters=[_element(f"c{i}", Shape.HUMANOID) for i in range(8)])
    summary = summarize_world(world, 3)
    assert [c.name for c in summary.characters] == ["c5", "c6", "c7"]
    assert summary.locations == []

    dumped = json.loads(summary.to_prompt_json())
    assert set(dumped["characters"][0]) == {"name", "shape", "size", "color"}


def test_raw_world_mapping_is_sanitized_before_summary() -> None:
    summary = summarize_world({"items": [{"name": "Key", "shape": "wand"}, "Lamp"], "events": 3}, 5)
    assert [i.name for i in summary.items] == ["Key", "Lamp"]
    assert summary.items[0].shape is Shape.GEM
    assert summary.events == []


def test_build_world_messages_without_seed() -> None:
    messages = build_world_messages("", WorldState().summarize(5))
    assert messages[1].content.endswith("Seed: (none)")
    assert "Mode: education" in messages[1].content


def test_apply_turn_appends_without_deduplication() -> None:
    transport = FakeTransport(json.dumps(REPLY))
    builder = WorldBuilder(transport, model="llama3")
    world = WorldState(locations=[_element("Salt Harbor", Shape.VILLAGE)])

    new_world, delta = asyncio.run(builder.apply_turn("more", world))

    assert [loc.name for loc in new_world.locations] == ["Salt Harbor", "Salt Harbor"]
    assert len(new_world.characters) == 1
    assert delta.count() == 2
    # the previous state is untouched
    assert len(world.locations) == 1


def test_extend_preserves_order() -> None:
    world = WorldState(events=[_element("first", Shape.SCROLL)])
    delta = StoryElements(events=[_element("second", Shape.SCROLL), _element("third", Shape.SCROLL)])
    assert [e.name for e in world.extend(delta).events] == ["first", "second", "third"]


def test_plain_story_elements_world_is_summarized() -> None:
    delta = StoryElements(locations=[_element("Old Forest")])
    summary = summarize_world(delta, 5)
    assert [loc.name for loc in summary.locations] == ["Old Forest"]

    transport = FakeTransport("{}")
    asyncio.run(WorldBuilder(transport, model="m").request_world_update("seed", delta))
    assert "Old Forest" in transport.requests[0].messages[1].content


def test_deeply_nested_reply_falls_back_to_empty() -> None:
    result = content_to_elements('{"a":' * 2000 + "1" + "}" * 2000)
    assert result.status is ParseStatus.EMPTY_FALLBACK
    assert result.elements.is_empty()


def test_builder_defaults_read_environment_at_construction(monkeypatch) -> None:
    monkeypatch.setenv("OLLAMA_MODEL", "mistral-nemo")
    monkeypatch.setenv("WORLD_SUMMARY_LIMIT", "2")
    builder = WorldBuilder(FakeTransport("{}"))
    assert builder.model == "mistral-nemo"
    assert builder.summary_limit == 2

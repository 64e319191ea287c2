# src/storypulse/core/prompts.py
"""Prompt text shared by the stubborn-model wrapper and the world builder."""

from __future__ import annotations

import json

from storypulse.models.elements import (
    CATEGORIES,
    DESCRIPTION_MAX_LENGTH,
    NAME_MAX_LENGTH,
    Shape,
    Size,
)

SHAPE_CHOICES = "|".join(s.value for s in Shape)
SIZE_CHOICES = "|".join(f'"{s.value}"' for s in Size)

EMPTY_SCHEMA = json.dumps({c: [] for c in CATEGORIES}, separators=(",", ":"))

ELEMENT_SCHEMA = (
    f"Each element has name (<={NAME_MAX_LENGTH}), "
    f"description (<={DESCRIPTION_MAX_LENGTH}), "
    f"shape ({SHAPE_CHOICES}), "
    'color ("#RRGGBB"), '
    f"size ({SIZE_CHOICES})."
)

CARDINALITY_RULE = "Return exactly 1 location, 1 character, 1 item, 1 event."

STUBBORN_SYSTEM_PROMPT = (
    "You output ONLY a single JSON object. No prose, no code fences, no comments, "
    "and no keys named thinking or reasoning. "
    f"Schema: {EMPTY_SCHEMA}. {ELEMENT_SCHEMA} {CARDINALITY_RULE}"
)

EXAMPLE_INTRO = "Example only. Follow exactly this shape and formatting:"

EXAMPLE_JSON = json.dumps(
    {
        "locations": [
            {
                "name": "Test Tower",
                "description": "Stub.",
                "shape": "tower",
                "color": "#112233",
                "size": "small",
            }
        ],
        "characters": [
            {
                "name": "Test Keeper",
                "description": "Stub.",
                "shape": "humanoid",
                "color": "#445566",
                "size": "medium",
            }
        ],
        "items": [
            {
                "name": "Test Prism",
                "description": "Stub.",
                "shape": "gem",
                "color": "#778899",
                "size": "small",
            }
        ],
        "events": [
            {
                "name": "Test Reveal",
                "description": "Stub.",
                "shape": "scroll",
                "color": "#AABBCC",
                "size": "small",
            }
        ],
    },
    separators=(",", ":"),
)

BRACE_SEED = "{"
EMPTY_SEED = "Seed: (none)"

WORLD_BUILDER_SYSTEM_PROMPT = (
    "You are a world-building AI for a collaborative storytelling app. "
    "Reply with ONLY one JSON object and no other text. "
    f"Schema: {EMPTY_SCHEMA}. {ELEMENT_SCHEMA} "
    "Describe only NEW elements that extend the existing world. "
    f"{CARDINALITY_RULE}"
)


__all__ = [
    "BRACE_SEED",
    "CARDINALITY_RULE",
    "ELEMENT_SCHEMA",
    "EMPTY_SCHEMA",
    "EMPTY_SEED",
    "EXAMPLE_INTRO",
    "EXAMPLE_JSON",
    "STUBBORN_SYSTEM_PROMPT",
    "WORLD_BUILDER_SYSTEM_PROMPT",
]

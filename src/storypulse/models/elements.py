# src/storypulse/models/elements.py
"""Story world elements and the world-state views built from them."""

from __future__ import annotations

import json
from enum import Enum

from pydantic import Field, field_validator

from .base_model import StoryPulseBaseModel as BaseModel
from .validators import validate_hex_color

NAME_MAX_LENGTH = 60
DESCRIPTION_MAX_LENGTH = 500


class Shape(str, Enum):
    """Visual tags the renderer knows how to draw."""

    TREE = "tree"
    TOWER = "tower"
    CAVE = "cave"
    VILLAGE = "village"
    WATER = "water"
    HUMANOID = "humanoid"
    WARRIOR = "warrior"
    MAGE = "mage"
    SPRITE = "sprite"
    SWORD = "sword"
    POTION = "potion"
    GEM = "gem"
    SCROLL = "scroll"
    DRAGON = "dragon"


class Size(str, Enum):
    """Relative pin size."""

    SMALL = "small"
    MEDIUM = "medium"
    LARGE = "large"


class ElementKind(str, Enum):
    """The four element categories of a story world."""

    LOCATION = "location"
    CHARACTER = "character"
    ITEM = "item"
    EVENT = "event"

    @property
    def category(self) -> str:
        """Plural key used in payloads (``locations``, ``characters``...)."""
        return f"{self.value}s"

    @property
    def default_shape(self) -> Shape:
        return _DEFAULT_SHAPES[self]


_DEFAULT_SHAPES = {
    ElementKind.LOCATION: Shape.CAVE,
    ElementKind.CHARACTER: Shape.HUMANOID,
    ElementKind.ITEM: Shape.GEM,
    ElementKind.EVENT: Shape.SCROLL,
}

CATEGORIES: tuple[str, ...] = tuple(kind.category for kind in ElementKind)


class Element(BaseModel):
    """One visualizable entity: a location, character, item or event."""

    name: str = Field(..., min_length=1, max_length=NAME_MAX_LENGTH)
    description: str = Field(default="", max_length=DESCRIPTION_MAX_LENGTH)
    shape: Shape
    color: str
    size: Size = Size.MEDIUM

    @field_validator("color")
    @classmethod
    def _validate_color(cls, v: str) -> str:
        return validate_hex_color(v)


class StoryElements(BaseModel):
    """Validated delta produced from one model turn."""

    locations: list[Element] = Field(default_factory=list)
    characters: list[Element] = Field(default_factory=list)
    items: list[Element] = Field(default_factory=list)
    events: list[Element] = Field(default_factory=list)

    def by_kind(self, kind: ElementKind) -> list[Element]:
        return getattr(self, kind.category)

    def count(self) -> int:
        return sum(len(self.by_kind(kind)) for kind in ElementKind)

    def is_empty(self) -> bool:
        return self.count() == 0


class SummaryEntry(BaseModel):
    """Core fields of an element, as shown to the model."""

    name: str
    shape: Shape
    size: Size
    color: str


class WorldStateSummary(BaseModel):
    """Truncated view of the world used to keep prompts bounded."""

    locations: list[SummaryEntry] = Field(default_factory=list)
    characters: list[SummaryEntry] = Field(default_factory=list)
    items: list[SummaryEntry] = Field(default_factory=list)
    events: list[SummaryEntry] = Field(default_factory=list)

    def to_prompt_json(self) -> str:
        """Compact JSON rendering for embedding in a prompt."""
        return json.dumps(self.model_dump(mode="json"), separators=(",", ":"))


class WorldState(StoryElements):
    """Accumulated, client-owned world state."""

    @classmethod
    def from_elements(cls, elements: StoryElements) -> WorldState:
        return cls(**{category: list(getattr(elements, category)) for category in CATEGORIES})

    def extend(self, delta: StoryElements) -> WorldState:
        """Return a new state with ``delta`` appended to each category.

        Order is preserved and nothing is deduplicated by content.
        """
        return WorldState(
            **{
                category: [*getattr(self, category), *getattr(delta, category)]
                for category in CATEGORIES
            }
        )

    def summarize(self, limit: int = 5) -> WorldStateSummary:
        """Keep the last ``limit`` entries per category, core fields only."""
        if limit <= 0:
            return WorldStateSummary()
        return WorldStateSummary(
            **{
                category: [
                    SummaryEntry(
                        name=el.name, shape=el.shape, size=el.size, color=el.color
                    )
                    for el in getattr(self, category)[-limit:]
                ]
                for category in CATEGORIES
            }
        )


__all__ = [
    "CATEGORIES",
    "DESCRIPTION_MAX_LENGTH",
    "NAME_MAX_LENGTH",
    "Element",
    "ElementKind",
    "Shape",
    "Size",
    "StoryElements",
    "SummaryEntry",
    "WorldState",
    "WorldStateSummary",
]

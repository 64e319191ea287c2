# src/storypulse/core/sanitizer.py
"""Coerce untrusted model output into a bounded :class:`StoryElements`.

Every field is clamped or defaulted rather than rejected, so whatever the
model produced, the renderer only ever sees schema-conformant elements.
"""

from __future__ import annotations

import random
from collections.abc import Mapping
from enum import Enum
from typing import Any, NamedTuple

from storypulse.core.logging import get_logger
from storypulse.models.base_model import match_enum
from storypulse.models.elements import (
    DESCRIPTION_MAX_LENGTH,
    NAME_MAX_LENGTH,
    Element,
    ElementKind,
    Shape,
    Size,
    StoryElements,
)
from storypulse.models.validators import is_hex_color

logger = get_logger(__name__)

DEFAULT_DESCRIPTION = "No description provided."


class ParseStatus(str, Enum):
    """Whether the candidate was usable at all."""

    VALIDATED = "validated"
    EMPTY_FALLBACK = "empty_fallback"


class SanitizeResult(NamedTuple):
    elements: StoryElements
    status: ParseStatus


def default_name(kind: ElementKind) -> str:
    return f"Unnamed {kind.value}"


def random_hex_color(rng: random.Random | None = None) -> str:
    """Return a fresh ``#RRGGBB`` colour."""
    value = (rng or random).randint(0, 0xFFFFFF)
    return f"#{value:06x}"


def _clean_text(value: Any, limit: int) -> str | None:
    if not isinstance(value, str):
        return None
    text = value.strip()
    if not text:
        return None
    return text[:limit].rstrip()


def sanitize_element(
    raw: Mapping[str, Any],
    kind: ElementKind,
    rng: random.Random | None = None,
) -> Element:
    """Build a valid :class:`Element` from ``raw``, defaulting bad fields."""
    shape = match_enum(Shape, raw.get("shape")) or kind.default_shape
    size = match_enum(Size, raw.get("size")) or Size.MEDIUM
    color = raw.get("color")
    if not is_hex_color(color):
        color = random_hex_color(rng)

    return Element(
        name=_clean_text(raw.get("name"), NAME_MAX_LENGTH) or default_name(kind),
        description=_clean_text(raw.get("description"), DESCRIPTION_MAX_LENGTH)
        or DEFAULT_DESCRIPTION,
        shape=shape,
        color=color,
        size=size,
    )


def _coerce_entries(value: Any) -> list[Mapping[str, Any]]:
    """Normalize one category into a list of element mappings."""
    if not isinstance(value, list):
        return []
    entries: list[Mapping[str, Any]] = []
    for item in value:
        if isinstance(item, Mapping):
            entries.append(item)
        elif isinstance(item, str) and item.strip():
            # A bare string is taken as the element's name
            entries.append({"name": item})
    return entries


def sanitize_with_status(
    candidate: Any, rng: random.Random | None = None
) -> SanitizeResult:
    """Sanitize ``candidate`` and report whether it was an object at all."""
    if not isinstance(candidate, Mapping):
        if candidate is not None:
            logger.debug(
                "Model output is %s, not an object; using empty elements",
                type(candidate).__name__,
            )
        return SanitizeResult(StoryElements(), ParseStatus.EMPTY_FALLBACK)

    categories: dict[str, list[Element]] = {}
    for kind in ElementKind:
        raw_value = candidate.get(kind.category)
        if raw_value is not None and not isinstance(raw_value, list):
            logger.debug("Dropping non-list %r category", kind.category)
        categories[kind.category] = [
            sanitize_element(entry, kind, rng) for entry in _coerce_entries(raw_value)
        ]
    return SanitizeResult(StoryElements(**categories), ParseStatus.VALIDATED)


def sanitize(candidate: Any, rng: random.Random | None = None) -> StoryElements:
    """Return a structurally valid :class:`StoryElements`; never raises."""
    return sanitize_with_status(candidate, rng).elements


__all__ = [
    "DEFAULT_DESCRIPTION",
    "ParseStatus",
    "SanitizeResult",
    "default_name",
    "random_hex_color",
    "sanitize",
    "sanitize_element",
    "sanitize_with_status",
]

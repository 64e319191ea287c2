# src/storypulse/models/validators.py
"""Custom validators for Pydantic models."""

from __future__ import annotations

import re

HEX_COLOR_RE = re.compile(r"#[0-9A-Fa-f]{6}")


def is_hex_color(value: object) -> bool:
    """Return ``True`` when ``value`` is a ``#RRGGBB`` string."""
    return isinstance(value, str) and HEX_COLOR_RE.fullmatch(value) is not None


def validate_hex_color(value: str) -> str:
    """Validate that ``value`` is a ``#RRGGBB`` colour."""
    if not is_hex_color(value):
        raise ValueError("invalid hex color")
    return value


__all__ = ["HEX_COLOR_RE", "is_hex_color", "validate_hex_color"]

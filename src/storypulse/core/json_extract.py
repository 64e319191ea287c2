# src/storypulse/core/json_extract.py
"""Rescue a single JSON object from model output that may carry prose or fences."""

from __future__ import annotations

import json
from enum import Enum
from typing import Any, NamedTuple

import dirtyjson

from storypulse.core.logging import get_logger

logger = get_logger(__name__)


class ExtractionStatus(str, Enum):
    OK = "ok"
    EMPTY = "empty"
    NO_OBJECT = "no_object"
    UNBALANCED = "unbalanced"
    INVALID_JSON = "invalid_json"


class ExtractionResult(NamedTuple):
    """Outcome of a scan; ``value`` is set only when ``status`` is ``OK``."""

    value: dict[str, Any] | None
    status: ExtractionStatus

    @property
    def ok(self) -> bool:
        return self.status is ExtractionStatus.OK


def find_object_span(text: str) -> tuple[int, int] | None:
    """Return ``(start, end)`` of the first balanced top-level ``{...}`` span.

    Depth counting starts at the first ``{``. Braces inside JSON string
    literals are ignored. Returns ``None`` when there is no ``{`` or the
    braces never balance.
    """
    start = text.find("{")
    if start == -1:
        return None
    depth = 0
    in_string = False
    escaped = False
    for i in range(start, len(text)):
        ch = text[i]
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return start, i + 1
    return None


def _loads_lenient(snippet: str) -> Any:
    # dirtyjson hands back its own ordered containers; round-trip to plain types.
    return json.loads(json.dumps(dirtyjson.loads(snippet)))


def scan_json_object(text: str | None, *, lenient: bool = False) -> ExtractionResult:
    """Locate and parse the first balanced JSON object in ``text``.

    Text before the opening brace and after the matching closing brace is
    ignored. With ``lenient=True`` a slice that fails strict parsing is
    retried with ``dirtyjson`` (trailing commas, single quotes, bare keys).
    Never raises.
    """
    if not isinstance(text, str) or not text:
        return ExtractionResult(None, ExtractionStatus.EMPTY)
    if "{" not in text:
        return ExtractionResult(None, ExtractionStatus.NO_OBJECT)
    span = find_object_span(text)
    if span is None:
        return ExtractionResult(None, ExtractionStatus.UNBALANCED)

    snippet = text[span[0] : span[1]]
    try:
        value = json.loads(snippet)
    except RecursionError:
        logger.debug("Balanced span nests too deeply to decode (%d chars)", len(snippet))
        return ExtractionResult(None, ExtractionStatus.INVALID_JSON)
    except json.JSONDecodeError as exc:
        if not lenient:
            logger.debug("Balanced span is not valid JSON: %s", exc)
            return ExtractionResult(None, ExtractionStatus.INVALID_JSON)
        try:
            value = _loads_lenient(snippet)
        except (ValueError, TypeError, RecursionError) as dirty_exc:
            logger.debug("Dirty JSON recovery failed: %s", dirty_exc)
            return ExtractionResult(None, ExtractionStatus.INVALID_JSON)
        logger.debug("JSON recovered with dirtyjson")

    if not isinstance(value, dict):
        return ExtractionResult(None, ExtractionStatus.INVALID_JSON)
    return ExtractionResult(value, ExtractionStatus.OK)


def extract_first_json_object(text: str | None) -> dict[str, Any] | None:
    """Return the first balanced JSON object in ``text``, or ``None``."""
    return scan_json_object(text).value


__all__ = [
    "ExtractionResult",
    "ExtractionStatus",
    "extract_first_json_object",
    "find_object_span",
    "scan_json_object",
]

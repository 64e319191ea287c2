# src/storypulse/core/errors.py
"""Exceptions raised by the StoryPulse bridge."""

from __future__ import annotations

from typing import Any

DEFAULT_ERROR_STATUS = 500


class StoryPulseError(Exception):
    """Base class for StoryPulse errors."""


class UpstreamError(StoryPulseError):
    """The upstream model server could not be reached or answered non-2xx.

    Attributes:
        status_code: Upstream HTTP status, or 500 when none was received.
        payload: The upstream's own error body, when one was returned.
    """

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        payload: Any = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code or DEFAULT_ERROR_STATUS
        self.payload = payload

    def to_dict(self) -> dict[str, Any]:
        return {"error": self.message or "server_error", "upstream": self.payload}


__all__ = ["DEFAULT_ERROR_STATUS", "StoryPulseError", "UpstreamError"]

# src/storypulse/core/env.py
"""Environment configuration utilities."""

from __future__ import annotations

from dotenv import load_dotenv


def load_env() -> None:
    """Load variables from a local ``.env`` file without overriding the process environment."""
    load_dotenv(override=False)


__all__ = ["load_env"]

# src/storypulse/web/__init__.py
"""HTTP surface of the StoryPulse bridge."""

from .main import create_app

__all__ = ["create_app"]

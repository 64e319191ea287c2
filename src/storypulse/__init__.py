# src/storypulse/__init__.py
"""StoryPulse: turn a local language model into structured story-world updates."""

__version__ = "0.3.0"

__all__ = ["__version__"]

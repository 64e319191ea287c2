# src/storypulse/core/__init__.py
"""Core normalization and upstream utilities for StoryPulse."""

from .adapter import ModelBehaviorTable, ModelProfile, adapt
from .dispatcher import UpstreamDispatcher, UpstreamStream
from .env import load_env
from .errors import StoryPulseError, UpstreamError
from .json_extract import extract_first_json_object, scan_json_object
from .sanitizer import ParseStatus, sanitize, sanitize_with_status
from .stream import StreamDecoder, StreamReframer, reframe_stream

__all__ = [
    "ModelBehaviorTable",
    "ModelProfile",
    "ParseStatus",
    "StoryPulseError",
    "StreamDecoder",
    "StreamReframer",
    "UpstreamDispatcher",
    "UpstreamError",
    "UpstreamStream",
    "adapt",
    "extract_first_json_object",
    "load_env",
    "reframe_stream",
    "sanitize",
    "sanitize_with_status",
    "scan_json_object",
]

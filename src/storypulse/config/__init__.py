# src/storypulse/config/__init__.py
"""Configuration package for StoryPulse."""

from .config import (
    ClientConfig,
    ModelsConfig,
    ServerConfig,
    StoryPulseConfig,
    SystemConfig,
    UpstreamConfig,
    config,
)

__all__ = [
    "ClientConfig",
    "ModelsConfig",
    "ServerConfig",
    "StoryPulseConfig",
    "SystemConfig",
    "UpstreamConfig",
    "config",
]

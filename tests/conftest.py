from __future__ import annotations

import random

import pytest

from storypulse.config import StoryPulseConfig

OPENAI_URL = "http://upstream.test/v1/chat/completions"
NATIVE_URL = "http://upstream.test/api/chat"


def make_settings(**env: str) -> StoryPulseConfig:
    """Settings built from ``env`` only, ignoring the process environment."""
    base = {"OLLAMA_URL": OPENAI_URL, "OLLAMA_MODEL": "llama3"}
    base.update(env)
    return StoryPulseConfig.load(base)


@pytest.fixture
def rng() -> random.Random:
    return random.Random(1234)

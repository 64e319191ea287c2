# src/storypulse/core/adapter.py
"""Reshape outgoing chat requests to suit the target model's quirks.

Some model families ignore "JSON only" instructions unless the prompt is
seeded with an example and an opening brace. Those families are
classified by a :class:`ModelBehaviorTable`; adding a family means adding a
rule, not touching the adaptation logic.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any, NamedTuple

from storypulse.config import ModelsConfig
from storypulse.core.logging import get_logger
from storypulse.core.prompts import (
    BRACE_SEED,
    EMPTY_SEED,
    EXAMPLE_INTRO,
    EXAMPLE_JSON,
    STUBBORN_SYSTEM_PROMPT,
)
from storypulse.models.chat import ChatMessage

logger = get_logger(__name__)

STUBBORN_TEMPERATURE_CEILING = 0.4


@dataclass(frozen=True)
class ModelProfile:
    """How a model family should be prompted and sampled."""

    name: str = "default"
    stubborn: bool = False
    temperature_ceiling: float | None = None

    def clamp_temperature(self, temperature: float | None) -> float | None:
        if temperature is None or self.temperature_ceiling is None:
            return temperature
        return min(temperature, self.temperature_ceiling)


DEFAULT_PROFILE = ModelProfile()
STUBBORN_PROFILE = ModelProfile(
    name="stubborn", stubborn=True, temperature_ceiling=STUBBORN_TEMPERATURE_CEILING
)


@dataclass(frozen=True)
class ModelRule:
    """Case-insensitive substring rule mapping model names to a profile."""

    pattern: str
    profile: ModelProfile

    def matches(self, model: str) -> bool:
        return self.pattern.lower() in (model or "").lower()


class ModelBehaviorTable:
    """Ordered, read-only rules; the first matching rule wins."""

    def __init__(
        self,
        rules: Iterable[ModelRule] = (),
        default: ModelProfile = DEFAULT_PROFILE,
    ) -> None:
        self._rules: tuple[ModelRule, ...] = tuple(rules)
        self._default = default

    @property
    def rules(self) -> tuple[ModelRule, ...]:
        return self._rules

    def classify(self, model: str) -> ModelProfile:
        for rule in self._rules:
            if rule.matches(model):
                return rule.profile
        return self._default

    def with_rule(self, pattern: str, profile: ModelProfile) -> ModelBehaviorTable:
        """Return a copy with ``pattern`` checked before the existing rules."""
        return ModelBehaviorTable((ModelRule(pattern, profile), *self._rules), self._default)

    @classmethod
    def from_patterns(
        cls,
        patterns: Iterable[str],
        ceiling: float = STUBBORN_TEMPERATURE_CEILING,
    ) -> ModelBehaviorTable:
        profile = ModelProfile(name="stubborn", stubborn=True, temperature_ceiling=ceiling)
        return cls(ModelRule(p, profile) for p in patterns if p)

    @classmethod
    def from_config(cls, models: ModelsConfig) -> ModelBehaviorTable:
        return cls.from_patterns(models.patterns, models.stubborn_temperature_ceiling)


# gpt-oss is the only family observed to need the seeded prompt so far
DEFAULT_BEHAVIOR_TABLE = ModelBehaviorTable([ModelRule("gpt-oss", STUBBORN_PROFILE)])


class AdaptedMessages(NamedTuple):
    """Result of :func:`adapt`.

    ``force_plain`` tells the dispatcher to skip the upstream's native JSON
    mode because the prompt already coerces JSON.
    """

    messages: list[ChatMessage]
    force_plain: bool
    profile: ModelProfile


def _as_messages(messages: Sequence[ChatMessage | Mapping[str, Any]]) -> list[ChatMessage]:
    return [
        m if isinstance(m, ChatMessage) else ChatMessage.model_validate(m)
        for m in messages or ()
    ]


def _last_user_content(messages: Sequence[ChatMessage]) -> Any:
    for message in reversed(messages):
        if message.role == "user" and message.content:
            return message.content
    if messages and messages[-1].content:
        return messages[-1].content
    return EMPTY_SEED


def wrap_stubborn_messages(messages: Sequence[ChatMessage]) -> list[ChatMessage]:
    """Strict system prompt, one-shot example, brace seed, then the user seed."""
    return [
        ChatMessage(role="system", content=STUBBORN_SYSTEM_PROMPT),
        ChatMessage(role="user", content=EXAMPLE_INTRO),
        ChatMessage(role="assistant", content=EXAMPLE_JSON),
        ChatMessage(role="assistant", content=BRACE_SEED),
        ChatMessage(role="user", content=_last_user_content(messages)),
    ]


def adapt(
    model: str,
    messages: Sequence[ChatMessage | Mapping[str, Any]],
    wants_json: bool,
    table: ModelBehaviorTable | None = None,
) -> AdaptedMessages:
    """Decide the final message sequence and whether to suppress native JSON mode."""
    profile = (table or DEFAULT_BEHAVIOR_TABLE).classify(model)
    chat = _as_messages(messages)
    if not (wants_json and profile.stubborn):
        return AdaptedMessages(chat, False, profile)

    logger.debug("Wrapping %d message(s) for stubborn model %s", len(chat), model)
    return AdaptedMessages(wrap_stubborn_messages(chat), True, profile)


__all__ = [
    "DEFAULT_BEHAVIOR_TABLE",
    "DEFAULT_PROFILE",
    "STUBBORN_PROFILE",
    "AdaptedMessages",
    "ModelBehaviorTable",
    "ModelProfile",
    "ModelRule",
    "adapt",
    "wrap_stubborn_messages",
]

from __future__ import annotations

from storypulse.config import ModelsConfig
from storypulse.core.adapter import (
    DEFAULT_BEHAVIOR_TABLE,
    ModelBehaviorTable,
    ModelProfile,
    adapt,
)
from storypulse.core.prompts import BRACE_SEED, EMPTY_SEED, EXAMPLE_JSON, STUBBORN_SYSTEM_PROMPT
from storypulse.models.chat import ChatMessage

MESSAGES = [
    ChatMessage(role="system", content="Build worlds."),
    ChatMessage(role="user", content="A lighthouse at the edge of the world"),
]


def test_stubborn_model_with_json_is_wrapped() -> None:
    adapted = adapt("gpt-oss:20b", MESSAGES, wants_json=True)

    assert adapted.force_plain is True
    assert adapted.profile.stubborn
    roles = [m.role for m in adapted.messages]
    assert roles == ["system", "user", "assistant", "assistant", "user"]
    assert adapted.messages[0].content == STUBBORN_SYSTEM_PROMPT
    assert adapted.messages[2].content == EXAMPLE_JSON
    assert adapted.messages[3].content == BRACE_SEED
    assert adapted.messages[-1].content == "A lighthouse at the edge of the world"


def test_classification_is_case_insensitive_substring() -> None:
    assert DEFAULT_BEHAVIOR_TABLE.classify("library/GPT-OSS:120b").stubborn
    assert not DEFAULT_BEHAVIOR_TABLE.classify("llama3.1:8b").stubborn


def test_non_stubborn_model_is_untouched() -> None:
    adapted = adapt("llama3.1:8b", MESSAGES, wants_json=True)
    assert adapted.force_plain is False
    assert adapted.messages == MESSAGES


def test_stubborn_model_without_json_is_untouched() -> None:
    adapted = adapt("gpt-oss:20b", MESSAGES, wants_json=False)
    assert adapted.force_plain is False
    assert adapted.messages == MESSAGES


def test_seed_falls_back_when_no_user_content() -> None:
    adapted = adapt("gpt-oss", [{"role": "system", "content": ""}], wants_json=True)
    assert adapted.messages[-1].content == EMPTY_SEED

    adapted = adapt("gpt-oss", [{"role": "assistant", "content": "prior"}], wants_json=True)
    assert adapted.messages[-1].content == "prior"


def test_stubborn_profile_clamps_temperature() -> None:
    profile = DEFAULT_BEHAVIOR_TABLE.classify("gpt-oss")
    assert profile.clamp_temperature(0.9) == 0.4
    assert profile.clamp_temperature(0.2) == 0.2
    assert profile.clamp_temperature(None) is None
    assert ModelProfile().clamp_temperature(0.9) == 0.9


def test_custom_table_adds_families_without_code_changes() -> None:
    table = ModelBehaviorTable.from_config(
        ModelsConfig(stubborn_patterns="qwen, deepseek-r1", stubborn_temperature_ceiling=0.3)
    )
    assert table.classify("Qwen2.5:7b").stubborn
    assert table.classify("deepseek-r1:14b").temperature_ceiling == 0.3
    assert not table.classify("gpt-oss:20b").stubborn

    adapted = adapt("qwen2.5", MESSAGES, wants_json=True, table=table)
    assert adapted.force_plain is True


def test_with_rule_takes_precedence() -> None:
    relaxed = ModelProfile(name="relaxed")
    table = DEFAULT_BEHAVIOR_TABLE.with_rule("gpt-oss:120b", relaxed)
    assert table.classify("gpt-oss:120b") is relaxed
    assert table.classify("gpt-oss:20b").stubborn
    # original table is unchanged
    assert DEFAULT_BEHAVIOR_TABLE.classify("gpt-oss:120b").stubborn

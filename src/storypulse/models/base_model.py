# src/storypulse/models/base_model.py
"""Shared Pydantic base model with tolerant enum handling."""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, model_validator


class StoryPulseBaseModel(BaseModel):
    """Base model that matches enum fields case-insensitively."""

    # Relax extra handling to ignore unexpected keys from LLMs instead of failing validation.
    model_config = ConfigDict(
        from_attributes=True,
        extra="ignore",
        validate_assignment=True,
    )

    @model_validator(mode="before")
    @classmethod
    def _coerce_enums(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        for field_name, field_info in cls.model_fields.items():
            field_type = field_info.annotation
            if not (isinstance(field_type, type) and issubclass(field_type, Enum)):
                continue
            value = data.get(field_name)
            if isinstance(value, str):
                member = match_enum(field_type, value)
                if member is not None:
                    data = {**data, field_name: member}
        return data


def match_enum(enum_cls: type[Enum], value: Any) -> Any:
    """Return the member of ``enum_cls`` named or valued ``value`` (any case)."""
    if not isinstance(value, str):
        return None
    needle = value.strip().lower()
    for member in enum_cls:
        if needle in {member.name.lower(), str(member.value).lower()}:
            return member
    return None


__all__ = ["StoryPulseBaseModel", "match_enum"]

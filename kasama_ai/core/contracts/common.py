"""Shared field types: clamped numerics, normalized enums and the base output model."""
from __future__ import annotations

import math
from typing import Annotated, Any, Literal

from pydantic import BaseModel, BeforeValidator, ConfigDict
from pydantic.alias_generators import to_camel


def clamp(lo: float, hi: float, integral: bool = False):
    """Before-validator that pulls numbers (or numeric strings) into [lo, hi]."""

    def _clamp(value: Any) -> Any:
        if isinstance(value, str):
            try:
                value = float(value.strip().rstrip("%"))
            except ValueError:
                return value
        if isinstance(value, bool):
            raise ValueError("a boolean is not a number")
        if not isinstance(value, (int, float)):
            return value
        if math.isnan(value):
            raise ValueError("NaN is not a valid number")
        value = max(lo, min(hi, value))
        if integral:
            return int(round(value))
        return value

    return _clamp


def _normalize_choice(value: Any) -> Any:
    if isinstance(value, str):
        return value.strip().lower().replace(" ", "_").replace("-", "_")
    return value


Score = Annotated[float, BeforeValidator(clamp(0, 100))]  # 0-100
Probability = Annotated[float, BeforeValidator(clamp(0.0, 1.0))]  # 0-1
Rating = Annotated[float, BeforeValidator(clamp(1.0, 5.0))]  # 1-5
Percent = Annotated[float, BeforeValidator(clamp(-100.0, 100.0))]  # signed change
Minutes = Annotated[int, BeforeValidator(clamp(0, 24 * 60, integral=True))]
Count = Annotated[int, BeforeValidator(clamp(0, 100000, integral=True))]
Weeks = Annotated[int, BeforeValidator(clamp(1, 52, integral=True))]

Priority = Annotated[Literal["low", "medium", "high"], BeforeValidator(_normalize_choice)]
Difficulty = Annotated[Literal["beginner", "intermediate", "advanced"], BeforeValidator(_normalize_choice)]
Choice = BeforeValidator(_normalize_choice)


class OutputModel(BaseModel):
    """Base for agent outputs. Accepts snake_case or camelCase keys, ignores unknown keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class InputModel(BaseModel):
    """Base for agent inputs. Accepts snake_case or camelCase keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

"""
Shared wire helpers: the camelCase base model and enum normalization.
"""
from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class WireModel(BaseModel):
    """Base for backend payloads: snake_case attributes, camelCase JSON."""

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, extra="ignore"
    )

    def to_wire(self) -> dict:
        return self.model_dump(by_alias=True, mode="json", exclude_none=True)


def lower_enum_value(value: Any) -> Any:
    # the backend stores enums upper-case (USER, AI, ACTIVE)
    if isinstance(value, str):
        return value.strip().lower()
    return value

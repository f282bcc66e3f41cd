# Copyright (c) Syntropy Systems
"""Shared Pydantic model helpers for settlebench."""

from __future__ import annotations

from typing import ClassVar

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class BenchBaseModel(BaseModel):
    """Base model with shared config for settlebench schemas.

    Fields are snake_case in Python and camelCase on the wire, matching
    the shape the in-page instrumentation produces.
    """

    model_config: ClassVar[ConfigDict] = ConfigDict(
        extra="ignore",
        populate_by_name=True,
        alias_generator=to_camel,
    )

    def to_json(self) -> str:
        """Serialize with camelCase keys."""
        return self.model_dump_json(by_alias=True, indent=2)

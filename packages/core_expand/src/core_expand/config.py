from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from core_config import Settings, get_settings
from core_config.constants import (
    EXPAND_EXCLUDED_PREFIX,
    EXPAND_KEY,
    EXPAND_MAX_DEPTH,
    EXPAND_PLACEHOLDER_KEY,
)


class ExpandConfig(BaseModel):
    """
    Immutable knobs the engine consults while walking a document.

    ``expand_key`` marks a reference block, ``placeholder_key`` receives a
    resolved list that has to live next to ordinary fields, ``max_depth``
    bounds how many reference hops are followed, and the ``excluded_*``
    fields drive :meth:`is_excluded`, which only applies to names inside a
    named-reference block.
    """

    model_config = ConfigDict(frozen=True)

    expand_key: str = Field(default=EXPAND_KEY, min_length=1)
    placeholder_key: str = Field(default=EXPAND_PLACEHOLDER_KEY, min_length=1)
    max_depth: int = Field(default=EXPAND_MAX_DEPTH, ge=0)
    excluded_keys: frozenset[str] = frozenset()
    excluded_prefix: str = EXPAND_EXCLUDED_PREFIX

    @model_validator(mode="after")
    def _distinct_names(self) -> "ExpandConfig":
        if self.expand_key == self.placeholder_key:
            raise ValueError("expand_key and placeholder_key must differ")
        return self

    def is_excluded(self, name: str) -> bool:
        if name in self.excluded_keys:
            return True
        return bool(self.excluded_prefix) and name.startswith(self.excluded_prefix)

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> "ExpandConfig":
        s = settings or get_settings()
        return cls(
            expand_key=s.expand_key,
            placeholder_key=s.expand_placeholder_key,
            max_depth=s.expand_max_depth,
            excluded_keys=s.expand_excluded_keys,
            excluded_prefix=s.expand_excluded_prefix,
        )


__all__ = ["ExpandConfig"]

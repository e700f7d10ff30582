"""JSON tree aliases shared by the engine and the providers."""

from __future__ import annotations

from typing import TypeAlias, Union

_JsonScalar: TypeAlias = Union[str, int, float, bool, None]
JsonValue: TypeAlias = Union[_JsonScalar, list["JsonValue"], dict[str, "JsonValue"]]
JsonObject: TypeAlias = dict[str, JsonValue]
JsonArray: TypeAlias = list[JsonValue]

__all__ = ["JsonValue", "JsonObject", "JsonArray"]

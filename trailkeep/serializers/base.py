"""Serializer protocol shared by the built-in strategies."""

from __future__ import annotations

from collections.abc import Mapping
from enum import Enum
from typing import Any, Protocol, runtime_checkable

from sqlalchemy.sql.elements import ColumnElement


@runtime_checkable
class Serializer(Protocol):
    """Encode/decode mappings for text columns and build LIKE predicates on them.

    Structured (json/jsonb) columns never go through a serializer; they hold the
    document itself and are queried with native operators.
    """

    name: str

    def encode(self, data: Any) -> str:
        """Serialize plain data to text."""

    def decode(self, payload: str | bytes | None) -> Any:
        """Parse text produced by ``encode`` back into plain data."""

    def where_object_condition(
        self, column: ColumnElement, field: str, value: Any
    ) -> ColumnElement[bool]:
        """Predicate: encoded snapshot in ``column`` holds ``field: value``."""

    def where_attribute_changes_condition(
        self, column: ColumnElement, attribute: str
    ) -> ColumnElement[bool]:
        """Predicate: encoded changes in ``column`` hold a pair for ``attribute``."""


def attribute_key(key: Any) -> str:
    """Stored name of an attribute key; enum members contribute their value."""
    if isinstance(key, Enum):
        key = key.value
    return str(key)


def to_plain(value: Any) -> Any:
    """Recursively turn Mapping subclasses into dicts, tuples into lists and
    enum members into their values."""
    if isinstance(value, Mapping):
        return {attribute_key(k): to_plain(v) for k, v in value.items()}
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (list, tuple)):
        return [to_plain(v) for v in value]
    return value

"""YAML serializer - the human-readable default."""

from __future__ import annotations

from typing import Any

import yaml
from sqlalchemy.sql.elements import ColumnElement

from trailkeep.core.errors import DecodeFailure
from trailkeep.serializers.base import to_plain

_DOCUMENT_START = "---"


class YAMLSerializer:
    """Round-trip plain mappings through a ``---`` prefixed YAML block.

    Every key sits at the start of its own line, which is what the LIKE
    predicates below rely on.
    """

    name = "yaml"

    def encode(self, data: Any) -> str:
        return yaml.safe_dump(
            to_plain(data),
            explicit_start=True,
            default_flow_style=False,
            sort_keys=False,
            allow_unicode=True,
            width=float("inf"),
        )

    def decode(self, payload: str | bytes | None) -> Any:
        if payload is None or payload == "" or payload == b"":
            return None
        try:
            data = yaml.safe_load(payload)
        except yaml.YAMLError as e:
            raise DecodeFailure(self.name, str(e)) from e
        return to_plain(data)

    def _line(self, field: str, value: Any) -> str:
        """Encoded form of one top-level entry, newline on both sides."""
        return self.encode({field: value})[len(_DOCUMENT_START):]

    def where_object_condition(
        self, column: ColumnElement, field: str, value: Any
    ) -> ColumnElement[bool]:
        return column.contains(self._line(field, value), autoescape=True)

    def where_attribute_changes_condition(
        self, column: ColumnElement, attribute: str
    ) -> ColumnElement[bool]:
        return column.contains(f"\n{attribute}:\n", autoescape=True)

"""JSON serializer - the machine format, also readable by json/jsonb columns."""

from __future__ import annotations

import json
import uuid
from datetime import date, datetime, time
from decimal import Decimal
from typing import Any

from sqlalchemy import or_
from sqlalchemy.sql.elements import ColumnElement

from trailkeep.core.errors import DecodeFailure
from trailkeep.serializers.base import to_plain

_SEPARATORS = (",", ":")


def _default(value: Any) -> Any:
    if isinstance(value, (datetime, date, time)):
        return value.isoformat()
    if isinstance(value, (Decimal, uuid.UUID)):
        return str(value)
    if isinstance(value, (set, frozenset)):
        return sorted(value)
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def dumps(data: Any) -> str:
    """Compact JSON used for both stored text and LIKE fragments."""
    return json.dumps(
        to_plain(data), separators=_SEPARATORS, ensure_ascii=False, default=_default
    )


class JSONSerializer:
    name = "json"

    def encode(self, data: Any) -> str:
        return dumps(data)

    def decode(self, payload: str | bytes | None) -> Any:
        if payload is None or payload == "" or payload == b"":
            return None
        try:
            data = json.loads(payload)
        except ValueError as e:
            raise DecodeFailure(self.name, str(e)) from e
        return to_plain(data)

    def where_object_condition(
        self, column: ColumnElement, field: str, value: Any
    ) -> ColumnElement[bool]:
        fragment = f"{dumps(field)}:{dumps(value)}"
        # 12 must not match 123: require the next delimiter
        if isinstance(value, (int, float, Decimal)) and not isinstance(value, bool):
            return or_(
                column.contains(fragment + ",", autoescape=True),
                column.contains(fragment + "}", autoescape=True),
            )
        return column.contains(fragment, autoescape=True)

    def where_attribute_changes_condition(
        self, column: ColumnElement, attribute: str
    ) -> ColumnElement[bool]:
        return column.contains(f"{dumps(attribute)}:[", autoescape=True)

"""Query builders over history records.

Each builder turns one logical predicate into a SQL ``WHERE`` clause that is
correct for the live encoding of the column it reads:

- json / jsonb columns are queried as documents with native operators
  (json is cast to jsonb first so both share one set of operators);
- text columns only support ``where_object``, through the serializer's
  LIKE predicates; the diff queries raise ``UnsupportedColumnType``.

Arguments are validated in ``__init__`` so bad input never reaches storage.
A configured changes adapter that implements the operation replaces all of
``execute``.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from enum import Enum
from typing import Any

from sqlalchemy import and_, cast, literal, select, type_coerce
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql import Select
from sqlalchemy.sql.elements import ColumnElement

from trailkeep.core.config import TrailConfig, get_config
from trailkeep.core.errors import InvalidArgument, UnsupportedColumnType
from trailkeep.serializers import attribute_key, to_plain
from trailkeep.services import adapter as ops
from trailkeep.services.adapter import call_adapter
from trailkeep.services.encoding import ColumnEncoding

logger = logging.getLogger(__name__)

# Positions inside a changes pair
OLD, NEW = 0, 1


def _document(column: ColumnElement, encoding: ColumnEncoding) -> ColumnElement:
    """View a structured column as jsonb."""
    if encoding is ColumnEncoding.JSONB:
        return type_coerce(column, JSONB)
    return cast(column, JSONB)


def _jsonb_value(value: Any) -> ColumnElement:
    # A typed bind, so None compares as JSON null instead of becoming IS NULL
    return literal(value, JSONB)


class HistoryQuery:
    """Shared dispatch: adapter, then column encoding, then predicate."""

    operation: str
    column: str

    def __init__(
        self,
        record_class: type,
        argument: Any,
        *,
        scope: Select | None = None,
        config: TrailConfig | None = None,
    ):
        self.argument = self.validate(argument)
        self.record_class = record_class
        self.scope = scope
        self.config = config or get_config()

    def validate(self, argument: Any) -> Any:
        if not isinstance(argument, Mapping):
            raise InvalidArgument(
                f"{self.operation} expects a mapping of attribute names to values, "
                f"got {type(argument).__name__}"
            )
        if not argument:
            raise InvalidArgument(f"{self.operation} expects at least one attribute")
        return {attribute_key(k): to_plain(v) for k, v in argument.items()}

    async def execute(self, session: AsyncSession) -> Select | Any:
        override = self.config.adapter_method(self.operation)
        if override is not None:
            return await call_adapter(
                self.operation, override, self.record_class, self.argument
            )

        table = self.record_class.__table__
        column = table.c[self.column]
        encoding = await self.config.encodings.resolve(
            session, table.name, self.column, schema=table.schema
        )
        if encoding.is_structured:
            predicate = self.document_predicate(_document(column, encoding))
        else:
            predicate = self.text_predicate(column)
        return self.base_query().where(predicate)

    def base_query(self) -> Select:
        if self.scope is not None:
            return self.scope
        rc = self.record_class
        return select(rc).order_by(rc.created_at, rc.id)

    def document_predicate(self, document: ColumnElement) -> ColumnElement[bool]:
        raise NotImplementedError

    def text_predicate(self, column: ColumnElement) -> ColumnElement[bool]:
        raise UnsupportedColumnType(self.operation, ColumnEncoding.TEXT.value)


class WhereObject(HistoryQuery):
    """Records whose snapshot holds every given attribute value."""

    operation = ops.WHERE_OBJECT
    column = "snapshot"

    def document_predicate(self, document):
        return document.contains(self.argument)

    def text_predicate(self, column):
        serializer = self.config.serializer
        condition = getattr(serializer, "where_object_condition", None)
        if not callable(condition):
            logger.warning(
                "Serializer %s cannot query text columns", type(serializer).__name__,
                extra={"operation": self.operation},
            )
            return super().text_predicate(column)
        return and_(*(condition(column, field, value) for field, value in self.argument.items()))


class WhereObjectChanges(HistoryQuery):
    """Records where each attribute changed from or to the given value."""

    operation = ops.WHERE_OBJECT_CHANGES
    column = "changes"

    def document_predicate(self, document):
        # jsonb containment on an array ignores position: old or new
        return document.contains({field: [value] for field, value in self.argument.items()})


class WhereObjectChangesFrom(HistoryQuery):
    """Records where each attribute's old value equals the given value."""

    operation = ops.WHERE_OBJECT_CHANGES_FROM
    column = "changes"
    position = OLD

    def document_predicate(self, document):
        return and_(*(
            document[field][self.position] == _jsonb_value(value)
            for field, value in self.argument.items()
        ))


class WhereObjectChangesTo(WhereObjectChangesFrom):
    """Records where each attribute's new value equals the given value."""

    operation = ops.WHERE_OBJECT_CHANGES_TO
    position = NEW


class WhereAttributeChanges(HistoryQuery):
    """Records whose changes mention the attribute at all."""

    operation = ops.WHERE_ATTRIBUTE_CHANGES
    column = "changes"

    def validate(self, argument):
        if isinstance(argument, Enum):
            argument = argument.value
        if not isinstance(argument, str) or not argument:
            raise InvalidArgument(
                f"{self.operation} expects an attribute name, got {type(argument).__name__}"
            )
        return argument

    def document_predicate(self, document):
        return document.has_key(self.argument)

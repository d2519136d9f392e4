"""Column encoding resolution - is a history column text, json or jsonb?"""

from __future__ import annotations

import logging
from enum import Enum

from sqlalchemy import inspect
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncSession
from sqlalchemy.types import JSON, TypeEngine

from trailkeep.core.errors import ColumnNotFoundError

logger = logging.getLogger(__name__)


class ColumnEncoding(str, Enum):
    TEXT = "text"
    JSON = "json"
    JSONB = "jsonb"

    @property
    def is_structured(self) -> bool:
        return self is not ColumnEncoding.TEXT


def classify(column_type: TypeEngine) -> ColumnEncoding:
    """Map a reflected column type onto an encoding. Anything not JSON is text."""
    if isinstance(column_type, JSONB):
        return ColumnEncoding.JSONB
    if isinstance(column_type, JSON):
        return ColumnEncoding.JSON
    return ColumnEncoding.TEXT


class ColumnEncodingResolver:
    """Reads live column types and caches them until ``reset()``.

    The declared ORM type is not trusted: deployments alter snapshot/changes
    columns to json or jsonb without touching the model.
    """

    def __init__(self) -> None:
        self._cache: dict[tuple[str | None, str, str], ColumnEncoding] = {}

    async def resolve(
        self,
        session: AsyncSession | AsyncConnection,
        table: str,
        column: str,
        schema: str | None = None,
    ) -> ColumnEncoding:
        cached = self.cached(table, column, schema)
        if cached is not None:
            return cached

        conn = await session.connection() if isinstance(session, AsyncSession) else session
        columns = await conn.run_sync(
            lambda sync_conn: inspect(sync_conn).get_columns(table, schema=schema)
        )
        for info in columns:
            if info["name"] == column:
                encoding = classify(info["type"])
                break
        else:
            raise ColumnNotFoundError(
                f"column {column!r} not found on table {table!r}"
            )

        logger.debug(
            "Resolved %s.%s as %s", table, column, encoding.value,
            extra={"encoding": encoding.value},
        )
        self._cache[(schema, table, column)] = encoding
        return encoding

    def cached(
        self, table: str, column: str, schema: str | None = None
    ) -> ColumnEncoding | None:
        """Encoding from an earlier ``resolve``, without touching the database."""
        return self._cache.get((schema, table, column))

    def reset(self) -> None:
        """Forget every cached encoding; call after the schema changes."""
        self._cache.clear()

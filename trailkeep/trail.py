"""TrailKeep - high level entry point bundling database, config and queries."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from typing import Any

from sqlalchemy.sql import Select

from trailkeep.core.config import Settings, TrailConfig, get_settings
from trailkeep.db import Database
from trailkeep.models.history import HistoryEvent, HistoryRecord
from trailkeep.serializers import Serializer, get_serializer
from trailkeep.services.queries import (
    HistoryQuery,
    WhereAttributeChanges,
    WhereObject,
    WhereObjectChanges,
    WhereObjectChangesFrom,
    WhereObjectChangesTo,
)
from trailkeep.services.recorder import HistoryRecorder

logger = logging.getLogger(__name__)


class TrailKeep:
    """Audit trail over one history table.

    Usage::

        async with TrailKeep(database_url=url) as trail:
            await trail.record("Widget", 1, "update",
                               snapshot={"name": "A"},
                               changes={"name": ["A", "B"]})
            rows = await trail.where_object_changes_to({"name": "B"})
    """

    def __init__(
        self,
        database_url: str | None = None,
        *,
        serializer: Serializer | str | None = None,
        changes_adapter: Any = None,
        record_class: type = HistoryRecord,
        settings: Settings | None = None,
    ):
        settings = settings or get_settings()
        if serializer is None or isinstance(serializer, str):
            serializer = get_serializer(serializer or settings.serializer)
        self.config = TrailConfig(serializer=serializer, changes_adapter=changes_adapter)
        self.record_class = record_class
        self._db = Database(
            database_url or settings.database_url,
            pool_size=settings.pool_size,
            echo=settings.echo,
        )

    async def init(self) -> None:
        await self._db.init()

    async def close(self) -> None:
        await self._db.close()

    async def __aenter__(self) -> TrailKeep:
        await self.init()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    def reset_column_information(self) -> None:
        """Forget cached column encodings after a schema change."""
        self.config.encodings.reset()

    # ------------------------------------------------------------------
    # Writing
    # ------------------------------------------------------------------

    async def record(
        self,
        subject_type: str,
        subject_id: Any,
        event: HistoryEvent | str,
        *,
        snapshot: Mapping[str, Any] | None = None,
        changes: Mapping[str, Any] | None = None,
        actor: str | None = None,
    ):
        async with self._db.session() as session:
            recorder = HistoryRecorder(session, self.config, self.record_class)
            return await recorder.record(
                subject_type, subject_id, event,
                snapshot=snapshot, changes=changes, actor=actor,
            )

    async def assign_actor(self, record_id: int, actor: str | None):
        async with self._db.session() as session:
            record = await session.get(self.record_class, record_id)
            if record is None:
                return None
            await self._resolve_payload_columns(session)
            recorder = HistoryRecorder(session, self.config, self.record_class)
            return await recorder.assign_actor(record, actor)

    # ------------------------------------------------------------------
    # Reading
    # ------------------------------------------------------------------

    async def history(self, subject_type: str, subject_id: Any) -> list:
        """All records of one subject in creation order."""
        async with self._db.session() as session:
            await self._resolve_payload_columns(session)
            stmt = self.record_class.for_subject(subject_type, subject_id)
            return list((await session.execute(stmt)).scalars().all())

    async def where_object(self, attributes: Mapping[str, Any], *, subject: tuple | None = None):
        return await self._query(WhereObject, attributes, subject)

    async def where_object_changes(self, attributes: Mapping[str, Any], *, subject: tuple | None = None):
        return await self._query(WhereObjectChanges, attributes, subject)

    async def where_object_changes_from(self, attributes: Mapping[str, Any], *, subject: tuple | None = None):
        return await self._query(WhereObjectChangesFrom, attributes, subject)

    async def where_object_changes_to(self, attributes: Mapping[str, Any], *, subject: tuple | None = None):
        return await self._query(WhereObjectChangesTo, attributes, subject)

    async def where_attribute_changes(self, attribute: str, *, subject: tuple | None = None):
        return await self._query(WhereAttributeChanges, attribute, subject)

    async def _query(self, query_class: type[HistoryQuery], argument: Any, subject: tuple | None):
        """Run a builder; adapter results that are not statements pass through."""
        scope = self.record_class.for_subject(*subject) if subject else None
        query = query_class(self.record_class, argument, scope=scope, config=self.config)
        async with self._db.session() as session:
            result = await query.execute(session)
            if isinstance(result, Select):
                await self._resolve_payload_columns(session)
                return list((await session.execute(result)).scalars().all())
            return result

    async def _resolve_payload_columns(self, session) -> None:
        """Cache both payload encodings so detached records decode correctly."""
        table = self.record_class.__table__
        for column in ("snapshot", "changes"):
            await self.config.encodings.resolve(session, table.name, column, schema=table.schema)

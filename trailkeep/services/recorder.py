"""History recorder - encodes a snapshot and diff and inserts one history row."""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from typing import Any

from sqlalchemy import insert, literal
from sqlalchemy.dialects.postgresql import JSON, JSONB
from sqlalchemy.ext.asyncio import AsyncSession

from trailkeep.core.config import TrailConfig, get_config
from trailkeep.core.errors import InvalidArgument
from trailkeep.core.logging import bound_actor
from trailkeep.models.history import HistoryEvent, HistoryRecord
from trailkeep.serializers import attribute_key, to_plain
from trailkeep.services import adapter as ops
from trailkeep.services.adapter import call_adapter
from trailkeep.services.encoding import ColumnEncoding

logger = logging.getLogger(__name__)


def normalize_changes(changes: Mapping[str, Any]) -> dict[str, list]:
    """Built-in diff: validate ``[old, new]`` pairs and drop no-op entries."""
    if not isinstance(changes, Mapping):
        raise InvalidArgument(
            f"changes must be a mapping of attribute to [old, new], got {type(changes).__name__}"
        )
    diff: dict[str, list] = {}
    for attribute, pair in changes.items():
        if isinstance(pair, (str, bytes)) or not isinstance(pair, Sequence) or len(pair) != 2:
            raise InvalidArgument(f"change for {attribute!r} must be an [old, new] pair")
        old, new = to_plain(pair[0]), to_plain(pair[1])
        if old == new:
            continue
        diff[attribute_key(attribute)] = [old, new]
    return diff


class HistoryRecorder:
    """Writes history rows. Knows nothing about when or why a row is due."""

    def __init__(
        self,
        session: AsyncSession,
        config: TrailConfig | None = None,
        record_class: type = HistoryRecord,
    ):
        self.session = session
        self.config = config or get_config()
        self.record_class = record_class

    async def compute_changes(self, changes: Mapping[str, Any]) -> Any:
        override = self.config.adapter_method(ops.DIFF)
        if override is not None:
            return await call_adapter(ops.DIFF, override, changes)
        return normalize_changes(changes)

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
        """Insert one history row and return it.

        Args:
            subject_type: Class/kind of the tracked subject.
            subject_id: Identifier of the tracked subject (stored as text).
            event: create, update or destroy.
            snapshot: Full attribute state before the change. Required for
                destroy; usually None for create.
            changes: ``{attribute: [old, new]}`` as observed by the caller.
            actor: Who made the change, if known.
        """
        try:
            event = HistoryEvent(event)
        except ValueError:
            raise InvalidArgument(f"unknown history event {event!r}") from None
        if snapshot is not None and not isinstance(snapshot, Mapping):
            raise InvalidArgument(f"snapshot must be a mapping, got {type(snapshot).__name__}")
        if event is HistoryEvent.DESTROY and snapshot is None:
            raise InvalidArgument("destroy events must carry the pre-destroy snapshot")

        with bound_actor(actor):
            diff = await self.compute_changes(changes) if changes is not None else None

            rc = self.record_class
            stmt = (
                insert(rc)
                .values(
                    subject_type=subject_type,
                    subject_id=str(subject_id),
                    event=event.value,
                    snapshot=await self._encode("snapshot", snapshot),
                    changes=await self._encode("changes", diff),
                    actor=actor,
                )
                .returning(rc)
            )
            record = (await self.session.execute(stmt)).scalar_one()
            logger.info(
                "Recorded %s history #%s for %s#%s", event.value, record.id, subject_type, subject_id,
                extra={"subject_type": subject_type, "subject_id": str(subject_id)},
            )
        return record

    async def assign_actor(self, record: Any, actor: str | None) -> Any:
        """Backfill the actor; the only column allowed to change after insert."""
        record.actor = actor
        await self.session.flush()
        with bound_actor(actor):
            logger.info(
                "Assigned actor to history #%s", record.id,
                extra={"subject_type": record.subject_type, "subject_id": record.subject_id},
            )
        return record

    async def _encode(self, column: str, data: Any) -> Any:
        if data is None:
            return None
        table = self.record_class.__table__
        encoding = await self.config.encodings.resolve(
            self.session, table.name, column, schema=table.schema
        )
        data = to_plain(data)
        if encoding is ColumnEncoding.JSONB:
            return literal(data, JSONB)
        if encoding is ColumnEncoding.JSON:
            return literal(data, JSON)
        return self.config.serializer.encode(data)

"""History record model - one row per create/update/destroy of a tracked subject."""

from __future__ import annotations

from collections.abc import Mapping
from datetime import datetime
from enum import Enum
from typing import Any

from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    DateTime,
    Identity,
    Index,
    String,
    Text,
    event as sa_event,
    func,
    inspect,
    select,
)
from sqlalchemy.ext.asyncio import AsyncSession, async_object_session
from sqlalchemy.orm import Mapped, declared_attr, mapped_column
from sqlalchemy.sql import Select

from trailkeep.core.config import TrailConfig, get_config
from trailkeep.core.errors import ImmutableRecordError
from trailkeep.models.base import Base
from trailkeep.serializers import JSONSerializer, to_plain
from trailkeep.services import adapter as ops
from trailkeep.services.adapter import call_adapter
from trailkeep.services.encoding import ColumnEncoding
from trailkeep.services.queries import (
    WhereAttributeChanges,
    WhereObject,
    WhereObjectChanges,
    WhereObjectChangesFrom,
    WhereObjectChangesTo,
)


class HistoryEvent(str, Enum):
    CREATE = "create"
    UPDATE = "update"
    DESTROY = "destroy"


# Columns that may be written after insert
MUTABLE_COLUMNS = frozenset({"actor"})

_DOCUMENT_DECODER = JSONSerializer()


class HistoryRecordMixin:
    """Columns and behaviour of a history table.

    ``snapshot`` and ``changes`` are declared as Text, but the live column may
    be json or jsonb; reads and queries go by the live type, see
    ``trailkeep.services.encoding``.
    """

    id: Mapped[int] = mapped_column(BigInteger, Identity(), primary_key=True)
    subject_type: Mapped[str] = mapped_column(String(255), nullable=False)
    subject_id: Mapped[str] = mapped_column(String(255), nullable=False)
    event: Mapped[str] = mapped_column(String(20), nullable=False)
    snapshot: Mapped[Any] = mapped_column(Text, nullable=True)
    changes: Mapped[Any] = mapped_column(Text, nullable=True)
    actor: Mapped[str | None] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    @declared_attr.directive
    def __table_args__(cls):
        events = ", ".join(f"'{e.value}'" for e in HistoryEvent)
        return (
            CheckConstraint(f"event IN ({events})", name=f"chk_{cls.__tablename__}_event"),
            Index(f"idx_{cls.__tablename__}_subject", "subject_type", "subject_id", "created_at"),
        )

    def __repr__(self) -> str:
        return (
            f"<{type(self).__name__} id={self.id} {self.event} "
            f"{self.subject_type}#{self.subject_id}>"
        )

    # ------------------------------------------------------------------
    # Scopes
    # ------------------------------------------------------------------

    @classmethod
    def ordered(cls) -> Select:
        """All records in creation order."""
        return select(cls).order_by(cls.created_at, cls.id)

    @classmethod
    def for_subject(cls, subject_type: str, subject_id: Any) -> Select:
        return cls.ordered().where(
            cls.subject_type == subject_type, cls.subject_id == str(subject_id)
        )

    @classmethod
    def creates(cls, scope: Select | None = None) -> Select:
        return cls._scope(scope).where(cls.event == HistoryEvent.CREATE.value)

    @classmethod
    def updates(cls, scope: Select | None = None) -> Select:
        return cls._scope(scope).where(cls.event == HistoryEvent.UPDATE.value)

    @classmethod
    def destroys(cls, scope: Select | None = None) -> Select:
        return cls._scope(scope).where(cls.event == HistoryEvent.DESTROY.value)

    @classmethod
    def not_creates(cls, scope: Select | None = None) -> Select:
        return cls._scope(scope).where(cls.event != HistoryEvent.CREATE.value)

    @classmethod
    def subsequent(cls, obj: HistoryRecordMixin | datetime, include_self: bool = False) -> Select:
        """Records after ``obj`` (a record or a timestamp), oldest first."""
        if isinstance(obj, datetime):
            op = cls.created_at >= obj if include_self else cls.created_at > obj
            return cls.ordered().where(op)
        op = cls.id >= obj.id if include_self else cls.id > obj.id
        return select(cls).where(op).order_by(cls.id)

    @classmethod
    def preceding(cls, obj: HistoryRecordMixin | datetime, include_self: bool = False) -> Select:
        """Records before ``obj`` (a record or a timestamp), newest first."""
        if isinstance(obj, datetime):
            op = cls.created_at <= obj if include_self else cls.created_at < obj
            return select(cls).where(op).order_by(cls.created_at.desc(), cls.id.desc())
        op = cls.id <= obj.id if include_self else cls.id < obj.id
        return select(cls).where(op).order_by(cls.id.desc())

    @classmethod
    def between(cls, start: datetime, end: datetime) -> Select:
        return cls.ordered().where(cls.created_at > start, cls.created_at < end)

    @classmethod
    def _scope(cls, scope: Select | None) -> Select:
        return scope if scope is not None else cls.ordered()

    # ------------------------------------------------------------------
    # Diff/snapshot queries
    # ------------------------------------------------------------------

    @classmethod
    async def where_object(
        cls,
        session: AsyncSession,
        attributes: Mapping[str, Any],
        *,
        scope: Select | None = None,
        config: TrailConfig | None = None,
    ):
        """Records whose snapshot holds all of ``attributes``."""
        query = WhereObject(cls, attributes, scope=scope, config=config)
        return await query.execute(session)

    @classmethod
    async def where_object_changes(
        cls,
        session: AsyncSession,
        attributes: Mapping[str, Any],
        *,
        scope: Select | None = None,
        config: TrailConfig | None = None,
    ):
        """Records where every attribute changed from or to its value."""
        query = WhereObjectChanges(cls, attributes, scope=scope, config=config)
        return await query.execute(session)

    @classmethod
    async def where_object_changes_from(
        cls,
        session: AsyncSession,
        attributes: Mapping[str, Any],
        *,
        scope: Select | None = None,
        config: TrailConfig | None = None,
    ):
        query = WhereObjectChangesFrom(cls, attributes, scope=scope, config=config)
        return await query.execute(session)

    @classmethod
    async def where_object_changes_to(
        cls,
        session: AsyncSession,
        attributes: Mapping[str, Any],
        *,
        scope: Select | None = None,
        config: TrailConfig | None = None,
    ):
        query = WhereObjectChangesTo(cls, attributes, scope=scope, config=config)
        return await query.execute(session)

    @classmethod
    async def where_attribute_changes(
        cls,
        session: AsyncSession,
        attribute: str,
        *,
        scope: Select | None = None,
        config: TrailConfig | None = None,
    ):
        query = WhereAttributeChanges(cls, attribute, scope=scope, config=config)
        return await query.execute(session)

    # ------------------------------------------------------------------
    # Navigation
    # ------------------------------------------------------------------

    def _siblings(self) -> Select:
        cls = type(self)
        return select(cls).where(
            cls.subject_type == self.subject_type, cls.subject_id == self.subject_id
        )

    async def previous(self, session: AsyncSession):
        cls = type(self)
        stmt = self._siblings().where(cls.id < self.id).order_by(cls.id.desc()).limit(1)
        return (await session.execute(stmt)).scalar_one_or_none()

    async def next(self, session: AsyncSession):
        cls = type(self)
        stmt = self._siblings().where(cls.id > self.id).order_by(cls.id).limit(1)
        return (await session.execute(stmt)).scalar_one_or_none()

    async def index(self, session: AsyncSession) -> int:
        """Zero-based position among the subject's records."""
        cls = type(self)
        stmt = (
            select(func.count())
            .select_from(cls)
            .where(
                cls.subject_type == self.subject_type,
                cls.subject_id == self.subject_id,
                cls.id < self.id,
            )
        )
        return (await session.execute(stmt)).scalar_one()

    async def originator(self, session: AsyncSession) -> str | None:
        """Actor responsible for the state captured in this snapshot."""
        previous = await self.previous(session)
        return previous.actor if previous is not None else None

    @property
    def terminator(self) -> str | None:
        """Actor who ended the state captured in this snapshot."""
        return self.actor

    version_author = terminator

    # ------------------------------------------------------------------
    # Decoding
    # ------------------------------------------------------------------

    async def _encoding(self, column: str, config: TrailConfig) -> ColumnEncoding:
        table = type(self).__table__
        session = async_object_session(self)
        if session is not None:
            return await config.encodings.resolve(
                session, table.name, column, schema=table.schema
            )
        # Detached: rely on what an earlier query or write resolved
        cached = config.encodings.cached(table.name, column, table.schema)
        return cached if cached is not None else ColumnEncoding.TEXT

    async def _load(self, column: str, config: TrailConfig) -> Any:
        """Decode one payload column by its live encoding.

        The columns are mapped as Text, so json/jsonb values come back as JSON
        text. Those are parsed as JSON; only text columns go through the
        configured serializer.
        """
        value = getattr(self, column)
        if value is None:
            return None
        if not isinstance(value, (str, bytes)):
            return to_plain(value)
        encoding = await self._encoding(column, config)
        if encoding.is_structured:
            return _DOCUMENT_DECODER.decode(value)
        return config.serializer.decode(value)

    async def changeset(self, config: TrailConfig | None = None) -> Any:
        """Decoded changes: ``{attribute: [old, new]}``, ``{}`` when none."""
        config = config or get_config()
        override = config.adapter_method(ops.LOAD_CHANGESET)
        if override is not None:
            return await call_adapter(ops.LOAD_CHANGESET, override, self)
        data = await self._load("changes", config)
        return data if data is not None else {}

    async def snapshot_data(self, config: TrailConfig | None = None) -> dict[str, Any] | None:
        """Decoded pre-change state, None for create events."""
        return await self._load("snapshot", config or get_config())

    async def reify(self, config: TrailConfig | None = None) -> dict[str, Any] | None:
        """The subject's attributes as they were before this event."""
        data = await self.snapshot_data(config)
        return dict(data) if isinstance(data, Mapping) else data


@sa_event.listens_for(HistoryRecordMixin, "before_update", propagate=True)
def _reject_mutation(mapper, connection, target) -> None:
    state = inspect(target)
    for attr in mapper.column_attrs:
        if attr.key in MUTABLE_COLUMNS:
            continue
        if state.attrs[attr.key].history.has_changes():
            raise ImmutableRecordError(
                f"{type(target).__name__}.{attr.key} cannot change after insert"
            )


class HistoryRecord(HistoryRecordMixin, Base):
    __tablename__ = "history_records"

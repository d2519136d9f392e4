"""SQLAlchemy models for trailkeep."""

from trailkeep.models.base import Base
from trailkeep.models.history import HistoryEvent, HistoryRecord, HistoryRecordMixin

__all__ = [
    "Base",
    "HistoryEvent",
    "HistoryRecord",
    "HistoryRecordMixin",
]

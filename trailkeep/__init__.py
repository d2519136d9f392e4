"""trailkeep - audit trail of snapshots and attribute diffs, queryable by content."""

from trailkeep.core.config import Settings, TrailConfig, get_config, get_settings, set_config
from trailkeep.core.errors import (
    ColumnNotFoundError,
    DecodeFailure,
    ImmutableRecordError,
    InvalidArgument,
    TrailError,
    UnsupportedColumnType,
)
from trailkeep.models import HistoryEvent, HistoryRecord, HistoryRecordMixin
from trailkeep.serializers import JSONSerializer, YAMLSerializer, get_serializer
from trailkeep.services.encoding import ColumnEncoding, ColumnEncodingResolver
from trailkeep.services.recorder import HistoryRecorder
from trailkeep.trail import TrailKeep

__all__ = [
    "TrailKeep",
    "Settings",
    "TrailConfig",
    "get_config",
    "get_settings",
    "set_config",
    "HistoryEvent",
    "HistoryRecord",
    "HistoryRecordMixin",
    "HistoryRecorder",
    "ColumnEncoding",
    "ColumnEncodingResolver",
    "JSONSerializer",
    "YAMLSerializer",
    "get_serializer",
    "TrailError",
    "InvalidArgument",
    "UnsupportedColumnType",
    "DecodeFailure",
    "ColumnNotFoundError",
    "ImmutableRecordError",
]

"""Error types raised by trailkeep."""

from __future__ import annotations


class TrailError(Exception):
    """Base class for all trailkeep errors."""


class InvalidArgument(TrailError, ValueError):
    """An argument has the wrong shape; raised before any storage access."""


class UnsupportedColumnType(TrailError):
    """A query shape was invoked against a column encoding it cannot query."""

    def __init__(self, operation: str, actual: str, expected: str = "json/b"):
        self.operation = operation
        self.expected = expected
        self.actual = actual
        super().__init__(f"{operation} expected {expected} column, got {actual}")


class DecodeFailure(TrailError):
    """A stored payload could not be decoded by the serializer."""

    def __init__(self, serializer: str, message: str):
        self.serializer = serializer
        super().__init__(f"{serializer} decode failed: {message}")


class ColumnNotFoundError(TrailError, LookupError):
    """The live schema has no such table/column."""


class ImmutableRecordError(TrailError):
    """Only the actor of a history record may change after insert."""

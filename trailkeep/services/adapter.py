"""Changes adapter - an optional object that takes over diff/query operations.

The adapter is duck-typed. Each operation is probed on its own, so an adapter
may implement only ``where_object_changes`` and leave everything else to the
built-in logic. When a method exists it owns the whole call: its return value
is handed back unchanged and nothing built-in runs, not even column
resolution. Exceptions it raises propagate as-is.
"""

from __future__ import annotations

import inspect
import logging
from collections.abc import Callable, Mapping
from typing import Any, Protocol

logger = logging.getLogger(__name__)

DIFF = "diff"
LOAD_CHANGESET = "load_changeset"
WHERE_OBJECT = "where_object"
WHERE_OBJECT_CHANGES = "where_object_changes"
WHERE_OBJECT_CHANGES_FROM = "where_object_changes_from"
WHERE_OBJECT_CHANGES_TO = "where_object_changes_to"
WHERE_ATTRIBUTE_CHANGES = "where_attribute_changes"

OPERATIONS = frozenset({
    DIFF,
    LOAD_CHANGESET,
    WHERE_OBJECT,
    WHERE_OBJECT_CHANGES,
    WHERE_OBJECT_CHANGES_FROM,
    WHERE_OBJECT_CHANGES_TO,
    WHERE_ATTRIBUTE_CHANGES,
})


class ChangesAdapter(Protocol):
    """Every method is optional; implement any subset."""

    def diff(self, changes: Mapping[str, Any]) -> Any: ...

    def load_changeset(self, record: Any) -> Any: ...

    def where_object(self, record_class: type, attributes: Mapping[str, Any]) -> Any: ...

    def where_object_changes(self, record_class: type, attributes: Mapping[str, Any]) -> Any: ...

    def where_object_changes_from(self, record_class: type, attributes: Mapping[str, Any]) -> Any: ...

    def where_object_changes_to(self, record_class: type, attributes: Mapping[str, Any]) -> Any: ...

    def where_attribute_changes(self, record_class: type, attribute: str) -> Any: ...


def adapter_method(adapter: Any, operation: str) -> Callable[..., Any] | None:
    """Return the adapter's implementation of ``operation``, or None."""
    if adapter is None:
        return None
    if operation not in OPERATIONS:
        raise ValueError(f"unknown adapter operation {operation!r}")
    method = getattr(adapter, operation, None)
    return method if callable(method) else None


async def call_adapter(operation: str, method: Callable[..., Any], *args: Any) -> Any:
    """Invoke an adapter method, awaiting the result if it is awaitable."""
    logger.debug("Delegating %s to changes adapter", operation, extra={"operation": operation})
    result = method(*args)
    if inspect.isawaitable(result):
        result = await result
    return result

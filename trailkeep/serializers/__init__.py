"""Serialization strategies for text-encoded history columns."""

from trailkeep.core.errors import InvalidArgument
from trailkeep.serializers.base import Serializer, attribute_key, to_plain
from trailkeep.serializers.json_serializer import JSONSerializer
from trailkeep.serializers.yaml_serializer import YAMLSerializer

_BUILTIN = {
    "yaml": YAMLSerializer,
    "json": JSONSerializer,
}


def get_serializer(name: str) -> Serializer:
    """Instantiate a built-in serializer by name ("yaml" or "json")."""
    try:
        return _BUILTIN[name.strip().lower()]()
    except KeyError:
        raise InvalidArgument(
            f"unknown serializer {name!r}, expected one of {sorted(_BUILTIN)}"
        ) from None


__all__ = [
    "Serializer",
    "JSONSerializer",
    "YAMLSerializer",
    "get_serializer",
    "attribute_key",
    "to_plain",
]

"""Tests for the YAML and JSON serialization strategies."""

from __future__ import annotations

from collections import OrderedDict
from collections.abc import Mapping
from datetime import datetime, timezone
from enum import Enum
from types import MappingProxyType

import pytest
from sqlalchemy import column
from sqlalchemy.dialects import postgresql

from trailkeep.core.errors import DecodeFailure, InvalidArgument
from trailkeep.serializers import JSONSerializer, Serializer, YAMLSerializer, get_serializer, to_plain

SERIALIZERS = [YAMLSerializer(), JSONSerializer()]


class Field(str, Enum):
    NAME = "name"
    COUNT = "count"


class Color(Enum):
    RED = "red"


class AttributeBag(Mapping):
    """A read-side wrapper like the ones ORMs hand back."""

    def __init__(self, data):
        self._data = dict(data)

    def __getitem__(self, key):
        return self._data[key]

    def __iter__(self):
        return iter(self._data)

    def __len__(self):
        return len(self._data)


def _sql(expr) -> tuple[str, list]:
    compiled = expr.compile(dialect=postgresql.dialect())
    return str(compiled), list(compiled.params.values())


@pytest.mark.parametrize("serializer", SERIALIZERS, ids=lambda s: s.name)
class TestRoundTrip:
    @pytest.mark.parametrize("data", [
        {},
        {"name": "Dashboard"},
        {"name": [None, "Dashboard"], "count": [0, 100]},
        {"ratio": 1.5, "flag": True, "empty": None, "tags": ["a", "b"]},
        {"nested": {"inner": [1, 2, {"deep": "x"}]}},
        {"unicode": "héllo 世界", "quote": 'say "hi"', "percent": "100%_done"},
    ])
    def test_decode_encode_is_identity(self, serializer, data):
        decoded = serializer.decode(serializer.encode(data))
        assert decoded == data
        assert type(decoded) is dict

    def test_mapping_wrappers_decode_as_plain_dict(self, serializer):
        wrapped = AttributeBag({"name": ["A", "B"], "meta": OrderedDict(k=1)})
        encoded = serializer.encode(wrapped)
        assert "python" not in encoded
        assert "AttributeBag" not in encoded
        decoded = serializer.decode(encoded)
        assert type(decoded) is dict
        assert type(decoded["meta"]) is dict
        assert decoded == {"name": ["A", "B"], "meta": {"k": 1}}

    def test_mappingproxy_and_tuples(self, serializer):
        decoded = serializer.decode(serializer.encode(MappingProxyType({"pair": ("a", "b")})))
        assert decoded == {"pair": ["a", "b"]}

    def test_enum_keys_and_values_are_stored_plain(self, serializer):
        encoded = serializer.encode({Field.NAME: Color.RED, Field.COUNT: [Field.NAME]})
        assert "Field" not in encoded
        assert "Color" not in encoded
        assert serializer.decode(encoded) == {"name": "red", "count": ["name"]}

    def test_empty_payload_decodes_to_none(self, serializer):
        assert serializer.decode(None) is None
        assert serializer.decode("") is None

    def test_satisfies_protocol(self, serializer):
        assert isinstance(serializer, Serializer)


class TestYAMLSerializer:
    def test_encodes_block_with_document_start(self):
        encoded = YAMLSerializer().encode({"name": "foobar", "count": 100})
        assert encoded == "---\nname: foobar\ncount: 100\n"

    def test_long_values_are_not_wrapped(self):
        value = "word " * 60
        encoded = YAMLSerializer().encode({"text": value.strip()})
        assert encoded.count("\n") == 2

    def test_malformed_payload_raises_decode_failure(self):
        with pytest.raises(DecodeFailure) as exc_info:
            YAMLSerializer().decode("---\nname: [unclosed\n")
        assert exc_info.value.serializer == "yaml"
        assert exc_info.value.__cause__ is not None

    def test_python_tags_are_rejected(self):
        with pytest.raises(DecodeFailure):
            YAMLSerializer().decode("--- !!python/object:collections.OrderedDict {}\n")

    def test_where_object_condition_matches_whole_line(self):
        sql, params = _sql(YAMLSerializer().where_object_condition(column("snapshot"), "count", 100))
        assert "LIKE" in sql
        assert "\ncount: 100\n" in params

    def test_where_object_condition_renders_null(self):
        _, params = _sql(YAMLSerializer().where_object_condition(column("snapshot"), "name", None))
        assert "\nname: null\n" in params

    def test_where_attribute_changes_condition(self):
        _, params = _sql(
            YAMLSerializer().where_attribute_changes_condition(column("changes"), "name")
        )
        assert "\nname:\n" in params

    def test_like_wildcards_are_escaped(self):
        sql, params = _sql(YAMLSerializer().where_object_condition(column("snapshot"), "tag", "a%b_c"))
        assert "ESCAPE" in sql
        assert not any(p == "\ntag: a%b_c\n" for p in params)


class TestJSONSerializer:
    def test_encodes_compact(self):
        assert JSONSerializer().encode({"name": "A", "count": [0, 100]}) == '{"name":"A","count":[0,100]}'

    def test_encodes_datetimes_as_iso(self):
        when = datetime(2024, 5, 7, 12, 30, tzinfo=timezone.utc)
        assert JSONSerializer().encode({"at": when}) == '{"at":"2024-05-07T12:30:00+00:00"}'

    def test_malformed_payload_raises_decode_failure(self):
        with pytest.raises(DecodeFailure) as exc_info:
            JSONSerializer().decode('{"name": ')
        assert exc_info.value.serializer == "json"

    def test_numeric_condition_requires_delimiter(self):
        sql, params = _sql(JSONSerializer().where_object_condition(column("snapshot"), "count", 12))
        assert " OR " in sql
        assert '"count":12,' in params
        assert '"count":12}' in params

    def test_string_condition_includes_quotes(self):
        sql, params = _sql(JSONSerializer().where_object_condition(column("snapshot"), "name", "foo"))
        assert " OR " not in sql
        assert '"name":"foo"' in params

    def test_boolean_is_not_treated_as_number(self):
        sql, params = _sql(JSONSerializer().where_object_condition(column("snapshot"), "flag", True))
        assert " OR " not in sql
        assert '"flag":true' in params

    def test_where_attribute_changes_condition(self):
        _, params = _sql(
            JSONSerializer().where_attribute_changes_condition(column("changes"), "name")
        )
        assert '"name":[' in params


class TestGetSerializer:
    @pytest.mark.parametrize("name,cls", [("yaml", YAMLSerializer), ("JSON", JSONSerializer)])
    def test_builtin_names(self, name, cls):
        assert isinstance(get_serializer(name), cls)

    def test_unknown_name(self):
        with pytest.raises(InvalidArgument, match="unknown serializer"):
            get_serializer("xml")


class TestToPlain:
    def test_enum_keys_become_their_values(self):
        plain = to_plain({Field.COUNT: 1, "nested": {Field.NAME: "x"}})
        assert plain == {"count": 1, "nested": {"name": "x"}}
        assert all(type(k) is str for k in plain)

    def test_enum_values_become_their_values(self):
        assert to_plain({"color": Color.RED, "tags": (Color.RED,)}) == {"color": "red", "tags": ["red"]}

    def test_other_keys_are_stringified(self):
        assert to_plain({1: "a"}) == {"1": "a"}

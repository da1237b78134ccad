"""Tests for the decoding adapter."""

from __future__ import annotations

import pytest

from ucl.decode import (
    ValueVisitor,
    accept,
    custom,
    decode_enum,
    decode_struct_variant,
    decode_tuple_variant,
    reject_unknown_fields,
    require_field,
    require_resolved,
    type_name,
)
from ucl.errors import DecodeError, ErrorKind, ExpansionError
from ucl.parser import parse


class PortVisitor(ValueVisitor):
    expecting = "a port number"

    def visit_integer(self, value: int) -> int:
        if not 0 < value < 65536:
            raise custom(f"port {value} out of range")
        return value


class Collector(ValueVisitor):
    def __init__(self) -> None:
        self.calls = []

    def visit_string(self, value):
        self.calls.append(("string", value))

    def visit_integer(self, value):
        self.calls.append(("integer", value))

    def visit_float(self, value):
        self.calls.append(("float", value))

    def visit_bool(self, value):
        self.calls.append(("bool", value))

    def visit_null(self):
        self.calls.append(("null", None))

    def visit_map(self, value):
        self.calls.append(("map", value))

    def visit_seq(self, value):
        self.calls.append(("seq", value))


@pytest.mark.parametrize(
    ("value", "name"),
    [
        (None, "null"),
        (True, "boolean"),
        (1, "integer"),
        (1.5, "float"),
        ("x", "string"),
        ({}, "object"),
        ([], "array"),
    ],
)
def test_type_name(value, name):
    assert type_name(value) == name


def test_accept_dispatches_by_type():
    collector = Collector()
    for value in [True, 3, 2.5, "s", None, {"a": 1}, [1]]:
        accept(value, collector)
    assert [kind for kind, _ in collector.calls] == [
        "bool",
        "integer",
        "float",
        "string",
        "null",
        "map",
        "seq",
    ]


def test_visitor_rejects_unexpected_types():
    config = parse("port = 8080\nname = web")
    assert accept(config["port"], PortVisitor()) == 8080
    with pytest.raises(DecodeError) as info:
        accept(config["name"], PortVisitor())
    assert info.value.kind == ErrorKind.TYPE_MISMATCH
    assert info.value.message == "expected a port number, found string"


def test_custom_errors():
    with pytest.raises(DecodeError) as info:
        accept(70000, PortVisitor())
    assert info.value.kind == ErrorKind.CUSTOM
    assert "out of range" in info.value.message


@pytest.mark.parametrize(
    ("source", "variant", "payload"),
    [
        ("mode = fast", "fast", None),
        ('mode { retry = 3 }', "retry", 3),
        ("mode { limits = [1, 2] }", "limits", [1, 2]),
    ],
)
def test_decode_enum(source, variant, payload):
    assert decode_enum(parse(source)["mode"]) == (variant, payload)


@pytest.mark.parametrize("value", [{"a": 1, "b": 2}, {}, 3, [1]])
def test_decode_enum_rejects_other_shapes(value):
    with pytest.raises(DecodeError) as info:
        decode_enum(value)
    assert info.value.kind == ErrorKind.TYPE_MISMATCH


def test_variant_payloads():
    assert decode_tuple_variant([1, "a"]) == [1, "a"]
    assert decode_tuple_variant(5) == [5]
    assert decode_struct_variant({"x": 1}) == {"x": 1}
    with pytest.raises(DecodeError):
        decode_struct_variant([1])


def test_fields():
    obj = parse("host = localhost\nport = 80\nextra = 1")
    assert require_field(obj, "host") == "localhost"
    with pytest.raises(DecodeError) as info:
        require_field(obj, "user")
    assert info.value.kind == ErrorKind.MISSING_FIELD
    assert info.value.message == "missing field 'user'"

    reject_unknown_fields(obj, ["host", "port", "extra"])
    with pytest.raises(DecodeError) as info:
        reject_unknown_fields(obj, ["host", "port"])
    assert info.value.kind == ErrorKind.UNKNOWN_FIELD
    assert info.value.message == "unknown field 'extra', expected one of: host, port"


def test_require_resolved():
    require_resolved(parse('a = "price: $5"\nb = [1, "x"]'))
    with pytest.raises(ExpansionError) as info:
        require_resolved(parse('server { root = "${ROOT}/www" }'))
    assert info.value.kind == ErrorKind.VARIABLE_NOT_FOUND
    assert info.value.message == "variable 'ROOT' is not defined at 'server.root'"


def test_require_resolved_in_arrays():
    with pytest.raises(ExpansionError) as info:
        require_resolved({"list": ["ok", "$MISSING"]})
    assert "at 'list[1]'" in info.value.message

"""Adapter between parsed UCL values and a host decoding framework."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from typing import Any

from .errors import DecodeError, ErrorKind, ExpansionError
from .types import Position, UclValue
from .variables import find_references


def type_name(value: UclValue) -> str:
    """UCL name of the value's type, as used in error messages."""
    match value:
        case None:
            return "null"
        case bool():
            return "boolean"
        case int():
            return "integer"
        case float():
            return "float"
        case str():
            return "string"
        case Mapping():
            return "object"
        case list():
            return "array"
    return type(value).__name__


def custom(message: str) -> DecodeError:
    """An error with a message supplied by the host framework."""
    return DecodeError(ErrorKind.CUSTOM, message, Position())


def _mismatch(expected: str, value: UclValue) -> DecodeError:
    return DecodeError(
        ErrorKind.TYPE_MISMATCH, f"expected {expected}, found {type_name(value)}", Position()
    )


class ValueVisitor:
    """Receives one value; every method rejects its type unless overridden."""

    expecting = "a value"

    def visit_string(self, value: str) -> Any:
        raise _mismatch(self.expecting, value)

    def visit_integer(self, value: int) -> Any:
        raise _mismatch(self.expecting, value)

    def visit_float(self, value: float) -> Any:
        raise _mismatch(self.expecting, value)

    def visit_bool(self, value: bool) -> Any:
        raise _mismatch(self.expecting, value)

    def visit_null(self) -> Any:
        raise _mismatch(self.expecting, None)

    def visit_map(self, value: dict[str, UclValue]) -> Any:
        raise _mismatch(self.expecting, value)

    def visit_seq(self, value: list[UclValue]) -> Any:
        raise _mismatch(self.expecting, value)


def accept(value: UclValue, visitor: ValueVisitor) -> Any:
    """Dispatch `value` to the matching visitor method."""
    match value:
        case None:
            return visitor.visit_null()
        case bool():
            return visitor.visit_bool(value)
        case int():
            return visitor.visit_integer(value)
        case float():
            return visitor.visit_float(value)
        case str():
            return visitor.visit_string(value)
        case Mapping():
            return visitor.visit_map(dict(value))
        case list():
            return visitor.visit_seq(value)
    raise custom(f"unsupported value of type {type(value).__name__}")


def decode_enum(value: UclValue) -> tuple[str, UclValue]:
    """Split an enum into (variant, payload).

    A bare string is a unit variant with a `None` payload; an object with one
    entry names a data variant.
    """
    if isinstance(value, str):
        return value, None
    if isinstance(value, Mapping):
        if len(value) != 1:
            raise DecodeError(
                ErrorKind.TYPE_MISMATCH,
                f"expected an object with exactly one entry for an enum, found {len(value)}",
                Position(),
            )
        ((variant, payload),) = value.items()
        return variant, payload
    raise _mismatch("a string or single-entry object for an enum", value)


def decode_tuple_variant(value: UclValue) -> list[UclValue]:
    """Tuple payloads come from an array; a single value becomes a one-element tuple."""
    if isinstance(value, list):
        return value
    return [value]


def decode_struct_variant(value: UclValue) -> dict[str, UclValue]:
    if not isinstance(value, Mapping):
        raise _mismatch("an object for a struct variant", value)
    return dict(value)


def require_field(obj: Mapping[str, UclValue], name: str) -> UclValue:
    try:
        return obj[name]
    except KeyError:
        raise DecodeError(ErrorKind.MISSING_FIELD, f"missing field '{name}'", Position()) from None


def reject_unknown_fields(obj: Mapping[str, UclValue], allowed: Iterable[str]) -> None:
    known = set(allowed)
    for key in obj:
        if key not in known:
            raise DecodeError(
                ErrorKind.UNKNOWN_FIELD,
                f"unknown field '{key}', expected one of: {', '.join(sorted(known))}",
                Position(),
            )


def require_resolved(value: UclValue, path: str = "") -> None:
    """Fail if any string in `value` still holds a variable reference."""
    match value:
        case str():
            names = find_references(value)
            if names:
                where = f" at '{path}'" if path else ""
                raise ExpansionError(
                    ErrorKind.VARIABLE_NOT_FOUND,
                    f"variable '{names[0]}' is not defined{where}",
                    Position(),
                )
        case Mapping():
            for key, item in value.items():
                require_resolved(item, f"{path}.{key}" if path else key)
        case list():
            for index, item in enumerate(value):
                require_resolved(item, f"{path}[{index}]")

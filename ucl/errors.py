"""Error types raised while reading UCL."""

from __future__ import annotations

from enum import Enum
from typing import ClassVar

from .types import Position, Span


class ErrorKind(Enum):
    """Every distinct failure the lexer, parser, expander or decoder can report."""

    # lexical
    UNEXPECTED_CHARACTER = "unexpected character"
    UNTERMINATED_STRING = "unterminated string"
    INVALID_ESCAPE = "invalid escape sequence"
    INVALID_UNICODE_ESCAPE = "invalid unicode escape"
    UNTERMINATED_COMMENT = "unterminated comment"
    INVALID_NUMBER = "invalid number"
    INVALID_HEREDOC = "invalid heredoc"
    INVALID_UTF8 = "invalid utf-8"
    INVALID_BARE_WORD = "invalid bare word"
    RESOURCE_LIMIT_EXCEEDED = "resource limit exceeded"
    MAX_DEPTH_EXCEEDED = "maximum nesting depth exceeded"
    # structural
    UNEXPECTED_TOKEN = "unexpected token"
    DUPLICATE_KEY = "duplicate key"
    INVALID_OBJECT = "invalid object"
    INVALID_ARRAY = "invalid array"
    INVALID_COMMENT = "invalid comment placement"
    # variables
    VARIABLE_EXPANSION_CYCLE = "variable expansion cycle"
    VARIABLE_EXPANSION_MALFORMED = "malformed variable reference"
    VARIABLE_NOT_FOUND = "variable not found"
    # decoding
    TYPE_MISMATCH = "type mismatch"
    MISSING_FIELD = "missing field"
    UNKNOWN_FIELD = "unknown field"
    CUSTOM = "custom"


class UclError(Exception):
    """Base class for all UCL errors; carries a kind, a position and an optional span."""

    stage: ClassVar[str] = "ucl"

    def __init__(
        self,
        kind: ErrorKind,
        message: str,
        position: Position,
        *,
        span: Span | None = None,
        suggestion: str | None = None,
    ) -> None:
        self.kind = kind
        self.message = message
        self.position = position
        self.span = span if span is not None else Span.single(position)
        self.suggestion = suggestion
        super().__init__(f"{self.stage} error at {position}: {message}")

    @property
    def is_resource_limit(self) -> bool:
        return self.kind in (ErrorKind.RESOURCE_LIMIT_EXCEEDED, ErrorKind.MAX_DEPTH_EXCEEDED)

    def render(self, source: str) -> str:
        """Render a multi-line report with source context and suggestions."""
        from .diagnostics import context_for

        return context_for(self, source).format_error(self.message)


class LexError(UclError):
    """A failure while turning input characters into tokens."""

    stage = "lex"


class ParseError(UclError):
    """A failure while assembling tokens into a value tree."""

    stage = "parse"


class DuplicateKeyError(ParseError):
    """A key was repeated under the `ERROR` duplicate-key policy."""

    def __init__(self, key: str, position: Position, *, span: Span | None = None) -> None:
        self.key = key
        super().__init__(
            ErrorKind.DUPLICATE_KEY,
            f"duplicate key '{key}'",
            position,
            span=span,
            suggestion="Enable implicit arrays to automatically convert duplicate keys to arrays",
        )


class ExpansionError(UclError):
    """A malformed, cyclic or (when required) unresolved variable reference."""

    stage = "expansion"


class ExpansionCycleError(ExpansionError):
    """A variable refers back to itself, directly or through other variables."""

    def __init__(self, cycle: tuple[str, ...], position: Position) -> None:
        self.cycle = cycle
        super().__init__(
            ErrorKind.VARIABLE_EXPANSION_CYCLE,
            "circular variable reference: " + " -> ".join(cycle),
            position,
        )


class DecodeError(UclError):
    """The value tree does not have the shape a consumer asked for."""

    stage = "decode"

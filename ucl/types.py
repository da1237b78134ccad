"""Type definitions for the UCL parser."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Final, TypeAlias

INT64_MIN: Final[int] = -(2**63)
INT64_MAX: Final[int] = 2**63 - 1


def utf8_len(ch: str) -> int:
    """Number of bytes the character occupies in UTF-8."""
    cp = ord(ch)
    if cp < 0x80:
        return 1
    if cp < 0x800:
        return 2
    if cp < 0x10000:
        return 3
    return 4


@dataclass(frozen=True, slots=True)
class Position:
    """A location in the source: 1-based line and column, 0-based byte offset."""

    line: int = 1
    column: int = 1
    offset: int = 0

    def advance(self, ch: str) -> Position:
        """Return the position after consuming `ch`."""
        if ch in ("\n", "\r"):
            return Position(self.line + 1, 1, self.offset + 1)
        return Position(self.line, self.column + 1, self.offset + utf8_len(ch))

    def advance_by(self, text: str) -> Position:
        """Return the position after consuming `text`; `\\r\\n` is one line break."""
        line, column, offset = self.line, self.column, self.offset
        prev = ""
        for ch in text:
            offset += utf8_len(ch)
            if ch == "\n":
                if prev != "\r":
                    line += 1
                column = 1
            elif ch == "\r":
                line += 1
                column = 1
            else:
                column += 1
            prev = ch
        return Position(line, column, offset)

    def __str__(self) -> str:
        return f"{self.line}:{self.column}"


@dataclass(frozen=True, slots=True)
class Span:
    """A half-open range of positions in the source."""

    start: Position
    end: Position

    @classmethod
    def single(cls, pos: Position) -> Span:
        """An empty span located at `pos`."""
        return cls(pos, pos)

    def extend_to(self, pos: Position) -> Span:
        return Span(self.start, pos)

    def __len__(self) -> int:
        return self.end.offset - self.start.offset

    @property
    def is_empty(self) -> bool:
        return self.end.offset <= self.start.offset

    def contains(self, pos: Position) -> bool:
        return self.start.offset <= pos.offset < self.end.offset

    def __str__(self) -> str:
        if self.start.line == self.end.line:
            return f"{self.start.line}:{self.start.column}-{self.end.column}"
        return f"{self.start}-{self.end}"


class StringFormat(Enum):
    """How a string literal was written in the source."""

    JSON = "json"
    SINGLE = "single"
    HEREDOC = "heredoc"
    UNQUOTED = "unquoted"


# Objects keep insertion order; arrays keep source order.
UclValue: TypeAlias = "str | int | float | bool | None | dict[str, UclValue] | list[UclValue]"

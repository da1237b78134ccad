"""Character classification for the lexer."""

from __future__ import annotations

import string
from enum import IntFlag
from typing import Final


class CharFlags(IntFlag):
    """Classes an ASCII character can belong to."""

    NONE = 0
    WHITESPACE = 1 << 0
    WHITESPACE_UNSAFE = 1 << 1  # newline and carriage return
    KEY_START = 1 << 2
    KEY_CONTINUE = 1 << 3
    VALUE_END = 1 << 4
    DIGIT = 1 << 5
    ESCAPE = 1 << 6
    JSON_UNSAFE = 1 << 7


def _build_table() -> tuple[CharFlags, ...]:
    table = [CharFlags.NONE] * 256
    for code in range(256):
        ch = chr(code)
        flags = CharFlags.NONE
        if ch in " \t":
            flags |= CharFlags.WHITESPACE
        if ch in "\n\r":
            flags |= CharFlags.WHITESPACE_UNSAFE
        if ch in string.ascii_letters or ch in "_$/":
            flags |= CharFlags.KEY_START | CharFlags.KEY_CONTINUE
        if ch in string.digits:
            flags |= CharFlags.DIGIT | CharFlags.KEY_CONTINUE
        if ch in "-.@":
            flags |= CharFlags.KEY_CONTINUE
        if ch in "{}[],;=:#/ \t\n\r":
            flags |= CharFlags.VALUE_END
        if ch in "\\\"'\n\r\t":
            flags |= CharFlags.ESCAPE
        if code < 0x20 or code == 0x7F:
            flags |= CharFlags.JSON_UNSAFE
        table[code] = flags
    return tuple(table)


CHAR_TABLE: Final[tuple[CharFlags, ...]] = _build_table()

# Characters that end an identifier even outside ASCII rules.
STRUCTURAL_CHARS: Final[frozenset[str]] = frozenset("{}[]=:,;#\"'")

# Line separators outside ASCII that still end an inline value.
UNICODE_LINE_BREAKS: Final[frozenset[str]] = frozenset("\u2028\u2029")


def flags_of(ch: str) -> CharFlags:
    """Flags for `ch`; characters outside the table have none."""
    code = ord(ch)
    if code < 256:
        return CHAR_TABLE[code]
    return CharFlags.NONE


def _is_unicode_word_char(ch: str) -> bool:
    return not ch.isspace() and ch.isprintable() and ch not in STRUCTURAL_CHARS


def is_key_start(ch: str) -> bool:
    if not ch:
        return False
    if ord(ch) < 0x80:
        return bool(CHAR_TABLE[ord(ch)] & CharFlags.KEY_START)
    return _is_unicode_word_char(ch)


def is_key_continue(ch: str) -> bool:
    if not ch:
        return False
    if ord(ch) < 0x80:
        return bool(CHAR_TABLE[ord(ch)] & CharFlags.KEY_CONTINUE)
    return _is_unicode_word_char(ch)


def is_digit(ch: str) -> bool:
    return bool(ch) and ord(ch) < 0x80 and bool(CHAR_TABLE[ord(ch)] & CharFlags.DIGIT)


def is_whitespace(ch: str) -> bool:
    """Blanks that do not end a line."""
    return bool(ch) and ord(ch) < 0x80 and bool(CHAR_TABLE[ord(ch)] & CharFlags.WHITESPACE)


def is_line_break(ch: str) -> bool:
    if not ch:
        return False
    if ord(ch) < 0x80:
        return bool(CHAR_TABLE[ord(ch)] & CharFlags.WHITESPACE_UNSAFE)
    return ch in UNICODE_LINE_BREAKS


def is_json_unsafe(ch: str) -> bool:
    return bool(ch) and ord(ch) < 0x80 and bool(CHAR_TABLE[ord(ch)] & CharFlags.JSON_UNSAFE)

"""Lexer for the UCL configuration language."""

from __future__ import annotations

import logging
import math
import re
import string
from collections.abc import Iterator
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Final

from .chars import (
    CharFlags,
    flags_of,
    is_digit,
    is_json_unsafe,
    is_key_continue,
    is_key_start,
    is_line_break,
    is_whitespace,
)
from .errors import ErrorKind, LexError
from .types import INT64_MAX, INT64_MIN, Position, Span, StringFormat, utf8_len

logger = logging.getLogger(__name__)


class TokenType(Enum):
    """Token types; the value is how the token is named in error messages."""

    OBJECT_START = "'{'"
    OBJECT_END = "'}'"
    ARRAY_START = "'['"
    ARRAY_END = "']'"
    COMMA = "','"
    SEMICOLON = "';'"
    EQUALS = "'='"
    COLON = "':'"
    PLUS = "'+'"
    STRING = "string"
    INTEGER = "integer"
    FLOAT = "float"
    TIME = "time"
    BOOLEAN = "boolean"
    NULL = "null"
    KEY = "key"
    COMMENT = "comment"
    EOF = "end of file"


@dataclass(slots=True)
class Token:
    """A lexer token."""

    type: TokenType
    value: str | int | float | bool | None
    span: Span
    lexeme: str
    had_newline_before: bool = False
    leading_whitespace: str = ""
    format: StringFormat | None = None
    needs_expansion: bool = False
    borrowed: bool = False
    end_index: int = field(default=0, repr=False)  # character index just past the token


class CommentKind(Enum):
    SINGLE_LINE = "single-line"
    MULTI_LINE = "multi-line"
    CPP_STYLE = "cpp-style"


@dataclass(frozen=True, slots=True)
class CommentInfo:
    """A comment seen while scanning, with the position of its first character."""

    text: str
    position: Position
    kind: CommentKind


@dataclass(slots=True)
class LexerConfig:
    """Options and resource ceilings for the lexer."""

    save_comments: bool = False
    allow_time_suffixes: bool = True
    allow_size_suffixes: bool = True
    size_suffix_binary: bool = False
    strict_unicode: bool = False
    max_string_length: int = 1024 * 1024
    max_nesting_depth: int = 128
    max_tokens: int = 1_000_000
    max_comment_length: int = 64 * 1024
    heredoc_allow_indented_terminator: bool = False


@dataclass(frozen=True, slots=True)
class LexerSnapshot:
    """Opaque lexer state used by the parser for one-token backtracking."""

    pos: int
    byte_pos: int
    line: int
    column: int
    current_char: str
    token_count: int
    nesting_depth: int
    last_token_start: Position
    last_token_end: Position
    last_token_had_newline: bool
    comment_count: int


SINGLE_CHAR_TOKENS: Final[dict[str, TokenType]] = {
    "}": TokenType.OBJECT_END,
    "]": TokenType.ARRAY_END,
    ",": TokenType.COMMA,
    ";": TokenType.SEMICOLON,
    "=": TokenType.EQUALS,
    ":": TokenType.COLON,
}

KEYWORDS: Final[dict[str, tuple[TokenType, bool | float | None]]] = {
    "true": (TokenType.BOOLEAN, True),
    "false": (TokenType.BOOLEAN, False),
    "null": (TokenType.NULL, None),
    "inf": (TokenType.FLOAT, math.inf),
    "infinity": (TokenType.FLOAT, math.inf),
    "nan": (TokenType.FLOAT, math.nan),
}

TIME_SUFFIXES: Final[dict[str, float]] = {
    "ms": 0.001,
    "s": 1.0,
    "min": 60.0,
    "h": 3600.0,
    "d": 86400.0,
    "w": 604800.0,
    "y": 31536000.0,
}

SIZE_EXPONENTS: Final[dict[str, int]] = {"k": 1, "m": 2, "g": 3, "t": 4}

RADIX_DIGITS: Final[dict[str, tuple[int, frozenset[str]]]] = {
    "x": (16, frozenset(string.hexdigits)),
    "b": (2, frozenset("01")),
    "o": (8, frozenset(string.octdigits)),
}

HEX_DIGITS: Final[frozenset[str]] = frozenset(string.hexdigits)
MAX_NUMBER_DIGITS: Final[int] = 1024
MAX_HEREDOC_TAG: Final[int] = 64

JSON_PLAIN_RE: Final[re.Pattern[str]] = re.compile(r'[^"\\$\x00-\x08\x0a-\x1f\x7f]*')
HEREDOC_TAG_RE: Final[re.Pattern[str]] = re.compile(r"[A-Z_][A-Z0-9_]*")
HEREDOC_TAG_CHAR_RE: Final[re.Pattern[str]] = re.compile(r"[A-Za-z0-9_]*")
LINE_END_RE: Final[re.Pattern[str]] = re.compile(r"\r\n|\r|\n")
SURROGATE_RE: Final[re.Pattern[str]] = re.compile(r"[\ud800-\udfff]")

# Characters after which `//` and `/*` may open a comment.
COMMENT_BOUNDARY: Final[frozenset[str]] = frozenset(" \t\r\n{}[],;")


def scan_dollars(text: str) -> tuple[bool, bool]:
    """Return (needs_expansion, has_escaped_dollar) for raw string content.

    `$$` is an escaped dollar and never requests expansion on its own.
    """
    has_pair = False
    i = text.find("$")
    while i != -1:
        if text.startswith("$$", i):
            has_pair = True
            i = text.find("$", i + 2)
        else:
            return True, has_pair
    return False, has_pair


class Lexer:
    """Tokenizer for UCL source text."""

    __slots__ = (
        "_comments",
        "byte_pos",
        "column",
        "config",
        "last_token_end",
        "last_token_had_newline",
        "last_token_start",
        "length",
        "line",
        "nesting_depth",
        "pos",
        "source",
        "token_count",
    )

    def __init__(self, source: str | bytes, config: LexerConfig | None = None) -> None:
        self.config = config if config is not None else LexerConfig()
        self.source = self._decode(source)
        self.length = len(self.source)
        self.pos = 0  # character position
        self.byte_pos = 0  # byte position for spans
        self.line = 1
        self.column = 1
        self.token_count = 0
        self.nesting_depth = 0
        self.last_token_start = Position()
        self.last_token_end = Position()
        self.last_token_had_newline = False
        self._comments: list[CommentInfo] = []

    def _decode(self, source: str | bytes) -> str:
        """Decode byte input and apply strict Unicode validation."""
        if isinstance(source, (bytes, bytearray, memoryview)):
            data = bytes(source)
            if not self.config.strict_unicode:
                return data.decode("utf-8", "replace")
            try:
                return data.decode("utf-8")
            except UnicodeDecodeError as exc:
                at = Position().advance_by(data[: exc.start].decode("utf-8"))
                raise LexError(
                    ErrorKind.INVALID_UTF8,
                    f"invalid UTF-8 byte 0x{data[exc.start]:02x}: {exc.reason}",
                    at,
                ) from exc
        if self.config.strict_unicode:
            match = SURROGATE_RE.search(source)
            if match:
                at = Position().advance_by(source[: match.start()])
                raise LexError(
                    ErrorKind.INVALID_UTF8,
                    f"lone surrogate U+{ord(match.group()):04X} is not valid Unicode",
                    at,
                )
        return source

    # State accessors

    @property
    def position(self) -> Position:
        return Position(self.line, self.column, self.byte_pos)

    @property
    def comments(self) -> list[CommentInfo]:
        return self._comments

    @property
    def comment_count(self) -> int:
        return len(self._comments)

    def clear_comments(self) -> None:
        self._comments.clear()

    def snapshot(self) -> LexerSnapshot:
        return LexerSnapshot(
            pos=self.pos,
            byte_pos=self.byte_pos,
            line=self.line,
            column=self.column,
            current_char=self._peek(),
            token_count=self.token_count,
            nesting_depth=self.nesting_depth,
            last_token_start=self.last_token_start,
            last_token_end=self.last_token_end,
            last_token_had_newline=self.last_token_had_newline,
            comment_count=len(self._comments),
        )

    def restore(self, snapshot: LexerSnapshot) -> None:
        """Rewind to `snapshot`. The token counter is never rewound."""
        self.pos = snapshot.pos
        self.byte_pos = snapshot.byte_pos
        self.line = snapshot.line
        self.column = snapshot.column
        self.nesting_depth = snapshot.nesting_depth
        self.last_token_start = snapshot.last_token_start
        self.last_token_end = snapshot.last_token_end
        self.last_token_had_newline = snapshot.last_token_had_newline
        del self._comments[snapshot.comment_count :]

    # Character movement

    def _peek(self, offset: int = 0) -> str:
        """Look ahead in the source."""
        idx = self.pos + offset
        if idx >= self.length:
            return ""
        return self.source[idx]

    def _advance(self) -> str:
        """Consume and return the next character."""
        if self.pos >= self.length:
            return ""
        ch = self.source[self.pos]
        self.pos += 1
        self.byte_pos += utf8_len(ch)
        if ch == "\n":
            # \r\n already counted at the \r
            if not (self.pos >= 2 and self.source[self.pos - 2] == "\r"):
                self.line += 1
            self.column = 1
        elif ch == "\r":
            self.line += 1
            self.column = 1
        else:
            self.column += 1
        return ch

    def _consume(self, count: int) -> None:
        for _ in range(count):
            self._advance()

    def _error(self, kind: ErrorKind, message: str, start: Position | None = None) -> LexError:
        at = start if start is not None else self.position
        return LexError(kind, message, at, span=Span(at, max(at, self.position, key=_offset)))

    def _check_string_length(self, value: str, start: Position) -> None:
        if len(value) > self.config.max_string_length:
            raise self._error(
                ErrorKind.RESOURCE_LIMIT_EXCEEDED,
                f"string of {len(value)} characters exceeds the limit of "
                f"{self.config.max_string_length}",
                start,
            )

    def _make(
        self,
        token_type: TokenType,
        value: str | int | float | bool | None,
        start: Position,
        start_index: int,
        **extra: Any,
    ) -> Token:
        return Token(
            token_type,
            value,
            Span(start, self.position),
            self.source[start_index : self.pos],
            end_index=self.pos,
            **extra,
        )

    # Whitespace and comments

    def _skip_whitespace(self) -> tuple[bool, str]:
        """Skip blanks and line breaks, return (had_newline, skipped_text)."""
        had_newline = False
        start = self.pos
        while self.pos < self.length:
            ch = self.source[self.pos]
            if is_whitespace(ch):
                self._advance()
            elif is_line_break(ch):
                had_newline = True
                self._advance()
            elif ord(ch) >= 0x80 and ch.isspace():
                self._advance()
            else:
                break
        return had_newline, self.source[start : self.pos]

    def _comment_allowed(self) -> bool:
        return self.pos == 0 or self.source[self.pos - 1] in COMMENT_BOUNDARY

    def _read_line_comment(self) -> str:
        start = self.position
        start_index = self.pos
        while self.pos < self.length and not is_line_break(self.source[self.pos]):
            self._advance()
            if self.pos - start_index > self.config.max_comment_length:
                raise self._error(
                    ErrorKind.RESOURCE_LIMIT_EXCEEDED,
                    f"comment exceeds the limit of {self.config.max_comment_length} characters",
                    start,
                )
        return self.source[start_index : self.pos]

    def _read_block_comment(self) -> str:
        """Read a `/* */` comment; nested comments must be balanced."""
        start = self.position
        start_index = self.pos
        self._consume(2)
        depth = 1
        while depth:
            if self.pos >= self.length:
                raise self._error(
                    ErrorKind.UNTERMINATED_COMMENT, "unterminated multi-line comment", start
                )
            ch = self.source[self.pos]
            if ch == "/" and self._peek(1) == "*":
                self._consume(2)
                depth += 1
            elif ch == "*" and self._peek(1) == "/":
                self._consume(2)
                depth -= 1
            elif ch in ('"', "'"):
                self._skip_quoted_in_comment(ch)
            else:
                self._advance()
            if self.pos - start_index > self.config.max_comment_length:
                raise self._error(
                    ErrorKind.RESOURCE_LIMIT_EXCEEDED,
                    f"comment exceeds the limit of {self.config.max_comment_length} characters",
                    start,
                )
        return self.source[start_index : self.pos]

    def _skip_quoted_in_comment(self, quote: str) -> None:
        """Skip a quoted run on the current line; a lone quote is plain text."""
        i = self.pos + 1
        while i < self.length:
            ch = self.source[i]
            if ch == "\\":
                i += 2
                continue
            if ch == quote:
                self._consume(i + 1 - self.pos)
                return
            if ch in ("\r", "\n"):
                break
            i += 1
        self._advance()

    # Tokens

    def next_token(self) -> Token:
        """Return the next token."""
        self.token_count += 1
        if self.token_count > self.config.max_tokens:
            raise self._error(
                ErrorKind.RESOURCE_LIMIT_EXCEEDED,
                f"input exceeds the limit of {self.config.max_tokens} tokens",
            )

        had_newline = False
        while True:
            newline, leading = self._skip_whitespace()
            had_newline = had_newline or newline
            if self.pos >= self.length:
                token = self._make(TokenType.EOF, None, self.position, self.pos)
                break

            ch = self.source[self.pos]
            start = self.position
            start_index = self.pos
            if ch == "#":
                kind = CommentKind.SINGLE_LINE
                text = self._read_line_comment()
            elif ch == "/" and self._peek(1) == "/" and self._comment_allowed():
                kind = CommentKind.CPP_STYLE
                text = self._read_line_comment()
            elif ch == "/" and self._peek(1) == "*" and self._comment_allowed():
                kind = CommentKind.MULTI_LINE
                text = self._read_block_comment()
            else:
                token = self._read_token(ch, start, start_index)
                break

            self._comments.append(CommentInfo(text, start, kind))
            if self.config.save_comments:
                token = self._make(TokenType.COMMENT, text, start, start_index)
                break
            if "\n" in text or "\r" in text:
                had_newline = True

        token.had_newline_before = had_newline
        token.leading_whitespace = leading
        self.last_token_start = token.span.start
        self.last_token_end = token.span.end
        self.last_token_had_newline = had_newline
        return token

    def _read_token(self, ch: str, start: Position, start_index: int) -> Token:
        match ch:
            case "{" | "[":
                self._advance()
                self.nesting_depth += 1
                if self.nesting_depth > self.config.max_nesting_depth:
                    raise self._error(
                        ErrorKind.MAX_DEPTH_EXCEEDED,
                        f"nesting depth exceeds the limit of {self.config.max_nesting_depth}",
                        start,
                    )
                token_type = TokenType.OBJECT_START if ch == "{" else TokenType.ARRAY_START
                return self._make(token_type, ch, start, start_index)
            case "}" | "]" | "," | ";" | "=" | ":":
                self._advance()
                if ch in ("}", "]"):
                    self.nesting_depth = max(0, self.nesting_depth - 1)
                return self._make(SINGLE_CHAR_TOKENS[ch], ch, start, start_index)
            case '"':
                if self._peek(1) == '"' and self._peek(2) == '"':
                    return self._read_triple_quoted_string(start, start_index)
                return self._read_json_string(start, start_index)
            case "'":
                return self._read_single_quoted_string(start, start_index)
            case "<":
                if self._peek(1) == "<":
                    return self._read_heredoc(start, start_index)
                raise self._error(ErrorKind.UNEXPECTED_CHARACTER, "unexpected character '<'")
            case "+":
                if self._starts_signed_number():
                    return self._read_number(start, start_index)
                self._advance()
                return self._make(TokenType.PLUS, "+", start, start_index)
            case "-":
                return self._read_number(start, start_index)
            case ".":
                if is_digit(self._peek(1)):
                    return self._read_number(start, start_index)
                if is_key_continue(self._peek(1)):
                    return self._read_identifier(start, start_index)
                raise self._error(ErrorKind.UNEXPECTED_CHARACTER, "unexpected character '.'")

        if is_digit(ch):
            return self._read_number(start, start_index)
        if is_key_start(ch):
            return self._read_identifier(start, start_index)
        raise self._error(
            ErrorKind.UNEXPECTED_CHARACTER, f"unexpected character {ch!r} (U+{ord(ch):04X})"
        )

    def _starts_signed_number(self) -> bool:
        nxt = self._peek(1)
        if is_digit(nxt):
            return True
        if nxt == "." and is_digit(self._peek(2)):
            return True
        return self.source.startswith("inf", self.pos + 1)

    def _read_identifier(self, start: Position, start_index: int) -> Token:
        """Read a bare word; reserved words become literal tokens."""
        self._advance()
        while self.pos < self.length and is_key_continue(self.source[self.pos]):
            self._advance()
        text = self.source[start_index : self.pos]
        self._check_string_length(text, start)
        if text in KEYWORDS:
            token_type, value = KEYWORDS[text]
            return self._make(token_type, value, start, start_index)
        return self._make(
            TokenType.KEY, text, start, start_index, format=StringFormat.UNQUOTED, borrowed=True
        )

    # Strings

    def _read_json_string(self, start: Position, start_index: int) -> Token:
        """Read a double-quoted string."""
        self._advance()  # opening "

        # Fast path: no escapes, no dollars, no control characters
        plain_end = JSON_PLAIN_RE.match(self.source, self.pos).end()
        if plain_end < self.length and self.source[plain_end] == '"':
            value = self.source[self.pos : plain_end]
            self._consume(plain_end - self.pos + 1)
            self._check_string_length(value, start)
            return self._make(
                TokenType.STRING, value, start, start_index, format=StringFormat.JSON, borrowed=True
            )

        parts: list[str] = []
        dollar_pairs: list[int] = []
        needs_expansion = False
        while True:
            if self.pos >= self.length:
                raise self._error(ErrorKind.UNTERMINATED_STRING, "unterminated string", start)
            ch = self.source[self.pos]
            if ch == '"':
                self._advance()
                break
            if ch == "\\":
                parts.append(self._read_escape(start))
                continue
            if ch == "$":
                if self._peek(1) == "$":
                    dollar_pairs.append(len(parts))
                    parts.append("$$")
                    self._consume(2)
                    continue
                needs_expansion = True
            elif is_json_unsafe(ch) and ch != "\t":
                raise self._error(
                    ErrorKind.UNEXPECTED_CHARACTER,
                    f"unescaped control character U+{ord(ch):04X} in string",
                )
            parts.append(ch)
            self._advance()

        if not needs_expansion:
            for idx in dollar_pairs:
                parts[idx] = "$"
        value = "".join(parts)
        self._check_string_length(value, start)
        return self._make(
            TokenType.STRING,
            value,
            start,
            start_index,
            format=StringFormat.JSON,
            needs_expansion=needs_expansion,
        )

    def _read_escape(self, string_start: Position) -> str:
        """Read a backslash escape inside a double-quoted string."""
        escape_start = self.position
        self._advance()  # backslash
        escaped = self._advance()
        match escaped:
            case "n":
                return "\n"
            case "r":
                return "\r"
            case "t":
                return "\t"
            case "\\" | '"' | "/":
                return escaped
            case "b":
                return "\b"
            case "f":
                return "\f"
            case "u":
                return self._read_unicode_escape(escape_start)
            case "x":
                return self._read_hex_escape(escape_start)
            case "":
                raise self._error(ErrorKind.UNTERMINATED_STRING, "unterminated string", string_start)
        raise LexError(
            ErrorKind.INVALID_ESCAPE,
            f"invalid escape sequence: \\{escaped}"
            if escaped.isprintable()
            else f"invalid escape sequence: backslash followed by U+{ord(escaped):04X}",
            escape_start,
            span=Span(escape_start, self.position),
            suggestion="Escape the backslash itself as \\\\",
        )

    def _read_unicode_escape(self, escape_start: Position) -> str:
        """Read `\\uXXXX` or `\\u{X...}` after the `u`."""
        digits: list[str] = []
        if self._peek() == "{":
            self._advance()
            while self._peek() != "}":
                ch = self._peek()
                if ch not in HEX_DIGITS or not ch or len(digits) == 6:
                    raise self._unicode_error(
                        "expected 1-6 hex digits and '}' in \\u{...} escape", escape_start
                    )
                digits.append(self._advance())
            self._advance()  # }
            if not digits:
                raise self._unicode_error("empty \\u{} escape", escape_start)
        else:
            for _ in range(4):
                ch = self._peek()
                if not ch or ch not in HEX_DIGITS:
                    raise self._unicode_error("expected 4 hex digits after \\u", escape_start)
                digits.append(self._advance())

        code = int("".join(digits), 16)
        if 0xD800 <= code <= 0xDFFF:
            raise self._unicode_error(
                f"surrogate code point U+{code:04X} cannot be escaped", escape_start
            )
        if code > 0x10FFFF:
            raise self._unicode_error(
                f"code point U+{code:X} is beyond U+10FFFF", escape_start
            )
        return chr(code)

    def _unicode_error(self, message: str, escape_start: Position) -> LexError:
        return LexError(
            ErrorKind.INVALID_UNICODE_ESCAPE,
            message,
            escape_start,
            span=Span(escape_start, self.position),
        )

    def _read_hex_escape(self, escape_start: Position) -> str:
        digits = ""
        for _ in range(2):
            ch = self._peek()
            if not ch or ch not in HEX_DIGITS:
                raise LexError(
                    ErrorKind.INVALID_ESCAPE,
                    "expected 2 hex digits after \\x",
                    escape_start,
                    span=Span(escape_start, self.position),
                )
            digits += self._advance()
        code = int(digits, 16)
        if code > 0x7F and self.config.strict_unicode:
            raise LexError(
                ErrorKind.INVALID_ESCAPE,
                f"\\x{digits} is not a Unicode character; use \\u00{digits.upper()}",
                escape_start,
                span=Span(escape_start, self.position),
            )
        return chr(code)

    def _read_triple_quoted_string(self, start: Position, start_index: int) -> Token:
        """Read a `\"\"\"...\"\"\"` string; content is taken verbatim."""
        self._consume(3)
        end = self.source.find('"""', self.pos)
        if end == -1:
            self._consume(self.length - self.pos)
            raise self._error(
                ErrorKind.UNTERMINATED_STRING, "unterminated triple-quoted string", start
            )
        value = self.source[self.pos : end]
        self._consume(end - self.pos + 3)
        needs_expansion, has_pair = scan_dollars(value)
        if has_pair and not needs_expansion:
            value = value.replace("$$", "$")
        self._check_string_length(value, start)
        return self._make(
            TokenType.STRING,
            value,
            start,
            start_index,
            format=StringFormat.JSON,
            needs_expansion=needs_expansion,
            borrowed=not has_pair or needs_expansion,
        )

    def _read_single_quoted_string(self, start: Position, start_index: int) -> Token:
        """Read a single-quoted string; only `\\'` and line continuations are escapes."""
        self._advance()  # opening '
        parts: list[str] = []
        rewritten = False
        while True:
            if self.pos >= self.length:
                raise self._error(ErrorKind.UNTERMINATED_STRING, "unterminated string", start)
            ch = self.source[self.pos]
            if ch == "'":
                self._advance()
                break
            if ch == "\\":
                nxt = self._peek(1)
                if nxt == "'":
                    parts.append("'")
                    self._consume(2)
                    rewritten = True
                elif nxt == "\n":
                    self._consume(2)
                    rewritten = True
                elif nxt == "\r":
                    self._consume(2)
                    if self._peek() == "\n":
                        self._advance()
                    rewritten = True
                elif nxt == "":
                    self._advance()
                else:
                    parts.append(ch + nxt)
                    self._consume(2)
                continue
            parts.append(ch)
            self._advance()

        value = "".join(parts)
        self._check_string_length(value, start)
        return self._make(
            TokenType.STRING,
            value,
            start,
            start_index,
            format=StringFormat.SINGLE,
            borrowed=not rewritten,
        )

    def _read_heredoc(self, start: Position, start_index: int) -> Token:
        """Read `<<TAG`, content lines, and a line holding only TAG."""
        self._consume(2)
        tag_match = HEREDOC_TAG_CHAR_RE.match(self.source, self.pos)
        tag = tag_match.group()
        self._consume(len(tag))
        if not tag:
            raise self._error(ErrorKind.INVALID_HEREDOC, "missing heredoc tag after '<<'", start)
        if len(tag) > MAX_HEREDOC_TAG:
            raise self._error(
                ErrorKind.INVALID_HEREDOC,
                f"heredoc tag is longer than {MAX_HEREDOC_TAG} characters",
                start,
            )
        if not HEREDOC_TAG_RE.fullmatch(tag):
            raise self._error(
                ErrorKind.INVALID_HEREDOC,
                f"heredoc tag '{tag}' must be uppercase letters, digits or underscores "
                "and must not start with a digit",
                start,
            )

        while self._peek() in (" ", "\t"):
            self._advance()
        ch = self._peek()
        if ch == "\r":
            self._advance()
            if self._peek() == "\n":
                self._advance()
        elif ch == "\n":
            self._advance()
        else:
            raise self._error(
                ErrorKind.INVALID_HEREDOC,
                f"only whitespace may follow the heredoc tag '{tag}' on its line",
                start,
            )

        relaxed = self.config.heredoc_allow_indented_terminator
        content_start = self.pos
        while True:
            if self.pos >= self.length:
                raise self._error(
                    ErrorKind.INVALID_HEREDOC, f"heredoc terminator '{tag}' not found", start
                )
            line_end = LINE_END_RE.search(self.source, self.pos)
            end = line_end.start() if line_end else self.length
            line = self.source[self.pos : end]
            if line == tag or (relaxed and line.strip(" \t") == tag):
                value = self.source[content_start : self.pos]
                # The terminator's own line break is left for the next token
                self._consume(end - self.pos)
                break
            self._consume((line_end.end() if line_end else self.length) - self.pos)

        needs_expansion, has_pair = scan_dollars(value)
        if has_pair and not needs_expansion:
            value = value.replace("$$", "$")
        self._check_string_length(value, start)
        return self._make(
            TokenType.STRING,
            value,
            start,
            start_index,
            format=StringFormat.HEREDOC,
            needs_expansion=needs_expansion,
            borrowed=not has_pair or needs_expansion,
        )

    # Numbers

    def _restore_raw(self, state: tuple[int, int, int, int]) -> None:
        self.pos, self.byte_pos, self.line, self.column = state

    def _read_digits(self, start: Position) -> str:
        digits_start = self.pos
        while is_digit(self._peek()):
            if self.pos - digits_start >= MAX_NUMBER_DIGITS:
                raise self._error(
                    ErrorKind.INVALID_NUMBER,
                    f"number too long (max {MAX_NUMBER_DIGITS} digits)",
                    start,
                )
            self._advance()
        return self.source[digits_start : self.pos]

    def _read_number(self, start: Position, start_index: int) -> Token:
        """Read a decimal, radix or special number with an optional unit suffix."""
        saved = (self.pos, self.byte_pos, self.line, self.column)
        sign = ""
        if self._peek() in ("+", "-"):
            sign = self._advance()
            if self.source.startswith("inf", self.pos):
                self._consume(8 if self.source.startswith("infinity", self.pos) else 3)
                if is_key_continue(self._peek()):
                    raise self._error(
                        ErrorKind.INVALID_NUMBER, "invalid special number literal", start
                    )
                value = -math.inf if sign == "-" else math.inf
                return self._make(TokenType.FLOAT, value, start, start_index)

        if self._peek() == "0" and self._peek(1).lower() in RADIX_DIGITS:
            return self._read_radix_number(sign, start, start_index)

        int_digits = self._read_digits(start)
        frac_digits = ""
        exponent = ""
        is_float = False

        if self._peek() == ".":
            nxt = self._peek(1)
            if is_digit(nxt):
                self._advance()
                frac_digits = self._read_digits(start)
                is_float = True
            elif not int_digits:
                raise self._error(
                    ErrorKind.INVALID_NUMBER, "expected digits after decimal point", start
                )
            elif nxt == ".":
                raise self._error(
                    ErrorKind.INVALID_NUMBER, "multiple consecutive decimal points", start
                )
            elif not sign and is_key_continue(nxt):
                self._restore_raw(saved)
                return self._read_identifier(start, start_index)
            else:
                raise self._error(
                    ErrorKind.INVALID_NUMBER, "number cannot end with decimal point", start
                )
        elif not int_digits:
            raise self._error(ErrorKind.INVALID_NUMBER, "expected digits after sign", start)

        if self._peek() in ("e", "E"):
            nxt = self._peek(1)
            if is_digit(nxt) or (nxt in ("+", "-") and nxt and is_digit(self._peek(2))):
                exp_start = self.pos
                self._advance()
                if self._peek() in ("+", "-"):
                    self._advance()
                self._read_digits(start)
                exponent = self.source[exp_start : self.pos]
                is_float = True
            elif nxt in ("e", "E"):
                raise self._error(ErrorKind.INVALID_NUMBER, "multiple exponent markers", start)
            elif not (nxt.isascii() and nxt.isalpha()):
                raise self._error(ErrorKind.INVALID_NUMBER, "incomplete exponent", start)

        if is_float and self._peek() == ".":
            # Dotted run such as an IPv4 address
            self._restore_raw(saved)
            token = self._read_identifier(start, start_index)
            logger.debug("re-lexed %r at %s as identifier", token.lexeme, start)
            return token

        if len(int_digits) > 1 and int_digits[0] == "0":
            raise self._error(
                ErrorKind.INVALID_NUMBER, "leading zeros are not allowed in decimal numbers", start
            )

        body = sign + int_digits
        if frac_digits:
            body += "." + frac_digits
        body += exponent

        suffix_end = self.pos
        while suffix_end < self.length and self.source[suffix_end] in string.ascii_letters:
            suffix_end += 1
        suffix = self.source[self.pos : suffix_end]

        if suffix and self.config.allow_time_suffixes and suffix in TIME_SUFFIXES:
            self._consume(len(suffix))
            seconds = float(body) * TIME_SUFFIXES[suffix]
            return self._make(TokenType.TIME, seconds, start, start_index)

        multiplier = self._size_multiplier(suffix) if self.config.allow_size_suffixes else None
        if multiplier is not None:
            if is_float:
                raise self._error(
                    ErrorKind.INVALID_NUMBER,
                    "size suffixes cannot be used with floating point numbers",
                    start,
                )
            self._consume(len(suffix))
            value = int(body) * multiplier
            if not INT64_MIN <= value <= INT64_MAX:
                raise self._error(
                    ErrorKind.INVALID_NUMBER, "number overflow with size suffix", start
                )
            return self._make(TokenType.INTEGER, value, start, start_index)

        if is_float:
            return self._make(TokenType.FLOAT, float(body), start, start_index)
        value = int(body)
        if not INT64_MIN <= value <= INT64_MAX:
            raise self._error(
                ErrorKind.INVALID_NUMBER, f"integer {body} does not fit in 64 bits", start
            )
        return self._make(TokenType.INTEGER, value, start, start_index)

    def _size_multiplier(self, suffix: str) -> int | None:
        if not suffix:
            return None
        if suffix in ("b", "B"):
            return 1
        lowered = suffix.lower()
        if len(suffix) == 1 and lowered in SIZE_EXPONENTS:
            base = 1024 if self.config.size_suffix_binary else 1000
            return base ** SIZE_EXPONENTS[lowered]
        if len(suffix) == 2 and lowered[1] == "b" and lowered[0] in SIZE_EXPONENTS:
            return 1024 ** SIZE_EXPONENTS[lowered[0]]
        return None

    def _read_radix_number(self, sign: str, start: Position, start_index: int) -> Token:
        """Read `0x`, `0b` or `0o` literals."""
        self._advance()  # 0
        marker = self._advance().lower()
        base, valid = RADIX_DIGITS[marker]
        digits_start = self.pos
        while self._peek() and self._peek() in valid:
            if self.pos - digits_start >= MAX_NUMBER_DIGITS:
                raise self._error(
                    ErrorKind.INVALID_NUMBER,
                    f"number too long (max {MAX_NUMBER_DIGITS} digits)",
                    start,
                )
            self._advance()
        digits = self.source[digits_start : self.pos]
        if not digits:
            raise self._error(ErrorKind.INVALID_NUMBER, f"expected digits after 0{marker}", start)
        if is_key_continue(self._peek()) and self._peek() not in ("/", "$"):
            raise self._error(
                ErrorKind.INVALID_NUMBER,
                f"invalid digit {self._peek()!r} in base-{base} number",
                start,
            )
        value = int(digits, base)
        if sign == "-":
            value = -value
        if not INT64_MIN <= value <= INT64_MAX:
            raise self._error(
                ErrorKind.INVALID_NUMBER,
                f"0{marker}{digits} does not fit in 64 bits",
                start,
            )
        return self._make(TokenType.INTEGER, value, start, start_index)

    # Recovery

    def recover_to_token_boundary(self) -> None:
        """Skip at least one character, then up to the next plausible token start."""
        self._advance()
        while self.pos < self.length:
            ch = self.source[self.pos]
            if flags_of(ch) & (CharFlags.VALUE_END | CharFlags.DIGIT | CharFlags.KEY_START):
                return
            if ch in ('"', "'", "+", "-") or is_key_start(ch):
                return
            self._advance()


def _offset(pos: Position) -> int:
    return pos.offset


def tokenize(source: str | bytes, config: LexerConfig | None = None) -> Iterator[Token]:
    """Yield every token of `source`, ending with the EOF token."""
    lexer = Lexer(source, config)
    while True:
        token = lexer.next_token()
        yield token
        if token.type == TokenType.EOF:
            return

"""Parser for the UCL configuration language."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from enum import Enum, auto
from typing import Any, Final

from .errors import DuplicateKeyError, ErrorKind, ParseError
from .hooks import ParsingHooks
from .lexer import Lexer, LexerConfig, Token, TokenType
from .types import Position, UclValue
from .variables import MapVariableHandler, VariableContext, VariableExpander, VariableHandler

logger = logging.getLogger(__name__)


class DuplicateKeyBehavior(Enum):
    """What happens when a key is assigned twice in one object."""

    ERROR = "error"
    IMPLICIT_ARRAY = "implicit_array"
    OVERRIDE = "override"


@dataclass(slots=True)
class ParserConfig:
    """Parser limits and the duplicate-key policy."""

    max_depth: int = 128
    duplicate_key_behavior: DuplicateKeyBehavior = DuplicateKeyBehavior.IMPLICIT_ARRAY
    preserve_key_order: bool = True  # dicts are always insertion-ordered


class State(Enum):
    """Where the object loop is within one member."""

    EXPECT_KEY_OR_CLOSE = auto()
    EXPECT_SEPARATOR_OR_VALUE = auto()
    EXPECT_VALUE = auto()
    EXPECT_SEP_OR_CLOSE = auto()


KEY_TOKENS: Final = frozenset(
    {TokenType.KEY, TokenType.STRING, TokenType.BOOLEAN, TokenType.INTEGER, TokenType.FLOAT}
)
INLINE_STARTS: Final = frozenset(
    {
        TokenType.KEY,
        TokenType.STRING,
        TokenType.INTEGER,
        TokenType.FLOAT,
        TokenType.TIME,
        TokenType.BOOLEAN,
        TokenType.NULL,
    }
)
INLINE_TERMINATORS: Final = frozenset(
    {
        TokenType.SEMICOLON,
        TokenType.COMMA,
        TokenType.OBJECT_START,
        TokenType.OBJECT_END,
        TokenType.ARRAY_START,
        TokenType.ARRAY_END,
        TokenType.EOF,
    }
)
ADJACENT_DELIMITERS: Final = frozenset(
    {TokenType.OBJECT_START, TokenType.OBJECT_END, TokenType.ARRAY_START, TokenType.ARRAY_END}
)

BARE_KEYWORDS: Final[dict[str, bool | float | None]] = {
    "true": True,
    "yes": True,
    "on": True,
    "false": False,
    "no": False,
    "off": False,
    "null": None,
    "inf": float("inf"),
    "infinity": float("inf"),
    "nan": float("nan"),
}

SECTION_KEYWORD: Final[str] = "section"
CONCAT_MESSAGE: Final[str] = "string concatenation requires quoted strings on both sides of '+'"


class Parser:
    """Parser for UCL documents."""

    __slots__ = ("config", "context", "current", "depth", "expander", "hooks", "lexer", "source")

    def __init__(
        self,
        source: str | bytes,
        *,
        config: ParserConfig | None = None,
        lexer_config: LexerConfig | None = None,
        variable_handler: VariableHandler | None = None,
        hooks: ParsingHooks | None = None,
    ) -> None:
        self.config = config if config is not None else ParserConfig()
        self.lexer = Lexer(source, lexer_config)
        self.source = self.lexer.source
        handler = variable_handler if variable_handler is not None else MapVariableHandler()
        self.expander = VariableExpander(handler)
        self.hooks = hooks if hooks is not None else ParsingHooks()
        self.context = VariableContext()
        self.depth = 0
        self.current = self._next_significant()

    # Token movement

    def _next_significant(self) -> Token:
        """Next non-comment token; a line break before or inside a comment carries over."""
        token = self.lexer.next_token()
        newline = False
        while token.type == TokenType.COMMENT:
            text = str(token.value)
            newline = newline or token.had_newline_before or "\n" in text or "\r" in text
            token = self.lexer.next_token()
        if newline:
            token.had_newline_before = True
        return token

    def _advance(self) -> Token:
        """Consume and return the current token."""
        prev = self.current
        self.current = self._next_significant()
        return prev

    def _check(self, *types: TokenType) -> bool:
        """Check if current token matches any of the given types."""
        return self.current.type in types

    def _expect(self, token_type: TokenType) -> Token:
        """Expect a specific token type."""
        if self.current.type != token_type:
            raise self._unexpected(self.current, token_type.value)
        return self._advance()

    def _peek_is_object_start(self) -> bool:
        """Whether the token after the current one is `{`, without consuming anything."""
        snapshot = self.lexer.snapshot()
        try:
            token = self.lexer.next_token()
            while token.type == TokenType.COMMENT:
                token = self.lexer.next_token()
            return token.type == TokenType.OBJECT_START
        finally:
            self.lexer.restore(snapshot)

    def _continues_inline(self) -> bool:
        return not self.current.had_newline_before and self.current.type not in INLINE_TERMINATORS

    def _unexpected(self, token: Token, expected: str) -> ParseError:
        if token.type == TokenType.PLUS:
            return ParseError(
                ErrorKind.UNEXPECTED_TOKEN, CONCAT_MESSAGE, token.span.start, span=token.span
            )
        return ParseError(
            ErrorKind.UNEXPECTED_TOKEN,
            f"expected {expected}, got {token.type.value}",
            token.span.start,
            span=token.span,
        )

    # Hook plumbing

    def _context_at(self, position: Position) -> VariableContext:
        self.context.position = position
        return self.context

    def _expand(self, token: Token) -> str:
        text = str(token.value)
        if token.needs_expansion:
            return self.expander.expand(text, self._context_at(token.span.start))
        return text

    def _bare_text(self, token: Token) -> str:
        text = str(token.value)
        if "$" in text:
            return self.expander.expand(text, self._context_at(token.span.start))
        return text

    def _validate(self, value: UclValue, position: Position) -> UclValue:
        if not self.hooks.validation_hooks:
            return value
        return self.hooks.validate_value(value, self._context_at(position))

    def _finish_string(self, text: str, first: Token) -> UclValue:
        context = self._context_at(first.span.start)
        return self._validate(self.hooks.process_string(text, context), first.span.start)

    def _enter(self, token: Token) -> None:
        self.depth += 1
        if self.depth > self.config.max_depth:
            raise ParseError(
                ErrorKind.MAX_DEPTH_EXCEEDED,
                f"nesting depth exceeds the limit of {self.config.max_depth}",
                token.span.start,
                span=token.span,
            )

    def _leave(self) -> None:
        self.depth -= 1

    # Document

    def parse_document(self) -> UclValue:
        """Parse a complete document: an explicit `{...}`/`[...]` root or an implicit object."""
        if self._check(TokenType.OBJECT_START, TokenType.ARRAY_START):
            root = self.parse_value()
            if not self._check(TokenType.EOF):
                raise self._unexpected(self.current, "end of file after the root value")
            logger.debug("parsed explicit %s root", type(root).__name__)
            return root

        root = self._validate(self._parse_object_body(closing=False), Position())
        logger.debug("parsed implicit root with %d top-level keys", len(root))
        return root

    # Objects

    def parse_object(self) -> dict[str, UclValue]:
        """Parse `{ ... }`."""
        open_token = self._expect(TokenType.OBJECT_START)
        self._enter(open_token)
        obj = self._parse_object_body(closing=True)
        self._leave()
        return self._validate(obj, open_token.span.start)

    def _parse_object_body(self, *, closing: bool) -> dict[str, UclValue]:
        """Parse members up to `}` (when `closing`) or end of file."""
        obj: dict[str, UclValue] = {}
        state = State.EXPECT_KEY_OR_CLOSE
        key = ""
        key_token = self.current

        while True:
            token = self.current
            match state:
                case State.EXPECT_KEY_OR_CLOSE | State.EXPECT_SEP_OR_CLOSE:
                    if token.type == TokenType.OBJECT_END and closing:
                        self._advance()
                        return obj
                    if token.type == TokenType.EOF:
                        if not closing:
                            return obj
                        raise ParseError(
                            ErrorKind.INVALID_OBJECT,
                            "unterminated object, expected '}' before end of file",
                            token.span.start,
                        )
                    if token.type in (TokenType.COMMA, TokenType.SEMICOLON):
                        self._advance()
                        state = State.EXPECT_KEY_OR_CLOSE
                        continue
                    if token.type not in KEY_TOKENS:
                        expected = (
                            "',', ';', key, or '}'"
                            if state == State.EXPECT_SEP_OR_CLOSE
                            else "key or '}'"
                        )
                        raise self._unexpected(token, expected)
                    key_token = self._advance()
                    key = self._parse_key(key_token)
                    state = State.EXPECT_SEPARATOR_OR_VALUE

                case State.EXPECT_SEPARATOR_OR_VALUE:
                    if token.type in (TokenType.EQUALS, TokenType.COLON):
                        self._advance()
                        state = State.EXPECT_VALUE
                        continue
                    self.context.push_key(key)
                    if (
                        key_token.type == TokenType.KEY
                        and key_token.value == SECTION_KEYWORD
                        and token.type in (TokenType.KEY, TokenType.STRING)
                        and not token.had_newline_before
                    ):
                        value = self._parse_section_path()
                    elif (
                        token.type in (TokenType.KEY, TokenType.STRING)
                        and not token.had_newline_before
                        and self._peek_is_object_start()
                    ):
                        value = self._parse_nested_block()
                    else:
                        value = self._parse_implicit_value()
                    self.context.pop_key()
                    self._insert(obj, key, value, key_token)
                    state = State.EXPECT_SEP_OR_CLOSE

                case State.EXPECT_VALUE:
                    self.context.push_key(key)
                    value = self.parse_value()
                    self.context.pop_key()
                    self._insert(obj, key, value, key_token)
                    state = State.EXPECT_SEP_OR_CLOSE

    def _parse_key(self, token: Token) -> str:
        match token.type:
            case TokenType.KEY:
                key = str(token.value)
            case TokenType.STRING:
                key = self._expand(token)
            case TokenType.BOOLEAN:
                key = "true" if token.value else "false"
            case _:
                key = token.lexeme
        if self.hooks.validation_hooks:
            key = self.hooks.validate_key(key, self._context_at(token.span.start))
        return key

    def _parse_key_name(self) -> str:
        """A section-path or block name; goes through key validation like any key."""
        token = self._advance()
        name = self._expand(token) if token.type == TokenType.STRING else str(token.value)
        if self.hooks.validation_hooks:
            name = self.hooks.validate_key(name, self._context_at(token.span.start))
        return name

    def _parse_section_path(self) -> UclValue:
        """`section a b { X }` becomes `{a: {b: X}}` under `section`."""
        path: list[str] = []
        while self._check(TokenType.KEY, TokenType.STRING) and not self.current.had_newline_before:
            name = self._parse_key_name()
            path.append(name)
            self.context.push_key(name)
        if not self._check(TokenType.OBJECT_START):
            raise self._unexpected(self.current, "'{' after section path")
        value: UclValue = self.parse_object()
        for name in reversed(path):
            self.context.pop_key()
            value = self._validate({name: value}, self.current.span.start)
        return value

    def _parse_nested_block(self) -> UclValue:
        """`key name { X }` becomes `{name: X}` under `key`."""
        name_token = self.current
        name = self._parse_key_name()
        self.context.push_key(name)
        body = self.parse_object()
        self.context.pop_key()
        return self._validate({name: body}, name_token.span.start)

    def _insert(self, obj: dict[str, UclValue], key: str, value: UclValue, key_token: Token) -> None:
        """Insert under the duplicate-key policy; two objects always deep-merge."""
        if key not in obj:
            obj[key] = value
            return
        existing = obj[key]
        if isinstance(existing, dict) and isinstance(value, dict):
            for sub_key, sub_value in value.items():
                self._insert(existing, sub_key, sub_value, key_token)
            return
        match self.config.duplicate_key_behavior:
            case DuplicateKeyBehavior.ERROR:
                raise DuplicateKeyError(key, key_token.span.start, span=key_token.span)
            case DuplicateKeyBehavior.IMPLICIT_ARRAY:
                items = list(existing) if isinstance(existing, list) else [existing]
                items.append(value)
                obj[key] = items
            case DuplicateKeyBehavior.OVERRIDE:
                obj[key] = value

    # Arrays

    def parse_array(self) -> list[UclValue]:
        """Parse `[ ... ]`; elements are separated by `,`, `;` or line breaks."""
        open_token = self._expect(TokenType.ARRAY_START)
        self._enter(open_token)
        items: list[UclValue] = []
        expecting_value = True
        while True:
            token = self.current
            if token.type == TokenType.ARRAY_END:
                self._advance()
                break
            if token.type == TokenType.EOF:
                raise ParseError(
                    ErrorKind.INVALID_ARRAY,
                    "unterminated array, expected ']' before end of file",
                    token.span.start,
                )
            if token.type in (TokenType.COMMA, TokenType.SEMICOLON):
                if expecting_value:
                    raise self._unexpected(token, "value or ']'")
                self._advance()
                expecting_value = True
                continue
            if not expecting_value and not token.had_newline_before:
                raise self._unexpected(token, "',', ';', or ']'")
            self.context.push_key(str(len(items)))
            items.append(self.parse_value())
            self.context.pop_key()
            expecting_value = False
        self._leave()
        return self._validate(items, open_token.span.start)

    # Values

    def parse_value(self) -> UclValue:
        """Parse one value after `=`/`:` or inside an array."""
        token = self.current
        match token.type:
            case TokenType.OBJECT_START:
                return self.parse_object()
            case TokenType.ARRAY_START:
                return self.parse_array()
            case TokenType.STRING:
                self._advance()
                return self._string_value(token, inline=False)
            case TokenType.KEY:
                self._advance()
                return self._bare_word_value(token, inline=False)
            case TokenType.INTEGER | TokenType.FLOAT:
                self._advance()
                return self._number_value(token, inline=False)
            case TokenType.TIME:
                self._advance()
                return self._validate(float(token.value), token.span.start)
            case TokenType.BOOLEAN | TokenType.NULL:
                self._advance()
                return self._validate(token.value, token.span.start)
        raise self._unexpected(token, "a value")

    def _parse_implicit_value(self) -> UclValue:
        """A value written without `=`: an object, an array, or the rest of the line."""
        token = self.current
        if token.type in (TokenType.OBJECT_START, TokenType.ARRAY_START):
            return self.parse_value()
        if token.type not in INLINE_STARTS:
            raise self._unexpected(token, "a value")
        self._advance()
        match token.type:
            case TokenType.STRING:
                return self._string_value(token, inline=True)
            case TokenType.KEY:
                return self._bare_word_value(token, inline=True)
            case TokenType.INTEGER | TokenType.FLOAT:
                return self._number_value(token, inline=True)
        if self._continues_inline():
            return self._collect_inline(token.lexeme, token)
        value = float(token.value) if token.type == TokenType.TIME else token.value
        return self._validate(value, token.span.start)

    def _string_value(self, token: Token, *, inline: bool) -> UclValue:
        text = self._expand(token)
        if self._check(TokenType.PLUS) and not self.current.had_newline_before:
            text = self._concatenate(text)
        elif inline and self._continues_inline():
            return self._collect_inline(text, token)
        return self._finish_string(text, token)

    def _concatenate(self, first: str) -> str:
        """Join `"a" + "b" + ...` on one line."""
        parts = [first]
        while self._check(TokenType.PLUS) and not self.current.had_newline_before:
            plus = self._advance()
            operand = self.current
            if operand.type != TokenType.STRING or operand.had_newline_before:
                raise ParseError(
                    ErrorKind.UNEXPECTED_TOKEN,
                    CONCAT_MESSAGE,
                    plus.span.start,
                    span=plus.span,
                    suggestion="Put '+' and both quoted strings on the same line",
                )
            self._advance()
            parts.append(self._expand(operand))
        return "".join(parts)

    def _check_bare_word(self, token: Token) -> None:
        """Reject bare words glued to a hash or to a bracket."""
        word = str(token.value)
        if self.source[token.end_index : token.end_index + 1] == "#":
            raise ParseError(
                ErrorKind.INVALID_BARE_WORD,
                f"bare word '{word}' cannot be immediately followed by '#', "
                "quote the value if you need a literal hash",
                token.span.end,
            )
        following = self.current
        if (
            following.type in ADJACENT_DELIMITERS
            and following.span.start.offset == token.span.end.offset
            and not (word == "$" and following.type == TokenType.OBJECT_START)
        ):
            raise ParseError(
                ErrorKind.INVALID_BARE_WORD,
                f"bare word '{word}' cannot be adjacent to '{following.lexeme}', "
                "quote the value if you need this character literally",
                following.span.start,
            )
        if self._check(TokenType.PLUS) and not following.had_newline_before:
            raise self._unexpected(following, "a value")

    def _bare_word_value(self, token: Token, *, inline: bool) -> UclValue:
        self._check_bare_word(token)
        if inline and self._continues_inline():
            return self._collect_inline(self._bare_text(token), token)
        lowered = str(token.value).lower()
        if lowered in BARE_KEYWORDS:
            return self._validate(BARE_KEYWORDS[lowered], token.span.start)
        return self._finish_string(self._bare_text(token), token)

    def _number_value(self, token: Token, *, inline: bool) -> UclValue:
        """A number, possibly glued to a unit word (`10px`)."""
        following = self.current
        if following.type == TokenType.KEY and following.span.start.offset == token.span.end.offset:
            multiplier = self.hooks.parse_number_suffix(str(following.value))
            self._advance()
            if multiplier is not None:
                return self._validate(float(token.value) * multiplier, token.span.start)
            self._check_bare_word(following)
            text = token.lexeme + self._bare_text(following)
            if inline and self._continues_inline():
                return self._collect_inline(text, token)
            return self._finish_string(text, token)
        if inline and self._continues_inline():
            return self._collect_inline(token.lexeme, token)
        return self._validate(token.value, token.span.start)

    def _collect_inline(self, text: str, first: Token) -> UclValue:
        """Join the rest of the line, keeping the original gaps between tokens."""
        parts = [text]
        while self._continues_inline():
            if self._check(TokenType.PLUS):
                raise self._unexpected(self.current, "a value")
            token = self._advance()
            match token.type:
                case TokenType.STRING:
                    piece = self._expand(token)
                case TokenType.KEY:
                    self._check_bare_word(token)
                    piece = self._bare_text(token)
                case _:
                    piece = token.lexeme
            parts.append(token.leading_whitespace + piece)
        return self._finish_string("".join(parts), first)


def parse(
    source: str | bytes,
    *,
    config: ParserConfig | None = None,
    lexer_config: LexerConfig | None = None,
    variable_handler: VariableHandler | None = None,
    hooks: ParsingHooks | None = None,
) -> UclValue:
    """Parse a UCL document into plain Python values."""
    parser = Parser(
        source,
        config=config,
        lexer_config=lexer_config,
        variable_handler=variable_handler,
        hooks=hooks,
    )
    return parser.parse_document()


loads = parse


def parse_with_variables(
    source: str | bytes,
    variables: Mapping[str, str],
    **options: Any,
) -> UclValue:
    """Parse with `$NAME` references resolved from `variables`."""
    return parse(source, variable_handler=MapVariableHandler(variables), **options)

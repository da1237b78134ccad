"""UCL configuration language parser for Python."""

import logging

from .diagnostics import ErrorContext, context_for
from .errors import (
    DecodeError,
    DuplicateKeyError,
    ErrorKind,
    ExpansionCycleError,
    ExpansionError,
    LexError,
    ParseError,
    UclError,
)
from .hooks import (
    CustomUnitSuffixHandler,
    NumberSuffixHandler,
    ParsingHooks,
    PathNormalizationProcessor,
    SchemaValidationHook,
    StringPostProcessor,
    ValidationHook,
)
from .lexer import Lexer, LexerConfig, Token, TokenType, tokenize
from .parser import DuplicateKeyBehavior, Parser, ParserConfig, loads, parse, parse_with_variables
from .types import Position, Span, StringFormat, UclValue
from .variables import (
    ChainedVariableHandler,
    EnvironmentVariableHandler,
    MapVariableHandler,
    VariableContext,
    VariableExpander,
    VariableHandler,
    expand_variables,
)

logging.getLogger(__name__).addHandler(logging.NullHandler())

__all__ = [
    "ChainedVariableHandler",
    "CustomUnitSuffixHandler",
    "DecodeError",
    "DuplicateKeyBehavior",
    "DuplicateKeyError",
    "EnvironmentVariableHandler",
    "ErrorContext",
    "ErrorKind",
    "ExpansionCycleError",
    "ExpansionError",
    "LexError",
    "Lexer",
    "LexerConfig",
    "MapVariableHandler",
    "NumberSuffixHandler",
    "ParseError",
    "Parser",
    "ParserConfig",
    "ParsingHooks",
    "PathNormalizationProcessor",
    "Position",
    "SchemaValidationHook",
    "Span",
    "StringFormat",
    "StringPostProcessor",
    "Token",
    "TokenType",
    "UclError",
    "UclValue",
    "ValidationHook",
    "VariableContext",
    "VariableExpander",
    "VariableHandler",
    "context_for",
    "expand_variables",
    "loads",
    "parse",
    "parse_with_variables",
    "tokenize",
]

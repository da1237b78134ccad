"""Variable references inside string values: `$NAME`, `${NAME}` and `${NAME:-default}`."""

from __future__ import annotations

import logging
import os
import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Final, Protocol

from .errors import ErrorKind, ExpansionCycleError, ExpansionError
from .types import Position

logger = logging.getLogger(__name__)

IDENT_RE: Final[re.Pattern[str]] = re.compile(r"[A-Za-z_][A-Za-z0-9_]*")
REFERENCE_RE: Final[re.Pattern[str]] = re.compile(
    r"\$(?:\$|\{([A-Za-z_][A-Za-z0-9_]*)(?::-[^}]*)?\}|([A-Za-z_][A-Za-z0-9_]*))"
)

MAX_EXPANSION_DEPTH: Final[int] = 64


@dataclass(slots=True)
class VariableContext:
    """What a handler can see: where the string is, which keys lead to it, what is being expanded."""

    position: Position = field(default_factory=Position)
    object_path: list[str] = field(default_factory=list)
    expansion_stack: list[str] = field(default_factory=list)

    def push_key(self, key: str) -> None:
        self.object_path.append(key)

    def pop_key(self) -> str | None:
        return self.object_path.pop() if self.object_path else None

    def push_expansion(self, name: str) -> None:
        """Enter `name`; re-entering a name already being expanded is a cycle."""
        if name in self.expansion_stack:
            start = self.expansion_stack.index(name)
            cycle = (*self.expansion_stack[start:], name)
            raise ExpansionCycleError(cycle, self.position)
        if len(self.expansion_stack) >= MAX_EXPANSION_DEPTH:
            raise ExpansionError(
                ErrorKind.RESOURCE_LIMIT_EXCEEDED,
                f"variable expansion nested deeper than {MAX_EXPANSION_DEPTH} levels",
                self.position,
            )
        self.expansion_stack.append(name)

    def pop_expansion(self) -> str | None:
        return self.expansion_stack.pop() if self.expansion_stack else None

    @property
    def expansion_depth(self) -> int:
        return len(self.expansion_stack)

    @property
    def path(self) -> str:
        """Dotted path of keys to the current insertion point."""
        return ".".join(self.object_path)

    def with_position(self, position: Position) -> VariableContext:
        return VariableContext(position, list(self.object_path), list(self.expansion_stack))


class VariableHandler(Protocol):
    """Maps a variable name to its text, or `None` when it is not defined."""

    def resolve(self, name: str, context: VariableContext) -> str | None: ...


class MapVariableHandler:
    """Variables from an in-memory mapping."""

    __slots__ = ("variables",)

    def __init__(self, variables: Mapping[str, str] | None = None) -> None:
        self.variables: dict[str, str] = dict(variables or {})

    def insert(self, name: str, value: str) -> None:
        self.variables[name] = value

    def resolve(self, name: str, context: VariableContext) -> str | None:
        return self.variables.get(name)


class EnvironmentVariableHandler:
    """Variables from the process environment, optionally under a name prefix."""

    __slots__ = ("prefix",)

    def __init__(self, prefix: str = "") -> None:
        self.prefix = prefix

    def resolve(self, name: str, context: VariableContext) -> str | None:
        return os.environ.get(self.prefix + name)


class ChainedVariableHandler:
    """Tries handlers in registration order; the first defined value wins."""

    __slots__ = ("handlers",)

    def __init__(self, *handlers: VariableHandler) -> None:
        self.handlers: list[VariableHandler] = list(handlers)

    def add_handler(self, handler: VariableHandler) -> None:
        self.handlers.append(handler)

    def resolve(self, name: str, context: VariableContext) -> str | None:
        for handler in self.handlers:
            value = handler.resolve(name, context)
            if value is not None:
                return value
        return None


def _malformed(message: str, context: VariableContext) -> ExpansionError:
    return ExpansionError(ErrorKind.VARIABLE_EXPANSION_MALFORMED, message, context.position)


def _find_closing_brace(text: str, start: int) -> int:
    """Index of the `}` closing a `${` whose body starts at `start`, or -1."""
    depth = 1
    for i in range(start, len(text)):
        ch = text[i]
        if ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return i
    return -1


class VariableExpander:
    """Expands references through a handler, recursively and with cycle detection."""

    __slots__ = ("handler",)

    def __init__(self, handler: VariableHandler) -> None:
        self.handler = handler

    def expand(self, text: str, context: VariableContext | None = None) -> str:
        if context is None:
            context = VariableContext()
        if "$" not in text:
            return text

        out: list[str] = []
        i = 0
        while True:
            j = text.find("$", i)
            if j == -1:
                out.append(text[i:])
                break
            out.append(text[i:j])
            nxt = text[j + 1 : j + 2]
            if nxt == "$":
                out.append("$")
                i = j + 2
            elif nxt == "{":
                value, i = self._expand_braced(text, j, context)
                out.append(value)
            else:
                match = IDENT_RE.match(text, j + 1)
                if match is None:
                    out.append("$")
                    i = j + 1
                    continue
                name = match.group()
                out.append(self._resolve(name, None, "$" + name, context))
                i = match.end()
        return "".join(out)

    def _expand_braced(self, text: str, start: int, context: VariableContext) -> tuple[str, int]:
        body_start = start + 2
        close = _find_closing_brace(text, body_start)
        if close == -1:
            raise _malformed("unclosed variable expansion: missing '}'", context)
        name, sep, rest = text[body_start:close].partition(":")
        if not name:
            raise _malformed("empty variable name in ${} expansion", context)
        if not IDENT_RE.fullmatch(name):
            bad = next(
                ch
                for idx, ch in enumerate(name)
                if not (ch.isascii() and (ch.isalnum() or ch == "_")) or (idx == 0 and ch.isdigit())
            )
            raise _malformed(f"invalid character '{bad}' in variable name", context)
        fallback = None
        if sep:
            if not rest.startswith("-"):
                raise _malformed("invalid variable fallback syntax, expected ${NAME:-default}", context)
            fallback = rest[1:]
        return self._resolve(name, fallback, "${" + name + "}", context), close + 1

    def _resolve(
        self, name: str, fallback: str | None, verbatim: str, context: VariableContext
    ) -> str:
        context.push_expansion(name)
        try:
            value = self.handler.resolve(name, context)
            if value is not None:
                return self.expand(value, context)
        finally:
            context.pop_expansion()
        if fallback is not None:
            return self.expand(fallback, context)
        logger.debug("variable %s is not defined, keeping %s", name, verbatim)
        return verbatim


def expand_variables(
    text: str, handler: VariableHandler, context: VariableContext | None = None
) -> str:
    """Expand every reference in `text` using `handler`."""
    return VariableExpander(handler).expand(text, context)


def find_references(text: str) -> list[str]:
    """Names of the references `text` still contains; `$$` is not a reference."""
    names = []
    for match in REFERENCE_RE.finditer(text):
        name = match.group(1) or match.group(2)
        if name:
            names.append(name)
    return names

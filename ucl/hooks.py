"""Parsing hooks: custom number suffixes, string post-processing and validation."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Iterable, Mapping
from typing import TypeVar

from .errors import ErrorKind, ParseError
from .types import UclValue
from .variables import VariableContext

logger = logging.getLogger(__name__)


class NumberSuffixHandler(ABC):
    """Supplies a multiplier for a suffix the built-in unit table does not know."""

    priority: int = 0
    description: str = "number suffix handler"

    @abstractmethod
    def parse_suffix(self, suffix: str) -> float | None:
        """Multiplier for `suffix`, or None when this handler does not know it."""


class StringPostProcessor(ABC):
    """Rewrites final string values."""

    priority: int = 0
    description: str = "string post-processor"

    @abstractmethod
    def process_string(self, value: str, context: VariableContext) -> str:
        """Return the rewritten string."""


class ValidationHook:
    """Checks keys and complete values; returns the value to use or raises to reject it."""

    priority: int = 0
    description: str = "validation hook"

    def validate_value(self, value: UclValue, context: VariableContext) -> UclValue:
        return value

    def validate_key(self, key: str, context: VariableContext) -> str:
        return key


T = TypeVar("T", NumberSuffixHandler, StringPostProcessor, ValidationHook)


def _by_priority(
    hooks: list[T], hook: T
) -> None:
    hooks.append(hook)
    # list.sort is stable, so equal priorities keep registration order
    hooks.sort(key=lambda h: -h.priority)


class ParsingHooks:
    """Installed hooks, each kind ordered by descending priority."""

    __slots__ = ("number_suffix_handlers", "string_processors", "validation_hooks")

    def __init__(self) -> None:
        self.number_suffix_handlers: list[NumberSuffixHandler] = []
        self.string_processors: list[StringPostProcessor] = []
        self.validation_hooks: list[ValidationHook] = []

    def add_number_suffix_handler(self, handler: NumberSuffixHandler) -> ParsingHooks:
        _by_priority(self.number_suffix_handlers, handler)
        return self

    def add_string_processor(self, processor: StringPostProcessor) -> ParsingHooks:
        _by_priority(self.string_processors, processor)
        return self

    def add_validation_hook(self, hook: ValidationHook) -> ParsingHooks:
        _by_priority(self.validation_hooks, hook)
        return self

    @property
    def is_empty(self) -> bool:
        return not (self.number_suffix_handlers or self.string_processors or self.validation_hooks)

    def parse_number_suffix(self, suffix: str) -> float | None:
        """Multiplier from the first handler that knows `suffix`."""
        for handler in self.number_suffix_handlers:
            multiplier = handler.parse_suffix(suffix)
            if multiplier is not None:
                return multiplier
        return None

    def process_string(self, value: str, context: VariableContext) -> str:
        for processor in self.string_processors:
            value = processor.process_string(value, context)
        return value

    def validate_value(self, value: UclValue, context: VariableContext) -> UclValue:
        for hook in self.validation_hooks:
            result = hook.validate_value(value, context)
            if result is not value:
                logger.debug("%s substituted the value at '%s'", hook.description, context.path)
            value = result
        return value

    def validate_key(self, key: str, context: VariableContext) -> str:
        for hook in self.validation_hooks:
            key = hook.validate_key(key, context)
        return key


class CustomUnitSuffixHandler(NumberSuffixHandler):
    """Display units converted to pixels."""

    description = "custom unit suffix handler (px, pt, em, rem)"

    def __init__(self, priority: int = 100) -> None:
        self.priority = priority
        self.units: dict[str, float] = {"px": 1.0, "pt": 1.333, "em": 16.0, "rem": 16.0}

    def add_unit(self, suffix: str, multiplier: float) -> None:
        self.units[suffix] = multiplier

    def parse_suffix(self, suffix: str) -> float | None:
        return self.units.get(suffix)


class PathNormalizationProcessor(StringPostProcessor):
    """Forward slashes only, no empty or `.` segments, `..` folded where possible."""

    description = "path normalization processor (resolves ./ and ../, normalizes separators)"

    def __init__(self, priority: int = 50) -> None:
        self.priority = priority

    def process_string(self, value: str, context: VariableContext) -> str:
        normalized = value.replace("\\", "/")
        resolved: list[str] = []
        for part in normalized.split("/"):
            if part in ("", "."):
                continue
            if part == ".." and resolved and resolved[-1] != "..":
                resolved.pop()
            else:
                resolved.append(part)
        path = "/".join(resolved)
        if normalized.startswith("/"):
            return "/" + path
        return path


class SchemaValidationHook(ValidationHook):
    """Required and allowed keys for the root object."""

    description = "schema validation hook"

    def __init__(
        self,
        required_keys: Iterable[str] = (),
        allowed_keys: Iterable[str] | None = None,
        priority: int = 100,
    ) -> None:
        self.priority = priority
        self.required_keys = list(required_keys)
        self.allowed_keys = None if allowed_keys is None else set(allowed_keys)

    def require_key(self, key: str) -> SchemaValidationHook:
        self.required_keys.append(key)
        return self

    def allow_keys(self, keys: Iterable[str]) -> SchemaValidationHook:
        self.allowed_keys = set(keys)
        return self

    def validate_value(self, value: UclValue, context: VariableContext) -> UclValue:
        if context.object_path or not isinstance(value, Mapping):
            return value
        for key in self.required_keys:
            if key not in value:
                raise ParseError(
                    ErrorKind.INVALID_OBJECT,
                    f"missing required key '{key}'",
                    context.position,
                )
        if self.allowed_keys is not None:
            for key in value:
                if key not in self.allowed_keys:
                    raise ParseError(
                        ErrorKind.INVALID_OBJECT,
                        f"key '{key}' is not allowed",
                        context.position,
                        suggestion="Allowed keys: " + ", ".join(sorted(self.allowed_keys)),
                    )
        return value

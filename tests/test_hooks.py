"""Tests for parsing hooks."""

from __future__ import annotations

import pytest

from ucl.errors import ErrorKind, ParseError
from ucl.hooks import (
    CustomUnitSuffixHandler,
    NumberSuffixHandler,
    ParsingHooks,
    PathNormalizationProcessor,
    SchemaValidationHook,
    StringPostProcessor,
    ValidationHook,
)
from ucl.parser import parse
from ucl.variables import VariableContext


class FixedSuffix(NumberSuffixHandler):
    def __init__(self, suffix: str, multiplier: float, priority: int = 0) -> None:
        self.suffix = suffix
        self.multiplier = multiplier
        self.priority = priority

    def parse_suffix(self, suffix: str) -> float | None:
        return self.multiplier if suffix == self.suffix else None


class Append(StringPostProcessor):
    def __init__(self, text: str, priority: int = 0) -> None:
        self.text = text
        self.priority = priority

    def process_string(self, value: str, context: VariableContext) -> str:
        return value + self.text


class UpperStrings(ValidationHook):
    def validate_value(self, value, context):
        if isinstance(value, str):
            return value.upper()
        return value


class LowerKeys(ValidationHook):
    def validate_key(self, key, context):
        return key.lower()


class RejectKey(ValidationHook):
    def validate_key(self, key, context):
        if key == "forbidden":
            raise ParseError(ErrorKind.INVALID_OBJECT, "key 'forbidden' is reserved", context.position)
        return key


class Recorder(ValidationHook):
    def __init__(self) -> None:
        self.seen = []

    def validate_value(self, value, context):
        snapshot = dict(value) if isinstance(value, dict) else value
        self.seen.append((context.path, snapshot))
        return value


def test_hooks_are_sorted_by_priority():
    """Higher priority runs first; equal priorities keep registration order."""
    hooks = ParsingHooks()
    hooks.add_string_processor(Append("-low", priority=1))
    hooks.add_string_processor(Append("-high", priority=10))
    hooks.add_string_processor(Append("-high2", priority=10))
    assert hooks.process_string("v", VariableContext()) == "v-high-high2-low"


def test_first_suffix_handler_wins():
    hooks = ParsingHooks()
    hooks.add_number_suffix_handler(FixedSuffix("u", 2.0, priority=1))
    hooks.add_number_suffix_handler(FixedSuffix("u", 3.0, priority=5))
    assert hooks.parse_number_suffix("u") == 3.0
    assert hooks.parse_number_suffix("zz") is None


def test_empty_hooks():
    hooks = ParsingHooks()
    assert hooks.is_empty
    assert hooks.validate_value(1, VariableContext()) == 1
    assert hooks.validate_key("k", VariableContext()) == "k"
    hooks.add_validation_hook(UpperStrings())
    assert not hooks.is_empty


@pytest.mark.parametrize(
    ("source", "expected"),
    [
        ("width = 10px", 10.0),
        ("width = 12pt", 12 * 1.333),
        ("width = 2em", 32.0),
        ("width 1.5rem", 24.0),
    ],
)
def test_custom_unit_suffixes(source, expected):
    hooks = ParsingHooks().add_number_suffix_handler(CustomUnitSuffixHandler())
    assert parse(source, hooks=hooks)["width"] == pytest.approx(expected)


def test_custom_unit_added_at_runtime():
    handler = CustomUnitSuffixHandler()
    handler.add_unit("vh", 0.01)
    hooks = ParsingHooks().add_number_suffix_handler(handler)
    assert parse("height = 50vh", hooks=hooks) == {"height": 0.5}


def test_unknown_suffix_without_hook_is_a_string():
    assert parse("width = 10px") == {"width": "10px"}
    assert parse("listen 80px wide") == {"listen": "80px wide"}


@pytest.mark.parametrize(
    ("path", "expected"),
    [
        ("a/b/c", "a/b/c"),
        ("a\\b\\c", "a/b/c"),
        ("./conf//app.ucl", "conf/app.ucl"),
        ("a/b/../c", "a/c"),
        ("../x", "../x"),
        ("/usr//local/../bin/", "/usr/bin"),
    ],
)
def test_path_normalization(path, expected):
    processor = PathNormalizationProcessor()
    assert processor.process_string(path, VariableContext()) == expected


def test_path_normalization_in_parse():
    hooks = ParsingHooks().add_string_processor(PathNormalizationProcessor())
    assert parse('root = "/srv/./www//html"', hooks=hooks) == {"root": "/srv/www/html"}


def test_string_processor_sees_collected_inline_value():
    hooks = ParsingHooks().add_string_processor(Append("!"))
    assert parse("greeting hello world", hooks=hooks) == {"greeting": "hello world!"}


def test_schema_required_keys():
    hooks = ParsingHooks().add_validation_hook(SchemaValidationHook(required_keys=["port"]))
    assert parse("port = 80", hooks=hooks) == {"port": 80}
    with pytest.raises(ParseError) as info:
        parse("host = x", hooks=hooks)
    assert info.value.kind == ErrorKind.INVALID_OBJECT
    assert "missing required key 'port'" in info.value.message


def test_schema_allowed_keys():
    schema = SchemaValidationHook().allow_keys(["host", "port"])
    hooks = ParsingHooks().add_validation_hook(schema)
    assert parse("host = x; port = 1", hooks=hooks) == {"host": "x", "port": 1}
    with pytest.raises(ParseError) as info:
        parse("host = x; debug = true", hooks=hooks)
    assert "'debug'" in info.value.message


def test_schema_only_checks_root():
    """Nested objects are not the root even when they lack required keys."""
    schema = SchemaValidationHook().require_key("server")
    hooks = ParsingHooks().add_validation_hook(schema)
    assert parse("server { listen 80 }", hooks=hooks) == {"server": {"listen": 80}}


def test_schema_applies_to_explicit_root():
    hooks = ParsingHooks().add_validation_hook(SchemaValidationHook(required_keys=["a"]))
    with pytest.raises(ParseError):
        parse("{ b = 1 }", hooks=hooks)


def test_validation_hook_substitutes_values():
    hooks = ParsingHooks().add_validation_hook(UpperStrings())
    assert parse('a = "x"\nb = [ "y", 1 ]\nc word', hooks=hooks) == {
        "a": "X",
        "b": ["Y", 1],
        "c": "WORD",
    }


def test_validation_hook_rewrites_keys():
    hooks = ParsingHooks().add_validation_hook(LowerKeys())
    assert parse('KEY = 1\n"Other" = 2', hooks=hooks) == {"key": 1, "other": 2}


def test_validation_hook_rejects_keys():
    hooks = ParsingHooks().add_validation_hook(RejectKey())
    with pytest.raises(ParseError) as info:
        parse("ok = 1\nforbidden = 2", hooks=hooks)
    assert info.value.position.line == 2


def test_validation_sees_only_complete_values():
    """Containers reach validation hooks after their closing token."""
    recorder = Recorder()
    hooks = ParsingHooks().add_validation_hook(recorder)
    parse("a { b = 1; c = [2] }", hooks=hooks)
    assert recorder.seen == [
        ("a.b", 1),
        ("a.c.0", 2),
        ("a.c", [2]),
        ("a", {"b": 1, "c": [2]}),
        ("", {"a": {"b": 1, "c": [2]}}),
    ]


class UpperKeys(ValidationHook):
    def validate_key(self, key, context):
        return key.upper()


def test_section_paths_with_rewritten_keys():
    """The `section` keyword is recognised before keys are rewritten."""
    hooks = ParsingHooks().add_validation_hook(UpperKeys())
    assert parse("section foo bar { x = 1 }", hooks=hooks) == {
        "SECTION": {"FOO": {"BAR": {"X": 1}}}
    }


def test_block_names_are_validated():
    hooks = ParsingHooks().add_validation_hook(UpperKeys())
    assert parse("upstream backend { server x }", hooks=hooks) == {
        "UPSTREAM": {"BACKEND": {"SERVER": "x"}}
    }
    assert parse('upstream "web" { port 80 }', hooks=hooks) == {"UPSTREAM": {"WEB": {"PORT": 80}}}


def test_block_names_can_be_rejected():
    class RejectName(ValidationHook):
        def validate_key(self, key, context):
            if key == "forbidden":
                raise ParseError(ErrorKind.INVALID_OBJECT, "reserved", context.position)
            return key

    hooks = ParsingHooks().add_validation_hook(RejectName())
    with pytest.raises(ParseError) as info:
        parse("section forbidden { x = 1 }", hooks=hooks)
    assert info.value.position.column == 9


def test_hook_base_classes_are_abstract():
    with pytest.raises(TypeError):
        NumberSuffixHandler()
    with pytest.raises(TypeError):
        StringPostProcessor()

#!/usr/bin/env python3
"""Dump parsed UCL files as indented s-expressions."""

from __future__ import annotations

import logging
import math
import sys
from pathlib import Path

from .chars import CharFlags, flags_of
from .errors import UclError
from .parser import parse
from .types import UclValue

ESCAPES = {"\\": "\\\\", '"': '\\"', "\n": "\\n", "\r": "\\r", "\t": "\\t"}


def escape_string(s: str) -> str:
    """Escape a string for sexp output."""
    if not any(flags_of(ch) & CharFlags.ESCAPE for ch in s):
        return s
    return "".join(ESCAPES.get(ch, ch) for ch in s)


def format_float(value: float) -> str:
    if math.isnan(value):
        return "nan"
    if math.isinf(value):
        return "inf" if value > 0 else "-inf"
    return repr(value)


def format_value(value: UclValue, indent: int = 0) -> str:
    """Format a value as sexp."""
    prefix = "  " * indent
    match value:
        case None:
            return "(null)"
        case bool():
            return f"(boolean {'true' if value else 'false'})"
        case int():
            return f"(integer {value})"
        case float():
            return f"(float {format_float(value)})"
        case str():
            return f'(string "{escape_string(value)}")'
        case list():
            if not value:
                return "(array)"
            items = "\n".join(f"{prefix}  {format_value(item, indent + 1)}" for item in value)
            return f"(array\n{items})"
        case dict():
            if not value:
                return "(object)"
            entries = "\n".join(format_entry(k, v, indent + 1) for k, v in value.items())
            return f"(object\n{entries})"
    return "(unknown)"


def format_entry(key: str, value: UclValue, indent: int) -> str:
    """Format an object entry as sexp."""
    prefix = "  " * indent
    return f'{prefix}(entry "{escape_string(key)}"\n{prefix}  {format_value(value, indent + 1)})'


def format_error(error: UclError, source: str | None = None) -> str:
    """Format an error as sexp, followed by its diagnostic when the source is known."""
    escaped_msg = escape_string(error.message)
    head = f'(error {error.kind.name.lower()} [{error.span.start.offset}, {error.span.end.offset}] "{escaped_msg}")'
    if source is None:
        return head
    return f"{head}\n{error.render(source)}"


def process_file(path: Path) -> tuple[str, bool]:
    """Parse one file; return its dump and whether it parsed."""
    content = path.read_text(encoding="utf-8", errors="replace")
    try:
        value = parse(content)
    except UclError as e:
        return f"; file: {path}\n{format_error(e, content)}", False
    return f"; file: {path}\n{format_value(value)}", True


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    args = sys.argv[1:] if argv is None else argv
    if args and args[0] in ("-v", "--verbose"):
        logging.basicConfig(level=logging.DEBUG, format="%(levelname)s %(name)s: %(message)s")
        args = args[1:]
    if not args:
        print("Usage: python -m ucl.tree [--verbose] FILE...", file=sys.stderr)
        return 1

    status = 0
    results = []
    for name in args:
        path = Path(name)
        if not path.is_file():
            print(f"Error: {path} is not a file", file=sys.stderr)
            status = 1
            continue
        output, ok = process_file(path)
        results.append(output)
        if not ok:
            status = 1

    print("\n".join(results))
    return status


if __name__ == "__main__":
    sys.exit(main())

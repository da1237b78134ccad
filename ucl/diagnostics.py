"""Human-readable error reports with source context."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Final

from .errors import DuplicateKeyError, ErrorKind, UclError
from .types import Span

LINE_BREAK_RE: Final[re.Pattern[str]] = re.compile(r"\r\n|\r|\n")

ESCAPE_HELP: Final[str] = (
    'Valid escape sequences: \\n, \\t, \\r, \\\\, \\", \\/, \\b, \\f, \\xHH, '
    "\\uXXXX or \\u{...}"
)
UNICODE_HELP: Final[str] = (
    "Valid Unicode escape formats: \\uXXXX (4 hex digits) or \\u{X...XXXXXX} (1-6 hex digits)"
)
HEREDOC_HELP: Final[str] = (
    "Heredoc syntax: <<TAG on its own line, content lines, then TAG alone on a line. "
    "TAG must be uppercase letters, digits or underscores"
)


@dataclass(slots=True)
class ErrorContext:
    """Source text plus the span an error points at."""

    source: str
    span: Span
    suggestions: list[str] = field(default_factory=list)
    help: str | None = None

    def extract_lines_around_span(self, context_lines: int) -> list[str]:
        """Numbered source lines around the span with a caret line under its first line."""
        lines = LINE_BREAK_RE.split(self.source)
        first = min(max(self.span.start.line, 1), len(lines))
        last = min(max(self.span.end.line, first), len(lines))
        lo = max(1, first - context_lines)
        hi = min(len(lines), last + context_lines)
        width = len(str(hi))

        result = []
        for num in range(lo, hi + 1):
            text = lines[num - 1]
            result.append(f"{num:>{width}} | {text}")
            if num != first:
                continue
            column = self.span.start.column
            if self.span.start.line == self.span.end.line:
                count = self.span.end.column - column
            else:
                # Multi-line span: underline to the end of the first line
                count = len(text) - column + 1
            count = max(count, 1)
            result.append(" " * (width + 3 + column - 1) + "^" * count + "  <-- Error here")
        return result

    def source_snippet(self) -> str:
        return "\n".join(self.extract_lines_around_span(2))

    def focused_snippet(self) -> str:
        return "\n".join(self.extract_lines_around_span(1))

    def extended_snippet(self) -> str:
        return "\n".join(self.extract_lines_around_span(3))

    def error_text(self) -> str:
        """The source text covered by the span."""
        if self.span.is_empty:
            return ""
        data = self.source.encode("utf-8", "surrogatepass")
        return data[self.span.start.offset : self.span.end.offset].decode("utf-8", "replace")

    def format_error(self, message: str) -> str:
        parts = [f"Error at {self.span.start}: {message}"]
        text = self.error_text()
        if text:
            parts.append(f"Problematic text: '{text}'")
        parts.append("")
        parts.append(self.source_snippet())
        if self.suggestions:
            parts.append("")
            parts.append("Suggestions:")
            parts.extend(f"  {i}. {s}" for i, s in enumerate(self.suggestions, 1))
        if self.help:
            parts.append("")
            parts.append(f"Help: {self.help}")
        return "\n".join(parts)

    def format_compact(self, message: str) -> str:
        text = self.error_text()
        if text:
            return f"{self.span.start}: {message} (near '{text}')"
        return f"{self.span.start}: {message}"


def _suggestions_for(error: UclError) -> tuple[list[str], str | None]:
    match error.kind:
        case ErrorKind.INVALID_ESCAPE:
            return [
                "Use one of the valid escape sequences",
                "Use a single-quoted string if backslashes should be kept literally",
            ], ESCAPE_HELP
        case ErrorKind.INVALID_UNICODE_ESCAPE:
            return [
                "Use exactly 4 hex digits, or 1-6 hex digits inside braces",
                "Surrogate code points (U+D800-U+DFFF) cannot be escaped individually",
            ], UNICODE_HELP
        case ErrorKind.DUPLICATE_KEY:
            key = error.key if isinstance(error, DuplicateKeyError) else "key"
            return [
                f"Remove the duplicate key '{key}' or rename it",
                "Enable implicit arrays to automatically convert duplicate keys to arrays",
                "Use explicit array syntax: key = [value1, value2]",
            ], None
        case ErrorKind.INVALID_HEREDOC:
            return [
                "Check that the terminator line contains only the tag",
                "Use an uppercase tag such as <<EOF",
            ], HEREDOC_HELP
        case ErrorKind.UNTERMINATED_COMMENT:
            return ["Close the comment with */"], "Block comments may nest; each /* needs a */"
        case ErrorKind.UNTERMINATED_STRING:
            return ["Add the closing quote"], None
        case ErrorKind.INVALID_BARE_WORD | ErrorKind.INVALID_OBJECT:
            return ["Quote the value if it contains structural characters"], None
        case ErrorKind.VARIABLE_EXPANSION_CYCLE:
            return ["Break the cycle by giving one variable a literal value"], None
        case ErrorKind.VARIABLE_EXPANSION_MALFORMED:
            return [
                "Use $NAME, ${NAME} or ${NAME:-default}",
                "Write $$ for a literal dollar sign",
            ], None
        case ErrorKind.RESOURCE_LIMIT_EXCEEDED | ErrorKind.MAX_DEPTH_EXCEEDED:
            return ["Raise the corresponding limit in the lexer or parser configuration"], None
    return [], None


def context_for(error: UclError, source: str) -> ErrorContext:
    """Build an ErrorContext for `error` with suggestions chosen by its kind."""
    suggestions, help_text = _suggestions_for(error)
    if error.suggestion and error.suggestion not in suggestions:
        suggestions.insert(0, error.suggestion)
    return ErrorContext(source, error.span, suggestions, help_text)

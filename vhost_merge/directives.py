"""Validate user-supplied rewrite/proxy directive text against a fixed grammar."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal
import logging
import re

logger = logging.getLogger(__name__)

LINE_KIND_BLANK = "blank"
LINE_KIND_COMMENT = "comment"
LINE_KIND_REWRITE = "rewrite"
LINE_KIND_IF_OPEN = "if-open"
LINE_KIND_CLOSE = "close"
LINE_KIND_BREAK = "break"
LINE_KIND_RETURN = "return"
LINE_KIND_SET = "set"
LINE_KIND_INVALID = "invalid"
LineKind = Literal[
    LINE_KIND_BLANK,
    LINE_KIND_COMMENT,
    LINE_KIND_REWRITE,
    LINE_KIND_IF_OPEN,
    LINE_KIND_CLOSE,
    LINE_KIND_BREAK,
    LINE_KIND_RETURN,
    LINE_KIND_SET,
    LINE_KIND_INVALID,
]

REJECT_INVALID_LINE = "invalid-line"
REJECT_UNBALANCED_CLOSE = "unbalanced-close"
REJECT_UNCLOSED_BLOCK = "unclosed-block"

_QUOTED = r"""(?:'[^']+'|"[^"]+")+"""
_REWRITE_ARG = rf"(?:{_QUOTED}|\S+)"
_REWRITE_FLAG = r"(?:\s+(?:last|break|redirect|permanent))?"

_REWRITE_RE = re.compile(rf"^\s*rewrite\s+{_REWRITE_ARG}\s+{_REWRITE_ARG}{_REWRITE_FLAG}\s*;\s*$")
_IF_VARIABLE_RE = re.compile(r'^\s*if\s+\(\s*\$\S+(?:\s+!?(?:=|~\*|~)\s+(?:\S+|".+"))?\s*\)\s*\{\s*$')
_IF_FILE_TEST_RE = re.compile(r"^\s*if\s+\(\s*!?-[fdex]\s+\S+\s*\)\s*\{\s*$")
_BREAK_RE = re.compile(r"^\s*break\s*;\s*$")
_RETURN_CODE_RE = re.compile(r"^\s*return\s+\d{3}.*;\s*$")

_OCTET = r"(?:25[0-5]|2[0-4][0-9]|[0-1][0-9]{2}|[1-9][0-9]|[1-9])"
_OCTET_OR_ZERO = r"(?:25[0-5]|2[0-4][0-9]|[0-1][0-9]{2}|[1-9][0-9]|[0-9])"
_IPV4 = rf"{_OCTET}\.{_OCTET_OR_ZERO}\.{_OCTET_OR_ZERO}\.{_OCTET_OR_ZERO}"
_TLD = r"(?:com|edu|gov|int|mil|net|org|biz|arpa|info|name|pro|aero|coop|museum|[a-zA-Z]{2})"
_DOMAIN = rf"(?:[a-zA-Z0-9\-]+\.)*[a-zA-Z0-9\-]+\.{_TLD}"
_USERINFO = r"(?:[a-zA-Z0-9.\-]+(?::[a-zA-Z0-9.&%$\-]+)*@)*"
_URL_PATH = r"(?:/[a-zA-Z0-9.,?'\\+&%$#=~_\-]*)*"
_RETURN_URL_RE = re.compile(
    rf"^\s*return(?:\s+\d{{3}})?\s+(?:http|https|ftp)://{_USERINFO}"
    rf"(?:{_IPV4}|localhost|{_DOMAIN})(?::[0-9]+)?{_URL_PATH}\s*;\s*$"
)
_SET_RE = re.compile(r"^\s*set\s+\$\S+\s+\S+\s*;\s*$")

# Tried in order, first match wins.
_LINE_GRAMMAR: tuple[tuple[re.Pattern[str], str, int], ...] = (
    (_REWRITE_RE, LINE_KIND_REWRITE, 0),
    (_IF_VARIABLE_RE, LINE_KIND_IF_OPEN, 1),
    (_IF_FILE_TEST_RE, LINE_KIND_IF_OPEN, 1),
    (_BREAK_RE, LINE_KIND_BREAK, 0),
    (_RETURN_CODE_RE, LINE_KIND_RETURN, 0),
    (_RETURN_URL_RE, LINE_KIND_RETURN, 0),
    (_SET_RE, LINE_KIND_SET, 0),
)


@dataclass(frozen=True, slots=True)
class DirectiveLine:
    text: str
    kind: str
    depth_delta: int = 0

    @property
    def valid(self) -> bool:
        return self.kind != LINE_KIND_INVALID


@dataclass(slots=True)
class DirectiveBatch:
    lines: list[DirectiveLine] = field(default_factory=list)
    valid: bool = True
    reason: str | None = None
    line_number: int | None = None

    def accepted_lines(self) -> list[str]:
        """Return the raw lines, or nothing at all when the batch was rejected."""
        if not self.valid:
            return []
        return [line.text for line in self.lines]


class GrammarRejection(ValueError):
    """Raised when a directive batch fails the grammar or is unbalanced."""

    def __init__(self, reason: str, line_number: int | None, text: str | None = None) -> None:
        self.reason = reason
        self.line_number = line_number
        self.text = text
        where = f" at line {line_number}" if line_number is not None else ""
        super().__init__(f"Directive text rejected ({reason}){where}")


def split_directive_lines(text: str | None) -> list[str]:
    """Trim ``text`` and split it on any line-break convention."""
    if text is None:
        return []
    cleaned = text.strip().replace("\r\n", "\n").replace("\r", "\n")
    if not cleaned:
        return []
    return cleaned.split("\n")


def classify_line(line: str) -> DirectiveLine:
    stripped = line.strip()
    if not stripped:
        return DirectiveLine(line, LINE_KIND_BLANK)
    if stripped.startswith("#"):
        return DirectiveLine(line, LINE_KIND_COMMENT)
    for pattern, kind, delta in _LINE_GRAMMAR:
        if pattern.match(line):
            return DirectiveLine(line, kind, delta)
    if stripped == "}":
        return DirectiveLine(line, LINE_KIND_CLOSE, -1)
    return DirectiveLine(line, LINE_KIND_INVALID)


def check_directives(text: str | None) -> DirectiveBatch:
    """Classify every line of ``text`` and enforce balanced ``if`` nesting.

    Raises:
        GrammarRejection: On the first line that matches no grammar, on a
            closing brace without an open block, or when blocks remain open
            at the end of the text.
    """
    batch = DirectiveBatch()
    depth = 0
    for number, raw in enumerate(split_directive_lines(text), start=1):
        line = classify_line(raw)
        if not line.valid:
            raise GrammarRejection(REJECT_INVALID_LINE, number, raw)
        depth += line.depth_delta
        if depth < 0:
            raise GrammarRejection(REJECT_UNBALANCED_CLOSE, number, raw)
        batch.lines.append(line)
    if depth != 0:
        raise GrammarRejection(REJECT_UNCLOSED_BLOCK, len(batch.lines))
    return batch


def validate_directives(text: str | None, *, source: str = "directives") -> DirectiveBatch:
    """Validate ``text`` without raising; rejected batches carry no lines."""
    try:
        return check_directives(text)
    except GrammarRejection as exc:
        logger.warning(
            "Rejected %s: %s at line %s, falling back to no custom directives",
            source,
            exc.reason,
            exc.line_number,
        )
        return DirectiveBatch(lines=[], valid=False, reason=exc.reason, line_number=exc.line_number)


def accept_directives(text: str | None, *, source: str = "directives") -> list[str]:
    """Return the directive lines to render, or an empty list when rejected."""
    return validate_directives(text, source=source).accepted_lines()

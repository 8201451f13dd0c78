"""Line-oriented parser that extracts top-level ``location`` blocks from a vhost.

Only brace positions matter: the parser never interprets directives, it just
tracks nesting so that ``if`` blocks (or nested locations) inside a location
are kept in that location's body. Everything it cannot match to an opening
and closing line is passed through untouched as residual text.
"""
from __future__ import annotations

from dataclasses import dataclass, field
import logging
import re

logger = logging.getLogger(__name__)

ACTION_REPLACE = "replace"
ACTION_MERGE = "merge"
ACTION_DELETE = "delete"

MERGE_MARKER = "##merge##"
DELETE_MARKER = "##delete##"
SELECTOR_OPERATORS = frozenset({"=", "~", "~*", "^~"})

_MARKER_RE = re.compile(r"[ \t]*##(?:merge|delete)##")
_QUOTED_RE = re.compile(r"'[^']*'|\"[^\"]*\"")
_TOKEN_RE = re.compile(r"""(?:"[^"]*"|'[^']*'|[^\s"'])+""")
_SINGLE_LINE_BLOCK_RE = re.compile(
    r"""^(?P<indent>[ \t]*)location[ \t]+(?P<selector>(?:"[^"]*"|'[^']*'|[^{}"'])+?)[ \t]*\{(?P<body>.*)\}$"""
)
_SERVER_OPEN_RE = re.compile(r"^server\s*\{")
BODY_INDENT = "    "


@dataclass(slots=True)
class LocationDeclaration:
    selector: str
    line_index: int
    indent: str = ""
    action: str = ACTION_REPLACE
    annotated: bool = False
    body: list[str] = field(default_factory=list)


@dataclass(slots=True)
class ResidualLine:
    line_index: int
    text: str


@dataclass(slots=True)
class ParsedVhost:
    declarations: list[LocationDeclaration] = field(default_factory=list)
    residual: list[ResidualLine] = field(default_factory=list)
    overrun: bool = False


def marker_action(line: str) -> str | None:
    """Return the annotation carried by ``line``; delete beats merge."""
    if DELETE_MARKER in line:
        return ACTION_DELETE
    if MERGE_MARKER in line:
        return ACTION_MERGE
    return None


def _braces_balanced(text: str) -> bool:
    depth = 0
    for char in _QUOTED_RE.sub("", text):
        if char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
            if depth < 0:
                return False
    return depth == 0


def expand_single_line_block(line: str) -> list[str]:
    """Split ``location X { body }`` into opening, body and closing lines.

    A merge/delete marker found on either side of the braces ends up on the
    opening line. Lines that are not one-line location blocks, or whose opening
    brace cannot be told apart from a brace inside the selector, are returned
    as-is.
    """
    action = marker_action(line)
    bare = _MARKER_RE.sub("", line).rstrip()
    match = _SINGLE_LINE_BLOCK_RE.match(bare)
    if match is None or not _braces_balanced(match.group("body")):
        return [line]

    indent = match.group("indent")
    selector = " ".join(_TOKEN_RE.findall(match.group("selector")))
    opening = f"{indent}location {selector} {{"
    if action is not None:
        opening = f"{opening} ##{action}##"
    expanded = [opening]
    body = match.group("body").strip()
    if body:
        expanded.append(f"{indent}{BODY_INDENT}{body}")
    expanded.append(f"{indent}}}")
    return expanded


def normalize_vhost_lines(text: str, *, keep_comments: bool = False) -> list[str]:
    """Right-trim every line, drop comment lines and expand one-line blocks."""
    lines: list[str] = []
    for raw in text.split("\n"):
        line = raw.rstrip()
        if not keep_comments and line.lstrip().startswith("#"):
            continue
        lines.extend(expand_single_line_block(line))
    return lines


def parse_opening_line(line: str, line_index: int) -> LocationDeclaration | None:
    """Return a declaration when ``line`` opens a top-level location block."""
    bare = _MARKER_RE.sub("", line).strip()
    if not bare.endswith("{"):
        return None
    tokens = _TOKEN_RE.findall(bare[:-1])
    if len(tokens) < 2 or tokens[0] != "location":
        return None
    if tokens[1] in SELECTOR_OPERATORS and len(tokens) > 2:
        selector = f"{tokens[1]} {tokens[2]}"
    else:
        selector = tokens[1]

    declaration = LocationDeclaration(
        selector=selector,
        line_index=line_index,
        indent=line[: len(line) - len(line.lstrip())],
    )
    action = marker_action(line)
    if action is not None:
        declaration.action = action
        declaration.annotated = True
    return declaration


def parse_locations(lines: list[str]) -> ParsedVhost:
    """Collect every top-level location declaration in ``lines``.

    Scanning stops at a second ``server {`` container: the remaining lines
    are kept as residual text and already collected declarations survive.
    A block that is still open when scanning stops is malformed and its
    lines are handed back as residual text.
    """
    parsed = ParsedVhost()
    current: LocationDeclaration | None = None
    pending: list[ResidualLine] = []
    level = 0
    server_count = 0
    stop_at: int | None = None

    for index, line in enumerate(lines):
        stripped = line.strip()
        if _SERVER_OPEN_RE.match(stripped):
            server_count += 1
            if server_count > 1:
                logger.warning("Second server container at line %d, stopping location merge", index + 1)
                parsed.overrun = True
                stop_at = index
                break

        if current is None:
            current = parse_opening_line(line, index)
            if current is None:
                parsed.residual.append(ResidualLine(index, line))
            else:
                level = 0
                pending = [ResidualLine(index, line)]
            continue

        pending.append(ResidualLine(index, line))
        open_pos = line.rfind("{")
        close_pos = line.rfind("}")
        if open_pos != -1:
            level += 1
        if close_pos != -1 and close_pos >= max(open_pos, 0):
            if level > 0:
                level -= 1
                current.body.append(line)
                continue
            if not current.annotated:
                current.action = marker_action(line) or current.action
            parsed.declarations.append(current)
            current = None
            pending = []
            continue
        current.body.append(line)

    if current is not None:
        logger.warning("Unterminated location %r at line %d left unmerged", current.selector, current.line_index + 1)
        parsed.residual.extend(pending)
    if stop_at is not None:
        parsed.residual.extend(ResidualLine(i, lines[i]) for i in range(stop_at, len(lines)))

    logger.debug("Parsed %d location declarations", len(parsed.declarations))
    return parsed

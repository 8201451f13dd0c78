"""Fold duplicate location declarations and rebuild the vhost text."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable

from .location_parser import ACTION_DELETE, ACTION_MERGE, LocationDeclaration, ParsedVhost


@dataclass(slots=True)
class MergedLocation:
    selector: str
    position: int
    indent: str = ""
    body: list[str] = field(default_factory=list)

    def render(self) -> str:
        return "\n".join([f"{self.indent}location {self.selector} {{", *self.body, f"{self.indent}}}"])


@dataclass(slots=True)
class MergeResult:
    locations: list[MergedLocation]
    deleted: set[str]

    @property
    def surviving(self) -> list[MergedLocation]:
        return [location for location in self.locations if location.selector not in self.deleted]


def merge_declarations(declarations: Iterable[LocationDeclaration]) -> MergeResult:
    """Combine declarations that share a selector.

    The first declaration fixes the output position and indentation. Each
    later declaration either replaces the body collected so far or, when it
    is annotated ``merge``, appends to it. A ``delete`` annotation on any
    declaration removes the selector from the output.
    """
    by_selector: dict[str, MergedLocation] = {}
    ordered: list[MergedLocation] = []
    deleted: set[str] = set()

    for declaration in declarations:
        if declaration.action == ACTION_DELETE:
            deleted.add(declaration.selector)
        merged = by_selector.get(declaration.selector)
        if merged is None:
            merged = MergedLocation(
                selector=declaration.selector,
                position=declaration.line_index,
                indent=declaration.indent,
                body=list(declaration.body),
            )
            by_selector[declaration.selector] = merged
            ordered.append(merged)
        elif declaration.action == ACTION_MERGE:
            merged.body.extend(declaration.body)
        else:
            merged.body = list(declaration.body)

    ordered.sort(key=lambda location: location.position)
    return MergeResult(locations=ordered, deleted=deleted)


def render_merged(parsed: ParsedVhost, result: MergeResult) -> str:
    """Interleave surviving blocks with residual lines by input line index."""
    chunks: list[tuple[int, str]] = [(line.line_index, line.text) for line in parsed.residual]
    chunks.extend((location.position, location.render()) for location in result.surviving)
    chunks.sort(key=lambda chunk: chunk[0])
    return "\n".join(text for _, text in chunks).strip("\n")

"""Run the full vhost assembly pipeline over rendered template output."""
from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable

from .location_merger import MergeResult, merge_declarations, render_merged
from .location_parser import ParsedVhost, normalize_vhost_lines, parse_locations
from .models import Site
from .site_directives import SiteDirectives, SnippetLookup, prepare_site_directives
from .subroot import SubrootExpansion, expand_subroot

TemplateRenderer = Callable[[dict[str, Any]], str]


class VhostTooLarge(RuntimeError):
    def __init__(self, path: Path, size: int, limit: int) -> None:
        super().__init__(f"{path} is {size} bytes, above the {limit} byte limit for vhost input")
        self.path = path
        self.size = size
        self.limit = limit


def read_rendered_vhost(path: Path, max_bytes: int) -> str:
    """Read rendered template output, refusing files above ``max_bytes``."""
    size = path.stat().st_size
    if size > max_bytes:
        raise VhostTooLarge(path, size, max_bytes)
    return path.read_text()


@dataclass(slots=True)
class AssemblyResult:
    text: str
    subroot: SubrootExpansion
    parsed: ParsedVhost
    merge: MergeResult
    directives: SiteDirectives | None = None
    warnings: list[str] = field(default_factory=list)

    @property
    def deleted_selectors(self) -> list[str]:
        return sorted(self.merge.deleted)


def assemble_vhost(rendered: str, *, keep_comments: bool = False) -> AssemblyResult:
    """Expand the subroot token, then merge duplicate location blocks.

    Never raises for malformed input; problems are reported through
    ``AssemblyResult.warnings`` and the affected text is passed through.
    """
    expansion = expand_subroot(rendered)
    lines = normalize_vhost_lines(expansion.text, keep_comments=keep_comments)
    parsed = parse_locations(lines)
    merge = merge_declarations(parsed.declarations)

    warnings: list[str] = []
    if expansion.warning:
        warnings.append(expansion.warning)
    if parsed.overrun:
        warnings.append("A second server container stopped location merging")

    return AssemblyResult(
        text=render_merged(parsed, merge),
        subroot=expansion,
        parsed=parsed,
        merge=merge,
        warnings=warnings,
    )


def build_vhost(
    site: Site,
    render: TemplateRenderer,
    snippet_lookup: SnippetLookup,
    *,
    context: dict[str, Any] | None = None,
    keep_comments: bool = False,
) -> AssemblyResult:
    """Prepare the site's directives, render the template and assemble it.

    ``render`` is the template collaborator: it receives ``context`` merged
    with the prepared directive lists and returns the raw vhost text.
    """
    directives = prepare_site_directives(site, snippet_lookup)
    template_context = dict(context or {})
    template_context.update(directives.as_context())
    result = assemble_vhost(render(template_context), keep_comments=keep_comments)
    result.directives = directives
    if not directives.rewrite_rules_valid:
        result.warnings.append("Custom rewrite rules were rejected and left out")
    if not directives.proxy_directives_valid:
        result.warnings.append("Custom proxy directives were rejected and left out")
    return result

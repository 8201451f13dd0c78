"""Prepare a site's custom directives for the external vhost template renderer."""
from __future__ import annotations

from dataclasses import asdict, dataclass, field
from hashlib import md5
from typing import Any, Callable
import logging
import re

from .directives import validate_directives
from .models import Site

logger = logging.getLogger(__name__)

SnippetLookup = Callable[[int], str | None]

REDIRECT_TYPE_PROXY = "proxy"

_FOLDER_RE = re.compile(r"^((?!(.*\.\.)|(.*\./)|(.*//))[^/][\w/_.\-]{1,100})?$")


@dataclass(slots=True)
class SiteDirectives:
    rewrite_rules: list[str] = field(default_factory=list)
    rewrite_rules_valid: bool = True
    proxy_directives: list[str] = field(default_factory=list)
    proxy_directives_valid: bool = True
    nginx_directives: list[str] = field(default_factory=list)
    enable_pagespeed: bool = False

    def as_context(self) -> dict[str, Any]:
        return asdict(self)


def _split_lines(text: str) -> list[str]:
    return text.replace("\r\n", "\n").replace("\r", "\n").split("\n")


def parse_folder_snippets(text: str | None) -> list[tuple[str, int]]:
    """Parse ``folder:snippet_id`` lines, skipping entries with unsafe folders."""
    entries: list[tuple[str, int]] = []
    if not text or not text.strip():
        return entries
    for line in _split_lines(text.strip()):
        folder, _, snippet_id = line.partition(":")
        folder = folder.strip()
        snippet_id = snippet_id.strip()
        if not folder or not snippet_id.isdigit() or int(snippet_id) <= 0:
            continue
        if not _FOLDER_RE.match(folder):
            logger.warning("Skipping folder directive snippet with unsafe folder %r", folder)
            continue
        if not folder.endswith("/"):
            folder += "/"
        entries.append((folder, int(snippet_id)))
    return entries


def expand_folder_snippet(snippet: str, folder: str) -> str:
    replacements = {
        "{FOLDER}": folder,
        "{FOLDERMD5}": md5(folder.encode("utf-8")).hexdigest(),
    }
    for placeholder, value in replacements.items():
        snippet = snippet.replace(placeholder, value)
    return snippet


def build_nginx_directives(site: Site, snippet_lookup: SnippetLookup) -> list[str]:
    """Resolve the snippet or own directives, append folder snippets, fill placeholders."""
    directives = None
    if site.directive_snippets_id:
        directives = snippet_lookup(site.directive_snippets_id)
    if directives is None:
        directives = site.nginx_directives or ""

    for folder, snippet_id in parse_folder_snippets(site.folder_directive_snippets):
        snippet = snippet_lookup(snippet_id)
        if snippet is not None:
            directives += "\n\n" + expand_folder_snippet(snippet, folder)

    if not directives.strip():
        return []
    placeholders = {
        "{DOCROOT}": site.web_document_root_www or "",
        "{DOCROOT_CLIENT}": site.web_document_root or "",
        "{DOMAIN}": site.domain,
    }
    lines = []
    for line in _split_lines(directives):
        for placeholder, value in placeholders.items():
            line = line.replace(placeholder, value)
        lines.append(line)
    return lines


def prepare_site_directives(site: Site, snippet_lookup: SnippetLookup) -> SiteDirectives:
    """Collect the validated directive sets for ``site``.

    Rewrite rules and proxy directives are fail-closed: a single bad line
    empties the whole set and clears its validity flag.
    """
    prepared = SiteDirectives()

    rewrite_batch = validate_directives(site.rewrite_rules, source=f"rewrite rules of {site.domain}")
    prepared.rewrite_rules = rewrite_batch.accepted_lines()
    prepared.rewrite_rules_valid = rewrite_batch.valid

    if site.redirect_type == REDIRECT_TYPE_PROXY and site.proxy_directives and site.proxy_directives.strip():
        proxy_batch = validate_directives(site.proxy_directives, source=f"proxy directives of {site.domain}")
        prepared.proxy_directives = proxy_batch.accepted_lines()
        prepared.proxy_directives_valid = proxy_batch.valid

    prepared.nginx_directives = build_nginx_directives(site, snippet_lookup)
    if site.enable_pagespeed:
        prepared.enable_pagespeed = not any("pagespeed" in line.lower() for line in prepared.nginx_directives)
    return prepared

"""Lookups and inserts for site and snippet records."""
from __future__ import annotations

from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from . import models
from .site_directives import SnippetLookup


class RecordNotFound(LookupError):
    pass


def get_site(session: Session, domain: str) -> models.Site:
    site = session.scalar(select(models.Site).where(models.Site.domain == domain))
    if site is None:
        raise RecordNotFound(f"No site record for {domain}")
    return site


def lookup_snippet(session: Session, snippet_id: int) -> str | None:
    """Return the text of an active, customer-viewable nginx snippet."""
    snippet = session.scalar(
        select(models.DirectiveSnippet).where(
            models.DirectiveSnippet.id == snippet_id,
            models.DirectiveSnippet.type == models.SNIPPET_TYPE_NGINX,
            models.DirectiveSnippet.active.is_(True),
            models.DirectiveSnippet.customer_viewable.is_(True),
        )
    )
    return snippet.snippet if snippet is not None else None


def snippet_lookup_for(session: Session) -> SnippetLookup:
    return lambda snippet_id: lookup_snippet(session, snippet_id)


def add_snippet(session: Session, name: str, snippet: str, *, active: bool = True) -> models.DirectiveSnippet:
    record = models.DirectiveSnippet(name=name, snippet=snippet, active=active)
    session.add(record)
    session.flush()
    return record


def upsert_site(session: Session, domain: str, **fields: Any) -> models.Site:
    """Create the site for ``domain`` or update the given columns of it."""
    site = session.scalar(select(models.Site).where(models.Site.domain == domain))
    if site is None:
        site = models.Site(domain=domain, **fields)
        session.add(site)
    else:
        for key, value in fields.items():
            setattr(site, key, value)
    session.flush()
    return site

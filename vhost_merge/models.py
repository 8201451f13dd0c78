"""SQLAlchemy models for site and directive snippet records."""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any

from sqlalchemy import Boolean, DateTime, ForeignKey, String, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    pass


SNIPPET_TYPE_NGINX = "nginx"


class DirectiveSnippet(Base):
    __tablename__ = "directive_snippets"

    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    type: Mapped[str] = mapped_column(String(32), default=SNIPPET_TYPE_NGINX, nullable=False)
    snippet: Mapped[str] = mapped_column(Text(), nullable=False)
    active: Mapped[bool] = mapped_column(Boolean, default=True)
    customer_viewable: Mapped[bool] = mapped_column(Boolean, default=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    sites: Mapped[list[Site]] = relationship(back_populates="directive_snippet")


class Site(Base):
    __tablename__ = "sites"

    id: Mapped[int] = mapped_column(primary_key=True)
    domain: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    document_root: Mapped[str] = mapped_column(Text(), nullable=False)
    web_document_root: Mapped[str | None] = mapped_column(Text())
    web_document_root_www: Mapped[str | None] = mapped_column(Text())
    redirect_type: Mapped[str | None] = mapped_column(String(32))
    redirect_path: Mapped[str | None] = mapped_column(Text())
    rewrite_rules: Mapped[str | None] = mapped_column(Text())
    nginx_directives: Mapped[str | None] = mapped_column(Text())
    proxy_directives: Mapped[str | None] = mapped_column(Text())
    folder_directive_snippets: Mapped[str | None] = mapped_column(Text())
    directive_snippets_id: Mapped[int | None] = mapped_column(
        ForeignKey("directive_snippets.id", ondelete="SET NULL"), index=True
    )
    enable_pagespeed: Mapped[bool] = mapped_column(Boolean, default=False)
    active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    directive_snippet: Mapped[DirectiveSnippet | None] = relationship(back_populates="sites")


def to_dict(instance: Base) -> dict[str, Any]:
    """Return a dictionary of column values for debugging."""
    return {column.key: getattr(instance, column.key) for column in instance.__table__.columns}

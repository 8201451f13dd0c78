"""Expand the ``##subroot <path> ##`` token into the vhost document root."""
from __future__ import annotations

from dataclasses import dataclass
import logging
import re

logger = logging.getLogger(__name__)

SUBROOT_TOKEN_RE = re.compile(r"##subroot (.+?)\s*##")
_SAFE_PAYLOAD_RE = re.compile(r"^(?:[a-z0-9/_-]|\.(?!\.))+$", re.IGNORECASE)
_ROOT_DIRECTIVE_RE = re.compile(r"^[ \t]*root[ \t]+[^;\n]*(;)", re.MULTILINE)


@dataclass(slots=True)
class SubrootExpansion:
    text: str
    payload: str | None = None
    applied: bool = False
    warning: str | None = None


def is_safe_subroot(payload: str) -> bool:
    """Return True when ``payload`` is a plain relative path without traversal."""
    if "//" in payload:
        return False
    return bool(_SAFE_PAYLOAD_RE.match(payload))


def expand_subroot(text: str) -> SubrootExpansion:
    """Splice the first subroot payload into the first ``root`` directive.

    Only the first token is considered. The token itself is left in place;
    an unsafe payload or a text without a ``root`` directive leaves the text
    untouched and reports a warning instead.
    """
    match = SUBROOT_TOKEN_RE.search(text)
    if match is None:
        return SubrootExpansion(text=text)

    payload = match.group(1)
    if not is_safe_subroot(payload):
        warning = f"Token ##subroot is unsafe: {payload!r}"
        logger.warning(warning)
        return SubrootExpansion(text=text, payload=payload, warning=warning)

    root = _ROOT_DIRECTIVE_RE.search(text)
    if root is None:
        warning = "Token ##subroot found but the vhost has no root directive"
        logger.warning(warning)
        return SubrootExpansion(text=text, payload=payload, warning=warning)

    insert_at = root.start(1)
    expanded = text[:insert_at] + payload.lstrip("/") + text[insert_at:]
    return SubrootExpansion(text=expanded, payload=payload, applied=True)

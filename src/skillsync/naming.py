from __future__ import annotations

import re

PLACEHOLDER_NAME = "unnamed-skill"
MAX_NAME_LENGTH = 255

_UNSAFE_RUN_RE = re.compile(r"[^a-z0-9._]+")
_EDGE_RE = re.compile(r"^[.\-]+|[.\-]+$")
_WHITESPACE_RE = re.compile(r"\s+")
_SEPARATOR_RE = re.compile(r"[/\\:\x00]")


def sanitize_name(raw: str) -> str:
    """
    Turn an arbitrary display string into a directory name that is safe to join onto a base path.

    Separators, traversal sequences and drive prefixes collapse into single hyphens, so the result
    never contains a path separator or a `..` segment. The function is idempotent.
    """
    sanitized = _UNSAFE_RUN_RE.sub("-", raw.lower())
    sanitized = _EDGE_RE.sub("", sanitized)
    # Truncation can expose a trailing dot or hyphen again.
    sanitized = _EDGE_RE.sub("", sanitized[:MAX_NAME_LENGTH])
    return sanitized or PLACEHOLDER_NAME


def skill_slug(name: str) -> str:
    # Looser than sanitize_name: matches folders created by tools that only hyphenate spaces.
    return _SEPARATOR_RE.sub("", _WHITESPACE_RE.sub("-", name.lower()))

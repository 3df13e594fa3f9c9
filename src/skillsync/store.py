from __future__ import annotations

import logging
from pathlib import Path

from .links import force_remove, probe_entry
from .naming import sanitize_name
from .paths import safe_join

logger = logging.getLogger(__name__)

AGENTS_DIR = ".agents"
SKILLS_SUBDIR = "skills"


def canonical_skills_dir(scope_root: Path) -> Path:
    return Path(scope_root) / AGENTS_DIR / SKILLS_SUBDIR


def canonical_dir(scope_root: Path, name: str) -> Path:
    """Single source of truth for an installed skill: `<scope_root>/.agents/skills/<sanitized name>`."""
    base = canonical_skills_dir(scope_root)
    return safe_join(base, sanitize_name(name))


def remove_if_stale_link(path: Path) -> bool:
    """
    Remove `path` if it is a symlink (for example left behind by a self-referential install)
    or an entry that cannot be inspected because of a link loop.
    Returns True when something was removed.
    """
    kind = probe_entry(path)
    if kind not in ("link", "loop"):
        return False
    logger.debug("removing stale %s at %s", kind, path)
    return force_remove(path)


def ensure_directory(path: Path) -> Path:
    remove_if_stale_link(path)
    path.mkdir(parents=True, exist_ok=True)
    return path

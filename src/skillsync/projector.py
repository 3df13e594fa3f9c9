from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Literal

from .errors import LinkUnavailableError
from .links import LinkBackend, default_backend, force_remove, probe_entry, remove_entry

logger = logging.getLogger(__name__)

InstallMode = Literal["link", "copy"]


@dataclass(frozen=True)
class Projection:
    path: Path
    mode: InstallMode
    link_failed: bool = False


def _abs(path: Path) -> str:
    return os.path.normpath(os.path.abspath(path))


class AgentProjector:
    """
    Makes a canonical skill directory visible at an agent-specific path.

    The preferred view is a relative link. When the link cannot be created the caller-supplied
    `copy` callback materializes an independent copy instead, so a projection either leaves
    readable files behind or raises.
    """

    def __init__(self, backend: LinkBackend | None = None) -> None:
        self.backend = backend or default_backend()

    def link(self, canonical_dir: Path, consumer_path: Path) -> bool:
        """Point `consumer_path` at `canonical_dir`. Returns False if a link could not be made."""
        target = _abs(canonical_dir)
        if _abs(consumer_path) == target:
            # The agent reads straight from the canonical store.
            return True
        # Same check through a linked parent, e.g. `.claude/skills -> ../.agents/skills`.
        if os.path.join(os.path.realpath(consumer_path.parent), consumer_path.name) == os.path.realpath(canonical_dir):
            return True

        try:
            kind = probe_entry(consumer_path)
            if kind == "link":
                existing = self.backend.resolve_link(consumer_path)
                if existing is not None and _abs(existing) == target:
                    return True
                remove_entry(consumer_path)
            elif kind in ("dir", "file"):
                remove_entry(consumer_path)
            elif kind == "loop":
                # Link creation below fails if this does not work, which triggers the copy fallback.
                force_remove(consumer_path)

            consumer_path.parent.mkdir(parents=True, exist_ok=True)
            self.backend.create_link(Path(canonical_dir), Path(consumer_path))
        except (OSError, NotImplementedError, LinkUnavailableError) as e:
            logger.debug("%s to %s unavailable at %s: %s", self.backend.name, canonical_dir, consumer_path, e)
            return False
        return True

    def project(self, canonical_dir: Path, consumer_path: Path, *, copy: Callable[[Path], object]) -> Projection:
        consumer_path = Path(consumer_path)
        if self.link(canonical_dir, consumer_path):
            return Projection(path=consumer_path, mode="link")

        logger.info("could not link %s, copying skill files instead", consumer_path)
        force_remove(consumer_path)
        consumer_path.mkdir(parents=True, exist_ok=True)
        copy(consumer_path)
        return Projection(path=consumer_path, mode="copy", link_failed=True)

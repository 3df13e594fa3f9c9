from __future__ import annotations

import errno
import logging
import os
import shutil
import stat
from pathlib import Path
from typing import Literal, Protocol

from .errors import LinkUnavailableError

logger = logging.getLogger(__name__)

EntryKind = Literal["missing", "link", "dir", "file", "loop"]


def probe_entry(path: Path) -> EntryKind:
    """Classify what sits at `path` without following a final symlink."""
    try:
        st = os.lstat(path)
    except FileNotFoundError:
        return "missing"
    except OSError as e:
        if e.errno == errno.ELOOP:
            return "loop"
        if e.errno == errno.ENOTDIR:
            return "missing"
        raise
    if stat.S_ISLNK(st.st_mode) or _is_junction(path):
        return "link"
    if stat.S_ISDIR(st.st_mode):
        return "dir"
    return "file"


def _is_junction(path: Path) -> bool:
    if os.name != "nt":
        return False
    isjunction = getattr(os.path, "isjunction", None)
    if isjunction is not None:
        return bool(isjunction(path))
    try:
        os.readlink(path)
    except OSError:
        return False
    return True


def remove_entry(path: Path) -> None:
    kind = probe_entry(path)
    if kind == "missing":
        return
    if kind == "dir":
        shutil.rmtree(path)
        return
    if kind == "link" and _is_junction(path):
        os.rmdir(path)
        return
    os.unlink(path)


def force_remove(path: Path) -> bool:
    """Best-effort removal. Returns False when something is still in the way."""
    try:
        remove_entry(path)
    except OSError as e:
        logger.debug("could not remove %s: %s", path, e)
        return False
    return True


def _strip_extended_prefix(target: str) -> str:
    if target.startswith("\\\\?\\"):
        return target[4:]
    return target


class LinkBackend(Protocol):
    name: str

    def create_link(self, target: Path, link_path: Path) -> None:
        ...

    def resolve_link(self, link_path: Path) -> Path | None:
        ...


class SymlinkBackend:
    """Relative directory symlinks; the projection stays valid if the whole tree moves."""

    name = "symlink"

    def create_link(self, target: Path, link_path: Path) -> None:
        relative = os.path.relpath(target, link_path.parent)
        os.symlink(relative, link_path, target_is_directory=True)

    def resolve_link(self, link_path: Path) -> Path | None:
        if probe_entry(link_path) != "link":
            return None
        raw = os.readlink(link_path)
        return Path(os.path.normpath(os.path.join(os.path.dirname(os.path.abspath(link_path)), raw)))


class JunctionBackend:
    """Directory junctions, which Windows allows without elevated privileges."""

    name = "junction"

    def create_link(self, target: Path, link_path: Path) -> None:
        try:
            import _winapi
        except ImportError as e:
            raise LinkUnavailableError("directory junctions are only available on Windows") from e

        # Junctions only store absolute targets.
        _winapi.CreateJunction(os.path.abspath(target), os.path.abspath(link_path))

    def resolve_link(self, link_path: Path) -> Path | None:
        if probe_entry(link_path) != "link":
            return None
        raw = _strip_extended_prefix(os.readlink(link_path))
        return Path(os.path.normpath(os.path.join(os.path.dirname(os.path.abspath(link_path)), raw)))


def default_backend() -> LinkBackend:
    if os.name == "nt":
        return JunctionBackend()
    return SymlinkBackend()

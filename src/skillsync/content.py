from __future__ import annotations

import hashlib
import logging
import os
import shutil
from concurrent.futures import Future, ThreadPoolExecutor
from pathlib import Path
from typing import Mapping

from .errors import WriteFailureError
from .paths import is_path_safe

logger = logging.getLogger(__name__)

# Entries never copied into an install, at any depth.
EXCLUDE_FILES = {"README.md", "metadata.json"}
EXCLUDE_DIRS = {".git"}

DEFAULT_MAX_WORKERS = 8


def is_excluded(name: str, *, is_dir: bool = False) -> bool:
    if name in EXCLUDE_FILES:
        return True
    if name.startswith("_"):
        return True
    if is_dir and name in EXCLUDE_DIRS:
        return True
    return False


def _same_dir(a: Path, b: Path) -> bool:
    try:
        return os.path.samefile(a, b)
    except OSError:
        return False


def materialize_from_directory(src: Path, dest: Path, *, max_workers: int = DEFAULT_MAX_WORKERS) -> int:
    """
    Mirror `src` into `dest`, skipping noise entries and dereferencing symlinks.

    Directories are created on the calling thread before any of their children are visited;
    file copies run in a thread pool. A failed child never stops its siblings: every copy is
    attempted and the first failure is raised as WriteFailureError at the end.
    Returns the number of files written.
    """
    src = Path(src)
    dest = Path(dest)
    if not src.is_dir():
        raise WriteFailureError(f"Skill source is not a directory: {src}")
    dest.mkdir(parents=True, exist_ok=True)
    if _same_dir(src, dest):
        logger.debug("source and destination are the same directory, nothing to copy: %s", dest)
        return 0

    failures: list[str] = []
    futures: list[tuple[Path, Future[object]]] = []
    # Each pending directory carries the real paths of its own ancestors; only those form a cycle.
    pending: list[tuple[Path, Path, frozenset[str]]] = [(src, dest, frozenset({os.path.realpath(src)}))]

    with ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="skillsync-copy") as pool:
        while pending:
            src_dir, dest_dir, ancestors = pending.pop()
            try:
                entries = sorted(os.scandir(src_dir), key=lambda e: e.name)
            except OSError as e:
                failures.append(f"{src_dir}: {e}")
                continue

            for entry in entries:
                # is_dir() follows symlinks, so linked directories are copied as real ones.
                try:
                    entry_is_dir = entry.is_dir()
                except OSError:
                    entry_is_dir = False
                if is_excluded(entry.name, is_dir=entry_is_dir):
                    continue

                src_path = Path(entry.path)
                dest_path = dest_dir / entry.name
                if entry_is_dir:
                    real = os.path.realpath(src_path)
                    if real in ancestors:
                        logger.debug("skipping symlinked directory cycle at %s", src_path)
                        continue
                    try:
                        dest_path.mkdir(parents=True, exist_ok=True)
                    except OSError as e:
                        failures.append(f"{dest_path}: {e}")
                        continue
                    pending.append((src_path, dest_path, ancestors | {real}))
                    continue

                futures.append((dest_path, pool.submit(shutil.copy2, src_path, dest_path)))

        written = 0
        for dest_path, future in futures:
            exc = future.exception()
            if exc is None:
                written += 1
                continue
            failures.append(f"{dest_path}: {exc}")

    if failures:
        for failure in failures[1:]:
            logger.warning("copy failed: %s", failure)
        raise WriteFailureError(f"Failed to copy skill files: {failures[0]}")
    return written


def materialize_from_file_map(files: Mapping[str, str], dest: Path) -> int:
    """
    Write an in-memory `relative path -> content` map under `dest`.

    Entries that would land outside `dest` are skipped, the rest are still written.
    Returns the number of files written.
    """
    dest = Path(dest)
    written = 0
    try:
        dest.mkdir(parents=True, exist_ok=True)
        for rel_path, content in files.items():
            target = dest / rel_path
            if not is_path_safe(dest, target) or os.path.normpath(os.path.abspath(target)) == os.path.normpath(
                os.path.abspath(dest)
            ):
                logger.debug("skipping file outside of skill directory: %r", rel_path)
                continue
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_text(content, encoding="utf-8")
            written += 1
    except OSError as e:
        raise WriteFailureError(f"Failed to write skill files to {dest}: {e}") from e
    return written


def write_skill_md(content: str, dest: Path) -> int:
    return materialize_from_file_map({"SKILL.md": content}, dest)


def folder_hash(root: Path) -> str:
    """
    Deterministic sha256 over the files an install of `root` would contain.

    Both relative paths and contents are hashed, so renames count as changes.
    """
    root = Path(root).expanduser().resolve()
    files: list[Path] = []
    ancestors_of: dict[str, frozenset[str]] = {str(root): frozenset({os.path.realpath(root)})}
    for dirpath, dirnames, filenames in os.walk(root, followlinks=True):
        ancestors = ancestors_of.pop(dirpath)
        keep: list[str] = []
        for d in sorted(dirnames):
            child = os.path.join(dirpath, d)
            real = os.path.realpath(child)
            if is_excluded(d, is_dir=True) or real in ancestors:
                continue
            ancestors_of[child] = ancestors | {real}
            keep.append(d)
        dirnames[:] = keep
        for name in filenames:
            if is_excluded(name):
                continue
            files.append(Path(dirpath) / name)

    files.sort(key=lambda p: p.relative_to(root).as_posix())
    digest = hashlib.sha256()
    for p in files:
        rel = p.relative_to(root).as_posix()
        digest.update(rel.encode("utf-8"))
        digest.update(b"\0")
        digest.update(p.read_bytes())
        digest.update(b"\0")
    return digest.hexdigest()

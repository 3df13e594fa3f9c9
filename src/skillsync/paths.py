from __future__ import annotations

import os
from pathlib import Path

from .errors import UnsafePathError


def _normalize(path: str | Path) -> str:
    return os.path.normpath(os.path.abspath(os.fspath(path)))


def is_path_safe(base: str | Path, candidate: str | Path) -> bool:
    normalized_base = _normalize(base)
    normalized_candidate = _normalize(candidate)
    if normalized_candidate == normalized_base:
        return True
    # A filesystem root already ends with a separator.
    prefix = normalized_base if normalized_base.endswith(os.sep) else normalized_base + os.sep
    return normalized_candidate.startswith(prefix)


def ensure_path_safe(base: str | Path, candidate: str | Path) -> Path:
    if not is_path_safe(base, candidate):
        raise UnsafePathError(str(base), str(candidate))
    return Path(candidate)


def safe_join(base: str | Path, *parts: str) -> Path:
    candidate = Path(base).joinpath(*parts)
    return ensure_path_safe(base, candidate)

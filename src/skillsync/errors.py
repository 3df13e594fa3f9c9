from __future__ import annotations

from dataclasses import dataclass


class SkillsyncError(RuntimeError):
    pass


class UnsafePathError(SkillsyncError):
    """A computed path escaped the directory it was supposed to live in."""

    def __init__(self, base: str, candidate: str) -> None:
        super().__init__(f"Invalid skill name: potential path traversal detected ({candidate!r} is outside {base!r})")
        self.base = base
        self.candidate = candidate


class LinkUnavailableError(SkillsyncError):
    pass


class WriteFailureError(SkillsyncError):
    pass


class DescriptorUnreadableError(SkillsyncError):
    pass


class LockSchemaMismatchError(SkillsyncError):
    pass


@dataclass(frozen=True)
class SkillsyncHTTPError(SkillsyncError):
    status_code: int
    body: str

    def __str__(self) -> str:  # pragma: no cover
        return f"HTTP {self.status_code}: {self.body}"

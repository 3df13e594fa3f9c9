from __future__ import annotations

from ._version import __version__
from .errors import (
    DescriptorUnreadableError,
    LinkUnavailableError,
    LockSchemaMismatchError,
    SkillsyncError,
    UnsafePathError,
    WriteFailureError,
)
from .installer import InstallResult, install_batch, install_file_map_skill, install_remote_skill, install_skill
from .naming import sanitize_name
from .paths import is_path_safe
from .reconcile import InstalledSkill, list_installed_skills

__all__ = [
    "__version__",
    "DescriptorUnreadableError",
    "InstallResult",
    "InstalledSkill",
    "LinkUnavailableError",
    "LockSchemaMismatchError",
    "SkillsyncError",
    "UnsafePathError",
    "WriteFailureError",
    "install_batch",
    "install_file_map_skill",
    "install_remote_skill",
    "install_skill",
    "is_path_safe",
    "list_installed_skills",
    "sanitize_name",
]

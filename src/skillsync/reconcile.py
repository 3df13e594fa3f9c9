from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Literal

from .agents import AgentRegistry, default_registry
from .errors import SkillsyncError
from .naming import sanitize_name, skill_slug
from .paths import is_path_safe
from .skills import SKILL_FILENAME, Skill, read_skill_dir
from .store import canonical_skills_dir

logger = logging.getLogger(__name__)

Scope = Literal["project", "global"]


@dataclass(frozen=True)
class InstalledSkill:
    name: str
    description: str
    path: Path
    canonical_path: Path
    scope: Scope
    agents: tuple[str, ...]


class _DescriptorCache:
    """Parsed SKILL.md per directory, kept for the duration of one reconciliation run."""

    def __init__(self) -> None:
        self._skills: dict[Path, Skill | None] = {}

    def read(self, directory: Path) -> Skill | None:
        if directory not in self._skills:
            self._skills[directory] = read_skill_dir(directory)
        return self._skills[directory]


def _list_dirs(root: Path) -> list[Path]:
    if not root.is_dir():
        return []
    try:
        return sorted(p for p in root.iterdir() if p.is_dir())
    except OSError as e:
        logger.debug("cannot list %s: %s", root, e)
        return []


def candidate_dir_names(dir_name: str, skill_name: str) -> list[str]:
    names = [dir_name, sanitize_name(skill_name), skill_slug(skill_name)]
    return [n for n in dict.fromkeys(names) if n]


def _visible_by_name(agent_base: Path, names: Iterable[str]) -> bool:
    for name in names:
        candidate = agent_base / name
        if not is_path_safe(agent_base, candidate) or candidate == agent_base:
            continue
        if candidate.exists():
            return True
    return False


def _visible_by_descriptor(agent_base: Path, skill_name: str, cache: _DescriptorCache) -> bool:
    for candidate in _list_dirs(agent_base):
        if not is_path_safe(agent_base, candidate):
            continue
        if not (candidate / SKILL_FILENAME).is_file():
            continue
        found = cache.read(candidate)
        if found is not None and found.name == skill_name:
            return True
    return False


def is_visible_to_agent(agent_base: Path, dir_name: str, skill: Skill, cache: _DescriptorCache | None = None) -> bool:
    """
    Whether an agent directory exposes `skill`.

    Tries the likely folder names first, then falls back to reading every SKILL.md in the agent
    directory and comparing declared names, for folders named nothing like the skill.
    """
    if _visible_by_name(agent_base, candidate_dir_names(dir_name, skill.name)):
        return True
    return _visible_by_descriptor(agent_base, skill.name, cache or _DescriptorCache())


def list_installed_skills(
    *,
    global_install: bool | None = None,
    cwd: Path | None = None,
    agent_filter: Iterable[str] | None = None,
    registry: AgentRegistry | None = None,
) -> list[InstalledSkill]:
    """
    List canonically installed skills and which agents can see each one.

    `global_install=None` scans the project scope and then the global scope. A skill is listed even
    when no agent exposes it.
    """
    registry = registry or default_registry()
    agents = list(agent_filter) if agent_filter is not None else registry.names()
    scopes: list[bool] = [False, True] if global_install is None else [global_install]
    cache = _DescriptorCache()

    installed: list[InstalledSkill] = []
    for is_global in scopes:
        scope_root = registry.scope_root(global_install=is_global, cwd=cwd)
        for skill_dir in _list_dirs(canonical_skills_dir(scope_root)):
            skill = cache.read(skill_dir)
            if skill is None:
                continue

            visible: list[str] = []
            for agent in agents:
                try:
                    agent_base = registry.skills_dir(agent, global_install=is_global, cwd=cwd)
                except SkillsyncError as e:
                    logger.debug("skipping agent %s: %s", agent, e)
                    continue
                if agent_base is None:
                    continue
                if is_visible_to_agent(agent_base, skill_dir.name, skill, cache):
                    visible.append(agent)

            installed.append(
                InstalledSkill(
                    name=skill.name,
                    description=skill.description,
                    path=skill_dir,
                    canonical_path=skill_dir,
                    scope="global" if is_global else "project",
                    agents=tuple(visible),
                )
            )
    return installed

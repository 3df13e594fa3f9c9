from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterable, Union

from .agents import AgentRegistry, default_registry
from .content import materialize_from_directory, materialize_from_file_map, write_skill_md
from .errors import SkillsyncError, UnsafePathError
from .naming import sanitize_name
from .paths import is_path_safe, safe_join
from .projector import AgentProjector, InstallMode
from .store import canonical_skills_dir, ensure_directory
from .skills import FileMapSkill, RemoteSkill, Skill

logger = logging.getLogger(__name__)

AnySkill = Union[Skill, RemoteSkill, FileMapSkill]
Writer = Callable[[Path], object]


@dataclass(frozen=True)
class InstallResult:
    skill: str
    agent: str
    success: bool
    path: Path
    mode: InstallMode
    canonical_path: Path | None = None
    link_failed: bool = False
    error: str | None = None


def install_name_for(skill: AnySkill) -> str:
    if isinstance(skill, (RemoteSkill, FileMapSkill)):
        return skill.install_name
    return skill.name or skill.path.name


def _writer_for(skill: AnySkill) -> Writer:
    if isinstance(skill, RemoteSkill):
        return lambda dest: write_skill_md(skill.content, dest)
    if isinstance(skill, FileMapSkill):
        return lambda dest: materialize_from_file_map(skill.files, dest)
    return lambda dest: materialize_from_directory(skill.path, dest)


def _install(
    skill: AnySkill,
    agent: str,
    *,
    global_install: bool,
    cwd: Path | None,
    mode: InstallMode,
    registry: AgentRegistry,
    projector: AgentProjector,
) -> InstallResult:
    dir_name = sanitize_name(install_name_for(skill))
    scope_root = registry.scope_root(global_install=global_install, cwd=cwd)
    canonical_base = canonical_skills_dir(scope_root)
    display = install_name_for(skill)
    try:
        agent_base = registry.skills_dir(agent, global_install=global_install, cwd=cwd)
    except SkillsyncError as e:
        return InstallResult(
            skill=display, agent=agent, success=False, path=canonical_base / dir_name, mode=mode, error=str(e)
        )

    if agent_base is None:
        return InstallResult(
            skill=display,
            agent=agent,
            success=False,
            path=canonical_base / dir_name,
            mode=mode,
            error=f"{registry.get(agent).display_name} does not support global skill installation",
        )

    agent_dir = agent_base / dir_name
    try:
        canonical = safe_join(canonical_base, dir_name)
        safe_join(agent_base, dir_name)
    except UnsafePathError as e:
        return InstallResult(skill=display, agent=agent, success=False, path=agent_dir, mode=mode, error=str(e))

    write = _writer_for(skill)
    try:
        if mode == "copy":
            ensure_directory(agent_dir)
            write(agent_dir)
            return InstallResult(skill=display, agent=agent, success=True, path=agent_dir, mode="copy")

        ensure_directory(canonical)
        write(canonical)
        projection = projector.project(canonical, agent_dir, copy=write)
    except (OSError, SkillsyncError) as e:
        logger.warning("install of %s for %s failed: %s", display, agent, e)
        return InstallResult(skill=display, agent=agent, success=False, path=agent_dir, mode=mode, error=str(e))

    return InstallResult(
        skill=display,
        agent=agent,
        success=True,
        path=agent_dir,
        canonical_path=canonical,
        mode=projection.mode,
        link_failed=projection.link_failed,
    )


def install_skill(
    skill: AnySkill,
    agent: str,
    *,
    global_install: bool = False,
    cwd: Path | None = None,
    mode: InstallMode = "link",
    registry: AgentRegistry | None = None,
    projector: AgentProjector | None = None,
) -> InstallResult:
    """
    Install one skill for one agent.

    In link mode the skill is written once to the canonical store and the agent directory becomes
    a link to it (or a copy when linking fails). In copy mode the files go straight into the agent
    directory. Failures are reported in the result, never raised.
    """
    return _install(
        skill,
        agent,
        global_install=global_install,
        cwd=cwd,
        mode=mode,
        registry=registry or default_registry(),
        projector=projector or AgentProjector(),
    )


def install_remote_skill(skill: RemoteSkill, agent: str, **kwargs) -> InstallResult:
    return install_skill(skill, agent, **kwargs)


def install_file_map_skill(skill: FileMapSkill, agent: str, **kwargs) -> InstallResult:
    return install_skill(skill, agent, **kwargs)


def install_batch(
    skills: Iterable[AnySkill],
    agents: Iterable[str],
    *,
    global_install: bool = False,
    cwd: Path | None = None,
    mode: InstallMode = "link",
    registry: AgentRegistry | None = None,
    projector: AgentProjector | None = None,
) -> list[InstallResult]:
    """
    Install every skill for every agent, one pair at a time.

    Pairs share canonical directories, so they are never interleaved. Results come back in
    skill-major order and a failed pair never stops the rest of the batch.
    """
    registry = registry or default_registry()
    projector = projector or AgentProjector()
    agent_list = list(agents)
    results: list[InstallResult] = []
    for skill in skills:
        for agent in agent_list:
            results.append(
                _install(
                    skill,
                    agent,
                    global_install=global_install,
                    cwd=cwd,
                    mode=mode,
                    registry=registry,
                    projector=projector,
                )
            )
    return results


def get_install_path(
    name: str,
    agent: str,
    *,
    global_install: bool = False,
    cwd: Path | None = None,
    registry: AgentRegistry | None = None,
) -> Path:
    registry = registry or default_registry()
    base = registry.skills_dir(agent, global_install=global_install, cwd=cwd)
    if base is None:
        raise SkillsyncError(f"{registry.get(agent).display_name} does not support global skill installation")
    return safe_join(base, sanitize_name(name))


def get_canonical_path(
    name: str,
    *,
    global_install: bool = False,
    cwd: Path | None = None,
    registry: AgentRegistry | None = None,
) -> Path:
    registry = registry or default_registry()
    base = canonical_skills_dir(registry.scope_root(global_install=global_install, cwd=cwd))
    return safe_join(base, sanitize_name(name))


def is_skill_installed(
    name: str,
    agent: str,
    *,
    global_install: bool = False,
    cwd: Path | None = None,
    registry: AgentRegistry | None = None,
) -> bool:
    registry = registry or default_registry()
    base = registry.skills_dir(agent, global_install=global_install, cwd=cwd)
    if base is None:
        return False
    candidate = base / sanitize_name(name)
    if not is_path_safe(base, candidate):
        return False
    return candidate.exists()


def check_overwrites(
    names: Iterable[str],
    agents: Iterable[str],
    *,
    global_install: bool = False,
    cwd: Path | None = None,
    registry: AgentRegistry | None = None,
) -> dict[tuple[str, str], bool]:
    """Report, per (skill name, agent), whether an install would replace something. Read-only."""
    registry = registry or default_registry()
    agent_list = list(agents)
    pairs = [(n, a) for n in names for a in agent_list]
    if not pairs:
        return {}
    with ThreadPoolExecutor(max_workers=min(8, len(pairs)), thread_name_prefix="skillsync-check") as pool:
        flags = pool.map(
            lambda pair: is_skill_installed(
                pair[0], pair[1], global_install=global_install, cwd=cwd, registry=registry
            ),
            pairs,
        )
        return dict(zip(pairs, flags))

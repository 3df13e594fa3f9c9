from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterable, Mapping

import yaml

from .errors import DescriptorUnreadableError

logger = logging.getLogger(__name__)

SKILL_FILENAME = "SKILL.md"
SKIP_DIRS = {"node_modules", ".git", "dist", "build", "__pycache__"}
MAX_SEARCH_DEPTH = 5

# Frontmatter fences are lines holding only `---`.
_FENCE_RE = re.compile(r"^---[ \t\r]*$", re.M)

# Conventional places a repository keeps its skills, searched before a full recursive walk.
PRIORITY_SUBDIRS = (
    "",
    "skills",
    "skills/.curated",
    "skills/.experimental",
    "skills/.system",
    ".agent/skills",
    ".agents/skills",
    ".claude/skills",
    ".cline/skills",
    ".codebuddy/skills",
    ".codex/skills",
    ".commandcode/skills",
    ".continue/skills",
    ".cursor/skills",
    ".github/skills",
    ".goose/skills",
    ".junie/skills",
    ".kilocode/skills",
    ".kiro/skills",
    ".mux/skills",
    ".neovate/skills",
    ".opencode/skills",
    ".openhands/skills",
    ".pi/skills",
    ".qoder/skills",
    ".roo/skills",
    ".trae/skills",
    ".windsurf/skills",
    ".zencoder/skills",
)


@dataclass(frozen=True)
class Skill:
    name: str
    description: str
    path: Path
    raw_content: str | None = None
    metadata: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class RemoteSkill:
    """A single-file skill fetched from a hosting provider."""

    name: str
    description: str
    content: str
    install_name: str
    source_url: str
    provider_id: str
    source_identifier: str
    metadata: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class FileMapSkill:
    """A multi-file skill whose files are already in memory, keyed by relative path."""

    name: str
    description: str
    install_name: str
    files: Mapping[str, str]
    source_url: str = ""
    metadata: Mapping[str, Any] = field(default_factory=dict)


def should_install_internal_skills() -> bool:
    return os.getenv("INSTALL_INTERNAL_SKILLS", "") in ("1", "true")


def parse_frontmatter(content: str) -> dict[str, Any]:
    parts = _FENCE_RE.split(content, maxsplit=2)
    if parts[0]:
        raise DescriptorUnreadableError("SKILL.md must start with YAML frontmatter (---)")
    if len(parts) < 3:
        raise DescriptorUnreadableError("SKILL.md frontmatter is not closed with ---")
    try:
        parsed = yaml.safe_load(parts[1])
    except yaml.YAMLError as e:
        raise DescriptorUnreadableError(f"Invalid YAML in frontmatter: {e}") from e
    if not isinstance(parsed, dict):
        raise DescriptorUnreadableError("SKILL.md frontmatter must be a YAML mapping")
    return parsed


def load_skill_md(skill_md: Path, *, include_internal: bool = False) -> Skill:
    """Parse a SKILL.md into a Skill, raising DescriptorUnreadableError when it is not a usable skill."""
    try:
        content = Path(skill_md).read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise DescriptorUnreadableError(f"Could not read {skill_md}: {e}") from e

    data = parse_frontmatter(content)
    name = data.get("name")
    description = data.get("description")
    if not isinstance(name, str) or not name.strip():
        raise DescriptorUnreadableError(f"{skill_md} has no name")
    if not isinstance(description, str) or not description.strip():
        raise DescriptorUnreadableError(f"{skill_md} has no description")

    metadata = data.get("metadata")
    if not isinstance(metadata, dict):
        metadata = {}
    if metadata.get("internal") is True and not include_internal and not should_install_internal_skills():
        raise DescriptorUnreadableError(f"{name} is an internal skill")

    return Skill(
        name=name,
        description=description,
        path=Path(skill_md).parent,
        raw_content=content,
        metadata=metadata,
    )


def parse_skill_md(skill_md: Path, *, include_internal: bool = False) -> Skill | None:
    try:
        return load_skill_md(skill_md, include_internal=include_internal)
    except DescriptorUnreadableError as e:
        logger.debug("not a skill: %s", e)
        return None


def has_skill_md(directory: Path) -> bool:
    return (Path(directory) / SKILL_FILENAME).is_file()


def read_skill_dir(directory: Path, *, include_internal: bool = False) -> Skill | None:
    skill_md = Path(directory) / SKILL_FILENAME
    if not skill_md.is_file():
        return None
    return parse_skill_md(skill_md, include_internal=include_internal)


def _list_subdirs(directory: Path) -> list[Path]:
    if not directory.is_dir():
        return []
    try:
        return sorted(p for p in directory.iterdir() if p.is_dir())
    except OSError as e:
        logger.debug("cannot list %s: %s", directory, e)
        return []


def _find_skill_dirs(directory: Path, depth: int = 0) -> list[Path]:
    if depth > MAX_SEARCH_DEPTH:
        return []
    found = [directory] if has_skill_md(directory) else []
    for child in _list_subdirs(directory):
        if child.name in SKIP_DIRS:
            continue
        found.extend(_find_skill_dirs(child, depth + 1))
    return found


def discover_skills(base: Path, subpath: str | None = None, *, include_internal: bool = False) -> list[Skill]:
    """Find skills under a checkout or local folder, de-duplicated by name."""
    search = Path(base) / subpath if subpath else Path(base)

    if has_skill_md(search):
        skill = read_skill_dir(search, include_internal=include_internal)
        if skill is not None:
            return [skill]

    skills: list[Skill] = []
    seen: set[str] = set()

    def _add(candidates: Iterable[Path]) -> None:
        for directory in candidates:
            skill = read_skill_dir(directory, include_internal=include_internal)
            if skill is not None and skill.name not in seen:
                seen.add(skill.name)
                skills.append(skill)

    for rel in PRIORITY_SUBDIRS:
        _add(_list_subdirs(search / rel if rel else search))

    if not skills:
        _add(_find_skill_dirs(search))
    return skills


def skill_display_name(skill: Skill) -> str:
    return skill.name or skill.path.name


def filter_skills(skills: Iterable[Skill], names: Iterable[str]) -> list[Skill]:
    """Keep skills whose name matches one of `names` exactly, ignoring case."""
    wanted = {n.lower() for n in names}
    return [s for s in skills if s.name.lower() in wanted or skill_display_name(s).lower() in wanted]

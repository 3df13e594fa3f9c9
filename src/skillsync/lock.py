from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from .errors import LockSchemaMismatchError
from .store import AGENTS_DIR

logger = logging.getLogger(__name__)

LOCK_FILENAME = ".skill-lock.json"
LOCK_VERSION = 3


@dataclass(frozen=True)
class LockEntry:
    source: str
    source_type: str
    source_url: str
    skill_folder_hash: str = ""
    skill_path: str | None = None
    installed_at: str = ""
    updated_at: str = ""

    def to_json(self) -> dict[str, Any]:
        item: dict[str, Any] = {
            "source": self.source,
            "sourceType": self.source_type,
            "sourceUrl": self.source_url,
            "skillFolderHash": self.skill_folder_hash,
            "installedAt": self.installed_at,
            "updatedAt": self.updated_at,
        }
        if self.skill_path:
            item["skillPath"] = self.skill_path
        return item

    @classmethod
    def from_json(cls, raw: Any) -> "LockEntry | None":
        if not isinstance(raw, dict):
            return None
        source = raw.get("source")
        source_type = raw.get("sourceType")
        source_url = raw.get("sourceUrl")
        if not isinstance(source, str) or not isinstance(source_type, str) or not isinstance(source_url, str):
            return None

        def _str(key: str) -> str:
            value = raw.get(key)
            return value if isinstance(value, str) else ""

        skill_path = raw.get("skillPath")
        return cls(
            source=source,
            source_type=source_type,
            source_url=source_url,
            skill_folder_hash=_str("skillFolderHash"),
            skill_path=skill_path if isinstance(skill_path, str) and skill_path else None,
            installed_at=_str("installedAt"),
            updated_at=_str("updatedAt"),
        )


@dataclass
class SkillLock:
    skills: dict[str, LockEntry] = field(default_factory=dict)
    dismissed: dict[str, bool] = field(default_factory=dict)
    last_selected_agents: list[str] | None = None

    def to_json(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "version": LOCK_VERSION,
            "skills": {name: self.skills[name].to_json() for name in sorted(self.skills)},
            "dismissed": dict(sorted(self.dismissed.items())),
        }
        if self.last_selected_agents is not None:
            payload["lastSelectedAgents"] = list(self.last_selected_agents)
        return payload


def _now() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def lock_path(home: Path | None = None) -> Path:
    return (Path(home) if home is not None else Path.home()) / AGENTS_DIR / LOCK_FILENAME


def _write_json_atomic(path: Path, data: Any) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_suffix(path.suffix + ".tmp")
    tmp.write_text(json.dumps(data, indent=2, sort_keys=True) + "\n", encoding="utf-8")
    tmp.replace(path)


def parse_lock(raw: Any) -> SkillLock:
    """Build a SkillLock from decoded JSON. Any other schema version raises LockSchemaMismatchError."""
    if not isinstance(raw, dict):
        raise LockSchemaMismatchError("Lock file is not a JSON object")
    version = raw.get("version")
    if version != LOCK_VERSION:
        raise LockSchemaMismatchError(f"Unsupported lock file version {version!r} (expected {LOCK_VERSION})")

    skills_raw = raw.get("skills")
    skills: dict[str, LockEntry] = {}
    if isinstance(skills_raw, dict):
        for name, item in skills_raw.items():
            entry = LockEntry.from_json(item)
            if isinstance(name, str) and entry is not None:
                skills[name] = entry

    dismissed_raw = raw.get("dismissed")
    dismissed = (
        {k: bool(v) for k, v in dismissed_raw.items() if isinstance(k, str)} if isinstance(dismissed_raw, dict) else {}
    )

    agents_raw = raw.get("lastSelectedAgents")
    last_selected = [a for a in agents_raw if isinstance(a, str)] if isinstance(agents_raw, list) else None
    return SkillLock(skills=skills, dismissed=dismissed, last_selected_agents=last_selected)


def read_lock(path: Path | None = None) -> SkillLock:
    """
    Load the lock file. A missing, unreadable or older-schema file means "no history":
    the whole state is discarded and an empty lock is returned.
    """
    path = path or lock_path()
    if not path.exists():
        return SkillLock()
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
        return parse_lock(raw)
    except (OSError, ValueError, LockSchemaMismatchError) as e:
        logger.info("ignoring lock file %s: %s", path, e)
        return SkillLock()


def write_lock(lock: SkillLock, path: Path | None = None) -> Path:
    path = path or lock_path()
    _write_json_atomic(path, lock.to_json())
    return path


def add_skill_to_lock(name: str, entry: LockEntry, path: Path | None = None) -> LockEntry:
    lock = read_lock(path)
    now = _now()
    existing = lock.skills.get(name)
    installed_at = existing.installed_at if existing and existing.installed_at else now
    stored = replace(entry, installed_at=installed_at, updated_at=now)
    lock.skills[name] = stored
    write_lock(lock, path)
    return stored


def remove_skill_from_lock(name: str, path: Path | None = None) -> bool:
    lock = read_lock(path)
    if name not in lock.skills:
        return False
    del lock.skills[name]
    write_lock(lock, path)
    return True


def get_skill_from_lock(name: str, path: Path | None = None) -> LockEntry | None:
    return read_lock(path).skills.get(name)


def get_last_selected_agents(path: Path | None = None) -> list[str] | None:
    return read_lock(path).last_selected_agents


def save_selected_agents(agents: list[str], path: Path | None = None) -> None:
    lock = read_lock(path)
    lock.last_selected_agents = list(agents)
    write_lock(lock, path)


def is_prompt_dismissed(prompt_id: str, path: Path | None = None) -> bool:
    return read_lock(path).dismissed.get(prompt_id, False)


def dismiss_prompt(prompt_id: str, path: Path | None = None) -> None:
    lock = read_lock(path)
    lock.dismissed[prompt_id] = True
    write_lock(lock, path)

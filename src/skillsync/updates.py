from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Callable, Sequence

from .client import SkillsyncClient, UpdateCheckItem
from .content import folder_hash
from .errors import SkillsyncError
from .installer import InstallResult
from .lock import LockEntry, SkillLock, add_skill_to_lock

logger = logging.getLogger(__name__)

LOCAL_SOURCE_TYPE = "local"

Reinstaller = Callable[[str, LockEntry], Sequence[InstallResult]]


@dataclass(frozen=True)
class SkillUpdate:
    name: str
    entry: LockEntry
    latest_hash: str


@dataclass(frozen=True)
class UpdateCheckResult:
    updates: tuple[SkillUpdate, ...]
    up_to_date: tuple[str, ...]
    skipped: tuple[str, ...]
    errors: tuple[tuple[str, str], ...]


@dataclass(frozen=True)
class UpdateRunResult:
    updated: tuple[str, ...]
    failed: tuple[tuple[str, str], ...]


def _local_hash(entry: LockEntry) -> str | None:
    root = Path(entry.source_url).expanduser()
    if not root.is_dir():
        return None
    try:
        return folder_hash(root)
    except OSError as e:
        logger.debug("cannot hash %s: %s", root, e)
        return None


def check_for_updates(lock: SkillLock, client: SkillsyncClient | None = None) -> UpdateCheckResult:
    """
    Compare every locked skill's recorded `skill_folder_hash` with a freshly computed upstream hash.

    Local sources are hashed on disk. Remote sources go to the update-check endpoint in one request
    that always forces the server to refetch upstream. Entries without a recorded hash cannot be
    compared and are reported as skipped.
    """
    updates: list[SkillUpdate] = []
    up_to_date: list[str] = []
    skipped: list[str] = []
    errors: list[tuple[str, str]] = []
    remote: dict[str, LockEntry] = {}

    for name in sorted(lock.skills):
        entry = lock.skills[name]
        if not entry.skill_folder_hash:
            skipped.append(name)
            continue
        if entry.source_type == LOCAL_SOURCE_TYPE:
            latest = _local_hash(entry)
            if latest is None:
                errors.append((name, f"source folder not found: {entry.source_url}"))
            elif latest != entry.skill_folder_hash:
                updates.append(SkillUpdate(name=name, entry=entry, latest_hash=latest))
            else:
                up_to_date.append(name)
            continue
        remote[name] = entry

    if remote and client is None:
        skipped.extend(remote)
    elif remote:
        items = [
            UpdateCheckItem(name=n, source=e.source, skill_folder_hash=e.skill_folder_hash, path=e.skill_path)
            for n, e in remote.items()
        ]
        try:
            response = client.check_updates(items, force_refresh=True)
        except SkillsyncError as e:
            errors.extend((n, str(e)) for n in remote)
        else:
            reported = {u.name: u for u in response.updates}
            failed = dict(response.errors)
            for name, entry in remote.items():
                if name in failed:
                    errors.append((name, failed[name]))
                    continue
                update = reported.get(name)
                if update is not None and update.latest_hash != entry.skill_folder_hash:
                    updates.append(SkillUpdate(name=name, entry=entry, latest_hash=update.latest_hash))
                else:
                    up_to_date.append(name)

    return UpdateCheckResult(
        updates=tuple(sorted(updates, key=lambda u: u.name)),
        up_to_date=tuple(sorted(up_to_date)),
        skipped=tuple(sorted(skipped)),
        errors=tuple(sorted(errors)),
    )


def run_updates(check: UpdateCheckResult, reinstall: Reinstaller, *, lock_file: Path | None = None) -> UpdateRunResult:
    """
    Re-run installation for exactly the skills `check` found outdated, one at a time.

    A skill counts as updated when at least one of its installs succeeded; its lock entry then
    records the new hash. Failures are collected per skill and never stop the others.
    """
    updated: list[str] = []
    failed: list[tuple[str, str]] = []
    for update in check.updates:
        try:
            results = list(reinstall(update.name, update.entry))
        except SkillsyncError as e:
            failed.append((update.name, str(e)))
            continue

        if not any(r.success for r in results):
            reason = next((r.error for r in results if r.error), None) or "no install targets"
            failed.append((update.name, reason))
            continue

        add_skill_to_lock(update.name, replace(update.entry, skill_folder_hash=update.latest_hash), lock_file)
        updated.append(update.name)

    return UpdateRunResult(updated=tuple(updated), failed=tuple(failed))

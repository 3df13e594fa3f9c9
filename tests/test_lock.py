import json
import tempfile
import unittest
from pathlib import Path
from unittest.mock import patch

from skillsync.errors import LockSchemaMismatchError
from skillsync.lock import (
    LOCK_VERSION,
    LockEntry,
    add_skill_to_lock,
    dismiss_prompt,
    get_last_selected_agents,
    get_skill_from_lock,
    is_prompt_dismissed,
    lock_path,
    parse_lock,
    read_lock,
    remove_skill_from_lock,
    save_selected_agents,
)


def _entry(**overrides) -> LockEntry:
    values = dict(
        source="vercel-labs/agent-skills",
        source_type="github",
        source_url="https://github.com/vercel-labs/agent-skills.git",
        skill_folder_hash="abc",
        skill_path="skills/foo/SKILL.md",
    )
    values.update(overrides)
    return LockEntry(**values)


class TestLockFile(unittest.TestCase):
    def test_lock_path_lives_under_home(self) -> None:
        self.assertEqual(lock_path(Path("/home/u")), Path("/home/u/.agents/.skill-lock.json"))

    def test_missing_file_is_empty(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            lock = read_lock(Path(tmp) / "lock.json")
            self.assertEqual(lock.skills, {})
            self.assertIsNone(lock.last_selected_agents)

    def test_add_writes_camel_case_schema(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / ".agents" / ".skill-lock.json"
            add_skill_to_lock("foo", _entry(), path)

            raw = json.loads(path.read_text(encoding="utf-8"))
            self.assertEqual(raw["version"], LOCK_VERSION)
            stored = raw["skills"]["foo"]
            self.assertEqual(stored["sourceType"], "github")
            self.assertEqual(stored["skillFolderHash"], "abc")
            self.assertEqual(stored["skillPath"], "skills/foo/SKILL.md")
            self.assertTrue(stored["installedAt"])
            self.assertEqual(stored["installedAt"], stored["updatedAt"])

    def test_update_preserves_installed_at(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "lock.json"
            with patch("skillsync.lock._now", return_value="2026-01-01T00:00:00Z"):
                add_skill_to_lock("foo", _entry(), path)
            with patch("skillsync.lock._now", return_value="2026-02-01T00:00:00Z"):
                stored = add_skill_to_lock("foo", _entry(skill_folder_hash="def"), path)

            self.assertEqual(stored.installed_at, "2026-01-01T00:00:00Z")
            self.assertEqual(stored.updated_at, "2026-02-01T00:00:00Z")
            self.assertEqual(get_skill_from_lock("foo", path), stored)

    def test_older_version_discards_everything(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "lock.json"
            path.write_text(
                json.dumps({"version": 2, "skills": {"foo": _entry().to_json()}, "lastSelectedAgents": ["cursor"]}),
                encoding="utf-8",
            )

            lock = read_lock(path)
            self.assertEqual(lock.skills, {})
            self.assertIsNone(lock.last_selected_agents)

            add_skill_to_lock("bar", _entry(), path)
            raw = json.loads(path.read_text(encoding="utf-8"))
            self.assertEqual(raw["version"], LOCK_VERSION)
            self.assertEqual(sorted(raw["skills"]), ["bar"])

    def test_corrupt_file_is_empty(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "lock.json"
            path.write_text("{not json", encoding="utf-8")
            self.assertEqual(read_lock(path).skills, {})

    def test_parse_lock_raises_on_mismatch_and_drops_bad_entries(self) -> None:
        with self.assertRaises(LockSchemaMismatchError):
            parse_lock({"version": 1})
        with self.assertRaises(LockSchemaMismatchError):
            parse_lock([])

        lock = parse_lock({"version": LOCK_VERSION, "skills": {"ok": _entry().to_json(), "bad": {"source": 1}}})
        self.assertEqual(sorted(lock.skills), ["ok"])

    def test_remove_agents_and_dismissed_prompts(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            path = Path(tmp) / "lock.json"
            add_skill_to_lock("foo", _entry(), path)

            self.assertTrue(remove_skill_from_lock("foo", path))
            self.assertFalse(remove_skill_from_lock("foo", path))

            save_selected_agents(["claude-code", "cursor"], path)
            self.assertEqual(get_last_selected_agents(path), ["claude-code", "cursor"])

            self.assertFalse(is_prompt_dismissed("find-skills", path))
            dismiss_prompt("find-skills", path)
            self.assertTrue(is_prompt_dismissed("find-skills", path))


if __name__ == "__main__":
    unittest.main()

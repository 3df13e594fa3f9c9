import os
import tempfile
import unittest
from pathlib import Path

from skillsync.agents import registry_from_dirs
from skillsync.installer import (
    check_overwrites,
    get_canonical_path,
    get_install_path,
    install_batch,
    install_file_map_skill,
    install_remote_skill,
    install_skill,
    is_skill_installed,
)
from skillsync.links import SymlinkBackend, probe_entry
from skillsync.projector import AgentProjector
from skillsync.skills import FileMapSkill, RemoteSkill, Skill


class RefusingBackend(SymlinkBackend):
    name = "refusing"

    def __init__(self, *refused: Path) -> None:
        self.refused = [str(p) for p in refused]

    def create_link(self, target: Path, link_path: Path) -> None:
        if any(str(link_path).startswith(r) for r in self.refused):
            raise OSError("operation not permitted")
        super().create_link(target, link_path)


def _registry(home: Path):
    return registry_from_dirs(
        [
            ("claude-code", ".claude/skills", home / ".claude" / "skills"),
            ("cursor", ".cursor/skills", home / ".cursor" / "skills"),
            ("universal", ".agents/skills", home / ".agents" / "skills"),
            ("replit", ".replit/skills", None),
        ],
        home=home,
    )


def _source_skill(root: Path, name: str = "foo") -> Skill:
    src = root / "source" / name
    src.mkdir(parents=True)
    (src / "SKILL.md").write_text(f"---\nname: {name}\ndescription: A skill\n---\n# {name}\n", encoding="utf-8")
    (src / "helper.py").write_text("print('hi')\n", encoding="utf-8")
    (src / "README.md").write_text("not installed", encoding="utf-8")
    return Skill(name=name, description="A skill", path=src)


@unittest.skipIf(os.name == "nt", "symlinks need privileges on Windows")
class TestInstallSkill(unittest.TestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.root = Path(self._tmp.name)
        self.home = self.root / "home"
        self.project = self.root / "project"
        self.home.mkdir()
        self.project.mkdir()
        self.registry = _registry(self.home)

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def test_link_failure_for_one_target_falls_back_to_copy(self) -> None:
        skill = _source_skill(self.root)
        projector = AgentProjector(RefusingBackend(self.project / ".cursor"))

        results = install_batch(
            [skill], ["claude-code", "cursor"], cwd=self.project, registry=self.registry, projector=projector
        )

        by_agent = {r.agent: r for r in results}
        self.assertTrue(all(r.success for r in results))
        self.assertEqual(by_agent["claude-code"].mode, "link")
        self.assertFalse(by_agent["claude-code"].link_failed)
        self.assertEqual(by_agent["cursor"].mode, "copy")
        self.assertTrue(by_agent["cursor"].link_failed)

        canonical = self.project / ".agents" / "skills" / "foo"
        self.assertEqual(by_agent["claude-code"].canonical_path, canonical)
        self.assertEqual(probe_entry(self.project / ".claude" / "skills" / "foo"), "link")
        copied = self.project / ".cursor" / "skills" / "foo"
        self.assertEqual(probe_entry(copied), "dir")
        self.assertEqual((copied / "SKILL.md").read_bytes(), (canonical / "SKILL.md").read_bytes())
        self.assertFalse((copied / "README.md").exists())

    def test_reinstall_is_idempotent(self) -> None:
        skill = _source_skill(self.root)
        first = install_skill(skill, "claude-code", cwd=self.project, registry=self.registry)
        link_target = os.readlink(first.path)

        second = install_skill(skill, "claude-code", cwd=self.project, registry=self.registry)

        self.assertTrue(second.success)
        self.assertEqual(second.mode, "link")
        self.assertEqual(os.readlink(second.path), link_target)
        self.assertEqual(sorted(p.name for p in second.canonical_path.iterdir()), ["SKILL.md", "helper.py"])

    def test_agent_reading_canonical_store_needs_no_link(self) -> None:
        skill = _source_skill(self.root)
        result = install_skill(skill, "universal", cwd=self.project, registry=self.registry)

        self.assertTrue(result.success)
        self.assertEqual(result.mode, "link")
        self.assertEqual(result.path, result.canonical_path)
        self.assertEqual(probe_entry(result.path), "dir")

    def test_agent_dir_linked_into_canonical_store_keeps_canonical_entry(self) -> None:
        skill = _source_skill(self.root)
        (self.project / ".agents" / "skills").mkdir(parents=True)
        (self.project / ".claude").mkdir()
        os.symlink("../.agents/skills", self.project / ".claude" / "skills")

        result = install_skill(skill, "claude-code", cwd=self.project, registry=self.registry)

        self.assertTrue(result.success)
        self.assertEqual(result.mode, "link")
        self.assertEqual(probe_entry(result.canonical_path), "dir")
        self.assertIn("name: foo", (result.canonical_path / "SKILL.md").read_text(encoding="utf-8"))
        self.assertIn("name: foo", (result.path / "SKILL.md").read_text(encoding="utf-8"))

    def test_copy_mode_skips_canonical_store(self) -> None:
        skill = _source_skill(self.root)
        result = install_skill(skill, "cursor", cwd=self.project, mode="copy", registry=self.registry)

        self.assertTrue(result.success)
        self.assertEqual(result.mode, "copy")
        self.assertIsNone(result.canonical_path)
        self.assertEqual(probe_entry(result.path), "dir")
        self.assertFalse((self.project / ".agents").exists())

    def test_copy_mode_over_existing_link_does_not_touch_canonical(self) -> None:
        skill = _source_skill(self.root)
        linked = install_skill(skill, "cursor", cwd=self.project, registry=self.registry)
        canonical_skill_md = linked.canonical_path / "SKILL.md"
        (skill.path / "SKILL.md").write_text("---\nname: foo\ndescription: changed\n---\n", encoding="utf-8")

        copied = install_skill(skill, "cursor", cwd=self.project, mode="copy", registry=self.registry)

        self.assertTrue(copied.success)
        self.assertEqual(probe_entry(copied.path), "dir")
        self.assertIn("description: changed", (copied.path / "SKILL.md").read_text(encoding="utf-8"))
        self.assertIn("description: A skill", canonical_skill_md.read_text(encoding="utf-8"))

    def test_global_install_uses_home(self) -> None:
        skill = _source_skill(self.root)
        result = install_skill(skill, "claude-code", global_install=True, registry=self.registry)

        self.assertTrue(result.success)
        self.assertEqual(result.canonical_path, self.home / ".agents" / "skills" / "foo")
        self.assertEqual(result.path, self.home / ".claude" / "skills" / "foo")

    def test_agent_without_global_dir_fails_cleanly(self) -> None:
        skill = _source_skill(self.root)
        result = install_skill(skill, "replit", global_install=True, registry=self.registry)

        self.assertFalse(result.success)
        self.assertIn("does not support global skill installation", result.error or "")

    def test_unknown_agent_is_a_failed_result(self) -> None:
        skill = _source_skill(self.root)
        results = install_batch([skill], ["nope", "claude-code"], cwd=self.project, registry=self.registry)

        self.assertFalse(results[0].success)
        self.assertIn("Unknown agent", results[0].error or "")
        self.assertTrue(results[1].success)

    def test_hostile_name_stays_inside_base(self) -> None:
        src = self.root / "source" / "evil"
        src.mkdir(parents=True)
        (src / "SKILL.md").write_text("---\nname: x\ndescription: y\n---\n", encoding="utf-8")
        skill = Skill(name="../../etc/passwd", description="y", path=src)

        result = install_skill(skill, "claude-code", cwd=self.project, registry=self.registry)

        self.assertTrue(result.success)
        self.assertEqual(result.path, self.project / ".claude" / "skills" / "etc-passwd")
        self.assertEqual(result.canonical_path, self.project / ".agents" / "skills" / "etc-passwd")

    def test_batch_is_skill_major(self) -> None:
        skills = [_source_skill(self.root, "alpha"), _source_skill(self.root, "beta")]
        results = install_batch(skills, ["claude-code", "cursor"], cwd=self.project, registry=self.registry)

        self.assertEqual(
            [(r.skill, r.agent) for r in results],
            [("alpha", "claude-code"), ("alpha", "cursor"), ("beta", "claude-code"), ("beta", "cursor")],
        )

    def test_remote_and_file_map_skills(self) -> None:
        remote = RemoteSkill(
            name="Docs Helper",
            description="d",
            content="---\nname: Docs Helper\ndescription: d\n---\n",
            install_name="docs.example.com",
            source_url="https://docs.example.com/skill.md",
            provider_id="mintlify",
            source_identifier="mintlify/docs.example.com",
        )
        file_map = FileMapSkill(
            name="bundle",
            description="d",
            install_name="Bundle Skill",
            files={"SKILL.md": "---\nname: bundle\ndescription: d\n---\n", "refs/a.md": "a", "../escape": "x"},
        )

        r1 = install_remote_skill(remote, "claude-code", cwd=self.project, registry=self.registry)
        r2 = install_file_map_skill(file_map, "claude-code", cwd=self.project, registry=self.registry)

        self.assertTrue(r1.success and r2.success)
        self.assertEqual(r1.path.name, "docs.example.com")
        self.assertTrue((r1.path / "SKILL.md").is_file())
        self.assertEqual(r2.path.name, "bundle-skill")
        self.assertEqual((r2.path / "refs" / "a.md").read_text(encoding="utf-8"), "a")
        self.assertFalse((self.project / ".agents" / "skills" / "escape").exists())


class TestInstallQueries(unittest.TestCase):
    def test_paths_and_overwrite_checks(self) -> None:
        with tempfile.TemporaryDirectory() as tmp:
            home = Path(tmp) / "home"
            project = Path(tmp) / "project"
            registry = _registry(home)
            (project / ".claude" / "skills" / "my-skill").mkdir(parents=True)

            self.assertEqual(
                get_install_path("My Skill", "cursor", cwd=project, registry=registry),
                project / ".cursor" / "skills" / "my-skill",
            )
            self.assertEqual(
                get_canonical_path("My Skill", global_install=True, registry=registry),
                home / ".agents" / "skills" / "my-skill",
            )
            self.assertTrue(is_skill_installed("My Skill", "claude-code", cwd=project, registry=registry))
            self.assertFalse(is_skill_installed("My Skill", "replit", global_install=True, registry=registry))

            flags = check_overwrites(["My Skill", "other"], ["claude-code", "cursor"], cwd=project, registry=registry)
            self.assertEqual(
                flags,
                {
                    ("My Skill", "claude-code"): True,
                    ("My Skill", "cursor"): False,
                    ("other", "claude-code"): False,
                    ("other", "cursor"): False,
                },
            )
            self.assertEqual(check_overwrites([], ["cursor"], registry=registry), {})


if __name__ == "__main__":
    unittest.main()

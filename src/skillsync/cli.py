from __future__ import annotations

import argparse
import json
import logging
import os
import sys
import textwrap
from dataclasses import asdict, replace
from pathlib import Path
from typing import Any

from ._version import __version__
from .agents import AgentRegistry, default_registry
from .client import SkillsyncClient
from .config import Config, apply_env_overrides, config_path, load_config, redact_token, save_config
from .content import folder_hash
from .errors import SkillsyncError, SkillsyncHTTPError
from .installer import InstallResult, check_overwrites, install_batch
from .lock import LockEntry, add_skill_to_lock, get_last_selected_agents, lock_path, read_lock, save_selected_agents
from .log import setup_logging
from .reconcile import list_installed_skills
from .skills import SKILL_FILENAME, discover_skills, filter_skills, read_skill_dir
from .updates import LOCAL_SOURCE_TYPE, check_for_updates, run_updates

logger = logging.getLogger(__name__)


def _print_table(rows: list[list[str]]) -> None:
    if not rows:
        return
    widths = [0] * len(rows[0])
    for r in rows:
        for i, c in enumerate(r):
            widths[i] = max(widths[i], len(c))
    for r in rows:
        line = "  ".join(c.ljust(widths[i]) for i, c in enumerate(r))
        print(line.rstrip())


def _shorten_path(path: Path, cwd: Path) -> str:
    full = str(path)
    home = str(Path.home())
    if full.startswith(home):
        return "~" + full[len(home) :]
    if full.startswith(str(cwd)):
        return "." + full[len(str(cwd)) :]
    return full


def _result_json(r: InstallResult) -> dict[str, Any]:
    payload = asdict(r)
    payload["path"] = str(r.path)
    payload["canonical_path"] = str(r.canonical_path) if r.canonical_path else None
    return payload


def _merge_cfg(base: Config, args: argparse.Namespace) -> Config:
    # Env overrides config; CLI overrides both.
    cfg = apply_env_overrides(base)
    return replace(
        cfg,
        api_url=getattr(args, "api_url", None) or cfg.api_url,
        timeout_s=getattr(args, "timeout_s", None) or cfg.timeout_s,
        log_level=getattr(args, "log_level", None) or cfg.log_level,
    )


def _client_from_cfg(cfg: Config) -> SkillsyncClient:
    return SkillsyncClient(
        api_url=cfg.api_url,
        github_api_url=cfg.github_api_url,
        github_token=cfg.github_token,
        timeout_s=cfg.timeout_s,
    )


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="skillsync",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        description="Install agent skills once and link them into every coding agent.",
        epilog=textwrap.dedent(
            """\
            Environment variables:
              SKILLSYNC_CONFIG_PATH, SKILLSYNC_API_URL, SKILLSYNC_TIMEOUT_S, SKILLSYNC_LOG_LEVEL,
              GITHUB_TOKEN, INSTALL_INTERNAL_SKILLS
            """
        ),
    )
    p.add_argument("--version", action="version", version=f"skillsync {__version__}")
    p.add_argument("--log-level", help="DEBUG, INFO, WARNING (default) or ERROR")
    p.add_argument("--log-format", choices=["text", "json"], help="Log output format (default: text)")

    sub = p.add_subparsers(dest="cmd", required=True)

    add = sub.add_parser("add", aliases=["a", "install", "i"], help="Install skills from a local folder")
    add.add_argument("source", help="Folder containing one or more skills (SKILL.md)")
    add.add_argument("-s", "--skill", action="append", default=[], help="Only install this skill (repeatable)")
    add.add_argument("-a", "--agent", action="append", default=[], help="Target agent (repeatable)")
    add.add_argument("--all-agents", action="store_true", help="Install for every known agent")
    add.add_argument("-g", "--global", dest="global_install", action="store_true", help="Install in the home directory")
    add.add_argument("--copy", action="store_true", help="Copy files into each agent instead of linking")
    add.add_argument("-l", "--list", dest="list_only", action="store_true", help="List skills found and exit")
    add.add_argument("--json", action="store_true", help="Output JSON")

    ls = sub.add_parser("list", aliases=["ls"], help="List installed skills and which agents see them")
    scope = ls.add_mutually_exclusive_group()
    scope.add_argument("-g", "--global", dest="global_install", action="store_const", const=True, default=None)
    scope.add_argument("-p", "--project", dest="global_install", action="store_const", const=False)
    ls.add_argument("-a", "--agent", action="append", default=None, help="Only check this agent (repeatable)")
    ls.add_argument("--json", action="store_true", help="Output JSON")

    check = sub.add_parser("check", help="Check globally installed skills for upstream changes")
    check.add_argument("--api-url", help="Update check API base URL")
    check.add_argument("--timeout-s", type=float, help="HTTP timeout in seconds")
    check.add_argument("--json", action="store_true", help="Output JSON")

    update = sub.add_parser("update", help="Reinstall globally installed skills that changed upstream")
    update.add_argument("--api-url", help="Update check API base URL")
    update.add_argument("--timeout-s", type=float, help="HTTP timeout in seconds")
    update.add_argument("--copy", action="store_true", help="Copy files into each agent instead of linking")
    update.add_argument("--json", action="store_true", help="Output JSON")

    agents = sub.add_parser("agents", help="List known agents")
    agents.add_argument("--detected", action="store_true", help="Only agents detected on this machine")
    agents.add_argument("--json", action="store_true", help="Output JSON")

    cfg = sub.add_parser("config", help="Manage local config")
    cfg_sub = cfg.add_subparsers(dest="subcmd", required=True)
    cfg_sub.add_parser("path", help="Print config path")
    cfg_sub.add_parser("show", help="Show config (token redacted)")
    cfg_set = cfg_sub.add_parser("set", help="Set config fields")
    cfg_set.add_argument("--api-url")
    cfg_set.add_argument("--github-api-url")
    cfg_set.add_argument("--github-token")
    cfg_set.add_argument("--timeout-s", type=float)
    cfg_set.add_argument("--default-mode", choices=["link", "copy"])
    cfg_set.add_argument("--log-level", dest="set_log_level")

    return p


def cmd_config(args: argparse.Namespace) -> int:
    if args.subcmd == "path":
        print(config_path())
        return 0
    cfg = load_config()
    if args.subcmd == "show":
        data = asdict(cfg)
        data["github_token"] = redact_token(cfg.github_token)
        print(json.dumps(data, indent=2, sort_keys=True))
        return 0
    if args.subcmd == "set":
        updated = replace(
            cfg,
            api_url=args.api_url or cfg.api_url,
            github_api_url=args.github_api_url or cfg.github_api_url,
            github_token=args.github_token or cfg.github_token,
            timeout_s=args.timeout_s or cfg.timeout_s,
            default_mode=args.default_mode or cfg.default_mode,
            log_level=args.set_log_level or cfg.log_level,
        )
        path = save_config(updated)
        print(f"Saved config to {path}")
        return 0
    raise AssertionError("unreachable")


def _resolve_agents(args: argparse.Namespace, registry: AgentRegistry) -> list[str]:
    if args.all_agents:
        return registry.names()
    if args.agent:
        for name in args.agent:
            registry.get(name)
        return list(dict.fromkeys(args.agent))
    remembered = [a for a in get_last_selected_agents() or [] if a in registry.agents]
    if remembered:
        logger.info("using last selected agents: %s", ", ".join(remembered))
        return remembered
    detected = registry.detect_installed()
    if not detected:
        raise SkillsyncError("No agents detected. Pass --agent <name> (see `skillsync agents`).")
    return detected


def _record_local_installs(source: Path, skills, results: list[InstallResult]) -> None:
    succeeded = {r.skill for r in results if r.success}
    for skill in skills:
        if skill.name not in succeeded:
            continue
        try:
            rel = skill.path.resolve().relative_to(source.resolve())
            skill_path = (rel / SKILL_FILENAME).as_posix()
        except ValueError:
            skill_path = SKILL_FILENAME
        try:
            add_skill_to_lock(
                skill.name,
                LockEntry(
                    source=str(source.resolve()),
                    source_type=LOCAL_SOURCE_TYPE,
                    source_url=str(skill.path.resolve()),
                    skill_path=skill_path,
                    skill_folder_hash=folder_hash(skill.path),
                ),
            )
        except OSError as e:
            # The install itself succeeded; only update tracking is lost.
            logger.warning("could not record %s in %s: %s", skill.name, lock_path(), e)


def _print_results(results: list[InstallResult], replaced: dict[tuple[str, str], bool], cwd: Path) -> None:
    rows = [["SKILL", "AGENT", "MODE", "STATUS", "PATH"]]
    for r in results:
        if not r.success:
            status = f"failed: {r.error}"
        else:
            status = "replaced" if replaced.get((r.skill, r.agent)) else "ok"
        mode = "copy (link failed)" if r.link_failed else r.mode
        rows.append([r.skill, r.agent, mode, status, _shorten_path(r.path, cwd)])
    _print_table(rows)


def cmd_add(args: argparse.Namespace, registry: AgentRegistry, cfg: Config) -> int:
    source = Path(args.source).expanduser()
    if not source.is_dir():
        raise SkillsyncError(f"Not a directory: {source}")

    skills = discover_skills(source, include_internal=bool(args.skill))
    if args.skill:
        skills = filter_skills(skills, args.skill)
    if not skills:
        raise SkillsyncError(f"No skills found in {source}")

    if args.list_only:
        if args.json:
            payload = [{"name": s.name, "description": s.description, "path": str(s.path)} for s in skills]
            print(json.dumps(payload, indent=2, sort_keys=True))
            return 0
        _print_table([["NAME", "DESCRIPTION"]] + [[s.name, s.description] for s in skills])
        return 0

    agents = _resolve_agents(args, registry)
    mode = "copy" if args.copy or cfg.default_mode == "copy" else "link"
    replaced = check_overwrites(
        [s.name for s in skills], agents, global_install=args.global_install, registry=registry
    )
    results = install_batch(skills, agents, global_install=args.global_install, mode=mode, registry=registry)

    if args.global_install:
        _record_local_installs(source, skills, results)
    if args.agent:
        try:
            save_selected_agents(agents)
        except OSError as e:
            logger.warning("could not remember selected agents: %s", e)

    failed = [r for r in results if not r.success]
    if args.json:
        print(json.dumps([_result_json(r) for r in results], indent=2, sort_keys=True))
    else:
        _print_results(results, replaced, Path.cwd())
        if any(r.link_failed for r in results):
            print("note: some agents received a copy because linking failed; copies are not kept in sync")
    return 1 if failed else 0


def cmd_list(args: argparse.Namespace, registry: AgentRegistry) -> int:
    if args.agent:
        for name in args.agent:
            registry.get(name)
    installed = list_installed_skills(global_install=args.global_install, agent_filter=args.agent, registry=registry)

    if args.json:
        payload = [
            {
                "name": s.name,
                "description": s.description,
                "path": str(s.path),
                "scope": s.scope,
                "agents": list(s.agents),
            }
            for s in installed
        ]
        print(json.dumps(payload, indent=2, sort_keys=True))
        return 0

    if not installed:
        print("No skills installed.")
        return 0
    rows = [["NAME", "SCOPE", "AGENTS", "PATH"]]
    for s in installed:
        agents = ", ".join(registry.get(a).display_name for a in s.agents) if s.agents else "(not linked to any agent)"
        rows.append([s.name, s.scope, agents, _shorten_path(s.path, Path.cwd())])
    _print_table(rows)
    return 0


def cmd_check(args: argparse.Namespace, cfg: Config) -> int:
    lock = read_lock()
    if not lock.skills:
        print("No tracked skills. Only global installs are tracked (skillsync add -g).")
        return 0
    with _client_from_cfg(cfg) as client:
        result = check_for_updates(lock, client)

    if args.json:
        payload = {
            "updates": [{"name": u.name, "source": u.entry.source, "latest_hash": u.latest_hash} for u in result.updates],
            "up_to_date": list(result.up_to_date),
            "skipped": list(result.skipped),
            "errors": [{"name": n, "error": e} for n, e in result.errors],
        }
        print(json.dumps(payload, indent=2, sort_keys=True))
        return 0

    for u in result.updates:
        print(f"update available: {u.name} ({u.entry.source})")
    for name in result.skipped:
        print(f"skipped: {name} (no folder hash recorded)")
    for name, error in result.errors:
        print(f"error: {name}: {error}")
    if not result.updates:
        print("All skills are up to date.")
    return 0


def _make_reinstaller(registry: AgentRegistry, *, mode: str):
    def reinstall(name: str, entry: LockEntry) -> list[InstallResult]:
        if entry.source_type != LOCAL_SOURCE_TYPE:
            raise SkillsyncError(
                f"Cannot refetch {entry.source_type} source {entry.source}; reinstall it from its source instead."
            )
        skill = read_skill_dir(Path(entry.source_url), include_internal=True)
        if skill is None:
            raise SkillsyncError(f"No valid SKILL.md in {entry.source_url}")

        current = [s for s in list_installed_skills(global_install=True, registry=registry) if s.name == name]
        agents = list(current[0].agents) if current and current[0].agents else registry.detect_installed()
        if not agents:
            raise SkillsyncError(f"No agents to install {name} for")
        return install_batch([skill], agents, global_install=True, mode=mode, registry=registry)

    return reinstall


def cmd_update(args: argparse.Namespace, registry: AgentRegistry, cfg: Config) -> int:
    lock = read_lock()
    if not lock.skills:
        print("No tracked skills. Only global installs are tracked (skillsync add -g).")
        return 0
    with _client_from_cfg(cfg) as client:
        check = check_for_updates(lock, client)

    mode = "copy" if args.copy or cfg.default_mode == "copy" else "link"
    result = run_updates(check, _make_reinstaller(registry, mode=mode))

    if args.json:
        payload = {
            "updated": list(result.updated),
            "failed": [{"name": n, "error": e} for n, e in result.failed],
            "check_errors": [{"name": n, "error": e} for n, e in check.errors],
        }
        print(json.dumps(payload, indent=2, sort_keys=True))
        return 1 if result.failed else 0

    if not check.updates:
        print("All skills are up to date.")
    for name in result.updated:
        print(f"updated: {name}")
    for name, error in result.failed:
        print(f"failed: {name}: {error}")
    for name, error in check.errors:
        print(f"error: {name}: {error}")
    return 1 if result.failed else 0


def cmd_agents(args: argparse.Namespace, registry: AgentRegistry) -> int:
    names = registry.detect_installed() if args.detected else registry.names()
    if args.json:
        payload = [
            {
                "name": n,
                "display_name": registry.get(n).display_name,
                "skills_dir": registry.get(n).skills_dir,
                "global_skills_dir": str(registry.get(n).global_skills_dir or ""),
            }
            for n in names
        ]
        print(json.dumps(payload, indent=2, sort_keys=True))
        return 0
    rows = [["NAME", "DISPLAY NAME", "PROJECT DIR", "GLOBAL DIR"]]
    for n in names:
        agent = registry.get(n)
        global_dir = str(agent.global_skills_dir) if agent.global_skills_dir else "-"
        rows.append([n, agent.display_name, agent.skills_dir, global_dir])
    _print_table(rows)
    return 0


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        cfg = _merge_cfg(load_config(), args)
    except (OSError, SkillsyncError) as e:
        print(f"error: could not load config: {e}", file=sys.stderr)
        return 1
    setup_logging(cfg.log_level, args.log_format or os.getenv("SKILLSYNC_LOG_FORMAT", "text"))
    registry = default_registry()

    try:
        if args.cmd == "config":
            return cmd_config(args)
        if args.cmd in ("add", "a", "install", "i"):
            return cmd_add(args, registry, cfg)
        if args.cmd in ("list", "ls"):
            return cmd_list(args, registry)
        if args.cmd == "check":
            return cmd_check(args, cfg)
        if args.cmd == "update":
            return cmd_update(args, registry, cfg)
        if args.cmd == "agents":
            return cmd_agents(args, registry)
        raise AssertionError("unreachable")
    except SkillsyncHTTPError as e:
        print(f"error: HTTP {e.status_code} {e.body.strip()}", file=sys.stderr)
        return 1
    except SkillsyncError as e:
        print(f"error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())

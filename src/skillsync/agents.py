from __future__ import annotations

import os
from dataclasses import dataclass, field
from functools import lru_cache
from pathlib import Path
from types import MappingProxyType
from typing import Iterable, Mapping

from .errors import SkillsyncError


@dataclass(frozen=True)
class AgentConfig:
    name: str
    display_name: str
    skills_dir: str  # relative to the project root
    global_skills_dir: Path | None  # None when the agent has no user-wide skills location
    detect_paths: tuple[Path, ...] = ()
    project_detect_paths: tuple[str, ...] = ()  # relative to the project root


@dataclass(frozen=True)
class AgentRegistry:
    """Immutable table of known agents, built once and passed to whatever needs it."""

    home: Path
    agents: Mapping[str, AgentConfig] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "agents", MappingProxyType(dict(self.agents)))

    def names(self) -> list[str]:
        return list(self.agents.keys())

    def get(self, name: str) -> AgentConfig:
        try:
            return self.agents[name]
        except KeyError as e:
            valid = ", ".join(sorted(self.agents))
            raise SkillsyncError(f"Unknown agent {name!r}. Valid agents: {valid}") from e

    def scope_root(self, *, global_install: bool, cwd: Path | None = None) -> Path:
        if global_install:
            return self.home
        return Path(cwd) if cwd is not None else Path.cwd()

    def skills_dir(self, name: str, *, global_install: bool, cwd: Path | None = None) -> Path | None:
        agent = self.get(name)
        if global_install:
            return agent.global_skills_dir
        return self.scope_root(global_install=False, cwd=cwd) / agent.skills_dir

    def is_installed(self, name: str, *, cwd: Path | None = None) -> bool:
        agent = self.get(name)
        root = self.scope_root(global_install=False, cwd=cwd)
        if any((root / rel).exists() for rel in agent.project_detect_paths):
            return True
        return any(p.exists() for p in agent.detect_paths)

    def detect_installed(self, *, cwd: Path | None = None) -> list[str]:
        return [name for name in self.agents if self.is_installed(name, cwd=cwd)]


def _env_path(env: Mapping[str, str], key: str, default: Path) -> Path:
    value = (env.get(key) or "").strip()
    return Path(value).expanduser() if value else default


def _openclaw_home(home: Path) -> Path:
    for candidate in (".openclaw", ".clawdbot"):
        if (home / candidate).exists():
            return home / candidate
    return home / ".moltbot"


def build_registry(*, home: Path | None = None, env: Mapping[str, str] | None = None) -> AgentRegistry:
    home = Path(home) if home is not None else Path.home()
    env = os.environ if env is None else env
    # XDG on every platform, matching where these tools themselves look.
    config_home = _env_path(env, "XDG_CONFIG_HOME", home / ".config")
    codex_home = _env_path(env, "CODEX_HOME", home / ".codex")
    claude_home = _env_path(env, "CLAUDE_CONFIG_DIR", home / ".claude")
    openclaw_home = _openclaw_home(home)

    def simple(name: str, display: str, dot_dir: str, *, project_detect: bool = False) -> AgentConfig:
        return AgentConfig(
            name=name,
            display_name=display,
            skills_dir=f"{dot_dir}/skills",
            global_skills_dir=home / dot_dir / "skills",
            detect_paths=(home / dot_dir,),
            project_detect_paths=(dot_dir,) if project_detect else (),
        )

    agents: list[AgentConfig] = [
        AgentConfig("amp", "Amp", ".agents/skills", config_home / "agents/skills", (config_home / "amp",)),
        AgentConfig(
            "antigravity",
            "Antigravity",
            ".agent/skills",
            home / ".gemini/antigravity/global_skills",
            (home / ".gemini/antigravity",),
            (".agent",),
        ),
        AgentConfig("augment", "Augment", ".augment/rules", home / ".augment/rules", (home / ".augment",)),
        AgentConfig("claude-code", "Claude Code", ".claude/skills", claude_home / "skills", (claude_home,)),
        AgentConfig(
            "openclaw",
            "OpenClaw",
            "skills",
            openclaw_home / "skills",
            (home / ".openclaw", home / ".clawdbot", home / ".moltbot"),
        ),
        simple("cline", "Cline", ".cline"),
        simple("codebuddy", "CodeBuddy", ".codebuddy", project_detect=True),
        AgentConfig("codex", "Codex", ".codex/skills", codex_home / "skills", (codex_home, Path("/etc/codex"))),
        AgentConfig(
            "command-code", "Command Code", ".commandcode/skills", home / ".commandcode/skills", (home / ".commandcode",)
        ),
        simple("continue", "Continue", ".continue", project_detect=True),
        AgentConfig("crush", "Crush", ".crush/skills", home / ".config/crush/skills", (home / ".config/crush",)),
        simple("cursor", "Cursor", ".cursor"),
        AgentConfig("droid", "Droid", ".factory/skills", home / ".factory/skills", (home / ".factory",)),
        simple("gemini-cli", "Gemini CLI", ".gemini"),
        AgentConfig(
            "github-copilot",
            "GitHub Copilot",
            ".github/skills",
            home / ".copilot/skills",
            (home / ".copilot",),
            (".github",),
        ),
        AgentConfig("goose", "Goose", ".goose/skills", config_home / "goose/skills", (config_home / "goose",)),
        simple("junie", "Junie", ".junie"),
        AgentConfig("kilo", "Kilo Code", ".kilocode/skills", home / ".kilocode/skills", (home / ".kilocode",)),
        AgentConfig("kimi-cli", "Kimi Code CLI", ".agents/skills", home / ".config/agents/skills", (home / ".kimi",)),
        AgentConfig("kiro-cli", "Kiro CLI", ".kiro/skills", home / ".kiro/skills", (home / ".kiro",)),
        simple("kode", "Kode", ".kode"),
        simple("mcpjam", "MCPJam", ".mcpjam"),
        AgentConfig("mistral-vibe", "Mistral Vibe", ".vibe/skills", home / ".vibe/skills", (home / ".vibe",)),
        simple("mux", "Mux", ".mux"),
        AgentConfig(
            "opencode",
            "OpenCode",
            ".opencode/skills",
            config_home / "opencode/skills",
            (config_home / "opencode", claude_home / "skills"),
        ),
        simple("openclaude", "OpenClaude IDE", ".openclaude", project_detect=True),
        simple("openhands", "OpenHands", ".openhands"),
        AgentConfig("pi", "Pi", ".pi/skills", home / ".pi/agent/skills", (home / ".pi/agent",)),
        simple("qoder", "Qoder", ".qoder"),
        AgentConfig("qwen-code", "Qwen Code", ".qwen/skills", home / ".qwen/skills", (home / ".qwen",)),
        AgentConfig("replit", "Replit", ".agent/skills", None, (), (".agent",)),
        simple("roo", "Roo Code", ".roo"),
        simple("trae", "Trae", ".trae"),
        AgentConfig("trae-cn", "Trae CN", ".trae/skills", home / ".trae-cn/skills", (home / ".trae-cn",)),
        AgentConfig(
            "windsurf", "Windsurf", ".windsurf/skills", home / ".codeium/windsurf/skills", (home / ".codeium/windsurf",)
        ),
        simple("zencoder", "Zencoder", ".zencoder"),
        simple("neovate", "Neovate", ".neovate"),
        simple("pochi", "Pochi", ".pochi"),
        simple("adal", "AdaL", ".adal"),
    ]
    return AgentRegistry(home=home, agents={a.name: a for a in agents})


@lru_cache(maxsize=1)
def default_registry() -> AgentRegistry:
    return build_registry()


def registry_from_dirs(
    agents: Iterable[tuple[str, str, Path | None]], *, home: Path
) -> AgentRegistry:
    """Build a registry from `(name, project skills dir, global skills dir)` triples."""
    return AgentRegistry(
        home=Path(home),
        agents={
            name: AgentConfig(name=name, display_name=name, skills_dir=skills_dir, global_skills_dir=global_dir)
            for name, skills_dir, global_dir in agents
        },
    )

from __future__ import annotations

import json
import logging
import os
import tempfile
from dataclasses import asdict, dataclass, fields
from pathlib import Path
from typing import Any

from platformdirs import user_config_path

from .errors import SkillsyncError

logger = logging.getLogger(__name__)

DEFAULT_API_URL = "https://add-skill.vercel.sh"
DEFAULT_GITHUB_API_URL = "https://api.github.com"
DEFAULT_TIMEOUT_S = 30.0
INSTALL_MODES = ("link", "copy")


@dataclass(frozen=True)
class Config:
    api_url: str = DEFAULT_API_URL
    github_api_url: str = DEFAULT_GITHUB_API_URL
    github_token: str | None = None
    timeout_s: float = DEFAULT_TIMEOUT_S
    default_mode: str = "link"
    log_level: str = "WARNING"

    def __post_init__(self) -> None:
        if self.default_mode not in INSTALL_MODES:
            raise SkillsyncError(f"Invalid default_mode {self.default_mode!r}: expected one of {', '.join(INSTALL_MODES)}")
        try:
            object.__setattr__(self, "timeout_s", float(self.timeout_s))
        except (TypeError, ValueError) as e:
            raise SkillsyncError(f"Invalid timeout_s {self.timeout_s!r}") from e


def config_path(path_override: str | Path | None = None) -> Path:
    raw = path_override if path_override is not None else os.getenv("SKILLSYNC_CONFIG_PATH")
    if raw:
        return Path(raw).expanduser()
    return user_config_path("skillsync") / "config.json"


def load_config(path_override: str | Path | None = None) -> Config:
    """Read the config file; a missing file means defaults, keys this version does not know are ignored."""
    path = config_path(path_override)
    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return Config()
    try:
        raw = json.loads(text)
    except ValueError as e:
        raise SkillsyncError(f"Invalid config file {path}: {e}") from e
    if not isinstance(raw, dict):
        raise SkillsyncError(f"Invalid config file {path}: expected a JSON object")

    known = {f.name for f in fields(Config)}
    values: dict[str, Any] = {k: v for k, v in raw.items() if k in known}
    return Config(**values)


def save_config(cfg: Config, path_override: str | Path | None = None) -> Path:
    path = config_path(path_override)
    path.parent.mkdir(parents=True, exist_ok=True)

    # mkstemp creates the file 0600, so the GitHub token is never readable by others.
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=path.name, suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as fh:
            json.dump(asdict(cfg), fh, indent=2, sort_keys=True)
            fh.write("\n")
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise
    return path


def apply_env_overrides(cfg: Config) -> Config:
    overrides: dict[str, Any] = {}
    if api_url := os.getenv("SKILLSYNC_API_URL"):
        overrides["api_url"] = api_url
    if token := os.getenv("GITHUB_TOKEN"):
        overrides["github_token"] = token
    if level := os.getenv("SKILLSYNC_LOG_LEVEL"):
        overrides["log_level"] = level
    if timeout_raw := os.getenv("SKILLSYNC_TIMEOUT_S"):
        try:
            overrides["timeout_s"] = float(timeout_raw)
        except ValueError:
            logger.debug("ignoring SKILLSYNC_TIMEOUT_S=%r: not a number", timeout_raw)
    return Config(**{**asdict(cfg), **overrides})


def redact_token(token: str | None) -> str | None:
    if not token:
        return token
    if len(token) <= 8:
        return "*" * len(token)
    return f"{token[:4]}...{token[-4:]}"

"""Settings — defaults, an optional YAML file, environment overrides.

Precedence, lowest to highest: built-in defaults, ``specfirst.yaml`` (or the
file named by ``--config`` / ``SPECFIRST_CONFIG``), ``SPECFIRST_*``
environment variables, explicit CLI options.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Mapping

import yaml

from specfirst.errors import ConfigError
from specfirst.policy.change_impact import PatternTable, default_table, table_from_dict

CONFIG_FILENAME = "specfirst.yaml"

ENV_CONFIG = "SPECFIRST_CONFIG"
ENV_TARGET = "SPECFIRST_TARGET_DIR"
ENV_SOURCE = "SPECFIRST_SOURCE_DIR"
ENV_NAMESPACE = "SPECFIRST_NAMESPACE"
ENV_RETENTION = "SPECFIRST_BACKUP_RETENTION"
ENV_LOG_LEVEL = "SPECFIRST_LOG_LEVEL"
ENV_REPO_URL = "SPECFIRST_REPO_URL"

SHARED_MODES = ("append", "replace")


def default_target_root() -> Path:
    xdg_config = os.getenv("XDG_CONFIG_HOME")
    if xdg_config:
        return Path(xdg_config) / "specfirst-host"
    return Path.home() / ".config" / "specfirst-host"


@dataclass
class Settings:
    """Resolved configuration for one invocation."""

    target_root: Path = field(default_factory=default_target_root)
    source_root: Path = Path("framework")
    repo_url: str | None = None
    namespace: str = "specfirst"
    backup_retention: int = 5
    shared_file: str = "INSTRUCTIONS.md"
    shared_mode: str = "append"
    version_file: str = "framework/VERSION"
    changelog: str = "CHANGELOG.md"
    base_ref: str = "origin/main"
    log_level: str = "WARNING"
    patterns: PatternTable = field(default_factory=default_table)

    def __post_init__(self):
        self.target_root = Path(self.target_root).expanduser()
        self.source_root = Path(self.source_root).expanduser()
        if not self.namespace or "/" in self.namespace or self.namespace.startswith("."):
            raise ConfigError(f"Invalid namespace: {self.namespace!r}")
        if self.shared_mode not in SHARED_MODES:
            raise ConfigError(f"shared_mode must be one of {SHARED_MODES}, got {self.shared_mode!r}")
        try:
            self.backup_retention = int(self.backup_retention)
        except (TypeError, ValueError) as e:
            raise ConfigError(f"backup_retention must be an integer: {self.backup_retention!r}") from e
        if self.backup_retention < 1:
            raise ConfigError("backup_retention must be at least 1")


def load_settings(
    config_path: str | Path | None = None,
    env: Mapping[str, str] | None = None,
    **overrides,
) -> Settings:
    """Build settings from file, environment and explicit overrides.

    ``overrides`` whose value is None are ignored, so CLI options can be passed
    straight through.
    """
    env = os.environ if env is None else env
    values: dict = {}

    path = _config_file(config_path, env)
    if path is not None:
        values.update(_read_config(path))

    env_map = {
        ENV_TARGET: "target_root",
        ENV_SOURCE: "source_root",
        ENV_NAMESPACE: "namespace",
        ENV_RETENTION: "backup_retention",
        ENV_LOG_LEVEL: "log_level",
        ENV_REPO_URL: "repo_url",
    }
    for var, key in env_map.items():
        if env.get(var):
            values[key] = env[var]

    values.update({k: v for k, v in overrides.items() if v is not None})
    return Settings(**values)


def _config_file(config_path, env: Mapping[str, str]) -> Path | None:
    if config_path:
        path = Path(config_path)
        if not path.is_file():
            raise ConfigError(f"Config file not found: {path}")
        return path
    if env.get(ENV_CONFIG):
        path = Path(env[ENV_CONFIG])
        if not path.is_file():
            raise ConfigError(f"Config file not found: {path} (from {ENV_CONFIG})")
        return path
    local = Path(CONFIG_FILENAME)
    return local if local.is_file() else None


def _read_config(path: Path) -> dict:
    try:
        with open(path) as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigError(f"{path} must contain a mapping at the top level")

    known = {f.name for f in fields(Settings)}
    unknown = sorted(set(data) - known)
    if unknown:
        raise ConfigError(f"Unknown setting(s) in {path}: {', '.join(unknown)}")

    if "patterns" in data:
        data["patterns"] = table_from_dict(data["patterns"])
    return data

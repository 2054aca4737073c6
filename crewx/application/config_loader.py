import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from crewx.application.config_models import CrewxConfig


CONFIG_ENV_VAR = "CREWX_CONFIG"
PROJECT_CONFIG_NAMES = ("crewx.yaml", "crewx.yml")


class ConfigLoadError(Exception):
    def __init__(self, message: str, *, path: Path | None = None, cause: Exception | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.path = path
        self.cause = cause

    def __str__(self) -> str:
        if self.path is None:
            return self.message
        return f"{self.message}: {self.path}"


def _defaults() -> dict[str, Any]:
    return {
        "providers": [],
        "agents": [],
        "logs_dir": ".crewx/logs",
        "max_tool_turns": 5,
    }


def _deep_merge(base: dict[str, Any], overlay: dict[str, Any]) -> dict[str, Any]:
    """
    Deep-merge mapping keys. For non-dict values (lists included), overlay wins.
    """
    merged: dict[str, Any] = dict(base)
    for k, v in overlay.items():
        if isinstance(v, dict) and isinstance(merged.get(k), dict):
            merged[k] = _deep_merge(merged[k], v)
        else:
            merged[k] = v
    return merged


def _load_yaml_mapping(path: Path) -> dict[str, Any]:
    """
    Load YAML file and ensure root is a mapping.
    """
    try:
        raw = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return {}
    except OSError as e:
        raise ConfigLoadError("Failed to read config file", path=path, cause=e) from e

    try:
        data = yaml.safe_load(raw)
    except yaml.YAMLError as e:
        raise ConfigLoadError("Malformed YAML", path=path, cause=e) from e

    if data is None:
        return {}

    if not isinstance(data, dict):
        raise ConfigLoadError("YAML root must be a mapping", path=path)

    return data


def resolve_project_config_path(
    *,
    config_path: Path | None = None,
    project_root: Path | None = None,
    environ: Mapping[str, str] | None = None,
) -> Path | None:
    """Explicit path > CREWX_CONFIG > project_root/crewx.yaml (or .yml)."""
    if config_path is not None:
        return config_path

    environ = os.environ if environ is None else environ
    env_path = (environ.get(CONFIG_ENV_VAR) or "").strip()
    if env_path:
        return Path(env_path)

    project_root = project_root or Path.cwd()
    for name in PROJECT_CONFIG_NAMES:
        candidate = project_root / name
        if candidate.is_file():
            return candidate
    return None


def load_config(
    *,
    config_path: Path | None = None,
    project_root: Path | None = None,
    user_home: Path | None = None,
    environ: Mapping[str, str] | None = None,
) -> CrewxConfig:
    """
    Load and merge config with precedence (highest wins):
    CLI args (handled in CLI) > project > user > defaults.

    Files:
      - user:    user_home/.crewx/crewx.yaml
      - project: --config path, CREWX_CONFIG, or project_root/crewx.yaml

    Raises:
        ConfigLoadError: If a file is unreadable, malformed, or fails validation
    """
    user_home = user_home or Path.home()

    cfg: dict[str, Any] = _defaults()

    user_path = user_home / ".crewx" / "crewx.yaml"
    cfg = _deep_merge(cfg, _load_yaml_mapping(user_path))

    project_path = resolve_project_config_path(
        config_path=config_path, project_root=project_root, environ=environ
    )
    if project_path is not None:
        if config_path is not None and not project_path.is_file():
            raise ConfigLoadError("Config file not found", path=project_path)
        cfg = _deep_merge(cfg, _load_yaml_mapping(project_path))

    try:
        return CrewxConfig.model_validate(cfg)
    except ValidationError as e:
        raise ConfigLoadError("Invalid configuration", path=project_path, cause=e) from e

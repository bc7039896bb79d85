"""Configuration management for ctxpack."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, Field, ValidationError

from ctxpack.exceptions import ConfigError

AI_DIR = ".ai"
CONFIG_FILE = "ctxpack.json"
CATALOG_DB_FILE = "packs.db"


class EngineConfig(BaseModel):
    """Assembly defaults used when a query leaves them unset."""

    default_budget: int = Field(default=32_000, gt=0)
    best_effort: bool = False
    policy: Literal["first_fit", "prefix"] = "first_fit"
    scopes: list[Literal["global", "project", "local"]] = Field(
        default_factory=lambda: ["global", "project", "local"]
    )


class CacheConfig(BaseModel):
    """Assembly cache configuration."""

    max_entries: int = Field(default=128, gt=0)


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = "WARNING"


class ProjectConfig(BaseModel):
    """Full project configuration."""

    name: str = ""
    root_path: str = "."
    engine: EngineConfig = Field(default_factory=EngineConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


def find_project_root(start: Path | None = None) -> Path | None:
    """Walk up from `start` looking for a directory holding ``.ai/ctxpack.json``."""
    current = (start or Path.cwd()).resolve()
    while current != current.parent:
        if (current / AI_DIR / CONFIG_FILE).is_file():
            return current
        current = current.parent
    if (current / AI_DIR / CONFIG_FILE).is_file():
        return current
    return None


def get_ai_dir(root: Path) -> Path:
    """Get the .ai directory for a project root."""
    return root / AI_DIR


def load_config(root: Path) -> ProjectConfig:
    """Load configuration from .ai/ctxpack.json."""
    config_path = get_ai_dir(root) / CONFIG_FILE
    if config_path.exists():
        try:
            data = json.loads(config_path.read_text())
            return ProjectConfig(**data)
        except (json.JSONDecodeError, ValidationError) as e:
            raise ConfigError(f"Invalid configuration in {config_path}: {e}") from e
    return ProjectConfig(name=root.name, root_path=str(root))


def save_config(root: Path, config: ProjectConfig) -> None:
    """Save configuration to .ai/ctxpack.json."""
    ai_dir = get_ai_dir(root)
    ai_dir.mkdir(parents=True, exist_ok=True)
    config_path = ai_dir / CONFIG_FILE
    config_path.write_text(json.dumps(config.model_dump(), indent=2))


def set_config_value(config: ProjectConfig, key: str, value: Any) -> ProjectConfig:
    """Set a nested config value using dot notation (e.g., 'engine.policy')."""
    parts = key.split(".")
    data = config.model_dump()
    target = data
    for part in parts[:-1]:
        if part not in target or not isinstance(target[part], dict):
            raise KeyError(f"Invalid config key: {key}")
        target = target[part]
    if parts[-1] not in target:
        raise KeyError(f"Invalid config key: {key}")
    target[parts[-1]] = value
    try:
        return ProjectConfig(**data)
    except ValidationError as e:
        raise ConfigError(f"Invalid value for {key}: {value!r}") from e

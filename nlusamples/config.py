"""Load nlusamples settings from TOML (e.g. nlusamples.toml) and the environment.

Config file is looked up in order:
  1. Path passed to load_settings()
  2. Path in NLUSAMPLES_CONFIG env var (if set)
  3. nlusamples.toml in the current working directory

The first existing file wins. Environment variables then override single
settings: NLUSAMPLES_STORAGE, NLUSAMPLES_DATABASE, NLUSAMPLES_ENGINE,
NLUSAMPLES_ENGINE_URL and NLUSAMPLES_LOG_LEVEL. If no file is found,
built-in defaults are used.

Example file:

    storage = "sqlite"
    database = "nlusamples.db"
    log_level = "INFO"

    [engine]
    backend = "http"
    url = "http://localhost:5000"
    timeout = 300.0

    [imports]
    default_lookups = ["trait"]
    sample_type = "train"
"""

from __future__ import annotations

import os
import tomllib
from pathlib import Path
from typing import Any, Literal

from pydantic import BaseModel, Field
from pydantic import ValidationError as PydanticValidationError

from nlusamples.errors import ValidationError
from nlusamples.sample import SampleType

CONFIG_ENV_VAR = "NLUSAMPLES_CONFIG"
CONFIG_FILENAME = "nlusamples.toml"

_ENV_OVERRIDES: dict[str, tuple[str, ...]] = {
    "NLUSAMPLES_STORAGE": ("storage",),
    "NLUSAMPLES_DATABASE": ("database",),
    "NLUSAMPLES_LOG_LEVEL": ("log_level",),
    "NLUSAMPLES_ENGINE": ("engine", "backend"),
    "NLUSAMPLES_ENGINE_URL": ("engine", "url"),
}


class EngineSettings(BaseModel, frozen=True):
    """Which recognition engine to use and how to reach it."""

    backend: str = Field(default="dummy", description="Engine variant: 'dummy' or 'http'.")
    url: str = Field(default="http://localhost:5000", description="Base URL of a remote NLU server.")
    timeout: float = Field(default=300.0, gt=0, description="Seconds before an engine call times out.")
    project: str | None = Field(default=None, description="Project/model name sent to the remote server.")


class ImportSettings(BaseModel, frozen=True):
    """Defaults applied to CSV imports."""

    default_lookups: tuple[str, ...] = Field(
        default=("trait",),
        description="Lookups given to entities first created by an import.",
    )
    sample_type: SampleType = SampleType.TRAIN


class NluSettings(BaseModel, frozen=True):
    storage: Literal["sqlite", "memory"] = "sqlite"
    database: str = Field(default="nlusamples.db", description="SQLite file path, or ':memory:'.")
    log_level: str = "INFO"
    engine: EngineSettings = Field(default_factory=EngineSettings)
    imports: ImportSettings = Field(default_factory=ImportSettings)


def _default_config_paths(path: Path | None = None) -> list[Path]:
    """Return paths to check for a config file (first existing wins)."""
    paths: list[Path] = []
    if path is not None:
        paths.append(path)
    if os.environ.get(CONFIG_ENV_VAR):
        paths.append(Path(os.environ[CONFIG_ENV_VAR]))
    paths.append(Path.cwd() / CONFIG_FILENAME)
    return paths


def _apply_env(data: dict[str, Any]) -> dict[str, Any]:
    for env_var, keys in _ENV_OVERRIDES.items():
        value = os.environ.get(env_var)
        if not value:
            continue
        target = data
        for key in keys[:-1]:
            target = target.setdefault(key, {})
        target[keys[-1]] = value
    return data


def load_settings(path: Path | None = None) -> NluSettings:
    """Load settings from the first config file found, then the environment.

    Raises:
        ValidationError: If the merged configuration has invalid values.
    """
    data: dict[str, Any] = {}
    source = "defaults"
    for candidate in _default_config_paths(path):
        if candidate.is_file():
            try:
                with open(candidate, "rb") as f:
                    data = tomllib.load(f)
            except (OSError, ValueError):
                continue
            source = str(candidate)
            break

    try:
        return NluSettings.model_validate(_apply_env(data))
    except PydanticValidationError as e:
        raise ValidationError(f"Invalid configuration: {e}", record=source) from e

"""
Settings for pacdeps.

Settings are read from a YAML file and validated with pydantic. Lookup order
for the file is an explicit path, then ``$PACDEPS_CONFIG``, then
``~/.config/pacdeps/config.yaml``. A few values can be overridden from the
environment.
"""

import logging
import os
from pathlib import Path

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

from pacdeps.exceptions import ConfigError

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path.home() / ".config" / "pacdeps" / "config.yaml"

DEFAULT_SYSTEM_PACKAGES = [
    "glibc",
    "linux",
    "systemd",
    "pacman",
    "bash",
    "coreutils",
    "gcc",
    "binutils",
    "filesystem",
    "util-linux",
    "shadow",
    "sed",
    "grep",
]

ENV_CONFIG = "PACDEPS_CONFIG"
ENV_PACMAN = "PACDEPS_PACMAN"
ENV_TIMEOUT = "PACDEPS_TIMEOUT"
ENV_LOG_LEVEL = "PACDEPS_LOG_LEVEL"

_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class Settings(BaseModel):
    """Validated pacdeps settings."""

    pacman_binary: str = Field(default="pacman", min_length=1, description="pacman executable")
    aur_helpers: list[str] = Field(
        default_factory=lambda: ["paru", "yay"],
        description="AUR helpers to try, in order",
    )
    command_timeout: float = Field(default=30, gt=0, description="Seconds before a query is abandoned")
    batch_size: int = Field(default=50, ge=1, description="Max packages per multi-package -Si query")
    system_packages: list[str] = Field(
        default_factory=lambda: list(DEFAULT_SYSTEM_PACKAGES),
        description="Packages treated as critical to the system",
    )
    system_groups: list[str] = Field(
        default_factory=lambda: ["base", "base-devel"],
        description="Package groups that mark a dependent as a system package",
    )
    log_level: str = Field(default="WARNING", description="Default log level for the CLI")

    @field_validator("log_level")
    @classmethod
    def _check_log_level(cls, value: str) -> str:
        level = value.upper()
        if level not in _LOG_LEVELS:
            raise ValueError(f"log_level must be one of {', '.join(_LOG_LEVELS)}")
        return level


def _env_overrides() -> dict:
    overrides = {}
    if os.environ.get(ENV_PACMAN):
        overrides["pacman_binary"] = os.environ[ENV_PACMAN]
    if os.environ.get(ENV_TIMEOUT):
        overrides["command_timeout"] = os.environ[ENV_TIMEOUT]
    if os.environ.get(ENV_LOG_LEVEL):
        overrides["log_level"] = os.environ[ENV_LOG_LEVEL]
    return overrides


def load_settings(path: str | os.PathLike | None = None) -> Settings:
    """
    Load settings from YAML and the environment.

    Args:
        path: Explicit settings file. When given it must exist.

    Raises:
        ConfigError: If the file is missing (explicit path only), is not
            valid YAML, or fails validation.
    """
    explicit = path is not None or bool(os.environ.get(ENV_CONFIG))
    config_path = Path(path or os.environ.get(ENV_CONFIG) or DEFAULT_CONFIG_PATH).expanduser()

    data: dict = {}
    if config_path.is_file():
        try:
            with open(config_path, encoding="utf-8") as f:
                loaded = yaml.safe_load(f)
        except (OSError, yaml.YAMLError) as e:
            raise ConfigError(f"Cannot read settings from {config_path}: {e}") from e
        if loaded is not None and not isinstance(loaded, dict):
            raise ConfigError(f"Settings file {config_path} must contain a mapping")
        data = loaded or {}
        logger.debug(f"Loaded settings from {config_path}")
    elif explicit:
        raise ConfigError(f"Settings file not found: {config_path}")

    data.update(_env_overrides())

    try:
        return Settings(**data)
    except ValidationError as e:
        raise ConfigError(f"Invalid settings: {e}") from e

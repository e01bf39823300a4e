"""Configuration management for ptyrelay.

Loads settings from a YAML configuration file with environment variable
overrides (``PTYRELAY_SERVER__PORT=9000`` and so on). Supports .env files.
"""

from __future__ import annotations

import logging
from pathlib import Path

import yaml
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path("config/ptyrelay.yaml")


class ServerConfig(BaseModel):
    host: str = Field(default="127.0.0.1")
    port: int = Field(default=0, ge=0, le=65535, description="0 picks an ephemeral port")
    read_workers: int = Field(
        default=64, gt=0, description="Threads reserved for blocking PTY reads",
    )


class TerminalConfig(BaseModel):
    cols: int = Field(default=80, gt=0, le=65535)
    rows: int = Field(default=24, gt=0, le=65535)
    read_chunk_size: int = Field(default=8192, gt=0)
    default_term: str = Field(default="xterm-256color")
    default_locale: str = Field(default="en_US.UTF-8")
    term_program: str = Field(default="smart-workflow")
    init_timeout: float | None = Field(
        default=5.0, gt=0,
        description="Seconds to wait for the first message before spawning "
                    "the default shell; null waits forever",
    )
    kill_grace: float = Field(default=3.0, gt=0)


class LoggingConfig(BaseModel):
    level: str = Field(default="INFO")
    format: str = Field(
        default="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    file: str | None = Field(default=None)


class Settings(BaseSettings):
    """Root configuration for the ptyrelay server.

    Loads from YAML file and supports environment variable overrides.
    Reads .env files automatically.
    """

    model_config = {
        "env_prefix": "PTYRELAY_",
        "env_nested_delimiter": "__",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }

    server: ServerConfig = Field(default_factory=ServerConfig)
    terminal: TerminalConfig = Field(default_factory=TerminalConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


def load_settings(config_path: Path | str | None = None) -> Settings:
    """Load settings from YAML + .env + environment variables.

    Priority: env vars > .env file > YAML file > defaults
    """
    path = Path(config_path) if config_path else DEFAULT_CONFIG_PATH

    yaml_data = {}
    if path.exists():
        with open(path) as f:
            yaml_data = yaml.safe_load(f) or {}
        logger.info("Loaded configuration from %s", path)
    elif config_path:
        logger.warning("Config file %s not found, using defaults + env vars", path)
    else:
        logger.debug("No config file at %s, using defaults + env vars", path)

    settings = Settings()
    return _merge(settings, yaml_data)


def _merge(settings: Settings, yaml_data: dict) -> Settings:
    """Overlay YAML values under whatever the environment already set.

    pydantic-settings gives init kwargs priority over env vars, so the YAML
    sections are applied only to fields the environment left unset.
    """
    merged = {}
    for section in ("server", "terminal", "logging"):
        current = getattr(settings, section)
        from_env = current.model_dump(exclude_unset=True)
        from_yaml = yaml_data.get(section) or {}
        merged[section] = {**from_yaml, **from_env}
    return Settings(**merged)

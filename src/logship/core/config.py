from pathlib import Path
from typing import Any, Dict, List, Literal, Optional, Union
import re

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from logship.core.exceptions import ConfigurationError


class DockerInputSettings(BaseSettings):
    """Declarative settings of the docker input; live resources live in DockerInputContext."""

    model_config = SettingsConfigDict(
        env_prefix="LOGSHIP_DOCKER_",
        case_sensitive=False,
        frozen=True,
        extra="ignore",
    )

    type: Literal["docker"] = "docker"

    # Docker
    host: str = "unix:///var/run/docker.sock"

    # Container selection
    include_patterns: List[str] = Field(default_factory=list)
    exclude_patterns: List[str] = Field(default_factory=lambda: ["logship"])

    # Offsets
    sincepath: str = "sincedb"
    sincedb_flush_interval: float = Field(5.0, gt=0)
    start_position: Literal["beginning", "end"] = "beginning"

    # Reconnect backoff, seconds
    connection_retry_interval: float = Field(10, gt=0)

    @field_validator("include_patterns", "exclude_patterns")
    @classmethod
    def check_patterns(cls, v):
        for pattern in v:
            try:
                re.compile(pattern)
            except re.error as e:
                raise ValueError(f"invalid pattern {pattern!r}: {e}")
        return v


class AppConfig(BaseModel):
    """Top-level configuration file"""
    log_level: str = "INFO"
    input: List[Dict[str, Any]] = Field(default_factory=lambda: [{"type": "docker"}])

    @field_validator("input")
    @classmethod
    def check_input_types(cls, v):
        for raw in v:
            if not raw.get("type"):
                raise ValueError("every input needs a 'type'")
        return v


def build_docker_settings(raw: Dict[str, Any]) -> DockerInputSettings:
    """
    Build docker input settings from a raw config mapping.

    Values from the mapping win over LOGSHIP_DOCKER_* environment variables.

    Raises:
        ConfigurationError: If the mapping does not validate
    """
    try:
        return DockerInputSettings(**raw)
    except ValidationError as e:
        raise ConfigurationError(
            f"Invalid docker input configuration: {e}",
            details={"errors": e.errors(include_url=False)}
        )


def load_config(path: Optional[Union[str, Path]] = None) -> AppConfig:
    """
    Load the application configuration from a YAML file.

    A missing path or file gives the defaults: a single docker input.

    Raises:
        ConfigurationError: If the file is unreadable or invalid
    """
    if path is None:
        return AppConfig()

    config_path = Path(path)
    if not config_path.exists():
        return AppConfig()

    try:
        with open(config_path, 'r') as f:
            data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        raise ConfigurationError(f"Failed to read config file {config_path}: {e}")

    if not isinstance(data, dict):
        raise ConfigurationError(f"Config file {config_path} must contain a mapping")

    try:
        return AppConfig(**data)
    except ValidationError as e:
        raise ConfigurationError(
            f"Invalid config file {config_path}: {e}",
            details={"errors": e.errors(include_url=False)}
        )

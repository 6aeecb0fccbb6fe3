"""zkharness configuration management using Pydantic."""

__all__ = [
    "HarnessConfig",
    "PortsConfig",
    "LoggingConfig",
]

import logging
import threading
from pathlib import Path
from typing import Any, ClassVar

import yaml
from pydantic import BaseModel, Field, ValidationError, model_validator

from zkharness.constants import (
    COMMAND_LINE_ENV,
    CONFIG_FILE,
    GLOBAL_PORT_BASE,
    GLOBAL_PORT_MAX,
    LOGS_DIR,
    PROCESS_COUNT_ENV,
    WORKER_TOKEN,
)
from zkharness.exceptions import ConfigurationError

logger = logging.getLogger(__name__)


class PortsConfig(BaseModel):
    """Port partitioning configuration."""

    global_base: int = Field(default=GLOBAL_PORT_BASE, ge=1, le=65535)
    global_max: int = Field(default=GLOBAL_PORT_MAX, ge=1, le=65535)
    process_count_env: str = Field(default=PROCESS_COUNT_ENV, min_length=1)
    command_line_env: str = Field(default=COMMAND_LINE_ENV, min_length=1)
    worker_token: str = Field(default=WORKER_TOKEN, pattern=r"^\w+$")

    @model_validator(mode="after")
    def _check_bounds(self) -> "PortsConfig":
        if self.global_base > self.global_max:
            raise ValueError(f"global_base ({self.global_base}) must be <= global_max ({self.global_max})")
        return self


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = Field(default="info", pattern="^(debug|info|warn|error)$")
    directory: str = LOGS_DIR
    json_output: bool = False


class HarnessConfig(BaseModel):
    """Complete zkharness configuration."""

    # Class-level cache for singleton pattern with mtime invalidation
    _cached_instance: ClassVar["HarnessConfig | None"] = None
    _cache_mtime: ClassVar[float | None] = None
    _cache_path: ClassVar[Path | None] = None
    _cache_lock: ClassVar[threading.Lock] = threading.Lock()

    ports: PortsConfig = Field(default_factory=PortsConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @classmethod
    def load(cls, config_path: str | Path | None = None, force_reload: bool = False) -> "HarnessConfig":
        """Load configuration from YAML file with mtime-based caching.

        The cached instance is returned if the file hasn't been modified since
        the last load.

        Args:
            config_path: Path to config file. Defaults to .zkharness/config.yaml
            force_reload: Bypass cache and force reload from disk

        Returns:
            HarnessConfig instance (cached if valid)

        Raises:
            ConfigurationError: If the file cannot be parsed or fails validation
        """
        config_path = Path(CONFIG_FILE) if config_path is None else Path(config_path)

        with cls._cache_lock:
            if not force_reload and cls._cached_instance is not None:
                if cls._cache_path == config_path:
                    try:
                        current_mtime: float | None = config_path.stat().st_mtime
                        if current_mtime == cls._cache_mtime:
                            logger.debug("Cache hit for HarnessConfig")
                            return cls._cached_instance
                    except FileNotFoundError:
                        # Cached defaults stand while the file is still absent
                        if cls._cache_mtime is None:
                            logger.debug("Cache hit for HarnessConfig (no file)")
                            return cls._cached_instance

            logger.debug("Cache miss for HarnessConfig, loading from %s", config_path)

            if not config_path.exists():
                instance = cls()
                current_mtime = None
            else:
                try:
                    with open(config_path) as f:
                        data = yaml.safe_load(f) or {}
                except (OSError, yaml.YAMLError) as e:
                    raise ConfigurationError(f"Cannot read config file {config_path}", {"error": str(e)}) from e
                instance = cls.from_dict(data)
                current_mtime = config_path.stat().st_mtime

            cls._cached_instance = instance
            cls._cache_path = config_path
            cls._cache_mtime = current_mtime

            return instance

    @classmethod
    def invalidate_cache(cls) -> None:
        """Invalidate the cached config instance."""
        with cls._cache_lock:
            cls._cached_instance = None
            cls._cache_mtime = None
            cls._cache_path = None
            logger.debug("Invalidating cache for HarnessConfig")

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "HarnessConfig":
        """Create configuration from dictionary.

        Args:
            data: Configuration dictionary

        Returns:
            HarnessConfig instance

        Raises:
            ConfigurationError: If the data fails validation
        """
        if not isinstance(data, dict):
            raise ConfigurationError("Config root must be a mapping", {"type": type(data).__name__})
        try:
            return cls(**data)
        except ValidationError as e:
            raise ConfigurationError("Invalid zkharness configuration", {"errors": e.error_count()}) from e

    def save(self, config_path: str | Path | None = None) -> None:
        """Save configuration to YAML file.

        Args:
            config_path: Path to save config. Defaults to .zkharness/config.yaml
        """
        config_path = Path(CONFIG_FILE) if config_path is None else Path(config_path)

        config_path.parent.mkdir(parents=True, exist_ok=True)

        with open(config_path, "w") as f:
            yaml.dump(self.to_dict(), f, default_flow_style=False, sort_keys=False)

    def to_dict(self) -> dict[str, Any]:
        """Convert configuration to dictionary."""
        return self.model_dump()

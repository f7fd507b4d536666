"""Configuration Management with Pydantic.

This module implements configuration models using Pydantic for parsing and
validation of YAML/JSON configuration files with environment variable overrides.
"""

import os
import threading
from pathlib import Path
from typing import Any

import structlog
import yaml
from pydantic import BaseModel, Field, field_validator

from depforest.graph.scheme import EqualityMode, SerializingScheme

logger = structlog.get_logger(__name__)

DEFAULT_CONFIG_NAMES = ("depforest.yaml", "depforest.yml", "depforest.json")
ENV_PREFIX = "DEPFOREST_"
LARGE_INDENT_THRESHOLD = 8


class ForestConfig(BaseModel):
    """Dependency forest settings.

    Attributes:
        serializing_scheme: Direction walked by serialization and rendering
        equality: Node equality mode (key only, or key plus value and finished flag)
        json_indent: Indentation for JSON output; compact when unset
        skip_invalid_trees: Drop undecodable top-level trees instead of failing
    """

    serializing_scheme: SerializingScheme = Field(
        default=SerializingScheme.DEPENDANTS,
        description="Traversal direction for serialization",
    )
    equality: EqualityMode = Field(
        default=EqualityMode.KEY,
        description="Node equality mode",
    )
    json_indent: int | None = Field(
        default=None,
        ge=0,
        description="JSON indentation, compact output when unset",
    )
    skip_invalid_trees: bool = Field(
        default=False,
        description="Skip undecodable trees when loading JSON",
    )

    @field_validator("serializing_scheme", "equality", mode="before")
    @classmethod
    def normalize_enum_value(cls, v: Any) -> Any:
        """Accept enum values case-insensitively.

        Args:
            v: Raw value from file or environment

        Returns:
            Lower-cased string, or the value unchanged if it is not a string
        """
        if isinstance(v, str):
            return v.strip().lower()
        return v


class DepForestConfig(BaseModel):
    """Top-level configuration.

    Attributes:
        forest: Dependency forest settings
        logging_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_logs: Render logs as JSON lines rather than console output
    """

    forest: ForestConfig = Field(default_factory=ForestConfig)
    logging_level: str = Field(
        default="INFO",
        description="Logging level",
        pattern=r"^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$",
    )
    json_logs: bool = Field(
        default=True,
        description="Render logs as JSON",
    )

    @field_validator("logging_level", mode="before")
    @classmethod
    def normalize_logging_level(cls, v: Any) -> Any:
        if isinstance(v, str):
            return v.strip().upper()
        return v

    @classmethod
    def from_yaml(cls, path: str | Path) -> "DepForestConfig":
        """Load configuration from a YAML (or JSON) file.

        Args:
            path: Path to the configuration file

        Returns:
            Parsed and validated DepForestConfig instance

        Raises:
            FileNotFoundError: If configuration file doesn't exist
            ValueError: If configuration is invalid
        """
        config_path = Path(path)

        if not config_path.exists():
            msg = f"Configuration file not found: {config_path}"
            raise FileNotFoundError(msg)

        logger.info("loading_configuration", path=str(config_path))

        try:
            with config_path.open() as f:
                config_data = yaml.safe_load(f)

            if config_data is None:
                config_data = {}
            if not isinstance(config_data, dict):
                msg = "Configuration file must contain a mapping"
                raise ValueError(msg)

            config_data = cls._apply_env_overrides(config_data)

            config = cls(**config_data)
        except yaml.YAMLError as e:
            logger.exception("yaml_parse_error", error=str(e), path=str(config_path))
            msg = f"Invalid YAML in configuration file: {e}"
            raise ValueError(msg) from e
        else:
            logger.info(
                "configuration_loaded",
                serializing_scheme=config.forest.serializing_scheme.value,
                equality=config.forest.equality.value,
                logging_level=config.logging_level,
            )

            return config

    @classmethod
    def from_env(cls) -> "DepForestConfig":
        """Build configuration from defaults and environment variables only."""
        return cls(**cls._apply_env_overrides({}))

    @classmethod
    def _apply_env_overrides(cls, config_data: dict) -> dict:
        """Apply environment variable overrides to configuration.

        Environment variables follow the pattern: DEPFOREST_<KEY>
        Example: DEPFOREST_SERIALIZING_SCHEME=dependencies

        Args:
            config_data: Base configuration dictionary from file

        Returns:
            Configuration dictionary with environment overrides applied
        """
        env_overrides = {
            ("forest", "serializing_scheme"): "DEPFOREST_SERIALIZING_SCHEME",
            ("forest", "equality"): "DEPFOREST_EQUALITY",
            ("forest", "json_indent"): "DEPFOREST_JSON_INDENT",
            ("forest", "skip_invalid_trees"): "DEPFOREST_SKIP_INVALID_TREES",
            ("logging_level",): "DEPFOREST_LOGGING_LEVEL",
            ("json_logs",): "DEPFOREST_JSON_LOGS",
        }

        for path, env_var in env_overrides.items():
            value: Any = os.environ.get(env_var)
            if value is None:
                continue

            current = config_data
            for key in path[:-1]:
                if current.get(key) is None:
                    current[key] = {}
                current = current[key]

            if env_var.endswith("_INDENT"):
                value = int(value) if value.strip() else None
            elif env_var.endswith(("_TREES", "_LOGS")):
                value = value.lower() in ("true", "1", "yes")

            current[path[-1]] = value
            logger.debug(
                "env_override_applied",
                env_var=env_var,
                config_path=".".join(path),
            )

        return config_data

    def validate_config(self) -> list[str]:
        """Validate configuration and return list of warnings.

        Returns:
            List of validation warning messages (empty if no warnings)
        """
        warnings = []

        if self.forest.equality is EqualityMode.STRICT:
            warnings.append(
                "Strict equality compares values and finished flags; nodes sharing a key "
                "but differing in value are treated as distinct and may replace each other",
            )

        if self.forest.skip_invalid_trees:
            warnings.append("Invalid trees are dropped silently when loading JSON")

        if self.forest.json_indent is not None and self.forest.json_indent > LARGE_INDENT_THRESHOLD:
            warnings.append(
                f"JSON indent is large ({self.forest.json_indent}) - output size will grow quickly",
            )

        return warnings


class ConfigManager:
    """Configuration manager using singleton pattern."""

    _instance: DepForestConfig | None = None
    _init_lock: threading.Lock = threading.Lock()

    @classmethod
    def load_config(cls, config_path: str | Path | None = None) -> DepForestConfig:
        """Load configuration from file.

        Args:
            config_path: Path to configuration file. If None, looks for
                depforest.yaml, depforest.yml or depforest.json in the current
                directory and falls back to defaults plus environment overrides.

        Returns:
            Loaded DepForestConfig instance

        Raises:
            FileNotFoundError: If an explicit config file is not found
            ValueError: If config file is invalid
        """
        if config_path is None:
            for default_name in DEFAULT_CONFIG_NAMES:
                default_path = Path(default_name)
                if default_path.exists():
                    config_path = default_path
                    break
            else:
                logger.debug("no_configuration_file_found", candidates=list(DEFAULT_CONFIG_NAMES))
                return DepForestConfig.from_env()

        return DepForestConfig.from_yaml(config_path)

    @classmethod
    def get_config(
        cls,
        config_path: str | Path | None = None,
        reload: bool = False,
    ) -> DepForestConfig:
        """Get configuration instance (singleton pattern).

        Uses double-checked locking so concurrent first calls load once.

        Args:
            config_path: Path to configuration file. Only used on first call or when reload=True.
            reload: If True, force reload configuration from file.

        Returns:
            DepForestConfig instance
        """
        if cls._instance is not None and not reload:
            return cls._instance

        with cls._init_lock:
            if cls._instance is None or reload:
                cls._instance = cls.load_config(config_path)

            return cls._instance

    @classmethod
    def reset_config(cls) -> None:
        """Reset the configuration instance."""
        cls._instance = None


def load_config(config_path: str | Path | None = None) -> DepForestConfig:
    """Load configuration from file."""
    return ConfigManager.load_config(config_path)


def get_config(config_path: str | Path | None = None, reload: bool = False) -> DepForestConfig:
    """Get configuration instance (singleton pattern)."""
    return ConfigManager.get_config(config_path, reload)


def reset_config() -> None:
    """Reset the configuration instance."""
    ConfigManager.reset_config()


__all__ = [
    "ConfigManager",
    "DepForestConfig",
    "ForestConfig",
    "get_config",
    "load_config",
    "reset_config",
]

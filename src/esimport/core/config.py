"""
Centralized configuration management with validation.

The configuration is a flat set of variables (``ES_PORT=9200``) read from a
shell-style rc file or a flat YAML mapping, optionally overridden from the
environment with the ``ESIMPORT_`` prefix.
"""
import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import yaml
from dotenv import dotenv_values
from pydantic import BaseModel, ConfigDict, ValidationError, field_validator

from esimport.core.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

APPLICATION = "esimport"
DEFAULT_CONFIG_FILE = f"{APPLICATION}.rc"
ENV_PREFIX = "ESIMPORT_"
DEFAULT_DATASET_URL = "https://en.wikipedia.org/wiki/List_of_Star_Wars_characters"

REQUIRED_VARIABLES = ("ES_PORT", "ES_IMAGE", "ES_NAME", "ES_INDEX")

# Variable name -> (section, field)
VARIABLES: Dict[str, Tuple[str, str]] = {
    "ES_HOST": ("elasticsearch", "host"),
    "ES_PORT": ("elasticsearch", "port"),
    "ES_INDEX": ("elasticsearch", "index"),
    "ES_TIMEOUT": ("elasticsearch", "timeout"),
    "ES_DOC_TYPE": ("elasticsearch", "doc_type"),
    "ES_USERNAME": ("elasticsearch", "username"),
    "ES_PASSWORD": ("elasticsearch", "password"),
    "ES_IMAGE": ("container", "image"),
    "ES_NAME": ("container", "name"),
    "ES_STARTUP_DELAY": ("container", "startup_delay"),
    "SETTINGS_FILE": ("data", "settings_file"),
    "MAPPINGS_FILE": ("data", "mappings_file"),
    "INPUT_FILE": ("data", "input_file"),
    "DATASET_URL": ("data", "dataset_url"),
    "DATASET_TIMEOUT": ("data", "dataset_timeout"),
}


class ElasticsearchConfig(BaseModel):
    """Elasticsearch endpoint configuration."""
    model_config = ConfigDict(frozen=True)

    host: str = "localhost"
    port: int
    index: str
    timeout: int = 30
    doc_type: Optional[str] = None
    username: Optional[str] = None
    password: Optional[str] = None

    @field_validator("port")
    @classmethod
    def validate_port(cls, v):
        if not 0 < v < 65536:
            raise ValueError("Port must be between 1 and 65535")
        return v

    @property
    def url(self) -> str:
        return f"http://{self.host}:{self.port}"


class ContainerConfig(BaseModel):
    """Container runtime configuration."""
    model_config = ConfigDict(frozen=True)

    image: str
    name: str
    startup_delay: float = 10.0


class DataConfig(BaseModel):
    """Input files consumed by the pipeline."""
    model_config = ConfigDict(frozen=True)

    settings_file: str = "settings.json"
    mappings_file: str = "mappings.json"
    input_file: str = "characters.json"
    dataset_url: str = DEFAULT_DATASET_URL
    dataset_timeout: int = 30


class LoggingConfig(BaseModel):
    """Logging configuration, built from the command line."""
    model_config = ConfigDict(frozen=True)

    level: str = "INFO"
    verbose: bool = False
    quiet: bool = False
    directory: str = "."

    @field_validator("level")
    @classmethod
    def validate_log_level(cls, v):
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"Log level must be one of: {valid_levels}")
        return v.upper()


class AppConfig(BaseModel):
    """Main application configuration."""
    model_config = ConfigDict(frozen=True)

    elasticsearch: ElasticsearchConfig
    container: ContainerConfig
    data: DataConfig = DataConfig()


class ConfigManager:
    """Centralized configuration manager."""

    _instance: Optional["ConfigManager"] = None
    _config: Optional[AppConfig] = None

    def __new__(cls) -> "ConfigManager":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def load_config(self, config_path: Optional[str] = None,
                    overrides: Optional[Dict[str, Optional[str]]] = None) -> AppConfig:
        """Load configuration from file, environment and command line overrides.

        Args:
            config_path: Path to the rc or YAML file. Defaults to ``esimport.rc``.
            overrides: Variables set on the command line; ``None`` values are ignored.

        Returns:
            Validated, immutable configuration.

        Raises:
            ConfigurationError: The file cannot be found or read, a required
                variable is unset or empty, or a value is invalid.
        """
        if self._config is not None:
            return self._config

        path = self._resolve_config_path(config_path or DEFAULT_CONFIG_FILE)
        logger.info(f"Reading configuration '{path}'")

        variables = self._load_config_file(path)
        variables.update(self._load_env_config())
        if overrides:
            variables.update({k: v for k, v in overrides.items() if v is not None})

        self._check_required(variables)
        self._config = self._build_config(variables)
        return self._config

    def reset(self) -> None:
        """Forget the loaded configuration."""
        self._config = None

    def _resolve_config_path(self, config_path: str) -> Path:
        """Find the configuration file in the usual locations."""
        path = Path(config_path)
        candidates = [path]
        if not path.is_absolute():
            candidates.append(Path("config") / path)
            candidates.append(Path.home() / f".{APPLICATION}" / path)

        for candidate in candidates:
            if candidate.is_file():
                return candidate

        raise ConfigurationError(
            f"Could not find {config_path} in the current directory, "
            f"in config/ or in ~/.{APPLICATION}"
        )

    def _load_config_file(self, path: Path) -> Dict[str, Optional[str]]:
        """Load variables from an rc file or a flat YAML mapping."""
        try:
            if path.suffix in (".yaml", ".yml"):
                with open(path, "r") as f:
                    data = yaml.safe_load(f) or {}
                if not isinstance(data, dict):
                    raise ConfigurationError(f"{path} must contain a mapping of variables")
                return {str(k): (None if v is None else str(v)) for k, v in data.items()}
            return dict(dotenv_values(path))
        except (OSError, yaml.YAMLError) as e:
            raise ConfigurationError(f"Error loading config from {path}: {e}") from e

    def _load_env_config(self) -> Dict[str, str]:
        """Load variable overrides from ``ESIMPORT_*`` environment variables."""
        env_config = {}
        for name in VARIABLES:
            value = os.getenv(f"{ENV_PREFIX}{name}")
            if value is not None:
                env_config[name] = value
        return env_config

    def _check_required(self, variables: Dict[str, Optional[str]]) -> None:
        for name in REQUIRED_VARIABLES:
            if name not in variables:
                raise ConfigurationError(
                    f"The variable ${name} is not set. "
                    "Make sure it is set in the configuration file."
                )
            value = variables[name]
            if value is None or not value.strip():
                raise ConfigurationError(
                    f"The variable ${name} is set but empty. "
                    "Make sure it is set in the configuration file."
                )

    def _build_config(self, variables: Dict[str, Optional[str]]) -> AppConfig:
        sections: Dict[str, Dict[str, Any]] = {"elasticsearch": {}, "container": {}, "data": {}}
        for name, (section, field) in VARIABLES.items():
            value = variables.get(name)
            if value is None:
                continue
            value = value.strip()
            if value:
                sections[section][field] = value

        try:
            return AppConfig(**sections)
        except ValidationError as e:
            error = e.errors()[0]
            name = _variable_for(error.get("loc", ()))
            raise ConfigurationError(
                f"The variable ${name} is invalid: {error.get('msg')}"
            ) from e


def _variable_for(loc) -> str:
    for name, location in VARIABLES.items():
        if tuple(loc[:2]) == location:
            return name
    return ".".join(str(part) for part in loc)


# Global config manager instance
config_manager = ConfigManager()


def load_config(config_path: Optional[str] = None,
                overrides: Optional[Dict[str, Optional[str]]] = None) -> AppConfig:
    """Load and return the application configuration."""
    return config_manager.load_config(config_path, overrides)

"""
Configuration loader for iis-procfinder.

This module provides configuration management with:
- Multiple configuration sources (files, env vars, dicts)
- Schema validation
- Type coercion
- Configuration merging
- Persisting a manually supplied diagnostic tool path
"""

import os
import json
from pathlib import Path
from typing import Optional, Dict, Any, List, Union

import toml
import yaml
from pydantic import BaseModel, Field, field_validator, ValidationError, ConfigDict

from .logging import get_logger
from .errors import ConfigurationError


logger = get_logger("iis-procfinder.config")

DEFAULT_PROCESS_NAMES = ["dotnet.exe"]
DEFAULT_APPCMD_PATH = Path(r"C:\Windows\System32\inetsrv\appcmd.exe")
ENV_PREFIX = "IIS_PROCFINDER_"


class ConfigSource(BaseModel):
    """Configuration source definition."""
    path: Optional[Path] = None
    data: Dict[str, Any] = Field(default_factory=dict)
    priority: int = 0
    source_type: str = "dict"

    model_config = ConfigDict(arbitrary_types_allowed=True)


class DiscoveryConfig(BaseModel):
    """Where worker processes and runtime host processes are looked up."""
    process_names: List[str] = Field(default_factory=lambda: list(DEFAULT_PROCESS_NAMES))
    appcmd_path: Path = DEFAULT_APPCMD_PATH

    @field_validator('process_names', mode='before')
    @classmethod
    def parse_process_names(cls, v):
        """Accept a comma-separated string as well as a list."""
        if v is None:
            v = []
        if isinstance(v, str):
            v = v.split(",")
        names = [str(name).strip() for name in v if str(name).strip()]
        if not names:
            logger.warning(
                "process_names_not_configured",
                fallback=DEFAULT_PROCESS_NAMES
            )
            return list(DEFAULT_PROCESS_NAMES)
        return names


class DiagnosticToolConfig(BaseModel):
    """ProcDump settings."""
    path: Optional[Path] = None
    accept_eula: bool = True
    new_console: bool = True

    @field_validator('path', mode='before')
    @classmethod
    def empty_path_is_unset(cls, v):
        if isinstance(v, str) and not v.strip():
            return None
        return v


class LoggingConfig(BaseModel):
    """Logging configuration."""
    level: str = "INFO"
    format: str = "json"
    console_level: str = "WARNING"
    directory: Path = Field(default_factory=lambda: Path.home() / ".iis-procfinder" / "logs")
    max_size: int = 10 * 1024 * 1024  # 10MB
    backup_count: int = 5

    @field_validator('level', 'console_level')
    @classmethod
    def validate_level(cls, v):
        """Validate log level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"Invalid log level: {v}")
        return v.upper()


class ProcFinderConfig(BaseModel):
    """Main iis-procfinder configuration."""
    app_name: str = "iis-procfinder"

    discovery: DiscoveryConfig = Field(default_factory=DiscoveryConfig)
    procdump: DiagnosticToolConfig = Field(default_factory=DiagnosticToolConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    # Files the configuration was read from, highest priority first
    config_paths: List[Path] = Field(default_factory=list)

    model_config = ConfigDict(
        arbitrary_types_allowed=True,
        validate_assignment=True
    )

    @property
    def writable_config_path(self) -> Optional[Path]:
        """File a manually supplied tool path is saved to."""
        for path in self.config_paths:
            if path.suffix.lower() in (".yaml", ".yml"):
                return path
        return None


class ConfigLoader:
    """Configuration loader with multiple source support."""

    def __init__(self, env_prefix: str = ENV_PREFIX):
        """Initialize configuration loader."""
        self.env_prefix = env_prefix
        self._sources: List[ConfigSource] = []
        self._config: Optional[ProcFinderConfig] = None

    def add_source(
        self,
        source: Union[str, Path, Dict[str, Any]],
        priority: int = 0,
        source_type: Optional[str] = None
    ) -> None:
        """
        Add configuration source.

        Args:
            source: Configuration source (file path or dict)
            priority: Source priority (higher wins)
            source_type: Source type (auto-detected if None)
        """
        if isinstance(source, (str, Path)):
            path = Path(source)
            if not source_type:
                source_type = self._detect_source_type(path)

            self._sources.append(ConfigSource(
                path=path,
                priority=priority,
                source_type=source_type
            ))
        else:
            self._sources.append(ConfigSource(
                data=source,
                priority=priority,
                source_type="dict"
            ))

        self._sources.sort(key=lambda s: s.priority, reverse=True)

    def _detect_source_type(self, path: Path) -> str:
        """Detect configuration file type."""
        suffix = path.suffix.lower()
        if suffix == ".json":
            return "json"
        elif suffix in (".yaml", ".yml"):
            return "yaml"
        elif suffix == ".toml":
            return "toml"
        else:
            raise ConfigurationError(f"Unknown config file type: {suffix}")

    def load(self) -> ProcFinderConfig:
        """
        Load configuration from all sources.

        Lower priority sources are merged first so higher priority values win.

        Returns:
            Merged configuration
        """
        merged_data: Dict[str, Any] = {}
        loaded_paths: List[Path] = []

        for source in reversed(self._sources):
            data = self._load_source(source)
            merged_data = self._deep_merge(merged_data, data)
            if source.path is not None and source.path.exists():
                loaded_paths.insert(0, source.path)

        env_data = self._load_env_vars()
        merged_data = self._deep_merge(merged_data, env_data)
        merged_data.setdefault("config_paths", loaded_paths)

        try:
            self._config = ProcFinderConfig(**merged_data)
        except ValidationError as e:
            errors = []
            for error in e.errors():
                field = ".".join(str(x) for x in error["loc"])
                errors.append(f"{field}: {error['msg']}")

            raise ConfigurationError(
                f"Configuration validation failed: {'; '.join(errors)}"
            ) from e

        logger.info("configuration_loaded", sources=len(self._sources))
        return self._config

    def _load_source(self, source: ConfigSource) -> Dict[str, Any]:
        """Load data from a configuration source."""
        if source.path is None:
            return source.data

        if not source.path.exists():
            logger.warning("config_file_not_found", path=str(source.path))
            return {}

        try:
            content = source.path.read_text(encoding="utf-8")
            if source.source_type == "json":
                data = json.loads(content)
            elif source.source_type == "yaml":
                data = yaml.safe_load(content) or {}
            elif source.source_type == "toml":
                data = toml.loads(content)
            else:
                raise ConfigurationError(f"Unknown source type: {source.source_type}")
        except (OSError, ValueError, yaml.YAMLError) as e:
            raise ConfigurationError(
                f"An exception has occured while reading the configuration file {source.path}: {e}",
                cause=e
            ) from e

        if not isinstance(data, dict):
            raise ConfigurationError(f"Configuration file {source.path} must contain a mapping")
        return data

    def _load_env_vars(self) -> Dict[str, Any]:
        """
        Load configuration from environment variables.

        IIS_PROCFINDER_DISCOVERY__PROCESS_NAMES=dotnet.exe,MyApp.exe sets
        discovery.process_names; a double underscore separates nesting levels.
        """
        result: Dict[str, Any] = {}

        for key, value in os.environ.items():
            if not key.startswith(self.env_prefix):
                continue

            parts = key[len(self.env_prefix):].lower().split("__")
            current = result
            for part in parts[:-1]:
                current = current.setdefault(part, {})
            current[parts[-1]] = self._convert_value(value)

        return result

    def _convert_value(self, value: str) -> Any:
        """Convert string value to appropriate type."""
        if value.lower() in ("true", "yes", "on"):
            return True
        elif value.lower() in ("false", "no", "off"):
            return False

        try:
            return int(value)
        except ValueError:
            pass

        return value

    def _deep_merge(self, base: Dict[str, Any], update: Dict[str, Any]) -> Dict[str, Any]:
        """Deep merge two dictionaries."""
        result = base.copy()

        for key, value in update.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._deep_merge(result[key], value)
            else:
                result[key] = value

        return result

    def get_config(self) -> ProcFinderConfig:
        """Get current configuration."""
        if self._config is None:
            raise ConfigurationError("Configuration not loaded")
        return self._config


def default_config_paths() -> List[Path]:
    """Standard configuration file locations, lowest priority first."""
    return [
        Path.home() / ".iis-procfinder" / "config.yaml",
        Path("./iis-procfinder.json"),
        Path("./iis-procfinder.yaml"),
    ]


def load_config(
    config_paths: Optional[List[Union[str, Path]]] = None,
    extra_config: Optional[Dict[str, Any]] = None,
    use_defaults: bool = True
) -> ProcFinderConfig:
    """
    Load configuration from standard locations.

    Args:
        config_paths: Additional configuration paths; a missing file given here is an error
        extra_config: Extra configuration to merge
        use_defaults: Also read the standard locations

    Returns:
        Loaded configuration
    """
    loader = ConfigLoader()

    if use_defaults:
        for i, path in enumerate(default_config_paths()):
            if path.exists():
                loader.add_source(path, priority=10 + i)

    if config_paths:
        for i, path in enumerate(config_paths):
            path = Path(path)
            if not path.exists():
                raise ConfigurationError(f"Configuration file not found: {path}")
            loader.add_source(path, priority=20 + i)

    if extra_config:
        loader.add_source(extra_config, priority=100)

    return loader.load()


def save_tool_path(tool_path: Path, config_file: Path) -> None:
    """
    Persist the ProcDump path into a YAML configuration file.

    Other settings already in the file are kept.

    Raises:
        ConfigurationError: If the file cannot be read or written
    """
    try:
        data: Dict[str, Any] = {}
        if config_file.exists():
            data = yaml.safe_load(config_file.read_text(encoding="utf-8")) or {}
        section = data.get("procdump") or {}
        section["path"] = str(tool_path)
        data["procdump"] = section
        config_file.parent.mkdir(parents=True, exist_ok=True)
        config_file.write_text(yaml.safe_dump(data, default_flow_style=False), encoding="utf-8")
    except (OSError, yaml.YAMLError, AttributeError, TypeError) as e:
        raise ConfigurationError(
            f"Configuration file {config_file} cannot be updated: {e}",
            cause=e
        ) from e

    logger.info("tool_path_saved", path=str(tool_path), config_file=str(config_file))


__all__ = [
    'ProcFinderConfig',
    'DiscoveryConfig',
    'DiagnosticToolConfig',
    'LoggingConfig',
    'ConfigLoader',
    'default_config_paths',
    'load_config',
    'save_tool_path',
    'DEFAULT_PROCESS_NAMES',
    'DEFAULT_APPCMD_PATH',
]

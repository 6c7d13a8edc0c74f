"""Configuration management for ratio-master.

Hierarchical loading from defaults -> TOML config file -> environment -> CLI,
validated through the pydantic models in ``ratiomaster.models``.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any

import toml

from ratiomaster.exceptions import ConfigurationError
from ratiomaster.models import Config

logger = logging.getLogger(__name__)

CONFIG_FILENAME = "ratiomaster.toml"

# Mapping of environment variables to config paths
ENV_MAPPINGS: dict[str, str] = {
    "RATIOMASTER_SPEED_KIB": "simulation.speed_kib",
    "RATIOMASTER_JITTER": "simulation.jitter",
    "RATIOMASTER_TICK_INTERVAL": "simulation.tick_interval",
    "RATIOMASTER_UPLOAD_SIZE_MIB": "simulation.upload_size_mib",
    "RATIOMASTER_DURATION": "simulation.duration",
    "RATIOMASTER_ANNOUNCE_TIMEOUT": "network.announce_timeout",
    "RATIOMASTER_LISTEN_PORT": "network.listen_port",
    "RATIOMASTER_ENABLE_RESPONDER": "network.enable_responder",
    "RATIOMASTER_DEFAULT_INTERVAL": "tracker.default_interval",
    "RATIOMASTER_LOG_LEVEL": "observability.log_level",
    "RATIOMASTER_LOG_FILE": "observability.log_file",
}

# Global configuration instance
_config_manager: ConfigManager | None = None


def _parse_env_value(raw: str) -> bool | int | float | str:
    low = raw.lower()
    if low in {"true", "yes", "on"}:
        return True
    if low in {"false", "no", "off"}:
        return False
    try:
        if "." in raw:
            return float(raw)
        return int(raw)
    except ValueError:
        return raw


def _set_nested(d: dict[str, Any], path: str, value: Any) -> None:
    parts = path.split(".")
    cur = d
    for p in parts[:-1]:
        cur = cur.setdefault(p, {})
    cur[parts[-1]] = value


class ConfigManager:
    """Manages configuration loading and validation."""

    def __init__(self, config_file: str | Path | None = None):
        """Initialize configuration manager.

        Args:
            config_file: Path to TOML config file. If None, searches for ratiomaster.toml

        """
        self.config_file = self._find_config_file(config_file)
        self.config = self._load_config()

    def _find_config_file(self, config_file: str | Path | None) -> Path | None:
        """Find configuration file in standard locations."""
        if config_file:
            return Path(config_file)

        search_paths = [
            Path.cwd() / CONFIG_FILENAME,
            Path.home() / ".config" / "ratiomaster" / CONFIG_FILENAME,
            Path.home() / f".{CONFIG_FILENAME}",
        ]

        for path in search_paths:
            if path.exists():
                return path

        return None

    def _load_config(self) -> Config:
        """Load configuration from file and environment."""
        config_data: dict[str, Any] = {}

        if self.config_file:
            if not self.config_file.exists():
                msg = f"Config file not found: {self.config_file}"
                raise ConfigurationError(msg)
            try:
                with open(self.config_file, encoding="utf-8") as f:
                    config_data.update(toml.load(f))
            except (OSError, toml.TomlDecodeError) as e:
                msg = f"Failed to load config file {self.config_file}: {e}"
                raise ConfigurationError(msg) from e
            logger.debug("Loaded configuration from %s", self.config_file)

        config_data = self._merge_config(config_data, self._get_env_config())

        try:
            return Config(**config_data)
        except ValueError as e:
            msg = f"Invalid configuration: {e}"
            raise ConfigurationError(msg) from e

    def _get_env_config(self) -> dict[str, Any]:
        """Get configuration from environment variables."""
        env_config: dict[str, Any] = {}
        for env_name, cfg_path in ENV_MAPPINGS.items():
            raw = os.getenv(env_name)
            if raw is None:
                continue
            _set_nested(env_config, cfg_path, _parse_env_value(raw))
        return env_config

    def _merge_config(
        self, base: dict[str, Any], override: dict[str, Any]
    ) -> dict[str, Any]:
        """Merge configuration dictionaries recursively."""
        result = base.copy()

        for key, value in override.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._merge_config(result[key], value)
            else:
                result[key] = value

        return result

    def apply_overrides(self, overrides: dict[str, Any]) -> Config:
        """Apply CLI overrides given as dotted paths and revalidate.

        None values are skipped so unset flags keep lower-precedence values.
        """
        data = self.config.model_dump()
        for path, value in overrides.items():
            if value is not None:
                _set_nested(data, path, value)
        try:
            self.config = Config(**data)
        except ValueError as e:
            msg = f"Invalid configuration: {e}"
            raise ConfigurationError(msg) from e
        return self.config


def get_config() -> Config:
    """Get the global configuration instance."""
    global _config_manager
    if _config_manager is None:
        _config_manager = ConfigManager()
    return _config_manager.config


def init_config(config_file: str | Path | None = None) -> ConfigManager:
    """Initialize the global configuration manager."""
    global _config_manager
    _config_manager = ConfigManager(config_file)
    return _config_manager


def reload_config() -> Config:
    """Reload configuration from file."""
    if _config_manager is None:
        msg = "Configuration not initialized"
        raise ConfigurationError(msg)

    _config_manager.config = _config_manager._load_config()
    return _config_manager.config


def set_config(new_config: Config) -> None:
    """Replace the global configuration at runtime."""
    global _config_manager
    if _config_manager is None:
        _config_manager = ConfigManager(None)
    _config_manager.config = new_config

"""
Configuration loader for the completer.

This module provides functionality for loading and managing
configuration settings.

"""

import copy
import logging
import os
from pathlib import Path
from typing import Any, TypeVar, cast

import yaml
from xdg.BaseDirectory import xdg_config_home

from completer.config import DEFAULT_CONFIG

# Set up logger
logger = logging.getLogger(__name__)

# Type variable for config values with better type safety
T = TypeVar("T")

# Constant for minimum number of parts in environment variable
MIN_ENV_VAR_PARTS = 2

ENV_PREFIX = "COMPLETER_"

# Type for configuration values
ConfigValue = str | int | float | bool | dict[str, Any] | list[Any] | None


class ConfigError(Exception):
	"""Exception raised for configuration errors."""


class ConfigLoader:
	"""
	Loads and manages configuration for the completer.

	This class handles loading configuration from files, environment
	variables, and default values, with proper error handling and path
	resolution.

	"""

	_instance = None  # For singleton pattern

	@classmethod
	def get_instance(cls, config_file: str | None = None, reload: bool = False) -> "ConfigLoader":
		"""
		Get the singleton instance of ConfigLoader.

		Args:
			config_file: Path to configuration file (optional)
			reload: Whether to reload config even if already loaded

		Returns:
			ConfigLoader: Singleton instance

		"""
		if cls._instance is None or reload:
			cls._instance = cls(config_file)
		return cls._instance

	def __init__(self, config_file: str | None = None) -> None:
		"""
		Initialize the configuration loader.

		Args:
			config_file: Path to configuration file (optional)

		"""
		self.config: dict[str, Any] = {}
		self.config_file = self._resolve_config_file(config_file)
		self.load_config()

	def _resolve_config_file(self, config_file: str | None = None) -> Path | None:
		"""
		Resolve the configuration file path.

		If a config file is specified, use that. Otherwise, look in standard locations:
		1. ./.completer.yml in the current directory
		2. $XDG_CONFIG_HOME/completer/config.yml
		3. ~/.completer/config.yml

		Args:
			config_file: Explicitly provided config file path (optional)

		Returns:
			Optional[Path]: Resolved config file path or None if no suitable file found

		"""
		if config_file:
			path = Path(config_file).expanduser().resolve()
			if not path.exists():
				logger.warning("Specified config file not found: %s", path)
			return path  # load_config reports the missing file

		local_config = Path(".completer.yml")
		if local_config.exists():
			return local_config

		xdg_config_file = Path(xdg_config_home) / "completer" / "config.yml"
		if xdg_config_file.exists():
			return xdg_config_file

		legacy_config = Path.home() / ".completer" / "config.yml"
		if legacy_config.exists():
			return legacy_config

		return None

	def load_config(self) -> dict[str, Any]:
		"""
		Load configuration from file and apply environment variable overrides.

		Returns:
			Dict[str, Any]: Loaded configuration

		Raises:
			ConfigError: If configuration file exists but cannot be loaded

		"""
		self.config = copy.deepcopy(DEFAULT_CONFIG)

		if self.config_file:
			try:
				if self.config_file.exists():
					with self.config_file.open(encoding="utf-8") as f:
						file_config = yaml.safe_load(f)
					if file_config:
						if not isinstance(file_config, dict):
							error_msg = f"Configuration in {self.config_file} must be a mapping"
							raise ConfigError(error_msg)
						self._merge_configs(self.config, file_config)
					logger.info("Loaded configuration from %s", self.config_file)
				else:
					logger.warning("Configuration file not found: %s", self.config_file)
			except (OSError, yaml.YAMLError) as e:
				error_msg = f"Error loading configuration from {self.config_file}: {e}"
				logger.exception(error_msg)
				raise ConfigError(error_msg) from e

		self._apply_env_overrides()
		self._resolve_paths()

		return self.config

	def _merge_configs(self, base: dict[str, Any], override: dict[str, Any]) -> None:
		"""
		Recursively merge two configuration dictionaries.

		Args:
			base: Base configuration dictionary to merge into
			override: Override configuration to apply

		"""
		for key, value in override.items():
			if isinstance(value, dict) and key in base and isinstance(base[key], dict):
				self._merge_configs(base[key], value)
			else:
				base[key] = value

	def _apply_env_overrides(self) -> None:
		"""Apply environment variable overrides to configuration."""
		# Look for environment variables in the form COMPLETER_SECTION_KEY
		for env_var, value in os.environ.items():
			if not env_var.startswith(ENV_PREFIX):
				continue

			parts = env_var.lower().split("_")[1:]
			if len(parts) < MIN_ENV_VAR_PARTS:
				continue
			section, key = parts[0], "_".join(parts[1:])

			typed_value = self._coerce(value)

			if not isinstance(self.config.get(section), dict):
				self.config[section] = {}

			self.config[section][key] = typed_value
			logger.debug("Applied environment override %s: %s", env_var, typed_value)

	@staticmethod
	def _coerce(value: str) -> ConfigValue:
		"""Convert an environment string into a bool, int, float or string."""
		if value.lower() in ("true", "yes"):
			return True
		if value.lower() in ("false", "no"):
			return False
		try:
			return int(value)
		except ValueError:
			pass
		try:
			return float(value)
		except ValueError:
			return value

	def _resolve_paths(self) -> None:
		"""Resolve and expand any paths in the configuration."""
		path_keys = [
			("daemon", "binary"),
			("daemon", "support_dir"),
		]

		for section, key in path_keys:
			if section in self.config and key in self.config[section]:
				path_str = self.config[section][key]
				if isinstance(path_str, str) and path_str:
					resolved_path = Path(path_str).expanduser().resolve()
					self.config[section][key] = str(resolved_path)

	def get(self, key: str, default: T = None) -> T:
		"""
		Get a configuration value, optionally with a section.

		Examples:
			# Get a top-level key
			config.get("daemon")

			# Get a nested key with dot notation
			config.get("daemon.port")

		Args:
			key: Configuration key, can include dots for nested access
			default: Default value if key not found

		Returns:
			T: Configuration value or default

		"""
		current: Any = self.config
		for part in key.split("."):
			if isinstance(current, dict) and part in current:
				current = current[part]
			else:
				return default

		return cast("T", current)

	def set(self, key: str, value: ConfigValue) -> None:
		"""
		Set a configuration value.

		Args:
			key: Configuration key, can include dots for nested access
			value: Value to set

		"""
		parts = key.split(".")
		current = self.config

		for part in parts[:-1]:
			if not isinstance(current.get(part), dict):
				current[part] = {}
			current = current[part]

		current[parts[-1]] = value

	# Helper methods for specific configuration sections
	def get_daemon_config(self) -> dict[str, Any]:
		"""
		Get daemon process configuration.

		Returns:
			Dict[str, Any]: Daemon configuration merged over the defaults

		"""
		return {**DEFAULT_CONFIG["daemon"], **(self.get("daemon", {}) or {})}

	def get_client_config(self) -> dict[str, Any]:
		"""
		Get protocol client configuration.

		Returns:
			Dict[str, Any]: Client configuration merged over the defaults

		"""
		return {**DEFAULT_CONFIG["client"], **(self.get("client", {}) or {})}

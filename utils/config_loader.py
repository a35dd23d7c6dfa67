"""Unified configuration loading for crawl runs."""

import json
import logging
import os
import re
from pathlib import Path
from typing import Any, Dict, Optional

from pydantic import ValidationError

from config.settings import CrawlSettings
from utils.error_handling import ConfigurationError


class ConfigLoader:
    """Centralized JSON configuration loader with caching and env substitution."""

    ENV_PATTERN = re.compile(r"\$\{([A-Z0-9_]+)\}")

    def __init__(self):
        self.logger = logging.getLogger(__name__)
        self._config_cache: Dict[str, Dict[str, Any]] = {}
        self._missing_env_vars: set[str] = set()

    def load_config(self, config_path: str) -> Dict[str, Any]:
        """Load and cache JSON configuration with unified error handling.

        Args:
            config_path: Path to configuration file

        Returns:
            Configuration dictionary

        Raises:
            ConfigurationError: If file not found or JSON invalid
        """
        config_path = str(config_path)
        if config_path in self._config_cache:
            return self._config_cache[config_path]

        config_file = Path(config_path)
        if not config_file.exists():
            error_msg = f"Configuration file not found: {config_path}"
            self.logger.error(error_msg)
            raise ConfigurationError(error_msg, {"path": config_path})

        try:
            with open(config_file, "r", encoding="utf-8") as f:
                config = json.load(f)
        except json.JSONDecodeError as e:
            error_msg = f"Invalid JSON in configuration {config_path}: {e}"
            self.logger.error(error_msg)
            raise ConfigurationError(error_msg, {"path": config_path}) from e
        except OSError as e:
            error_msg = f"Error reading configuration {config_path}: {e}"
            self.logger.error(error_msg)
            raise ConfigurationError(error_msg, {"path": config_path}) from e

        if not isinstance(config, dict):
            raise ConfigurationError(
                f"Configuration {config_path} must contain a JSON object",
                {"path": config_path},
            )

        config = self._substitute_env_variables(config)
        self._config_cache[config_path] = config
        self.logger.debug("Configuration loaded successfully: %s", config_path)
        return config

    def get_nested_value(
        self, config: Dict[str, Any], key_path: str, default: Any = None
    ) -> Any:
        """Get nested configuration value using dot notation.

        Example:
            >>> loader.get_nested_value({'sinks': {'csv_path': 'a.csv'}}, 'sinks.csv_path')
            'a.csv'
        """
        value = config
        for key in key_path.split("."):
            if isinstance(value, dict) and key in value:
                value = value[key]
            else:
                return default
        return value

    def clear_cache(self, config_path: Optional[str] = None) -> None:
        if config_path:
            self._config_cache.pop(str(config_path), None)
        else:
            self._config_cache.clear()
            self._missing_env_vars.clear()

    def _substitute_env_variables(self, value: Any) -> Any:
        if isinstance(value, dict):
            return {k: self._substitute_env_variables(v) for k, v in value.items()}
        if isinstance(value, list):
            return [self._substitute_env_variables(item) for item in value]
        if isinstance(value, str):

            def replace(match: re.Match[str]) -> str:
                env_name = match.group(1)
                env_value = os.getenv(env_name)
                if env_value is None:
                    if env_name not in self._missing_env_vars:
                        self.logger.warning(
                            "Environment variable %s is not set; substituting empty string",
                            env_name,
                        )
                        self._missing_env_vars.add(env_name)
                    return ""
                return env_value

            return self.ENV_PATTERN.sub(replace, value)
        return value


def _flatten_sections(config: Dict[str, Any]) -> Dict[str, Any]:
    """Allow grouping keys in sections (``{"sinks": {"csv_path": ...}}``)."""

    flat: Dict[str, Any] = {}
    for key, value in config.items():
        if isinstance(value, dict) and key not in CrawlSettings.model_fields:
            flat.update(_flatten_sections(value))
        else:
            flat[key] = value
    return flat


# Global instance for application-wide use
config_loader = ConfigLoader()


def load_settings(
    config_path: Optional[str] = None, **overrides: Any
) -> CrawlSettings:
    """Build validated settings from env, an optional JSON file and overrides.

    Precedence: explicit overrides > JSON file > environment > defaults.
    ``None`` overrides are ignored so unset CLI flags do not mask the file.
    """

    values: Dict[str, Any] = {}
    if config_path:
        file_values = _flatten_sections(config_loader.load_config(config_path))
        unknown = sorted(set(file_values) - set(CrawlSettings.model_fields))
        if unknown:
            config_loader.logger.warning(
                "Ignoring unknown configuration keys in %s: %s", config_path, unknown
            )
        values.update(
            {k: v for k, v in file_values.items() if k in CrawlSettings.model_fields}
        )

    values.update({k: v for k, v in overrides.items() if v is not None})

    try:
        return CrawlSettings(**values)
    except ValidationError as exc:
        raise ConfigurationError(
            f"Invalid crawler configuration: {exc}", {"path": config_path}
        ) from exc

"""Configuration loading for the track reconciler."""

from __future__ import annotations

import logging
import os
import pathlib
from typing import Any

import yaml
from dotenv import load_dotenv
from pydantic import ValidationError

from core.exceptions import ConfigurationError
from core.models.track_models import AppConfig

ConfigValue = dict[str, Any] | list[Any] | str | int | float | bool | None

# Set up logger early so it's available before the main logging setup
logger = logging.getLogger("config")
if not logger.handlers:
    logger.addHandler(logging.NullHandler())

DEFAULT_CONFIG_FILES: tuple[str, ...] = ("config.yaml", "config.yml")
CONFIG_PATH_ENV = "CONFIG_PATH"
MAX_CONFIG_SIZE = 1024 * 1024  # 1MB


def resolve_env_vars(config: ConfigValue) -> ConfigValue:
    """Recursively resolve environment variables and ``~`` in config values.

    A value that is exactly ``${VAR}`` becomes the variable's value, or an
    empty string when it is unset.
    """
    if isinstance(config, dict):
        return {str(k): resolve_env_vars(v) for k, v in config.items()}
    if isinstance(config, list):
        return [resolve_env_vars(item) for item in config]
    if isinstance(config, str):
        if config.startswith("${") and config.endswith("}"):
            return os.getenv(config[2:-1], "")
        result = config
        if "$" in result:
            result = os.path.expandvars(result)
        if result.startswith("~"):
            result = str(pathlib.Path(result).expanduser())
        return result
    return config


def find_config_path(explicit_path: str | None = None) -> pathlib.Path | None:
    """Pick the config file: explicit argument, then ``CONFIG_PATH``, then ``config.yaml`` in cwd.

    Returns:
        The path to load, or None when no config file exists (defaults apply)

    Raises:
        ConfigurationError: If an explicitly requested file does not exist

    """
    requested = explicit_path or os.getenv(CONFIG_PATH_ENV)
    if requested:
        path = pathlib.Path(requested).expanduser()
        if not path.is_file():
            msg = f"Config file not found at the specified path: {requested}"
            raise ConfigurationError(msg, requested)
        return path

    for name in DEFAULT_CONFIG_FILES:
        candidate = pathlib.Path.cwd() / name
        if candidate.is_file():
            return candidate
    return None


def _read_and_parse_config(path: pathlib.Path) -> ConfigValue:
    """Read and parse the YAML config file, enforcing a size cap and extension."""
    if path.suffix.lower() not in (".yaml", ".yml"):
        msg = "Configuration file must have a .yaml or .yml extension"
        raise ConfigurationError(msg, str(path))
    try:
        if path.stat().st_size > MAX_CONFIG_SIZE:
            msg = f"Config file {path} is too large (max {MAX_CONFIG_SIZE} bytes)"
            raise ConfigurationError(msg, str(path))
        logger.info("Loading config from: %s", path)
        parsed: ConfigValue = yaml.safe_load(path.read_text(encoding="utf-8"))
    except OSError as e:
        msg = f"Cannot read config file {path}: {e}"
        raise ConfigurationError(msg, str(path)) from e
    except yaml.YAMLError as e:
        msg = f"Invalid YAML in {path}: {e}"
        raise ConfigurationError(msg, str(path)) from e
    return parsed


def format_pydantic_errors(error: ValidationError) -> str:
    """Format Pydantic validation errors into one line per field."""
    error_messages: list[str] = []
    for err in error.errors():
        loc_path = ".".join(str(loc) for loc in err["loc"]) or "<root>"
        if err["type"] == "missing":
            error_messages.append(f"{loc_path}: Missing required field")
        elif err["type"] in ("value_error", "assertion_error"):
            error_messages.append(f"{loc_path}: {err['msg']}")
        else:
            error_messages.append(f"{loc_path}: {err['msg']} (type: {err['type']})")
    return "\n".join(error_messages)


def build_config(data: ConfigValue, config_path: str | None = None) -> AppConfig:
    """Validate already-parsed config data into an AppConfig.

    Raises:
        ConfigurationError: If the data is not a mapping or fails validation

    """
    if data is None:
        data = {}
    if not isinstance(data, dict):
        msg = "Configuration data is not a mapping after parsing."
        raise ConfigurationError(msg, config_path)
    resolved = resolve_env_vars(data)
    try:
        return AppConfig.model_validate(resolved)
    except ValidationError as e:
        msg = f"Configuration validation failed:\n{format_pydantic_errors(e)}"
        raise ConfigurationError(msg, config_path) from e


def load_config(config_path: str | None = None) -> AppConfig:
    """Load, resolve and validate the configuration.

    Without any config file, the built-in defaults are used.

    Args:
        config_path: Explicit path to a YAML file (e.g. from ``--config``)

    Raises:
        ConfigurationError: On a missing, unreadable or invalid config file

    """
    env_loaded = load_dotenv()
    logger.debug(".env file %s", "found and loaded" if env_loaded else "not found, using system environment variables")

    path = find_config_path(config_path)
    if path is None:
        logger.info("No config file found, using defaults")
        return AppConfig()

    config_data = _read_and_parse_config(path)
    logger.debug("[CONFIG] Raw config:\n%s", yaml.dump(config_data))
    config = build_config(config_data, str(path))
    logger.info("Configuration successfully loaded and validated.")
    return config

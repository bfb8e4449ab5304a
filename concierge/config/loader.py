"""TOML configuration loader.

``config/default.toml`` holds the engine settings; ``config/{env}.toml``
is deep-merged over it. Settings ignore keys they do not know, so a
misspelled section such as ``[routing.defualts]`` would silently leave
the engine on its built-in thresholds. Every file is therefore checked
against the settings model before it is merged.
"""

import os
import tomllib
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from pydantic import BaseModel

from concierge.config.settings import Settings
from concierge.errors import ConfigurationError

CONFIG_DIR_ENV = "CONCIERGE_CONFIG_DIR"
ENVIRONMENT_ENV = "CONCIERGE_ENV"


def get_config_dir() -> Path:
    """Directory holding default.toml.

    ``CONCIERGE_CONFIG_DIR`` wins; otherwise the nearest ``config/`` with a
    default.toml, looking up to five levels above the working directory.
    """
    config_dir_env = os.environ.get(CONFIG_DIR_ENV)
    if config_dir_env:
        path = Path(config_dir_env)
        if not path.exists():
            raise FileNotFoundError(f"Config directory not found: {config_dir_env}")
        return path

    current = Path.cwd()
    for _ in range(5):
        config_path = current / "config"
        if (config_path / "default.toml").exists():
            return config_path
        current = current.parent

    return Path("config")


def get_environment() -> str:
    """Current environment from ``CONCIERGE_ENV``, 'development' if unset."""
    return os.environ.get(ENVIRONMENT_ENV, "development")


def load_toml(file_path: Path) -> dict[str, Any]:
    """Load a TOML file.

    Raises:
        FileNotFoundError: If the file doesn't exist
        tomllib.TOMLDecodeError: If the TOML syntax is invalid
    """
    if not file_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {file_path}")

    with file_path.open("rb") as f:
        return tomllib.load(f)


def deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Merge ``override`` into a copy of ``base``; nested tables merge key by key."""
    result = base.copy()

    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = deep_merge(result[key], value)
        else:
            result[key] = value

    return result


def unknown_settings(
    data: Mapping[str, Any],
    model: type[BaseModel] = Settings,
    prefix: str = "",
) -> list[str]:
    """Dotted paths in ``data`` that ``model`` has no field for.

    Tables are followed into nested models. Free-form tables such as the
    per-model pricing map are not walked.
    """
    unknown: list[str] = []
    for key, value in data.items():
        path = f"{prefix}{key}"
        field = model.model_fields.get(key)
        if field is None:
            unknown.append(path)
        elif isinstance(value, dict) and _is_model(field.annotation):
            unknown.extend(unknown_settings(value, field.annotation, f"{path}."))
    return unknown


def _is_model(annotation: Any) -> bool:
    return isinstance(annotation, type) and issubclass(annotation, BaseModel)


def _load_checked(file_path: Path) -> dict[str, Any]:
    data = load_toml(file_path)
    unknown = unknown_settings(data)
    if unknown:
        raise ConfigurationError(
            f"Unknown settings in {file_path.name}: {', '.join(sorted(unknown))}"
        )
    return data


def load_config(environment: str | None = None) -> dict[str, Any]:
    """Load and merge the configuration files.

    Loading order:
    1. config/default.toml (required)
    2. config/{environment}.toml (optional, defaults to CONCIERGE_ENV)

    Raises:
        FileNotFoundError: If default.toml is missing
        ConfigurationError: If a file names a setting the engine does not have
    """
    config_dir = get_config_dir()
    env = environment or get_environment()

    default_path = config_dir / "default.toml"
    if not default_path.exists():
        raise FileNotFoundError(
            f"Default configuration file not found: {default_path}. "
            f"Create config/default.toml or set {CONFIG_DIR_ENV}."
        )

    config = _load_checked(default_path)

    env_path = config_dir / f"{env}.toml"
    if env_path.exists():
        config = deep_merge(config, _load_checked(env_path))

    return config

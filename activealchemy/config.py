"""
Configuration for activealchemy.

Settings come from three layers, later layers overriding earlier ones:
dataclass defaults, an optional YAML file, and ``ACTIVEALCHEMY_*``
environment variables.

Usage:
    from activealchemy.config import configure, get_settings

    configure(raise_on_save_failure=False)
    settings = get_settings()
"""

import logging
import os
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any

import yaml

from activealchemy.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

ENV_PREFIX = "ACTIVEALCHEMY_"
DEFAULT_LOCALE_DIR = Path(__file__).parent / "locale"

_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


@dataclass
class Settings:
    """
    Process-wide settings.

    Attributes:
        i18n_scope: Namespace for model and error message lookups
        locale: Active locale for translations
        locale_paths: YAML locale files loaded into the translation store
        raise_on_save_failure: Whether save/destroy raise instead of returning None
        log_level: Level applied by ``setup_logging``
        log_format: ``human`` or ``json``
    """
    i18n_scope: str = "activealchemy"
    locale: str = "en"
    locale_paths: list[str] = field(
        default_factory=lambda: [str(DEFAULT_LOCALE_DIR / "en.yml")]
    )
    raise_on_save_failure: bool = True
    log_level: str = "INFO"
    log_format: str = "human"


def _coerce(name: str, raw: str, current: Any) -> Any:
    if isinstance(current, bool):
        lowered = raw.strip().lower()
        if lowered in _TRUE_VALUES:
            return True
        if lowered in _FALSE_VALUES:
            return False
        raise ConfigurationError(f"Invalid boolean for {name}: {raw!r}", option=name)
    if isinstance(current, list):
        return [part for part in raw.split(os.pathsep) if part]
    return raw


def _from_env(settings: Settings) -> dict[str, Any]:
    overrides: dict[str, Any] = {}
    for f in fields(settings):
        raw = os.environ.get(ENV_PREFIX + f.name.upper())
        if raw is not None:
            overrides[f.name] = _coerce(f.name, raw, getattr(settings, f.name))
    return overrides


def _from_yaml(path: str | Path) -> dict[str, Any]:
    with open(path, encoding="utf-8") as fh:
        data = yaml.safe_load(fh) or {}

    section = data.get("activealchemy", data)
    if not isinstance(section, dict):
        raise ConfigurationError(f"Invalid configuration file: {path}")

    known = {f.name for f in fields(Settings)}
    unknown = set(section) - known
    if unknown:
        raise ConfigurationError(
            f"Unknown settings in {path}: {', '.join(sorted(unknown))}"
        )
    return section


def load_settings(path: str | Path | None = None) -> Settings:
    """Build settings from defaults, an optional YAML file and the environment."""
    settings = Settings()
    if path is not None:
        settings = replace(settings, **_from_yaml(path))
        logger.debug(f"Loaded settings from {path}")
    return replace(settings, **_from_env(settings))


_settings: Settings | None = None


def get_settings() -> Settings:
    """Get the process-wide settings, loading them on first use."""
    global _settings
    if _settings is None:
        _settings = load_settings(os.environ.get(ENV_PREFIX + "CONFIG"))
    return _settings


def configure(**overrides: Any) -> Settings:
    """Replace selected process-wide settings."""
    global _settings
    known = {f.name for f in fields(Settings)}
    unknown = set(overrides) - known
    if unknown:
        raise ConfigurationError(f"Unknown settings: {', '.join(sorted(unknown))}")
    _settings = replace(get_settings(), **overrides)
    return _settings


def reset_settings() -> None:
    """Drop the cached settings so the next access reloads them."""
    global _settings
    _settings = None

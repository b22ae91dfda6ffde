"""
Process-wide translation store.

Translations are nested dictionaries loaded from YAML locale files whose
top-level keys are locales.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Iterable

import yaml

from activealchemy.config import get_settings
from activealchemy.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

_MISSING = object()


class _SafeFormat(dict):
    """Leaves unknown ``{placeholders}`` untouched."""

    def __missing__(self, key: str) -> str:
        return "{" + key + "}"


def interpolate(text: str, **values: Any) -> str:
    """Fill ``{name}`` placeholders, leaving unknown ones as they are."""
    return text.format_map(_SafeFormat(values))


def _deep_merge(base: dict[str, Any], extra: dict[str, Any]) -> dict[str, Any]:
    for key, value in extra.items():
        if isinstance(value, dict) and isinstance(base.get(key), dict):
            _deep_merge(base[key], value)
        else:
            base[key] = value
    return base


class I18n:
    """
    Nested-dictionary translation store.

    Keys are dotted paths (``errors.messages.blank``). A lookup walks the
    primary key and then each fallback key in order; the first hit wins.
    Entries may be pluralized with ``one``/``other`` sub-keys, selected by
    the ``count`` interpolation.
    """

    def __init__(self, locale: str = "en") -> None:
        self.locale = locale
        self._translations: dict[str, dict[str, Any]] = {}

    def load_path(self, *paths: str | Path) -> None:
        """Load YAML locale files; the top-level keys are locales."""
        for path in paths:
            with open(path, encoding="utf-8") as fh:
                data = yaml.safe_load(fh) or {}
            if not isinstance(data, dict):
                raise ConfigurationError(f"Invalid locale file: {path}")
            for locale, tree in data.items():
                self.store_translations(locale, tree)
            logger.debug(f"Loaded translations from {path}")

    def store_translations(self, locale: str, data: dict[str, Any]) -> None:
        _deep_merge(self._translations.setdefault(str(locale), {}), data)

    def lookup(self, key: str, locale: str | None = None) -> Any:
        node: Any = self._translations.get(locale or self.locale, {})
        for part in key.split("."):
            if not isinstance(node, dict) or part not in node:
                return _MISSING
            node = node[part]
        return node

    def exists(self, key: str, locale: str | None = None) -> bool:
        return self.lookup(key, locale) is not _MISSING

    def translate(
        self,
        key: str,
        *,
        defaults: Iterable[str] = (),
        default: str | None = None,
        locale: str | None = None,
        **interpolations: Any,
    ) -> str:
        """
        Translate ``key``, falling back through ``defaults`` and then the
        literal ``default``.

        Args:
            key: Primary dotted key
            defaults: Fallback keys, tried in order
            default: Literal text used when no key resolves
            locale: Locale override
            **interpolations: Values for ``{name}`` placeholders

        Returns:
            The translated, interpolated text
        """
        locale = locale or self.locale
        value = _MISSING
        for candidate in (key, *defaults):
            value = self.lookup(candidate, locale)
            if value is not _MISSING:
                break

        if value is _MISSING:
            if default is None:
                logger.debug(f"Translation missing: {locale}.{key}")
                return f"translation missing: {locale}.{key}"
            value = default

        count = interpolations.get("count")
        if isinstance(value, dict):
            value = value.get("one") if count == 1 and "one" in value else value.get("other", "")

        if isinstance(value, str) and interpolations:
            return interpolate(value, **interpolations)
        return str(value)

    t = translate


_i18n: I18n | None = None


def get_i18n() -> I18n:
    """Get the process-wide translation store, loading locale files on first use."""
    global _i18n
    if _i18n is None:
        settings = get_settings()
        _i18n = I18n(locale=settings.locale)
        _i18n.load_path(*settings.locale_paths)
    return _i18n


def reset_i18n() -> None:
    global _i18n
    _i18n = None

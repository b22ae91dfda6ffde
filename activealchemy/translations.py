"""
Translation adapter.

Gives models the naming/i18n lookup contract: a fixed i18n scope for
message lookup and an ancestor chain used to build fallback translation
keys.
"""

from __future__ import annotations

from typing import Any

from sqlalchemy import inspect as sa_inspect

from activealchemy.config import get_settings
from activealchemy.i18n import get_i18n
from activealchemy.model import ActiveModelMixin
from activealchemy.naming import humanize


def _exposes_model_name(klass: type) -> bool:
    if not hasattr(klass, "model_name"):
        return False
    return sa_inspect(klass, raiseerr=False) is not None


class TranslationsMixin(ActiveModelMixin):
    """Model naming and i18n lookups for SQLAlchemy models."""

    # Subclasses may pin their own scope; None follows Settings.i18n_scope.
    __i18n_scope__ = None

    @classmethod
    def i18n_scope(cls) -> str:
        return cls.__i18n_scope__ or get_settings().i18n_scope

    @classmethod
    def lookup_ancestors(cls) -> list[type]:
        """Mapped classes in the MRO exposing ``model_name``, most specific first."""
        return [klass for klass in cls.__mro__ if _exposes_model_name(klass)]

    @classmethod
    def human_attribute_name(
        cls,
        attribute: str,
        default: str | None = None,
        **options: Any,
    ) -> str:
        """
        Localized attribute name.

        Tries ``<scope>.attributes.<model>.<attribute>`` for each ancestor,
        then ``attributes.<attribute>``, then the humanized attribute.
        """
        scope = cls.i18n_scope()
        keys = [
            f"{scope}.attributes.{klass.model_name().i18n_key}.{attribute}"
            for klass in cls.lookup_ancestors()
        ]
        keys.append(f"attributes.{attribute}")
        return get_i18n().translate(
            keys[0],
            defaults=keys[1:],
            default=default if default is not None else humanize(attribute),
            **options,
        )

    @classmethod
    def human_name(cls, **options: Any) -> str:
        """Localized model name, falling back to ``model_name().human``."""
        scope = cls.i18n_scope()
        keys = [
            f"{scope}.models.{klass.model_name().i18n_key}"
            for klass in cls.lookup_ancestors()
        ]
        return get_i18n().translate(
            keys[0] if keys else f"{scope}.models.{cls.model_name().i18n_key}",
            defaults=keys[1:],
            default=cls.model_name().human,
            **options,
        )

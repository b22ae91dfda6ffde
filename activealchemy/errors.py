"""
Per-record error collection.

Errors are ordered lists of ``ErrorDetail`` keyed by attribute name.
``"base"`` holds whole-record errors. Messages are generated through the
translation store using the record's i18n scope and model ancestors.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Iterator

from activealchemy.i18n import get_i18n, interpolate
from activealchemy.naming import humanize

BASE = "base"

CALLBACK_OPTIONS = frozenset({"if", "if_", "unless", "on", "allow_nil", "allow_blank", "strict"})
MESSAGE_OPTIONS = frozenset({"message"})


@dataclass
class ErrorDetail:
    """A single validation failure."""

    attribute: str
    type: str
    message: str
    options: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {"error": self.type, **self.options}


class Errors:
    """
    Validation errors of one record.

    Example:
        record.errors.add("name", "blank")
        record.errors["name"]          # ["can't be blank"]
        record.errors.full_messages()  # ["Name can't be blank"]
    """

    def __init__(self, base: Any) -> None:
        self._base = base
        self._errors: dict[str, list[ErrorDetail]] = {}

    def add(
        self,
        attribute: str,
        kind: str = "invalid",
        /,
        *,
        message: str | Callable[..., str] | None = None,
        **options: Any,
    ) -> ErrorDetail:
        """
        Record an error on ``attribute``.

        Args:
            attribute: Attribute name, or ``"base"`` for the whole record
            kind: Error kind used for message lookup (``blank``, ``taken``...)
            message: Literal message, or a callable ``(record, options)``
            **options: Interpolation data such as ``value`` or ``count``

        Returns:
            The stored error detail
        """
        attribute = str(attribute)
        details = {
            k: v for k, v in options.items()
            if k not in CALLBACK_OPTIONS and k not in MESSAGE_OPTIONS
        }

        if callable(message):
            text = message(self._base, details)
        elif message is not None:
            text = interpolate(message, **self._interpolations(attribute, details))
        else:
            text = self.generate_message(attribute, kind, **details)

        detail = ErrorDetail(attribute=attribute, type=kind, message=text, options=details)
        self._errors.setdefault(attribute, []).append(detail)
        return detail

    def _interpolations(self, attribute: str, options: dict[str, Any]) -> dict[str, Any]:
        return {
            "model": self._human_model_name(),
            "attribute": self._human_attribute_name(attribute),
            **options,
        }

    def _human_model_name(self) -> str:
        klass = type(self._base)
        if hasattr(klass, "human_name"):
            return klass.human_name()
        return humanize(klass.__name__)

    def _human_attribute_name(self, attribute: str) -> str:
        klass = type(self._base)
        if hasattr(klass, "human_attribute_name"):
            return klass.human_attribute_name(attribute)
        return humanize(attribute)

    def generate_message(self, attribute: str, kind: str = "invalid", /, **options: Any) -> str:
        """
        Translate an error kind, most specific key first:

        1. ``<scope>.errors.models.<model>.attributes.<attribute>.<kind>``
        2. ``<scope>.errors.models.<model>.<kind>`` (for each model ancestor)
        3. ``<scope>.errors.messages.<kind>``
        4. ``errors.attributes.<attribute>.<kind>``
        5. ``errors.messages.<kind>``
        """
        klass = type(self._base)
        keys: list[str] = []

        if hasattr(klass, "i18n_scope"):
            scope = klass.i18n_scope()
            for ancestor in klass.lookup_ancestors():
                i18n_key = ancestor.model_name().i18n_key
                keys.append(f"{scope}.errors.models.{i18n_key}.attributes.{attribute}.{kind}")
                keys.append(f"{scope}.errors.models.{i18n_key}.{kind}")
            keys.append(f"{scope}.errors.messages.{kind}")

        keys.append(f"errors.attributes.{attribute}.{kind}")
        keys.append(f"errors.messages.{kind}")

        return get_i18n().translate(
            keys[0],
            defaults=keys[1:],
            default=humanize(kind).lower(),
            **self._interpolations(attribute, options),
        )

    def full_message(self, attribute: str, message: str) -> str:
        if attribute == BASE:
            return message
        return get_i18n().translate(
            "errors.format",
            default="{attribute} {message}",
            attribute=self._human_attribute_name(attribute),
            message=message,
        )

    def full_messages(self) -> list[str]:
        return [self.full_message(d.attribute, d.message) for d in self]

    def full_messages_for(self, attribute: str) -> list[str]:
        return [self.full_message(d.attribute, d.message) for d in self._errors.get(attribute, [])]

    @property
    def messages(self) -> dict[str, list[str]]:
        return {attr: [d.message for d in items] for attr, items in self._errors.items() if items}

    @property
    def details(self) -> dict[str, list[dict[str, Any]]]:
        return {attr: [d.to_dict() for d in items] for attr, items in self._errors.items() if items}

    @property
    def attribute_names(self) -> list[str]:
        return [attr for attr, items in self._errors.items() if items]

    def added(self, attribute: str, kind: str = "invalid") -> bool:
        return any(d.type == kind for d in self._errors.get(attribute, []))

    def where(self, attribute: str, kind: str | None = None) -> list[ErrorDetail]:
        return [d for d in self._errors.get(attribute, []) if kind is None or d.type == kind]

    def delete(self, attribute: str) -> list[ErrorDetail]:
        return self._errors.pop(attribute, [])

    def clear(self) -> None:
        self._errors.clear()

    def to_dict(self, full_messages: bool = False) -> dict[str, list[str]]:
        if full_messages:
            return {attr: self.full_messages_for(attr) for attr in self.attribute_names}
        return self.messages

    def __getitem__(self, attribute: str) -> list[str]:
        return [d.message for d in self._errors.get(attribute, [])]

    def __contains__(self, attribute: object) -> bool:
        return bool(self._errors.get(str(attribute)))

    def __iter__(self) -> Iterator[ErrorDetail]:
        for items in self._errors.values():
            yield from items

    def __len__(self) -> int:
        return sum(len(items) for items in self._errors.values())

    def __bool__(self) -> bool:
        return len(self) > 0

    def __repr__(self) -> str:
        return f"<Errors {self.messages!r}>"

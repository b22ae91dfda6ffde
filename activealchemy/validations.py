"""
Validation adapter.

``ValidationsMixin`` adds a ``validate`` callback chain, a per-attribute
validator registry and the declarative ``validates`` entry point to a
SQLAlchemy model. Mixing it in also mixes in the callback and translation
adapters.

Example:
    class Person(ValidationsMixin, Base):
        __tablename__ = "people"
        id: Mapped[int] = mapped_column(primary_key=True)
        name: Mapped[str | None]
        email: Mapped[str | None]

    Person.validates("name", presence=True, length={"maximum": 100})
    Person.validates("email", uniqueness={"case_sensitive": False}, format=r"@")
    Person.validates_with(AccountLimitValidator, on="create")

    @Person.validate
    def must_have_contact(person):
        if not person.email:
            person.errors.add("base", message="needs a contact")
"""

from __future__ import annotations

import importlib
import logging
from collections.abc import Mapping
from typing import Any, Callable

from pydantic import BaseModel

from activealchemy.callbacks import (
    CallbacksMixin,
    _as_list,
    context_guard,
    define_callbacks,
    run_callbacks,
    set_callback,
)
from activealchemy.exceptions import ConfigurationError
from activealchemy.model import dualmethod
from activealchemy.naming import camelize
from activealchemy.translations import TranslationsMixin
from activealchemy.validators import (
    BlockValidator,
    Validator,
    get_validator,
    normalize_options,
)

logger = logging.getLogger(__name__)

VALIDATE_CHAIN = "validate"
DEFAULT_KEYS = ("if", "unless", "on", "allow_blank", "allow_nil")
CALLBACK_KEYS = ("if", "unless", "on", "prepend")
BUILTIN_KINDS = (
    "presence",
    "absence",
    "length",
    "format",
    "inclusion",
    "exclusion",
    "numericality",
    "acceptance",
    "confirmation",
    "uniqueness",
)


def parse_validates_options(value: Any) -> dict[str, Any]:
    """
    Expand the shorthand value of one ``validates`` rule.

    - ``True`` -> ``{}``
    - a mapping or options model -> used as-is
    - a range or a sequence -> ``{"in": value}``
    - anything else (pattern, scalar) -> ``{"with": value}``
    """
    if value is True:
        return {}
    if isinstance(value, (Mapping, BaseModel)):
        return normalize_options(value)
    if isinstance(value, (range, list, tuple, set, frozenset)):
        return {"in": value}
    return {"with": value}


def _helper(kind: str) -> classmethod:
    class_name = f"{camelize(kind)}Validator"

    def helper(cls: type, *attributes: str, **options: Any) -> None:
        validator = get_validator(class_name)
        if validator is None:
            raise ConfigurationError(f"Unknown validator: '{class_name}'")
        cls.validates_with(validator, **{**normalize_options(options), "attributes": list(attributes)})

    helper.__name__ = f"validates_{kind}_of"
    helper.__doc__ = f"Shortcut for ``validates(*attributes, {kind}=options)``."
    return classmethod(helper)


class ValidationsMixin(CallbacksMixin, TranslationsMixin):
    """Declarative validations for SQLAlchemy models."""

    __validation_reflections__ = {}

    def __init_subclass__(cls, **kwargs: Any) -> None:
        define_callbacks(cls, VALIDATE_CHAIN, scope=("name",))
        inherited = getattr(cls, "__validation_reflections__", {})
        cls.__validation_reflections__ = {
            attribute: [validator.dup() for validator in validators]
            for attribute, validators in inherited.items()
        }
        super().__init_subclass__(**kwargs)

    # -- registration ---------------------------------------------------

    @dualmethod
    def validate(self) -> None:
        """Run base validation, then every step of the ``validate`` chain."""
        super().validate()
        run_callbacks(self, VALIDATE_CHAIN)

    @validate.classmethod
    def validate(cls, *targets: Any, **options: Any) -> Any:
        """
        Register whole-record validation steps.

        Args:
            *targets: Method names, callables ``(record)`` or validator objects
            **options: ``on`` (context or contexts), ``if``/``if_``,
                ``unless``, ``prepend``

        Returns:
            The first target, or a decorator when no target is given
        """
        options = normalize_options(options)
        unknown = set(options) - set(CALLBACK_KEYS)
        if unknown:
            raise ConfigurationError(
                f"Unknown validate options: {', '.join(sorted(unknown))}"
            )

        guards = _as_list(options.get("if"))
        if options.get("on") is not None:
            guards.insert(0, context_guard(options["on"]))

        def register(*items: Any) -> None:
            set_callback(
                cls,
                VALIDATE_CHAIN,
                "before",
                *items,
                if_=guards,
                unless=options.get("unless"),
                prepend=bool(options.get("prepend", False)),
            )

        if not targets:
            def decorator(fn: Callable[..., Any]) -> Callable[..., Any]:
                register(fn)
                return fn
            return decorator

        register(*targets)
        return targets[0]

    @classmethod
    def validates_with(
        cls,
        *validator_classes: type[Validator],
        block: Callable[..., Any] | None = None,
        **options: Any,
    ) -> list[Validator]:
        """
        Instantiate each validator class with ``options`` and register it.

        The instance is recorded under each of its attributes (or ``None``
        when it has none) and added to the ``validate`` chain.
        """
        options = normalize_options(options)
        callback_options = {k: options[k] for k in CALLBACK_KEYS if k in options}
        created = []

        for klass in validator_classes:
            validator_options = {k: v for k, v in options.items() if k != "prepend"}
            validator_options["class"] = cls
            if block is not None:
                validator = klass(validator_options, block=block)
            else:
                validator = klass(validator_options)

            setup = getattr(validator, "setup", None)
            if callable(setup):
                setup(cls)

            attributes = getattr(validator, "attributes", None) or [None]
            for attribute in attributes:
                cls.__validation_reflections__.setdefault(attribute, []).append(validator)

            cls.validate(validator, **callback_options)
            created.append(validator)
            logger.debug(f"{cls.__name__} validates {attributes} with {klass.__name__}")

        return created

    @classmethod
    def validates(cls, *attributes: str, **rules: Any) -> None:
        """
        Declare validations for ``attributes``.

        Each keyword names a rule kind (``presence``, ``uniqueness``...)
        and gives its options, possibly in shorthand form (see
        ``parse_validates_options``). ``if``/``if_``, ``unless``, ``on``,
        ``allow_blank`` and ``allow_nil`` apply to every rule unless a rule
        sets them itself.

        Raises:
            ConfigurationError: No attribute, no rule, or an unknown rule kind
        """
        rules = normalize_options(rules)
        defaults = {key: rules.pop(key) for key in cls._validates_default_keys() if key in rules}

        if not attributes:
            raise ConfigurationError("You need to supply at least one attribute")
        if not rules:
            raise ConfigurationError("You need to supply at least one validation")

        defaults["attributes"] = list(attributes)

        for kind, value in rules.items():
            validator = cls._resolve_validator(kind)
            cls.validates_with(validator, **{**defaults, **parse_validates_options(value)})

    @classmethod
    def validates_each(cls, *attributes: str, **options: Any) -> Callable[..., Any]:
        """Decorator registering ``fn(record, attribute, value)`` for each attribute."""
        def decorator(fn: Callable[..., Any]) -> Callable[..., Any]:
            cls.validates_with(BlockValidator, block=fn, attributes=list(attributes), **options)
            return fn

        return decorator

    validates_presence_of = _helper("presence")
    validates_absence_of = _helper("absence")
    validates_length_of = _helper("length")
    validates_format_of = _helper("format")
    validates_inclusion_of = _helper("inclusion")
    validates_exclusion_of = _helper("exclusion")
    validates_numericality_of = _helper("numericality")
    validates_acceptance_of = _helper("acceptance")
    validates_confirmation_of = _helper("confirmation")
    validates_uniqueness_of = _helper("uniqueness")

    @classmethod
    def _validates_default_keys(cls) -> tuple[str, ...]:
        """Keys of ``validates`` applied to every rule; override to add more."""
        return DEFAULT_KEYS

    @classmethod
    def _resolve_validator(cls, kind: str) -> type[Validator]:
        key = f"{camelize(kind)}Validator"

        if "." in key:
            module_name, _, class_name = key.rpartition(".")
            try:
                validator = getattr(importlib.import_module(module_name), class_name)
            except (ImportError, AttributeError):
                raise ConfigurationError(f"Unknown validator: '{key}'") from None
        else:
            local = getattr(cls, key, None)
            validator = local if isinstance(local, type) else get_validator(key)

        if not (isinstance(validator, type) and issubclass(validator, Validator)):
            raise ConfigurationError(f"Unknown validator: '{key}'")
        return validator

    # -- reflection -----------------------------------------------------

    @classmethod
    def validation_reflections(cls) -> dict[str | None, list[Validator]]:
        return cls.__validation_reflections__

    @classmethod
    def validators(cls) -> list[Validator]:
        seen: list[Validator] = []
        for validators in cls.__validation_reflections__.values():
            for validator in validators:
                if not any(validator is s for s in seen):
                    seen.append(validator)
        return seen

    @classmethod
    def validators_on(cls, *attributes: str) -> list[Validator]:
        return [
            validator
            for attribute in attributes
            for validator in cls.__validation_reflections__.get(attribute, [])
        ]

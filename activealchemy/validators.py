"""
Validator rules.

A validator is a configurable unit of validation logic bound to one or more
attributes. Options are parsed into pydantic models; Python keywords used as
option names (``if``, ``in``, ``is``, ``with``, ``class``) are accepted with
or without a trailing underscore.

Rule kinds are resolved by name: ``"uniqueness"`` -> ``UniquenessValidator``.
Classes become resolvable through ``register_validator``:

    @register_validator
    class EmailValidator(EachValidator):
        def validate_each(self, record, attribute, value):
            if value and "@" not in value:
                record.errors.add(attribute, "invalid", message=self.options.message)

    Person.validates("email", email=True)
"""

from __future__ import annotations

import copy
import logging
import re
from collections.abc import Mapping
from decimal import Decimal, InvalidOperation
from typing import Any, Callable, ClassVar

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from sqlalchemy import func

from activealchemy.exceptions import ConfigurationError
from activealchemy.naming import underscore

logger = logging.getLogger(__name__)

RESERVED_OPTION_NAMES = frozenset({"if", "in", "is", "with", "class"})


def canonical_option_key(key: str) -> str:
    """``"if_"`` -> ``"if"``; other keys are returned unchanged."""
    stripped = key.rstrip("_")
    return stripped if stripped in RESERVED_OPTION_NAMES else key


def normalize_options(options: Mapping[str, Any] | BaseModel | None) -> dict[str, Any]:
    if options is None:
        return {}
    if isinstance(options, BaseModel):
        options = options.model_dump(by_alias=True, exclude_unset=True)
    return {canonical_option_key(str(k)): v for k, v in options.items()}


def is_blank(value: Any) -> bool:
    if value is None or value is False:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, tuple, set, frozenset, dict)):
        return len(value) == 0
    return False


def _as_list(value: Any) -> list[Any]:
    if value is None:
        return []
    if isinstance(value, (list, tuple, set, frozenset)):
        return list(value)
    return [value]


class ValidatorOptions(BaseModel):
    """Options shared by every validator."""

    model_config = ConfigDict(
        extra="allow",
        populate_by_name=True,
        arbitrary_types_allowed=True,
    )

    attributes: list[str] = Field(default_factory=list, description="Validated attributes")
    message: Any = Field(default=None, description="Custom message or (record, options) callable")
    allow_nil: bool = Field(default=False, description="Skip when the value is None")
    allow_blank: bool = Field(default=False, description="Skip when the value is blank")
    if_: Any = Field(default=None, alias="if", description="Guard(s) that must pass")
    unless: Any = Field(default=None, description="Guard(s) that must fail")
    on: Any = Field(default=None, description="Validation context(s)")
    class_: Any = Field(default=None, alias="class", description="Model declaring the validator")

    @field_validator("attributes", mode="before")
    @classmethod
    def _attributes_as_list(cls, v: Any) -> list[str]:
        return [str(a) for a in _as_list(v)]

    @property
    def extras(self) -> dict[str, Any]:
        return dict(self.model_extra or {})


class Validator:
    """
    Base validator.

    Subclasses implement ``validate(record)`` and may declare an ``Options``
    model and a ``setup(model)`` hook.
    """

    Options: ClassVar[type[ValidatorOptions]] = ValidatorOptions

    def __init__(self, options: Mapping[str, Any] | BaseModel | None = None, **kwargs: Any) -> None:
        data = {**normalize_options(options), **normalize_options(kwargs)}
        try:
            self.options = self.Options.model_validate(data)
        except ValidationError as e:
            raise ConfigurationError(
                f"Invalid options for {type(self).__name__}: {e}",
                details={"errors": e.errors(include_url=False)},
            ) from e

    @classmethod
    def kind(cls) -> str:
        name = cls.__name__
        if name.endswith("Validator"):
            name = name[: -len("Validator")]
        return underscore(name)

    @property
    def attributes(self) -> list[str]:
        return self.options.attributes

    def validate(self, record: Any) -> None:
        raise NotImplementedError(f"{type(self).__name__} must implement validate()")

    def error_options(self, value: Any = None, **extra: Any) -> dict[str, Any]:
        return {**self.options.extras, "message": self.options.message, "value": value, **extra}

    def __copy__(self) -> "Validator":
        clone = type(self).__new__(type(self))
        clone.__dict__.update(self.__dict__)
        clone.options = self.options.model_copy()
        return clone

    def dup(self) -> "Validator":
        return copy.copy(self)

    def __repr__(self) -> str:
        return f"<{type(self).__name__} attributes={self.attributes!r}>"


class EachValidator(Validator):
    """Validator applied to each of its attributes in turn."""

    def __init__(self, options: Mapping[str, Any] | BaseModel | None = None, **kwargs: Any) -> None:
        super().__init__(options, **kwargs)
        if not self.attributes:
            raise ConfigurationError(
                f"{type(self).__name__}: attributes cannot be empty", option="attributes"
            )
        self.check_validity()

    def check_validity(self) -> None:
        """Hook for validating option combinations."""

    def validate(self, record: Any) -> None:
        for attribute in self.attributes:
            value = record.read_attribute_for_validation(attribute)
            if value is None and self.options.allow_nil:
                continue
            if self.options.allow_blank and is_blank(value):
                continue
            self.validate_each(record, attribute, value)

    def validate_each(self, record: Any, attribute: str, value: Any) -> None:
        raise NotImplementedError(f"{type(self).__name__} must implement validate_each()")


class BlockValidator(EachValidator):
    """Runs a function ``(record, attribute, value)`` for each attribute."""

    def __init__(
        self,
        options: Mapping[str, Any] | BaseModel | None = None,
        block: Callable[[Any, str, Any], Any] | None = None,
        **kwargs: Any,
    ) -> None:
        if block is None:
            raise ConfigurationError("BlockValidator requires a block")
        self.block = block
        super().__init__(options, **kwargs)

    def validate_each(self, record: Any, attribute: str, value: Any) -> None:
        self.block(record, attribute, value)


_VALIDATORS: dict[str, type[Validator]] = {}


def register_validator(cls: type[Validator]) -> type[Validator]:
    """Make a validator class resolvable by ``validates``."""
    if not (isinstance(cls, type) and issubclass(cls, Validator)):
        raise ConfigurationError(f"{cls!r} is not a Validator subclass")
    _VALIDATORS[cls.__name__] = cls
    logger.debug(f"Registered validator {cls.__name__}")
    return cls


def unregister_validator(name: str) -> None:
    _VALIDATORS.pop(name, None)


def get_validator(name: str) -> type[Validator] | None:
    return _VALIDATORS.get(name)


def registered_validators() -> dict[str, type[Validator]]:
    return dict(_VALIDATORS)


@register_validator
class PresenceValidator(EachValidator):
    def validate_each(self, record: Any, attribute: str, value: Any) -> None:
        if is_blank(value):
            record.errors.add(attribute, "blank", **self.error_options(value))


@register_validator
class AbsenceValidator(EachValidator):
    def validate_each(self, record: Any, attribute: str, value: Any) -> None:
        if not is_blank(value):
            record.errors.add(attribute, "present", **self.error_options(value))


class LengthOptions(ValidatorOptions):
    minimum: int | None = None
    maximum: int | None = None
    is_: int | None = Field(default=None, alias="is")
    in_: Any = Field(default=None, alias="in")


@register_validator
class LengthValidator(EachValidator):
    """Checks ``len(value)`` against ``minimum``, ``maximum``, ``is`` or ``in``."""

    Options = LengthOptions

    def check_validity(self) -> None:
        opts = self.options
        if opts.in_ is not None:
            bounds = opts.in_
            if isinstance(bounds, range):
                opts.minimum, opts.maximum = bounds.start, bounds.stop - 1
            elif isinstance(bounds, (list, tuple)) and len(bounds) == 2:
                opts.minimum, opts.maximum = bounds
            else:
                raise ConfigurationError("length 'in' must be a range or a (min, max) pair", option="in")

        checks = {"minimum": opts.minimum, "maximum": opts.maximum, "is": opts.is_}
        if all(v is None for v in checks.values()):
            raise ConfigurationError(
                "Range unspecified. Specify the 'in', 'maximum', 'minimum', or 'is' option."
            )
        for key, v in checks.items():
            if v is not None and (not isinstance(v, int) or v < 0):
                raise ConfigurationError(f"length '{key}' must be a nonnegative integer", option=key)

    def validate_each(self, record: Any, attribute: str, value: Any) -> None:
        opts = self.options
        if value is None:
            if opts.minimum is None and opts.is_ is None:
                return
            length = 0
        else:
            length = len(value) if hasattr(value, "__len__") else len(str(value))

        if opts.is_ is not None and length != opts.is_:
            record.errors.add(attribute, "wrong_length", **self.error_options(value, count=opts.is_))
        if opts.minimum is not None and length < opts.minimum:
            record.errors.add(attribute, "too_short", **self.error_options(value, count=opts.minimum))
        if opts.maximum is not None and length > opts.maximum:
            record.errors.add(attribute, "too_long", **self.error_options(value, count=opts.maximum))


class FormatOptions(ValidatorOptions):
    with_: Any = Field(default=None, alias="with")
    without: Any = None


@register_validator
class FormatValidator(EachValidator):
    Options = FormatOptions

    def check_validity(self) -> None:
        if (self.options.with_ is None) == (self.options.without is None):
            raise ConfigurationError("Either 'with' or 'without' must be supplied (but not both)")

    def validate_each(self, record: Any, attribute: str, value: Any) -> None:
        text = "" if value is None else str(value)
        if self.options.with_ is not None:
            failed = re.search(self.options.with_, text) is None
        else:
            failed = re.search(self.options.without, text) is not None
        if failed:
            record.errors.add(attribute, "invalid", **self.error_options(value))


class MembershipOptions(ValidatorOptions):
    in_: Any = Field(default=None, alias="in")
    within: Any = None


class _MembershipValidator(EachValidator):
    Options = MembershipOptions

    def check_validity(self) -> None:
        if self.options.in_ is None:
            self.options.in_ = self.options.within
        collection = self.options.in_
        if collection is None or not (callable(collection) or hasattr(collection, "__contains__")):
            raise ConfigurationError(
                "An object with __contains__ or a callable must be supplied as the 'in' option",
                option="in",
            )

    def is_included(self, record: Any, value: Any) -> bool:
        collection = self.options.in_
        if callable(collection) and not hasattr(collection, "__contains__"):
            collection = collection(record)
        try:
            return value in collection
        except TypeError:
            return False


@register_validator
class InclusionValidator(_MembershipValidator):
    def validate_each(self, record: Any, attribute: str, value: Any) -> None:
        if not self.is_included(record, value):
            record.errors.add(attribute, "inclusion", **self.error_options(value))


@register_validator
class ExclusionValidator(_MembershipValidator):
    def validate_each(self, record: Any, attribute: str, value: Any) -> None:
        if self.is_included(record, value):
            record.errors.add(attribute, "exclusion", **self.error_options(value))


class NumericalityOptions(ValidatorOptions):
    only_integer: bool = False
    greater_than: Any = None
    greater_than_or_equal_to: Any = None
    equal_to: Any = None
    less_than: Any = None
    less_than_or_equal_to: Any = None
    other_than: Any = None
    odd: bool = False
    even: bool = False


_COMPARISONS: dict[str, Callable[[Any, Any], bool]] = {
    "greater_than": lambda a, b: a > b,
    "greater_than_or_equal_to": lambda a, b: a >= b,
    "equal_to": lambda a, b: a == b,
    "less_than": lambda a, b: a < b,
    "less_than_or_equal_to": lambda a, b: a <= b,
    "other_than": lambda a, b: a != b,
}

_INTEGER_RE = re.compile(r"^\s*[+-]?\d+\s*$")


@register_validator
class NumericalityValidator(EachValidator):
    Options = NumericalityOptions

    def _parse(self, value: Any) -> Decimal | None:
        if isinstance(value, bool):
            return None
        if isinstance(value, (int, float, Decimal)):
            return Decimal(str(value))
        try:
            return Decimal(str(value).strip())
        except (InvalidOperation, ValueError):
            return None

    def _resolve(self, record: Any, option: Any) -> Any:
        if isinstance(option, str):
            option = getattr(record, option)
        if callable(option):
            option = option(record)
        return Decimal(str(option))

    def validate_each(self, record: Any, attribute: str, value: Any) -> None:
        opts = self.options
        number = None if value is None else self._parse(value)
        if number is None or not number.is_finite():
            record.errors.add(attribute, "not_a_number", **self.error_options(value))
            return

        if opts.only_integer and not (
            isinstance(value, int) or _INTEGER_RE.match(str(value))
        ):
            record.errors.add(attribute, "not_an_integer", **self.error_options(value))
            return

        for name, compare in _COMPARISONS.items():
            option = getattr(opts, name)
            if option is None:
                continue
            bound = self._resolve(record, option)
            if not compare(number, bound):
                record.errors.add(attribute, name, **self.error_options(value, count=bound))

        if opts.odd and int(number) % 2 != 1:
            record.errors.add(attribute, "odd", **self.error_options(value))
        if opts.even and int(number) % 2 != 0:
            record.errors.add(attribute, "even", **self.error_options(value))


class AcceptanceOptions(ValidatorOptions):
    allow_nil: bool = True
    accept: Any = Field(default_factory=lambda: ["1", True])


@register_validator
class AcceptanceValidator(EachValidator):
    Options = AcceptanceOptions

    def validate_each(self, record: Any, attribute: str, value: Any) -> None:
        if value not in _as_list(self.options.accept):
            record.errors.add(attribute, "accepted", **self.error_options(value))


@register_validator
class ConfirmationValidator(EachValidator):
    """Compares ``attr`` with the transient ``attr_confirmation`` attribute."""

    def validate_each(self, record: Any, attribute: str, value: Any) -> None:
        confirmed = getattr(record, f"{attribute}_confirmation", None)
        if confirmed is None or confirmed == value:
            return
        human = (
            type(record).human_attribute_name(attribute)
            if hasattr(type(record), "human_attribute_name")
            else attribute
        )
        record.errors.add(
            f"{attribute}_confirmation",
            "confirmation",
            **self.error_options(confirmed, attribute=human),
        )


class UniquenessOptions(ValidatorOptions):
    scope: list[str] = Field(default_factory=list, description="Attributes limiting the constraint")
    case_sensitive: bool = Field(default=True, description="Exact match for string values")
    only_if_modified: bool = Field(
        default=False,
        description="Skip existing records whose key attributes did not change",
    )

    @field_validator("scope", mode="before")
    @classmethod
    def _scope_as_list(cls, v: Any) -> list[str]:
        return [str(s) for s in _as_list(v)]


@register_validator
class UniquenessValidator(EachValidator):
    """
    Checks that no other row has the same value(s).

    Algorithm:
        1. key attributes = the validated attribute + ``scope`` attributes
        2. with ``only_if_modified``, an existing record none of whose key
           attributes changed is skipped without querying
        3. count rows whose key attributes equal the record's values
        4. an existing record excludes its own primary key
        5. any match adds a ``taken`` error carrying the value
    """

    Options = UniquenessOptions

    def setup(self, model: type) -> None:
        self.model = model

    def _query_model(self, record: Any) -> type:
        model = getattr(self, "model", None) or self.options.class_
        if model is not None and isinstance(record, model):
            return model
        return type(record)

    def validate_each(self, record: Any, attribute: str, value: Any) -> None:
        opts = self.options
        keys = [attribute, *opts.scope]

        if opts.only_if_modified and not record.is_new:
            changed = set(record.changed_columns)
            if not any(key in changed for key in keys):
                return

        model = self._query_model(record)
        conditions = []
        for key in keys:
            column = getattr(model, key)
            current = value if key == attribute else record.read_attribute_for_validation(key)
            if current is None:
                conditions.append(column.is_(None))
            elif key == attribute and not opts.case_sensitive and isinstance(current, str):
                conditions.append(func.lower(column) == current.lower())
            else:
                conditions.append(column == current)

        dataset = model.dataset(record.db_session()).filter(*conditions)
        if not record.is_new:
            dataset = dataset.exclude(**record.pk_hash)

        if dataset.count() > 0:
            record.errors.add(attribute, "taken", **self.error_options(value))

"""
Host model layer for SQLAlchemy declarative classes.

``ActiveModelMixin`` supplies what the adapters build on:
- ``save``/``destroy`` entry points that run through overridable
  lifecycle hook points (``around_save``, ``around_create``,
  ``around_update``, ``around_destroy``, ``around_validation``)
- ``valid``/``validate`` and a lazily created ``errors`` collection
- persistence state: ``is_new``, ``persisted``, ``changed_columns``,
  ``pk``/``pk_hash``
- a ``Dataset`` query builder returning counts of matching rows
- ``model_name`` naming information

Usage:
    class Base(DeclarativeBase):
        pass

    class Account(ActiveModelMixin, Base):
        __tablename__ = "accounts"
        id: Mapped[int] = mapped_column(primary_key=True)
        name: Mapped[str | None]

    Account(name="acme").save(session)
"""

from __future__ import annotations

import logging
from types import FunctionType, MethodType
from typing import Any, Callable

from sqlalchemy import and_, func, not_, select
from sqlalchemy import inspect as sa_inspect
from sqlalchemy.orm import Session, object_session

from activealchemy.config import get_settings
from activealchemy.errors import Errors
from activealchemy.exceptions import ConfigurationError, HookFailed, ValidationFailed
from activealchemy.logging_config import log_context
from activealchemy.naming import ModelName

logger = logging.getLogger(__name__)


class dualmethod:
    """
    A method with separate class-level and instance-level implementations.

    ``Model.validate(...)`` registers a validation, ``record.validate()``
    runs them. Same for the ``around_*`` lifecycle hooks.
    """

    def __init__(
        self,
        instance_func: Callable[..., Any],
        class_func: Callable[..., Any] | None = None,
    ) -> None:
        self.instance_func = instance_func
        self.class_func = class_func
        self.__doc__ = instance_func.__doc__
        self.__name__ = instance_func.__name__

    def classmethod(self, class_func: Callable[..., Any]) -> "dualmethod":
        return type(self)(self.instance_func, class_func)

    def with_instance(self, instance_func: Callable[..., Any]) -> "dualmethod":
        return type(self)(instance_func, self.class_func)

    def __get__(self, instance: Any, owner: type | None = None) -> Any:
        if instance is None:
            if self.class_func is None:
                return self.instance_func
            return MethodType(self.class_func, owner)
        return MethodType(self.instance_func, instance)


def _wrap_overridden_dualmethods(cls: type) -> None:
    # A plain ``def validate(self)`` in a subclass would hide the inherited
    # class-level half; reattach it.
    for name, value in list(vars(cls).items()):
        if not isinstance(value, FunctionType):
            continue
        for ancestor in cls.__mro__[1:]:
            inherited = vars(ancestor).get(name)
            if isinstance(inherited, dualmethod):
                setattr(cls, name, inherited.with_instance(value))
                break


class Dataset:
    """Filtered view over a model's table, bound to a session."""

    def __init__(self, model: type, session: Session, criteria: tuple[Any, ...] = ()) -> None:
        self.model = model
        self.session = session
        self._criteria = criteria

    def _conditions(self, clauses: tuple[Any, ...], equalities: dict[str, Any]) -> list[Any]:
        conditions = list(clauses)
        for name, value in equalities.items():
            column = getattr(self.model, name)
            conditions.append(column.is_(None) if value is None else column == value)
        return conditions

    def filter(self, *clauses: Any, **equalities: Any) -> "Dataset":
        conditions = self._conditions(clauses, equalities)
        return Dataset(self.model, self.session, self._criteria + tuple(conditions))

    def exclude(self, *clauses: Any, **equalities: Any) -> "Dataset":
        conditions = self._conditions(clauses, equalities)
        if not conditions:
            return self
        return Dataset(self.model, self.session, self._criteria + (not_(and_(*conditions)),))

    def count(self) -> int:
        stmt = select(func.count()).select_from(self.model).where(*self._criteria)
        with self.session.no_autoflush:
            return self.session.scalar(stmt) or 0

    def all(self) -> list[Any]:
        return list(self.session.scalars(select(self.model).where(*self._criteria)))

    def first(self) -> Any:
        return self.session.scalars(select(self.model).where(*self._criteria).limit(1)).first()

    def __repr__(self) -> str:
        return f"<Dataset {self.model.__name__} criteria={len(self._criteria)}>"


class ActiveModelMixin:
    """Lifecycle, persistence state and naming for SQLAlchemy models."""

    __session__ = None
    raise_on_save_failure = None

    def __init_subclass__(cls, **kwargs: Any) -> None:
        super().__init_subclass__(**kwargs)
        _wrap_overridden_dualmethods(cls)

    # -- naming ---------------------------------------------------------

    @classmethod
    def model_name(cls) -> ModelName:
        cached = cls.__dict__.get("_model_name")
        if cached is None:
            cached = ModelName.for_class(cls)
            setattr(cls, "_model_name", cached)
        return cached

    # -- sessions and queries -------------------------------------------

    @classmethod
    def bind_session(cls, session: Session | None) -> None:
        """Default session for records of this class that are not attached to one."""
        cls.__session__ = session

    @classmethod
    def dataset(cls, session: Session) -> Dataset:
        return Dataset(cls, session)

    def db_session(self, session: Session | None = None) -> Session:
        if session is None:
            session = object_session(self)
        if session is None:
            session = self.__dict__.get("_active_session")
        if session is None:
            session = type(self).__session__
        if session is None:
            raise ConfigurationError(
                f"No session available for {type(self).__name__}; "
                "pass one explicitly or call bind_session()"
            )
        return session

    # -- persistence state ----------------------------------------------

    @property
    def is_new(self) -> bool:
        return not sa_inspect(self).has_identity

    def persisted(self) -> bool:
        return sa_inspect(self).persistent

    @property
    def changed_columns(self) -> list[str]:
        state = sa_inspect(self)
        return [
            attr.key for attr in state.mapper.column_attrs
            if state.attrs[attr.key].history.has_changes()
        ]

    def _pk_keys(self) -> list[str]:
        mapper = sa_inspect(type(self))
        return [mapper.get_property_by_column(column).key for column in mapper.primary_key]

    @property
    def pk(self) -> Any:
        values = [getattr(self, key) for key in self._pk_keys()]
        return values[0] if len(values) == 1 else tuple(values)

    @property
    def pk_hash(self) -> dict[str, Any]:
        return {key: getattr(self, key) for key in self._pk_keys()}

    def to_key(self) -> list[Any] | None:
        if self.is_new:
            return None
        return list(self.pk_hash.values())

    def to_param(self) -> str | None:
        key = self.to_key()
        if key is None or any(part is None for part in key):
            return None
        return "-".join(str(part) for part in key)

    # -- lifecycle hook points ------------------------------------------

    def around_save(self, proceed: Callable[[], Any]) -> Any:
        return proceed()

    def around_create(self, proceed: Callable[[], Any]) -> Any:
        return proceed()

    def around_update(self, proceed: Callable[[], Any]) -> Any:
        return proceed()

    def around_destroy(self, proceed: Callable[[], Any]) -> Any:
        return proceed()

    def around_validation(self, proceed: Callable[[], Any]) -> Any:
        return proceed()

    def _run_hook(self, hook: str, body: Callable[[], Any]) -> Any:
        called = False
        result = None

        def proceed() -> Any:
            nonlocal called, result
            called = True
            result = body()
            return result

        getattr(self, hook)(proceed)
        if not called:
            raise HookFailed(f"the {hook} hook failed", record=self)
        return result

    # -- validation -----------------------------------------------------

    @property
    def errors(self) -> Errors:
        errors = self.__dict__.get("_errors")
        if errors is None:
            errors = Errors(self)
            self.__dict__["_errors"] = errors
        return errors

    @property
    def validation_context(self) -> str | None:
        return self.__dict__.get("_validation_context")

    def validate(self) -> None:
        """Override to add errors to ``self.errors``."""

    def read_attribute_for_validation(self, attribute: str) -> Any:
        return getattr(self, attribute)

    def valid(self, context: str | None = None) -> bool:
        """
        Run validations and return whether no errors were recorded.

        Args:
            context: Lifecycle context (``create``/``update``/custom); defaults
                to ``create`` for new records and ``update`` otherwise

        Returns:
            False when errors were recorded or the validation hook halted
        """
        previous = self.__dict__.get("_validation_context")
        self.__dict__["_validation_context"] = context or ("create" if self.is_new else "update")
        self.errors.clear()
        try:
            self._run_hook("around_validation", self.validate)
        except HookFailed:
            logger.debug(f"Validation halted for {type(self).__name__}")
            return False
        finally:
            self.__dict__["_validation_context"] = previous
        return not self.errors

    def invalid(self, context: str | None = None) -> bool:
        return not self.valid(context)

    # -- save / destroy -------------------------------------------------

    def _raise_on_failure(self) -> bool:
        setting = type(self).raise_on_save_failure
        return get_settings().raise_on_save_failure if setting is None else setting

    def save(
        self,
        session: Session | None = None,
        *,
        validate: bool = True,
        commit: bool = True,
    ) -> Any:
        """
        Validate and persist the record.

        Args:
            session: Session to use (defaults to the record's or class's session)
            validate: Run validations first
            commit: Commit the session after flushing

        Returns:
            The record, or None when the save failed and
            ``raise_on_save_failure`` is off

        Raises:
            ValidationFailed: The record is invalid
            HookFailed: A callback chain halted the save
        """
        session = self.db_session(session)
        self.__dict__["_active_session"] = session
        try:
            return self._save(session, validate, commit)
        finally:
            self.__dict__.pop("_active_session", None)

    def _save(self, session: Session, validate: bool, commit: bool) -> Any:
        model = type(self).__name__

        with log_context(model=model, operation="save"):
            if validate and not self.valid():
                if self.errors:
                    error: Exception = ValidationFailed(self)
                else:
                    error = HookFailed("the validation hook failed", record=self)
                logger.warning(f"Save of {model} failed: {error}")
                if self._raise_on_failure():
                    raise error
                return None

            try:
                self._run_hook("around_save", lambda: self._save_body(session))
            except HookFailed as e:
                logger.warning(f"Save of {model} failed: {e}")
                if self._raise_on_failure():
                    raise
                return None

            if commit:
                session.commit()
            logger.debug(f"Saved {model} {self.pk_hash}")
        return self

    def _save_body(self, session: Session) -> None:
        if self.is_new:
            self._run_hook("around_create", lambda: self._flush(session))
        else:
            self._run_hook("around_update", lambda: self._flush(session))

    def _flush(self, session: Session) -> None:
        session.add(self)
        session.flush()

    def destroy(self, session: Session | None = None, *, commit: bool = True) -> Any:
        """Delete the record, running the destroy hook around the DELETE."""
        session = self.db_session(session)
        model = type(self).__name__

        with log_context(model=model, operation="destroy"):
            try:
                self._run_hook("around_destroy", lambda: self._delete(session))
            except HookFailed as e:
                logger.warning(f"Destroy of {model} failed: {e}")
                if self._raise_on_failure():
                    raise
                return None

            if commit:
                session.commit()
            logger.debug(f"Destroyed {model}")
        return self

    def _delete(self, session: Session) -> None:
        session.delete(self)
        session.flush()

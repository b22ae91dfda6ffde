"""
Callback chains and the callback adapter.

A callback chain is a named, ordered list of before/after/around entries
run around a lifecycle operation. ``CallbacksMixin`` defines the ``save``,
``create``, ``update``, ``destroy`` and ``validation`` chains on a model
and wraps the matching lifecycle hook points so each operation runs inside
its chain.

Example:
    class Person(CallbacksMixin, Base):
        __tablename__ = "people"
        ...

        @callback("before_save")
        def strip_name(self):
            self.name = self.name.strip()

    Person.after_save(lambda person: audit.record(person))
    Person.before_validation("normalize", on="create")
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from enum import Enum
from types import FunctionType, MethodType
from typing import Any, Callable, Iterable

from activealchemy.exceptions import ConfigurationError
from activealchemy.model import ActiveModelMixin, dualmethod

logger = logging.getLogger(__name__)

MODEL_CHAINS = ("save", "create", "update", "destroy")
VALIDATION_CHAIN = "validation"
MARKER_ATTR = "__activealchemy_callbacks__"


class CallbackKind(str, Enum):
    """Position of a callback relative to the wrapped operation."""

    BEFORE = "before"
    AFTER = "after"
    AROUND = "around"


def halt_on_false(record: Any, result: Any) -> bool:
    """Terminator used by the lifecycle chains: a callback returning ``False`` halts."""
    return result is False


def _as_list(value: Any) -> list[Any]:
    if value is None:
        return []
    if isinstance(value, (list, tuple, set, frozenset)):
        return list(value)
    return [value]


def context_guard(on: str | Iterable[str]) -> Callable[[Any], bool]:
    """Guard that passes only while validating in one of the ``on`` contexts."""
    contexts = [str(c) for c in _as_list(on)]

    def guard(record: Any) -> bool:
        return record.validation_context in contexts

    guard.__name__ = f"on_{'_'.join(contexts)}"
    return guard


def _evaluate_guard(guard: Any, record: Any) -> bool:
    if isinstance(guard, str):
        value = getattr(record, guard)
        return bool(value() if callable(value) else value)
    if callable(guard):
        return bool(guard(record))
    return bool(guard)


@dataclass
class Callback:
    """One entry of a callback chain."""

    kind: CallbackKind
    target: Any
    if_: list[Any] = field(default_factory=list)
    unless: list[Any] = field(default_factory=list)

    def applies(self, record: Any) -> bool:
        return (
            all(_evaluate_guard(g, record) for g in self.if_)
            and not any(_evaluate_guard(g, record) for g in self.unless)
        )

    def matches(self, target: Any) -> bool:
        return self.target is target or self.target == target

    def invoke(
        self,
        record: Any,
        scope_method: str,
        proceed: Callable[[], Any] | None = None,
    ) -> Any:
        target = self.target
        extra = (proceed,) if self.kind is CallbackKind.AROUND else ()

        if isinstance(target, str):
            return getattr(record, target)(*extra)
        if not isinstance(target, (FunctionType, MethodType)) and hasattr(target, scope_method):
            return getattr(target, scope_method)(record, *extra)
        if callable(target):
            return target(record, *extra)
        raise ConfigurationError(
            f"Callback target {target!r} is not callable and has no {scope_method}()"
        )


@dataclass
class CallbackChain:
    """
    Ordered callbacks for one lifecycle operation.

    Attributes:
        name: Chain name (``save``, ``validate``...)
        terminator: ``(record, result) -> bool``; true halts the chain
            after a before callback
        skip_after_callbacks_if_terminated: Skip after callbacks on halt
        scope: Parts of the method name called on object targets,
            e.g. ``("kind", "name")`` -> ``before_save``
    """

    name: str
    terminator: Callable[[Any, Any], bool] | None = None
    skip_after_callbacks_if_terminated: bool = False
    scope: tuple[str, ...] = ("kind",)
    callbacks: list[Callback] = field(default_factory=list)

    def copy(self) -> "CallbackChain":
        return replace(self, callbacks=list(self.callbacks))

    def append(self, callback: Callback, prepend: bool = False) -> None:
        if prepend:
            self.callbacks.insert(0, callback)
        else:
            self.callbacks.append(callback)

    def remove(self, kind: CallbackKind, target: Any) -> bool:
        before = len(self.callbacks)
        self.callbacks = [
            cb for cb in self.callbacks if not (cb.kind is kind and cb.matches(target))
        ]
        return len(self.callbacks) != before

    def scope_method(self, kind: CallbackKind) -> str:
        parts = {"kind": kind.value, "name": self.name}
        return "_".join(parts[p] for p in self.scope)

    def run(self, record: Any, block: Callable[[], Any]) -> Any:
        """
        Run ``block`` inside the chain.

        Returns:
            The block's result, or False when the chain halted
        """
        if not self.callbacks:
            return block()

        callbacks = self.callbacks
        halted = False

        def run_from(index: int) -> Any:
            nonlocal halted
            while index < len(callbacks):
                cb = callbacks[index]
                index += 1
                if cb.kind is CallbackKind.AFTER or not cb.applies(record):
                    continue

                if cb.kind is CallbackKind.BEFORE:
                    result = cb.invoke(record, self.scope_method(cb.kind))
                    if self.terminator is not None and self.terminator(record, result):
                        logger.debug(f"{self.name} chain halted by {cb.target!r}")
                        halted = True
                        return False
                    continue

                called = False
                inner_result = None
                start = index

                def proceed() -> Any:
                    nonlocal called, inner_result
                    called = True
                    inner_result = run_from(start)
                    return inner_result

                cb.invoke(record, self.scope_method(cb.kind), proceed)
                if not called:
                    logger.debug(f"{self.name} chain halted by around callback {cb.target!r}")
                    halted = True
                    return False
                return inner_result

            return block()

        result = run_from(0)

        if halted and self.skip_after_callbacks_if_terminated:
            return False

        for cb in callbacks:
            if cb.kind is CallbackKind.AFTER and cb.applies(record):
                cb.invoke(record, self.scope_method(cb.kind))

        return False if halted else result


def _own_chains(model: type) -> dict[str, CallbackChain]:
    chains = vars(model).get("__callback_chains__")
    if chains is None:
        inherited = getattr(model, "__callback_chains__", {})
        chains = {name: chain.copy() for name, chain in inherited.items()}
        setattr(model, "__callback_chains__", chains)
    return chains


def define_callbacks(
    model: type,
    *names: str,
    terminator: Callable[[Any, Any], bool] | None = None,
    skip_after_callbacks_if_terminated: bool = False,
    scope: tuple[str, ...] = ("kind",),
) -> None:
    """Create an empty chain for each name not yet defined on ``model``."""
    chains = _own_chains(model)
    for name in names:
        if name not in chains:
            chains[name] = CallbackChain(
                name=name,
                terminator=terminator,
                skip_after_callbacks_if_terminated=skip_after_callbacks_if_terminated,
                scope=tuple(scope),
            )


def get_chain(model: type, name: str) -> CallbackChain:
    chain = _own_chains(model).get(name)
    if chain is None:
        raise ConfigurationError(f"No callback chain named {name!r} on {model.__name__}")
    return chain


def set_callback(
    model: type,
    name: str,
    kind: str | CallbackKind,
    *targets: Any,
    if_: Any = None,
    unless: Any = None,
    prepend: bool = False,
) -> None:
    """
    Register callbacks on ``model``'s ``name`` chain.

    Args:
        model: Model class
        name: Chain name
        kind: ``before``, ``after`` or ``around``
        *targets: Method names, callables or objects
        if_: Guard or list of guards that must all pass
        unless: Guard or list of guards that must all fail
        prepend: Insert at the front of the chain
    """
    try:
        kind = CallbackKind(kind)
    except ValueError:
        raise ConfigurationError(f"Unknown callback kind: {kind!r}", option="kind") from None

    chain = get_chain(model, name)
    entries = [
        Callback(kind=kind, target=target, if_=_as_list(if_), unless=_as_list(unless))
        for target in targets
    ]
    for entry in reversed(entries) if prepend else entries:
        chain.append(entry, prepend=prepend)
        logger.debug(f"Registered {kind.value}_{name} callback on {model.__name__}: {entry.target!r}")


def skip_callback(model: type, name: str, kind: str | CallbackKind, *targets: Any) -> None:
    """Remove previously registered callbacks from ``model``'s chain."""
    chain = get_chain(model, name)
    for target in targets:
        if not chain.remove(CallbackKind(kind), target):
            raise ConfigurationError(
                f"{kind} {name} callback {target!r} has not been defined on {model.__name__}"
            )


def run_callbacks(record: Any, name: str, block: Callable[[], Any] | None = None) -> Any:
    """Run ``block`` inside the record's ``name`` chain."""
    chain = get_chain(type(record), name)
    return chain.run(record, block or (lambda: True))


def callback(hook: str, **options: Any) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    """
    Mark a method as a callback in the class body.

    ``hook`` is the registration helper name, e.g. ``"before_save"``,
    ``"around_update"`` or ``"validate"``. The method is registered by name
    when the class is created, so subclasses may override it.
    """
    def decorator(fn: Callable[..., Any]) -> Callable[..., Any]:
        fn.__dict__.setdefault(MARKER_ATTR, []).append((hook, options))
        return fn

    return decorator


def _registrar(name: str, kind: CallbackKind) -> classmethod:
    def register(cls: type, *targets: Any, **options: Any) -> Any:
        if not targets:
            def decorator(fn: Callable[..., Any]) -> Callable[..., Any]:
                set_callback(cls, name, kind, fn, **options)
                return fn
            return decorator

        set_callback(cls, name, kind, *targets, **options)
        return targets[0]

    register.__name__ = f"{kind.value}_{name}"
    register.__doc__ = f"Register {kind.value} {name} callbacks; usable as a decorator."
    return classmethod(register)


def _validation_registrar(kind: CallbackKind) -> classmethod:
    def register(cls: type, *targets: Any, on: Any = None, **options: Any) -> Any:
        if on is not None:
            options["if_"] = [context_guard(on), *_as_list(options.get("if_"))]
        return _registrar(VALIDATION_CHAIN, kind).__func__(cls, *targets, **options)

    register.__name__ = f"{kind.value}_{VALIDATION_CHAIN}"
    register.__doc__ = (
        f"Register {kind.value} validation callbacks. ``on`` restricts them to "
        "one or more validation contexts."
    )
    return classmethod(register)


def _around(name: str) -> dualmethod:
    hook = f"around_{name}"

    def run(self: Any, proceed: Callable[[], Any]) -> Any:
        parent = getattr(super(CallbacksMixin, self), hook)
        return run_callbacks(self, name, lambda: parent(proceed))

    run.__name__ = hook
    run.__doc__ = f"Run the {name} chain around the inherited {hook}."

    def register(cls: type, *targets: Any, **options: Any) -> Any:
        if name == VALIDATION_CHAIN:
            return _validation_registrar(CallbackKind.AROUND).__func__(cls, *targets, **options)
        return _registrar(name, CallbackKind.AROUND).__func__(cls, *targets, **options)

    return dualmethod(run, register)


class CallbacksMixin(ActiveModelMixin):
    """Lifecycle callbacks for SQLAlchemy models."""

    __callback_chains__ = {}

    def __init_subclass__(cls, **kwargs: Any) -> None:
        define_callbacks(
            cls,
            *MODEL_CHAINS,
            terminator=halt_on_false,
            skip_after_callbacks_if_terminated=True,
            scope=("kind", "name"),
        )
        define_callbacks(
            cls,
            VALIDATION_CHAIN,
            terminator=halt_on_false,
            skip_after_callbacks_if_terminated=True,
            scope=("kind", "name"),
        )
        super().__init_subclass__(**kwargs)
        _register_marked_callbacks(cls)

    before_save = _registrar("save", CallbackKind.BEFORE)
    after_save = _registrar("save", CallbackKind.AFTER)
    around_save = _around("save")

    before_create = _registrar("create", CallbackKind.BEFORE)
    after_create = _registrar("create", CallbackKind.AFTER)
    around_create = _around("create")

    before_update = _registrar("update", CallbackKind.BEFORE)
    after_update = _registrar("update", CallbackKind.AFTER)
    around_update = _around("update")

    before_destroy = _registrar("destroy", CallbackKind.BEFORE)
    after_destroy = _registrar("destroy", CallbackKind.AFTER)
    around_destroy = _around("destroy")

    before_validation = _validation_registrar(CallbackKind.BEFORE)
    after_validation = _validation_registrar(CallbackKind.AFTER)
    around_validation = _around(VALIDATION_CHAIN)

    @classmethod
    def set_callback(cls, name: str, kind: str | CallbackKind, *targets: Any, **options: Any) -> None:
        set_callback(cls, name, kind, *targets, **options)

    @classmethod
    def skip_callback(cls, name: str, kind: str | CallbackKind, *targets: Any) -> None:
        skip_callback(cls, name, kind, *targets)

    def run_callbacks(self, name: str, block: Callable[[], Any] | None = None) -> Any:
        return run_callbacks(self, name, block)


def _register_marked_callbacks(cls: type) -> None:
    for attr, value in list(vars(cls).items()):
        if isinstance(value, dualmethod):
            value = value.instance_func
        for hook, options in getattr(value, MARKER_ATTR, ()):
            registrar = getattr(cls, hook, None)
            if registrar is None or not callable(registrar):
                raise ConfigurationError(f"Unknown callback hook: {hook!r}", option=hook)
            registrar(attr, **options)

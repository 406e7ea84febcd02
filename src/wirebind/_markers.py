"""Declarative markers.

Classes, methods and fields opt into injection through the decorators below.
Field injection points use ``typing.Annotated`` with :func:`inject` as metadata::

    class Service:
        repo: Annotated[Repository, inject, named("primary")]

        @inject
        def __init__(self, clock: Clock) -> None: ...

        @post_construct
        def start(self) -> None: ...

Markers are stored on the object they decorate and are never inherited:
a subclass of a ``@singleton`` class is not a singleton unless marked too.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, TypeVar

from ._qualifiers import Qualifier


if TYPE_CHECKING:
    from collections.abc import Callable

    C = TypeVar("C", bound=type)
    F = TypeVar("F")

_MARKS = "__wirebind_marks__"

SINGLETON = object()


def _target(obj: Any) -> Any:
    if isinstance(obj, (staticmethod, classmethod)):
        return obj.__func__
    return obj


def _mark(obj: Any, key: str, value: Any) -> None:
    target = _target(obj)
    own = dict(vars(target).get(_MARKS, {}))
    own[key] = value
    setattr(target, _MARKS, own)


def marks_of(obj: Any) -> dict[str, Any]:
    """Markers declared directly on ``obj`` (never inherited ones)."""
    try:
        return vars(_target(obj)).get(_MARKS, {})
    except TypeError:
        return {}


def inject(func: F) -> F:
    """Mark a constructor, classmethod factory or method as an injection point.

    Also usable as ``Annotated`` metadata to mark a field for injection.
    """
    _mark(func, "inject", True)
    return func


def post_construct(func: F) -> F:
    _mark(func, "post_construct", True)
    return func


def pre_destroy(func: F) -> F:
    _mark(func, "pre_destroy", True)
    return func


def singleton(cls: C) -> C:
    _mark(cls, "scope", SINGLETON)
    return cls


def scoped(marker: Any) -> Callable[[C], C]:
    """Place a class under the scope handler registered for ``marker``."""
    if marker is None:
        msg = "Scope marker cannot be None"
        raise ValueError(msg)

    def decorator(cls: C) -> C:
        _mark(cls, "scope", marker)
        return cls

    return decorator


def qualified(*qualifiers: Qualifier) -> Callable[[C], C]:
    for q in qualifiers:
        if not isinstance(q, Qualifier):
            msg = f"Expected a Qualifier, got {q!r}"
            raise TypeError(msg)

    def decorator(cls: C) -> C:
        existing = marks_of(cls).get("qualifiers", frozenset())
        _mark(cls, "qualifiers", existing | frozenset(qualifiers))
        return cls

    return decorator


def alternative(cls: C) -> C:
    """Mark a class as an alternative: ignored until explicitly enabled."""
    _mark(cls, "alternative", True)
    return cls


def is_marked(obj: Any, key: str) -> bool:
    return bool(marks_of(obj).get(key))

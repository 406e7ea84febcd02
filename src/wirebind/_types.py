from __future__ import annotations

import abc
import inspect
import logging
import typing
from dataclasses import dataclass
from typing import Any, get_args, get_origin

from ._cache import DEFAULT_MAX_SIZE, Cache
from ._qualifiers import Qualifier, normalize


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BindingKey:
    """A (type, qualifiers) pair.

    ``list[str]`` and ``list[int]`` are different keys: type arguments must
    match exactly.
    """

    type: Any
    qualifiers: frozenset[Qualifier]

    @classmethod
    def of(cls, tp: Any, qualifiers: Any = None) -> BindingKey:
        return cls(tp, normalize(qualifiers))


def raw_type(tp: Any) -> type | None:
    """The class behind ``tp``: itself for a class, the origin for ``G[A]``."""
    if tp is Any:
        # a class since 3.11, still not a real type
        return None
    if inspect.isclass(tp) and get_origin(tp) is None:
        return tp
    origin = get_origin(tp)
    if inspect.isclass(origin):
        return origin
    return None


def is_parameterized(tp: Any) -> bool:
    return inspect.isclass(get_origin(tp)) and bool(get_args(tp))


def type_name(tp: Any) -> str:
    if inspect.isclass(tp) and get_origin(tp) is None:
        return tp.__qualname__
    return repr(tp)


def declared_bases(cls: type) -> tuple[Any, ...]:
    """Bases exactly as written in the class statement, type arguments included."""
    return cls.__dict__.get("__orig_bases__", cls.__bases__)


if hasattr(typing, "is_protocol"):
    # https://docs.python.org/3/library/typing.html#typing.is_protocol
    def is_protocol(tp: Any) -> bool:
        return inspect.isclass(tp) and typing.is_protocol(tp)

else:

    def is_protocol(tp: Any) -> bool:
        return inspect.isclass(tp) and bool(tp.__dict__.get("_is_protocol", False))


def is_concrete(cls: type) -> bool:
    """True for classes that can be instantiated as implementations.

    Protocols, classes with abstract methods and classes directly deriving
    from ``abc.ABC`` count as interfaces.
    """
    if inspect.isabstract(cls) or is_protocol(cls):
        return False
    return abc.ABC not in cls.__bases__


def is_subclass(candidate: type, target: type) -> bool:
    try:
        return issubclass(candidate, target)
    except TypeError:
        # non runtime-checkable protocols refuse issubclass; fall back to nominal
        return target in getattr(candidate, "__mro__", ())


class TypeChecker:
    """Decides whether a candidate class can satisfy a requested type.

    Plain targets use nominal subclassing. A parameterized target ``G[A]``
    matches when the candidate, or one of its ancestors, declares the base
    ``G[A]`` with exactly the same arguments. There is no variance:
    ``Repository[bool]`` does not satisfy ``Repository[int]``.

    Any other kind of type expression (unions, type variables, ``Any``,
    callables) never matches.
    """

    def __init__(self, cache_size: int = DEFAULT_MAX_SIZE) -> None:
        self._results: Cache[tuple[Any, type], bool] = Cache(cache_size)

    def is_assignable(self, target: Any, candidate: type) -> bool:
        try:
            key = (target, candidate)
            hash(key)
        except TypeError:
            return self._check(target, candidate)
        return self._results.compute_if_absent(key, lambda: self._check(target, candidate))

    def clear(self) -> None:
        self._results.clear()

    def _check(self, target: Any, candidate: type) -> bool:
        if not inspect.isclass(candidate) or target is Any:
            return False

        origin = get_origin(target)
        if origin is None:
            return inspect.isclass(target) and is_subclass(candidate, target)

        if not inspect.isclass(origin):
            logger.debug("Unsupported type expression %r", target)
            return False

        args = get_args(target)
        if not args:
            # bare alias such as typing.List
            return is_subclass(candidate, origin)

        if not is_subclass(candidate, origin):
            return False

        for base in declared_bases(candidate):
            base_origin = get_origin(base)
            if base_origin is origin and get_args(base) == args:
                return True
            base_cls = base_origin if base_origin is not None else base
            if base_cls is object or not inspect.isclass(base_cls):
                continue
            if self.is_assignable(target, base_cls):
                return True

        return False

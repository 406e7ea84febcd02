from __future__ import annotations

import inspect
import logging
import threading
from typing import TYPE_CHECKING, Any

from ._cache import DEFAULT_MAX_SIZE, Cache
from ._descriptors import ClassDescriptor, describe
from ._errors import AmbiguousResolutionError, UnsatisfiedResolutionError
from ._markers import is_marked
from ._qualifiers import ANY, Qualifier, is_default, normalize, specific
from ._types import BindingKey, TypeChecker, is_parameterized, raw_type, type_name


if TYPE_CHECKING:
    from collections.abc import Callable, Iterable


logger = logging.getLogger(__name__)


class TypeResolver:
    """Finds the implementation class(es) for a type and a set of qualifiers.

    Resolution order for a single implementation:
    1. an explicit binding for the exact (type, qualifiers) key
    2. an enabled alternative among the candidates
    3. a concrete class requested without qualifiers resolves to itself
    4. the one candidate matching the qualifiers: carrying every requested
       qualifier, or carrying none when no qualifier was requested.

    A concrete generic requested as ``Box[int]`` falls back to ``Box`` itself
    only when no candidate declares ``Box[int]``. In bindings-only mode step 4
    is skipped.

    Zero matches raise :class:`UnsatisfiedResolutionError`, several raise
    :class:`AmbiguousResolutionError`.
    """

    def __init__(
        self,
        classes: Callable[[], Iterable[type]],
        *,
        cache_size: int = DEFAULT_MAX_SIZE,
        bindings_only: bool = False,
    ) -> None:
        self._classes = classes
        self._checker = TypeChecker(cache_size)
        self._candidates: Cache[Any, tuple[type, ...]] = Cache(cache_size)
        self._descriptors: Cache[type, ClassDescriptor] = Cache(cache_size)
        self._bindings: dict[BindingKey, type] = {}
        self._enabled: set[type] = set()
        self._lock = threading.RLock()
        self._bindings_only = bindings_only

    @property
    def type_checker(self) -> TypeChecker:
        return self._checker

    def descriptor(self, cls: type) -> ClassDescriptor:
        return self._descriptors.compute_if_absent(cls, lambda: describe(cls))

    def is_assignable(self, target: Any, candidate: type) -> bool:
        return self._checker.is_assignable(target, candidate)

    def bind(self, tp: Any, qualifiers: Iterable[Qualifier] | None, implementation: type) -> None:
        if tp is None:
            msg = "Type cannot be None"
            raise ValueError(msg)
        if not inspect.isclass(implementation):
            msg = f"Implementation must be a class, got {implementation!r}"
            raise ValueError(msg)
        if not self._checker.is_assignable(tp, implementation):
            msg = f"Cannot bind {implementation.__qualname__} to {type_name(tp)} because they are not assignable"
            raise ValueError(msg)

        key = BindingKey.of(tp, qualifiers)
        with self._lock:
            previous = self._bindings.get(key)
            self._bindings[key] = implementation
        if previous is not None and previous is not implementation:
            logger.warning(
                "Binding for %s replaced: %s -> %s", type_name(tp), previous.__qualname__, implementation.__qualname__
            )

    def enable_alternative(self, cls: type) -> None:
        if not inspect.isclass(cls):
            msg = f"Alternative must be a class, got {cls!r}"
            raise ValueError(msg)
        if not is_marked(cls, "alternative"):
            msg = f"{cls.__qualname__} is not marked with @alternative"
            raise ValueError(msg)
        with self._lock:
            self._enabled.add(cls)

    def is_enabled(self, cls: type) -> bool:
        return cls in self._enabled

    def resolve_one(self, tp: Any, qualifiers: Iterable[Qualifier] | None = None) -> type:
        qualifiers = normalize(qualifiers)
        bound = self._bindings.get(BindingKey(tp, qualifiers))
        if bound is not None:
            return bound

        candidates = self._active(tp)
        enabled = [c for c in candidates if c in self._enabled and self._matches(c, qualifiers)]
        if len(enabled) > 1:
            msg = f"More than one enabled alternative for {type_name(tp)}: {_names(enabled)}"
            raise AmbiguousResolutionError(msg)
        if enabled:
            return enabled[0]

        own = self._own_class(tp, qualifiers)
        if own is not None and (self._bindings_only or not is_parameterized(tp)):
            return own
        if self._bindings_only:
            raise UnsatisfiedResolutionError(_unsatisfied(tp, qualifiers))

        matching = [c for c in candidates if self._matches(c, qualifiers)]
        if not matching and own is not None:
            return own
        if not matching:
            raise UnsatisfiedResolutionError(_unsatisfied(tp, qualifiers))
        if len(matching) > 1:
            msg = f"More than one implementation found for {type_name(tp)}{_with(qualifiers)}: {_names(matching)}"
            raise AmbiguousResolutionError(msg)

        logger.debug("Resolved %s%s to %s", type_name(tp), _with(qualifiers), matching[0].__qualname__)
        return matching[0]

    def resolve_all(self, tp: Any, qualifiers: Iterable[Qualifier] | None = None) -> list[type]:
        """Every active candidate for ``tp`` matching ``qualifiers``.

        ``ANY`` alone keeps every candidate; no qualifier keeps the
        unqualified ones. A concrete class requested without qualifiers is
        always part of its own set, as is an explicitly bound implementation.
        """
        qualifiers = normalize(qualifiers)
        bound = self._bindings.get(BindingKey(tp, qualifiers))
        if self._bindings_only:
            result = []
        elif ANY in qualifiers and not specific(qualifiers):
            result = list(self._active(tp))
        else:
            result = [c for c in self._active(tp) if self._matches(c, qualifiers)]

        own = self._own_class(tp, qualifiers)
        if own is not None and own not in result and (not is_parameterized(tp) or not result):
            result.insert(0, own)
        if bound is not None and bound not in result:
            result.append(bound)
        return result

    def candidates(self, tp: Any) -> tuple[type, ...]:
        """All concrete classes assignable to ``tp``, alternatives included."""
        return self._candidates.compute_if_absent(tp, lambda: self._compute_candidates(tp))

    def clear_caches(self) -> None:
        self._candidates.clear()
        self._checker.clear()

    def _compute_candidates(self, tp: Any) -> tuple[type, ...]:
        found = tuple(
            cls for cls in self._classes() if self.descriptor(cls).concrete and self._checker.is_assignable(tp, cls)
        )
        logger.debug("Candidates for %s: %s", type_name(tp), _names(found) or "none")
        return found

    def _own_class(self, tp: Any, qualifiers: frozenset[Qualifier]) -> type | None:
        """The concrete class behind ``tp`` when it is requested without qualifiers."""
        raw = raw_type(tp)
        if raw is not None and is_default(qualifiers) and self.descriptor(raw).concrete:
            return raw
        return None

    def _active(self, tp: Any) -> list[type]:
        return [c for c in self.candidates(tp) if not self.descriptor(c).alternative or c in self._enabled]

    def _matches(self, cls: type, qualifiers: frozenset[Qualifier]) -> bool:
        wanted = specific(qualifiers)
        declared = specific(self.descriptor(cls).qualifiers)
        if wanted:
            return wanted <= declared
        if ANY in qualifiers:
            return True
        return not declared


def _names(classes: Iterable[type]) -> str:
    return ", ".join(c.__qualname__ for c in classes)


def _with(qualifiers: frozenset[Qualifier]) -> str:
    wanted = specific(qualifiers)
    if not wanted:
        return ""
    return " with qualifiers " + ", ".join(sorted(map(repr, wanted)))


def _unsatisfied(tp: Any, qualifiers: frozenset[Qualifier]) -> str:
    return f"No implementation found for {type_name(tp)}{_with(qualifiers)}"

from __future__ import annotations

import logging
import threading
import weakref
from typing import TYPE_CHECKING, Any, Generic, TypeVar

from ._errors import ResolutionError
from ._qualifiers import DEFAULT, Qualifier, normalize
from ._types import is_subclass, raw_type, type_name


if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator

    from ._injector import Injector


logger = logging.getLogger(__name__)

T = TypeVar("T")


class Instance(Generic[T]):
    """Deferred access to every implementation matching a type and qualifiers.

    Declare a constructor parameter, field or method parameter as
    ``Instance[T]`` to receive one of these instead of an eager ``T``. Nothing
    is resolved until ``get()``, iteration or one of the probes is called, so
    an ``Instance`` also breaks construction cycles.

    Handles are values: ``select`` returns a new handle and leaves the
    receiver untouched.
    """

    def __init__(self, injector: Injector, type_: Any, qualifiers: Iterable[Qualifier] | None = None) -> None:
        if raw_type(type_) is None:
            msg = f"Cannot create an Instance over {type_!r}"
            raise TypeError(msg)
        self._injector = injector
        self._type = type_
        self._qualifiers = normalize(qualifiers)
        self._destroyed: dict[int, weakref.ref[Any]] = {}

    @property
    def type(self) -> Any:
        return self._type

    @property
    def qualifiers(self) -> frozenset[Qualifier]:
        return self._qualifiers

    def __repr__(self) -> str:
        qualifiers = ", ".join(sorted(map(repr, self._qualifiers)))
        return f"Instance[{type_name(self._type)}]({qualifiers})"

    def get(self) -> T:
        try:
            return self._injector.inject(self._type, *self._qualifiers)
        except ResolutionError:
            raise
        except Exception as e:
            msg = f"Failed to inject {type_name(self._type)}: {e}"
            raise ResolutionError(msg) from e

    def select(self, *args: Any) -> Instance[Any]:
        """Narrow this handle.

        ``select(q1, q2)`` adds qualifiers, ``select(Subtype, q1)`` also
        narrows the type. A qualifier replaces an existing one with the same
        tag; ``DEFAULT`` is dropped once a specific qualifier is present.
        """
        subtype = self._type
        qualifiers: tuple[Any, ...] = args
        if args and not isinstance(args[0], Qualifier):
            subtype, *rest = args
            qualifiers = tuple(rest)
            narrowed, current = raw_type(subtype), raw_type(self._type)
            if narrowed is None or current is None or not is_subclass(narrowed, current):
                msg = f"{type_name(subtype)} is not a subtype of {type_name(self._type)}"
                raise ValueError(msg)

        for q in qualifiers:
            if not isinstance(q, Qualifier):
                msg = f"Expected a Qualifier, got {q!r}"
                raise TypeError(msg)

        return Instance(self._injector, subtype, _merge(self._qualifiers, qualifiers))

    def __iter__(self) -> Iterator[T]:
        classes = self._candidates()
        return (self._injector.instantiate(cls) for cls in classes)

    def is_unsatisfied(self) -> bool:
        try:
            return not self._injector.resolver.resolve_all(self._type, self._qualifiers)
        except Exception:  # noqa: BLE001
            return True

    def is_ambiguous(self) -> bool:
        try:
            return len(self._injector.resolver.resolve_all(self._type, self._qualifiers)) > 1
        except Exception:  # noqa: BLE001
            return False

    def destroy(self, instance: T | None) -> None:
        """Run the pre-destroy hooks of an instance obtained from this handle.

        ``None`` and instances already destroyed are ignored. Destroyed
        instances are only tracked through weak references: objects without
        ``__weakref__`` (slotted classes) run their hooks on every call.
        Singletons belong to the injector and are only torn down by
        ``shutdown()``.
        """
        if instance is None or self._already_destroyed(instance):
            return
        if self._injector.is_singleton_instance(instance):
            logger.debug("Not destroying singleton %s; it lives until shutdown", type(instance).__qualname__)
            return
        self._remember_destroyed(instance)
        self._injector.destroy(instance)

    def get_handle(self) -> InstanceHandle[T]:
        try:
            cls = self._injector.resolver.resolve_one(self._type, self._qualifiers)
        except ResolutionError:
            raise
        except Exception as e:
            msg = f"Failed to get handle for {type_name(self._type)}: {e}"
            raise ResolutionError(msg) from e
        return InstanceHandle(self._injector, cls)

    def handles(self) -> list[InstanceHandle[T]]:
        return [InstanceHandle(self._injector, cls) for cls in self._candidates()]

    def _candidates(self) -> list[type]:
        try:
            return self._injector.resolver.resolve_all(self._type, self._qualifiers)
        except Exception as e:
            msg = f"Failed to resolve implementations of {type_name(self._type)}: {e}"
            raise ResolutionError(msg) from e

    def _already_destroyed(self, instance: Any) -> bool:
        ref = self._destroyed.get(id(instance))
        return ref is not None and ref() is instance

    def _remember_destroyed(self, instance: Any) -> None:
        # entries go away with their instance, so an id is never reused while tracked
        key = id(instance)
        destroyed = self._destroyed

        def forget(ref: weakref.ref[Any]) -> None:
            if destroyed.get(key) is ref:
                del destroyed[key]

        try:
            destroyed[key] = weakref.ref(instance, forget)
        except TypeError:
            logger.debug("%s has no weak references; repeated destroy() goes undetected", type(instance).__qualname__)


class InstanceHandle(Generic[T]):
    """A single candidate whose instance is built on the first ``get()``."""

    def __init__(self, injector: Injector, cls: type) -> None:
        self._injector = injector
        self._cls = cls
        self._instance: T | None = None
        self._created = False
        self._destroyed = False
        self._lock = threading.Lock()

    @property
    def bean_class(self) -> type:
        return self._cls

    def get(self) -> T:
        with self._lock:
            if self._destroyed:
                msg = f"Handle for {self._cls.__qualname__} has been destroyed"
                raise ResolutionError(msg)
            if not self._created:
                try:
                    self._instance = self._injector.instantiate(self._cls)
                except ResolutionError:
                    raise
                except Exception as e:
                    msg = f"Failed to create instance of {self._cls.__qualname__}: {e}"
                    raise ResolutionError(msg) from e
                self._created = True
            return self._instance  # type: ignore[return-value]

    def destroy(self) -> None:
        with self._lock:
            if self._destroyed:
                return
            self._destroyed = True
            instance, self._instance = self._instance, None
            if self._created and not self._injector.is_singleton_instance(instance):
                self._injector.destroy(instance)

    close = destroy

    def __enter__(self) -> InstanceHandle[T]:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.destroy()


def _merge(existing: frozenset[Qualifier], added: Iterable[Qualifier]) -> frozenset[Qualifier]:
    merged = {q.tag: q for q in existing}
    for q in added:
        merged[q.tag] = q
    if len(merged) > 1:
        merged.pop(DEFAULT.tag, None)
    return frozenset(merged.values())

from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING, Any, Protocol, TypeVar, runtime_checkable


if TYPE_CHECKING:
    from collections.abc import Callable


logger = logging.getLogger(__name__)

T = TypeVar("T")


@runtime_checkable
class ScopeHandler(Protocol):
    """Decides instance identity for classes under one scope marker.

    ``get`` returns an existing instance for ``cls`` or calls ``supplier`` to
    build a new one. ``close`` ends the scope; the injector calls it on
    shutdown.
    """

    def get(self, cls: type[T], supplier: Callable[[], T]) -> T: ...

    def close(self) -> None: ...


class MapScopeHandler:
    """One instance per class, kept in a dict until ``clear()`` or ``close()``.

    ``destroyer`` (typically ``Injector.destroy``) is applied to every
    instance dropped by ``close()``.
    """

    def __init__(self, destroyer: Callable[[Any], None] | None = None) -> None:
        self.instances: dict[type, Any] = {}
        self._destroyer = destroyer
        self._lock = threading.RLock()
        self._pending: dict[type, threading.RLock] = {}

    def get(self, cls: type[T], supplier: Callable[[], T]) -> T:
        with self._lock:
            if cls in self.instances:
                return self.instances[cls]
            class_lock = self._pending.setdefault(cls, threading.RLock())

        # only the class being built is locked while supplier() runs
        with class_lock:
            with self._lock:
                if cls in self.instances:
                    return self.instances[cls]
            try:
                instance = supplier()
            except BaseException:
                with self._lock:
                    self._pending.pop(cls, None)
                raise
            with self._lock:
                self.instances[cls] = instance
                self._pending.pop(cls, None)
            return instance

    def clear(self) -> None:
        with self._lock:
            self.instances.clear()

    def close(self) -> None:
        with self._lock:
            instances = list(self.instances.values())
            self.instances.clear()
        _destroy_all(instances, self._destroyer)


class ThreadLocalScopeHandler:
    """One instance per class and per thread.

    ``close()`` only ends the scope of the calling thread.
    """

    def __init__(self, destroyer: Callable[[Any], None] | None = None) -> None:
        self._local = threading.local()
        self._destroyer = destroyer

    def _instances(self) -> dict[type, Any]:
        instances = getattr(self._local, "instances", None)
        if instances is None:
            instances = self._local.instances = {}
        return instances

    def get(self, cls: type[T], supplier: Callable[[], T]) -> T:
        instances = self._instances()
        if cls not in instances:
            instances[cls] = supplier()
        return instances[cls]

    def close(self) -> None:
        instances = getattr(self._local, "instances", None)
        if not instances:
            return
        self._local.instances = None
        _destroy_all(list(instances.values()), self._destroyer)


def _destroy_all(instances: list[Any], destroyer: Callable[[Any], None] | None) -> None:
    if destroyer is None:
        return
    for instance in instances:
        try:
            destroyer(instance)
        except Exception:
            logger.exception("Failed to destroy scoped instance of %s", type(instance).__qualname__)

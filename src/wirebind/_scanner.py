from __future__ import annotations

import importlib
import inspect
import logging
import pkgutil
import threading
from typing import TYPE_CHECKING

from ._errors import ScanError


if TYPE_CHECKING:
    from collections.abc import Callable, Iterable, Iterator
    from types import ModuleType

    Loader = Callable[[str], ModuleType]


logger = logging.getLogger(__name__)


class ClassScanner:
    """Enumerates every class defined under a set of package prefixes.

    The first successful scan is cached; later calls return the very same
    tuple. A scan either completes or raises :class:`ScanError`, partial
    results are never returned. Once a result has been cached for one loader,
    asking again with a different loader is an error.
    """

    def __init__(self, packages: Iterable[str]) -> None:
        self._packages = tuple(packages)
        for package in self._packages:
            if not package:
                msg = "Package names cannot be empty"
                raise ValueError(msg)
        self._lock = threading.Lock()
        self._loader: Loader | None = None
        self._classes: tuple[type, ...] | None = None

    @property
    def packages(self) -> tuple[str, ...]:
        return self._packages

    def get_all_classes(self, loader: Loader | None = None) -> tuple[type, ...]:
        loader = loader or importlib.import_module
        with self._lock:
            if self._classes is not None:
                if loader is not self._loader:
                    msg = "Classes were already scanned with a different loader; loaders cannot be mixed"
                    raise ScanError(msg)
                return self._classes

            classes = self._scan(loader)
            self._loader = loader
            self._classes = classes
            logger.debug("Scanned %d classes under %s", len(classes), ", ".join(self._packages))
            return classes

    def _scan(self, loader: Loader) -> tuple[type, ...]:
        found: dict[type, None] = {}
        for package in self._packages:
            for module in self._modules(package, loader):
                for _, obj in inspect.getmembers(module, inspect.isclass):
                    if obj.__module__ == module.__name__:
                        for cls in _with_nested(obj):
                            found.setdefault(cls, None)
        return tuple(found)

    def _modules(self, package: str, loader: Loader) -> Iterator[ModuleType]:
        root = _load(loader, package)
        yield root

        path = getattr(root, "__path__", None)
        if path is None:
            return

        def on_error(name: str) -> None:
            msg = f"Failed to import {name} while scanning {package}"
            raise ScanError(msg)

        for info in pkgutil.walk_packages(path, prefix=f"{package}.", onerror=on_error):
            yield _load(loader, info.name)


def _load(loader: Loader, name: str) -> ModuleType:
    try:
        return loader(name)
    except Exception as e:  # noqa: BLE001
        msg = f"Failed to import {name}: {e}"
        raise ScanError(msg) from e


def _with_nested(cls: type) -> Iterator[type]:
    yield cls
    for value in vars(cls).values():
        if inspect.isclass(value) and value.__qualname__ == f"{cls.__qualname__}.{value.__name__}":
            yield from _with_nested(value)

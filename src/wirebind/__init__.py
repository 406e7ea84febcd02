"""Reflective dependency injection engine.

This package builds fully wired object graphs from plain classes: it resolves
implementations of abstract types and generics, selects constructors, injects
fields and methods, applies scopes, detects cycles and runs lifecycle hooks.

Exports:
- `Injector`: Entry point; `inject(type, *qualifiers)` returns a wired instance.
- `InjectorConfig`: Packages to scan, pre-enabled alternatives and cache sizing.
- `Instance`: Lazy handle over every implementation of a type. Declare a
  dependency as ``Instance[T]`` to defer its resolution.
- `Qualifier`, `named`, `qualifier`, `DEFAULT`, `ANY`: Qualifier model.
- Markers: `inject`, `singleton`, `scoped`, `qualified`, `alternative`,
  `post_construct`, `pre_destroy`.
- `ScopeHandler` and the ready-made `MapScopeHandler`, `ThreadLocalScopeHandler`.
- `ResolutionError` and its subclasses.
"""

from ._cache import Cache
from ._config import InjectorConfig
from ._errors import (
    AmbiguousResolutionError,
    CircularDependencyError,
    ConstructorResolutionError,
    InvalidInjectionTargetError,
    LifecycleError,
    ResolutionError,
    ScanError,
    UnsatisfiedResolutionError,
)
from ._injector import Injector
from ._instance import Instance, InstanceHandle
from ._markers import alternative, inject, post_construct, pre_destroy, qualified, scoped, singleton
from ._qualifiers import ANY, DEFAULT, Qualifier, named, qualifier
from ._resolver import TypeResolver
from ._scanner import ClassScanner
from ._scopes import MapScopeHandler, ScopeHandler, ThreadLocalScopeHandler
from ._types import BindingKey, TypeChecker


__all__ = [
    "ANY",
    "DEFAULT",
    "AmbiguousResolutionError",
    "BindingKey",
    "Cache",
    "CircularDependencyError",
    "ClassScanner",
    "ConstructorResolutionError",
    "Injector",
    "InjectorConfig",
    "Instance",
    "InstanceHandle",
    "InvalidInjectionTargetError",
    "LifecycleError",
    "MapScopeHandler",
    "Qualifier",
    "ResolutionError",
    "ScanError",
    "ScopeHandler",
    "ThreadLocalScopeHandler",
    "TypeChecker",
    "TypeResolver",
    "UnsatisfiedResolutionError",
    "alternative",
    "inject",
    "named",
    "post_construct",
    "pre_destroy",
    "qualified",
    "qualifier",
    "scoped",
    "singleton",
]

from __future__ import annotations

import inspect
import logging
import threading
from typing import TYPE_CHECKING, Any, TypeVar, get_args, get_origin, overload

from ._cache import Cache
from ._config import InjectorConfig
from ._descriptors import (
    EMPTY,
    FieldInjection,
    InjectionPlan,
    InjectionPoint,
    Lifecycle,
    build_lifecycle,
    build_plan,
    check_injectable,
)
from ._errors import (
    CircularDependencyError,
    InvalidInjectionTargetError,
    LifecycleError,
    ResolutionError,
    UnsatisfiedResolutionError,
)
from ._instance import Instance
from ._markers import SINGLETON
from ._resolver import TypeResolver
from ._scanner import ClassScanner
from ._scopes import ScopeHandler
from ._types import type_name


if TYPE_CHECKING:
    from collections.abc import Callable, Iterable

    from ._qualifiers import Qualifier

    T = TypeVar("T")


logger = logging.getLogger(__name__)

_MISSING = object()


class Injector:
    """Builds fully wired object graphs.

    - constructor, field and method injection, ancestors first
    - qualifier-aware implementation resolution, generics included
    - singleton and custom scopes
    - circular dependency detection
    - post-construct / pre-destroy lifecycle hooks

    The type universe comes from ``classes`` when given, otherwise from
    ``scanner`` or from a :class:`ClassScanner` over ``config.packages``.
    """

    def __init__(
        self,
        config: InjectorConfig | None = None,
        *,
        classes: Iterable[type] | None = None,
        scanner: ClassScanner | None = None,
    ) -> None:
        if classes is not None and scanner is not None:
            msg = "Provide either `classes` or `scanner`, not both."
            raise ValueError(msg)

        self._config = config or InjectorConfig()

        if classes is not None:
            universe = tuple(dict.fromkeys(classes))
            source = lambda: universe  # noqa: E731
        else:
            if scanner is None and self._config.packages:
                scanner = ClassScanner(self._config.packages)
            source = scanner.get_all_classes if scanner is not None else tuple
        self._scanner = scanner

        self._resolver = TypeResolver(
            source,
            cache_size=self._config.cache_size,
            bindings_only=self._config.bindings_only,
        )
        self._plans: Cache[type, InjectionPlan] = Cache(self._config.cache_size)
        self._lifecycles: Cache[type, Lifecycle] = Cache(self._config.cache_size)

        self._scopes: dict[Any, ScopeHandler] = {}
        self._singletons: dict[type, Any] = {}
        self._singleton_locks: dict[type, threading.RLock] = {}
        self._static_members: set[tuple[type, str]] = set()
        self._lock = threading.RLock()
        self._local = threading.local()

        for alternative in self._config.alternatives:
            self.enable_alternative(alternative)

    @property
    def config(self) -> InjectorConfig:
        return self._config

    @property
    def resolver(self) -> TypeResolver:
        return self._resolver

    @overload
    def inject(self, tp: type[T], *qualifiers: Qualifier) -> T: ...

    @overload
    def inject(self, tp: Any, *qualifiers: Qualifier) -> Any: ...

    def inject(self, tp: Any, *qualifiers: Qualifier) -> Any:
        """Return a fully wired instance for ``tp``.

        ``tp`` may be a class, an abstract type or a parameterized generic
        such as ``Repository[User]``; ``Instance[T]`` returns a lazy handle.
        """
        if tp is None:
            msg = "Type to inject cannot be None"
            raise ValueError(msg)

        if get_origin(tp) is Instance:
            args = get_args(tp)
            if not args:
                msg = "Instance needs a type argument"
                raise InvalidInjectionTargetError(msg)
            return Instance(self, args[0], qualifiers)

        check_injectable(tp)
        cls = self._resolver.resolve_one(tp, qualifiers)
        return self.instantiate(cls)

    def instantiate(self, cls: type[T]) -> T:
        """Return the instance for an already resolved class, honoring its scope."""
        check_injectable(cls)

        stack = self._construction_stack()
        if cls in stack:
            path = [*stack[stack.index(cls) :], cls]
            msg = "Circular dependency detected: " + " -> ".join(c.__qualname__ for c in path)
            raise CircularDependencyError(msg)

        stack.append(cls)
        try:
            return self._scoped_instance(cls)
        finally:
            stack.pop()

    def instance(self, tp: Any, *qualifiers: Qualifier) -> Instance[Any]:
        """A lazy handle over every implementation of ``tp``."""
        return Instance(self, tp, qualifiers)

    def bind(self, tp: Any, qualifiers: Iterable[Qualifier] | None, implementation: type) -> None:
        """Resolve ``tp`` with exactly ``qualifiers`` to ``implementation``."""
        self._resolver.bind(tp, qualifiers, implementation)

    def enable_alternative(self, cls: type) -> None:
        self._resolver.enable_alternative(cls)
        logger.debug("Enabled alternative %s", cls.__qualname__)

    def register_scope(self, marker: Any, handler: ScopeHandler) -> None:
        """Install ``handler`` for classes marked ``@scoped(marker)``.

        Replaces any handler previously registered for the same marker.
        """
        if marker is None or marker is SINGLETON:
            msg = "A custom scope needs its own marker"
            raise ValueError(msg)
        if not isinstance(handler, ScopeHandler):
            msg = f"{type(handler).__name__} does not implement get() and close()"
            raise TypeError(msg)

        with self._lock:
            previous = self._scopes.get(marker)
            self._scopes[marker] = handler
        if previous is not None and previous is not handler:
            logger.debug("Scope handler for %r replaced", marker)

    def destroy(self, instance: Any) -> None:
        """Run the pre-destroy hooks of ``instance``, ancestors first.

        Live singletons are left alone; ``shutdown()`` tears them down.
        """
        if instance is None:
            return
        if self.is_singleton_instance(instance):
            logger.debug("Not destroying singleton %s; it lives until shutdown", type(instance).__qualname__)
            return
        cls = type(instance)
        for hook in self._lifecycle(cls).pre_destroy:
            try:
                hook(instance)
            except Exception as e:
                msg = f"@pre_destroy {hook.__qualname__} failed for {cls.__qualname__}: {e}"
                raise LifecycleError(msg) from e

    def is_singleton_instance(self, instance: Any) -> bool:
        return self._singletons.get(type(instance), _MISSING) is instance

    def shutdown(self) -> None:
        """Tear down singletons and custom scopes.

        Every failure is logged and the teardown goes on. The injector stays
        usable: singletons are created afresh on the next injection.
        """
        with self._lock:
            singletons = list(self._singletons.values())
            self._singletons.clear()
            self._singleton_locks.clear()
            handlers = list(self._scopes.values())

        for instance in singletons:
            self._destroy_quietly(instance)

        for handler in handlers:
            try:
                handler.close()
            except Exception:
                logger.exception("Failed to close scope handler %r", handler)

        if singletons or handlers:
            logger.debug("Shutdown destroyed %d singletons and closed %d scopes", len(singletons), len(handlers))

    def __enter__(self) -> Injector:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.shutdown()

    def _construction_stack(self) -> list[type]:
        stack = getattr(self._local, "stack", None)
        if stack is None:
            stack = self._local.stack = []
        return stack

    def _scoped_instance(self, cls: type[T]) -> T:
        descriptor = self._resolver.descriptor(cls)
        if descriptor.singleton:
            return self._singleton(cls)

        if descriptor.scope is not None:
            with self._lock:
                handler = self._scopes.get(descriptor.scope)
            if handler is not None:
                return handler.get(cls, lambda: self._create(cls))
            logger.debug("No handler for scope %r of %s; creating a new instance", descriptor.scope, cls.__qualname__)

        return self._create(cls)

    def _singleton(self, cls: type[T]) -> T:
        instance = self._singletons.get(cls, _MISSING)
        if instance is not _MISSING:
            return instance

        with self._lock:
            lock = self._singleton_locks.setdefault(cls, threading.RLock())

        with lock:
            instance = self._singletons.get(cls, _MISSING)
            if instance is _MISSING:
                instance = self._create(cls)
                with self._lock:
                    self._singletons[cls] = instance
            return instance

    def _plan(self, cls: type) -> InjectionPlan:
        return self._plans.compute_if_absent(cls, lambda: build_plan(cls, self._lifecycle(cls)))

    def _lifecycle(self, cls: type) -> Lifecycle:
        return self._lifecycles.compute_if_absent(cls, lambda: build_lifecycle(cls))

    def _create(self, cls: type[T]) -> T:
        plan = self._plan(cls)
        constructor = plan.constructor

        args, kwargs = self._arguments(cls, constructor.params)
        try:
            instance = constructor.factory(*args, **kwargs)
        except ResolutionError:
            raise
        except Exception as e:
            msg = f"{constructor.description} failed: {e}"
            raise ResolutionError(msg) from e

        for member in plan.members:
            if isinstance(member, FieldInjection):
                point = member.point
                if member.static:
                    self._inject_static(member.owner, point.name, self._assign, member.owner, cls, point)
                else:
                    self._assign(instance, cls, point)
            elif member.static:
                self._inject_static(member.owner, member.name, self._call, cls, member.function, member.params)
            else:
                self._call(cls, member.function, member.params, instance)

        for hook in plan.lifecycle.post_construct:
            try:
                hook(instance)
            except Exception as e:
                msg = f"@post_construct {hook.__qualname__} failed for {cls.__qualname__}: {e}"
                raise LifecycleError(msg) from e

        logger.debug("Created %s", cls.__qualname__)
        return instance

    def _inject_static(self, owner: type, name: str, action: Callable[..., None], *args: Any) -> None:
        key = (owner, name)
        with self._lock:
            if key in self._static_members:
                return
            self._static_members.add(key)
        try:
            action(*args)
        except BaseException:
            with self._lock:
                self._static_members.discard(key)
            raise

    def _call(self, cls: type, function: Any, params: tuple[InjectionPoint, ...], *bound: Any) -> None:
        args, kwargs = self._arguments(cls, params)
        try:
            function(*bound, *args, **kwargs)
        except ResolutionError:
            raise
        except Exception as e:
            msg = f"Injected method {function.__qualname__} failed: {e}"
            raise ResolutionError(msg) from e

    def _arguments(self, cls: type, params: tuple[InjectionPoint, ...]) -> tuple[list[Any], dict[str, Any]]:
        args: list[Any] = []
        kwargs: dict[str, Any] = {}
        for point in params:
            value = self._value(cls, point)
            if point.kind is inspect.Parameter.POSITIONAL_ONLY:
                args.append(value)
            else:
                kwargs[point.name] = value
        return args, kwargs

    def _value(self, cls: type, point: InjectionPoint) -> Any:
        """Resolve one injection point.

        Resolution precedence:
        1. ``Instance[T]``: a lazy handle
        2. type-based injection
        3. default value, when the type is missing, not injectable or has no implementation
        4. error.
        """
        if point.lazy:
            return Instance(self, point.type, point.qualifiers)

        if point.type is EMPTY:
            if point.has_default:
                return point.default
            msg = (
                f"Cannot satisfy parameter '{point.name}' of {cls.__qualname__}: "
                "no annotation and no default value"
            )
            raise UnsatisfiedResolutionError(msg)

        try:
            check_injectable(point.type)
            impl = self._resolver.resolve_one(point.type, point.qualifiers)
        except (InvalidInjectionTargetError, UnsatisfiedResolutionError):
            if point.has_default:
                logger.debug("Using default for '%s' of %s (%s)", point.name, cls.__qualname__, type_name(point.type))
                return point.default
            raise
        return self.instantiate(impl)

    def _assign(self, target: Any, cls: type, point: InjectionPoint) -> None:
        setattr(target, point.name, self._value(cls, point))

    def _destroy_quietly(self, instance: Any) -> None:
        cls = type(instance)
        try:
            hooks = self._lifecycle(cls).pre_destroy
        except LifecycleError:
            logger.exception("Cannot read pre-destroy hooks of %s", cls.__qualname__)
            return
        for hook in hooks:
            try:
                hook(instance)
            except Exception:
                logger.exception("@pre_destroy %s failed for %s", hook.__qualname__, cls.__qualname__)

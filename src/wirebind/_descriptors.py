"""Per-class descriptor tables.

Everything the injector needs to know about a class is read once from its
markers, signatures and annotations and kept in two immutable records:

- :class:`ClassDescriptor`: cheap metadata used during resolution
  (qualifiers, scope, alternative flag). Building it never fails.
- :class:`InjectionPlan`: constructor, injected fields and methods, and the
  lifecycle hooks, all ordered ancestor-first. Building it validates the
  class and raises on any misdeclaration.
"""

from __future__ import annotations

import enum
import inspect
import logging
import re
import sys
from dataclasses import dataclass
from typing import TYPE_CHECKING, Annotated, Any, ClassVar, Final, ForwardRef, get_args, get_origin, get_type_hints

from ._errors import ConstructorResolutionError, InvalidInjectionTargetError, LifecycleError
from ._instance import Instance
from ._markers import SINGLETON, inject, is_marked, marks_of
from ._qualifiers import Qualifier, normalize
from ._types import is_concrete, raw_type


if TYPE_CHECKING:
    from collections.abc import Callable


logger = logging.getLogger(__name__)

PRIMITIVES = frozenset({int, float, complex, bool, str, bytes, bytearray, type(None)})

EMPTY = inspect.Parameter.empty

# textual `inject` marker in an annotation that could not be evaluated
_INJECT_MARK = re.compile(r"\binject\b")


def check_injectable(tp: Any) -> type:
    """Return the raw class of ``tp`` or raise if it can never be injected."""
    cls = raw_type(tp)
    if cls is None:
        msg = f"Cannot inject a synthetic type: {tp!r}"
        raise InvalidInjectionTargetError(msg)
    if issubclass(cls, enum.Enum):
        msg = f"Cannot inject an enum: {cls.__qualname__}"
        raise InvalidInjectionTargetError(msg)
    if cls in PRIMITIVES:
        msg = f"Cannot inject a primitive: {cls.__qualname__}"
        raise InvalidInjectionTargetError(msg)
    if "<locals>" in cls.__qualname__:
        msg = f"Cannot inject a local class: {cls.__qualname__}"
        raise InvalidInjectionTargetError(msg)
    if not cls.__name__.isidentifier():
        msg = f"Cannot inject an anonymous class: {cls.__qualname__!r}"
        raise InvalidInjectionTargetError(msg)
    return cls


@dataclass(frozen=True)
class ClassDescriptor:
    cls: type
    concrete: bool
    qualifiers: frozenset[Qualifier]
    alternative: bool
    scope: Any

    @property
    def singleton(self) -> bool:
        return self.scope is SINGLETON


def describe(cls: type) -> ClassDescriptor:
    marks = marks_of(cls)
    return ClassDescriptor(
        cls=cls,
        concrete=is_concrete(cls),
        qualifiers=frozenset(marks.get("qualifiers", ())),
        alternative=bool(marks.get("alternative")),
        scope=marks.get("scope"),
    )


@dataclass(frozen=True)
class InjectionPoint:
    """One value to inject: a parameter or a field.

    ``lazy`` points receive an :class:`Instance` over ``type`` instead of a
    value.
    """

    name: str
    type: Any
    qualifiers: frozenset[Qualifier]
    lazy: bool = False
    default: Any = EMPTY
    kind: inspect._ParameterKind = inspect.Parameter.KEYWORD_ONLY

    @property
    def has_default(self) -> bool:
        return self.default is not EMPTY


@dataclass(frozen=True)
class Constructor:
    factory: Callable[..., Any]
    params: tuple[InjectionPoint, ...]
    description: str


@dataclass(frozen=True)
class FieldInjection:
    owner: type
    point: InjectionPoint
    static: bool


@dataclass(frozen=True)
class MethodInjection:
    owner: type
    name: str
    function: Callable[..., Any]
    params: tuple[InjectionPoint, ...]
    static: bool


@dataclass(frozen=True)
class Lifecycle:
    post_construct: tuple[Callable[[Any], Any], ...]
    pre_destroy: tuple[Callable[[Any], Any], ...]


@dataclass(frozen=True)
class InjectionPlan:
    cls: type
    constructor: Constructor
    members: tuple[FieldInjection | MethodInjection, ...]
    lifecycle: Lifecycle


def build_plan(cls: type, lifecycle: Lifecycle | None = None) -> InjectionPlan:
    members: list[FieldInjection | MethodInjection] = []
    for level in _ancestry(cls):
        members.extend(_fields_of(level))
        members.extend(_methods_of(level, cls))
    return InjectionPlan(
        cls=cls,
        constructor=select_constructor(cls),
        members=tuple(members),
        lifecycle=lifecycle or build_lifecycle(cls),
    )


def _ancestry(cls: type) -> list[type]:
    """Ancestors first, ``object`` excluded."""
    return [klass for klass in reversed(cls.__mro__) if klass is not object]


def _overridden(name: str, level: type, cls: type) -> bool:
    for klass in cls.__mro__:
        if klass is level:
            return False
        if name in vars(klass):
            return True
    return False


def select_constructor(cls: type) -> Constructor:
    marked: list[Constructor] = []

    init = _own_init(cls)
    if init is not None and is_marked(init, "inject"):
        marked.append(Constructor(cls, _parameters(cls, init, skip_first=True), f"{cls.__qualname__}.__init__"))

    for name, value in vars(cls).items():
        if isinstance(value, classmethod) and is_marked(value, "inject"):
            func = value.__func__
            factory = getattr(cls, name)
            marked.append(Constructor(factory, _parameters(cls, func, skip_first=True), f"{cls.__qualname__}.{name}"))

    if len(marked) > 1:
        names = ", ".join(c.description for c in marked)
        msg = f"More than one marked constructor in {cls.__qualname__}: {names}"
        raise ConstructorResolutionError(msg)
    if marked:
        return marked[0]

    if init is None or _accepts_no_arguments(init):
        return Constructor(cls, (), f"{cls.__qualname__}()")

    msg = f"No usable constructor in {cls.__qualname__}: mark __init__ with @inject or provide a no-argument __init__"
    raise ConstructorResolutionError(msg)


def _own_init(cls: type) -> Callable[..., Any] | None:
    for klass in cls.__mro__:
        if "__init__" in vars(klass):
            if klass is object:
                return None
            return vars(klass)["__init__"]
    return None


def _accepts_no_arguments(func: Callable[..., Any]) -> bool:
    try:
        params = list(inspect.signature(func).parameters.values())[1:]
    except (TypeError, ValueError):
        return False
    return all(p.default is not EMPTY or p.kind in (p.VAR_POSITIONAL, p.VAR_KEYWORD) for p in params)


def _parameters(cls: type, func: Callable[..., Any], *, skip_first: bool) -> tuple[InjectionPoint, ...]:
    sig = inspect.signature(func)
    hints = _get_type_hints(cls, func)
    params = list(sig.parameters.values())
    if skip_first:
        params = params[1:]

    points = []
    for p in params:
        if p.kind in (p.VAR_POSITIONAL, p.VAR_KEYWORD):
            # variadic parameters are never injected
            continue
        ann = hints.get(p.name, EMPTY)
        points.append(injection_point(cls, p.name, ann, default=p.default, kind=p.kind))
    return tuple(points)


def injection_point(
    owner: type,
    name: str,
    annotation: Any,
    *,
    default: Any = EMPTY,
    kind: inspect._ParameterKind = inspect.Parameter.KEYWORD_ONLY,
) -> InjectionPoint:
    if annotation is EMPTY:
        return InjectionPoint(name, EMPTY, normalize(None), default=default, kind=kind)

    base, metadata, _, _ = unwrap(annotation)
    qualifiers = normalize([m for m in metadata if isinstance(m, Qualifier)])

    if get_origin(base) is Instance:
        args = get_args(base)
        if not args:
            msg = f"Instance injection point '{name}' of {owner.__qualname__} needs a type argument"
            raise InvalidInjectionTargetError(msg)
        return InjectionPoint(name, args[0], qualifiers, lazy=True, default=default, kind=kind)

    return InjectionPoint(name, base, qualifiers, default=default, kind=kind)


def unwrap(annotation: Any) -> tuple[Any, list[Any], bool, bool]:
    """Strip ``Annotated``, ``Final`` and ``ClassVar`` layers.

    Returns the bare type, the collected ``Annotated`` metadata and whether
    ``Final`` or ``ClassVar`` was present.
    """
    metadata: list[Any] = []
    final = static = False
    while True:
        origin = get_origin(annotation)
        if origin is Annotated:
            annotation, *extra = get_args(annotation)
            metadata.extend(extra)
        elif origin is ClassVar:
            static = True
            annotation = get_args(annotation)[0]
        elif origin is Final:
            final = True
            annotation = get_args(annotation)[0]
        else:
            return annotation, metadata, final, static


def _get_type_hints(cls: type, func: Callable[..., Any]) -> dict[str, Any]:
    try:
        return get_type_hints(func, include_extras=True)
    except TypeError:
        return {}
    except NameError as exc:
        logger.warning("'%s' name error retrieving %s (%s) type hints", exc.name, cls.__name__, cls.__qualname__)
        return {}


def _own_annotations(klass: type) -> dict[str, Any]:
    own = inspect.get_annotations(klass)
    if not own:
        return {}
    try:
        # resolves forward references, also those nested in Annotated[...]
        hints = get_type_hints(klass, include_extras=True)
    except TypeError:
        return own
    except NameError as exc:
        logger.warning("'%s' name error retrieving %s field annotations", exc.name, klass.__qualname__)
        return {name: _eval_annotation(klass, annotation) for name, annotation in own.items()}
    return {name: hints.get(name, annotation) for name, annotation in own.items()}


def _eval_annotation(klass: type, annotation: Any) -> Any:
    """Evaluate one string annotation, leaving it as is when a name is missing."""
    if not isinstance(annotation, str):
        return annotation
    module = sys.modules.get(klass.__module__)
    globalns = vars(module) if module is not None else {}
    try:
        return eval(annotation, globalns, dict(vars(klass)))
    except NameError:
        return annotation


def _fields_of(level: type) -> list[FieldInjection]:
    fields = []
    for name, annotation in _own_annotations(level).items():
        if isinstance(annotation, str):
            if _INJECT_MARK.search(annotation):
                raise InvalidInjectionTargetError(_unresolved(level, name, annotation))
            continue
        base, metadata, final, static = unwrap(annotation)
        if not any(m is inject for m in metadata):
            continue
        if final:
            msg = f"Cannot inject into final field {level.__qualname__}.{name}"
            raise InvalidInjectionTargetError(msg)
        if isinstance(base, (str, ForwardRef)):
            raise InvalidInjectionTargetError(_unresolved(level, name, base))
        fields.append(FieldInjection(level, injection_point(level, name, annotation), static))
    return fields


def _unresolved(level: type, name: str, annotation: Any) -> str:
    return f"Cannot resolve the type of injected field {level.__qualname__}.{name}: {annotation!r}"


def _methods_of(level: type, cls: type) -> list[MethodInjection]:
    methods = []
    for name, value in vars(level).items():
        if name == "__init__" or isinstance(value, classmethod):
            continue
        if not is_marked(value, "inject") or _overridden(name, level, cls):
            continue
        static = isinstance(value, staticmethod)
        func = value.__func__ if static else value
        if not callable(func):
            continue
        methods.append(MethodInjection(level, name, func, _parameters(level, func, skip_first=not static), static))
    return methods


def build_lifecycle(cls: type) -> Lifecycle:
    return Lifecycle(
        post_construct=tuple(_hooks(cls, "post_construct")),
        pre_destroy=tuple(_hooks(cls, "pre_destroy")),
    )


def _hooks(cls: type, kind: str) -> list[Callable[[Any], Any]]:
    hooks = []
    for level in _ancestry(cls):
        found = [
            (name, value)
            for name, value in vars(level).items()
            if is_marked(value, kind) and not _overridden(name, level, cls)
        ]
        if len(found) > 1:
            names = ", ".join(name for name, _ in found)
            msg = f"More than one @{kind} method in {level.__qualname__}: {names}"
            raise LifecycleError(msg)
        for name, value in found:
            if not inspect.isfunction(value) or not _accepts_no_arguments(value):
                msg = f"@{kind} method {level.__qualname__}.{name} must be an instance method without parameters"
                raise LifecycleError(msg)
            hooks.append(value)
    return hooks


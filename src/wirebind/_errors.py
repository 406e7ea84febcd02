from __future__ import annotations


class ResolutionError(RuntimeError):
    """Base class for every failure raised while building an object graph."""


class InvalidInjectionTargetError(ResolutionError):
    pass


class ConstructorResolutionError(ResolutionError):
    pass


class UnsatisfiedResolutionError(ResolutionError):
    pass


class AmbiguousResolutionError(ResolutionError):
    pass


class CircularDependencyError(ResolutionError):
    pass


class LifecycleError(ResolutionError):
    pass


class ScanError(ResolutionError):
    """Raised when the class universe cannot be enumerated completely."""

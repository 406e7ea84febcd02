from __future__ import annotations

from dataclasses import dataclass, field

from ._cache import DEFAULT_MAX_SIZE


@dataclass(frozen=True)
class InjectorConfig:
    """Injector settings.

    - ``packages``: package prefixes whose classes form the type universe.
    - ``alternatives``: ``@alternative`` classes enabled from the start.
    - ``bindings_only``: resolve abstract types through explicit bindings
      only, never through the scanned universe.
    - ``cache_size``: bound of each internal memoizing cache.
    """

    packages: tuple[str, ...] = ()
    alternatives: tuple[type, ...] = field(default=())
    bindings_only: bool = False
    cache_size: int = DEFAULT_MAX_SIZE

    def __post_init__(self) -> None:
        if isinstance(self.packages, str):
            msg = "packages must be a sequence of package names, not a single string"
            raise TypeError(msg)
        object.__setattr__(self, "packages", tuple(self.packages))
        object.__setattr__(self, "alternatives", tuple(self.alternatives))
        if self.cache_size <= 0:
            msg = f"cache_size must be positive, got {self.cache_size}"
            raise ValueError(msg)

from __future__ import annotations

import threading
from collections import OrderedDict
from typing import TYPE_CHECKING, Generic, TypeVar


if TYPE_CHECKING:
    from collections.abc import Callable, Hashable

K = TypeVar("K", bound="Hashable")
V = TypeVar("V")

DEFAULT_MAX_SIZE = 10_000


class Cache(Generic[K, V]):
    """Thread-safe memoizing cache with LRU eviction.

    - ``compute_if_absent`` runs the supplier at most once per key, even when
      several threads ask for the same missing key at the same time.
    - ``None`` is a legitimate cached value.
    - invalidation never resets the hit/miss counters.
    """

    def __init__(self, max_size: int = DEFAULT_MAX_SIZE) -> None:
        if max_size <= 0:
            msg = f"max_size must be positive, got {max_size}"
            raise ValueError(msg)
        self._max_size = max_size
        self._entries: OrderedDict[K, V] = OrderedDict()
        self._pending: dict[K, threading.Lock] = {}
        self._lock = threading.RLock()
        self._hits = 0
        self._misses = 0

    def compute_if_absent(self, key: K, supplier: Callable[[], V]) -> V:
        with self._lock:
            if key in self._entries:
                return self._hit(key)
            key_lock = self._pending.setdefault(key, threading.Lock())

        with key_lock:
            with self._lock:
                # another thread may have filled the entry while we waited
                if key in self._entries:
                    return self._hit(key)
                self._misses += 1

            try:
                value = supplier()
            except BaseException:
                with self._lock:
                    self._pending.pop(key, None)
                raise

            with self._lock:
                self._entries[key] = value
                self._entries.move_to_end(key)
                while len(self._entries) > self._max_size:
                    self._entries.popitem(last=False)
                self._pending.pop(key, None)
            return value

    def _hit(self, key: K) -> V:
        self._hits += 1
        self._entries.move_to_end(key)
        return self._entries[key]

    @property
    def hit_count(self) -> int:
        return self._hits

    @property
    def miss_count(self) -> int:
        return self._misses

    @property
    def hit_rate(self) -> float:
        with self._lock:
            total = self._hits + self._misses
            return self._hits / total if total else 0.0

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, key: object) -> bool:
        with self._lock:
            return key in self._entries

    def invalidate(self, key: K) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def invalidate_all(self, predicate: Callable[[K], bool]) -> None:
        with self._lock:
            for key in [k for k in self._entries if predicate(k)]:
                del self._entries[key]

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

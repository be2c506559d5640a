"""Time-bounded in-process cache for read-mostly lookups"""
import threading
from collections import OrderedDict
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Generic, Hashable, Optional, Tuple, TypeVar

V = TypeVar("V")

_MISSING = object()


class TTLCache(Generic[V]):
    """
    Entries expire a fixed time after they are written.

    When full, the least recently used entry is evicted. Writers that change
    the underlying data must call invalidate() or clear().
    """

    def __init__(
        self,
        ttl_seconds: int,
        max_entries: int,
        clock: Optional[Callable[[], datetime]] = None
    ):
        self._ttl = timedelta(seconds=ttl_seconds)
        self._max_entries = max_entries
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._entries: "OrderedDict[Hashable, Tuple[datetime, Any]]" = OrderedDict()
        self._lock = threading.Lock()

    def get(self, key: Hashable) -> Any:
        """Return the cached value or the _MISSING sentinel"""
        with self._lock:
            item = self._entries.get(key)
            if item is None:
                return _MISSING
            written_at, value = item
            if self._clock() - written_at > self._ttl:
                del self._entries[key]
                return _MISSING
            self._entries.move_to_end(key)
            return value

    def set(self, key: Hashable, value: V) -> None:
        with self._lock:
            self._entries[key] = (self._clock(), value)
            self._entries.move_to_end(key)
            while len(self._entries) > self._max_entries:
                self._entries.popitem(last=False)

    def get_or_load(self, key: Hashable, loader: Callable[[], Optional[V]]) -> Optional[V]:
        """
        Return the cached value, loading and caching it on a miss.

        None results are not cached so that newly created records become
        visible on the next lookup.
        """
        value = self.get(key)
        if value is not _MISSING:
            return value
        value = loader()
        if value is not None:
            self.set(key, value)
        return value

    def invalidate(self, key: Hashable) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

import logging
import time
from typing import Any, Callable, Dict, Generic, Hashable, Optional, Tuple, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class TTLCache(Generic[T]):
    """
    In-process cache whose entries expire a fixed number of seconds after they are set.

    There is no size bound and no LRU; an entry that is never read again is
    dropped the next time the cache is inspected after its deadline.

    `clear()` bumps `generation`. A caller that read the generation before an
    await can pass it back to `set()`, which then refuses to store a value
    computed before the cache was cleared.
    """

    def __init__(self, ttl_seconds: float, clock: Callable[[], float] = time.monotonic, name: str = "cache"):
        self.ttl_seconds = ttl_seconds
        self.name = name
        self._clock = clock
        self._entries: Dict[Hashable, Tuple[T, float]] = {}
        self._generation = 0

    @property
    def generation(self) -> int:
        return self._generation

    def get(self, key: Hashable, default: Optional[T] = None) -> Optional[T]:
        entry = self._entries.get(key)
        if entry is None:
            return default
        value, expires_at = entry
        if self._clock() >= expires_at:
            del self._entries[key]
            logger.debug(f"{self.name}: entry {key!r} expired")
            return default
        return value

    def set(self, key: Hashable, value: T, generation: Optional[int] = None) -> bool:
        """Store `value`; returns False when the cache was cleared since `generation`."""
        if generation is not None and generation != self._generation:
            logger.debug(f"{self.name}: dropping stale value for {key!r}")
            return False
        self._entries[key] = (value, self._clock() + self.ttl_seconds)
        return True

    def delete(self, key: Hashable) -> None:
        self._entries.pop(key, None)

    def clear(self) -> None:
        self._entries.clear()
        self._generation += 1

    def _purge(self) -> None:
        now = self._clock()
        for key in [k for k, (_, exp) in self._entries.items() if now >= exp]:
            del self._entries[key]

    def __contains__(self, key: Hashable) -> bool:
        return self.get(key, default=None) is not None

    def __len__(self) -> int:
        self._purge()
        return len(self._entries)

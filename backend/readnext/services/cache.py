"""
Result cache: a TTL key/value backend plus per-key request coalescing.
"""
import logging
import threading
import time
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, Optional, Tuple, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CacheBackend(ABC):
    @abstractmethod
    def get(self, key: str, default: Any = None) -> Any:
        raise NotImplementedError

    @abstractmethod
    def set(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        """Store ``value`` for ``ttl`` seconds; None uses the backend default, 0 never expires."""
        raise NotImplementedError

    @abstractmethod
    def delete(self, key: str) -> None:
        raise NotImplementedError


class MemoryCache(CacheBackend):
    """In-process cache with per-entry expiry and a bounded size (oldest entry evicted first)."""

    def __init__(
        self,
        default_ttl: Optional[float] = 3600,
        max_items: int = 10000,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.default_ttl = default_ttl
        self.max_items = max_items
        self._clock = clock
        self._lock = threading.Lock()
        # key -> (value, stored_at, expires_at or None)
        self._entries: Dict[str, Tuple[Any, float, Optional[float]]] = {}

    def get(self, key: str, default: Any = None) -> Any:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return default
            value, _, expires_at = entry
            if expires_at is not None and self._clock() >= expires_at:
                del self._entries[key]
                return default
            return value

    def set(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        ttl = self.default_ttl if ttl is None else ttl
        now = self._clock()
        with self._lock:
            if key not in self._entries and len(self._entries) >= self.max_items:
                oldest_key = min(self._entries, key=lambda k: self._entries[k][1])
                del self._entries[oldest_key]
            self._entries[key] = (value, now, now + ttl if ttl else None)

    def delete(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


class _Flight:
    def __init__(self):
        self.done = threading.Event()
        self.result: Any = None
        self.error: Optional[BaseException] = None


class SingleFlight:
    """
    Coalesces concurrent calls for the same key.

    The first caller runs the function; callers arriving while it is in
    flight wait and receive the same result (or the same exception).
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._flights: Dict[str, _Flight] = {}

    def do(self, key: str, fn: Callable[[], T]) -> T:
        with self._lock:
            flight = self._flights.get(key)
            leader = flight is None
            if leader:
                flight = _Flight()
                self._flights[key] = flight

        if not leader:
            logger.debug("Joining in-flight call for %s", key)
            flight.done.wait()
            if flight.error is not None:
                raise flight.error
            return flight.result

        try:
            flight.result = fn()
            return flight.result
        except BaseException as e:
            flight.error = e
            raise
        finally:
            with self._lock:
                self._flights.pop(key, None)
            flight.done.set()

    def in_flight(self, key: str) -> bool:
        with self._lock:
            return key in self._flights

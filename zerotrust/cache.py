"""Key/value cache stores shared by the detectors and the threat aggregator.

Provides:
- MemoryCache: the default in-process CacheStore
- RequestCoalescer: shares one pending lookup between concurrent callers

Expiry is decided by the consumer. Detectors stamp each value with its own
check time and evict lazily on the next read, so the store itself only
keeps values.
"""

import asyncio
import logging
import threading
from typing import Any, Awaitable, Callable, Dict, Optional, Protocol, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CacheStore(Protocol):
    """Interface consumed by reputation detectors and the threat aggregator."""

    def get(self, key: str) -> Optional[Any]: ...

    def set(self, key: str, value: Any) -> None: ...

    def delete(self, key: str) -> None: ...

    def clear(self) -> None: ...


class MemoryCache:
    """Thread-safe dict behind the CacheStore interface."""

    def __init__(self) -> None:
        self._entries: Dict[str, Any] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[Any]:
        with self._lock:
            return self._entries.get(key)

    def set(self, key: str, value: Any) -> None:
        with self._lock:
            self._entries[key] = value

    def delete(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


class RequestCoalescer:
    """
    Collapse concurrent lookups for the same key into a single call.

    The first caller for a key installs a pending task; callers arriving
    while it is in flight await the same task instead of starting another.
    """

    def __init__(self) -> None:
        self._pending: Dict[str, "asyncio.Future[Any]"] = {}

    async def run(self, key: str, fetch_fn: Callable[[], Awaitable[T]]) -> T:
        pending = self._pending.get(key)
        if pending is not None:
            logger.debug(f"Joining in-flight lookup for {key}")
            return await asyncio.shield(pending)

        task = asyncio.ensure_future(fetch_fn())
        self._pending[key] = task
        try:
            return await asyncio.shield(task)
        finally:
            if self._pending.get(key) is task:
                del self._pending[key]

# core/cache.py
"""
Single-value in-process cache with a TTL, safe to share between concurrent
requests. Used for read-mostly catalogs such as the active label list.
"""

import asyncio
import time
from typing import Awaitable, Callable, Generic, Optional, TypeVar

T = TypeVar('T')


class SimpleCache(Generic[T]):
    """
    Usage:
        catalog = SimpleCache[list](ttl_seconds=60)
        labels = await catalog.get_or_fetch(load_labels)
    """

    def __init__(self, ttl_seconds: float):
        self.ttl_seconds = ttl_seconds
        self._data: Optional[T] = None
        self._loaded_at: Optional[float] = None
        self._lock = asyncio.Lock()

    def _fresh(self) -> bool:
        return (
            self._loaded_at is not None
            and time.monotonic() - self._loaded_at < self.ttl_seconds
        )

    async def get_or_fetch(self, fetch_func: Callable[[], Awaitable[T]]) -> T:
        """Return the cached value, loading it with `fetch_func` once it has expired."""
        if self._fresh():
            return self._data

        async with self._lock:
            # Another request may have refreshed it while we waited
            if self._fresh():
                return self._data
            self._data = await fetch_func()
            self._loaded_at = time.monotonic()
            return self._data

    async def invalidate(self):
        async with self._lock:
            self._data = None
            self._loaded_at = None

"""
Caching source for lazytree.

Provides a transparent caching layer that can wrap any tree source.
"""

import asyncio
from typing import Any, Awaitable, Callable, Dict, Optional, Sequence, Tuple

from cachetools import TTLCache

from ..core import AsyncTreeSource


class CachingTreeSource(AsyncTreeSource):
    """
    Caching layer for any tree source.

    Caches ``children`` and ``trail`` results per id and uses
    Future-based locking so concurrent requests for the same id share a
    single call to the wrapped source. The cache belongs to this
    instance: handing the loader a new CachingTreeSource starts cold.

    Example:
        source = CachingTreeSource(ApiTreeSource(client), max_size=50000)
        loader.materialize(source, state)
    """

    def __init__(self, base_source: Any, max_size: int = 10000, ttl: float = 300.0):
        """
        Initialize caching source.

        Args:
            base_source: The underlying tree source to wrap
            max_size: Maximum number of entries in cache
            ttl: Time-to-live for cache entries in seconds
        """
        super().__init__()
        self._source = base_source
        self._cache = TTLCache(maxsize=max_size, ttl=ttl)
        self._in_flight: Dict[Tuple[str, Optional[str]], asyncio.Future] = {}

        # Statistics
        self.cache_hits = 0
        self.cache_misses = 0
        self.concurrent_waits = 0

    @property
    def base_source(self) -> Any:
        return self._source

    async def children(self, node_id: Optional[str]) -> Sequence[Any]:
        return await self._cached(('children', node_id), self._source.children, node_id)

    async def trail(self, node_id: str) -> Sequence[Any]:
        return await self._cached(('trail', node_id), self._source.trail, node_id)

    async def _cached(self, key: Tuple[str, Optional[str]],
                      fetch: Callable[[Any], Awaitable[Sequence[Any]]], node_id: Any) -> Tuple[Any, ...]:
        """
        Look up a result, joining an in-flight call or fetching it.

        1. Wait for a call already in progress for the same key
        2. Check the cache
        3. Call the wrapped source and share the result
        """
        in_flight = self._in_flight.get(key)
        if in_flight is not None:
            self.concurrent_waits += 1
            return await asyncio.shield(in_flight)

        if key in self._cache:
            self.cache_hits += 1
            return self._cache[key]

        self.cache_misses += 1
        future = asyncio.get_running_loop().create_future()
        self._in_flight[key] = future
        try:
            result = tuple(await fetch(node_id))
        except asyncio.CancelledError:
            future.cancel()
            raise
        except Exception as error:
            future.set_exception(error)
            # Retrieved here so an unawaited failure is not reported twice
            future.exception()
            raise
        else:
            self._cache[key] = result
            future.set_result(result)
            return result
        finally:
            del self._in_flight[key]

    def get_cache_stats(self) -> dict:
        """
        Get cache statistics for monitoring and debugging.
        """
        total_requests = self.cache_hits + self.cache_misses
        hit_rate = self.cache_hits / total_requests if total_requests > 0 else 0

        return {
            'cache_hits': self.cache_hits,
            'cache_misses': self.cache_misses,
            'hit_rate': hit_rate,
            'concurrent_waits': self.concurrent_waits,
            'cache_size': len(self._cache),
            'max_size': self._cache.maxsize,
            'ttl': self._cache.ttl,
        }

    async def get_stats(self) -> dict:
        return self.get_cache_stats()

    def clear_cache(self) -> None:
        """
        Clear all cached entries and reset statistics.
        """
        self._cache.clear()
        self.cache_hits = 0
        self.cache_misses = 0
        self.concurrent_waits = 0

    async def close(self):
        self.clear_cache()
        if hasattr(self._source, 'close'):
            await self._source.close()

    def __repr__(self) -> str:
        return f"CachingTreeSource({self._source!r})"

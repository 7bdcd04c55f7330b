"""
Application Cache

Read-through cache for procedure responses, backed by a KeyValueStore.

- get() returns None on a miss, on store failure and on undecodable data
- set() is awaited by the caller but never fails the request
- cache_it() wraps a procedure: hit -> Hit without running the handler,
  miss -> run handler, store the result if ok and the call opted in

The store is an availability optimisation only; nothing here raises
StoreUnavailable to the caller.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional

from pipecache.cache.canonical import canonicalize
from pipecache.cache.config import CacheConfig, CacheTTL, get_cache_config
from pipecache.cache.keys import build_cache_key
from pipecache.cache.store import (
    KeyValueStore,
    RedisStore,
    StoreUnavailable,
    deserialize_value,
    serialize_value,
)
from pipecache.pipeline import Call, Hit, Middleware, Next, Result


logger = logging.getLogger(__name__)


@dataclass
class CacheStats:
    """Cache operation statistics."""
    hits: int = 0
    misses: int = 0
    errors: int = 0
    writes: int = 0
    latency_samples: List[float] = field(default_factory=list)

    @property
    def hit_rate(self) -> float:
        total = self.hits + self.misses
        return self.hits / total if total > 0 else 0.0

    @property
    def avg_latency_ms(self) -> float:
        if not self.latency_samples:
            return 0.0
        return sum(self.latency_samples[-100:]) / len(self.latency_samples[-100:]) * 1000

    def record_latency(self, seconds: float):
        """Record a latency sample."""
        self.latency_samples.append(seconds)
        # Keep only last 1000 samples
        if len(self.latency_samples) > 1000:
            self.latency_samples = self.latency_samples[-1000:]


class ApplicationCache:
    """
    Procedure response cache over a key-value store.

    Features:
    - JSON encoding of payloads
    - Graceful degradation (store errors read as misses)
    - Statistics for monitoring
    """

    def __init__(
        self,
        store: Optional[KeyValueStore] = None,
        config: Optional[CacheConfig] = None,
    ):
        self.config = config or get_cache_config()
        self.store = store if store is not None else RedisStore(self.config)
        self._stats = CacheStats()

    @property
    def namespace(self) -> str:
        return self.config.namespace

    async def get(self, key: str) -> Optional[Any]:
        """
        Get value from cache.

        Returns None if:
        - Key doesn't exist or has expired
        - Cache is disabled
        - The store is unavailable
        - Deserialization fails
        """
        if not self.config.enabled:
            return None

        start_time = time.time()

        try:
            data = await self.store.get(key)
        except StoreUnavailable as e:
            self._stats.errors += 1
            logger.warning(f"Store unavailable, treating {key} as miss: {e}")
            return None
        except Exception as e:
            self._stats.errors += 1
            logger.error(f"Cache get error for {key}: {e!r}")
            return None

        self._stats.record_latency(time.time() - start_time)

        if data is None:
            self._stats.misses += 1
            return None

        try:
            value = deserialize_value(data)
        except ValueError as e:
            self._stats.errors += 1
            logger.error(f"Cache decode error for {key}: {e}")
            return None

        self._stats.hits += 1
        return value

    async def set(self, key: str, value: Any, ttl_seconds: int = CacheTTL.DEFAULT) -> bool:
        """
        Encode and store a value.

        Returns True on success, False on failure or when nothing was written.
        """
        if not self.config.enabled or ttl_seconds <= 0:
            return False

        start_time = time.time()

        try:
            await self.store.set(key, serialize_value(value), ttl_seconds)
        except StoreUnavailable as e:
            self._stats.errors += 1
            logger.warning(f"Store unavailable, cache set failed for {key}: {e}")
            return False
        except (TypeError, ValueError) as e:
            self._stats.errors += 1
            logger.error(f"Cache encode error for {key}: {e}")
            return False
        except Exception as e:
            self._stats.errors += 1
            logger.error(f"Cache set error for {key}: {e!r}")
            return False

        self._stats.record_latency(time.time() - start_time)
        self._stats.writes += 1
        return True

    def get_stats(self) -> Dict:
        """Get cache statistics."""
        return {
            "enabled": self.config.enabled,
            "hits": self._stats.hits,
            "misses": self._stats.misses,
            "errors": self._stats.errors,
            "writes": self._stats.writes,
            "hit_rate_percent": round(self._stats.hit_rate * 100, 2),
            "avg_latency_ms": round(self._stats.avg_latency_ms, 2),
        }


# Global instance
_application_cache: Optional[ApplicationCache] = None


def get_application_cache() -> ApplicationCache:
    """Get or create the global application cache (Redis-backed)."""
    global _application_cache
    if _application_cache is None:
        _application_cache = ApplicationCache()
    return _application_cache


def set_application_cache(cache: Optional[ApplicationCache]) -> None:
    """Replace the global application cache (None resets it)."""
    global _application_cache
    _application_cache = cache


def cache_it(
    key: Optional[str] = None,
    ttl: Optional[int] = None,
    exclude_keys: Optional[Iterable[str]] = None,
    cache: Optional[ApplicationCache] = None,
) -> Middleware:
    """
    Middleware caching a procedure's response in the application cache.

    Args:
        key: Replaces the procedure path segment of the cache key, used verbatim
        ttl: Seconds to keep the response (default 180)
        exclude_keys: Input fields ignored when deriving the key
        cache: ApplicationCache to use (defaults to the global one)
    """
    if ttl is None:
        ttl = CacheTTL.DEFAULT
    excluded = frozenset(exclude_keys or ())

    async def middleware(call: Call, next_: Next) -> Result:
        app_cache = cache or get_application_cache()
        cache_key = build_cache_key(
            app_cache.namespace,
            key or call.path,
            canonicalize(call.input, excluded),
            normalize=not key,
        )

        cached = await app_cache.get(cache_key)
        if cached is not None:
            logger.debug(f"Cache hit: {cache_key}")
            return Hit(cached)

        result = await next_(call)
        # None reads back as a miss, so storing it would only rewrite the entry
        if (
            result.ok
            and not isinstance(result, Hit)
            and result.data is not None
            and call.ctx.cache.can_cache
        ):
            # Let the write land even if the caller goes away
            await asyncio.shield(app_cache.set(cache_key, result.data, ttl))

        return result

    return middleware

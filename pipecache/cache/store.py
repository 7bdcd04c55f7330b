"""
Key-Value Stores

Backends for the application cache. A store only moves strings with an
expiry; encoding lives in serialize_value/deserialize_value.

- RedisStore: redis.asyncio with a connection pool and circuit breaker
- InMemoryStore: expiry-aware dict for tests and local development

Stores raise StoreUnavailable on backend failure. Turning that into a
cache miss is the ApplicationCache's job.
"""

import asyncio
import json
import logging
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, Dict, Optional, Protocol, Tuple, runtime_checkable

from redis.asyncio import ConnectionPool, Redis
from redis.exceptions import RedisError

from pipecache.cache.config import CacheConfig, get_cache_config


logger = logging.getLogger(__name__)


class StoreUnavailable(Exception):
    """The key-value store could not serve a get or set."""


@runtime_checkable
class KeyValueStore(Protocol):
    async def get(self, key: str) -> Optional[str]: ...
    async def set(self, key: str, value: str, ttl_seconds: int) -> None: ...


# =============================================================================
# Serialization
# =============================================================================

def serialize_value(value: Any) -> str:
    """
    Serialize a Python value to a string for caching.

    Uses JSON with default handler for non-serializable types.
    """
    def default_handler(obj):
        if hasattr(obj, "isoformat"):
            return obj.isoformat()
        if hasattr(obj, "model_dump"):
            return obj.model_dump()
        if hasattr(obj, "__dict__"):
            return obj.__dict__
        if isinstance(obj, (set, frozenset)):
            return sorted(obj, key=str)
        return str(obj)

    return json.dumps(value, default=default_handler, ensure_ascii=False)


def deserialize_value(data: Optional[str]) -> Any:
    """Deserialize a cached string back to a Python value."""
    if not data:
        return None
    return json.loads(data)


# =============================================================================
# Circuit Breaker
# =============================================================================

@dataclass
class CircuitBreakerState:
    """Circuit breaker state tracking."""
    failures: int = 0
    last_failure: float = 0.0
    is_open: bool = False
    opened_at: float = 0.0


class CircuitBreaker:
    """
    Circuit breaker for the Redis connection.

    Fails fast after `threshold` consecutive failures, then lets requests
    through again once `timeout` seconds have passed.
    """

    def __init__(
        self,
        threshold: int = 5,
        timeout: int = 60,
    ):
        self.threshold = threshold
        self.timeout = timeout
        self.state = CircuitBreakerState()
        self._lock = asyncio.Lock()

    async def is_available(self) -> bool:
        """Check if circuit allows requests."""
        if not self.state.is_open:
            return True

        if time.time() - self.state.opened_at >= self.timeout:
            async with self._lock:
                # Half-open: let the next request probe Redis
                self.state.is_open = False
                self.state.failures = 0
                logger.info("Circuit breaker closed, allowing requests")
            return True

        return False

    async def record_success(self):
        """Record successful operation."""
        async with self._lock:
            self.state.failures = 0
            self.state.is_open = False

    async def record_failure(self):
        """Record failed operation."""
        async with self._lock:
            self.state.failures += 1
            self.state.last_failure = time.time()

            if self.state.failures >= self.threshold:
                self.state.is_open = True
                self.state.opened_at = time.time()
                logger.warning(
                    f"Circuit breaker opened after {self.state.failures} failures. "
                    f"Will retry in {self.timeout} seconds."
                )


# =============================================================================
# Redis
# =============================================================================

class RedisStore:
    """
    Redis-backed store.

    Connects lazily on first use. Every backend error, including an open
    circuit, surfaces as StoreUnavailable.
    """

    def __init__(
        self,
        config: Optional[CacheConfig] = None,
        redis: Optional[Redis] = None,
    ):
        self.config = config or get_cache_config()
        self._pool: Optional[ConnectionPool] = None
        self._redis: Optional[Redis] = redis
        self._circuit_breaker = CircuitBreaker(
            threshold=self.config.circuit_breaker_threshold,
            timeout=self.config.circuit_breaker_timeout,
        ) if self.config.circuit_breaker_enabled else None
        self._lock = asyncio.Lock()

    async def initialize(self):
        """Initialize Redis connection pool."""
        if self._redis is not None:
            return

        async with self._lock:
            if self._redis is not None:
                return

            self._pool = ConnectionPool.from_url(
                self.config.redis_url,
                max_connections=self.config.redis_max_connections,
                socket_timeout=self.config.redis_socket_timeout,
                socket_connect_timeout=self.config.redis_connect_timeout,
                decode_responses=True,
            )
            self._redis = Redis(connection_pool=self._pool)
            logger.info(f"Redis store initialized: {self.config.redis_url}")

    async def close(self):
        """Close Redis connection pool."""
        if self._redis is not None:
            await self._redis.aclose()
        if self._pool is not None:
            await self._pool.disconnect()
        self._redis = None
        self._pool = None
        logger.info("Redis store closed")

    @asynccontextmanager
    async def _with_circuit_breaker(self):
        """Context manager for circuit breaker pattern."""
        if self._circuit_breaker and not await self._circuit_breaker.is_available():
            raise StoreUnavailable("Circuit breaker is open")

        try:
            yield
        except RedisError as e:
            if self._circuit_breaker:
                await self._circuit_breaker.record_failure()
            raise StoreUnavailable(str(e)) from e

        if self._circuit_breaker:
            await self._circuit_breaker.record_success()

    async def get(self, key: str) -> Optional[str]:
        await self.initialize()
        async with self._with_circuit_breaker():
            return await self._redis.get(key)

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        await self.initialize()
        async with self._with_circuit_breaker():
            await self._redis.set(key, value, ex=ttl_seconds)


# =============================================================================
# In-memory
# =============================================================================

class InMemoryStore:
    """
    Process-local store with TTL expiry.

    Expired entries are dropped lazily on read.
    """

    def __init__(self, clock=time.monotonic):
        self._clock = clock
        self._data: Dict[str, Tuple[str, float]] = {}

    async def get(self, key: str) -> Optional[str]:
        entry = self._data.get(key)
        if entry is None:
            return None

        value, expires_at = entry
        if self._clock() >= expires_at:
            del self._data[key]
            return None
        return value

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        self._data[key] = (value, self._clock() + ttl_seconds)

    def __len__(self) -> int:
        return len(self._data)

    def __contains__(self, key: str) -> bool:
        return key in self._data

"""
Pytest Configuration and Shared Fixtures

Provides in-memory collaborators (store, purger, preference source)
and execution contexts shared by all test modules.
"""

import asyncio
from typing import Any, Dict, List, Optional

import pytest

from pipecache.cache.application import ApplicationCache
from pipecache.cache.config import CacheConfig
from pipecache.cache.store import InMemoryStore, StoreUnavailable
from pipecache.context import CacheContext, ExecutionContext, SessionUser
from pipecache.preferences.sources import HiddenTags
from pipecache.utils.config import Settings


# ============================================================================
# Fakes
# ============================================================================

class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, now: float = 1_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


class FailingStore:
    """Store whose backend is down (StoreUnavailable unless another error is given)."""

    def __init__(
        self,
        fail_get: bool = True,
        fail_set: bool = True,
        error: Optional[Exception] = None,
    ):
        self.fail_get = fail_get
        self.fail_set = fail_set
        self.error = error or StoreUnavailable("connection refused")
        self.data: Dict[str, str] = {}

    async def get(self, key: str) -> Optional[str]:
        if self.fail_get:
            raise self.error
        return self.data.get(key)

    async def set(self, key: str, value: str, ttl_seconds: int) -> None:
        if self.fail_set:
            raise self.error
        self.data[key] = value


class RecordingPurger:
    """Purger that records every purge call."""

    is_enabled = True

    def __init__(self, result: bool = True, error: Optional[Exception] = None):
        self.result = result
        self.error = error
        self.calls: List[List[str]] = []

    async def purge(self, tags) -> bool:
        self.calls.append(list(tags))
        if self.error:
            raise self.error
        return self.result


class FakePreferenceSource:
    """
    Preference source backed by dicts keyed on user id.

    Records (method, user_id) for every lookup and the peak number of
    lookups in flight at once.
    """

    def __init__(
        self,
        tags: Optional[Dict[Any, HiddenTags]] = None,
        users: Optional[Dict[Any, List[int]]] = None,
        images: Optional[Dict[Any, List[int]]] = None,
        error: Optional[Exception] = None,
    ):
        self.tags = tags or {}
        self.users = users or {}
        self.images = images or {}
        self.error = error
        self.calls: List[tuple] = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def _lookup(self, name: str, user_id, table: dict, default):
        self.calls.append((name, user_id))
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(0)
            if self.error:
                raise self.error
            return table.get(user_id, default)
        finally:
            self.in_flight -= 1

    async def get_hidden_tags(self, user_id) -> HiddenTags:
        return await self._lookup("tags", user_id, self.tags, HiddenTags())

    async def get_hidden_users(self, user_id) -> List[int]:
        return await self._lookup("users", user_id, self.users, [])

    async def get_hidden_images(self, user_id) -> List[int]:
        return await self._lookup("images", user_id, self.images, [])


# ============================================================================
# Fixtures
# ============================================================================

@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def store(clock) -> InMemoryStore:
    return InMemoryStore(clock=clock)


@pytest.fixture
def cache_config() -> CacheConfig:
    return CacheConfig(namespace="trpc", enabled=True)


@pytest.fixture
def app_cache(store, cache_config) -> ApplicationCache:
    return ApplicationCache(store=store, config=cache_config)


@pytest.fixture
def prod_settings() -> Settings:
    return Settings(ENVIRONMENT="production", UNAUTHENTICATED_LIST_NSFW=False)


@pytest.fixture
def dev_settings() -> Settings:
    return Settings(ENVIRONMENT="development", UNAUTHENTICATED_LIST_NSFW=False)


@pytest.fixture
def cacheable_ctx() -> ExecutionContext:
    """Anonymous call that opted in to caching."""
    return ExecutionContext(cache=CacheContext(can_cache=True))


@pytest.fixture
def nsfw_user() -> SessionUser:
    return SessionUser(id=42, username="viewer", show_nsfw=True)


@pytest.fixture
def sfw_user() -> SessionUser:
    return SessionUser(id=7, username="cautious", show_nsfw=False)


@pytest.fixture
def counting_handler():
    """Handler factory returning (handler, calls) where calls collects inputs."""
    def _create(payload: Any = None, error: Optional[Exception] = None):
        calls: List[dict] = []

        async def handler(input, ctx):
            calls.append(input)
            if error:
                raise error
            return payload if payload is not None else {"items": [1, 2, 3], "input": input}

        return handler, calls
    return _create


# ============================================================================
# Test Markers
# ============================================================================

def pytest_configure(config):
    """Configure custom markers."""
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests"
    )

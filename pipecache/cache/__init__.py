"""
pipecache Caching Layer

Two-tier response caching for procedures:
- Layer 1: Browser cache (max-age, bounded to a minute in production)
- Layer 2: Edge cache (CDN via Cache-Control + Cache-Tag headers)
- Layer 3: Application cache (Redis, read-through with TTL expiry)

Key components:
- canonicalize / build_cache_key: Order-independent cache keys
- ApplicationCache / cache_it: Redis-backed read-through middleware
- edge_cache_it: CDN directive annotation (falls back to cache_it locally)
- purge_on_success / CDNPurger: Tag-based purge after mutations
- CacheHeadersBuilder: HTTP cache header management

Usage:
    @public.use(cache_it(ttl=60, exclude_keys=["cursor"])).query("tag.getAll")
    async def get_all_tags(input, ctx):
        ...

    @public.use(edge_cache_it(tags=lambda input: [f"image-{input['id']}"])).query("image.get")
    async def get_image(input, ctx):
        ...

    @protected.use(purge_on_success(["images"])).mutation("image.update")
    async def update_image(input, ctx):
        ...
"""

from pipecache.cache.config import CacheConfig, CacheTTL, get_cache_config
from pipecache.cache.canonical import canonicalize
from pipecache.cache.keys import build_cache_key, hashify_object
from pipecache.cache.store import (
    InMemoryStore,
    KeyValueStore,
    RedisStore,
    StoreUnavailable,
    serialize_value,
    deserialize_value,
)
from pipecache.cache.application import (
    ApplicationCache,
    cache_it,
    get_application_cache,
    set_application_cache,
)
from pipecache.cache.edge import edge_cache_it, slugit
from pipecache.cache.headers import (
    CacheHeadersBuilder,
    apply_cache_directive,
    directive_headers,
)
from pipecache.cache.invalidation import (
    CDNPurger,
    Purger,
    get_cdn_purger,
    purge_on_success,
)

__all__ = [
    # Config
    "CacheConfig",
    "CacheTTL",
    "get_cache_config",
    # Keys
    "canonicalize",
    "build_cache_key",
    "hashify_object",
    # Stores
    "InMemoryStore",
    "KeyValueStore",
    "RedisStore",
    "StoreUnavailable",
    "serialize_value",
    "deserialize_value",
    # Application cache
    "ApplicationCache",
    "cache_it",
    "get_application_cache",
    "set_application_cache",
    # Edge cache
    "edge_cache_it",
    "slugit",
    # Headers
    "CacheHeadersBuilder",
    "apply_cache_directive",
    "directive_headers",
    # Invalidation
    "CDNPurger",
    "Purger",
    "get_cdn_purger",
    "purge_on_success",
]

"""
Cache Configuration

Centralized configuration for the caching layer.
TTLs are expressed in seconds because they flow straight into
Redis expiries and Cache-Control directives.
"""

import os
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Optional


@dataclass(frozen=True)
class CacheTTL:
    """
    Cache TTL configuration, in seconds.

    Edge and application caches share the same default. Browser caches are
    bounded separately so clients never hold a response longer than a minute,
    even when the CDN keeps it for hours.
    """

    # Procedure responses when no ttl is given
    DEFAULT: int = 60 * 3

    # Used when a procedure disables per-call ttl control (ttl=False)
    DISABLED_FALLBACK: int = 24 * 60 * 60

    # Upper bound for browser-visible max-age in production
    BROWSER_MAX: int = 60

    # Window where the edge may serve stale content while refreshing
    STALE_WHILE_REVALIDATE: int = 30

    # Hidden tags/users/images per user
    USER_PREFERENCES: int = 60 * 60


@dataclass
class CacheConfig:
    """
    Main cache configuration.

    Settings can be overridden via environment variables:
    - CACHE_NAMESPACE: Prefix for procedure cache keys
    - CACHE_ENABLED: Enable/disable the application cache globally
    - REDIS_URL: Redis connection string
    - CDN_PURGE_ENABLED: Send purge requests to Cloudflare
    """

    # Cache namespace (for key prefixes)
    namespace: str = field(default_factory=lambda: os.getenv(
        "CACHE_NAMESPACE",
        "trpc"
    ))

    # Global cache toggle
    enabled: bool = field(default_factory=lambda: os.getenv(
        "CACHE_ENABLED",
        "true"
    ).lower() == "true")

    # Redis connection
    redis_url: str = field(default_factory=lambda: os.getenv(
        "REDIS_URL",
        "redis://localhost:6379/0"
    ))
    redis_max_connections: int = field(default_factory=lambda: int(os.getenv(
        "REDIS_MAX_CONNECTIONS",
        "50"
    )))
    redis_socket_timeout: float = 2.0
    redis_connect_timeout: float = 2.0

    # Circuit breaker (fail fast while Redis is down)
    circuit_breaker_enabled: bool = True
    circuit_breaker_threshold: int = 5
    circuit_breaker_timeout: int = 60

    # CDN purge settings (Cloudflare cache tags)
    cdn_purge_enabled: bool = field(default_factory=lambda: os.getenv(
        "CDN_PURGE_ENABLED",
        "false"
    ).lower() == "true")
    cloudflare_zone_id: Optional[str] = field(default_factory=lambda: os.getenv(
        "CLOUDFLARE_ZONE_ID"
    ))
    cloudflare_api_token: Optional[str] = field(default_factory=lambda: os.getenv(
        "CLOUDFLARE_API_TOKEN"
    ))
    cdn_purge_timeout: float = 10.0


@lru_cache(maxsize=1)
def get_cache_config() -> CacheConfig:
    """Get singleton cache configuration."""
    return CacheConfig()

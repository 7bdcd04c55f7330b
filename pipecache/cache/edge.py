"""
Edge Cache Annotation

edge_cache_it() leaves storage to the CDN: after a cacheable success it
writes a CacheDirective into the execution context, and the transport
turns that into Cache-Control / Cache-Tag headers.

TTL rules:
- ttl unset        -> 180 seconds
- ttl=False        -> 24 hours (coarse default, still cached)
- expire_at given  -> seconds until that instant, recomputed per call,
                      taking precedence over ttl

Outside production there is no edge network, so the middleware degrades
to cache_it() with the same TTL.
"""

import html
import logging
import math
import re
import time
from datetime import datetime
from typing import Any, Callable, List, Mapping, Optional, Union

from pipecache.cache.application import ApplicationCache, cache_it
from pipecache.cache.config import CacheTTL
from pipecache.context import CacheDirective
from pipecache.pipeline import Call, Middleware, Next, Result
from pipecache.utils.config import Settings, get_settings


logger = logging.getLogger(__name__)

TagsFn = Callable[[Mapping[str, Any]], List[str]]


def slugit(value: str) -> str:
    """Normalize a tag into a CDN-safe slug."""
    slug = html.unescape(str(value)).lower().strip()
    slug = re.sub(r"[*+~.()'\"!:@]", "", slug)
    slug = re.sub(r"[^\w\s-]", "", slug)
    slug = re.sub(r"[-\s]+", "-", slug)
    return slug.strip("-")


def resolve_ttl(ttl: Union[int, bool, None]) -> int:
    """Apply the unset / disabled defaults to a configured ttl."""
    if ttl is None:
        return CacheTTL.DEFAULT
    if ttl is False:
        return CacheTTL.DISABLED_FALLBACK
    return int(ttl)


def seconds_until(expires_at: datetime, clock: Callable[[], float] = time.time) -> int:
    """Whole seconds from now until `expires_at`, never negative."""
    return max(0, math.floor(expires_at.timestamp() - clock()))


def build_directive(ttl: int, tags: Optional[List[str]] = None) -> CacheDirective:
    """Directive for a production response cached `ttl` seconds at the edge."""
    return CacheDirective(
        browser_ttl=min(CacheTTL.BROWSER_MAX, ttl),
        edge_ttl=ttl,
        stale_while_revalidate=CacheTTL.STALE_WHILE_REVALIDATE,
        tags=tuple(slugit(tag) for tag in (tags or [])),
    )


def edge_cache_it(
    ttl: Union[int, bool, None] = None,
    expire_at: Optional[Callable[[], datetime]] = None,
    tags: Optional[TagsFn] = None,
    settings: Optional[Settings] = None,
    cache: Optional[ApplicationCache] = None,
    clock: Callable[[], float] = time.time,
) -> Middleware:
    """
    Middleware annotating cacheable responses for the edge cache.

    Args:
        ttl: Edge TTL in seconds, or False for the 24 hour default
        expire_at: Returns the absolute instant the response goes stale
        tags: Derives purge tags from the procedure input
        settings: Decides production vs. local behaviour
        cache: ApplicationCache used outside production
        clock: Current unix time, for expire_at
    """
    base_ttl = resolve_ttl(ttl)
    settings = settings or get_settings()

    if not settings.is_prod:
        return cache_it(ttl=base_ttl, cache=cache)

    async def middleware(call: Call, next_: Next) -> Result:
        req_ttl = seconds_until(expire_at(), clock) if expire_at else base_ttl

        result = await next_(call)
        if result.ok and call.ctx.cache.can_cache:
            directive = build_directive(req_ttl, tags(call.input) if tags else None)
            call.ctx.cache.directive = directive
            logger.debug(
                f"Edge cache {call.path}: edge={directive.edge_ttl}s "
                f"browser={directive.browser_ttl}s tags={list(directive.tags)}"
            )

        return result

    return middleware

"""
Cache Invalidation

Tag-based purging of the edge cache after successful mutations.

Responses are tagged at the edge via Cache-Tag (see edge_cache_it);
mutations wrapped in purge_on_success() drop every cached response
carrying one of their tags. Failed mutations purge nothing.
"""

import logging
from typing import Iterable, List, Optional, Protocol, Sequence, runtime_checkable

import httpx

from pipecache.cache.config import get_cache_config
from pipecache.pipeline import Call, Middleware, Next, Result


logger = logging.getLogger(__name__)

CLOUDFLARE_API_URL = "https://api.cloudflare.com/client/v4"

# Cloudflare accepts at most 30 tags per purge request
MAX_TAGS_PER_REQUEST = 30


@runtime_checkable
class Purger(Protocol):
    async def purge(self, tags: Sequence[str]) -> bool: ...


class CDNPurger:
    """
    Purges Cloudflare's cache by Cache-Tag.

    Disabled (every purge returns False) unless a zone id and API token
    are configured. Errors are logged and reported as False, never raised.
    """

    def __init__(
        self,
        cloudflare_zone_id: Optional[str] = None,
        cloudflare_api_token: Optional[str] = None,
        timeout: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.cloudflare_zone_id = cloudflare_zone_id
        self.cloudflare_api_token = cloudflare_api_token
        self.timeout = timeout
        self._client = client
        self._enabled = bool(cloudflare_zone_id and cloudflare_api_token)

    @property
    def is_enabled(self) -> bool:
        return self._enabled

    async def _post(self, client: httpx.AsyncClient, tags: List[str]) -> bool:
        response = await client.post(
            f"{CLOUDFLARE_API_URL}/zones/{self.cloudflare_zone_id}/purge_cache",
            headers={
                "Authorization": f"Bearer {self.cloudflare_api_token}",
                "Content-Type": "application/json",
            },
            json={"tags": tags},
            timeout=self.timeout,
        )

        if response.status_code == 200:
            return True

        logger.warning(
            f"Tag-based purging failed (status {response.status_code}): {response.text[:200]}"
        )
        return False

    async def purge(self, tags: Sequence[str]) -> bool:
        """
        Purge CDN cache by tags.

        Returns True only if every batch was accepted.
        """
        if not self._enabled:
            logger.debug(f"CDN purge disabled, skipping tags: {list(tags)}")
            return False

        tags = list(dict.fromkeys(tags))
        if not tags:
            return True

        batches = [
            tags[i:i + MAX_TAGS_PER_REQUEST]
            for i in range(0, len(tags), MAX_TAGS_PER_REQUEST)
        ]

        try:
            if self._client is not None:
                results = [await self._post(self._client, batch) for batch in batches]
            else:
                async with httpx.AsyncClient() as client:
                    results = [await self._post(client, batch) for batch in batches]
        except httpx.HTTPError as e:
            logger.error(f"CDN purge error: {e}")
            return False

        if all(results):
            logger.info(f"CDN purged by tags: {tags}")
            return True
        return False


# Global instance
_cdn_purger: Optional[CDNPurger] = None


def get_cdn_purger() -> CDNPurger:
    """Get or create the global Cloudflare purger from cache config."""
    global _cdn_purger
    if _cdn_purger is None:
        config = get_cache_config()
        if config.cdn_purge_enabled:
            _cdn_purger = CDNPurger(
                cloudflare_zone_id=config.cloudflare_zone_id,
                cloudflare_api_token=config.cloudflare_api_token,
                timeout=config.cdn_purge_timeout,
            )
        else:
            _cdn_purger = CDNPurger()
    return _cdn_purger


def purge_on_success(
    tags: Iterable[str],
    purger: Optional[Purger] = None,
) -> Middleware:
    """
    Middleware purging edge cache tags once a mutation succeeds.

    Args:
        tags: Fixed set of tags invalidated by the mutation
        purger: Purge backend (defaults to the global Cloudflare purger)
    """
    purge_tags = list(tags)

    async def middleware(call: Call, next_: Next) -> Result:
        result = await next_(call)
        if not result.ok:
            return result

        backend = purger or get_cdn_purger()
        try:
            purged = await backend.purge(purge_tags)
        except Exception as e:
            # The mutation already happened; report success regardless
            logger.error(f"Purge after {call.path} failed: {e!r}")
            return result

        if not purged and getattr(backend, "is_enabled", True):
            logger.warning(f"Purge after {call.path} not applied for tags: {purge_tags}")

        return result

    return middleware

"""
Preference Sources

Where hidden tags, users and images come from. The storage schema is
owned elsewhere; this layer only needs three lookups per user:

- get_hidden_tags(user_id)   -> HiddenTags(hidden_tags, moderated_tags)
- get_hidden_users(user_id)  -> list of user ids
- get_hidden_images(user_id) -> list of image ids

SYSTEM_USER_ID asks for the site-wide moderation defaults rather than
a particular user's choices.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, List, Optional, Protocol, runtime_checkable

from pipecache.cache.application import ApplicationCache
from pipecache.cache.config import CacheTTL


logger = logging.getLogger(__name__)

SYSTEM_USER_ID = -1

USER_CACHE_PREFIX = "pipecache:user"


class PreferenceLookupError(Exception):
    """A hidden-content lookup failed; the call must not proceed unfiltered."""


@dataclass
class HiddenTags:
    """Tags a user hides, split by who hid them."""
    hidden_tags: List[int] = field(default_factory=list)
    moderated_tags: List[int] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {"hidden_tags": self.hidden_tags, "moderated_tags": self.moderated_tags}

    @classmethod
    def from_dict(cls, data: dict) -> "HiddenTags":
        return cls(
            hidden_tags=list(data.get("hidden_tags") or []),
            moderated_tags=list(data.get("moderated_tags") or []),
        )


@runtime_checkable
class PreferenceSource(Protocol):
    async def get_hidden_tags(self, user_id: Optional[int]) -> HiddenTags: ...
    async def get_hidden_users(self, user_id: Optional[int]) -> List[int]: ...
    async def get_hidden_images(self, user_id: Optional[int]) -> List[int]: ...


class CachedPreferenceSource:
    """
    Memoizes another PreferenceSource in the application cache.

    Each (user, kind) pair is cached separately under
    ``pipecache:user:<id>:hidden:<kind>``; anonymous visitors share the
    ``anon`` entry.
    """

    def __init__(
        self,
        source: PreferenceSource,
        cache: ApplicationCache,
        ttl: int = CacheTTL.USER_PREFERENCES,
    ):
        self.source = source
        self.cache = cache
        self.ttl = ttl

    @staticmethod
    def key_for(user_id: Optional[int], kind: str) -> str:
        owner = "anon" if user_id is None else user_id
        return f"{USER_CACHE_PREFIX}:{owner}:hidden:{kind}"

    async def _cached(
        self,
        user_id: Optional[int],
        kind: str,
        load: Callable[[], Awaitable[Any]],
    ) -> Any:
        key = self.key_for(user_id, kind)
        cached = await self.cache.get(key)
        if cached is not None:
            return cached

        value = await load()
        await self.cache.set(key, value, self.ttl)
        return value

    async def get_hidden_tags(self, user_id: Optional[int]) -> HiddenTags:
        async def load():
            return (await self.source.get_hidden_tags(user_id)).to_dict()

        return HiddenTags.from_dict(await self._cached(user_id, "tags", load))

    async def get_hidden_users(self, user_id: Optional[int]) -> List[int]:
        async def load():
            return list(await self.source.get_hidden_users(user_id))

        return await self._cached(user_id, "users", load)

    async def get_hidden_images(self, user_id: Optional[int]) -> List[int]:
        async def load():
            return list(await self.source.get_hidden_images(user_id))

        return await self._cached(user_id, "images", load)

"""
Preference Filter

Merges a user's hidden content into the procedure input before the
handler runs.

For any mode other than All, the user's hidden tags, users and images are
fetched concurrently and prepended to the caller's exclusion lists. SFW
additionally prepends the site-wide hidden and moderated tags. Lists are
accumulated as-is; duplicates are left for the query layer.

Mode All skips the lookups entirely.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

from pipecache.enums import BrowsingMode
from pipecache.pipeline import Call, Middleware, Next, Result
from pipecache.preferences.modes import (
    BROWSING_MODE_FIELD,
    parse_browsing_mode,
    resolve_browsing_mode,
)
from pipecache.preferences.sources import (
    SYSTEM_USER_ID,
    HiddenTags,
    PreferenceLookupError,
    PreferenceSource,
)
from pipecache.utils.config import Settings


logger = logging.getLogger(__name__)

EXCLUDED_TAG_IDS = "excluded_tag_ids"
EXCLUDED_USER_IDS = "excluded_user_ids"
EXCLUDED_IMAGE_IDS = "excluded_image_ids"


@dataclass
class VisibilityExclusions:
    """Identifiers a listing must leave out."""
    excluded_tag_ids: List[Any] = field(default_factory=list)
    excluded_user_ids: List[Any] = field(default_factory=list)
    excluded_image_ids: List[Any] = field(default_factory=list)

    @classmethod
    def from_input(cls, data: Mapping[str, Any]) -> "VisibilityExclusions":
        """Caller-supplied exclusions from a procedure input."""
        return cls(
            excluded_tag_ids=list(data.get(EXCLUDED_TAG_IDS) or []),
            excluded_user_ids=list(data.get(EXCLUDED_USER_IDS) or []),
            excluded_image_ids=list(data.get(EXCLUDED_IMAGE_IDS) or []),
        )

    def then(self, other: "VisibilityExclusions") -> "VisibilityExclusions":
        """This object's ids followed by `other`'s."""
        return VisibilityExclusions(
            excluded_tag_ids=self.excluded_tag_ids + other.excluded_tag_ids,
            excluded_user_ids=self.excluded_user_ids + other.excluded_user_ids,
            excluded_image_ids=self.excluded_image_ids + other.excluded_image_ids,
        )

    def as_input(self) -> Dict[str, List[Any]]:
        return {
            EXCLUDED_TAG_IDS: self.excluded_tag_ids,
            EXCLUDED_USER_IDS: self.excluded_user_ids,
            EXCLUDED_IMAGE_IDS: self.excluded_image_ids,
        }


async def load_exclusions(
    source: PreferenceSource,
    user_id: Optional[int],
    mode: BrowsingMode,
) -> VisibilityExclusions:
    """
    Fetch hidden content for a restricted browsing mode.

    Raises:
        PreferenceLookupError: any lookup failed
    """
    lookups = [
        source.get_hidden_tags(user_id),
        source.get_hidden_users(user_id),
        source.get_hidden_images(user_id),
    ]
    if mode == BrowsingMode.SFW:
        lookups.append(source.get_hidden_tags(SYSTEM_USER_ID))

    try:
        results = await asyncio.gather(*lookups)
    except Exception as e:
        logger.error(f"Hidden content lookup failed for user {user_id}: {e!r}")
        raise PreferenceLookupError(f"Hidden content lookup failed for user {user_id}") from e

    hidden_tags, hidden_users, hidden_images = results[:3]
    exclusions = VisibilityExclusions(
        excluded_tag_ids=[*hidden_tags.hidden_tags, *hidden_tags.moderated_tags],
        excluded_user_ids=list(hidden_users),
        excluded_image_ids=list(hidden_images),
    )

    if mode == BrowsingMode.SFW:
        system: HiddenTags = results[3]
        exclusions.excluded_tag_ids = [
            *system.hidden_tags,
            *system.moderated_tags,
            *exclusions.excluded_tag_ids,
        ]

    return exclusions


def apply_user_preferences(
    source: PreferenceSource,
    settings: Optional[Settings] = None,
) -> Middleware:
    """
    Middleware merging hidden content into the procedure input.

    Args:
        source: Where hidden tags/users/images are looked up
        settings: Policy used when neither input nor context carry a mode
    """

    async def middleware(call: Call, next_: Next) -> Result:
        mode = resolve_browsing_mode(
            parse_browsing_mode(call.input.get(BROWSING_MODE_FIELD)),
            call.ctx.browsing_mode,
            call.ctx.user,
            settings,
        )

        if mode == BrowsingMode.ALL:
            return await next_(call)

        exclusions = await load_exclusions(source, call.ctx.user_id, mode)
        merged = exclusions.then(VisibilityExclusions.from_input(call.input))
        return await next_(call.with_input(**merged.as_input()))

    return middleware

"""
Browsing Mode Resolution

Server policy decides what a caller may see; the caller's requested
mode is honoured only inside that policy.

- Users allowed unrestricted content: requested mode, else the session's
  mode, else All
- Everyone else: SFW, whatever they asked for

If permissions cannot be determined the result is SFW.
"""

import logging
from typing import Any, Optional

from pipecache.context import SessionUser
from pipecache.enums import BrowsingMode
from pipecache.pipeline import Call, Middleware, Next, Result
from pipecache.utils.config import Settings, get_settings


logger = logging.getLogger(__name__)

BROWSING_MODE_FIELD = "browsing_mode"


def parse_browsing_mode(value: Any) -> Optional[BrowsingMode]:
    """Coerce an input value to a BrowsingMode; empty means unspecified."""
    if not value:
        return None
    if isinstance(value, BrowsingMode):
        return value
    return BrowsingMode(value)


def can_view_nsfw(user: Optional[SessionUser], settings: Settings) -> bool:
    """Whether the caller may list unrestricted content."""
    if user is not None and user.show_nsfw is not None:
        return bool(user.show_nsfw)
    return bool(settings.UNAUTHENTICATED_LIST_NSFW)


def resolve_browsing_mode(
    requested: Optional[BrowsingMode],
    ambient: Optional[BrowsingMode],
    user: Optional[SessionUser],
    settings: Optional[Settings] = None,
) -> BrowsingMode:
    """
    Effective browsing mode for a call.

    Args:
        requested: Mode supplied in the procedure input
        ambient: Mode carried by the execution context
        user: Current user, None when anonymous
        settings: Policy source (UNAUTHENTICATED_LIST_NSFW)
    """
    try:
        allowed = can_view_nsfw(user, settings or get_settings())
    except Exception as e:
        logger.warning(f"Could not resolve content permissions, forcing SFW: {e!r}")
        allowed = False

    if not allowed:
        return BrowsingMode.SFW

    return requested or ambient or BrowsingMode.ALL


def apply_browsing_mode(settings: Optional[Settings] = None) -> Middleware:
    """Middleware writing the policy-resolved browsing mode into the input."""

    async def middleware(call: Call, next_: Next) -> Result:
        mode = resolve_browsing_mode(
            parse_browsing_mode(call.input.get(BROWSING_MODE_FIELD)),
            None,
            call.ctx.user,
            settings,
        )
        return await next_(call.with_input(**{BROWSING_MODE_FIELD: mode}))

    return middleware

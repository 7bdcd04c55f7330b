"""Browsing mode resolution and hidden-content filtering."""

from pipecache.preferences.modes import (
    apply_browsing_mode,
    can_view_nsfw,
    parse_browsing_mode,
    resolve_browsing_mode,
)
from pipecache.preferences.sources import (
    SYSTEM_USER_ID,
    CachedPreferenceSource,
    HiddenTags,
    PreferenceLookupError,
    PreferenceSource,
)
from pipecache.preferences.filters import (
    VisibilityExclusions,
    apply_user_preferences,
    load_exclusions,
)

__all__ = [
    "apply_browsing_mode",
    "can_view_nsfw",
    "parse_browsing_mode",
    "resolve_browsing_mode",
    "SYSTEM_USER_ID",
    "CachedPreferenceSource",
    "HiddenTags",
    "PreferenceLookupError",
    "PreferenceSource",
    "VisibilityExclusions",
    "apply_user_preferences",
    "load_exclusions",
]

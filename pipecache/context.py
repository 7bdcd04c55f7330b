"""
Execution Context

Per-call state shared between middleware and the transport:
- who is calling (SessionUser)
- the browsing mode inherited from the session, if any
- cache flags: whether this call may be cached, and the edge directive
  written by edge_cache_it for the transport to turn into headers
"""

from dataclasses import dataclass, field
from typing import Optional, Tuple

from pipecache.enums import BrowsingMode


@dataclass
class SessionUser:
    """Authenticated caller."""
    id: int
    username: Optional[str] = None
    # None means the user never chose; anonymous policy applies
    show_nsfw: Optional[bool] = None


@dataclass(frozen=True)
class CacheDirective:
    """Edge cache metadata for one response."""
    browser_ttl: int
    edge_ttl: int
    stale_while_revalidate: int
    tags: Tuple[str, ...] = ()


@dataclass
class CacheContext:
    """Cache flags for one call."""
    # Procedures must opt in; personalized or error-sensitive calls stay uncached
    can_cache: bool = False
    directive: Optional[CacheDirective] = None


@dataclass
class ExecutionContext:
    """Context passed alongside the input through every middleware."""
    user: Optional[SessionUser] = None
    browsing_mode: Optional[BrowsingMode] = None
    cache: CacheContext = field(default_factory=CacheContext)

    @property
    def user_id(self) -> Optional[int]:
        return self.user.id if self.user else None

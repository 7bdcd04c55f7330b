"""
HTTP Cache Headers

Turns a CacheDirective into outbound headers for the CDN and browser.

HTTP caching layers:
1. Browser: max-age (bounded to a minute in production)
2. CDN: s-maxage plus stale-while-revalidate
3. Purging: Cache-Tag (Cloudflare) / Surrogate-Key (Fastly, Varnish)
"""

import logging
from typing import Dict, List, Optional

from fastapi import Response

from pipecache.context import CacheDirective


logger = logging.getLogger(__name__)


class CacheHeadersBuilder:
    """
    Fluent builder for HTTP cache headers.

    Usage:
        headers = (CacheHeadersBuilder()
            .max_age(60)
            .s_maxage(300)
            .stale_while_revalidate(30)
            .public()
            .surrogate_keys(["image-123", "images"])
            .build())
    """

    def __init__(self):
        self._max_age: int = 0
        self._s_maxage: Optional[int] = None
        self._swr: int = 0
        self._public: bool = True
        self._no_store: bool = False
        self._surrogate_keys: List[str] = []

    def max_age(self, seconds: int) -> "CacheHeadersBuilder":
        """Set browser max-age directive."""
        self._max_age = seconds
        return self

    def s_maxage(self, seconds: int) -> "CacheHeadersBuilder":
        """Set shared (CDN) max-age directive."""
        self._s_maxage = seconds
        return self

    def stale_while_revalidate(self, seconds: int) -> "CacheHeadersBuilder":
        """Set stale-while-revalidate directive."""
        self._swr = seconds
        return self

    def public(self) -> "CacheHeadersBuilder":
        """Mark response as cacheable by CDN."""
        self._public = True
        return self

    def private(self) -> "CacheHeadersBuilder":
        """Mark response as not cacheable by CDN."""
        self._public = False
        return self

    def no_store(self) -> "CacheHeadersBuilder":
        """Disable all caching."""
        self._no_store = True
        return self

    def surrogate_keys(self, keys: List[str]) -> "CacheHeadersBuilder":
        """Set surrogate keys for CDN purging."""
        self._surrogate_keys.extend(keys)
        return self

    def build(self) -> Dict[str, str]:
        """Build headers dictionary."""
        headers = {}

        directives = []

        if self._no_store:
            directives.append("no-store")
        else:
            directives.append("public" if self._public else "private")
            directives.append(f"max-age={self._max_age}")

            if self._s_maxage is not None:
                directives.append(f"s-maxage={self._s_maxage}")

            if self._swr > 0:
                directives.append(f"stale-while-revalidate={self._swr}")

        headers["Cache-Control"] = ", ".join(directives)

        if self._surrogate_keys and not self._no_store:
            # Cloudflare Cache-Tag format
            headers["Cache-Tag"] = ",".join(self._surrogate_keys)
            # Fastly/Varnish Surrogate-Key format
            headers["Surrogate-Key"] = " ".join(self._surrogate_keys)

        return headers

    def apply(self, response: Response) -> Response:
        """Apply headers to FastAPI Response."""
        for key, value in self.build().items():
            response.headers[key] = value
        return response


def directive_builder(directive: CacheDirective) -> CacheHeadersBuilder:
    """Builder preloaded from an edge cache directive."""
    return (
        CacheHeadersBuilder()
        .public()
        .max_age(directive.browser_ttl)
        .s_maxage(directive.edge_ttl)
        .stale_while_revalidate(directive.stale_while_revalidate)
        .surrogate_keys(list(directive.tags))
    )


def directive_headers(directive: Optional[CacheDirective]) -> Dict[str, str]:
    """Headers for a directive; empty when the response is not edge cacheable."""
    if directive is None:
        return {}
    return directive_builder(directive).build()


def apply_cache_directive(
    response: Response,
    directive: Optional[CacheDirective],
) -> Response:
    """
    Add edge cache headers to a response.

    Leaves the response untouched when there is no directive.
    """
    if directive is None:
        return response
    return directive_builder(directive).apply(response)

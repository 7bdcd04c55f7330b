"""
Cache Key Builder

Keys look like ``<namespace>:<procedure path>:<digest>``, e.g.
``trpc:image:getInfinite:3f9a0c1be27d4410``. The digest is the first
64 bits of a SHA-256 over the canonical input's JSON form.
"""

import hashlib
import json
from typing import Any, Mapping


DIGEST_LENGTH = 16  # hex chars -> 64 bits


def serialize_canonical(canonical_input: Mapping[str, Any]) -> str:
    """Deterministic JSON form of a canonical input."""
    return json.dumps(
        canonical_input,
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
        default=str,
    )


def hashify_object(canonical_input: Mapping[str, Any]) -> str:
    """Stable fixed-length digest of a canonical input."""
    payload = serialize_canonical(canonical_input).encode("utf-8")
    return hashlib.sha256(payload).hexdigest()[:DIGEST_LENGTH]


def normalize_path(operation_path: str) -> str:
    """Turn a dotted procedure path into key segments."""
    return operation_path.replace(".", ":")


def build_cache_key(
    namespace: str,
    operation_path: str,
    canonical_input: Mapping[str, Any],
    normalize: bool = True,
) -> str:
    """
    Build a namespaced cache key.

    Args:
        namespace: Key prefix (e.g. "trpc")
        operation_path: Procedure path or an explicit key override
        canonical_input: Output of canonicalize()
        normalize: Rewrite dots in the path; explicit key overrides pass False
    """
    segment = normalize_path(operation_path) if normalize else operation_path
    return f"{namespace}:{segment}:{hashify_object(canonical_input)}"

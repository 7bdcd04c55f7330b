"""
Input Canonicalization

Reduces a procedure input to one representative form so that equivalent
requests share a cache entry:
- List values are treated as sets (deduplicated, sorted)
- Falsy values are dropped, so "empty" and "absent" collapse together
- Caller-excluded fields never reach the key

Dropping falsy scalars means {"page": 0} and {} canonicalize identically.
Procedures that need 0/False to be distinct must pass them as strings.
"""

import logging
from typing import Any, Dict, Iterable, Mapping, Optional

from pipecache.cache.keys import serialize_canonical


logger = logging.getLogger(__name__)

SEQUENCE_TYPES = (list, tuple, set, frozenset)


def _sort_key(value: Any):
    """Total order across mixed primitive types."""
    return (type(value).__name__, value)


def normalize_sequence(values: Iterable[Any]) -> list:
    """
    Deduplicate and sort a sequence.

    Primitives sort by (type, value). Sequences holding mappings or other
    unhashable members fall back to ordering by their canonical JSON form.
    """
    values = list(values)
    try:
        return sorted(set(values), key=_sort_key)
    except TypeError:
        unique = {serialize_canonical(value): value for value in values}
        return [unique[encoded] for encoded in sorted(unique)]


def canonicalize(
    record: Optional[Mapping[str, Any]],
    exclude_keys: Optional[Iterable[str]] = None,
) -> Dict[str, Any]:
    """
    Canonicalize a request input for hashing.

    Args:
        record: Procedure input (may be None for input-less procedures)
        exclude_keys: Field names that never contribute to the key

    Returns:
        Dict with sorted field order, set-like lists and no falsy values
    """
    if not record:
        return {}

    excluded = set(exclude_keys or ())
    canonical: Dict[str, Any] = {}

    for key in sorted(record):
        if key in excluded:
            continue

        value = record[key]
        if isinstance(value, SEQUENCE_TYPES):
            value = normalize_sequence(value)

        if not value:
            continue

        canonical[key] = value

    return canonical

"""Attribute/term lookup cache for one platform.

WHAT:
    Two-level cache: attribute key -> attribute object, then
    (attribute id, term key) -> term object. Plus per-key asyncio locks so
    concurrent misses on the same key resolve to a single remote create.

WHY:
    Taxonomy entries change rarely, so entries live for the lifetime of the
    owning WooClient with no TTL. The cache is an explicit object owned by
    the client (one per platform) and can be cleared between tests.
"""

import asyncio
from typing import Any, Dict, Optional, Tuple


class AttributeTermCache:
    """Process-lifetime cache of platform attributes and their terms."""

    def __init__(self) -> None:
        self._attributes: Dict[str, Dict[str, Any]] = {}
        self._terms: Dict[Tuple[int, str], Dict[str, Any]] = {}
        self._locks: Dict[str, asyncio.Lock] = {}

    # Attributes -----------------------------------------------------------

    def get_attribute(self, key: str) -> Optional[Dict[str, Any]]:
        return self._attributes.get(key.lower())

    def set_attribute(self, key: str, attribute: Dict[str, Any]) -> None:
        self._attributes[key.lower()] = attribute

    # Terms ----------------------------------------------------------------

    def get_term(self, attribute_id: int, key: str) -> Optional[Dict[str, Any]]:
        return self._terms.get((int(attribute_id), key.lower()))

    def set_term(self, attribute_id: int, key: str, term: Dict[str, Any]) -> None:
        self._terms[(int(attribute_id), key.lower())] = term

    def discard_term(self, attribute_id: int, key: str) -> None:
        self._terms.pop((int(attribute_id), key.lower()), None)

    # Locks ----------------------------------------------------------------

    def lock_for(self, key: str) -> asyncio.Lock:
        """Return the lock guarding lookup-or-create for key."""
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock

    def clear(self) -> None:
        """Drop every cached attribute, term and lock."""
        self._attributes.clear()
        self._terms.clear()
        self._locks.clear()

    @property
    def size(self) -> Tuple[int, int]:
        """(attribute entries, term entries)."""
        return len(self._attributes), len(self._terms)

"""
Identity snapshot cache - in-memory read replica of the identity store.

get() never reloads; callers decide when staleness matters. refresh() pages
through the store and swaps the whole collection in one assignment, so readers
see either the old or the new snapshot. add_or_update() is the write-through
path for enrollments and mutates the live snapshot in place; it and remove()
are constant time through an id -> position map.
"""

import time
from typing import Dict, List, Optional

from .config import get_cache_page_size, get_cache_ttl
from .dao import IdentityStore
from .schema import Identity
from ..util.logging import logger


class IdentityCache:
    """Snapshot of all identities, refreshed on demand from an IdentityStore."""

    def __init__(self, store: IdentityStore, page_size: Optional[int] = None,
                 ttl_seconds: Optional[int] = None, clock=time.time):
        self._store = store
        self._page_size = page_size or get_cache_page_size()
        self._ttl_seconds = ttl_seconds if ttl_seconds is not None else get_cache_ttl()
        self._clock = clock
        self._identities: List[Identity] = []
        # identity_id -> position in _identities
        self._positions: Dict[str, int] = {}
        self._last_update = 0.0

    def get(self) -> List[Identity]:
        """Current snapshot contents (possibly stale, empty before the first load)."""
        return self._identities

    def refresh(self) -> None:
        """Reload every identity from the store and swap the snapshot atomically."""
        logger.info("Refreshing identity cache...")
        page = 1
        loaded: List[Identity] = []
        try:
            while True:
                logger.debug(f"Loading identities, page {page}...")
                batch = self._store.get_identities(page, self._page_size)
                loaded.extend(batch)
                if len(batch) < self._page_size:
                    break
                page += 1
        except Exception as e:
            logger.log_cache_operation("refresh", len(self._identities), "failed", {"error": str(e), "page": page})
            raise

        positions = {identity.identity_id: i for i, identity in enumerate(loaded)}
        self._identities, self._positions = loaded, positions
        self._last_update = self._clock()
        logger.log_cache_operation("refresh", len(loaded), details={"pages": page})

    def invalidate(self) -> None:
        """Force an immediate refresh (used after external writes)."""
        logger.info("Invalidating identity cache...")
        self.refresh()

    def add_or_update(self, identity: Identity) -> None:
        """Write-through: replace the identity with the same id, or append it."""
        position = self._positions.get(identity.identity_id)
        if position is None:
            self._positions[identity.identity_id] = len(self._identities)
            self._identities.append(identity)
        else:
            self._identities[position] = identity
        self._last_update = self._clock()
        logger.log_cache_operation("add_or_update", len(self._identities),
                                   details={"identity_id": identity.identity_id})

    def remove(self, identity_id: str) -> bool:
        """
        Drop an identity from the live snapshot. Returns True if it was present.

        The last identity is moved into the freed position, so snapshot order
        is not preserved across removals.
        """
        position = self._positions.pop(identity_id, None)
        if position is None:
            return False

        last = self._identities.pop()
        if position < len(self._identities):
            self._identities[position] = last
            self._positions[last.identity_id] = position

        self._last_update = self._clock()
        logger.log_cache_operation("remove", len(self._identities),
                                   details={"identity_id": identity_id})
        return True

    def find(self, identity_id: str) -> Optional[Identity]:
        position = self._positions.get(identity_id)
        return None if position is None else self._identities[position]

    def is_expired(self) -> bool:
        return (self._clock() - self._last_update) > self._ttl_seconds

    def stats(self) -> Dict[str, int]:
        """Count, age in seconds since the last update, and configured TTL."""
        return {
            "count": len(self._identities),
            "age_seconds": int(self._clock() - self._last_update),
            "ttl_seconds": self._ttl_seconds,
        }

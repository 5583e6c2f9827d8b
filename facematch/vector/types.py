"""
Vector index records - derived, non-canonical view over the identity store.
"""

from dataclasses import dataclass


@dataclass(frozen=True)
class IndexEntry:
    """Maps an internal index id to a stored embedding."""

    identity_id: str
    """Identifier of the owning identity"""

    slot: int
    """Position of the embedding in the identity's embedding list at insert time"""


@dataclass
class SearchHit:
    """A k-NN result from the vector index."""

    identity_id: str
    """Identifier of the owning identity"""

    distance: float
    """Euclidean distance to the query (same metric as the exact matcher)"""

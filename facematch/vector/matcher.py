"""
Exact matcher - linear scan over every stored embedding.

The scan stops as soon as a candidate falls below `early_exit_ratio * threshold`.
That returns a confident match without visiting the rest of the collection, so on
easy queries the result may not be the global optimum. It is always within the
acceptance threshold.
"""

from typing import Optional, Sequence

import numpy as np

from ..core.config import get_early_exit_ratio, get_match_threshold
from ..core.errors import NoIdentitiesError, NotRecognizedError
from ..core.schema import Identity, MatchResult
from .embeddings import euclidean_distance


def brute_force_search(query: np.ndarray, identities: Sequence[Identity],
                       threshold: Optional[float] = None,
                       early_exit_ratio: Optional[float] = None) -> MatchResult:
    """Find the nearest identity to `query` by Euclidean distance."""
    threshold = get_match_threshold() if threshold is None else threshold
    early_exit_ratio = get_early_exit_ratio() if early_exit_ratio is None else early_exit_ratio

    candidates = [identity for identity in identities if identity.embeddings]
    if not candidates:
        raise NoIdentitiesError()

    query = np.asarray(query, dtype=np.float32).reshape(-1)
    early_exit = threshold * early_exit_ratio

    best_identity = None
    best_distance = float("inf")

    for identity in candidates:
        for embedding in identity.embeddings:
            if len(embedding) != len(query):
                continue
            distance = euclidean_distance(query, embedding)
            if distance < best_distance:
                best_distance = distance
                best_identity = identity
                if distance < early_exit:
                    return MatchResult(identity=best_identity, distance=best_distance)

    if best_identity is None:
        raise NotRecognizedError()
    if best_distance > threshold:
        raise NotRecognizedError(best_distance, threshold)

    return MatchResult(identity=best_identity, distance=best_distance)

"""
Tests for the exact (brute-force) matcher.
"""

import numpy as np
import pytest

from facematch.core.errors import NoIdentitiesError, NotRecognizedError
from facematch.core.schema import Identity
from facematch.vector.matcher import brute_force_search


def person(identity_id, *vectors):
    return Identity(identity_id=identity_id, name=identity_id,
                    embeddings=[np.asarray(v, dtype=np.float32) for v in vectors])


def test_exact_embedding_matches_at_zero(identities_100):
    query = identities_100[42].embeddings[2].copy()

    result = brute_force_search(query, identities_100, threshold=0.55)

    assert result.identity.identity_id == "P0042"
    assert result.distance == pytest.approx(0.0, abs=1e-6)


def test_nearest_identity_wins():
    identities = [
        person("far", [3.0, 0.0]),
        person("near", [0.4, 0.0], [5.0, 5.0]),
    ]

    result = brute_force_search(np.array([0.0, 0.0]), identities, threshold=1.0, early_exit_ratio=0.1)

    assert result.identity.identity_id == "near"
    assert result.distance == pytest.approx(0.4)


def test_early_exit_returns_first_confident_candidate():
    """A candidate under half the threshold stops the scan, even if a closer one follows."""
    identities = [
        person("first", [0.2, 0.0]),
        person("second", [0.0, 0.0]),
    ]

    result = brute_force_search(np.array([0.0, 0.0]), identities, threshold=1.0, early_exit_ratio=0.5)

    assert result.identity.identity_id == "first"
    assert result.distance == pytest.approx(0.2)


def test_no_early_exit_above_half_threshold():
    identities = [
        person("first", [0.6, 0.0]),
        person("second", [0.1, 0.0]),
    ]

    result = brute_force_search(np.array([0.0, 0.0]), identities, threshold=1.0, early_exit_ratio=0.5)

    assert result.identity.identity_id == "second"


def test_empty_collection():
    with pytest.raises(NoIdentitiesError):
        brute_force_search(np.zeros(2), [], threshold=1.0)


def test_identities_without_embeddings_count_as_empty():
    with pytest.raises(NoIdentitiesError):
        brute_force_search(np.zeros(2), [person("ghost")], threshold=1.0)


def test_above_threshold_not_recognized():
    identities = [person("a", [2.0, 0.0])]

    with pytest.raises(NotRecognizedError) as exc_info:
        brute_force_search(np.array([0.0, 0.0]), identities, threshold=1.0)

    assert exc_info.value.distance == pytest.approx(2.0)


def test_threshold_boundary_is_accepted_deterministically():
    identities = [person("edge", [0.5, 0.0])]
    query = np.array([0.0, 0.0])

    outcomes = {brute_force_search(query, identities, threshold=0.5).identity.identity_id for _ in range(20)}

    assert outcomes == {"edge"}

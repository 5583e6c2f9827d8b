"""
Shared fixtures: synthetic identities and a temporary SQLite identity store.
"""

import numpy as np
import pytest

from facematch.core.dao import IdentityStore
from facematch.core.schema import Identity

DIMENSION = 128


def build_identities(count, per_identity=5, dimension=DIMENSION, seed=0):
    """Deterministic identities P0000.. with uniform random embeddings."""
    rng = np.random.default_rng(seed)
    return [
        Identity(
            identity_id=f"P{i:04d}",
            name=f"Person {i}",
            embeddings=[row for row in rng.random((per_identity, dimension), dtype=np.float32)],
            sort_order=i,
        )
        for i in range(count)
    ]


@pytest.fixture
def make_identities():
    return build_identities


@pytest.fixture
def identities_100():
    """100 identities x 5 embeddings x 128 dimensions."""
    return build_identities(100)


@pytest.fixture
def store(tmp_path):
    return IdentityStore(str(tmp_path / "identities.db"), dimension=DIMENSION, max_embeddings=5)

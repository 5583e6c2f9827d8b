"""
Tests for the index rebuild utility.
"""

import numpy as np
import pytest

from scripts.rebuild_index import main
from facematch.core.dao import IdentityStore
from facematch.vector.hnsw_index import HNSWDescriptorIndex


@pytest.fixture
def populated_db(tmp_path):
    db_path = str(tmp_path / "identities.db")
    store = IdentityStore(db_path, dimension=128, max_embeddings=5)
    rng = np.random.default_rng(3)
    for i in range(5):
        for _ in range(2):
            store.upsert_identity(f"P{i}", f"Person {i}", rng.random(128, dtype=np.float32))
    return db_path, store


@pytest.fixture(autouse=True)
def dimension_env(monkeypatch):
    monkeypatch.setenv("EMBEDDING_DIM", "128")
    monkeypatch.delenv("MATCH_THRESHOLD", raising=False)


def test_rebuild_index_success(capfd, populated_db, tmp_path):
    db_path, store = populated_db
    index_path = tmp_path / "face-index.bin"

    main(["--db-path", db_path, "--index-path", str(index_path)])

    captured = capfd.readouterr()
    assert "Found 5 identities (10 descriptors) in canonical store" in captured.out
    assert "✓ Successfully rebuilt index with 10 descriptors" in captured.out
    assert "✓ Verification search returned P0" in captured.out
    assert "Index rebuild complete!" in captured.out
    assert index_path.exists()

    # The saved file loads against the same store ordering
    identities = store.get_identities(1, 100)
    loaded = HNSWDescriptorIndex(dimension=128)
    loaded.load_index(index_path, identities)
    assert loaded.stats()["total_descriptors"] == 10


def test_rebuild_index_empty_store(capfd, tmp_path):
    index_path = tmp_path / "face-index.bin"

    main(["--db-path", str(tmp_path / "empty.db"), "--index-path", str(index_path)])

    captured = capfd.readouterr()
    assert "Found 0 identities (0 descriptors) in canonical store" in captured.out
    assert "No descriptors to index. Exiting." in captured.out
    assert not index_path.exists()


def test_rebuild_index_invalid_config(capfd, monkeypatch, tmp_path):
    monkeypatch.setenv("MATCH_THRESHOLD", "0")

    with pytest.raises(SystemExit):
        main(["--db-path", str(tmp_path / "identities.db")])

    captured = capfd.readouterr()
    assert "ERROR: Invalid configuration" in captured.out

"""
HNSW descriptor index - approximate nearest-neighbour search over every stored embedding.
Derived, non-canonical view over the identity store: append-only between full rebuilds.
"""

import os
import time
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Set

import faiss
import numpy as np

from ..core.config import get_embedding_dim, get_hnsw_params
from ..core.errors import DimensionMismatchError, IndexNotReadyError, PersistenceError
from ..core.schema import Identity
from ..util.logging import logger
from .types import IndexEntry, SearchHit

# Squared distances at or below this are treated as the same stored vector
_EXACT_EPSILON = 1e-4

# Extra neighbours fetched when looking up a stored vector (covers duplicates)
_RETIRE_FETCH = 8


class HNSWDescriptorIndex:
    """FAISS HNSW graph wrapped in an id map.

    Internal ids are issued from a monotonically increasing counter, starting at 0
    on every full build. The id -> (identity, slot) mapping is kept in memory only;
    the saved file holds the graph and ids, and load_index() re-derives the mapping
    from the identity collection, which must be in the same order as at save time.
    """

    def __init__(self, dimension: Optional[int] = None, m: Optional[int] = None,
                 ef_construction: Optional[int] = None, ef_search: Optional[int] = None):
        params = get_hnsw_params()
        self.dimension = dimension or get_embedding_dim()
        self.m = m or params["m"]
        self.ef_construction = ef_construction or params["ef_construction"]
        self.ef_search = ef_search or params["ef_search"]

        self.index = None
        self._hnsw = None
        self.entries: Dict[int, IndexEntry] = {}
        self.next_id = 0
        # Internal ids hidden from results until the next full build
        self.tombstones: Set[int] = set()

    def _new_index(self):
        hnsw = faiss.IndexHNSWFlat(self.dimension, self.m)
        hnsw.hnsw.efConstruction = self.ef_construction
        hnsw.hnsw.efSearch = self.ef_search
        return faiss.IndexIDMap(hnsw), hnsw

    def _as_vector(self, embedding) -> np.ndarray:
        return np.array(embedding, dtype=np.float32).reshape(-1)

    def build_index(self, identities: Sequence[Identity]) -> None:
        """Build a fresh index from every embedding of every identity."""
        logger.info("Building HNSW index...")
        start_time = time.monotonic()

        total = sum(len(identity.embeddings) for identity in identities)
        index, hnsw = self._new_index()
        entries: Dict[int, IndexEntry] = {}
        vectors = []
        next_id = 0

        for identity in identities:
            for slot, embedding in enumerate(identity.embeddings):
                vector = self._as_vector(embedding)
                if len(vector) != self.dimension:
                    logger.warning(
                        f"Skipping descriptor with wrong dimension {len(vector)} "
                        f"(identity {identity.identity_id}, slot {slot})"
                    )
                    continue
                vectors.append(vector)
                entries[next_id] = IndexEntry(identity.identity_id, slot)
                next_id += 1

        if vectors:
            index.add_with_ids(np.vstack(vectors), np.arange(next_id, dtype=np.int64))
        else:
            logger.warning("No descriptors to index")

        self.index, self._hnsw = index, hnsw
        self.entries = entries
        self.next_id = next_id
        self.tombstones = set()

        elapsed_ms = round((time.monotonic() - start_time) * 1000, 2)
        logger.log_index_operation("build", next_id, details={
            "identities": len(identities),
            "skipped": total - next_id,
            "duration_ms": elapsed_ms,
        })

    def add_descriptor(self, identity_id: str, embedding, slot: int = 0) -> int:
        """Insert one embedding into the live index. Returns its internal id."""
        if self.index is None:
            raise IndexNotReadyError()

        vector = self._as_vector(embedding)
        if len(vector) != self.dimension:
            raise DimensionMismatchError(self.dimension, len(vector))

        internal_id = self.next_id
        self.index.add_with_ids(vector.reshape(1, -1), np.array([internal_id], dtype=np.int64))
        self.entries[internal_id] = IndexEntry(identity_id, slot)
        self.next_id += 1

        logger.debug(f"Added descriptor {internal_id} for identity {identity_id} (slot {slot})")
        return internal_id

    def _raw_search(self, query: np.ndarray, k: int):
        distances, labels = self.index.search(query.reshape(1, -1), k)
        return distances[0], labels[0]

    def search_knn(self, query, k: int = 1) -> List[SearchHit]:
        """Return up to k nearest live entries, ascending by Euclidean distance."""
        if self.index is None:
            raise IndexNotReadyError()

        vector = self._as_vector(query)
        if len(vector) != self.dimension:
            raise DimensionMismatchError(self.dimension, len(vector))

        if k < 1 or self.index.ntotal == 0:
            return []

        fetch = min(k + len(self.tombstones), self.index.ntotal)
        self._hnsw.hnsw.efSearch = max(self.ef_search, fetch)
        distances, labels = self._raw_search(vector, fetch)

        hits: List[SearchHit] = []
        for squared, label in zip(distances, labels):
            if label < 0 or int(label) in self.tombstones:
                continue
            entry = self.entries.get(int(label))
            if entry is None:
                continue
            # FAISS L2 returns squared distances
            hits.append(SearchHit(entry.identity_id, float(np.sqrt(max(float(squared), 0.0)))))
            if len(hits) == k:
                break

        return hits

    def tombstone(self, identity_id: str) -> int:
        """
        Hide every entry the identity currently owns until the next rebuild.

        Entries added for the same identifier afterwards stay live. Returns the
        number of entries hidden by this call.
        """
        dead = [internal_id for internal_id, entry in self.entries.items()
                if entry.identity_id == identity_id and internal_id not in self.tombstones]
        self.tombstones.update(dead)
        logger.log_index_operation("tombstone", len(self.entries), details={
            "identity_id": identity_id,
            "hidden": len(dead),
            "tombstoned_entries": len(self.tombstones),
        })
        return len(dead)

    def retire_descriptor(self, identity_id: str, embedding) -> int:
        """Hide the live entries of `identity_id` that hold exactly `embedding`."""
        if self.index is None:
            raise IndexNotReadyError()

        vector = self._as_vector(embedding)
        if len(vector) != self.dimension:
            raise DimensionMismatchError(self.dimension, len(vector))

        if self.index.ntotal == 0:
            return 0

        fetch = min(_RETIRE_FETCH + len(self.tombstones), self.index.ntotal)
        self._hnsw.hnsw.efSearch = max(self.ef_search, fetch)
        distances, labels = self._raw_search(vector, fetch)

        dead = []
        for squared, label in zip(distances, labels):
            if squared > _EXACT_EPSILON:
                break
            internal_id = int(label)
            if internal_id < 0 or internal_id in self.tombstones:
                continue
            entry = self.entries.get(internal_id)
            if entry is not None and entry.identity_id == identity_id:
                dead.append(internal_id)

        self.tombstones.update(dead)
        logger.log_index_operation("retire", len(self.entries), details={
            "identity_id": identity_id,
            "hidden": len(dead),
            "tombstoned_entries": len(self.tombstones),
        })
        return len(dead)

    def save_index(self, path) -> None:
        """Write the graph to a single file (atomic replace)."""
        if self.index is None:
            raise IndexNotReadyError()

        target = Path(path)
        tmp_path = target.with_name(target.name + ".tmp")
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            faiss.write_index(self.index, str(tmp_path))
            os.replace(tmp_path, target)
        except (OSError, RuntimeError) as e:
            logger.log_index_operation("save", len(self.entries), "failed", {"path": str(target), "error": str(e)})
            raise PersistenceError(f"Failed to save index to {target}: {e}") from e

        logger.log_index_operation("save", len(self.entries), details={"path": str(target)})

    def load_index(self, path, identities: Sequence[Identity], verify_sample: int = 16) -> None:
        """
        Read the graph from `path` and re-derive the id mapping from `identities`.

        The mapping is rebuilt with the same skip rule as build_index(). The load is
        rejected with PersistenceError (leaving the current index untouched) when the
        file is unreadable, its dimension differs, its entry count differs from the
        rebuilt mapping, or a sample of entries no longer resolves to the identity
        that owns the same embedding.
        """
        target = Path(path)
        logger.info(f"Loading index from {target}...")
        if not target.exists():
            raise PersistenceError(f"Index file not found: {target}")

        try:
            index = faiss.read_index(str(target))
        except RuntimeError as e:
            raise PersistenceError(f"Failed to read index from {target}: {e}") from e

        if index.d != self.dimension:
            raise PersistenceError(f"Index dimension {index.d} does not match expected dimension {self.dimension}")

        try:
            hnsw = faiss.downcast_index(index.index)
            hnsw.hnsw.efSearch = self.ef_search
        except AttributeError as e:
            raise PersistenceError(f"Index file {target} does not hold an id-mapped HNSW graph") from e

        entries: Dict[int, IndexEntry] = {}
        vectors: Dict[int, np.ndarray] = {}
        next_id = 0
        for identity in identities:
            for slot, embedding in enumerate(identity.embeddings):
                vector = self._as_vector(embedding)
                if len(vector) != self.dimension:
                    continue
                entries[next_id] = IndexEntry(identity.identity_id, slot)
                vectors[next_id] = vector
                next_id += 1

        if next_id != index.ntotal:
            raise PersistenceError(
                f"Index holds {index.ntotal} descriptors but identities provide {next_id}; rebuild required"
            )

        if next_id and verify_sample > 0:
            sample_ids = np.unique(np.linspace(0, next_id - 1, num=min(verify_sample, next_id)).astype(np.int64))
            for internal_id in sample_ids:
                distances, labels = index.search(vectors[int(internal_id)].reshape(1, -1), 1)
                label = int(labels[0][0])
                expected = entries[int(internal_id)].identity_id
                found = entries.get(label)
                if found is None or found.identity_id != expected or distances[0][0] > _EXACT_EPSILON:
                    raise PersistenceError(
                        f"Index entry {int(internal_id)} does not resolve to identity {expected}; rebuild required"
                    )

        self.index, self._hnsw = index, hnsw
        self.entries = entries
        self.next_id = next_id
        self.tombstones = set()

        logger.log_index_operation("load", next_id, details={"path": str(target)})

    def clear(self) -> None:
        """Drop the graph and mapping."""
        self.index = None
        self._hnsw = None
        self.entries.clear()
        self.next_id = 0
        self.tombstones = set()
        logger.log_index_operation("clear", 0)

    def is_built(self) -> bool:
        return self.index is not None

    def is_ready(self) -> bool:
        return self.index is not None and self.index.ntotal > 0

    def stats(self) -> Dict[str, object]:
        return {
            "total_descriptors": len(self.entries),
            "is_ready": self.is_ready(),
            "dimension": self.dimension,
            "tombstoned_entries": len(self.tombstones),
        }

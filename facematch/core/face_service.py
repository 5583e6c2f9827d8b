"""
Face matching service - routes queries to the exact matcher or the HNSW index
and turns the nearest distance into an accept/reject decision.

The identity store is canonical. The cache is written through after every
enrollment, and the index is updated best-effort: index failures are logged
and never fail the enrollment that triggered them.
"""

from pathlib import Path
from typing import Dict, Optional, Sequence

import numpy as np

from .cache import IdentityCache
from .config import (debug_enabled, ensure_index_directory, get_early_exit_ratio, get_embedding_dim,
                     get_index_checkpoint_interval, get_index_enable_threshold, get_index_path,
                     get_match_threshold)
from .dao import IdentityStore
from .errors import (DimensionMismatchError, FaceMatchError, IdentityNotFoundError,
                     NoIdentitiesError, NotRecognizedError, PersistenceError)
from .schema import Identity, MatchResult
from .validation import EnrollmentRequest
from ..util.logging import logger
from ..vector.embeddings import IFaceEmbedder, decode_descriptor
from ..vector.hnsw_index import HNSWDescriptorIndex
from ..vector.matcher import brute_force_search

STRATEGY_BRUTE_FORCE = "brute_force"
STRATEGY_INDEX = "hnsw"


class FaceMatchingService:
    """Matching façade over an IdentityCache, an IdentityStore and an optional HNSW index."""

    def __init__(self, cache: IdentityCache, store: IdentityStore,
                 index: Optional[HNSWDescriptorIndex] = None,
                 embedder: Optional[IFaceEmbedder] = None,
                 threshold: Optional[float] = None,
                 early_exit_ratio: Optional[float] = None,
                 index_path: Optional[str] = None,
                 checkpoint_interval: Optional[int] = None,
                 index_enable_threshold: Optional[int] = None):
        self.cache = cache
        self.store = store
        self.index = index
        self.embedder = embedder
        self.threshold = get_match_threshold() if threshold is None else threshold
        self.early_exit_ratio = get_early_exit_ratio() if early_exit_ratio is None else early_exit_ratio
        self.index_path = index_path or get_index_path()
        self.checkpoint_interval = checkpoint_interval or get_index_checkpoint_interval()
        self.index_enable_threshold = (get_index_enable_threshold()
                                       if index_enable_threshold is None else index_enable_threshold)
        self.dimension = index.dimension if index is not None else get_embedding_dim()

        self.index_enabled = False
        self._inserts_since_checkpoint = 0

    # Strategy selection

    def set_index_enabled(self, enabled: bool) -> None:
        self.index_enabled = enabled
        logger.info(f"Vector index {'enabled' if enabled else 'disabled'}")

    @property
    def strategy(self) -> str:
        if self.index_enabled and self.index is not None and self.index.is_ready():
            return STRATEGY_INDEX
        return STRATEGY_BRUTE_FORCE

    def initialize_index(self) -> bool:
        """
        Decide at startup whether the vector index is used.

        Below the size cutoff matching stays exact. Otherwise the saved index is
        loaded; a missing or rejected file falls back to a full build, which is
        then saved. Returns True when the index ends up enabled.
        """
        identities = self.cache.get()
        count = len(identities)
        logger.info(f"Identity count: {count}")

        if count < self.index_enable_threshold:
            logger.info(f"Brute-force mode ({count} < {self.index_enable_threshold} identities)")
            self.set_index_enabled(False)
            return False

        if self.index is None:
            self.index = HNSWDescriptorIndex(dimension=self.dimension)

        loaded = False
        if Path(self.index_path).exists():
            try:
                self.index.load_index(self.index_path, identities)
                loaded = True
            except PersistenceError as e:
                logger.warning(f"Could not load index, rebuilding: {e}")

        if not loaded:
            self.rebuild_index()

        self.set_index_enabled(True)
        return True

    def rebuild_index(self) -> None:
        """Full rebuild from the current snapshot, then persist it."""
        if self.index is None:
            self.index = HNSWDescriptorIndex(dimension=self.dimension)
        self.index.build_index(self.cache.get())
        self._inserts_since_checkpoint = 0
        self._save_quietly()

    def checkpoint(self) -> bool:
        """Persist the index now. Failures are logged, not raised."""
        if self.index is None or not self.index.is_built():
            return False
        if self._save_quietly():
            self._inserts_since_checkpoint = 0
            return True
        return False

    def _save_quietly(self) -> bool:
        try:
            self.index.save_index(self.index_path)
            return True
        except FaceMatchError as e:
            logger.error(f"Index save failed: {e}")
            return False

    # Matching

    def match_face(self, query, identities: Optional[Sequence[Identity]] = None) -> MatchResult:
        """Identify the person behind `query`, or raise a FaceMatchError."""
        if identities is None:
            identities = self.cache.get()

        query = np.asarray(query, dtype=np.float32).reshape(-1)
        if len(query) != self.dimension:
            raise DimensionMismatchError(self.dimension, len(query))

        if not any(identity.embeddings for identity in identities):
            raise NoIdentitiesError()

        if self.strategy == STRATEGY_INDEX:
            result = self._match_with_index(query, identities)
        else:
            try:
                result = brute_force_search(query, identities, self.threshold, self.early_exit_ratio)
            except NotRecognizedError as e:
                logger.log_match(STRATEGY_BRUTE_FORCE, distance=e.distance, status="rejected")
                raise

        logger.log_match(self.strategy, result.identity.identity_id, result.distance)
        return result

    def _match_with_index(self, query: np.ndarray, identities: Sequence[Identity]) -> MatchResult:
        hits = self.index.search_knn(query, 1)
        if not hits:
            logger.log_match(STRATEGY_INDEX, status="rejected")
            raise NotRecognizedError()

        best = hits[0]
        if best.distance > self.threshold:
            logger.log_match(STRATEGY_INDEX, best.identity_id, best.distance, status="rejected")
            raise NotRecognizedError(best.distance, self.threshold)

        identity = self._resolve(best.identity_id, identities)
        if identity is None:
            logger.log_match(STRATEGY_INDEX, best.identity_id, best.distance, status="failed")
            raise IdentityNotFoundError(best.identity_id)

        return MatchResult(identity=identity, distance=best.distance)

    def _resolve(self, identity_id: str, identities: Sequence[Identity]) -> Optional[Identity]:
        if identities is self.cache.get():
            return self.cache.find(identity_id)
        for identity in identities:
            if identity.identity_id == identity_id:
                return identity
        return None

    def match_descriptor_bytes(self, buffer: bytes) -> MatchResult:
        """Match a client-supplied little-endian float32 descriptor buffer."""
        return self.match_face(decode_descriptor(buffer, self.dimension))

    def check_in(self, image: bytes) -> MatchResult:
        """Detect a face in `image` and match it."""
        if self.embedder is None:
            raise RuntimeError("No face embedder configured")
        detection = self.embedder.detect(image)
        return self.match_face(detection.descriptor)

    # Enrollment

    def enroll(self, identity_id: str, name: str, embedding) -> Identity:
        """
        Store a new embedding for an identity and write it through to the cache.

        Once the index has been built it follows every enrollment, enabled or not:
        new embeddings are added and embeddings evicted by the per-identity cap
        are retired.
        """
        request = EnrollmentRequest(
            identity_id=identity_id,
            name=name,
            embedding=np.asarray(embedding, dtype=np.float32).reshape(-1).tolist(),
        )

        previous = self.cache.find(request.identity_id)
        identity = self.store.upsert_identity(request.identity_id, request.name, request.embedding)
        self.cache.add_or_update(identity)
        logger.log_enrollment(identity.identity_id, len(identity.embeddings))

        self._index_new_embeddings(previous, identity)
        return identity

    def register_image(self, identity_id: str, name: str, image: bytes) -> Identity:
        """Detect a face in `image` and enroll its descriptor."""
        if self.embedder is None:
            raise RuntimeError("No face embedder configured")
        detection = self.embedder.detect(image)
        return self.enroll(identity_id, name, detection.descriptor)

    def _index_new_embeddings(self, previous: Optional[Identity], identity: Identity) -> None:
        # A built index follows enrollments even while disabled
        if self.index is None or not self.index.is_built():
            return

        known = previous.embeddings if previous is not None else []
        evicted = [old for old in known
                   if not any(np.array_equal(old, current) for current in identity.embeddings)]
        for embedding in evicted:
            try:
                self.index.retire_descriptor(identity.identity_id, embedding)
            except FaceMatchError as e:
                logger.log_enrollment(identity.identity_id, len(identity.embeddings), "degraded",
                                      {"index_error": str(e)})

        for slot, embedding in enumerate(identity.embeddings):
            if any(np.array_equal(embedding, old) for old in known):
                continue
            try:
                self.index.add_descriptor(identity.identity_id, embedding, slot)
            except FaceMatchError as e:
                logger.log_enrollment(identity.identity_id, len(identity.embeddings), "degraded",
                                      {"index_error": str(e)})
                continue

            self._inserts_since_checkpoint += 1
            if self._inserts_since_checkpoint >= self.checkpoint_interval:
                self.checkpoint()

    def remove_identity(self, identity_id: str) -> bool:
        """Delete an identity everywhere; the index hides it until the next rebuild."""
        removed = self.store.delete_identity(identity_id)
        self.cache.remove(identity_id)
        if self.index is not None and self.index.is_built():
            self.index.tombstone(identity_id)
        return removed

    def stats(self) -> Dict[str, object]:
        return {
            "strategy": self.strategy,
            "index_enabled": self.index_enabled,
            "cache": self.cache.stats(),
            "index": self.index.stats() if self.index is not None else None,
            "threshold": self.threshold,
        }


def create_service(db_path: Optional[str] = None, embedder: Optional[IFaceEmbedder] = None,
                   initialize_index: bool = True) -> FaceMatchingService:
    """Wire store, cache and index from configuration and warm the cache."""
    logger.set_debug(debug_enabled())
    ensure_index_directory()

    store = IdentityStore(db_path)
    cache = IdentityCache(store)
    cache.refresh()

    service = FaceMatchingService(cache, store, index=HNSWDescriptorIndex(), embedder=embedder)
    if initialize_index:
        service.initialize_index()
    return service

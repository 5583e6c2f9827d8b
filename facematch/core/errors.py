"""
Typed failures for matching, indexing and persistence.
Callers dispatch on the exception type or its ErrorKind, never on message text.
"""

from enum import Enum
from typing import Optional


class ErrorKind(Enum):
    """Closed set of failure kinds surfaced to callers."""
    NO_IDENTITIES = "no_identities"
    NOT_RECOGNIZED = "not_recognized"
    DIMENSION_MISMATCH = "dimension_mismatch"
    INDEX_NOT_READY = "index_not_ready"
    IDENTITY_NOT_FOUND = "identity_not_found"
    PERSISTENCE = "persistence"
    IDENTITY_STORE = "identity_store"


class FaceMatchError(Exception):
    """Base class for all matching errors."""

    kind: ErrorKind = None
    user_facing = False

    def __init__(self, message: str = ""):
        super().__init__(message or (self.kind.value if self.kind else ""))


class NoIdentitiesError(FaceMatchError):
    """The candidate pool is empty."""
    kind = ErrorKind.NO_IDENTITIES
    user_facing = True

    def __init__(self, message: str = "No identities enrolled"):
        super().__init__(message)


class NotRecognizedError(FaceMatchError):
    """Best distance is above the acceptance threshold (or there is no candidate)."""
    kind = ErrorKind.NOT_RECOGNIZED
    user_facing = True

    def __init__(self, distance: Optional[float] = None, threshold: Optional[float] = None):
        self.distance = distance
        self.threshold = threshold
        if distance is None:
            message = "Face not recognized: no candidate"
        else:
            message = f"Face not recognized: best distance {distance:.4f} exceeds threshold {threshold}"
        super().__init__(message)


class DimensionMismatchError(FaceMatchError):
    """Embedding length differs from the configured dimensionality."""
    kind = ErrorKind.DIMENSION_MISMATCH

    def __init__(self, expected: int, actual: int):
        self.expected = expected
        self.actual = actual
        super().__init__(f"Embedding dimension {actual} does not match expected dimension {expected}")


class IndexNotReadyError(FaceMatchError):
    """Vector index queried or updated before it was built."""
    kind = ErrorKind.INDEX_NOT_READY

    def __init__(self, message: str = "Vector index not built"):
        super().__init__(message)


class IdentityNotFoundError(FaceMatchError):
    """An index result cannot be resolved against the identity snapshot."""
    kind = ErrorKind.IDENTITY_NOT_FOUND

    def __init__(self, identity_id: str):
        self.identity_id = identity_id
        super().__init__(f"Identity '{identity_id}' not found in snapshot (index and cache have drifted)")


class PersistenceError(FaceMatchError):
    """Index save/load failed (I/O or format)."""
    kind = ErrorKind.PERSISTENCE


class IdentityStoreError(FaceMatchError):
    """Identity store read or write failed."""
    kind = ErrorKind.IDENTITY_STORE

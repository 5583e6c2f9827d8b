"""
Data model shared by the identity store, snapshot cache, vector index and matcher.
"""

import json
import numbers
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, List, Optional, Tuple

import numpy as np


def to_embedding(values: Any) -> np.ndarray:
    """Coerce a sequence of numbers into a read-only 1-D float32 embedding."""
    vector = np.array(values, dtype=np.float32).reshape(-1)
    vector.setflags(write=False)
    return vector


class DescriptorShape(Enum):
    SINGLE = "single"
    MANY = "many"


@dataclass(frozen=True)
class Descriptors:
    """One-or-many embeddings as read from storage, normalized to a list of vectors."""

    shape: DescriptorShape
    vectors: Tuple[np.ndarray, ...] = ()

    @classmethod
    def single(cls, vector: Any) -> "Descriptors":
        return cls(DescriptorShape.SINGLE, (to_embedding(vector),))

    @classmethod
    def many(cls, vectors: Any) -> "Descriptors":
        return cls(DescriptorShape.MANY, tuple(to_embedding(v) for v in vectors))

    @classmethod
    def from_raw(cls, raw: Any) -> "Descriptors":
        """
        Normalize a stored descriptor payload.

        A flat numeric array is a single embedding; an array of arrays is many.
        JSON strings are decoded first. Anything else raises ValueError.
        """
        if raw is None:
            return cls.many([])

        payload = raw
        if isinstance(raw, (str, bytes)):
            payload = json.loads(raw)

        if isinstance(payload, np.ndarray):
            payload = payload.tolist()

        if not isinstance(payload, (list, tuple)):
            raise ValueError(f"Unsupported descriptor payload type: {type(payload).__name__}")

        if len(payload) == 0:
            return cls.many([])

        if all(isinstance(v, numbers.Real) and not isinstance(v, bool) for v in payload):
            return cls.single(payload)

        if all(isinstance(v, (list, tuple, np.ndarray)) for v in payload):
            return cls.many(payload)

        raise ValueError("Descriptor payload mixes numbers and arrays")

    def as_list(self) -> List[np.ndarray]:
        return list(self.vectors)


@dataclass
class Identity:
    """An enrolled person with up to K stored embeddings (oldest first)."""

    identity_id: str
    name: str
    embeddings: List[np.ndarray] = field(default_factory=list)
    sort_order: Optional[int] = None


@dataclass
class MatchResult:
    """Accepted match: the resolved identity and its Euclidean distance."""

    identity: Identity
    distance: float

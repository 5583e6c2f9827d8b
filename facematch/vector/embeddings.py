"""
Face descriptor codec and embedder abstraction.
The neural-network model that turns a photo into a descriptor lives outside this package.
"""

import hashlib
from abc import ABC, abstractmethod
from dataclasses import dataclass

import numpy as np

from ..core.errors import DimensionMismatchError


@dataclass
class FaceDetection:
    """A detected face: its descriptor and the detector's confidence (0..1)."""
    descriptor: np.ndarray
    confidence: float


def decode_descriptor(buffer: bytes, dimension: int) -> np.ndarray:
    """Decode a client-supplied buffer of little-endian float32 values."""
    if not buffer:
        raise ValueError("Descriptor buffer is empty")
    if len(buffer) % 4 != 0:
        raise ValueError(f"Descriptor buffer length {len(buffer)} is not a multiple of 4 bytes")

    vector = np.frombuffer(buffer, dtype="<f4").astype(np.float32)
    if len(vector) != dimension:
        raise DimensionMismatchError(dimension, len(vector))
    return vector


def encode_descriptor(descriptor: np.ndarray) -> bytes:
    """Encode a descriptor as little-endian float32 bytes."""
    return np.asarray(descriptor, dtype="<f4").tobytes()


def euclidean_distance(a: np.ndarray, b: np.ndarray) -> float:
    return float(np.linalg.norm(np.asarray(a, dtype=np.float32) - np.asarray(b, dtype=np.float32)))


class IFaceEmbedder(ABC):
    """Abstract interface for face embedding providers."""

    @abstractmethod
    def detect(self, image: bytes) -> FaceDetection:
        """Detect a single face and return its descriptor."""
        pass

    @abstractmethod
    def get_dimension(self) -> int:
        """Get the dimension of the descriptors."""
        pass


class DeterministicHashEmbedder(IFaceEmbedder):
    """Deterministic hash-based embedder for testing purposes.

    The same image bytes always yield the same unit-length descriptor, which makes
    enrollment and check-in flows reproducible without a real model.
    """

    def __init__(self, dimension: int = 128):
        self.dimension = dimension

    def detect(self, image: bytes) -> FaceDetection:
        if not image:
            raise ValueError("No face detected")

        seed = int.from_bytes(hashlib.md5(image).digest()[:8], "little")
        rng = np.random.default_rng(seed)
        vector = rng.standard_normal(self.dimension).astype(np.float32)
        vector /= np.linalg.norm(vector)
        return FaceDetection(descriptor=vector, confidence=1.0)

    def get_dimension(self) -> int:
        return self.dimension

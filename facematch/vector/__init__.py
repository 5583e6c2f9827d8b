"""
Vector matching - exact scan and HNSW index over face descriptors.
Derived, non-canonical layer over the SQLite identity store.
"""

# Package initialization for vector module
from .embeddings import IFaceEmbedder, DeterministicHashEmbedder, FaceDetection, decode_descriptor, encode_descriptor
from .hnsw_index import HNSWDescriptorIndex
from .matcher import brute_force_search
from .types import IndexEntry, SearchHit

__all__ = [
    'IFaceEmbedder',
    'DeterministicHashEmbedder',
    'FaceDetection',
    'decode_descriptor',
    'encode_descriptor',
    'HNSWDescriptorIndex',
    'brute_force_search',
    'IndexEntry',
    'SearchHit'
]

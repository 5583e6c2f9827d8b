"""Face embedding matching: identity snapshot cache, exact matcher and HNSW vector index."""

__version__ = "1.0.0"

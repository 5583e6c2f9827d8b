"""
Matching configuration - environment driven, loaded once per process.
Getter functions re-read the environment so callers (and tests) see overrides.
"""

import os
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

# Identity store
DB_PATH = os.getenv("DB_PATH", "./data/identities.db")

# Debug flag
DEBUG = os.getenv("DEBUG", "false").lower() == "true"

# Embedding shape
EMBEDDING_DIM = int(os.getenv("EMBEDDING_DIM", "128"))
MAX_EMBEDDINGS_PER_IDENTITY = int(os.getenv("MAX_EMBEDDINGS_PER_IDENTITY", "5"))

# Matching policy
MATCH_THRESHOLD = float(os.getenv("MATCH_THRESHOLD", "0.55"))
EARLY_EXIT_RATIO = float(os.getenv("EARLY_EXIT_RATIO", "0.5"))

# Identity snapshot cache
CACHE_TTL_SEC = int(os.getenv("CACHE_TTL_SEC", "300"))  # 5 minutes
CACHE_PAGE_SIZE = int(os.getenv("CACHE_PAGE_SIZE", "500"))

# Vector index (HNSW)
INDEX_ENABLE_THRESHOLD = int(os.getenv("INDEX_ENABLE_THRESHOLD", "10000"))
INDEX_PATH = os.getenv("INDEX_PATH", "./storage/face-index.bin")
INDEX_CHECKPOINT_INTERVAL = int(os.getenv("INDEX_CHECKPOINT_INTERVAL", "100"))
HNSW_M = int(os.getenv("HNSW_M", "32"))
HNSW_EF_CONSTRUCTION = int(os.getenv("HNSW_EF_CONSTRUCTION", "200"))
HNSW_EF_SEARCH = int(os.getenv("HNSW_EF_SEARCH", "100"))

VERSION = "1.0.0"


def debug_enabled():
    """Check if debug mode is enabled."""
    return os.getenv("DEBUG", "false").lower() == "true"


def get_db_path():
    return os.getenv("DB_PATH", DB_PATH)


def get_embedding_dim():
    """Fixed descriptor dimensionality for this process."""
    return int(os.getenv("EMBEDDING_DIM", str(EMBEDDING_DIM)))


def get_max_embeddings():
    """Maximum number of embeddings kept per identity (FIFO cap)."""
    return int(os.getenv("MAX_EMBEDDINGS_PER_IDENTITY", str(MAX_EMBEDDINGS_PER_IDENTITY)))


def get_match_threshold():
    """Acceptance threshold on Euclidean distance."""
    return float(os.getenv("MATCH_THRESHOLD", str(MATCH_THRESHOLD)))


def get_early_exit_ratio():
    return float(os.getenv("EARLY_EXIT_RATIO", str(EARLY_EXIT_RATIO)))


def get_cache_ttl():
    """Get cache time-to-live in seconds."""
    return int(os.getenv("CACHE_TTL_SEC", str(CACHE_TTL_SEC)))


def get_cache_page_size():
    return int(os.getenv("CACHE_PAGE_SIZE", str(CACHE_PAGE_SIZE)))


def get_index_enable_threshold():
    """Identity count at which the vector index is switched on at startup."""
    return int(os.getenv("INDEX_ENABLE_THRESHOLD", str(INDEX_ENABLE_THRESHOLD)))


def get_index_path():
    return os.getenv("INDEX_PATH", INDEX_PATH)


def get_index_checkpoint_interval():
    """Number of incremental inserts between automatic index saves."""
    return int(os.getenv("INDEX_CHECKPOINT_INTERVAL", str(INDEX_CHECKPOINT_INTERVAL)))


def get_hnsw_params():
    """Get HNSW graph parameters as a dict (M, ef_construction, ef_search)."""
    return {
        "m": int(os.getenv("HNSW_M", str(HNSW_M))),
        "ef_construction": int(os.getenv("HNSW_EF_CONSTRUCTION", str(HNSW_EF_CONSTRUCTION))),
        "ef_search": int(os.getenv("HNSW_EF_SEARCH", str(HNSW_EF_SEARCH))),
    }


def ensure_index_directory():
    """Ensure the index file directory exists."""
    Path(get_index_path()).parent.mkdir(parents=True, exist_ok=True)


def validate_config():
    """Validate matching configuration and return any issues."""
    issues = []

    if get_embedding_dim() < 1:
        issues.append("EMBEDDING_DIM must be >= 1")

    if get_max_embeddings() < 1:
        issues.append("MAX_EMBEDDINGS_PER_IDENTITY must be >= 1")

    if get_match_threshold() <= 0:
        issues.append("MATCH_THRESHOLD must be > 0")

    ratio = get_early_exit_ratio()
    if ratio <= 0 or ratio > 1:
        issues.append(f"Invalid EARLY_EXIT_RATIO: {ratio} (expected 0 < ratio <= 1)")

    if get_cache_page_size() < 1:
        issues.append("CACHE_PAGE_SIZE must be >= 1")

    if get_index_checkpoint_interval() < 1:
        issues.append("INDEX_CHECKPOINT_INTERVAL must be >= 1")

    hnsw = get_hnsw_params()
    if hnsw["m"] < 2:
        issues.append("HNSW_M must be >= 2")
    if hnsw["ef_search"] < 1:
        issues.append("HNSW_EF_SEARCH must be >= 1")

    return issues

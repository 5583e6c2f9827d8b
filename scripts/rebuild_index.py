#!/usr/bin/env python3
"""
Index Rebuild Utility
Rebuilds the HNSW descriptor index from the canonical SQLite identity store,
saves it to INDEX_PATH and runs a verification query.
"""

import argparse
import sys
import time
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from facematch.core.cache import IdentityCache
from facematch.core.config import get_index_path, validate_config
from facematch.core.dao import IdentityStore
from facematch.core.errors import FaceMatchError
from facematch.vector.hnsw_index import HNSWDescriptorIndex


def main(argv=None):
    """Rebuild vector index from the identity store."""
    parser = argparse.ArgumentParser(description="Rebuild the face descriptor index")
    parser.add_argument("--db-path", default=None, help="SQLite identity store (default: DB_PATH)")
    parser.add_argument("--index-path", default=None, help="Index output file (default: INDEX_PATH)")
    args = parser.parse_args(argv)

    issues = validate_config()
    if issues:
        print(f"ERROR: Invalid configuration: {issues}")
        sys.exit(1)

    index_path = args.index_path or get_index_path()

    print("Starting descriptor index rebuild...")

    store = IdentityStore(args.db_path)
    cache = IdentityCache(store)
    try:
        cache.refresh()
    except FaceMatchError as e:
        print(f"ERROR: Failed to load identities: {e}")
        sys.exit(1)

    identities = cache.get()
    total = sum(len(identity.embeddings) for identity in identities)
    print(f"Found {len(identities)} identities ({total} descriptors) in canonical store")

    if total == 0:
        print("No descriptors to index. Exiting.")
        return

    index = HNSWDescriptorIndex()
    start = time.monotonic()
    index.build_index(identities)
    elapsed = time.monotonic() - start
    print(f"✓ Successfully rebuilt index with {index.stats()['total_descriptors']} descriptors in {elapsed:.2f}s")

    try:
        index.save_index(index_path)
        print(f"✓ Saved index to {index_path}")
    except FaceMatchError as e:
        print(f"ERROR: Failed to save index: {e}")
        sys.exit(1)

    # Verify index: the first stored descriptor must come back as its own identity
    try:
        probe = next(identity for identity in identities if identity.embeddings)
        hits = index.search_knn(probe.embeddings[0], k=1)
        if hits and hits[0].identity_id == probe.identity_id:
            print(f"✓ Verification search returned {probe.identity_id} (distance {hits[0].distance:.6f})")
        else:
            print(f"WARNING: Verification search did not return {probe.identity_id}")
    except FaceMatchError as e:
        print(f"WARNING: Verification search failed: {e}")

    print("Index rebuild complete!")


if __name__ == "__main__":
    main()

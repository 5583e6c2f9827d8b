#!/usr/bin/env python3
"""
Matching benchmark - exact scan vs HNSW index on synthetic identities.
Reports timings, top-1 agreement and distance difference per dataset size.
"""

import argparse
import sys
import time
from pathlib import Path

import numpy as np

sys.path.insert(0, str(Path(__file__).parent.parent))

from facematch.core.errors import NotRecognizedError
from facematch.core.schema import Identity
from facematch.vector.hnsw_index import HNSWDescriptorIndex
from facematch.vector.matcher import brute_force_search


def create_mock_identities(count, per_identity=5, dimension=128, seed=0):
    rng = np.random.default_rng(seed)
    return [
        Identity(
            identity_id=f"ID{i:07d}",
            name=f"Person {i}",
            embeddings=list(rng.random((per_identity, dimension), dtype=np.float32)),
            sort_order=i,
        )
        for i in range(count)
    ]


def run(sizes, queries, dimension):
    rng = np.random.default_rng(42)

    for size in sizes:
        print(f"\n📊 Testing with {size:,} identities ({size * 5:,} descriptors)...\n")
        identities = create_mock_identities(size, dimension=dimension)
        probes = rng.random((queries, dimension), dtype=np.float32)

        # Exact scan with the threshold disabled so every query yields its true nearest
        brute_start = time.monotonic()
        exact = []
        for probe in probes:
            try:
                exact.append(brute_force_search(probe, identities, threshold=float("inf"), early_exit_ratio=0.0))
            except NotRecognizedError:
                exact.append(None)
        brute_ms = (time.monotonic() - brute_start) * 1000 / queries
        print(f"🐌 Brute-force: {brute_ms:.2f}ms/query")

        index = HNSWDescriptorIndex(dimension=dimension)
        build_start = time.monotonic()
        index.build_index(identities)
        print(f"🏗️  Build index: {(time.monotonic() - build_start) * 1000:.0f}ms")

        search_start = time.monotonic()
        approx = [index.search_knn(probe, 1) for probe in probes]
        index_ms = (time.monotonic() - search_start) * 1000 / queries
        print(f"🚀 HNSW search: {index_ms:.3f}ms/query")

        agree = 0
        max_diff = 0.0
        for expected, hits in zip(exact, approx):
            if expected is None or not hits:
                continue
            if hits[0].identity_id == expected.identity.identity_id:
                agree += 1
            max_diff = max(max_diff, abs(hits[0].distance - expected.distance))

        print(f"✅ Top-1 agreement: {agree}/{queries} ({agree / queries:.1%})")
        print(f"📏 Max distance difference: {max_diff:.6f}")
        if index_ms > 0:
            print(f"⚡ Speedup: {brute_ms / index_ms:.1f}x")
        print("─" * 60)


def main(argv=None):
    parser = argparse.ArgumentParser(description="Benchmark exact vs HNSW face matching")
    parser.add_argument("--sizes", type=int, nargs="+", default=[100, 1000, 10000])
    parser.add_argument("--queries", type=int, default=20)
    parser.add_argument("--dimension", type=int, default=128)
    args = parser.parse_args(argv)

    print("=== BENCHMARK: Face Matching Performance ===")
    run(args.sizes, args.queries, args.dimension)
    print("\nBenchmark complete!")


if __name__ == "__main__":
    main()

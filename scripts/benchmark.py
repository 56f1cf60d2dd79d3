#!/usr/bin/env python3
"""Benchmark script for keystore unlock latency.

This script measures how long one unlock takes under given Argon2id cost
parameters, which is dominated by key derivation. Use it to pick costs that
keep unlocking tolerable on the machines that run the deployment scripts.
"""

import argparse
import statistics
import sys
import tempfile
import time
from dataclasses import dataclass
from pathlib import Path

from rwa_keystore.crypto import ARGON2_MEMORY_COST, ARGON2_PARALLELISM, ARGON2_TIME_COST
from rwa_keystore.keystore import KdfParams, KeystoreError
from rwa_keystore.unlocker import KeystoreUnlocker
from rwa_keystore.writer import encrypt_private_key, write_keystore

# Well-known throwaway key, never fund it
SAMPLE_PRIVATE_KEY = "4c0883a69102937d6231471b5dbb6204fe5129617082792ae468d01a3f362318"
SAMPLE_PASSWORD = "benchmark-password"


@dataclass
class BenchmarkResult:
    """Results from a benchmark run."""

    kdf: KdfParams
    latencies: list[float]

    @property
    def avg_latency(self) -> float:
        """Calculate average latency in milliseconds."""
        if not self.latencies:
            return 0.0
        return statistics.mean(self.latencies) * 1000

    @property
    def min_latency(self) -> float:
        """Calculate minimum latency in milliseconds."""
        if not self.latencies:
            return 0.0
        return min(self.latencies) * 1000

    @property
    def max_latency(self) -> float:
        """Calculate maximum latency in milliseconds."""
        if not self.latencies:
            return 0.0
        return max(self.latencies) * 1000

    @property
    def p50_latency(self) -> float:
        """Calculate 50th percentile latency in milliseconds."""
        if not self.latencies:
            return 0.0
        return statistics.median(self.latencies) * 1000

    def __str__(self) -> str:
        """Format results as a string."""
        return f"""rwa-keystore Unlock Benchmark
=============================
Memory Cost: {self.kdf.memory_cost} KiB
Time Cost: {self.kdf.time_cost}
Parallelism: {self.kdf.parallelism}
Runs: {len(self.latencies)}

Results:
  Avg Latency: {self.avg_latency:.1f}ms
  Min: {self.min_latency:.1f}ms
  P50: {self.p50_latency:.1f}ms
  Max: {self.max_latency:.1f}ms
"""


def parse_args() -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Benchmark rwa-keystore unlock latency",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Defaults of the tool that produces keystores
  python scripts/benchmark.py

  # Heavier settings
  python scripts/benchmark.py --memory-cost 262144 --time-cost 4 --runs 5
        """,
    )
    parser.add_argument(
        "--memory-cost",
        type=int,
        default=ARGON2_MEMORY_COST,
        help=f"Argon2id memory cost in KiB (default: {ARGON2_MEMORY_COST})",
    )
    parser.add_argument(
        "--time-cost",
        type=int,
        default=ARGON2_TIME_COST,
        help=f"Argon2id iterations (default: {ARGON2_TIME_COST})",
    )
    parser.add_argument(
        "--parallelism",
        type=int,
        default=ARGON2_PARALLELISM,
        help=f"Argon2id lanes (default: {ARGON2_PARALLELISM})",
    )
    parser.add_argument(
        "--runs",
        type=int,
        default=10,
        help="Number of unlocks to time (default: 10)",
    )
    return parser.parse_args()


def run_benchmark(kdf: KdfParams, runs: int) -> BenchmarkResult:
    """Write a sample keystore and time repeated unlocks of it."""
    unlocker = KeystoreUnlocker()
    latencies: list[float] = []

    with tempfile.TemporaryDirectory() as tmp:
        path = write_keystore(
            encrypt_private_key(SAMPLE_PRIVATE_KEY, SAMPLE_PASSWORD, kdf=kdf),
            Path(tmp) / "keystore.json",
        )
        for _ in range(runs):
            start = time.perf_counter()
            unlocker.unlock(path, SAMPLE_PASSWORD)
            latencies.append(time.perf_counter() - start)

    return BenchmarkResult(kdf=kdf, latencies=latencies)


def main() -> int:
    """Main entry point."""
    args = parse_args()
    if args.runs < 1:
        print("--runs must be at least 1", file=sys.stderr)
        return 1

    try:
        kdf = KdfParams(
            memory_cost=args.memory_cost,
            time_cost=args.time_cost,
            parallelism=args.parallelism,
        )
    except KeystoreError as e:
        print(f"Invalid KDF parameters: {e}", file=sys.stderr)
        return 1
    print(run_benchmark(kdf, args.runs))
    return 0


if __name__ == "__main__":
    sys.exit(main())

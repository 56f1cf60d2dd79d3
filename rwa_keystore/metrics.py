"""Prometheus metrics for rwa_keystore.

All metrics live on a dedicated registry. The CLI can dump them to a
node_exporter textfile after each run.
"""

import logging
from pathlib import Path  # noqa: TC003

from prometheus_client import (
    CollectorRegistry,
    Counter,
    Histogram,
    Info,
    generate_latest,
    write_to_textfile,
)

logger = logging.getLogger(__name__)

REGISTRY = CollectorRegistry()

# Application info
APP_INFO = Info(
    "rwa_keystore_build_info",
    "Build information about rwa_keystore",
    registry=REGISTRY,
)
APP_INFO.info({"version": "0.1.0", "name": "rwa_keystore"})

# Unlock metrics
UNLOCK_ATTEMPTS_TOTAL = Counter(
    "keystore_unlock_attempts_total",
    "Total number of keystore unlock attempts",
    ["outcome"],
    registry=REGISTRY,
)

KDF_DURATION_SECONDS = Histogram(
    "keystore_kdf_duration_seconds",
    "Time spent deriving keystore keys with Argon2id",
    buckets=[0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
    registry=REGISTRY,
)

# Writer metrics
KEYSTORES_WRITTEN_TOTAL = Counter(
    "keystores_written_total",
    "Total number of keystore files written",
    ["format"],
    registry=REGISTRY,
)


def get_metrics_output() -> bytes:
    """Generate Prometheus-formatted metrics output."""
    return generate_latest(REGISTRY)


def write_metrics_textfile(path: Path) -> None:
    """Write the registry to a textfile for the node_exporter textfile collector."""
    write_to_textfile(str(path), REGISTRY)
    logger.debug(f"Wrote metrics to {path}")

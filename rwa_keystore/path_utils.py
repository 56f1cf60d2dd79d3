"""Path utilities for keystore file operations.

This module provides shared functions for building Web3 Secret Storage
file names.
"""

from __future__ import annotations

from datetime import UTC, datetime
from pathlib import Path  # noqa: TC003

WEB3_KEYSTORE_PREFIX = "UTC--"
# geth layout, colons are not portable in file names
WEB3_TIMESTAMP_FORMAT = "%Y-%m-%dT%H-%M-%S.%fZ"


def get_web3_keystore_filename(address: str, when: datetime | None = None) -> str:
    """Get the Web3 Secret Storage filename for an address.

    Args:
        address: The address, with or without 0x prefix (normalized to lowercase)
        when: Creation time, defaults to now (UTC)

    Returns:
        The keystore filename (e.g., "UTC--2024-01-01T00-00-00.000000Z--aabbcc...")

    """
    if when is None:
        when = datetime.now(UTC)
    timestamp = when.astimezone(UTC).strftime(WEB3_TIMESTAMP_FORMAT)
    return f"{WEB3_KEYSTORE_PREFIX}{timestamp}--{address.lower().removeprefix('0x')}"


def get_web3_keystore_path(directory: Path, address: str, when: datetime | None = None) -> Path:
    """Get the full path of a Web3 Secret Storage file inside ``directory``."""
    return directory / get_web3_keystore_filename(address, when)


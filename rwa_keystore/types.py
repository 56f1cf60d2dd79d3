"""Type definitions for rwa_keystore.

This module contains type aliases and NewType definitions for domain-specific
types to improve type safety and code readability.
"""

from typing import NewType

PrivateKeyHex = NewType("PrivateKeyHex", str)
"""Hex-encoded secp256k1 private key (64 lowercase characters, without 0x prefix)."""

ChecksumAddress = NewType("ChecksumAddress", str)
"""EIP-55 checksummed Ethereum address (0x prefix, 40 hex characters)."""

HdPath = NewType("HdPath", str)
"""BIP-32 derivation path, e.g. m/44'/60'/0'/0/0."""

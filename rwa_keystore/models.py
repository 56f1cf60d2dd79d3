"""Data classes for rwa_keystore.

This module contains dataclasses and structured types used across the codebase.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from eth_account import Account

if TYPE_CHECKING:
    from eth_account.signers.local import LocalAccount

    from .types import ChecksumAddress, HdPath, PrivateKeyHex


@dataclass(frozen=True, slots=True)
class RecoveredIdentity:
    """Signing identity recovered from a keystore.

    Attributes:
        private_key_hex: The raw secp256k1 private key (64 hex chars, no 0x prefix)
        address: The checksummed address derived from the private key
        mnemonic: Optional recovery phrase stored alongside the key
        hd_path: Derivation path of the key when it came from the mnemonic

    """

    private_key_hex: PrivateKeyHex = field(repr=False)
    address: ChecksumAddress
    mnemonic: str | None = field(default=None, repr=False)
    hd_path: HdPath | None = None

    @property
    def private_key_bytes(self) -> bytes:
        return bytes.fromhex(self.private_key_hex)

    @property
    def has_mnemonic(self) -> bool:
        return self.mnemonic is not None

    def to_account(self) -> LocalAccount:
        """Return an eth_account signer for the recovered key."""
        return Account.from_key(self.private_key_bytes)

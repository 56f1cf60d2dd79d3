"""Reconstruct a signing identity from decrypted keystore payloads.

Two payload shapes are understood:

- exactly 32 bytes: a raw secp256k1 private key
- a UTF-8 JSON object with ``privateKey`` and/or ``mnemonic`` (and an
  optional BIP-32 ``path``); a mnemonic-only payload is expanded with the
  standard Ethereum derivation path

The address is always computed from the key, never read from the payload.
"""

from __future__ import annotations

import binascii
import logging
from typing import TYPE_CHECKING

import msgspec
from eth_account import Account

from .keystore import UnsupportedFormat
from .models import RecoveredIdentity
from .types import ChecksumAddress, HdPath, PrivateKeyHex

if TYPE_CHECKING:
    from eth_account.signers.local import LocalAccount

logger = logging.getLogger(__name__)

PRIVATE_KEY_LENGTH = 32
SECP256K1_N = 0xFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFFEBAAEDCE6AF48A03BBFD25E8CD0364141
DEFAULT_HD_PATH = HdPath("m/44'/60'/0'/0/0")

Account.enable_unaudited_hdwallet_features()


class PayloadContainer(msgspec.Struct, frozen=True, rename="camel", omit_defaults=True):
    """JSON payload carrying a key, a mnemonic, or both."""

    private_key: str | None = None
    mnemonic: str | None = None
    path: str | None = None

    def __post_init__(self) -> None:
        if self.private_key is None and self.mnemonic is None:
            raise UnsupportedFormat("Payload contains neither a private key nor a mnemonic")


def decode_private_key(value: str | bytes | bytearray) -> bytes:
    """Validate a private key given as raw bytes or hex (0x prefix optional).

    Raises:
        ValueError: If the value is not a valid secp256k1 private key.

    """
    if isinstance(value, str):
        hex_value = value[2:] if value[:2] in ("0x", "0X") else value
        try:
            key = binascii.unhexlify(hex_value)
        except ValueError:
            raise ValueError("Private key is not valid hex") from None
    else:
        key = bytes(value)

    if len(key) != PRIVATE_KEY_LENGTH:
        raise ValueError(f"Private key must be {PRIVATE_KEY_LENGTH} bytes, got {len(key)}")
    if not 0 < int.from_bytes(key, "big") < SECP256K1_N:
        raise ValueError("Private key is outside the secp256k1 range")
    return key


def normalize_mnemonic(mnemonic: str) -> str:
    return " ".join(mnemonic.split())


def address_from_private_key(private_key: bytes) -> ChecksumAddress:
    """Derive the EIP-55 checksummed address of a private key."""
    return ChecksumAddress(Account.from_key(private_key).address)


def account_from_mnemonic(mnemonic: str, path: str = DEFAULT_HD_PATH) -> LocalAccount:
    """Derive the account at ``path`` from a BIP-39 mnemonic.

    Raises:
        ValueError: If the phrase or the path is invalid.

    """
    try:
        return Account.from_mnemonic(normalize_mnemonic(mnemonic), account_path=path)
    except Exception:
        # eth_account errors echo the phrase back, keep it out of the message
        raise ValueError(f"Invalid mnemonic or derivation path {path!r}") from None


def identity_from_private_key(
    private_key: bytes | bytearray,
    mnemonic: str | None = None,
    hd_path: str | None = None,
) -> RecoveredIdentity:
    """Build a RecoveredIdentity from a validated private key."""
    key = decode_private_key(private_key)
    return RecoveredIdentity(
        private_key_hex=PrivateKeyHex(key.hex()),
        address=address_from_private_key(key),
        mnemonic=normalize_mnemonic(mnemonic) if mnemonic is not None else None,
        hd_path=HdPath(hd_path) if hd_path is not None else None,
    )


def _identity_from_container(container: PayloadContainer) -> RecoveredIdentity:
    if container.mnemonic is None:
        if container.path is not None:
            raise ValueError("Derivation path given without a mnemonic")
        return identity_from_private_key(decode_private_key(container.private_key or ""))

    path = container.path or DEFAULT_HD_PATH
    logger.debug(f"Deriving account from stored mnemonic at {path}")
    account = account_from_mnemonic(container.mnemonic, path)
    derived = bytes(account.key)
    if container.private_key is not None and decode_private_key(container.private_key) != derived:
        raise ValueError(f"Private key does not match the mnemonic at {path}")
    return identity_from_private_key(derived, mnemonic=container.mnemonic, hd_path=path)


def identity_from_plaintext(plaintext: bytes | bytearray) -> RecoveredIdentity:
    """Interpret an authenticated plaintext as a signing identity.

    Raises:
        UnsupportedFormat: If the payload shape is not recognized or invalid.

    """
    try:
        if len(plaintext) == PRIVATE_KEY_LENGTH:
            return identity_from_private_key(plaintext)
        container = msgspec.json.decode(plaintext, type=PayloadContainer)
        return _identity_from_container(container)
    except msgspec.DecodeError:
        raise UnsupportedFormat(
            f"Decrypted payload of {len(plaintext)} bytes is neither a raw key "
            "nor a key container",
        ) from None
    except ValueError as e:
        raise UnsupportedFormat(f"Decrypted payload is invalid: {e}") from None

"""Encrypted keystore file handling (Argon2id + AES-256-GCM)."""

from __future__ import annotations

import binascii
import logging
import time
from typing import TYPE_CHECKING, Any, ClassVar

import msgspec
from argon2.exceptions import HashingError
from cryptography.exceptions import InvalidTag
from eth_account import Account

from .crypto import (
    ARGON2_MEMORY_COST,
    ARGON2_PARALLELISM,
    ARGON2_TIME_COST,
    IV_LENGTH,
    MIN_SALT_LENGTH,
    TAG_LENGTH,
    derive_key,
    open_sealed,
    scrub,
)
from .metrics import KDF_DURATION_SECONDS

if TYPE_CHECKING:
    from pathlib import Path

logger = logging.getLogger(__name__)

KEYSTORE_VERSION = 1
WEB3_KEYSTORE_VERSION = 3
KDF_FUNCTION = "argon2id"
# 4 GiB, expressed in KiB like memory_cost
MAX_MEMORY_COST = 4 * 1024 * 1024
MAX_PARALLELISM = 255


class KeystoreError(Exception):
    """Error loading, decrypting or interpreting a keystore."""

    outcome: ClassVar[str] = "error"


class MalformedKeystore(KeystoreError):
    """The keystore file is missing, unreadable or structurally invalid."""

    outcome = "malformed"


class AuthenticationFailed(KeystoreError):
    """The ciphertext did not authenticate (wrong password or tampered file)."""

    outcome = "authentication_failed"


class UnsupportedFormat(KeystoreError):
    """The keystore or its decrypted payload uses a shape this tool does not know."""

    outcome = "unsupported_format"


def _decode_hex(field_name: str, value: str) -> bytes:
    """Decode a hex field, tolerating an optional 0x prefix."""
    if value[:2] in ("0x", "0X"):
        value = value[2:]
    try:
        # unhexlify, unlike bytes.fromhex, rejects embedded whitespace
        return binascii.unhexlify(value)
    except ValueError:
        raise MalformedKeystore(f"Field {field_name!r} is not valid hex") from None


def read_keystore_text(path: Path) -> str:
    """Read a keystore file as UTF-8 text."""
    try:
        return path.read_text(encoding="utf-8")
    except FileNotFoundError:
        raise MalformedKeystore(f"Keystore file not found: {path}") from None
    except UnicodeDecodeError as e:
        raise MalformedKeystore(f"Keystore file is not valid UTF-8: {e}") from e
    except OSError as e:
        raise MalformedKeystore(f"Cannot read keystore file {path}: {e.strerror}") from e


def _decode_json(json_str: str, target: Any = Any) -> Any:
    try:
        return msgspec.json.decode(json_str, type=target)
    except msgspec.ValidationError as e:
        raise MalformedKeystore(f"Invalid keystore structure: {e}") from e
    except msgspec.DecodeError as e:
        raise MalformedKeystore(f"Invalid JSON: {e}") from e
    except RecursionError:
        raise MalformedKeystore("Invalid JSON: nested too deeply") from None


class KdfParams(msgspec.Struct, frozen=True, rename="camel"):
    """Argon2id cost parameters.

    Memory cost is in KiB. The defaults are those of the tool that writes these
    keystores (node-argon2); a file without a ``kdf`` block is assumed to use them.
    """

    function: str = KDF_FUNCTION
    memory_cost: int = ARGON2_MEMORY_COST
    time_cost: int = ARGON2_TIME_COST
    parallelism: int = ARGON2_PARALLELISM

    def __post_init__(self) -> None:
        if self.function != KDF_FUNCTION:
            raise UnsupportedFormat(f"KDF function {self.function!r} is not supported")
        if self.time_cost < 1:
            raise MalformedKeystore(f"KDF timeCost must be at least 1, got {self.time_cost}")
        if not 1 <= self.parallelism <= MAX_PARALLELISM:
            raise MalformedKeystore(
                f"KDF parallelism must be between 1 and {MAX_PARALLELISM}, "
                f"got {self.parallelism}",
            )
        if not 8 * self.parallelism <= self.memory_cost <= MAX_MEMORY_COST:
            raise MalformedKeystore(
                f"KDF memoryCost must be between {8 * self.parallelism} and "
                f"{MAX_MEMORY_COST} KiB, got {self.memory_cost}",
            )


class EncryptedPrivateKey(msgspec.Struct, frozen=True, rename="camel"):
    """The ``encryptedPrivateKey`` block: hex ciphertext+tag, salt and IV."""

    encrypted: str
    salt: str
    iv: str
    kdf: KdfParams | None = None

    def __post_init__(self) -> None:
        if len(self.iv_bytes) != IV_LENGTH:
            raise MalformedKeystore(
                f"IV must be {IV_LENGTH} bytes, got {len(self.iv_bytes)}",
            )
        if len(self.salt_bytes) < MIN_SALT_LENGTH:
            raise MalformedKeystore(
                f"Salt must be at least {MIN_SALT_LENGTH} bytes, got {len(self.salt_bytes)}",
            )
        if len(self.encrypted_bytes) < TAG_LENGTH:
            raise MalformedKeystore("Ciphertext is shorter than the authentication tag")

    @property
    def encrypted_bytes(self) -> bytes:
        return _decode_hex("encrypted", self.encrypted)

    @property
    def salt_bytes(self) -> bytes:
        return _decode_hex("salt", self.salt)

    @property
    def iv_bytes(self) -> bytes:
        return _decode_hex("iv", self.iv)


class KeystoreFile(msgspec.Struct, frozen=True, rename="camel"):
    """Password-protected private key file.

    Files written before versioning was introduced carry no ``version`` field
    and are treated as version 1.
    """

    encrypted_private_key: EncryptedPrivateKey
    version: int = KEYSTORE_VERSION

    def __post_init__(self) -> None:
        if self.version != KEYSTORE_VERSION:
            raise UnsupportedFormat(
                f"Keystore version {self.version} is not supported, "
                f"only version {KEYSTORE_VERSION} is supported",
            )

    @classmethod
    def from_file(cls, path: Path) -> KeystoreFile:
        """Load keystore from a UTF-8 JSON file."""
        return cls.from_json(read_keystore_text(path))

    @classmethod
    def from_json(cls, json_str: str) -> KeystoreFile:
        """Load keystore from a JSON string."""
        return _decode_json(json_str, cls)

    @classmethod
    def from_builtins(cls, data: dict[str, Any]) -> KeystoreFile:
        """Build a keystore from an already decoded JSON object."""
        try:
            return msgspec.convert(data, cls)
        except msgspec.ValidationError as e:
            raise MalformedKeystore(f"Invalid keystore structure: {e}") from e

    def to_builtins(self) -> dict[str, object]:
        """Return the JSON-ready document, as written to disk."""
        return msgspec.to_builtins(self)

    def kdf_params(self, default: KdfParams | None = None) -> KdfParams:
        """Return the KDF parameters recorded in the file, else ``default``."""
        if self.encrypted_private_key.kdf is not None:
            return self.encrypted_private_key.kdf
        return default if default is not None else KdfParams()

    def decrypt(self, password: str, default_kdf: KdfParams | None = None) -> bytearray:
        """Derive the key and decrypt the payload.

        The caller owns the returned buffer and should scrub it when done.

        Raises:
            MalformedKeystore: If the KDF parameters are rejected by libargon2.
            AuthenticationFailed: If the GCM tag does not verify.

        """
        block = self.encrypted_private_key
        params = self.kdf_params(default_kdf)
        logger.debug(
            f"Deriving key with argon2id m={params.memory_cost} t={params.time_cost} "
            f"p={params.parallelism}"
            f"{'' if block.kdf is not None else ' (not recorded in file)'}",
        )

        start_time = time.perf_counter()
        try:
            key = derive_key(
                password,
                block.salt_bytes,
                memory_cost=params.memory_cost,
                time_cost=params.time_cost,
                parallelism=params.parallelism,
            )
        except HashingError as e:
            raise MalformedKeystore(f"Key derivation failed: {e}") from e
        KDF_DURATION_SECONDS.observe(time.perf_counter() - start_time)

        try:
            return open_sealed(key, block.iv_bytes, block.encrypted_bytes)
        except InvalidTag:
            # Wrong password and tampering are deliberately indistinguishable
            raise AuthenticationFailed(
                "Decryption failed: invalid password or corrupted keystore",
            ) from None
        finally:
            scrub(key)


class Web3Keystore(msgspec.Struct, frozen=True, omit_defaults=True):
    """Web3 Secret Storage (V3) keystore, as written by geth, ethers and MetaMask.

    The ``address`` field is informational only; the identity is always
    derived from the decrypted key.
    """

    crypto: dict[str, Any]
    version: int
    address: str | None = None
    id: str | None = None

    def __post_init__(self) -> None:
        if self.version != WEB3_KEYSTORE_VERSION:
            raise UnsupportedFormat(
                f"Web3 keystore version {self.version} is not supported, "
                f"only version {WEB3_KEYSTORE_VERSION} is supported",
            )

    @classmethod
    def from_builtins(cls, data: dict[str, Any]) -> Web3Keystore:
        """Build a V3 keystore from a decoded JSON object.

        Older geth files spell the cipher block ``Crypto``.
        """
        if "crypto" not in data and "Crypto" in data:
            data = {**data, "crypto": data["Crypto"]}
        try:
            return msgspec.convert(data, cls)
        except msgspec.ValidationError as e:
            raise MalformedKeystore(f"Invalid Web3 keystore structure: {e}") from e

    def decrypt(self, password: str) -> bytearray:
        """Decrypt the private key with eth_account.

        Raises:
            MalformedKeystore: If the cipher block is incomplete or not decodable.
            AuthenticationFailed: If the MAC does not verify.
            UnsupportedFormat: If the KDF or cipher is unknown to eth_account.

        """
        try:
            key = Account.decrypt(msgspec.to_builtins(self), password)
        except ValueError as e:
            if "MAC mismatch" in str(e):
                raise AuthenticationFailed(
                    "Decryption failed: invalid password or corrupted keystore",
                ) from None
            raise MalformedKeystore(f"Invalid Web3 keystore: {e}") from e
        except KeyError as e:
            raise MalformedKeystore(f"Web3 keystore is missing field {e}") from e
        except TypeError as e:
            raise UnsupportedFormat(f"Web3 keystore is not supported: {e}") from e
        return bytearray(key)


def load_keystore(path: Path) -> KeystoreFile | Web3Keystore:
    """Load either keystore format, telling them apart by their top-level keys."""
    data = _decode_json(read_keystore_text(path))
    if isinstance(data, dict) and "encryptedPrivateKey" not in data:
        if "crypto" in data or "Crypto" in data:
            logger.debug(f"{path.name} is a Web3 Secret Storage keystore")
            return Web3Keystore.from_builtins(data)
    return KeystoreFile.from_builtins(data)

"""Keystore creation and export."""

from __future__ import annotations

import json
import logging
import tempfile
from contextlib import suppress
from pathlib import Path
from typing import TYPE_CHECKING, Any

import msgspec
from eth_account import Account

from .crypto import IV_LENGTH, MIN_SALT_LENGTH, derive_key, random_iv, random_salt, scrub, seal
from .identity import (
    DEFAULT_HD_PATH,
    PayloadContainer,
    account_from_mnemonic,
    decode_private_key,
    normalize_mnemonic,
)
from .keystore import EncryptedPrivateKey, KdfParams, KeystoreFile
from .metrics import KEYSTORES_WRITTEN_TOTAL
from .path_utils import get_web3_keystore_path

if TYPE_CHECKING:
    from datetime import datetime

    from .models import RecoveredIdentity

logger = logging.getLogger(__name__)

WEB3_KDFS = ("scrypt", "pbkdf2")


def _build_payload(
    private_key: str | bytes | None,
    mnemonic: str | None,
    hd_path: str | None,
) -> bytearray:
    """Return the plaintext to encrypt: a raw key, or a JSON container with the mnemonic."""
    if mnemonic is None:
        if private_key is None:
            raise ValueError("Either a private key or a mnemonic is required")
        if hd_path is not None:
            raise ValueError("A derivation path requires a mnemonic")
        return bytearray(decode_private_key(private_key))

    path = hd_path or DEFAULT_HD_PATH
    derived = bytes(account_from_mnemonic(mnemonic, path).key)
    if private_key is not None and decode_private_key(private_key) != derived:
        raise ValueError(f"Private key does not match the mnemonic at {path}")

    container = PayloadContainer(
        private_key=derived.hex(),
        mnemonic=normalize_mnemonic(mnemonic),
        path=path,
    )
    return bytearray(msgspec.json.encode(container))


def encrypt_private_key(
    private_key: str | bytes | None,
    password: str,
    *,
    mnemonic: str | None = None,
    hd_path: str | None = None,
    kdf: KdfParams | None = None,
    salt: bytes | None = None,
    iv: bytes | None = None,
) -> KeystoreFile:
    """Encrypt a private key (and optional mnemonic) into a keystore.

    A fresh random salt and IV are generated unless given. The KDF parameters
    are recorded in the file so it can be unlocked without out-of-band
    knowledge of them.

    Raises:
        ValueError: If the key, mnemonic, salt or IV is invalid.

    """
    if kdf is None:
        kdf = KdfParams()
    if salt is None:
        salt = random_salt()
    if iv is None:
        iv = random_iv()
    if len(iv) != IV_LENGTH:
        raise ValueError(f"IV must be {IV_LENGTH} bytes, got {len(iv)}")
    if len(salt) < MIN_SALT_LENGTH:
        raise ValueError(f"Salt must be at least {MIN_SALT_LENGTH} bytes, got {len(salt)}")

    payload = _build_payload(private_key, mnemonic, hd_path)
    key = derive_key(
        password,
        salt,
        memory_cost=kdf.memory_cost,
        time_cost=kdf.time_cost,
        parallelism=kdf.parallelism,
    )
    try:
        sealed = seal(key, iv, payload)
    finally:
        scrub(key)
        scrub(payload)

    return KeystoreFile(
        encrypted_private_key=EncryptedPrivateKey(
            encrypted=sealed.hex(),
            salt=salt.hex(),
            iv=iv.hex(),
            kdf=kdf,
        ),
    )


def _write_json_atomic(document: dict[str, Any], path: Path, overwrite: bool) -> None:
    if path.exists() and not overwrite:
        raise FileExistsError(f"Refusing to overwrite existing file: {path}")

    path.parent.mkdir(parents=True, exist_ok=True)
    temp_path = None
    try:
        # NamedTemporaryFile creates the file with 0600 permissions
        with tempfile.NamedTemporaryFile(
            mode="w",
            dir=path.parent,
            suffix=".tmp",
            delete=False,
            encoding="utf-8",
        ) as f:
            json.dump(document, f, indent=2)
            temp_path = Path(f.name)
        temp_path.replace(path)
    except BaseException:
        if temp_path is not None:
            with suppress(OSError):
                temp_path.unlink()
        raise


def write_keystore(keystore: KeystoreFile, path: Path, *, overwrite: bool = False) -> Path:
    """Atomically write a keystore file.

    Raises:
        FileExistsError: If ``path`` exists and ``overwrite`` is False.

    """
    _write_json_atomic(keystore.to_builtins(), path, overwrite)
    KEYSTORES_WRITTEN_TOTAL.labels(format="argon2id-aes-256-gcm").inc()
    logger.info(f"Saved keystore: {path}")
    return path


def export_web3_keystore(
    identity: RecoveredIdentity,
    password: str,
    directory: Path,
    *,
    kdf: str = "scrypt",
    iterations: int | None = None,
    when: datetime | None = None,
) -> Path:
    """Export an identity as a Web3 Secret Storage (V3) keystore.

    The file is named ``UTC--<timestamp>--<address>`` as geth and most wallets
    expect. Only the private key is exported; V3 has no room for a mnemonic.

    Args:
        identity: The identity to export
        password: Password protecting the exported file
        directory: Directory to write into (created if missing)
        kdf: "scrypt" or "pbkdf2"
        iterations: KDF work factor override (scrypt n or pbkdf2 c)
        when: Timestamp used in the filename, defaults to now

    Returns:
        Path of the written file

    """
    if kdf not in WEB3_KDFS:
        raise ValueError(f"kdf must be one of {WEB3_KDFS}, got {kdf!r}")

    document = Account.encrypt(
        identity.private_key_bytes,
        password,
        kdf=kdf,
        iterations=iterations,
    )
    path = get_web3_keystore_path(directory, identity.address, when)
    _write_json_atomic(document, path, overwrite=False)
    KEYSTORES_WRITTEN_TOTAL.labels(format="web3-v3").inc()
    logger.info(f"Saved Web3 keystore for {identity.address}: {path.name}")
    return path

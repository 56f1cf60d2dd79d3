"""Test fixtures and utilities."""

from collections.abc import Callable
from pathlib import Path

import pytest

from rwa_keystore.crypto import derive_key, seal
from rwa_keystore.keystore import EncryptedPrivateKey, KdfParams, KeystoreFile
from rwa_keystore.writer import encrypt_private_key, write_keystore

from .vectors import KNOWN_PRIVATE_KEY, PASSWORD


@pytest.fixture
def fast_kdf() -> KdfParams:
    """Cheap Argon2id parameters so tests don't pay the production cost."""
    return KdfParams(memory_cost=1024, time_cost=1, parallelism=1)


@pytest.fixture
def keystore_path(tmp_path: Path, fast_kdf: KdfParams) -> Path:
    """Write a keystore holding KNOWN_PRIVATE_KEY under PASSWORD."""
    keystore = encrypt_private_key(KNOWN_PRIVATE_KEY, PASSWORD, kdf=fast_kdf)
    return write_keystore(keystore, tmp_path / "keystore.json")


@pytest.fixture
def password_file(tmp_path: Path) -> Path:
    """Password file with a trailing newline, as editors leave it."""
    path = tmp_path / "password.txt"
    path.write_text(PASSWORD + "\n")
    return path


@pytest.fixture
def seal_payload(fast_kdf: KdfParams) -> Callable[[bytes], KeystoreFile]:
    """Return a factory sealing arbitrary plaintext under PASSWORD.

    Useful for payloads the writer refuses to produce.
    """

    def _seal(payload: bytes) -> KeystoreFile:
        salt = bytes(range(16))
        iv = bytes(range(12))
        key = derive_key(
            PASSWORD,
            salt,
            memory_cost=fast_kdf.memory_cost,
            time_cost=fast_kdf.time_cost,
            parallelism=fast_kdf.parallelism,
        )
        return KeystoreFile(
            encrypted_private_key=EncryptedPrivateKey(
                encrypted=seal(key, iv, payload).hex(),
                salt=salt.hex(),
                iv=iv.hex(),
                kdf=fast_kdf,
            ),
        )

    return _seal

"""Argon2id key derivation and AES-256-GCM authenticated encryption.

These are thin wrappers over argon2-cffi and cryptography. Key material is
handed around as ``bytearray`` so callers can scrub it once they are done;
this is best effort only, since the libraries themselves return immutable
``bytes`` that live until garbage collected.
"""

import os
from collections.abc import Iterator
from contextlib import contextmanager

from argon2.low_level import Type, hash_secret_raw
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

KEY_LENGTH = 32
IV_LENGTH = 12
TAG_LENGTH = 16
SALT_LENGTH = 16
MIN_SALT_LENGTH = 8

# Defaults of the tool that produces keystores (node-argon2)
ARGON2_MEMORY_COST = 65536
ARGON2_TIME_COST = 3
ARGON2_PARALLELISM = 4


def derive_key(
    password: str,
    salt: bytes,
    *,
    memory_cost: int = ARGON2_MEMORY_COST,
    time_cost: int = ARGON2_TIME_COST,
    parallelism: int = ARGON2_PARALLELISM,
) -> bytearray:
    """Derive a 32-byte AES key from a password with Argon2id.

    The password is UTF-8 encoded without normalization so the output matches
    keystores produced by other Argon2 bindings byte for byte.

    Raises:
        argon2.exceptions.HashingError: If the parameters are rejected by libargon2.

    """
    raw = hash_secret_raw(
        secret=password.encode("utf-8"),
        salt=salt,
        time_cost=time_cost,
        memory_cost=memory_cost,
        parallelism=parallelism,
        hash_len=KEY_LENGTH,
        type=Type.ID,
    )
    return bytearray(raw)


def seal(key: bytes | bytearray, iv: bytes, plaintext: bytes | bytearray) -> bytes:
    """Encrypt with AES-256-GCM, returning ciphertext with the 16-byte tag appended."""
    return AESGCM(key).encrypt(iv, plaintext, None)


def open_sealed(key: bytes | bytearray, iv: bytes, sealed: bytes) -> bytearray:
    """Decrypt AES-256-GCM ciphertext whose last 16 bytes are the tag.

    The tag is verified before any plaintext is returned.

    Raises:
        cryptography.exceptions.InvalidTag: Wrong key or tampered ciphertext.

    """
    return bytearray(AESGCM(key).decrypt(iv, sealed, None))


def random_salt() -> bytes:
    return os.urandom(SALT_LENGTH)


def random_iv() -> bytes:
    return os.urandom(IV_LENGTH)


def scrub(buffer: bytearray) -> None:
    """Overwrite a buffer with zeros in place."""
    for i in range(len(buffer)):
        buffer[i] = 0


@contextmanager
def scrubbed(buffer: bytearray) -> Iterator[bytearray]:
    """Yield ``buffer`` and zero it on every exit path."""
    try:
        yield buffer
    finally:
        scrub(buffer)

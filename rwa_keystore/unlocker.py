"""Keystore unlocking orchestration."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from .crypto import scrubbed
from .identity import identity_from_plaintext, identity_from_private_key
from .keystore import KeystoreError, UnsupportedFormat, Web3Keystore, load_keystore
from .metrics import UNLOCK_ATTEMPTS_TOTAL

if TYPE_CHECKING:
    from pathlib import Path

    from .keystore import KdfParams
    from .models import RecoveredIdentity
    from .secret_providers import SecretProvider

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class UnlockRequest:
    """Everything needed to unlock one keystore.

    Attributes:
        file_path: Path to the keystore JSON file
        secret: Provider of the keystore password

    """

    file_path: Path
    secret: SecretProvider


class KeystoreUnlocker:
    """Recovers signing identities from password-protected keystores."""

    def __init__(self, default_kdf: KdfParams | None = None) -> None:
        self._default_kdf = default_kdf

    def unlock(self, file_path: Path, password: str) -> RecoveredIdentity:
        """
        Load, decrypt and interpret a keystore file.

        Both the Argon2id keystore format and Web3 Secret Storage (V3) files
        are accepted; the format is detected from the top-level keys.

        The file is read once and never written. The password, derived key and
        plaintext are not logged; only the resulting address is.

        Args:
            file_path: Path to the keystore JSON file
            password: The keystore password (empty strings are accepted)

        Returns:
            The recovered identity

        Raises:
            MalformedKeystore: If the file is missing, unreadable or invalid
            AuthenticationFailed: If the password is wrong or the file was tampered with
            UnsupportedFormat: If the keystore or its payload shape is not recognized

        """
        try:
            keystore = load_keystore(file_path)
            if isinstance(keystore, Web3Keystore):
                with scrubbed(keystore.decrypt(password)) as key:
                    try:
                        identity = identity_from_private_key(key)
                    except ValueError as e:
                        raise UnsupportedFormat(f"Decrypted key is invalid: {e}") from None
            else:
                with scrubbed(keystore.decrypt(password, self._default_kdf)) as plaintext:
                    identity = identity_from_plaintext(plaintext)
        except KeystoreError as e:
            UNLOCK_ATTEMPTS_TOTAL.labels(outcome=e.outcome).inc()
            logger.warning(f"Failed to unlock {file_path}: {e}")
            raise

        UNLOCK_ATTEMPTS_TOTAL.labels(outcome="success").inc()
        logger.info(f"Unlocked {file_path.name}: {identity.address}")
        return identity

    def unlock_request(self, request: UnlockRequest) -> RecoveredIdentity:
        """Unlock using a request whose password comes from a secret provider."""
        return self.unlock(request.file_path, request.secret.get_secret())


def unlock(
    file_path: Path,
    password: str,
    default_kdf: KdfParams | None = None,
) -> RecoveredIdentity:
    """Unlock a keystore with a one-off KeystoreUnlocker."""
    return KeystoreUnlocker(default_kdf).unlock(file_path, password)


def unlock_keystore(request: UnlockRequest) -> RecoveredIdentity:
    """Unlock the keystore described by ``request``."""
    return KeystoreUnlocker().unlock_request(request)

"""Tests for keystore creation and export."""

import json
import stat
from datetime import UTC, datetime
from pathlib import Path

import pytest
from eth_account import Account

from rwa_keystore.identity import identity_from_private_key
from rwa_keystore.keystore import KdfParams, KeystoreFile
from rwa_keystore.metrics import REGISTRY
from rwa_keystore.unlocker import unlock
from rwa_keystore.writer import encrypt_private_key, export_web3_keystore, write_keystore

from .vectors import (
    KNOWN_ADDRESS,
    KNOWN_PRIVATE_KEY,
    MNEMONIC_ADDRESS_1,
    MNEMONIC_KEY_0,
    PASSWORD,
    TEST_MNEMONIC,
)


class TestEncryptPrivateKey:
    """Tests for encrypt_private_key."""

    def test_document_layout(self, fast_kdf: KdfParams) -> None:
        """Test the written document shape."""
        doc = encrypt_private_key(KNOWN_PRIVATE_KEY, PASSWORD, kdf=fast_kdf).to_builtins()

        assert doc["version"] == 1
        block = doc["encryptedPrivateKey"]
        assert isinstance(block, dict)
        assert len(bytes.fromhex(block["salt"])) == 16
        assert len(bytes.fromhex(block["iv"])) == 12
        # 32-byte raw key plus 16-byte tag
        assert len(bytes.fromhex(block["encrypted"])) == 48
        assert block["kdf"] == {
            "function": "argon2id",
            "memoryCost": 1024,
            "timeCost": 1,
            "parallelism": 1,
        }

    def test_default_kdf_recorded(self) -> None:
        """Test that default costs are written out explicitly."""
        keystore = encrypt_private_key(KNOWN_PRIVATE_KEY, PASSWORD)
        assert keystore.encrypted_private_key.kdf == KdfParams()

    def test_fresh_salt_and_iv(self, fast_kdf: KdfParams) -> None:
        """Test that two encryptions of the same key differ."""
        first = encrypt_private_key(KNOWN_PRIVATE_KEY, PASSWORD, kdf=fast_kdf)
        second = encrypt_private_key(KNOWN_PRIVATE_KEY, PASSWORD, kdf=fast_kdf)

        assert first.encrypted_private_key.salt != second.encrypted_private_key.salt
        assert first.encrypted_private_key.iv != second.encrypted_private_key.iv
        assert first.encrypted_private_key.encrypted != second.encrypted_private_key.encrypted

    def test_fixed_salt_and_iv_deterministic(self, fast_kdf: KdfParams) -> None:
        """Test that fixed salt and IV give a reproducible ciphertext."""
        kwargs = {"kdf": fast_kdf, "salt": bytes(16), "iv": bytes(12)}
        assert encrypt_private_key(KNOWN_PRIVATE_KEY, PASSWORD, **kwargs) == encrypt_private_key(
            "0x" + KNOWN_PRIVATE_KEY, PASSWORD, **kwargs
        )

    def test_mnemonic_payload(self, fast_kdf: KdfParams) -> None:
        """Test that a mnemonic produces a JSON container holding key, phrase and path."""
        keystore = encrypt_private_key(
            None, PASSWORD, mnemonic=TEST_MNEMONIC, hd_path="m/44'/60'/0'/0/1", kdf=fast_kdf
        )
        plaintext = keystore.decrypt(PASSWORD)
        container = json.loads(bytes(plaintext))

        assert container["mnemonic"] == TEST_MNEMONIC
        assert container["path"] == "m/44'/60'/0'/0/1"
        assert Account.from_key(container["privateKey"]).address == MNEMONIC_ADDRESS_1

    def test_mnemonic_and_matching_key(self, fast_kdf: KdfParams) -> None:
        """Test that a key consistent with the mnemonic is accepted."""
        encrypt_private_key(MNEMONIC_KEY_0, PASSWORD, mnemonic=TEST_MNEMONIC, kdf=fast_kdf)

    @pytest.mark.parametrize(
        ("kwargs", "match"),
        [
            ({"private_key": None}, "Either a private key or a mnemonic"),
            ({"private_key": "1234"}, "must be 32 bytes"),
            ({"private_key": "00" * 32}, "secp256k1 range"),
            ({"private_key": KNOWN_PRIVATE_KEY, "hd_path": "m/0"}, "requires a mnemonic"),
            (
                {"private_key": KNOWN_PRIVATE_KEY, "mnemonic": TEST_MNEMONIC},
                "does not match the mnemonic",
            ),
            ({"private_key": KNOWN_PRIVATE_KEY, "iv": bytes(16)}, "IV must be 12 bytes"),
            ({"private_key": KNOWN_PRIVATE_KEY, "salt": bytes(4)}, "Salt must be at least 8"),
        ],
    )
    def test_invalid_input(
        self, fast_kdf: KdfParams, kwargs: dict[str, object], match: str
    ) -> None:
        """Test that bad input raises ValueError before anything is written."""
        private_key = kwargs.pop("private_key")
        with pytest.raises(ValueError, match=match):
            encrypt_private_key(private_key, PASSWORD, kdf=fast_kdf, **kwargs)  # type: ignore[arg-type]


class TestWriteKeystore:
    """Tests for write_keystore."""

    def test_write_and_read_back(self, tmp_path: Path, fast_kdf: KdfParams) -> None:
        """Test that the written file parses back to the same keystore."""
        keystore = encrypt_private_key(KNOWN_PRIVATE_KEY, PASSWORD, kdf=fast_kdf)
        path = write_keystore(keystore, tmp_path / "nested" / "keystore.json")

        assert KeystoreFile.from_file(path) == keystore
        assert list(path.parent.glob("*.tmp")) == []

    def test_file_permissions(self, tmp_path: Path, fast_kdf: KdfParams) -> None:
        """Test that the keystore is readable by the owner only."""
        keystore = encrypt_private_key(KNOWN_PRIVATE_KEY, PASSWORD, kdf=fast_kdf)
        path = write_keystore(keystore, tmp_path / "keystore.json")

        assert stat.S_IMODE(path.stat().st_mode) == 0o600

    def test_refuses_overwrite(self, keystore_path: Path, fast_kdf: KdfParams) -> None:
        """Test that an existing keystore is never silently replaced."""
        before = keystore_path.read_bytes()
        keystore = encrypt_private_key(KNOWN_PRIVATE_KEY, "other", kdf=fast_kdf)

        with pytest.raises(FileExistsError):
            write_keystore(keystore, keystore_path)
        assert keystore_path.read_bytes() == before

    def test_overwrite(self, keystore_path: Path, fast_kdf: KdfParams) -> None:
        """Test that overwrite replaces the file."""
        keystore = encrypt_private_key(KNOWN_PRIVATE_KEY, "other", kdf=fast_kdf)
        write_keystore(keystore, keystore_path, overwrite=True)

        assert unlock(keystore_path, "other").address == KNOWN_ADDRESS

    def test_written_counter(self, tmp_path: Path, fast_kdf: KdfParams) -> None:
        """Test that writes are counted."""
        labels = {"format": "argon2id-aes-256-gcm"}
        before = REGISTRY.get_sample_value("keystores_written_total", labels) or 0.0
        write_keystore(
            encrypt_private_key(KNOWN_PRIVATE_KEY, PASSWORD, kdf=fast_kdf), tmp_path / "ks.json"
        )

        assert REGISTRY.get_sample_value("keystores_written_total", labels) == before + 1


class TestExportWeb3Keystore:
    """Tests for Web3 Secret Storage export."""

    def test_export_pbkdf2(self, tmp_path: Path) -> None:
        """Test that the export decrypts with eth_account to the same key."""
        identity = identity_from_private_key(bytes.fromhex(KNOWN_PRIVATE_KEY))
        when = datetime(2024, 1, 2, 3, 4, 5, tzinfo=UTC)

        path = export_web3_keystore(
            identity, PASSWORD, tmp_path, kdf="pbkdf2", iterations=1024, when=when
        )

        assert path.name == (
            "UTC--2024-01-02T03-04-05.000000Z--2c7536e3605d9c16a7a3d7b1898e529396a65c23"
        )
        document = json.loads(path.read_text())
        assert document["version"] == 3
        assert document["crypto"]["kdf"] == "pbkdf2"
        assert bytes(Account.decrypt(document, PASSWORD)) == bytes.fromhex(KNOWN_PRIVATE_KEY)

    def test_export_scrypt(self, tmp_path: Path) -> None:
        """Test export with a cheap scrypt work factor."""
        identity = identity_from_private_key(bytes.fromhex(KNOWN_PRIVATE_KEY))
        path = export_web3_keystore(identity, PASSWORD, tmp_path, kdf="scrypt", iterations=1024)

        document = json.loads(path.read_text())
        assert document["crypto"]["kdf"] == "scrypt"
        assert Account.from_key(Account.decrypt(document, PASSWORD)).address == KNOWN_ADDRESS

    def test_unknown_kdf(self, tmp_path: Path) -> None:
        """Test that only scrypt and pbkdf2 are offered."""
        identity = identity_from_private_key(bytes.fromhex(KNOWN_PRIVATE_KEY))

        with pytest.raises(ValueError, match="kdf must be one of"):
            export_web3_keystore(identity, PASSWORD, tmp_path, kdf="argon2id")

    def test_export_never_overwrites(self, tmp_path: Path) -> None:
        """Test that exporting twice with the same timestamp refuses the second write."""
        identity = identity_from_private_key(bytes.fromhex(KNOWN_PRIVATE_KEY))
        when = datetime(2024, 1, 2, tzinfo=UTC)
        export_web3_keystore(identity, PASSWORD, tmp_path, kdf="pbkdf2", iterations=1024, when=when)

        with pytest.raises(FileExistsError):
            export_web3_keystore(
                identity, PASSWORD, tmp_path, kdf="pbkdf2", iterations=1024, when=when
            )

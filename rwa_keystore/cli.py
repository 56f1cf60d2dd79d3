"""CLI entry point for rwa-keystore."""

import logging
import sys
from pathlib import Path  # noqa: TC003

from .config import Config, get_config
from .keystore import KeystoreError
from .metrics import write_metrics_textfile
from .secret_providers import (
    EnvSecret,
    FileSecret,
    PromptSecret,
    SecretProvider,
    SecretUnavailable,
)
from .unlocker import KeystoreUnlocker
from .writer import encrypt_private_key, export_web3_keystore, write_keystore


def setup_logging(log_level: str) -> None:
    """Configure logging."""
    logging.basicConfig(
        level=getattr(logging, log_level),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def password_provider(config: Config, confirm: bool = False) -> SecretProvider:
    """Pick the password source named by the configuration."""
    if config.password_file is not None:
        return FileSecret(config.password_file)
    if config.password_env is not None:
        return EnvSecret(config.password_env)
    return PromptSecret("Keystore password: ", confirm=confirm)


def private_key_provider(config: Config) -> SecretProvider | None:
    """Pick the private key source for encrypt; None when a mnemonic alone will do."""
    if config.private_key_file is not None:
        return FileSecret(config.private_key_file)
    if config.private_key_env is not None:
        return EnvSecret(config.private_key_env)
    if config.mnemonic_file is not None:
        return None
    return PromptSecret("Private key (hex): ")


def _require_path(path: Path | None, option: str) -> Path:
    if path is None:
        raise ValueError(f"{option} is required")
    return path


def run_unlock(config: Config) -> None:
    keystore_path = _require_path(config.keystore_path, "keystore_path")
    unlocker = KeystoreUnlocker(config.default_kdf)
    identity = unlocker.unlock(keystore_path, password_provider(config).get_secret())

    print(f"Address: {identity.address}")
    if config.reveal:
        print(f"Private key: 0x{identity.private_key_hex}")
        print(f"Mnemonic: {identity.mnemonic if identity.has_mnemonic else 'none'}")
    else:
        print(f"Mnemonic: {'present' if identity.has_mnemonic else 'none'}")


def run_encrypt(config: Config) -> None:
    output_path = _require_path(config.output_path, "output_path")
    key_source = private_key_provider(config)
    private_key = key_source.get_secret() if key_source is not None else None
    mnemonic = (
        FileSecret(config.mnemonic_file).get_secret() if config.mnemonic_file is not None else None
    )
    password = password_provider(config, confirm=True).get_secret()

    keystore = encrypt_private_key(
        private_key,
        password,
        mnemonic=mnemonic,
        kdf=config.default_kdf,
    )
    path = write_keystore(keystore, output_path, overwrite=config.overwrite)

    # Read the file back so a broken write never goes unnoticed
    identity = KeystoreUnlocker(config.default_kdf).unlock(path, password)
    print(f"Address: {identity.address}")
    print(f"Saved keystore: {path}")


def run_export(config: Config) -> None:
    keystore_path = _require_path(config.keystore_path, "keystore_path")
    output_path = _require_path(config.output_path, "output_path")
    password = password_provider(config).get_secret()
    identity = KeystoreUnlocker(config.default_kdf).unlock(keystore_path, password)

    path = export_web3_keystore(identity, password, output_path, kdf=config.export_kdf)
    print(f"Address: {identity.address}")
    if identity.has_mnemonic:
        print("Note: the mnemonic is not part of the Web3 keystore format and was not exported")
    print(f"Saved Web3 keystore: {path}")


COMMAND_HANDLERS = {
    "unlock": run_unlock,
    "encrypt": run_encrypt,
    "export": run_export,
}


def main(argv: list[str] | None = None) -> None:
    """Main entry point."""
    try:
        config = get_config(argv)
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    setup_logging(config.normalized_log_level)

    exit_code = 0
    try:
        COMMAND_HANDLERS[config.command](config)
    except (KeystoreError, SecretUnavailable, OSError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        exit_code = 1
    except KeyboardInterrupt:
        print("\nAborted", file=sys.stderr)
        exit_code = 1
    finally:
        if config.metrics_textfile is not None:
            write_metrics_textfile(config.metrics_textfile)

    if exit_code:
        sys.exit(exit_code)


if __name__ == "__main__":
    main()

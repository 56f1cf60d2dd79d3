"""Configuration management using msgspec Struct."""

import argparse
import os
from pathlib import Path

import msgspec

from .crypto import ARGON2_MEMORY_COST, ARGON2_PARALLELISM, ARGON2_TIME_COST
from .keystore import KdfParams, KeystoreError

COMMANDS = ("unlock", "encrypt", "export")
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class Config(msgspec.Struct, frozen=True):
    """Application configuration using msgspec Struct."""

    command: str = "unlock"

    # Keystore to read (unlock, export) and where to write (encrypt, export)
    keystore_path: Path | None = None
    output_path: Path | None = None
    overwrite: bool = False

    # Password source; an interactive prompt when neither is set
    password_file: Path | None = None
    password_env: str | None = None

    # Private key / mnemonic sources for encrypt
    private_key_file: Path | None = None
    private_key_env: str | None = None
    mnemonic_file: Path | None = None

    # Print the private key and mnemonic to stdout after unlock
    reveal: bool = False

    # Argon2id costs assumed for keystores without a kdf block, and used by encrypt
    kdf_memory_cost: int = ARGON2_MEMORY_COST
    kdf_time_cost: int = ARGON2_TIME_COST
    kdf_parallelism: int = ARGON2_PARALLELISM

    # Web3 export settings
    export_kdf: str = "scrypt"

    # Logging
    log_level: str = "INFO"

    # Metrics
    metrics_textfile: Path | None = None

    def __post_init__(self) -> None:
        """Validate configuration after initialization."""
        if self.command not in COMMANDS:
            raise ValueError(f"command must be one of {COMMANDS}, got {self.command}")

        if self.log_level.upper() not in LOG_LEVELS:
            raise ValueError(f"log_level must be one of {LOG_LEVELS}, got {self.log_level}")

        if self.password_file is not None and self.password_env is not None:
            raise ValueError("--password-file and --password-env are mutually exclusive")
        if self.private_key_file is not None and self.private_key_env is not None:
            raise ValueError("--private-key-file and --private-key-env are mutually exclusive")

        for name in ("password_file", "private_key_file", "mnemonic_file"):
            path = getattr(self, name)
            if path is not None and not path.is_file():
                raise ValueError(f"{name} file not found: {path}")

        if self.command in ("unlock", "export"):
            if self.keystore_path is None:
                raise ValueError(f"keystore_path is required for {self.command}")
            if not self.keystore_path.is_file():
                raise ValueError(f"keystore_path file not found: {self.keystore_path}")

        if self.command in ("encrypt", "export") and self.output_path is None:
            raise ValueError(f"output_path is required for {self.command}")

        if self.command == "export" and self.output_path is not None:
            if self.output_path.exists() and not self.output_path.is_dir():
                raise ValueError(f"output_path must be a directory: {self.output_path}")

        if self.export_kdf not in ("scrypt", "pbkdf2"):
            raise ValueError(f"export_kdf must be scrypt or pbkdf2, got {self.export_kdf}")

        # Surface bad KDF costs here rather than at unlock time
        try:
            self.default_kdf
        except KeystoreError as e:
            raise ValueError(f"Invalid KDF settings: {e}") from e

    @property
    def normalized_log_level(self) -> str:
        """Return normalized uppercase log level."""
        return self.log_level.upper()

    @property
    def default_kdf(self) -> KdfParams:
        """Argon2id parameters built from the kdf_* settings."""
        return KdfParams(
            memory_cost=self.kdf_memory_cost,
            time_cost=self.kdf_time_cost,
            parallelism=self.kdf_parallelism,
        )


def _add_password_arguments(parser: argparse.ArgumentParser) -> None:
    group = parser.add_mutually_exclusive_group()
    group.add_argument(
        "--password-file", type=Path, default=None, help="Read the keystore password from a file"
    )
    group.add_argument(
        "--password-env",
        default=None,
        metavar="NAME",
        help="Read the keystore password from environment variable NAME",
    )


def _add_kdf_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--kdf-memory-cost",
        type=int,
        default=ARGON2_MEMORY_COST,
        help="Argon2id memory cost in KiB",
    )
    parser.add_argument(
        "--kdf-time-cost", type=int, default=ARGON2_TIME_COST, help="Argon2id iterations"
    )
    parser.add_argument(
        "--kdf-parallelism", type=int, default=ARGON2_PARALLELISM, help="Argon2id lanes"
    )


def build_parser() -> argparse.ArgumentParser:
    """Build the command line parser."""
    parser = argparse.ArgumentParser(
        prog="rwa-keystore",
        description="rwa-keystore - unlock Argon2id/AES-256-GCM encrypted Ethereum keystores",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    parser.add_argument(
        "--log-level",
        choices=list(LOG_LEVELS),
        default=os.getenv("RWA_KEYSTORE_LOG_LEVEL", "INFO"),
        help="Logging level",
    )
    parser.add_argument(
        "--metrics-textfile",
        type=Path,
        default=None,
        help="Write Prometheus metrics to this file on exit",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    unlock_parser = subparsers.add_parser(
        "unlock",
        help="Unlock a keystore (Argon2id or Web3 V3) and print its address",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    unlock_parser.add_argument("keystore_path", type=Path, help="Path to the keystore JSON file")
    unlock_parser.add_argument(
        "--reveal",
        action="store_true",
        default=False,
        help="Also print the private key and mnemonic to stdout",
    )
    _add_password_arguments(unlock_parser)
    _add_kdf_arguments(unlock_parser)

    encrypt_parser = subparsers.add_parser(
        "encrypt",
        help="Encrypt a private key into a new keystore",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    encrypt_parser.add_argument(
        "--out", dest="output_path", type=Path, required=True, help="Keystore file to write"
    )
    encrypt_parser.add_argument(
        "--overwrite", action="store_true", default=False, help="Replace an existing file"
    )
    key_group = encrypt_parser.add_mutually_exclusive_group()
    key_group.add_argument(
        "--private-key-file", type=Path, default=None, help="Read the private key from a file"
    )
    key_group.add_argument(
        "--private-key-env",
        default=None,
        metavar="NAME",
        help="Read the private key from environment variable NAME",
    )
    encrypt_parser.add_argument(
        "--mnemonic-file",
        type=Path,
        default=None,
        help="Store this recovery phrase alongside the key",
    )
    _add_password_arguments(encrypt_parser)
    _add_kdf_arguments(encrypt_parser)

    export_parser = subparsers.add_parser(
        "export",
        help="Unlock a keystore and export it as a Web3 Secret Storage (UTC--) file",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    export_parser.add_argument("keystore_path", type=Path, help="Path to the keystore JSON file")
    export_parser.add_argument(
        "--out-dir", dest="output_path", type=Path, default=Path("."), help="Output directory"
    )
    export_parser.add_argument(
        "--export-kdf", choices=["scrypt", "pbkdf2"], default="scrypt", help="V3 keystore KDF"
    )
    _add_password_arguments(export_parser)
    _add_kdf_arguments(export_parser)

    return parser


def get_config(argv: list[str] | None = None) -> Config:
    """Parse command line arguments and return configuration."""
    args = build_parser().parse_args(argv)

    # Subcommands only define the options they use
    config_dict: dict[str, object] = {
        key: value for key, value in vars(args).items() if value is not None
    }

    try:
        config = Config(**config_dict)
    except TypeError as e:
        raise ValueError(f"Configuration validation error: {e}") from e

    return config

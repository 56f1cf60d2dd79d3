"""Password acquisition.

Unlocking never reads a password from global state on its own; callers pass
one of these providers, which makes the source of every secret explicit.
"""

from __future__ import annotations

import getpass
import logging
import os
from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from pathlib import Path

logger = logging.getLogger(__name__)


class SecretUnavailable(Exception):
    """A secret could not be obtained from its source."""


class SecretProvider(Protocol):
    """Source of a single secret string."""

    def get_secret(self) -> str: ...


class StaticSecret:
    """A secret already held in memory, e.g. from a test or a caller's own prompt."""

    def __init__(self, secret: str) -> None:
        self._secret = secret

    def __repr__(self) -> str:
        return "StaticSecret(***)"

    def get_secret(self) -> str:
        return self._secret


class EnvSecret:
    """Read a secret from a named environment variable."""

    def __init__(self, name: str) -> None:
        self.name = name

    def __repr__(self) -> str:
        return f"EnvSecret({self.name!r})"

    def get_secret(self) -> str:
        logger.debug(f"Reading secret from environment variable {self.name}")
        value = os.environ.get(self.name)
        if not value:
            raise SecretUnavailable(f"Environment variable {self.name} is not set or empty")
        return value


class FileSecret:
    """Read a secret from a text file.

    Surrounding whitespace is stripped, password files usually end with a newline.
    """

    def __init__(self, path: Path) -> None:
        self.path = path

    def __repr__(self) -> str:
        return f"FileSecret({str(self.path)!r})"

    def get_secret(self) -> str:
        logger.debug(f"Reading secret from {self.path}")
        try:
            return self.path.read_text(encoding="utf-8").strip()
        except (OSError, UnicodeDecodeError) as e:
            raise SecretUnavailable(f"Failed to read secret file {self.path}: {e!r}") from e


class PromptSecret:
    """Prompt for a secret on the terminal without echo."""

    def __init__(self, prompt: str = "Password: ", confirm: bool = False) -> None:
        self.prompt = prompt
        self.confirm = confirm

    def __repr__(self) -> str:
        return f"PromptSecret({self.prompt!r}, confirm={self.confirm})"

    def get_secret(self) -> str:
        try:
            secret = getpass.getpass(self.prompt)
            if self.confirm and getpass.getpass("Repeat to confirm: ") != secret:
                raise SecretUnavailable("Entries do not match")
        except EOFError:
            raise SecretUnavailable("No input available for prompt") from None
        return secret

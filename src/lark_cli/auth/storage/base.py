"""Abstract base class for user token storage."""

from abc import ABC, abstractmethod
from enum import StrEnum
from typing import TYPE_CHECKING

from lark_cli.auth.models import UserToken


if TYPE_CHECKING:
    from lark_cli.state import AppState


class KeyringBackend(StrEnum):
    """Supported token storage backends."""

    FILE = "file"
    KEYCHAIN = "keychain"


class TokenStorage(ABC):
    """Per-account user token persistence."""

    backend: KeyringBackend

    def __init__(self, state: "AppState") -> None:
        self.state = state

    @abstractmethod
    def load(self, account: str) -> UserToken | None:
        """Load the token record for an account.

        Returns:
            The stored record, or None if the account has none

        """

    @abstractmethod
    def save(self, account: str, token: UserToken) -> None:
        """Store a token record for an account.

        The caller is responsible for persisting the configuration.
        """

    @abstractmethod
    def clear(self, account: str) -> None:
        """Remove stored secrets for an account, keeping the account itself."""

    @abstractmethod
    def get_location(self) -> str:
        """Get the storage location description.

        Returns:
            Human-readable description of where tokens are stored

        """

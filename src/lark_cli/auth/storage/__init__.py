"""User token storage backends."""

from lark_cli.auth.storage.base import KeyringBackend, TokenStorage
from lark_cli.auth.storage.file import FileTokenStorage
from lark_cli.auth.storage.keychain import KEYRING_SERVICE_NAME, KeyringTokenStorage
from lark_cli.exceptions import UnsupportedBackendError
from lark_cli.state import AppState


__all__ = [
    "KEYRING_SERVICE_NAME",
    "FileTokenStorage",
    "KeyringBackend",
    "KeyringTokenStorage",
    "TokenStorage",
    "get_token_storage",
]


def get_token_storage(state: AppState) -> TokenStorage:
    """Storage backend selected by ``keyring_backend``.

    Raises:
        UnsupportedBackendError: If the configured backend is unknown

    """
    try:
        backend = KeyringBackend(state.keyring_backend)
    except ValueError:
        raise UnsupportedBackendError(state.keyring_backend) from None
    if backend is KeyringBackend.KEYCHAIN:
        return KeyringTokenStorage(state)
    return FileTokenStorage(state)

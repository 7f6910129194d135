"""Token storage in the OS secret store via ``keyring``.

Entries are namespaced by a token bucket derived from the config path, API
base URL and app id. Records still living in the config file, or under the
older path-only key, are moved into the current key the first time they are
read.
"""

import keyring
import keyring.errors
import structlog
from pydantic import ValidationError

from lark_cli.auth.accounts import AccountManager
from lark_cli.auth.models import UserToken
from lark_cli.auth.storage.base import KeyringBackend, TokenStorage
from lark_cli.auth.storage.file import FileTokenStorage
from lark_cli.config.buckets import legacy_bucket_id, token_bucket_id
from lark_cli.exceptions import (
    CredentialsInvalidError,
    CredentialsStorageError,
    KeychainUnsupportedError,
)


logger = structlog.get_logger(__name__)

KEYRING_SERVICE_NAME = "lark-cli"


class KeyringTokenStorage(TokenStorage):
    """Stores token records as JSON in the system keyring."""

    backend = KeyringBackend.KEYCHAIN

    @property
    def _config_path(self) -> str:
        return str(self.state.config_path.expanduser().absolute())

    def username(self, account: str) -> str:
        bucket = token_bucket_id(
            self._config_path, self.state.config.base_url, self.state.config.app_id
        )
        return f"{bucket}:{account or 'default'}"

    def legacy_username(self, account: str) -> str:
        return f"{legacy_bucket_id(self._config_path)}:{account or 'default'}"

    def _get(self, username: str) -> UserToken | None:
        try:
            value = keyring.get_password(KEYRING_SERVICE_NAME, username)
        except keyring.errors.NoKeyringError as e:
            raise KeychainUnsupportedError() from e
        except keyring.errors.KeyringError as e:
            raise CredentialsStorageError(f"keychain read failed: {e}") from e
        if value is None:
            return None
        try:
            return UserToken.model_validate_json(value)
        except ValidationError as e:
            raise CredentialsInvalidError(f"invalid keyring token data: {e}") from e

    def _set(self, username: str, token: UserToken) -> None:
        try:
            keyring.set_password(
                KEYRING_SERVICE_NAME, username, token.model_dump_json()
            )
        except keyring.errors.NoKeyringError as e:
            raise KeychainUnsupportedError() from e
        except keyring.errors.KeyringError as e:
            raise CredentialsStorageError(f"keychain write failed: {e}") from e

    def _delete(self, username: str) -> None:
        try:
            keyring.delete_password(KEYRING_SERVICE_NAME, username)
        except keyring.errors.PasswordDeleteError:
            return
        except keyring.errors.NoKeyringError as e:
            raise KeychainUnsupportedError() from e
        except keyring.errors.KeyringError as e:
            raise CredentialsStorageError(f"keychain delete failed: {e}") from e

    def _store_metadata(self, account: str, token: UserToken) -> None:
        """Keep expiry and scope in the config, with secrets removed."""
        accounts = AccountManager(self.state)
        stored = accounts.ensure(account)
        stored.user_access_token = ""
        stored.refresh_token = ""
        if stored.user_refresh_token_payload is not None:
            stored.user_refresh_token_payload.refresh_token = ""
        stored.user_access_token_expires_at = token.expires_at
        if token.scope:
            stored.user_access_token_scope = token.scope
        accounts.save(account, stored)

    def load(self, account: str) -> UserToken | None:
        token = self._get(self.username(account))
        if token is not None:
            return token

        legacy = self.legacy_username(account)
        token = self._get(legacy)
        if token is not None:
            try:
                self._set(self.username(account), token)
                self._delete(legacy)
            except CredentialsStorageError as e:
                logger.warning(
                    "keychain_legacy_migration_failed", account=account, error=str(e)
                )
            else:
                logger.info("keychain_migrated_from_legacy_key", account=account)
            return token

        return self._migrate_from_file(account)

    def _migrate_from_file(self, account: str) -> UserToken | None:
        token = FileTokenStorage(self.state).load(account)
        if token is None or not (token.access_token or token.refresh_token):
            return None
        if not token.refresh_token:
            stored = AccountManager(self.state).get(account)
            if stored is not None:
                token.refresh_token = stored.refresh_token_value()

        self._set(self.username(account), token)
        self._store_metadata(account, token)
        self.state.save_config()
        logger.info("keychain_migrated_from_file", account=account)
        return token

    def save(self, account: str, token: UserToken) -> None:
        self._set(self.username(account), token)
        self._store_metadata(account, token)
        logger.debug("user_token_saved", account=account, backend=self.backend)

    def clear(self, account: str) -> None:
        self._delete(self.username(account))
        self._delete(self.legacy_username(account))
        AccountManager(self.state).clear_tokens(account)

    def get_location(self) -> str:
        return f"keyring service {KEYRING_SERVICE_NAME!r}"

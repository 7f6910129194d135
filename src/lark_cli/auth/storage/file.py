"""Token storage embedded in the config file."""

import structlog

from lark_cli.auth.accounts import AccountManager
from lark_cli.auth.models import UserToken
from lark_cli.auth.storage.base import KeyringBackend, TokenStorage


logger = structlog.get_logger(__name__)


class FileTokenStorage(TokenStorage):
    """Stores tokens as plain fields of the account's config entry."""

    backend = KeyringBackend.FILE

    def load(self, account: str) -> UserToken | None:
        stored = AccountManager(self.state).get(account)
        if stored is None:
            return None
        token = UserToken(
            access_token=stored.user_access_token,
            refresh_token=stored.refresh_token,
            expires_at=stored.user_access_token_expires_at,
            scope=stored.user_access_token_scope,
        )
        if token.is_empty():
            return None
        return token

    def save(self, account: str, token: UserToken) -> None:
        accounts = AccountManager(self.state)
        stored = accounts.ensure(account)
        stored.user_access_token = token.access_token
        stored.refresh_token = token.refresh_token
        stored.user_access_token_expires_at = token.expires_at
        if token.scope:
            stored.user_access_token_scope = token.scope
        accounts.save(account, stored)
        logger.debug("user_token_saved", account=account, backend=self.backend)

    def clear(self, account: str) -> None:
        AccountManager(self.state).clear_tokens(account)

    def get_location(self) -> str:
        return str(self.state.config_path)

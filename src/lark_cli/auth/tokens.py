"""User access token lifecycle: cache hit, refresh with rotation, expiry."""

import time

from structlog import get_logger

from lark_cli.auth.accounts import AccountManager
from lark_cli.auth.models import UserToken
from lark_cli.auth.oauth.client import OAuthConfig, UserOAuthClient
from lark_cli.auth.policy import relogin_recommendation
from lark_cli.auth.registry import ScopeRegistry
from lark_cli.auth.remediation import (
    refresh_token_revoked_message,
    token_expired_message,
    token_revoked_message,
)
from lark_cli.auth.scopes import canonical_scope_string
from lark_cli.auth.storage import KeyringBackend, TokenStorage, get_token_storage
from lark_cli.config import UserRefreshTokenPayload
from lark_cli.exceptions import (
    ConfigError,
    CredentialsStorageError,
    TokenRefreshError,
    TokenRefreshRejectedError,
    UserTokenExpiredError,
)
from lark_cli.state import AppState


logger = get_logger(__name__)


def _names_revoked_refresh_token(message: str) -> bool:
    lowered = message.lower()
    if "refresh_token" not in lowered and "refresh token" not in lowered:
        return False
    return any(word in lowered for word in ("invalid", "expired", "revoked"))


def refresh_failure_message(
    account: str, relogin: str, note: str, error: TokenRefreshError
) -> str:
    """Remediation text for a failed refresh, with the cause appended."""
    if isinstance(error, TokenRefreshRejectedError):
        if _names_revoked_refresh_token(error.provider_message):
            base = refresh_token_revoked_message(account, relogin, note)
        else:
            base = token_revoked_message(account, relogin, note)
    else:
        base = token_expired_message(account, relogin, note)
    return f"{base}: {error}"


class UserTokenManager:
    """Returns a usable user access token for the current account.

    A still-valid stored token is returned without any I/O beyond the
    already-loaded config. An expired one is refreshed once; on a failed
    refresh the account's stored credentials are cleared so a rejected
    refresh token is never retried.
    """

    def __init__(
        self,
        state: AppState,
        oauth_client: UserOAuthClient | None = None,
        storage: TokenStorage | None = None,
        registry: ScopeRegistry | None = None,
    ) -> None:
        self.state = state
        self._oauth_client = oauth_client
        self._storage = storage
        self.registry = registry

    @property
    def oauth_client(self) -> UserOAuthClient:
        if self._oauth_client is None:
            self._oauth_client = UserOAuthClient(OAuthConfig.from_state(self.state))
        return self._oauth_client

    @property
    def storage(self) -> TokenStorage:
        if self._storage is None:
            self._storage = get_token_storage(self.state)
        return self._storage

    async def get_access_token(self) -> str:
        """Get a valid user access token, refreshing it if needed.

        Returns:
            Access token string

        Raises:
            UserTokenExpiredError: If the token expired and cannot be refreshed
            CredentialsStorageError: If a refreshed token could not be persisted;
                the error's ``access_token`` still carries the new token

        """
        override = self.state.override_user_token()
        if override:
            logger.debug("user_token_override_used")
            return override

        account = AccountManager(self.state).resolve_current_name()
        stored = self.storage.load(account) or UserToken()
        now = int(time.time())
        if stored.is_valid(now):
            logger.debug("user_token_cache_hit", account=account)
            return stored.access_token

        relogin, note = relogin_recommendation(self.state.command, self.registry)
        refresh_token = stored.refresh_token
        if not refresh_token:
            record = AccountManager(self.state).get(account)
            refresh_token = record.refresh_token_value() if record else ""
        if not refresh_token:
            expired = token_expired_message(account, relogin, note)
            raise UserTokenExpiredError(f"{expired}: refresh token missing")

        logger.debug(
            "user_token_refreshing", account=account, backend=self.storage.backend
        )
        try:
            response = await self.oauth_client.refresh_access_token(refresh_token)
        except TokenRefreshError as e:
            message = refresh_failure_message(account, relogin, note, e)
            message += self._clear_after_failed_refresh(account)
            logger.warning("user_token_refresh_failed", account=account, error=str(e))
            raise UserTokenExpiredError(message) from e

        refreshed = UserToken(
            access_token=response.access_token,
            refresh_token=response.refresh_token or refresh_token,
            expires_at=now + response.expires_in,
            scope=canonical_scope_string(response.scope) or stored.scope,
        )
        try:
            self._persist_refreshed(account, refreshed, now)
        except (ConfigError, CredentialsStorageError, OSError) as e:
            raise CredentialsStorageError(
                f"refreshed user access token but failed to persist it: {e}",
                access_token=refreshed.access_token,
            ) from e

        logger.info(
            "user_token_refreshed",
            account=account,
            expires_at=refreshed.expires_at,
            rotated=bool(response.refresh_token),
        )
        return refreshed.access_token

    def _clear_after_failed_refresh(self, account: str) -> str:
        """Purge the account's tokens; returns a suffix describing any failure."""
        try:
            self.storage.clear(account)
            self.state.save_config()
        except (ConfigError, CredentialsStorageError, OSError) as e:
            logger.warning("user_token_clear_failed", account=account, error=str(e))
            return f"; failed to clear cached token: {e}"
        logger.info("user_token_cleared", account=account)
        return ""

    def _persist_refreshed(self, account: str, token: UserToken, now: int) -> None:
        self.storage.save(account, token)

        accounts = AccountManager(self.state)
        record = accounts.ensure(account)
        payload = record.user_refresh_token_payload or UserRefreshTokenPayload(
            scopes=token.scope
        )
        payload.created_at = now
        if self.storage.backend is KeyringBackend.FILE:
            payload.refresh_token = token.refresh_token
        record.user_refresh_token_payload = payload
        accounts.save(account, record)
        self.state.save_config()

"""Named user OAuth accounts stored in the CLI configuration."""

import structlog

from lark_cli.config import UserAccount, user_account_bucket_key
from lark_cli.config.settings import DEFAULT_USER_ACCOUNT
from lark_cli.exceptions import ConfigError
from lark_cli.state import AppState


logger = structlog.get_logger(__name__)


class AccountManager:
    """CRUD over ``user_accounts`` plus current-account resolution.

    All reads and writes of account records go through :meth:`get` and
    :meth:`save`; persisting the configuration to disk is left to the caller
    via ``state.save_config()``.
    """

    def __init__(self, state: AppState) -> None:
        self.state = state

    @property
    def _accounts(self) -> dict[str, UserAccount]:
        return self.state.config.user_accounts

    def _bucket_key(self) -> str:
        return user_account_bucket_key(
            self.state.config.app_id, self.state.config.base_url, self.state.profile
        )

    def resolve_current_name(self) -> str:
        """Explicit selection, then ``LARK_ACCOUNT``, then the configured default.

        The implicit ``default`` account is further mapped through
        ``user_account_buckets`` when the current app id, base URL and
        profile have a recorded account.
        """
        name = ""
        for candidate in (
            self.state.user_account,
            self.state.env.account,
            self.state.config.default_user_account,
        ):
            name = candidate.strip()
            if name:
                break
        name = name or DEFAULT_USER_ACCOUNT
        if name == DEFAULT_USER_ACCOUNT and self.state.config.app_id.strip():
            mapped = self.state.config.user_account_buckets.get(self._bucket_key(), "")
            if mapped.strip():
                return mapped.strip()
        return name

    def resolve_login_name(self) -> str:
        """Account name for a login; records the bucket mapping on first use."""
        name = self.resolve_current_name()
        if name == DEFAULT_USER_ACCOUNT and self.state.config.app_id.strip():
            self.state.config.user_account_buckets.setdefault(self._bucket_key(), name)
        return name

    def list_names(self) -> list[str]:
        names = {name for name in self._accounts if name.strip()}
        names.add(self.state.config.default_user_account or DEFAULT_USER_ACCOUNT)
        return sorted(names)

    def get(self, name: str) -> UserAccount | None:
        account = self._accounts.get(name)
        return account.model_copy(deep=True) if account is not None else None

    def ensure(self, name: str) -> UserAccount:
        """Existing account record, or a fresh empty one."""
        return self.get(name) or UserAccount()

    def save(self, name: str, account: UserAccount) -> None:
        if not name.strip():
            raise ConfigError("account must not be empty")
        self._accounts[name] = account

    def delete(self, name: str) -> bool:
        """Delete an account record.

        Deleting the configured default resets the default to ``"default"``.

        Returns:
            True if a record was removed

        """
        removed = self._accounts.pop(name, None) is not None
        if self.state.config.default_user_account == name:
            self.state.config.default_user_account = DEFAULT_USER_ACCOUNT
        return removed

    def remove(self, name: str) -> bool:
        """Delete an account and purge its secret-store entries."""
        # Lazy import to avoid circular dependency
        from lark_cli.auth.storage import get_token_storage

        storage = get_token_storage(self.state)
        storage.clear(name)
        removed = self.delete(name)
        logger.info("user_account_removed", account=name, backend=storage.backend)
        return removed

    def clear_tokens(self, name: str) -> None:
        """Drop token material but keep the account and its scope settings."""
        account = self.get(name)
        if account is None:
            return
        account.user_access_token = ""
        account.refresh_token = ""
        account.user_access_token_expires_at = 0
        account.user_refresh_token_payload = None
        self.save(name, account)

    def set_default(self, name: str) -> None:
        name = name.strip()
        if not name:
            raise ConfigError("account must not be empty")
        self.state.config.default_user_account = name

    def update_scopes(self, name: str, scopes: list[str]) -> UserAccount:
        account = self.ensure(name)
        account.user_scopes = scopes
        self.save(name, account)
        return account

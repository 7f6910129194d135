"""Interactive browser login for user access tokens."""

import base64
import secrets
import time
import webbrowser
from collections.abc import Callable
from dataclasses import dataclass, field
from pathlib import Path

from rich.console import Console
from structlog import get_logger

from lark_cli.auth.accounts import AccountManager
from lark_cli.auth.models import UserToken
from lark_cli.auth.oauth.callback import CallbackResultChannel, OAuthCallbackServer
from lark_cli.auth.oauth.client import OAuthConfig, UserOAuthClient
from lark_cli.auth.oauth.constants import (
    DEFAULT_LOGIN_TIMEOUT_SECONDS,
    STATE_NONCE_BYTES,
    USER_OAUTH_LISTEN_HOST,
    USER_OAUTH_LISTEN_PORT,
)
from lark_cli.auth.policy import ScopeOptions, resolve_user_oauth_scopes
from lark_cli.auth.remediation import OFFLINE_ACCESS_NOT_GRANTED
from lark_cli.auth.scopes import canonical_scope_string, join_scopes, requested_scopes
from lark_cli.auth.storage import KeyringBackend, TokenStorage, get_token_storage
from lark_cli.config import UserRefreshTokenPayload
from lark_cli.exceptions import (
    CredentialsMissingError,
    OfflineAccessNotGrantedError,
    ScopeError,
)
from lark_cli.state import AppState


logger = get_logger(__name__)

MISSING_APP_CREDENTIALS = (
    "app_id and app_secret are required for user login "
    "(set LARK_APP_ID/LARK_APP_SECRET or config)"
)


def new_oauth_state() -> str:
    """Random URL-safe state nonce for CSRF protection."""
    raw = secrets.token_bytes(STATE_NONCE_BYTES)
    return base64.urlsafe_b64encode(raw).decode().rstrip("=")


@dataclass
class LoginOptions:
    """Options for one interactive login."""

    scopes: str | None = None
    services: list[str] = field(default_factory=list)
    services_set: bool = False
    readonly: bool = False
    drive_scope: str | None = None
    force_consent: bool = False
    incremental: bool = True
    timeout: float = DEFAULT_LOGIN_TIMEOUT_SECONDS

    def scope_options(self) -> ScopeOptions:
        return ScopeOptions(
            scopes=self.scopes,
            services=self.services,
            services_set=self.services_set,
            readonly=self.readonly,
            drive_scope=self.drive_scope,
        )


@dataclass
class LoginResult:
    """Outcome of a completed login."""

    config_path: Path
    account: str
    expires_at: int
    scope: str
    requested_scopes: list[str]
    scope_source: str
    storage_location: str


class UserOAuthFlow:
    """Drives the authorization-code login for the current account.

    The flow binds the local callback listener, sends the user to the
    authorize URL, waits for exactly one callback outcome and exchanges the
    code. Tokens are written through the configured token storage and the
    config file is saved before :meth:`login` returns.
    """

    def __init__(
        self,
        state: AppState,
        oauth_client: UserOAuthClient | None = None,
        storage: TokenStorage | None = None,
        open_browser: Callable[[str], bool] = webbrowser.open,
        host: str = USER_OAUTH_LISTEN_HOST,
        port: int = USER_OAUTH_LISTEN_PORT,
        err_console: Console | None = None,
    ) -> None:
        self.state = state
        self._oauth_client = oauth_client
        self._storage = storage
        self.open_browser = open_browser
        self.host = host
        self.port = port
        self.err_console = err_console or Console(stderr=True)

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

    def _launch_browser(self, url: str) -> None:
        try:
            opened = self.open_browser(url)
        except webbrowser.Error as e:
            logger.debug("oauth_browser_open_failed", error=str(e))
            opened = False
        if not opened:
            self.err_console.print(
                f"Open this URL in your browser:\n{url}", markup=False, soft_wrap=True
            )

    async def login(self, options: LoginOptions | None = None) -> LoginResult:
        """Run the interactive login and persist the resulting tokens.

        Args:
            options: Scope selection, consent and timeout settings

        Returns:
            Details of the stored credentials

        Raises:
            CredentialsMissingError: If the app id or secret is not configured
            ScopeError: If the scope options conflict or are invalid
            OAuthError: If the callback, timeout or code exchange fails

        """
        options = options or LoginOptions()
        config = self.state.config
        if not config.app_id.strip() or not config.app_secret.strip():
            raise CredentialsMissingError(MISSING_APP_CREDENTIALS)

        if options.scopes is not None and (
            options.services_set or options.readonly or options.drive_scope is not None
        ):
            raise ScopeError(
                "--scopes cannot be combined with --services, --readonly, "
                "or --drive-scope"
            )

        accounts = AccountManager(self.state)
        account = accounts.resolve_login_name()
        scope_list, source = resolve_user_oauth_scopes(
            self.state, account, options.scope_options()
        )
        previous = accounts.get(account)
        previous_scope = previous.user_access_token_scope if previous else ""
        request = requested_scopes(scope_list, previous_scope, options.incremental)
        request_string = join_scopes(request)

        oauth_state = new_oauth_state()
        auth_url = self.oauth_client.build_authorize_url(
            oauth_state,
            request_string,
            prompt="consent" if options.force_consent else "",
            include_granted_scopes=options.incremental,
        )

        channel = CallbackResultChannel()
        server = OAuthCallbackServer(
            oauth_state, channel, host=self.host, port=self.port
        )
        server.start()
        logger.info(
            "oauth_login_started",
            account=account,
            scopes=request,
            scope_source=source,
            incremental=options.incremental,
        )
        try:
            self._launch_browser(auth_url)
            code = await channel.receive(options.timeout)
        finally:
            server.close()

        response = await self.oauth_client.exchange_code(code)
        if not response.refresh_token:
            raise OfflineAccessNotGrantedError(OFFLINE_ACCESS_NOT_GRANTED)

        now = int(time.time())
        granted = canonical_scope_string(response.scope)
        if not granted:
            # An incremental grant is merged with what the account already holds.
            base = previous_scope if options.incremental else ""
            granted = canonical_scope_string(f"{base} {request_string}")
        expires_at = now + response.expires_in

        stored = accounts.ensure(account)
        stored.user_scopes = scope_list
        stored.user_access_token_scope = granted
        accounts.save(account, stored)

        storage = self.storage
        storage.save(
            account,
            UserToken(
                access_token=response.access_token,
                refresh_token=response.refresh_token,
                expires_at=expires_at,
                scope=granted,
            ),
        )

        stored = accounts.ensure(account)
        stored.user_refresh_token_payload = UserRefreshTokenPayload(
            refresh_token=(
                response.refresh_token if storage.backend is KeyringBackend.FILE else ""
            ),
            services=options.services if options.services_set else [],
            scopes=granted,
            created_at=now,
        )
        accounts.save(account, stored)
        self.state.save_config()

        logger.info(
            "oauth_login_completed",
            account=account,
            backend=storage.backend,
            expires_at=expires_at,
        )
        return LoginResult(
            config_path=self.state.config_path,
            account=account,
            expires_at=expires_at,
            scope=granted,
            requested_scopes=request,
            scope_source=source,
            storage_location=storage.get_location(),
        )

"""Pick the token type for a command and run an API call with it."""

from collections.abc import Awaitable, Callable, Sequence
from typing import Protocol, TypeVar

from structlog import get_logger

from lark_cli.auth.accounts import AccountManager
from lark_cli.auth.policy import preflight_user_scopes, with_user_scope_hint
from lark_cli.auth.registry import ScopeRegistry, TokenType
from lark_cli.auth.tokens import UserTokenManager
from lark_cli.exceptions import ConfigError
from lark_cli.state import AppState


logger = get_logger(__name__)

T = TypeVar("T")

AUTO_TOKEN_TYPE = "auto"


class TenantTokenProvider(Protocol):
    """Source of tenant (app) access tokens."""

    async def get_tenant_access_token(self, state: AppState) -> str: ...


def resolve_token_type(state: AppState, allowed: Sequence[TokenType]) -> TokenType:
    """Token type to use for this invocation.

    ``auto`` prefers a user token when one was passed explicitly, then the
    configured default when the command accepts it, then the first type the
    command accepts.

    Raises:
        ConfigError: If the requested type is unknown or not accepted

    """
    allowed = list(allowed) or [TokenType.TENANT, TokenType.USER]
    requested = (state.token_type or AUTO_TOKEN_TYPE).strip().lower()
    if requested != AUTO_TOKEN_TYPE:
        unsupported = f'token type "{requested}" is not supported by this command'
        try:
            token_type = TokenType(requested)
        except ValueError:
            raise ConfigError(unsupported) from None
        if token_type not in allowed:
            raise ConfigError(unsupported)
        return token_type

    if state.override_user_token() and TokenType.USER in allowed:
        return TokenType.USER
    try:
        default = TokenType(state.config.default_token_type)
    except ValueError:
        default = None
    if default is not None and default in allowed:
        return default
    return allowed[0]


async def resolve_access_token(
    state: AppState,
    allowed: Sequence[TokenType],
    tenant_provider: TenantTokenProvider | None = None,
    token_manager: UserTokenManager | None = None,
    registry: ScopeRegistry | None = None,
) -> tuple[TokenType, str]:
    """Resolve the token type and fetch a matching access token.

    The user path checks the account's granted scopes against the command
    before any token is loaded or refreshed.

    Returns:
        Selected token type and the access token

    Raises:
        ConfigError: If no tenant token provider is available for a tenant call
        ScopeInsufficientError: If the account lacks scopes the command needs
        UserTokenExpiredError: If the user token cannot be refreshed

    """
    token_type = resolve_token_type(state, allowed)
    if token_type is TokenType.USER:
        if not state.override_user_token():
            account = AccountManager(state).resolve_current_name()
            preflight_user_scopes(state, account, registry)
        manager = token_manager or UserTokenManager(state, registry=registry)
        return token_type, await manager.get_access_token()

    if tenant_provider is None:
        raise ConfigError("tenant access token provider is not configured")
    return token_type, await tenant_provider.get_tenant_access_token(state)


async def run_with_token(
    state: AppState,
    call: Callable[[TokenType, str], Awaitable[T]],
    allowed: Sequence[TokenType] = (TokenType.TENANT, TokenType.USER),
    tenant_provider: TenantTokenProvider | None = None,
    token_manager: UserTokenManager | None = None,
    registry: ScopeRegistry | None = None,
) -> T:
    """Resolve a token and await ``call(token_type, token)``.

    Failures of user-token calls that look like missing OAuth scopes are
    re-raised with re-authorization guidance attached.
    """
    token_type, token = await resolve_access_token(
        state, allowed, tenant_provider, token_manager, registry
    )
    try:
        return await call(token_type, token)
    except Exception as e:
        if token_type is not TokenType.USER:
            raise
        hinted = with_user_scope_hint(e, state.command, registry)
        if hinted is e:
            raise
        logger.debug("api_call_scope_hint_applied", command=state.command)
        raise hinted from e

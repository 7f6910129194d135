"""Scope policy: per-command required scopes, preflight checks and login scopes."""

import re
from dataclasses import dataclass, field

import structlog

from lark_cli.auth.registry import ScopeRegistry, get_registry
from lark_cli.auth.remediation import (
    DEFAULT_RELOGIN_COMMAND,
    REAUTHORIZE_MARKER,
    relogin_command,
    relogin_services_command,
    scope_hint_block,
    scopes_missing_message,
)
from lark_cli.auth.scopes import (
    OFFLINE_ACCESS_SCOPE,
    canonicalize_scopes,
    ensure_offline_access,
    missing_scopes,
    normalize_scopes,
    parse_scope_list,
    select_preferred_scopes,
)
from lark_cli.exceptions import ScopeError, ScopeInsufficientError
from lark_cli.state import AppState


logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class CommandScopes:
    """User OAuth scopes a command needs, with the services they come from."""

    command: str
    services: list[str]
    scopes: list[str]
    undeclared: list[str]

    def note(self) -> str:
        """Human-readable provenance appended to remediation messages."""
        services = ", ".join(self.services)
        if self.undeclared:
            return (
                f'required by command "{self.command}" (services: {services}; '
                f"missing scope declarations for: {', '.join(self.undeclared)})"
            )
        return f'required by command "{self.command}" (services: {services})'


def scopes_for_command(
    command: str,
    *,
    readonly: bool = False,
    registry: ScopeRegistry | None = None,
) -> CommandScopes | None:
    """Scopes required by a command path.

    Args:
        command: Space-separated command path without the binary name
        readonly: Use each service's read-only variant where declared
        registry: Registry to consult; the built-in one if omitted

    Returns:
        Required scopes with the sentinel first, or None when the command is
        unmapped or none of its services needs a user token

    """
    command = " ".join(command.split())
    if not command:
        return None
    registry = get_registry(registry)
    services = registry.services_for_command(command)
    if services is None:
        return None
    if not any(registry.service(name).requires_user_token for name in services):
        return None

    required, undeclared = registry.required_user_scopes_report(services)
    if readonly:
        scopes: list[str] = []
        for name in services:
            definition = registry.service(name)
            scopes.extend(
                definition.user_scopes.readonly or definition.required_user_scopes or ()
            )
        required = normalize_scopes(scopes)
    return CommandScopes(
        command=command,
        services=services,
        scopes=ensure_offline_access(required),
        undeclared=undeclared,
    )


def relogin_recommendation(
    command: str, registry: ScopeRegistry | None = None
) -> tuple[str, str]:
    """Re-login command and provenance note for a command.

    Falls back to the generic sentinel-only login when the command has no
    user scope mapping.
    """
    try:
        required = scopes_for_command(command, registry=registry)
    except ScopeError:
        logger.debug("relogin_recommendation_unavailable", command=command)
        required = None
    if required is None:
        return DEFAULT_RELOGIN_COMMAND, ""
    return relogin_command(required.scopes), required.note()


def preflight_user_scopes(
    state: AppState,
    account: str,
    registry: ScopeRegistry | None = None,
) -> None:
    """Fail fast when the account's granted scopes miss what the command needs.

    Accounts without a recorded granted-scope string predate scope tracking
    and are not checked. Commands with undeclared services are not checked
    either, since their real requirements are unknown.

    Raises:
        ScopeInsufficientError: If at least one required scope is missing

    """
    stored = state.config.user_accounts.get(account)
    if stored is None:
        return
    granted = stored.user_access_token_scope.strip()
    if not granted:
        return

    required = scopes_for_command(state.command, registry=registry)
    if required is None or not required.scopes or required.undeclared:
        return

    missing = missing_scopes(required.scopes, granted)
    if not missing:
        return

    logger.info(
        "user_scope_preflight_failed",
        account=account,
        command=required.command,
        missing=missing,
    )
    raise ScopeInsufficientError(
        scopes_missing_message(
            account, missing, relogin_command(required.scopes), required.note()
        ),
        missing_scopes=missing,
    )


@dataclass
class ScopeOptions:
    """Login scope selection from the command line."""

    scopes: str | None = None
    services: list[str] = field(default_factory=list)
    services_set: bool = False
    readonly: bool = False
    drive_scope: str | None = None


def resolve_user_oauth_scopes(
    state: AppState,
    account: str,
    options: ScopeOptions | None = None,
    registry: ScopeRegistry | None = None,
) -> tuple[list[str], str]:
    """Resolve the scopes to request and where they came from.

    Sources, first match wins: explicit ``--scopes`` ("flag"), services
    selection ("services"), the account's saved scopes ("account"), the
    config's default scopes ("config"), then the sentinel alone ("default").

    Raises:
        ScopeError: If explicit scopes are empty or services are invalid

    """
    options = options or ScopeOptions()
    if options.scopes is not None:
        scopes = parse_scope_list(options.scopes)
        if not scopes:
            raise ScopeError("scopes must not be empty")
        return canonicalize_scopes(scopes), "flag"

    if options.services_set or options.readonly or options.drive_scope is not None:
        scopes = get_registry(registry).user_oauth_scopes_from_services(
            options.services,
            readonly=options.readonly,
            drive_scope=options.drive_scope or "",
        )
        return canonicalize_scopes(scopes), "services"

    stored = state.config.user_accounts.get(account)
    if stored is not None and normalize_scopes(stored.user_scopes):
        return canonicalize_scopes(stored.user_scopes), "account"
    if normalize_scopes(state.config.user_scopes):
        return canonicalize_scopes(state.config.user_scopes), "config"
    return [OFFLINE_ACCESS_SCOPE], "default"


_SCOPE_BRACKET_PATTERN = re.compile(r"\[(.*?)\]")
_ERROR_CODE_PATTERN = re.compile(r"code=(\d+)")

# OpenAPI error code for "insufficient user OAuth scopes".
INSUFFICIENT_SCOPE_CODE = 99991679


def _extract_error_code(message: str) -> int:
    match = _ERROR_CODE_PATTERN.search(message)
    return int(match.group(1)) if match else 0


def _should_suggest_scopes(message: str) -> bool:
    # Without a numeric code, generic "permission denied" text is usually an
    # object-level ACL problem, not a missing scope.
    code = _extract_error_code(message)
    if code:
        return code == INSUFFICIENT_SCOPE_CODE
    if "scope" in message.lower():
        return True
    return "权限范围" in message


def extract_scopes_from_error(message: str) -> list[str]:
    """First bracketed list in ``message`` that contains a scope-like token."""
    for match in _SCOPE_BRACKET_PATTERN.finditer(message):
        scopes = parse_scope_list(match.group(1))
        if any(":" in scope for scope in scopes):
            return scopes
    return []


def with_user_scope_hint(
    error: Exception,
    command: str = "",
    registry: ScopeRegistry | None = None,
) -> Exception:
    """Append re-authorization guidance to a remote insufficient-scope error.

    Args:
        error: Error raised by a user-token API call
        command: Command path used to infer scopes when the error lists none
        registry: Registry to consult; the built-in one if omitted

    Returns:
        A :class:`ScopeInsufficientError` carrying the original message and
        the hint, or ``error`` itself when no hint applies

    """
    message = str(error)
    if REAUTHORIZE_MARKER in message or not _should_suggest_scopes(message):
        return error

    scopes = extract_scopes_from_error(message)
    from_error = bool(scopes)
    inferred: CommandScopes | None = None
    if not from_error:
        try:
            inferred = scopes_for_command(command, registry=registry)
        except ScopeError:
            inferred = None
        if inferred is not None:
            scopes = inferred.scopes
    if not scopes:
        return error

    scopes = ensure_offline_access(select_preferred_scopes(scopes))
    if inferred is not None and inferred.services and not inferred.undeclared:
        relogin = relogin_services_command(inferred.services)
    else:
        relogin = relogin_command(scopes)

    logger.debug("user_scope_hint_added", command=command, scopes=scopes)
    return ScopeInsufficientError(
        f"{message}\n{scope_hint_block(scopes, relogin)}", missing_scopes=scopes
    )

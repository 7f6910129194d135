"""Authentication commands: requirement lookup, login and token status."""

import asyncio
import time
from typing import Annotated

import typer
from structlog import get_logger

from lark_cli.auth.accounts import AccountManager
from lark_cli.auth.oauth import LoginOptions, UserOAuthFlow
from lark_cli.auth.oauth.constants import DEFAULT_LOGIN_TIMEOUT_SECONDS
from lark_cli.auth.registry import DRIVE_SCOPE_VALUES, get_registry
from lark_cli.auth.remediation import DEFAULT_RELOGIN_COMMAND, relogin_command
from lark_cli.auth.scopes import (
    canonicalize_scopes,
    ensure_offline_access,
    normalize_scopes,
    parse_services_list,
)
from lark_cli.auth.storage import get_token_storage
from lark_cli.cli.commands.auth_accounts import app as accounts_app
from lark_cli.cli.commands.auth_display_helpers import (
    create_services_table,
    explain_text,
    format_rfc3339,
    status_text,
)
from lark_cli.cli.commands.auth_scopes import app as scopes_app
from lark_cli.cli.helpers import emit, err_console, get_state, handle_errors
from lark_cli.exceptions import ScopeError


app = typer.Typer(name="auth", help="Authentication and authorization helpers")
user_app = typer.Typer(name="user", help="User OAuth login and stored credentials")
app.add_typer(user_app, name="user")
user_app.add_typer(accounts_app, name="accounts")
user_app.add_typer(scopes_app, name="scopes")

logger = get_logger(__name__)


@app.command(name="explain")
def explain_command(
    ctx: typer.Context,
    command: Annotated[
        list[str], typer.Argument(help="Command path to explain, e.g. drive search")
    ],
) -> None:
    """Explain the token types and scopes a command needs.

    Examples:
        lark auth explain drive search
        lark auth explain mail send --json

    """
    with handle_errors():
        state = get_state(ctx)
        target = " ".join(" ".join(command).split())
        registry = get_registry()
        requirements = registry.requirements_for_command(target)
        if requirements is None:
            raise ScopeError(f'no auth registry mapping found for command "{target}"')

        suggested: list[str] = []
        suggested_command = ""
        if requirements.requires_user_token:
            suggested = requirements.required_user_scopes
            if requirements.requires_offline:
                suggested = ensure_offline_access(suggested)
            if suggested:
                suggested_command = relogin_command(suggested)

        payload = {
            "command": target,
            "services": requirements.services,
            "token_types": [str(t) for t in requirements.token_types],
            "requires_offline": requirements.requires_offline,
            "required_user_scopes": requirements.required_user_scopes,
            "services_missing_required_user_scopes": requirements.undeclared_services,
            "suggested_user_login_scopes": suggested,
            "suggested_user_login_command": suggested_command,
        }
        emit(state, payload, explain_text(payload))


@user_app.command(name="login")
def login_command(
    ctx: typer.Context,
    scopes: Annotated[
        str | None,
        typer.Option(
            "--scopes", help="OAuth scopes to request (space or comma separated)"
        ),
    ] = None,
    services: Annotated[
        list[str] | None,
        typer.Option(
            "--services",
            help="Services to request scopes for (repeatable or comma separated)",
        ),
    ] = None,
    readonly: Annotated[
        bool, typer.Option("--readonly", help="Request read-only service scopes")
    ] = False,
    drive_scope: Annotated[
        str | None,
        typer.Option(
            "--drive-scope",
            help=f"Drive scope variant ({' or '.join(DRIVE_SCOPE_VALUES)})",
        ),
    ] = None,
    force_consent: Annotated[
        bool, typer.Option("--force-consent", help="Always show the consent screen")
    ] = False,
    incremental: Annotated[
        bool,
        typer.Option(
            "--incremental/--no-incremental",
            help="Only request scopes not granted yet",
        ),
    ] = True,
    timeout: Annotated[
        float,
        typer.Option("--timeout", help="Seconds to wait for the browser callback"),
    ] = DEFAULT_LOGIN_TIMEOUT_SECONDS,
) -> None:
    """Log in with a user account through the browser.

    Examples:
        lark auth user login
        lark auth user login --services drive --readonly
        lark auth user login --scopes "offline_access drive:drive" --force-consent

    """
    with handle_errors():
        state = get_state(ctx)
        options = LoginOptions(
            scopes=scopes,
            services=parse_services_list(services or []),
            services_set=bool(services),
            readonly=readonly,
            drive_scope=drive_scope,
            force_consent=force_consent,
            incremental=incremental,
            timeout=timeout,
        )
        try:
            flow = UserOAuthFlow(state, err_console=err_console)
            result = asyncio.run(flow.login(options))
        except KeyboardInterrupt:
            logger.info("oauth_login_cancelled")
            err_console.print("\n[yellow]Login cancelled by user.[/yellow]")
            raise typer.Exit(1) from None

        payload = {
            "config_path": str(result.config_path),
            "account": result.account,
            "user_access_token_expires_at": result.expires_at,
            "user_access_token_scope": result.scope,
            "requested_scopes": result.requested_scopes,
            "scope_source": result.scope_source,
        }
        emit(
            state,
            payload,
            f'logged in account "{result.account}"; '
            f"token expires at {format_rfc3339(result.expires_at)}; "
            f"saved to {result.storage_location}",
        )


@user_app.command(name="status")
def status_command(ctx: typer.Context) -> None:
    """Show stored user OAuth credential status for the current account."""
    with handle_errors():
        state = get_state(ctx)
        account = AccountManager(state).resolve_current_name()
        storage = get_token_storage(state)
        stored = storage.load(account)
        record = AccountManager(state).ensure(account)

        refresh_token = (
            stored.refresh_token if stored else ""
        ) or record.refresh_token_value()
        expires_at = stored.expires_at if stored else 0
        payload = {
            "config_path": str(state.config_path),
            "account": account,
            "backend": str(storage.backend),
            "user_access_token_present": bool(stored and stored.access_token),
            "user_access_token_expired": bool(
                stored and not stored.is_valid(int(time.time()))
            ),
            "refresh_token_present": bool(refresh_token),
            "user_access_token_expires_at": expires_at,
            "user_access_token_expires_at_rfc3339": format_rfc3339(expires_at),
            "user_access_token_scope": record.user_access_token_scope.strip(),
        }
        token_payload = record.user_refresh_token_payload
        if token_payload is not None:
            payload["refresh_token_services"] = token_payload.services
            payload["refresh_token_scopes"] = token_payload.scopes.strip()
            payload["refresh_token_created_at"] = token_payload.created_at
            payload["refresh_token_created_at_rfc3339"] = format_rfc3339(
                token_payload.created_at
            )
        if not refresh_token:
            saved = normalize_scopes(record.user_scopes)
            payload["remediation"] = (
                relogin_command(canonicalize_scopes(saved))
                if saved
                else DEFAULT_RELOGIN_COMMAND
            )
        emit(state, payload, status_text(payload))


@user_app.command(name="services")
def services_command(ctx: typer.Context) -> None:
    """List services usable with services-based login."""
    with handle_errors():
        state = get_state(ctx)
        registry = get_registry()
        services = registry.list_user_oauth_services()
        scopes = {}
        for name in services:
            definition = registry.service(name)
            scopes[name] = {
                "full": list(definition.user_scopes.full),
                "readonly": list(definition.user_scopes.readonly),
                "required": list(definition.required_user_scopes or ()),
            }
        payload = {
            "services": services,
            "default_services": registry.default_services,
            "service_aliases": registry.aliases,
            "service_scopes": scopes,
            "drive_scope_values": list(DRIVE_SCOPE_VALUES),
        }
        emit(state, payload, create_services_table(services, scopes))

"""Commands for the default user OAuth scopes of an account."""

from typing import Annotated

import typer

from lark_cli.auth.accounts import AccountManager
from lark_cli.auth.policy import resolve_user_oauth_scopes
from lark_cli.auth.scopes import (
    OFFLINE_ACCESS_SCOPE,
    canonicalize_scopes,
    normalize_scopes,
    parse_scope_list,
)
from lark_cli.cli.helpers import emit, get_state, handle_errors
from lark_cli.exceptions import ScopeError
from lark_cli.state import AppState


app = typer.Typer(name="scopes", help="Manage default user OAuth scopes")

ScopesArgument = Annotated[
    list[str] | None,
    typer.Argument(help="OAuth scopes (space or comma separated)", show_default=False),
]
ScopesOption = Annotated[
    str | None,
    typer.Option("--scopes", help="OAuth scopes, instead of positional arguments"),
]


def _scope_input(option: str | None, arguments: list[str] | None) -> list[str]:
    """Scopes given either as ``--scopes`` or positionally, never both.

    Raises:
        ScopeError: If both forms are used or no scope remains after parsing

    """
    if arguments and option and option.strip():
        raise ScopeError("scopes provided twice")
    raw = " ".join(arguments) if arguments else (option or "")
    scopes = normalize_scopes(parse_scope_list(raw))
    if not scopes:
        raise ScopeError("scopes must not be empty")
    return scopes


def _save_scopes(state: AppState, scopes: list[str], verb: str) -> None:
    accounts = AccountManager(state)
    account = accounts.resolve_current_name()
    updated = accounts.update_scopes(account, canonicalize_scopes(scopes))
    state.save_config()
    payload = {
        "config_path": str(state.config_path),
        "account": account,
        "scopes": updated.user_scopes,
    }
    emit(state, payload, f"{verb} user scopes: {' '.join(updated.user_scopes)}")


def _current_scopes(state: AppState) -> list[str]:
    accounts = AccountManager(state)
    record = accounts.get(accounts.resolve_current_name())
    current = normalize_scopes(record.user_scopes) if record else []
    return current or [OFFLINE_ACCESS_SCOPE]


@app.command(name="list")
def list_scopes(ctx: typer.Context) -> None:
    """List the scopes a login would request by default."""
    with handle_errors():
        state = get_state(ctx)
        account = AccountManager(state).resolve_current_name()
        scopes, source = resolve_user_oauth_scopes(state, account)
        payload = {
            "config_path": str(state.config_path),
            "account": account,
            "scopes": scopes,
            "source": source,
        }
        emit(
            state,
            payload,
            f"scopes: {' '.join(scopes)} (source: {source})\naccount: {account}",
        )


@app.command(name="set")
def set_scopes(
    ctx: typer.Context,
    scopes: ScopesArgument = None,
    scopes_option: ScopesOption = None,
) -> None:
    """Replace the default scopes of the current account."""
    with handle_errors():
        state = get_state(ctx)
        _save_scopes(state, _scope_input(scopes_option, scopes), "saved")


@app.command(name="add")
def add_scopes(
    ctx: typer.Context,
    scopes: ScopesArgument = None,
    scopes_option: ScopesOption = None,
) -> None:
    """Add scopes to the current account's defaults."""
    with handle_errors():
        state = get_state(ctx)
        added = _scope_input(scopes_option, scopes)
        _save_scopes(state, _current_scopes(state) + added, "added")


@app.command(name="remove")
def remove_scopes(
    ctx: typer.Context,
    scopes: ScopesArgument = None,
    scopes_option: ScopesOption = None,
) -> None:
    """Remove scopes from the current account's defaults.

    ``offline_access`` is always kept.
    """
    with handle_errors():
        state = get_state(ctx)
        removed = set(_scope_input(scopes_option, scopes))
        remaining = [s for s in _current_scopes(state) if s not in removed]
        _save_scopes(state, remaining, "removed")

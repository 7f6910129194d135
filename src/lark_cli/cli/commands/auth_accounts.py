"""Commands for named user OAuth accounts."""

import time
from typing import Annotated

import typer

from lark_cli.auth.accounts import AccountManager
from lark_cli.auth.storage import get_token_storage
from lark_cli.cli.commands.auth_display_helpers import create_accounts_table
from lark_cli.cli.helpers import emit, get_state, handle_errors
from lark_cli.config.settings import DEFAULT_USER_ACCOUNT
from lark_cli.exceptions import ConfigError


app = typer.Typer(name="accounts", help="Manage stored user OAuth accounts")


def _account_name(name: str) -> str:
    name = name.strip()
    if not name:
        raise ConfigError("account must not be empty")
    return name


@app.command(name="list")
def list_accounts(ctx: typer.Context) -> None:
    """List stored user OAuth accounts."""
    with handle_errors():
        state = get_state(ctx)
        accounts = AccountManager(state)
        storage = get_token_storage(state)
        default_account = state.config.default_user_account or DEFAULT_USER_ACCOUNT

        statuses = []
        for name in accounts.list_names():
            stored = storage.load(name)
            statuses.append(
                {
                    "account": name,
                    "default": name == default_account,
                    "access_token_present": bool(stored and stored.access_token),
                    "refresh_token_present": bool(stored and stored.refresh_token),
                    "access_token_expires_at": stored.expires_at if stored else 0,
                }
            )
        payload = {
            "config_path": str(state.config_path),
            "default_account": default_account,
            "accounts": statuses,
        }
        emit(state, payload, create_accounts_table(statuses, int(time.time())))


@app.command(name="set")
def set_default_account(
    ctx: typer.Context,
    name: Annotated[str, typer.Argument(help="Account to use by default")],
) -> None:
    """Set the default user OAuth account."""
    with handle_errors():
        state = get_state(ctx)
        account = _account_name(name)
        AccountManager(state).set_default(account)
        state.save_config()
        payload = {"config_path": str(state.config_path), "default_account": account}
        emit(state, payload, f"saved default user account to {state.config_path}")


@app.command(name="remove")
def remove_account(
    ctx: typer.Context,
    name: Annotated[str, typer.Argument(help="Account to remove")],
) -> None:
    """Remove a stored user OAuth account and its stored tokens."""
    with handle_errors():
        state = get_state(ctx)
        account = _account_name(name)
        removed = AccountManager(state).remove(account)
        state.save_config()
        payload = {
            "config_path": str(state.config_path),
            "account": account,
            "removed": removed,
        }
        emit(state, payload, f"removed user account {account}")

"""Root ``lark`` command and global options."""

from pathlib import Path
from typing import Annotated

import typer

from lark_cli import __version__
from lark_cli.cli.commands.auth import app as auth_app
from lark_cli.cli.helpers import handle_errors, print_text
from lark_cli.core.logging import configure_logging
from lark_cli.state import AppState


app = typer.Typer(
    name="lark",
    help="Command line client for Lark and Feishu OpenAPI.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)
app.add_typer(auth_app, name="auth")


def version_callback(value: bool) -> None:
    if value:
        print_text(f"lark {__version__}")
        raise typer.Exit()


@app.callback()
def app_main(
    ctx: typer.Context,
    config: Annotated[
        Path | None,
        typer.Option("--config", help="Config file path", dir_okay=False),
    ] = None,
    profile: Annotated[
        str | None,
        typer.Option("--profile", help="Config profile name (env: LARK_PROFILE)"),
    ] = None,
    account: Annotated[
        str | None,
        typer.Option("--account", help="User OAuth account (env: LARK_ACCOUNT)"),
    ] = None,
    token_type: Annotated[
        str,
        typer.Option("--token-type", help="Access token type: auto, tenant or user"),
    ] = "auto",
    base_url: Annotated[
        str | None,
        typer.Option("--base-url", help="OpenAPI base URL for this invocation"),
    ] = None,
    platform: Annotated[
        str | None,
        typer.Option("--platform", help="feishu or lark; sets the base URL"),
    ] = None,
    user_access_token: Annotated[
        str | None,
        typer.Option(
            "--user-access-token",
            help="Use this user access token as-is (env: LARK_USER_ACCESS_TOKEN)",
        ),
    ] = None,
    json_output: Annotated[
        bool, typer.Option("--json", help="Print machine-readable JSON")
    ] = False,
    verbose: Annotated[
        bool, typer.Option("--verbose", "-v", help="Enable debug logging")
    ] = False,
    version: Annotated[
        bool,
        typer.Option(
            "--version",
            callback=version_callback,
            is_eager=True,
            help="Show version and exit",
        ),
    ] = False,
) -> None:
    """Lark CLI."""
    configure_logging(verbose)
    with handle_errors():
        ctx.obj = AppState.load(
            config_path=config,
            profile=profile,
            base_url=base_url,
            platform=platform,
            user_account=(account or "").strip(),
            token_type=token_type,
            user_access_token=user_access_token or "",
            json_output=json_output,
            verbose=verbose,
        )


def main() -> None:
    """Entry point for the ``lark`` console script."""
    app()


if __name__ == "__main__":
    main()

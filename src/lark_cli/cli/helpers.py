"""Shared plumbing for CLI commands: state lookup, output and error exit."""

from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

import orjson
import typer
from rich.console import Console, RenderableType
from structlog import get_logger

from lark_cli.exceptions import ConfigError, LarkCLIError
from lark_cli.state import AppState


console = Console()
err_console = Console(stderr=True)
logger = get_logger(__name__)


def command_path(ctx: typer.Context) -> str:
    """Invoked command path without the program name, e.g. ``auth user login``."""
    return " ".join(ctx.command_path.split()[1:])


def get_state(ctx: typer.Context) -> AppState:
    """Application state built by the root callback, tagged with the command."""
    state = ctx.find_object(AppState)
    if state is None:
        raise ConfigError("config is required")
    state.command = command_path(ctx)
    return state


def print_text(text: str, *, target: Console | None = None) -> None:
    """Print plain text without markup, highlighting or hard wrapping."""
    (target or console).print(text, markup=False, highlight=False, soft_wrap=True)


def emit(state: AppState, payload: dict[str, Any], text: RenderableType) -> None:
    """Print ``payload`` as JSON with ``--json``, otherwise the human form."""
    if state.json_output:
        typer.echo(orjson.dumps(payload, option=orjson.OPT_INDENT_2).decode())
        return
    if isinstance(text, str):
        print_text(text)
    else:
        console.print(text)


@contextmanager
def handle_errors() -> Iterator[None]:
    """Turn CLI errors into ``Error: <message>`` on stderr and exit code 1."""
    try:
        yield
    except LarkCLIError as e:
        logger.debug(
            "command_failed", error_kind=str(e.kind), error_type=type(e).__name__
        )
        print_text(f"Error: {e}", target=err_console)
        raise typer.Exit(1) from e

"""Display helpers for authentication commands.

This module contains helper functions to format auth status and registry
information, keeping the command functions short.
"""

from datetime import UTC, datetime
from typing import Any

from rich import box
from rich.table import Table

from lark_cli.auth.remediation import missing_refresh_token_status


def format_rfc3339(epoch_seconds: int) -> str:
    """Format epoch seconds as an RFC 3339 UTC timestamp, or ``""`` for 0."""
    if not epoch_seconds:
        return ""
    return datetime.fromtimestamp(epoch_seconds, UTC).strftime("%Y-%m-%dT%H:%M:%SZ")


def format_time_remaining(expires_at: int, now: int) -> str:
    """Format time remaining until expiration.

    Args:
        expires_at: Expiry in epoch seconds
        now: Current time in epoch seconds

    Returns:
        Formatted string with time remaining or "expired"

    """
    remaining = expires_at - now
    if remaining <= 0:
        return "expired"
    hours, rest = divmod(remaining, 3600)
    minutes = rest // 60
    return f"{hours}h {minutes}m remaining"


def status_text(payload: dict[str, Any]) -> str:
    """Key/value lines for ``auth user status``."""

    def flag(key: str) -> str:
        return str(payload[key]).lower()

    lines = [
        f"config_path: {payload['config_path']}",
        f"account: {payload['account']}",
        f"backend: {payload['backend']}",
        f"user_access_token_present: {flag('user_access_token_present')}",
        f"refresh_token_present: {flag('refresh_token_present')}",
        f"user_access_token_expires_at: {payload['user_access_token_expires_at']}",
    ]
    optional = (
        "user_access_token_expires_at_rfc3339",
        "user_access_token_scope",
        "refresh_token_created_at",
        "refresh_token_created_at_rfc3339",
        "refresh_token_scopes",
    )
    lines.extend(f"{key}: {payload[key]}" for key in optional if payload.get(key))
    if payload.get("refresh_token_services"):
        services = " ".join(payload["refresh_token_services"])
        lines.append(f"refresh_token_services: {services}")
    if payload.get("remediation"):
        lines.append("")
        lines.append(missing_refresh_token_status(payload["remediation"]))
    return "\n".join(lines)


def create_accounts_table(accounts: list[dict[str, Any]], now: int) -> Table:
    """Table of stored accounts with token presence and expiry."""
    table = Table(
        show_header=True,
        header_style="bold cyan",
        box=box.ROUNDED,
        title="User Accounts",
        title_style="bold white",
    )
    table.add_column("Account", style="cyan")
    table.add_column("Default")
    table.add_column("Access Token")
    table.add_column("Refresh Token")
    table.add_column("Expires")

    for entry in accounts:
        expires_at = entry["access_token_expires_at"]
        expires = (
            f"{format_rfc3339(expires_at)} ({format_time_remaining(expires_at, now)})"
            if expires_at
            else "[dim]-[/dim]"
        )
        table.add_row(
            entry["account"],
            "[green]yes[/green]" if entry["default"] else "",
            "yes" if entry["access_token_present"] else "[dim]no[/dim]",
            "yes" if entry["refresh_token_present"] else "[red]no[/red]",
            expires,
        )
    return table


def create_services_table(
    services: list[str], scopes: dict[str, dict[str, list[str]]]
) -> Table:
    """Table of user OAuth services with their scope variants."""
    table = Table(
        show_header=True,
        header_style="bold cyan",
        box=box.ROUNDED,
        title="User OAuth Services",
        title_style="bold white",
    )
    table.add_column("Service", style="cyan")
    table.add_column("Full")
    table.add_column("Readonly")
    table.add_column("Required")

    for name in services:
        entry = scopes[name]
        table.add_row(
            name,
            " ".join(entry["full"]),
            " ".join(entry["readonly"]),
            " ".join(entry["required"]),
        )
    return table


def explain_text(payload: dict[str, Any]) -> str:
    """Key/value lines for ``auth explain``."""

    def joined(values: list[str], sep: str = " ") -> str:
        return sep.join(values) if values else "(none)"

    return "\n".join(
        [
            f"command: {payload['command']}",
            f"services: {', '.join(payload['services'])}",
            f"token_types: {', '.join(payload['token_types'])}",
            f"requires_offline: {str(payload['requires_offline']).lower()}",
            f"required_user_scopes: {joined(payload['required_user_scopes'])}",
            "services_missing_required_user_scopes: "
            + joined(payload["services_missing_required_user_scopes"], ", "),
            "suggested_user_login_command: "
            + (payload["suggested_user_login_command"] or "(none)"),
        ]
    )

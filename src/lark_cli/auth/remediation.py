"""Remediation message templates.

These strings are part of the CLI's observable behaviour: scripts and tests
match on them, so wording changes here are interface changes.
"""

from collections.abc import Sequence


BINARY_NAME = "lark"

DEFAULT_RELOGIN_COMMAND = (
    f'{BINARY_NAME} auth user login --scopes "offline_access" --force-consent'
)

OFFLINE_ACCESS_NOT_GRANTED = (
    "offline access was not granted: refresh_token missing from OAuth response; "
    f"re-run with: `{DEFAULT_RELOGIN_COMMAND}`; check console redirect URL/config"
)

REAUTHORIZE_MARKER = "Re-authorize with:"


def relogin_command(scopes: Sequence[str]) -> str:
    """Ready-to-run login command requesting ``scopes`` with forced consent."""
    joined = " ".join(scopes)
    return f'{BINARY_NAME} auth user login --scopes "{joined}" --force-consent'


def relogin_services_command(services: Sequence[str]) -> str:
    joined = ",".join(services)
    return f'{BINARY_NAME} auth user login --services "{joined}" --force-consent'


def _account_note(account: str) -> str:
    return f' for account "{account}"' if account else ""


def _with_note(note: str) -> str:
    return f"; {note}" if note else ""


def scopes_missing_message(
    account: str, missing: Sequence[str], relogin: str, note: str = ""
) -> str:
    return (
        f"user OAuth scopes missing{_account_note(account)}: {', '.join(missing)}; "
        f"run `{relogin}`{_with_note(note)}"
    )


def token_expired_message(account: str, relogin: str, note: str = "") -> str:
    return (
        f"user access token expired{_account_note(account)}{_with_note(note)}; "
        f"run `{relogin}`"
    )


def token_revoked_message(account: str, relogin: str, note: str = "") -> str:
    return (
        "user access token expired (refresh token revoked or expired)"
        f"{_account_note(account)}{_with_note(note)}; run `{relogin}`"
    )


def refresh_token_revoked_message(account: str, relogin: str, note: str = "") -> str:
    return (
        f"refresh token revoked or expired{_account_note(account)}; "
        f"cleared cached credentials{_with_note(note)}; run `{relogin}`"
    )


def missing_refresh_token_status(relogin: str) -> str:
    return f"Missing refresh_token. Re-run: `{relogin}`"


def scope_hint_block(scopes: Sequence[str], relogin: str) -> str:
    return (
        f"Missing user OAuth scopes: {', '.join(scopes)}.\n"
        f"{REAUTHORIZE_MARKER}\n  {relogin}"
    )

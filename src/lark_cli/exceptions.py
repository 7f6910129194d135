"""Consolidated exception hierarchy for the Lark CLI.

All exceptions use proper exception chaining with the `from` keyword.
The message text of every error is part of the CLI surface: callers and
tests match on it, so ``str(error)`` always renders the exact template.
"""

from enum import StrEnum
from typing import Any


class ErrorKind(StrEnum):
    """Error categories used for exit reporting and JSON output."""

    CONFIG = "config_error"
    CREDENTIALS = "credentials_error"
    OAUTH = "oauth_error"
    TOKEN_EXPIRED = "token_expired_error"
    SCOPE = "scope_error"


# ============================================================================
# Base Exceptions
# ============================================================================


class LarkCLIError(Exception):
    """Base exception for all Lark CLI errors."""

    kind: ErrorKind = ErrorKind.CONFIG

    def __init__(self, message: str, *, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        return self.message


# ============================================================================
# Configuration Errors
# ============================================================================


class ConfigError(LarkCLIError):
    """Invalid or unreadable configuration."""

    kind = ErrorKind.CONFIG


class UnsupportedBackendError(ConfigError):
    """The configured keyring backend is not one we know how to use."""

    def __init__(self, backend: str) -> None:
        super().__init__(f'unsupported keyring backend "{backend}"')
        self.backend = backend


class CredentialsMissingError(ConfigError):
    """App credentials are required but not configured."""


# ============================================================================
# Credentials & Storage Errors
# ============================================================================


class CredentialsError(LarkCLIError):
    """Base credentials error."""

    kind = ErrorKind.CREDENTIALS


class CredentialsInvalidError(CredentialsError):
    """Stored credentials could not be decoded."""


class CredentialsStorageError(CredentialsError):
    """Error reading or writing stored credentials.

    When raised after a successful refresh, ``access_token`` carries the
    refreshed token so read-only callers can still use it.
    """

    def __init__(self, message: str, *, access_token: str = "") -> None:
        super().__init__(message)
        self.access_token = access_token


class KeychainUnsupportedError(CredentialsStorageError):
    """The OS secret store is unavailable on this platform."""

    def __init__(self) -> None:
        super().__init__(
            "keychain backend is not supported on this platform; "
            "use keyring_backend=file"
        )


# ============================================================================
# OAuth Errors
# ============================================================================


class OAuthError(LarkCLIError):
    """Base OAuth error."""

    kind = ErrorKind.OAUTH


class OAuthLoginError(OAuthError):
    """OAuth login failed before a callback could be received."""


class OAuthCallbackError(OAuthError):
    """The OAuth callback reported an error or was malformed."""


class OAuthStateMismatchError(OAuthCallbackError):
    """The callback state did not match the one we sent."""

    def __init__(self) -> None:
        super().__init__("oauth state mismatch")


class OAuthTimeoutError(OAuthError):
    """No callback arrived before the login deadline."""

    def __init__(self) -> None:
        super().__init__("timed out waiting for OAuth callback")


class TokenExchangeError(OAuthError):
    """Authorization code exchange failed."""

    def __init__(
        self, message: str, *, status_code: int = 0, response_text: str = ""
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.response_text = response_text


class OfflineAccessNotGrantedError(TokenExchangeError):
    """The provider did not issue a refresh token."""


class TokenRefreshError(OAuthError):
    """Refreshing the user access token failed."""


class TokenRefreshRejectedError(TokenRefreshError):
    """The provider explicitly rejected a refresh request."""

    def __init__(self, code: int, provider_message: str) -> None:
        super().__init__(
            f"refresh access token failed (code={code}): {provider_message}"
        )
        self.code = code
        self.provider_message = provider_message


# ============================================================================
# Token Lifecycle & Scope Errors
# ============================================================================


class UserTokenExpiredError(LarkCLIError):
    """The user access token expired and could not be refreshed."""

    kind = ErrorKind.TOKEN_EXPIRED


class ScopeError(LarkCLIError):
    """Base error for scope registry and policy failures."""

    kind = ErrorKind.SCOPE


class UnknownServiceError(ScopeError):
    """A service name is not present in the registry."""


class ScopeInsufficientError(ScopeError):
    """The active account lacks scopes required by a command."""

    def __init__(
        self, message: str, *, missing_scopes: list[str] | None = None
    ) -> None:
        super().__init__(message)
        self.missing_scopes = missing_scopes or []

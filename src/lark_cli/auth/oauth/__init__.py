"""User OAuth: authorize URL, local callback listener and token endpoint."""

from .client import OAuthConfig, UserOAuthClient
from .flow import LoginOptions, LoginResult, UserOAuthFlow, new_oauth_state
from .models import OAuthTokenResponse


__all__ = [
    "LoginOptions",
    "LoginResult",
    "OAuthConfig",
    "OAuthTokenResponse",
    "UserOAuthClient",
    "UserOAuthFlow",
    "new_oauth_state",
]

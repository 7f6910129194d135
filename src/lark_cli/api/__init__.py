"""Access-token selection for OpenAPI calls."""

from .runner import (
    TenantTokenProvider,
    resolve_access_token,
    resolve_token_type,
    run_with_token,
)


__all__ = [
    "TenantTokenProvider",
    "resolve_access_token",
    "resolve_token_type",
    "run_with_token",
]

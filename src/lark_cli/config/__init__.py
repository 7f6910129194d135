"""Configuration loading, persistence and credential bucket identity."""

from .buckets import (
    DEFAULT_BASE_URL,
    LARK_BASE_URL,
    PLATFORM_BASE_URLS,
    normalize_base_url,
    token_bucket_id,
    user_account_bucket_key,
)
from .discovery import config_path_for_profile, resolve_config_path
from .settings import (
    Config,
    EnvironmentSettings,
    UserAccount,
    UserRefreshTokenPayload,
    get_environment,
    load_config,
    save_config,
)


__all__ = [
    "Config",
    "DEFAULT_BASE_URL",
    "EnvironmentSettings",
    "LARK_BASE_URL",
    "PLATFORM_BASE_URLS",
    "UserAccount",
    "UserRefreshTokenPayload",
    "config_path_for_profile",
    "get_environment",
    "load_config",
    "normalize_base_url",
    "resolve_config_path",
    "save_config",
    "token_bucket_id",
    "user_account_bucket_key",
]

"""Persisted CLI configuration and environment settings."""

import os
from pathlib import Path
from typing import Any

import orjson
import structlog
from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    PrivateAttr,
    ValidationError,
    field_validator,
)
from pydantic_settings import BaseSettings, SettingsConfigDict

from lark_cli.config.buckets import DEFAULT_BASE_URL
from lark_cli.exceptions import ConfigError


__all__ = [
    "Config",
    "EnvironmentSettings",
    "UserAccount",
    "UserRefreshTokenPayload",
    "get_environment",
    "load_config",
    "save_config",
]

logger = structlog.get_logger(__name__)

DEFAULT_USER_ACCOUNT = "default"
TOKEN_TYPES = ("tenant", "user")
KEYRING_BACKENDS = ("file", "keychain")


class EnvironmentSettings(BaseSettings):
    """Environment variables recognised by the CLI.

    Values here only fill gaps: anything set in the config file or on the
    command line takes precedence.
    """

    model_config = SettingsConfigDict(
        env_prefix="LARK_",
        case_sensitive=False,
        extra="ignore",
    )

    app_id: str = Field(default="", description="Fallback app id")
    app_secret: str = Field(default="", description="Fallback app secret")
    keyring_backend: str = Field(default="", description="Fallback keyring backend")
    account: str = Field(default="", description="Current user account override")
    profile: str = Field(default="", description="Config profile to use")
    user_access_token: str = Field(
        default="", description="Ad-hoc user access token for a single invocation"
    )


def get_environment() -> EnvironmentSettings:
    """Read the environment afresh."""
    return EnvironmentSettings()


def normalize_keyring_backend(value: str) -> str:
    """Map "" and "auto" to "file" and lowercase known backends.

    Unknown values are kept as-is so the token store can reject them.
    """
    value = value.strip()
    lowered = value.lower()
    if lowered in ("", "auto"):
        return "file"
    if lowered in KEYRING_BACKENDS:
        return lowered
    return value


class UserRefreshTokenPayload(BaseModel):
    """Metadata recorded when a refresh token is issued or rotated."""

    refresh_token: str = Field(
        default="", description="Refresh token copy (file backend only)"
    )
    services: list[str] = Field(
        default_factory=list, description="Services consented at grant time"
    )
    scopes: str = Field(default="", description="Scope string granted with the token")
    created_at: int = Field(
        default=0, description="Epoch seconds the refresh token was issued"
    )


class UserAccount(BaseModel):
    """Per-account user OAuth state as stored in the config file."""

    model_config = ConfigDict(extra="allow")

    user_access_token: str = ""
    user_access_token_scope: str = ""
    refresh_token: str = ""
    user_access_token_expires_at: int = 0
    user_scopes: list[str] = Field(default_factory=list)
    user_refresh_token_payload: UserRefreshTokenPayload | None = None

    def refresh_token_value(self) -> str:
        """Refresh token from the account, falling back to the payload copy."""
        if self.refresh_token:
            return self.refresh_token
        if self.user_refresh_token_payload is not None:
            return self.user_refresh_token_payload.refresh_token
        return ""


class Config(BaseModel):
    """Top-level CLI configuration document."""

    model_config = ConfigDict(extra="allow")

    app_id: str = ""
    app_secret: str = ""
    base_url: str = DEFAULT_BASE_URL
    default_token_type: str = "tenant"
    default_user_account: str = DEFAULT_USER_ACCOUNT
    keyring_backend: str = "file"
    user_scopes: list[str] = Field(default_factory=list)
    tenant_access_token: str = ""
    tenant_access_token_expires_at: int = 0
    user_accounts: dict[str, UserAccount] = Field(default_factory=dict)
    user_account_buckets: dict[str, str] = Field(default_factory=dict)

    # Values filled from the environment; never written back to disk.
    _env_overlay: dict[str, str] = PrivateAttr(default_factory=dict)

    @field_validator("base_url", mode="before")
    @classmethod
    def default_base_url(cls, v: Any) -> Any:
        if v is None or (isinstance(v, str) and not v.strip()):
            return DEFAULT_BASE_URL
        return v

    @field_validator("default_user_account", mode="before")
    @classmethod
    def normalize_default_account(cls, v: Any) -> Any:
        if v is None:
            return DEFAULT_USER_ACCOUNT
        return str(v).strip() or DEFAULT_USER_ACCOUNT

    @field_validator("default_token_type", mode="before")
    @classmethod
    def normalize_token_type(cls, v: Any) -> str:
        value = str(v or "").strip().lower()
        return value if value in TOKEN_TYPES else "tenant"

    @field_validator("keyring_backend", mode="before")
    @classmethod
    def validate_keyring_backend(cls, v: Any) -> str:
        return normalize_keyring_backend(str(v or ""))

    def apply_environment(self, env: EnvironmentSettings) -> None:
        """Fill empty credentials and backend selection from the environment."""
        if not self.app_id and env.app_id:
            self.app_id = env.app_id
            self._env_overlay["app_id"] = env.app_id
        if not self.app_secret and env.app_secret:
            self.app_secret = env.app_secret
            self._env_overlay["app_secret"] = env.app_secret
        if "keyring_backend" not in self.model_fields_set and env.keyring_backend:
            self.keyring_backend = normalize_keyring_backend(env.keyring_backend)
            self._env_overlay["keyring_backend"] = self.keyring_backend

    def to_document(self) -> dict[str, Any]:
        """Serialize for disk, dropping defaults and environment-only values."""
        data = self.model_dump(mode="json", exclude_defaults=True)
        for field_name, env_value in self._env_overlay.items():
            if data.get(field_name) == env_value:
                data.pop(field_name, None)
        return data


def load_config(path: Path, env: EnvironmentSettings | None = None) -> Config:
    """Load the config file, returning defaults when it does not exist.

    Args:
        path: Config file path
        env: Environment settings to overlay; read from the process if omitted

    Returns:
        Loaded configuration

    Raises:
        ConfigError: If the file is unreadable or not a valid config document

    """
    try:
        raw = path.read_bytes()
    except FileNotFoundError:
        config = Config()
        logger.debug("config_not_found", path=str(path))
    except OSError as e:
        raise ConfigError(f"read config {path}: {e}") from e
    else:
        try:
            data = orjson.loads(raw) if raw.strip() else {}
            config = Config.model_validate(data)
        except orjson.JSONDecodeError as e:
            raise ConfigError(f"parse config {path}: {e}") from e
        except ValidationError as e:
            raise ConfigError(f"invalid config {path}: {e}") from e

    config.apply_environment(env if env is not None else get_environment())
    return config


def save_config(path: Path, config: Config) -> None:
    """Atomically write the config file with owner-only permissions.

    Raises:
        ConfigError: If the file cannot be written

    """
    try:
        path.parent.mkdir(mode=0o700, parents=True, exist_ok=True)
        # Write to temp file first, then rename for atomicity
        temp_path = path.with_suffix(path.suffix + ".tmp")
        fd = os.open(temp_path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, "wb") as f:
            f.write(orjson.dumps(config.to_document(), option=orjson.OPT_INDENT_2))
        temp_path.replace(path)
    except OSError as e:
        raise ConfigError(f"write config {path}: {e}") from e

    logger.debug("config_saved", path=str(path), accounts=len(config.user_accounts))

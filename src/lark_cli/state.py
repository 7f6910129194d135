"""Per-invocation application context threaded through every operation."""

from dataclasses import dataclass, field
from pathlib import Path

import structlog

from lark_cli.config import (
    PLATFORM_BASE_URLS,
    Config,
    EnvironmentSettings,
    get_environment,
    load_config,
    normalize_base_url,
    resolve_config_path,
    save_config,
)
from lark_cli.exceptions import ConfigError


logger = structlog.get_logger(__name__)


@dataclass
class AppState:
    """Everything a command needs to know about the current invocation.

    The loaded :class:`Config` is owned by this object; components mutate it
    through the account manager and persist it with :meth:`save_config`.
    """

    config_path: Path
    config: Config
    profile: str = ""
    user_account: str = ""
    command: str = ""
    token_type: str = "auto"
    user_access_token: str = ""
    json_output: bool = False
    verbose: bool = False
    env: EnvironmentSettings = field(default_factory=get_environment)
    persisted_base_url: str | None = None

    @classmethod
    def load(
        cls,
        *,
        config_path: str | Path | None = None,
        profile: str | None = None,
        base_url: str | None = None,
        platform: str | None = None,
        env: EnvironmentSettings | None = None,
        **options: object,
    ) -> "AppState":
        """Resolve the config file, load it and apply invocation overrides.

        Args:
            config_path: Explicit config file path
            profile: Profile name; falls back to ``LARK_PROFILE``
            base_url: One-off API base URL override
            platform: ``feishu`` or ``lark``; sets the base URL when given
            env: Environment settings, read from the process if omitted
            **options: Remaining dataclass fields (account, command, ...)

        Returns:
            Ready-to-use application state

        """
        env = env if env is not None else get_environment()
        profile = (profile or env.profile or "").strip()
        path = resolve_config_path(config_path, profile)
        config = load_config(path, env)

        state = cls(
            config_path=path,
            config=config,
            profile=profile,
            env=env,
            **options,  # type: ignore[arg-type]
        )
        if platform:
            platform_url = PLATFORM_BASE_URLS.get(platform.strip().lower())
            if platform_url is None:
                raise ConfigError(f'invalid platform "{platform}" (use feishu or lark)')
            state.override_base_url(platform_url)
        if base_url:
            state.override_base_url(base_url)
        return state

    def override_base_url(self, base_url: str) -> None:
        """Use a different API base URL for this invocation only."""
        if self.persisted_base_url is None:
            self.persisted_base_url = self.config.base_url
        self.config.base_url = normalize_base_url(base_url)

    @property
    def base_url(self) -> str:
        return normalize_base_url(self.config.base_url)

    @property
    def keyring_backend(self) -> str:
        return self.config.keyring_backend

    def override_user_token(self) -> str:
        """Ad-hoc user access token from ``--user-access-token`` or the env."""
        return (self.user_access_token or self.env.user_access_token).strip()

    def save_config(self) -> None:
        """Persist the configuration, dropping invocation-only overrides."""
        config = self.config
        if self.persisted_base_url is not None:
            config = config.model_copy(update={"base_url": self.persisted_base_url})
        save_config(self.config_path, config)

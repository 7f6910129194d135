"""Tests for config loading, saving and invocation overrides."""

from collections.abc import Callable
from pathlib import Path

import orjson
import pytest

from lark_cli.config import (
    Config,
    EnvironmentSettings,
    config_path_for_profile,
    load_config,
    save_config,
)
from lark_cli.exceptions import ConfigError
from lark_cli.state import AppState


class TestLoadConfig:
    """Tests for reading the config file."""

    def test_missing_file_gives_defaults(self, config_path: Path) -> None:
        config = load_config(config_path, EnvironmentSettings())

        assert config.base_url == "https://open.feishu.cn"
        assert config.default_user_account == "default"
        assert config.keyring_backend == "file"

    def test_invalid_json(self, config_path: Path) -> None:
        config_path.parent.mkdir(parents=True)
        config_path.write_text("{not json")

        with pytest.raises(ConfigError, match="parse config"):
            load_config(config_path, EnvironmentSettings())

    def test_unknown_fields_preserved(self, config_path: Path) -> None:
        config_path.parent.mkdir(parents=True)
        config_path.write_text('{"app_id": "cli_a", "custom_field": 7}')

        config = load_config(config_path, EnvironmentSettings())
        save_config(config_path, config)

        assert orjson.loads(config_path.read_bytes())["custom_field"] == 7

    def test_keys_owned_by_other_commands_round_trip(self, config_path: Path) -> None:
        assert "default_mailbox_id" not in Config.model_fields
        config_path.parent.mkdir(parents=True)
        config_path.write_text('{"app_id": "cli_a", "default_mailbox_id": "mbx_1"}')

        save_config(config_path, load_config(config_path, EnvironmentSettings()))

        assert orjson.loads(config_path.read_bytes())["default_mailbox_id"] == "mbx_1"

    @pytest.mark.parametrize(
        ("raw", "expected"),
        [("", "file"), ("AUTO", "file"), ("Keychain", "keychain")],
    )
    def test_keyring_backend_normalized(self, raw: str, expected: str) -> None:
        assert Config(keyring_backend=raw).keyring_backend == expected


class TestEnvironmentOverlay:
    """Tests for environment values filling config gaps."""

    def test_env_fills_but_is_not_persisted(
        self, make_state: Callable[..., AppState]
    ) -> None:
        state = make_state(
            Config(),
            env=EnvironmentSettings(app_id="env_app", app_secret="env_secret"),
        )
        assert state.config.app_id == "env_app"
        assert state.config.app_secret == "env_secret"

        state.save_config()

        document = orjson.loads(state.config_path.read_bytes())
        assert "app_id" not in document
        assert "app_secret" not in document

    def test_file_values_win(
        self, make_state: Callable[..., AppState], app_config: Config
    ) -> None:
        state = make_state(app_config, env=EnvironmentSettings(app_id="env_app"))

        assert state.config.app_id == "cli_test_app"

    def test_env_keyring_backend_when_unset_in_file(
        self, make_state: Callable[..., AppState]
    ) -> None:
        state = make_state(Config(), env=EnvironmentSettings(keyring_backend="keychain"))

        assert state.keyring_backend == "keychain"

    def test_read_from_process_environment(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("LARK_APP_ID", "cli_from_env")
        monkeypatch.setenv("LARK_ACCOUNT", "work")

        env = EnvironmentSettings()

        assert env.app_id == "cli_from_env"
        assert env.account == "work"


class TestSaveConfig:
    """Tests for writing the config file."""

    def test_owner_only_permissions(self, config_path: Path) -> None:
        save_config(config_path, Config(app_id="cli_a"))

        assert config_path.stat().st_mode & 0o777 == 0o600
        assert not config_path.with_suffix(".json.tmp").exists()


class TestInvocationOverrides:
    """Tests for per-invocation base URL and profile handling."""

    def test_platform_sets_base_url(
        self, make_state: Callable[..., AppState], app_config: Config
    ) -> None:
        state = make_state(app_config, platform="lark")

        assert state.base_url == "https://open.larksuite.com"

    def test_invalid_platform(
        self, make_state: Callable[..., AppState], app_config: Config
    ) -> None:
        with pytest.raises(ConfigError, match='invalid platform "teams"'):
            make_state(app_config, platform="teams")

    def test_base_url_override_not_persisted(
        self, make_state: Callable[..., AppState], app_config: Config
    ) -> None:
        state = make_state(app_config, base_url="https://example.test/open-apis/")
        assert state.base_url == "https://example.test"

        state.save_config()

        document = orjson.loads(state.config_path.read_bytes())
        assert document.get("base_url", "https://open.feishu.cn") == "https://open.feishu.cn"

    def test_profile_path(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(
            "lark_cli.config.discovery.get_lark_config_dir", lambda: tmp_path
        )

        assert config_path_for_profile("") == tmp_path / "config.json"
        assert config_path_for_profile("work") == (
            tmp_path / "profiles" / "work" / "config.json"
        )

    def test_profile_name_cannot_escape(self) -> None:
        with pytest.raises(ConfigError, match="invalid profile name"):
            config_path_for_profile("../evil")

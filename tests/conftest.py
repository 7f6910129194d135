"""Shared fixtures for the Lark CLI test suite."""

import os
from collections.abc import Callable, Iterator
from pathlib import Path
from typing import Any

import keyring
import keyring.errors
import pytest
from keyring.backend import KeyringBackend

from lark_cli.config import Config, EnvironmentSettings, save_config
from lark_cli.state import AppState


TEST_APP_ID = "cli_test_app"
TEST_APP_SECRET = "test-app-secret"
TEST_BASE_URL = "https://open.feishu.cn"


class MemoryKeyring(KeyringBackend):
    """In-process keyring backend holding passwords in a dict."""

    priority = 1  # type: ignore[assignment]

    def __init__(self) -> None:
        super().__init__()
        self.passwords: dict[tuple[str, str], str] = {}

    def get_password(self, service: str, username: str) -> str | None:
        return self.passwords.get((service, username))

    def set_password(self, service: str, username: str, password: str) -> None:
        self.passwords[(service, username)] = password

    def delete_password(self, service: str, username: str) -> None:
        try:
            del self.passwords[(service, username)]
        except KeyError:
            raise keyring.errors.PasswordDeleteError("password not found") from None


@pytest.fixture(autouse=True)
def clean_lark_env(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep LARK_* variables from the developer's shell out of tests."""
    for name in list(os.environ):
        if name.upper().startswith("LARK_"):
            monkeypatch.delenv(name, raising=False)


@pytest.fixture
def memory_keyring() -> Iterator[MemoryKeyring]:
    """Install an in-memory keyring for the duration of a test."""
    previous = keyring.get_keyring()
    backend = MemoryKeyring()
    keyring.set_keyring(backend)
    yield backend
    keyring.set_keyring(previous)


@pytest.fixture
def config_path(tmp_path: Path) -> Path:
    return tmp_path / "lark" / "config.json"


@pytest.fixture
def make_state(config_path: Path) -> Callable[..., AppState]:
    """Factory writing an optional config to disk and loading state from it."""

    def factory(config: Config | None = None, **options: Any) -> AppState:
        if config is not None:
            save_config(config_path, config)
        options.setdefault("env", EnvironmentSettings())
        return AppState.load(config_path=config_path, **options)

    return factory


@pytest.fixture
def app_config() -> Config:
    return Config(app_id=TEST_APP_ID, app_secret=TEST_APP_SECRET, base_url=TEST_BASE_URL)


@pytest.fixture
def state(make_state: Callable[..., AppState], app_config: Config) -> AppState:
    return make_state(app_config)

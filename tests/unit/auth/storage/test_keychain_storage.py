"""Tests for token storage in the system keyring."""

from collections.abc import Callable
from typing import Any

import keyring
import pytest
from keyring.backends import fail

from lark_cli.auth.models import UserToken
from lark_cli.auth.storage import (
    KEYRING_SERVICE_NAME,
    FileTokenStorage,
    KeyringTokenStorage,
    get_token_storage,
)
from lark_cli.config import (
    Config,
    UserAccount,
    UserRefreshTokenPayload,
    load_config,
)
from lark_cli.exceptions import (
    CredentialsInvalidError,
    KeychainUnsupportedError,
    UnsupportedBackendError,
)
from lark_cli.state import AppState


@pytest.fixture
def keychain_config(app_config: Config) -> Config:
    return app_config.model_copy(update={"keyring_backend": "keychain"})


@pytest.fixture
def keychain_state(
    make_state: Callable[..., AppState],
    keychain_config: Config,
    memory_keyring: Any,
) -> AppState:
    return make_state(keychain_config)


class TestBackendSelection:
    """Tests for choosing the storage backend."""

    def test_keychain_selected(self, keychain_state: AppState) -> None:
        storage = get_token_storage(keychain_state)

        assert isinstance(storage, KeyringTokenStorage)
        assert storage.get_location() == "keyring service 'lark-cli'"

    def test_unknown_backend_rejected(
        self, make_state: Callable[..., AppState], app_config: Config
    ) -> None:
        state = make_state(app_config.model_copy(update={"keyring_backend": "vault"}))

        with pytest.raises(
            UnsupportedBackendError, match='unsupported keyring backend "vault"'
        ):
            get_token_storage(state)


class TestKeyringTokenStorage:
    """Tests for the keychain backend."""

    def test_save_keeps_secrets_out_of_config(
        self, keychain_state: AppState, memory_keyring: Any
    ) -> None:
        keychain_state.config.user_accounts["default"] = UserAccount(
            user_refresh_token_payload=UserRefreshTokenPayload(refresh_token="old-rt")
        )
        storage = KeyringTokenStorage(keychain_state)
        token = UserToken(
            access_token="u-at", refresh_token="u-rt", expires_at=42, scope="offline_access"
        )

        storage.save("default", token)
        keychain_state.save_config()

        stored = memory_keyring.passwords[(KEYRING_SERVICE_NAME, storage.username("default"))]
        assert UserToken.model_validate_json(stored) == token
        record = load_config(keychain_state.config_path).user_accounts["default"]
        assert record.user_access_token == ""
        assert record.refresh_token == ""
        assert record.user_access_token_expires_at == 42
        assert record.user_refresh_token_payload is not None
        assert record.user_refresh_token_payload.refresh_token == ""
        assert storage.load("default") == token

    def test_username_depends_on_app_and_base_url(self, keychain_state: AppState) -> None:
        storage = KeyringTokenStorage(keychain_state)
        before = storage.username("default")

        keychain_state.config.app_id = "cli_other_app"
        assert storage.username("default") != before

        keychain_state.config.app_id = "cli_test_app"
        keychain_state.config.base_url = "https://open.larksuite.com"
        assert storage.username("default") != before

    def test_migrates_tokens_from_config_file(
        self,
        make_state: Callable[..., AppState],
        keychain_config: Config,
        memory_keyring: Any,
    ) -> None:
        keychain_config.user_accounts["default"] = UserAccount(
            user_access_token="file-at",
            user_access_token_expires_at=99,
            user_access_token_scope="offline_access wiki:wiki",
            user_refresh_token_payload=UserRefreshTokenPayload(refresh_token="file-rt"),
        )
        state = make_state(keychain_config)
        storage = KeyringTokenStorage(state)

        token = storage.load("default")

        assert token == UserToken(
            access_token="file-at",
            refresh_token="file-rt",
            expires_at=99,
            scope="offline_access wiki:wiki",
        )
        assert (KEYRING_SERVICE_NAME, storage.username("default")) in memory_keyring.passwords
        record = load_config(state.config_path).user_accounts["default"]
        assert record.user_access_token == ""
        assert record.refresh_token_value() == ""
        assert record.user_access_token_expires_at == 99

    def test_file_migration_happens_once(
        self,
        make_state: Callable[..., AppState],
        keychain_config: Config,
        memory_keyring: Any,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        keychain_config.user_accounts["default"] = UserAccount(
            user_access_token="file-at",
            refresh_token="file-rt",
            user_access_token_expires_at=99,
        )
        state = make_state(keychain_config)
        storage = KeyringTokenStorage(state)
        migrated = storage.load("default")
        assert migrated is not None

        state.config.user_accounts["default"].user_access_token = "stale-at"
        state.config.user_accounts["default"].refresh_token = "stale-rt"

        def fail_file_load(self: FileTokenStorage, account: str) -> UserToken | None:
            raise AssertionError("file store read after migration")

        monkeypatch.setattr(FileTokenStorage, "load", fail_file_load)

        assert storage.load("default") == migrated
        assert migrated.access_token == "file-at"
        assert list(memory_keyring.passwords) == [
            (KEYRING_SERVICE_NAME, storage.username("default"))
        ]

    def test_file_record_without_secrets_not_migrated(
        self,
        make_state: Callable[..., AppState],
        keychain_config: Config,
        memory_keyring: Any,
    ) -> None:
        keychain_config.user_accounts["default"] = UserAccount(
            user_access_token_expires_at=99
        )
        state = make_state(keychain_config)

        assert KeyringTokenStorage(state).load("default") is None
        assert memory_keyring.passwords == {}

    def test_migrates_legacy_key(
        self, keychain_state: AppState, memory_keyring: Any
    ) -> None:
        storage = KeyringTokenStorage(keychain_state)
        token = UserToken(access_token="legacy-at", refresh_token="legacy-rt")
        legacy = (KEYRING_SERVICE_NAME, storage.legacy_username("default"))
        memory_keyring.passwords[legacy] = token.model_dump_json()

        assert storage.load("default") == token
        assert legacy not in memory_keyring.passwords
        assert (KEYRING_SERVICE_NAME, storage.username("default")) in memory_keyring.passwords

    def test_clear_removes_both_keys(
        self, keychain_state: AppState, memory_keyring: Any
    ) -> None:
        storage = KeyringTokenStorage(keychain_state)
        token = UserToken(access_token="at", refresh_token="rt")
        storage.save("default", token)
        memory_keyring.passwords[
            (KEYRING_SERVICE_NAME, storage.legacy_username("default"))
        ] = token.model_dump_json()

        storage.clear("default")
        storage.clear("default")

        assert memory_keyring.passwords == {}
        assert storage.load("default") is None

    def test_invalid_entry(
        self, keychain_state: AppState, memory_keyring: Any
    ) -> None:
        storage = KeyringTokenStorage(keychain_state)
        memory_keyring.passwords[(KEYRING_SERVICE_NAME, storage.username("default"))] = (
            "not json"
        )

        with pytest.raises(CredentialsInvalidError, match="invalid keyring token data"):
            storage.load("default")

    def test_no_keyring_available(self, keychain_state: AppState) -> None:
        previous = keyring.get_keyring()
        keyring.set_keyring(fail.Keyring())
        try:
            with pytest.raises(KeychainUnsupportedError, match="use keyring_backend=file"):
                KeyringTokenStorage(keychain_state).load("default")
        finally:
            keyring.set_keyring(previous)

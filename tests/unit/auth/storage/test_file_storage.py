"""Tests for token storage in the config file."""

from lark_cli.auth.models import UserToken
from lark_cli.auth.storage import FileTokenStorage, KeyringBackend, get_token_storage
from lark_cli.config import UserAccount, load_config
from lark_cli.state import AppState


class TestFileTokenStorage:
    """Tests for the file backend."""

    def test_selected_by_default(self, state: AppState) -> None:
        storage = get_token_storage(state)

        assert isinstance(storage, FileTokenStorage)
        assert storage.backend is KeyringBackend.FILE
        assert storage.get_location() == str(state.config_path)

    def test_load_missing_account(self, state: AppState) -> None:
        assert FileTokenStorage(state).load("default") is None

    def test_load_account_without_tokens(self, state: AppState) -> None:
        state.config.user_accounts["default"] = UserAccount(user_scopes=["wiki:wiki"])

        assert FileTokenStorage(state).load("default") is None

    def test_save_writes_account_fields(self, state: AppState) -> None:
        storage = FileTokenStorage(state)

        storage.save(
            "default",
            UserToken(
                access_token="u-at",
                refresh_token="u-rt",
                expires_at=1_700_000_000,
                scope="offline_access wiki:wiki",
            ),
        )
        state.save_config()

        record = load_config(state.config_path).user_accounts["default"]
        assert record.user_access_token == "u-at"
        assert record.refresh_token == "u-rt"
        assert record.user_access_token_expires_at == 1_700_000_000
        assert record.user_access_token_scope == "offline_access wiki:wiki"
        assert storage.load("default") == UserToken(
            access_token="u-at",
            refresh_token="u-rt",
            expires_at=1_700_000_000,
            scope="offline_access wiki:wiki",
        )

    def test_save_without_scope_keeps_recorded_scope(self, state: AppState) -> None:
        state.config.user_accounts["default"] = UserAccount(
            user_access_token_scope="offline_access wiki:wiki"
        )

        FileTokenStorage(state).save("default", UserToken(access_token="u-at"))

        record = state.config.user_accounts["default"]
        assert record.user_access_token_scope == "offline_access wiki:wiki"

    def test_clear_keeps_account(self, state: AppState) -> None:
        storage = FileTokenStorage(state)
        storage.save("work", UserToken(access_token="u-at", refresh_token="u-rt"))

        storage.clear("work")

        assert storage.load("work") is None
        assert "work" in state.config.user_accounts

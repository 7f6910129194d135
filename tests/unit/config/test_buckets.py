"""Tests for base URL normalization and credential bucket identifiers."""

import pytest

from lark_cli.config import normalize_base_url, token_bucket_id, user_account_bucket_key
from lark_cli.config.buckets import legacy_bucket_id


class TestNormalizeBaseURL:
    """Tests for base URL normalization."""

    @pytest.mark.parametrize(
        "raw",
        [
            "https://open.feishu.cn",
            " https://open.feishu.cn/ ",
            "https://open.feishu.cn/open-apis",
            "https://open.feishu.cn/open-apis/",
        ],
    )
    def test_equivalent_forms(self, raw: str) -> None:
        assert normalize_base_url(raw) == "https://open.feishu.cn"


class TestTokenBucketID:
    """Tests for secret-store bucket isolation."""

    def test_stable(self) -> None:
        first = token_bucket_id("/cfg.json", "https://open.feishu.cn", "cli_a")
        second = token_bucket_id("/cfg.json", "HTTPS://open.feishu.cn/open-apis/", " cli_a ")

        assert first == second
        assert len(first) == 64

    @pytest.mark.parametrize(
        ("config_path", "base_url", "app_id"),
        [
            ("/other.json", "https://open.feishu.cn", "cli_a"),
            ("/cfg.json", "https://open.larksuite.com", "cli_a"),
            ("/cfg.json", "https://open.feishu.cn", "cli_b"),
        ],
    )
    def test_any_component_changes_bucket(
        self, config_path: str, base_url: str, app_id: str
    ) -> None:
        base = token_bucket_id("/cfg.json", "https://open.feishu.cn", "cli_a")

        assert token_bucket_id(config_path, base_url, app_id) != base

    def test_legacy_bucket_differs(self) -> None:
        assert legacy_bucket_id("/cfg.json") != token_bucket_id(
            "/cfg.json", "https://open.feishu.cn", "cli_a"
        )


class TestUserAccountBucketKey:
    """Tests for the login account mapping key."""

    def test_format(self) -> None:
        key = user_account_bucket_key(" cli_a ", "https://Open.Feishu.cn/", "")

        assert key == "cli_a|https://open.feishu.cn|default"

    def test_profile_included(self) -> None:
        key = user_account_bucket_key("cli_a", "https://open.feishu.cn", "work")

        assert key.endswith("|work")

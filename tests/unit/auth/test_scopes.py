"""Tests for scope parsing and canonicalization."""

import pytest

from lark_cli.auth.scopes import (
    OFFLINE_ACCESS_SCOPE,
    canonical_scope_string,
    canonicalize_scopes,
    missing_scopes,
    parse_scope_list,
    parse_services_list,
    requested_scopes,
    select_preferred_scopes,
)


class TestParseScopeList:
    """Tests for splitting scope strings."""

    def test_splits_on_all_separators(self) -> None:
        raw = "drive:drive, docx:document:readonly\tsheets:spreadsheet:read\nwiki:wiki"

        assert parse_scope_list(raw) == [
            "drive:drive",
            "docx:document:readonly",
            "sheets:spreadsheet:read",
            "wiki:wiki",
        ]

    def test_preserves_case_and_removes_duplicates(self) -> None:
        assert parse_scope_list("Drive:Drive drive:drive Drive:Drive") == [
            "Drive:Drive",
            "drive:drive",
        ]

    def test_blank_input_yields_empty_list(self) -> None:
        assert parse_scope_list("  ,\t\n ") == []


class TestCanonicalizeScopes:
    """Tests for the canonical scope set."""

    def test_sentinel_first_and_rest_sorted(self) -> None:
        result = canonicalize_scopes(["wiki:wiki", "offline_access", "drive:drive"])

        assert result == [OFFLINE_ACCESS_SCOPE, "drive:drive", "wiki:wiki"]

    def test_sentinel_added_when_missing(self) -> None:
        assert canonicalize_scopes(["drive:drive"]) == [OFFLINE_ACCESS_SCOPE, "drive:drive"]

    def test_sentinel_present_exactly_once(self) -> None:
        result = canonicalize_scopes(["offline_access", "offline_access", "a:b"])

        assert result.count(OFFLINE_ACCESS_SCOPE) == 1

    @pytest.mark.parametrize(
        "scopes",
        [
            [],
            ["offline_access"],
            ["z:z", "a:a", "offline_access", "a:a"],
            [" drive:drive ", "", "docx:document:readonly"],
        ],
    )
    def test_idempotent(self, scopes: list[str]) -> None:
        once = canonicalize_scopes(scopes)

        assert canonicalize_scopes(once) == once

    def test_canonical_scope_string(self) -> None:
        assert canonical_scope_string("wiki:wiki drive:drive") == (
            "offline_access drive:drive wiki:wiki"
        )
        assert canonical_scope_string("   ") == ""


class TestMissingScopes:
    """Tests for comparing required scopes against a granted scope string."""

    def test_full_scope_satisfies_readonly(self) -> None:
        assert missing_scopes(["drive:drive:readonly"], "offline_access drive:drive") == []

    def test_readonly_does_not_satisfy_full(self) -> None:
        assert missing_scopes(["drive:drive"], "offline_access drive:drive:readonly") == [
            "drive:drive"
        ]

    def test_reports_only_missing_in_input_order(self) -> None:
        result = missing_scopes(
            ["offline_access", "wiki:wiki", "mail:readonly", "docx:document:readonly"],
            "offline_access docx:document:readonly",
        )

        assert result == ["wiki:wiki", "mail:readonly"]


class TestRequestedScopes:
    """Tests for incremental scope requests."""

    def test_incremental_requests_only_new_scopes(self) -> None:
        result = requested_scopes(
            ["offline_access", "drive:drive", "wiki:wiki"],
            "offline_access drive:drive",
            incremental=True,
        )

        assert result == ["offline_access", "wiki:wiki"]

    def test_non_incremental_requests_everything(self) -> None:
        result = requested_scopes(
            ["wiki:wiki", "drive:drive"], "offline_access drive:drive", incremental=False
        )

        assert result == ["offline_access", "drive:drive", "wiki:wiki"]

    def test_incremental_without_previous_grant(self) -> None:
        assert requested_scopes(["drive:drive"], "", incremental=True) == [
            "offline_access",
            "drive:drive",
        ]


class TestSelectPreferredScopes:
    """Tests for preferring read-only variants."""

    def test_drops_full_when_readonly_listed(self) -> None:
        result = select_preferred_scopes(["drive:drive", "drive:drive:readonly"])

        assert result == ["drive:drive:readonly"]

    def test_keeps_full_when_explicitly_required(self) -> None:
        result = select_preferred_scopes(
            ["drive:drive", "drive:drive:readonly"], required_full=["drive:drive"]
        )

        assert result == ["drive:drive", "drive:drive:readonly"]


def test_parse_services_list_flattens_and_lowercases() -> None:
    assert parse_services_list(["Drive,docx", " sheets ", "drive"]) == [
        "drive",
        "docx",
        "sheets",
    ]

"""
Tests for GitHub utilities module.
"""

from __future__ import annotations

from unittest.mock import Mock, patch

import pytest

from gei_migration_helper import github_utils as ghu
from gei_migration_helper.models import DISABLED, ENABLED
from gei_migration_helper.utils import InvalidPassPathError


@pytest.mark.unit
class TestGetToken:
    """Test token resolution order."""

    def test_explicit_pass_path_wins(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("GH_SOURCE_PAT", "from-env")
        with patch("gei_migration_helper.github_utils.utils.get_pass_value", return_value="from-pass") as mock_pass:
            assert ghu.get_token("source", "custom/path") == "from-pass"
            mock_pass.assert_called_once_with("custom/path")

    @pytest.mark.parametrize(("side", "env_var"), [("source", "GH_SOURCE_PAT"), ("target", "GH_PAT")])
    def test_environment_variable(self, monkeypatch: pytest.MonkeyPatch, side: ghu.Side, env_var: str) -> None:
        monkeypatch.setenv(env_var, "from-env")
        with patch("gei_migration_helper.github_utils.utils.get_pass_value") as mock_pass:
            assert ghu.get_token(side) == "from-env"
            mock_pass.assert_not_called()

    def test_default_pass_path(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("GH_PAT", raising=False)
        with patch("gei_migration_helper.github_utils.utils.get_pass_value", return_value="from-default") as mock_pass:
            assert ghu.get_token("target") == "from-default"
            mock_pass.assert_called_once_with("github/migration/target_token")

    def test_no_token_anywhere(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("GH_SOURCE_PAT", raising=False)
        with (
            patch(
                "gei_migration_helper.github_utils.utils.get_pass_value",
                side_effect=InvalidPassPathError("not found"),
            ),
            pytest.raises(ValueError, match="Set GH_SOURCE_PAT"),
        ):
            ghu.get_token("source")


@pytest.mark.unit
class TestGraphqlUrl:
    @pytest.mark.parametrize(
        ("base_url", "expected"),
        [
            ("https://api.github.com", "https://api.github.com/graphql"),
            ("https://api.github.com/", "https://api.github.com/graphql"),
            ("https://ghe.example.com/api/v3", "https://ghe.example.com/api/graphql"),
            ("https://ghe.example.com/api/v3/", "https://ghe.example.com/api/graphql"),
        ],
    )
    def test_graphql_url(self, base_url: str, expected: str) -> None:
        assert ghu.graphql_url(base_url) == expected


@pytest.mark.unit
class TestGetClient:
    def test_uses_token_auth_and_base_url(self) -> None:
        with patch("gei_migration_helper.github_utils.Github") as mock_github:
            client = ghu.get_client("tok", "https://ghe.example.com/api/v3")

        assert client is mock_github.return_value
        _, kwargs = mock_github.call_args
        assert kwargs["base_url"] == "https://ghe.example.com/api/v3"
        assert kwargs["auth"].token == "tok"


@pytest.mark.unit
class TestToRepository:
    def _repo(self, raw: dict) -> Mock:
        repo = Mock()
        repo.name = "R"
        repo.id = 1
        repo.archived = True
        repo.default_branch = None
        repo.raw_data = raw
        return repo

    def test_security_settings_are_tri_state(self) -> None:
        repository = ghu.to_repository(
            self._repo(
                {
                    "visibility": "internal",
                    "security_and_analysis": {
                        "advanced_security": {"status": "enabled"},
                        "secret_scanning_push_protection": {"status": "disabled"},
                    },
                }
            )
        )

        assert repository.archived
        assert repository.visibility == "internal"
        assert repository.default_branch == "main"
        assert repository.security.advanced_security == ENABLED
        assert repository.security.secret_scanning is None
        assert repository.security.secret_scanning_push_protection == DISABLED

    def test_visibility_falls_back_on_private_flag(self) -> None:
        assert ghu.to_repository(self._repo({"private": True})).visibility == "private"
        assert ghu.to_repository(self._repo({"private": False})).visibility == "public"

    def test_missing_security_section(self) -> None:
        repository = ghu.to_repository(self._repo({"visibility": "public", "security_and_analysis": None}))
        assert repository.security.advanced_security is None

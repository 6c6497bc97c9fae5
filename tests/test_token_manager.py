from pathlib import Path
from unittest import mock

import pytest

from pipedeck.auth.device import GitLabDeviceFlow, TokenResponse
from pipedeck.auth.token_manager import TokenManager
from pipedeck.config import Config, load_config
from pipedeck.errors import TokenRefreshError


def _config(refresh_token=None) -> Config:
    config = Config()
    config.gitlab.token = "old"
    config.gitlab.refresh_token = refresh_token
    return config


def test_refresh_gitlab_updates_and_persists(tmp_path: Path) -> None:
    path = tmp_path / "config.toml"
    flow = mock.create_autospec(GitLabDeviceFlow, instance=True)
    flow.refresh_token.return_value = TokenResponse("new", "r2")
    manager = TokenManager(_config("r1"), path, gitlab_flow=flow)

    assert manager.refresh_gitlab() == "new"
    flow.refresh_token.assert_called_once_with("r1")
    saved = load_config(path)
    assert saved.gitlab.token == "new"
    assert saved.gitlab.refresh_token == "r2"


def test_refresh_keeps_old_refresh_token_when_none_returned(tmp_path: Path) -> None:
    flow = mock.create_autospec(GitLabDeviceFlow, instance=True)
    flow.refresh_token.return_value = TokenResponse("new")
    manager = TokenManager(_config("r1"), tmp_path / "config.toml", gitlab_flow=flow)
    manager.refresh_gitlab()
    assert manager.config.gitlab.refresh_token == "r1"


def test_refresh_without_refresh_token_fails(tmp_path: Path) -> None:
    flow = mock.create_autospec(GitLabDeviceFlow, instance=True)
    manager = TokenManager(_config(None), tmp_path / "config.toml", gitlab_flow=flow)
    with pytest.raises(TokenRefreshError):
        manager.refresh_gitlab()
    flow.refresh_token.assert_not_called()


def test_refresh_error_propagates(tmp_path: Path) -> None:
    flow = mock.create_autospec(GitLabDeviceFlow, instance=True)
    flow.refresh_token.side_effect = TokenRefreshError("refreshing GitLab token: 400 Bad Request")
    manager = TokenManager(_config("r1"), tmp_path / "config.toml", gitlab_flow=flow)
    with pytest.raises(TokenRefreshError):
        manager.refresh_gitlab()
    assert manager.config.gitlab.token == "old"


def test_save_failure_after_refresh_is_not_raised(tmp_path: Path) -> None:
    blocker = tmp_path / "file"
    blocker.write_text("x", encoding="utf-8")
    flow = mock.create_autospec(GitLabDeviceFlow, instance=True)
    flow.refresh_token.return_value = TokenResponse("new", "r2")
    manager = TokenManager(_config("r1"), blocker / "config.toml", gitlab_flow=flow)
    assert manager.refresh_gitlab() == "new"
    assert manager.config.gitlab.token == "new"


def test_record_token_per_provider(tmp_path: Path) -> None:
    path = tmp_path / "config.toml"
    manager = TokenManager(Config(), path)
    manager.record_token("github", TokenResponse("gho_1"))
    manager.record_token("gitlab", TokenResponse("gl", "glr"))
    manager.record_token("bitbucket", TokenResponse("ignored"))
    saved = load_config(path)
    assert saved.github.token == "gho_1"
    assert (saved.gitlab.token, saved.gitlab.refresh_token) == ("gl", "glr")

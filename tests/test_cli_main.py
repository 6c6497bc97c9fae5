from pathlib import Path
from unittest import mock

import pytest
from click.testing import CliRunner

from pipedeck import __version__
from pipedeck.auth.device import DeviceCodeResponse, TokenResponse
from pipedeck.cli import main as cli_main
from pipedeck.config import Config, load_config
from pipedeck.domain import Repository
from pipedeck.errors import AuthExpiredError, ConfigError, UnauthorizedError
from pipedeck.logging import EXIT_CONFIG_ERROR, EXIT_RUNTIME_ERROR
from pipedeck.providers.refreshing import RefreshingProvider


def test_version() -> None:
    result = CliRunner().invoke(cli_main.cli, ["--version"])
    assert result.exit_code == 0
    assert __version__ in result.output


def test_invalid_config_exits_with_config_code(tmp_path: Path) -> None:
    path = tmp_path / "config.toml"
    path.write_text("not = [valid", encoding="utf-8")
    result = CliRunner().invoke(cli_main.cli, ["--config", str(path), "--directory", str(tmp_path)])
    assert result.exit_code == EXIT_CONFIG_ERROR
    assert "error loading config" in result.output


def test_missing_repository_exits(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("PIPEDECK_LOG_FILE", str(tmp_path / "log" / "pipedeck.log"))
    result = CliRunner().invoke(
        cli_main.cli, ["--config", str(tmp_path / "none.toml"), "--directory", str(tmp_path)]
    )
    assert result.exit_code == EXIT_RUNTIME_ERROR
    assert "error detecting git remote" in result.output


@pytest.mark.parametrize(
    "remote,configured,expected",
    [
        ("git@gitlab.com:a/b.git", None, True),
        ("git@git.corp.example:a/b.git", "https://git.corp.example", True),
        ("git@git.corp.example:a/b.git", "git.corp.example", True),
        ("git@github.com:a/b.git", "https://git.corp.example", False),
        ("git@github.com:a/b.git", None, False),
    ],
)
def test_is_gitlab_remote(remote, configured, expected) -> None:
    assert cli_main.is_gitlab_remote(remote, configured) is expected


def test_build_session_wraps_github_with_fail_fast(tmp_path: Path) -> None:
    config = Config()
    config.github.token = "ghp"
    config.github.client_id = "gh-app"
    repo = Repository("acme", "api", "git@github.com:acme/api.git")
    provider, authenticator = cli_main.build_session(repo, config, tmp_path / "config.toml")

    assert isinstance(provider, RefreshingProvider)
    assert provider.name == "github"
    assert set(authenticator.flows) == {"github", "gitlab"}
    with mock.patch.object(provider.inner.client, "request", side_effect=UnauthorizedError("401")):
        with pytest.raises(AuthExpiredError):
            provider.list_pipelines(repo)


def test_build_session_gitlab_uses_token_manager(tmp_path: Path) -> None:
    path = tmp_path / "config.toml"
    config = Config()
    config.gitlab.token = "old"
    config.gitlab.refresh_token = "r1"
    config.gitlab.url = "https://git.corp.example"
    repo = Repository("team", "app", "git@git.corp.example:team/app.git")
    provider, authenticator = cli_main.build_session(repo, config, path)
    assert provider.name == "gitlab"
    assert provider.inner.client.base_url == "https://git.corp.example"
    assert "github" not in authenticator.flows

    authenticator.token_refreshed("gitlab", TokenResponse("interactive", "r9"))
    assert provider.inner.client.token == "interactive"
    saved = load_config(path)
    assert (saved.gitlab.token, saved.gitlab.refresh_token) == ("interactive", "r9")


def test_ensure_token_runs_device_login_and_saves(tmp_path: Path, capsys: pytest.CaptureFixture) -> None:
    path = tmp_path / "config.toml"
    config = Config()
    repo = Repository("team", "app", "git@gitlab.com:team/app.git")
    flow = mock.Mock()
    flow.request_code.return_value = DeviceCodeResponse("dev", "CODE-1", "https://gitlab.com/oauth/device", 0, 0)
    flow.poll_token.return_value = TokenResponse("glpat", "r1")

    with mock.patch.object(cli_main, "GitLabDeviceFlow", return_value=flow):
        cli_main.ensure_token(repo, config, path)

    err = capsys.readouterr().err
    assert "Visit:      https://gitlab.com/oauth/device" in err
    assert "Enter code: CODE-1" in err
    flow.poll_token.assert_called_once_with("dev", 0, deadline=None)
    saved = load_config(path)
    assert (saved.gitlab.token, saved.gitlab.refresh_token) == ("glpat", "r1")


def test_ensure_token_github_requires_client_id(tmp_path: Path) -> None:
    repo = Repository("acme", "api", "git@github.com:acme/api.git")
    with pytest.raises(ConfigError):
        cli_main.ensure_token(repo, Config(), tmp_path / "config.toml")


def test_ensure_token_skips_when_token_present(tmp_path: Path) -> None:
    config = Config()
    config.github.token = "ghp"
    repo = Repository("acme", "api", "git@github.com:acme/api.git")
    cli_main.ensure_token(repo, config, tmp_path / "config.toml")
    assert not (tmp_path / "config.toml").exists()

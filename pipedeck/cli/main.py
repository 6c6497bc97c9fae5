"""
pipedeck CLI

Detects the repository in the working directory, authenticates against its CI
provider when no token is configured, and starts the interactive dashboard.
"""

import sys
import time
from pathlib import Path
from typing import Optional
from urllib.parse import urlparse

import click

from pipedeck import __version__
from pipedeck.auth.device import DeviceFlow, GitHubDeviceFlow, GitLabDeviceFlow, TokenResponse
from pipedeck.auth.reauth import ReAuthenticator
from pipedeck.auth.token_manager import TokenManager
from pipedeck.config import Config, default_config_path, load_config, save_config
from pipedeck.domain import Repository
from pipedeck.errors import ConfigError, DeviceFlowError, PipedeckError
from pipedeck.git_remote import detect_repository
from pipedeck.logging import (
    EXIT_CONFIG_ERROR,
    EXIT_DEP_MISSING,
    EXIT_RUNTIME_ERROR,
    get_logger,
    init_cli_logging,
    json_logging_from_env,
    log_extra,
    log_file_from_env,
)
from pipedeck.providers.github import GitHubProvider
from pipedeck.providers.gitlab import GitLabProvider
from pipedeck.providers.refreshing import RefreshingProvider, fail_fast_refresh
from pipedeck.providers.registry import ProviderRegistry

log = get_logger(__name__)

# Public OAuth application id registered for pipedeck on gitlab.com. It has no
# secret; gitlab.client_id in the config file overrides it.
DEFAULT_GITLAB_CLIENT_ID = "9df6c8abe93dc879a79ecf7681909b4a37d5c61064190a795bbf16e1ed8bffa3"


def gitlab_host(url: Optional[str]) -> str:
    """Host fragment of a self-hosted GitLab URL, matched against remote URLs."""
    if not url:
        return ""
    parsed = urlparse(url if "://" in url else f"https://{url}")
    return parsed.netloc or url


def is_gitlab_remote(remote_url: str, configured_url: Optional[str]) -> bool:
    if "gitlab.com" in remote_url:
        return True
    host = gitlab_host(configured_url)
    return bool(host) and host in remote_url


def gitlab_client_id(config: Config) -> str:
    return config.gitlab.client_id or DEFAULT_GITLAB_CLIENT_ID


def run_device_login(flow: DeviceFlow, label: str) -> TokenResponse:
    """Run the device flow interactively on stderr so stdout stays clean."""
    code = flow.request_code()
    click.echo(f"No {label} token found. Starting OAuth authentication...", err=True)
    click.echo(f"Visit:      {code.verification_uri}", err=True)
    click.echo(f"Enter code: {code.user_code}", err=True)
    click.echo("Waiting for authorization...", err=True)
    deadline = time.monotonic() + code.expires_in if code.expires_in > 0 else None
    return flow.poll_token(code.device_code, code.interval, deadline=deadline)


def ensure_token(repo: Repository, config: Config, config_path: Path) -> None:
    """Authenticate interactively when the detected provider has no token yet."""
    if "github.com" in repo.remote_url and not config.github.token:
        if not config.github.client_id:
            raise ConfigError(f"github.client_id is not set: add it to {config_path}")
        token = run_device_login(GitHubDeviceFlow(config.github.client_id), "GitHub")
        config.github.token = token.access_token
    elif is_gitlab_remote(repo.remote_url, config.gitlab.url) and not config.gitlab.token:
        flow = GitLabDeviceFlow(gitlab_client_id(config), config.gitlab.url)
        token = run_device_login(flow, "GitLab")
        config.gitlab.token = token.access_token
        if token.refresh_token:
            config.gitlab.refresh_token = token.refresh_token
    else:
        return
    try:
        save_config(config_path, config)
    except ConfigError as exc:
        click.echo(
            f"warning: could not save token to config: {exc} (you will need to re-authenticate next run)",
            err=True,
        )
        return
    click.echo(f"Authenticated. Token saved to {config_path}", err=True)


def build_session(repo: Repository, config: Config, config_path: Path):
    """
    Wire adapters, the token-refreshing decorator and the re-auth callbacks for
    the provider that serves repo. Returns (provider, authenticator).
    """
    limit = config.pipeline_limit_or_default()
    github = GitHubProvider(config.github.token, limit=limit)
    gitlab = GitLabProvider(config.gitlab.token, base_url=config.gitlab.url, limit=limit)

    registry = ProviderRegistry()
    registry.register("github.com", github)
    registry.register("gitlab.com", gitlab)
    host = gitlab_host(config.gitlab.url)
    if host:
        registry.register(host, gitlab)
    adapter = registry.detect(repo.remote_url)

    gitlab_flow = GitLabDeviceFlow(gitlab_client_id(config), config.gitlab.url)
    token_manager = TokenManager(config, config_path, gitlab_flow=gitlab_flow)

    if adapter is gitlab:
        refresh_fn = token_manager.refresh_gitlab
    else:
        refresh_fn = fail_fast_refresh(adapter.name)
    provider = RefreshingProvider(adapter, adapter.name, refresh_fn, adapter.set_token)

    flows = {"gitlab": gitlab_flow}
    if config.github.client_id:
        flows["github"] = GitHubDeviceFlow(config.github.client_id)

    def on_token_refreshed(provider_name: str, token: TokenResponse) -> None:
        # In-memory credential first so the follow-up reload never sees the old one.
        if provider_name == provider.name:
            provider.set_token(token.access_token)
        token_manager.record_token(provider_name, token)

    authenticator = ReAuthenticator(flows, on_token_refreshed=on_token_refreshed)
    return provider, authenticator


@click.command(name="pipedeck")
@click.version_option(__version__, "--version", prog_name="pipedeck")
@click.option(
    "--config",
    "config_file",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Config file (default: ~/.config/pipedeck/config.toml or $PIPEDECK_CONFIG).",
)
@click.option("--log-level", default=None, help="Log level (default from config, INFO).")
@click.option("--json-logs", is_flag=True, default=False, help="Write JSON log lines.")
@click.option(
    "--directory",
    "-C",
    type=click.Path(file_okay=False, exists=True, path_type=Path),
    default=Path("."),
    show_default=True,
    help="Repository directory.",
)
def cli(config_file: Optional[Path], log_level: Optional[str], json_logs: bool, directory: Path) -> None:
    """Terminal dashboard for GitHub Actions and GitLab CI pipelines."""
    config_path = config_file or default_config_path()
    try:
        config = load_config(config_path)
    except ConfigError as exc:
        click.echo(f"error loading config: {exc}", err=True)
        sys.exit(EXIT_CONFIG_ERROR)

    init_cli_logging(
        log_level or config.log_level,
        json_output=json_logs or json_logging_from_env(),
        log_file=log_file_from_env(),
    )

    try:
        repo = detect_repository(directory.resolve())
    except PipedeckError as exc:
        click.echo(f"error detecting git remote: {exc}", err=True)
        sys.exit(EXIT_RUNTIME_ERROR)

    try:
        ensure_token(repo, config, config_path)
    except ConfigError as exc:
        click.echo(f"error: {exc}", err=True)
        sys.exit(EXIT_CONFIG_ERROR)
    except DeviceFlowError as exc:
        click.echo(f"authentication failed: {exc}", err=True)
        sys.exit(EXIT_RUNTIME_ERROR)

    try:
        provider, authenticator = build_session(repo, config, config_path)
    except PipedeckError as exc:
        click.echo(f"error detecting CI provider: {exc}", err=True)
        sys.exit(EXIT_RUNTIME_ERROR)

    if not sys.stdin.isatty() or not sys.stdout.isatty():  # pragma: no cover - runtime guard
        click.echo("pipedeck requires a TTY. Run it from an interactive terminal.", err=True)
        sys.exit(EXIT_DEP_MISSING)

    from pipedeck.cli.runner import CommandRunner
    from pipedeck.cli.tui import PipedeckApp

    log.info("tui_start", extra=log_extra(provider=provider.name, repo=repo.slug))
    runner = CommandRunner(provider, repo, authenticator)
    PipedeckApp(runner, repo, reauth_enabled=provider.name in authenticator.flows).run()


def main() -> None:
    cli()


if __name__ == "__main__":
    main()

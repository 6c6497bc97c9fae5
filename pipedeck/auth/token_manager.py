import threading
from pathlib import Path
from typing import Optional

from pipedeck.auth.device import GitLabDeviceFlow, TokenResponse
from pipedeck.config import Config, save_config
from pipedeck.errors import ConfigError, TokenRefreshError
from pipedeck.logging import get_logger, log_extra

log = get_logger(__name__)


class TokenManager:
    """
    Owns the long-lived credentials: silent GitLab refresh and persisting
    tokens obtained by any flow back to the config file.
    """

    def __init__(self, config: Config, config_path: Optional[Path], gitlab_flow: Optional[GitLabDeviceFlow] = None) -> None:
        self.config = config
        self.config_path = config_path
        self.gitlab_flow = gitlab_flow
        self._lock = threading.Lock()

    def refresh_gitlab(self) -> str:
        """
        Refresh the GitLab access token with the stored refresh token and
        persist the new pair. Returns the new access token.
        """
        with self._lock:
            refresh_token = self.config.gitlab.refresh_token
            if not refresh_token:
                raise TokenRefreshError("no refresh token available")
            if self.gitlab_flow is None:
                raise TokenRefreshError("GitLab OAuth is not configured")
            resp = self.gitlab_flow.refresh_token(refresh_token)
            self.config.gitlab.token = resp.access_token
            if resp.refresh_token:
                self.config.gitlab.refresh_token = resp.refresh_token
            self._persist("gitlab")
            return resp.access_token

    def record_token(self, provider: str, token: TokenResponse) -> None:
        """Store a token obtained interactively for provider and persist it."""
        with self._lock:
            if provider == "github":
                self.config.github.token = token.access_token
            elif provider == "gitlab":
                self.config.gitlab.token = token.access_token
                if token.refresh_token:
                    self.config.gitlab.refresh_token = token.refresh_token
            else:
                log.warning("token_for_unknown_provider", extra=log_extra(provider=provider))
                return
            self._persist(provider)

    def _persist(self, provider: str) -> None:
        if not self.config_path:
            return
        try:
            save_config(self.config_path, self.config)
        except ConfigError as exc:
            # The token stays usable for this session even if it cannot be saved.
            log.warning("token_persist_failed", extra=log_extra(provider=provider, error=str(exc)))
            return
        log.info("token_persisted", extra=log_extra(provider=provider))

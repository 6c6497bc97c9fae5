import os
import tomllib
from pathlib import Path
from typing import Any, Dict, Optional

import tomli_w
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from pipedeck.errors import ConfigError

DEFAULT_PIPELINE_LIMIT = 3


class GitHubConfig(BaseModel):
    client_id: Optional[str] = Field(default=None)
    token: Optional[str] = Field(default=None)


class GitLabConfig(BaseModel):
    client_id: Optional[str] = Field(default=None)
    token: Optional[str] = Field(default=None)
    refresh_token: Optional[str] = Field(default=None)
    url: Optional[str] = Field(default=None)  # self-hosted instance; None means gitlab.com


class Config(BaseModel):
    """
    Pydantic-backed configuration loaded from a TOML file plus environment overrides.

    Env vars (always win over the file):
    - GITHUB_TOKEN overrides github.token
    - GITLAB_TOKEN overrides gitlab.token
    - GITLAB_URL overrides gitlab.url
    - PIPEDECK_LOG_LEVEL overrides log_level
    - PIPEDECK_CONFIG selects the file itself (default: ~/.config/pipedeck/config.toml)
    """

    github: GitHubConfig = Field(default_factory=GitHubConfig)
    gitlab: GitLabConfig = Field(default_factory=GitLabConfig)
    pipeline_limit: int = Field(default=0)
    log_level: str = Field(default="INFO")

    model_config = ConfigDict(extra="ignore")

    def pipeline_limit_or_default(self) -> int:
        if self.pipeline_limit > 0:
            return self.pipeline_limit
        return DEFAULT_PIPELINE_LIMIT


def default_config_path() -> Path:
    override = os.environ.get("PIPEDECK_CONFIG")
    if override:
        return Path(override).expanduser()
    return Path.home() / ".config" / "pipedeck" / "config.toml"


def load_config(path: Optional[Path] = None) -> Config:
    """
    Load configuration from the TOML file at path. A missing file yields defaults.
    """
    path = path or default_config_path()
    data: Dict[str, Any] = {}
    if path.exists():
        try:
            with path.open("rb") as fh:
                data = tomllib.load(fh)
        except (OSError, tomllib.TOMLDecodeError) as exc:
            raise ConfigError(f"Could not read config {path}: {exc}", metadata={"path": str(path)}) from exc
    try:
        config = Config.model_validate(data)
    except ValidationError as exc:
        raise ConfigError(f"Invalid config {path}: {exc}", metadata={"path": str(path)}) from exc
    _apply_env_overrides(config)
    return config


def _apply_env_overrides(config: Config) -> None:
    github_token = os.environ.get("GITHUB_TOKEN")
    if github_token:
        config.github.token = github_token
    gitlab_token = os.environ.get("GITLAB_TOKEN")
    if gitlab_token:
        config.gitlab.token = gitlab_token
    gitlab_url = os.environ.get("GITLAB_URL")
    if gitlab_url:
        config.gitlab.url = gitlab_url
    log_level = os.environ.get("PIPEDECK_LOG_LEVEL")
    if log_level:
        config.log_level = log_level


def save_config(path: Path, config: Config) -> None:
    """
    Write config as TOML, creating parent directories (0700). The file is 0600
    because it holds access tokens.
    """
    payload = config.model_dump(exclude_none=True)
    try:
        path.parent.mkdir(parents=True, exist_ok=True, mode=0o700)
        fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
        with os.fdopen(fd, "wb") as fh:
            tomli_w.dump(payload, fh)
    except OSError as exc:
        raise ConfigError(f"Could not write config {path}: {exc}", metadata={"path": str(path)}) from exc

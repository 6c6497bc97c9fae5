"""CI provider adapters and the token-refreshing decorator."""

from pipedeck.providers.base import PipelineProvider
from pipedeck.providers.github import GitHubProvider
from pipedeck.providers.gitlab import GitLabProvider
from pipedeck.providers.refreshing import RefreshingProvider, fail_fast_refresh
from pipedeck.providers.registry import ProviderRegistry

__all__ = [
    "GitHubProvider",
    "GitLabProvider",
    "PipelineProvider",
    "ProviderRegistry",
    "RefreshingProvider",
    "fail_fast_refresh",
]

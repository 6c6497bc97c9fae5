from typing import List, Tuple

from pipedeck.errors import ProviderNotFoundError
from pipedeck.providers.base import PipelineProvider


class ProviderRegistry:
    """Maps remote URL host fragments to provider instances."""

    def __init__(self) -> None:
        self._entries: List[Tuple[str, PipelineProvider]] = []

    def register(self, host: str, provider: PipelineProvider) -> None:
        self._entries.append((host, provider))

    def detect(self, remote_url: str) -> PipelineProvider:
        for host, provider in self._entries:
            if host and host in remote_url:
                return provider
        raise ProviderNotFoundError(f"no provider found for remote: {remote_url}", metadata={"remote_url": remote_url})

"""OAuth device flow, silent token refresh and re-auth callbacks."""

from pipedeck.auth.device import (
    DeviceCodeResponse,
    DeviceFlow,
    GitHubDeviceFlow,
    GitLabDeviceFlow,
    TokenResponse,
)
from pipedeck.auth.reauth import ReAuthenticator
from pipedeck.auth.token_manager import TokenManager

__all__ = [
    "DeviceCodeResponse",
    "DeviceFlow",
    "GitHubDeviceFlow",
    "GitLabDeviceFlow",
    "ReAuthenticator",
    "TokenManager",
    "TokenResponse",
]

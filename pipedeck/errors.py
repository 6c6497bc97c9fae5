from typing import Any, Dict, Optional


class PipedeckError(RuntimeError):
    """
    Base error for pipedeck components. Carries metadata for structured logging.
    """

    category: str = "runtime"
    retryable: bool = True

    def __init__(self, message: str, *, metadata: Optional[Dict[str, Any]] = None, retryable: Optional[bool] = None) -> None:
        super().__init__(message)
        self.metadata = metadata or {}
        if retryable is not None:
            self.retryable = retryable


class ConfigError(PipedeckError):
    """Raised when configuration is invalid or cannot be written."""

    category = "config"
    retryable = False


class RepositoryDetectionError(PipedeckError):
    """Raised when the git origin remote cannot be found or parsed."""

    category = "git"
    retryable = False


class ProviderAPIError(PipedeckError):
    """Raised when a CI provider API call fails."""

    category = "provider"

    def __init__(self, message: str, *, status_code: Optional[int] = None, **kwargs: Any) -> None:
        super().__init__(message, **kwargs)
        self.status_code = status_code


class UnauthorizedError(ProviderAPIError):
    """
    Raised by adapters when the API answers 401. Only the refreshing provider
    reacts to it; callers above it never see this type.
    """

    category = "auth"
    retryable = False


class ProviderNotFoundError(PipedeckError):
    """Raised when no registered provider matches the remote URL."""

    category = "provider"
    retryable = False


class AuthExpiredError(PipedeckError):
    """Raised when the token is rejected and silent refresh is not possible."""

    category = "auth"
    retryable = False

    def __init__(self, provider: str) -> None:
        super().__init__(f"{provider} session expired: re-authentication required", metadata={"provider": provider})
        self.provider = provider


class TokenRefreshError(PipedeckError):
    """Raised when a silent token refresh fails."""

    category = "auth"
    retryable = False


class DeviceFlowError(PipedeckError):
    """Base error for the OAuth device authorization flow. Never retried."""

    category = "auth"
    retryable = False


class DeviceFlowRequestError(DeviceFlowError):
    """Raised when the device code or token endpoint cannot be reached or decoded."""


class DeviceCodeExpiredError(DeviceFlowError):
    """Raised when the device code expired before the user approved it."""


class AccessDeniedError(DeviceFlowError):
    """Raised when the user denied the authorization request."""


class UnexpectedDeviceFlowError(DeviceFlowError):
    """Raised for error codes the flow does not know how to handle."""

    def __init__(self, provider_label: str, code: str) -> None:
        self.code = code[:100]
        super().__init__(f"unexpected error from {provider_label}: {self.code}", metadata={"code": self.code})


class DeviceFlowCancelled(DeviceFlowError):
    """Raised when the user aborted the flow while it was polling."""

"""
OAuth 2.0 Device Authorization Grant.

The flow asks the provider for a device code and a short user code, shows the
user code together with a verification URL, then polls the token endpoint
until the user approves or denies the request, or the code expires.

GitHub and GitLab speak the same protocol and differ only in endpoints and
scopes, so both are thin subclasses of DeviceFlow.
"""

import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

import httpx

from pipedeck.errors import (
    AccessDeniedError,
    DeviceCodeExpiredError,
    DeviceFlowCancelled,
    DeviceFlowRequestError,
    TokenRefreshError,
    UnexpectedDeviceFlowError,
)
from pipedeck.logging import get_logger, log_extra

log = get_logger(__name__)

DEVICE_GRANT_TYPE = "urn:ietf:params:oauth:grant-type:device_code"
SLOW_DOWN_STEP_SECONDS = 5

# sleep(seconds, cancel) -> True when the wait was interrupted by cancellation
SleepFn = Callable[[float, Optional[threading.Event]], bool]


@dataclass(frozen=True)
class DeviceCodeResponse:
    device_code: str
    user_code: str
    verification_uri: str
    expires_in: int  # seconds until the device code expires
    interval: int  # minimum polling interval in seconds


@dataclass(frozen=True)
class TokenResponse:
    access_token: str
    refresh_token: Optional[str] = None


def _default_sleep(seconds: float, cancel: Optional[threading.Event]) -> bool:
    if cancel is not None:
        return cancel.wait(seconds)
    time.sleep(seconds)
    return False


class DeviceFlow:
    """Provider-neutral device authorization client."""

    label = "oauth"
    default_base_url = ""
    code_path = ""
    token_path = ""
    scope = ""

    def __init__(
        self,
        client_id: str,
        base_url: Optional[str] = None,
        *,
        transport: Optional[httpx.BaseTransport] = None,
        sleep: SleepFn = _default_sleep,
        clock: Callable[[], float] = time.monotonic,
        timeout: float = 15.0,
    ) -> None:
        self.client_id = client_id
        self.base_url = (base_url or self.default_base_url).rstrip("/")
        self.transport = transport
        self.sleep = sleep
        self.clock = clock
        self.timeout = timeout

    def _post_form(self, path: str, data: Dict[str, str]) -> httpx.Response:
        try:
            with httpx.Client(transport=self.transport, timeout=self.timeout) as client:
                return client.post(
                    f"{self.base_url}{path}",
                    data=data,
                    headers={"Accept": "application/json"},
                )
        except httpx.HTTPError as exc:
            raise DeviceFlowRequestError(f"{self.label} request to {path} failed: {exc}") from exc

    @staticmethod
    def _decode(resp: httpx.Response, what: str) -> Dict[str, Any]:
        try:
            payload = resp.json()
        except ValueError as exc:
            raise DeviceFlowRequestError(f"decoding {what} response: {exc}") from exc
        if not isinstance(payload, dict):
            raise DeviceFlowRequestError(f"decoding {what} response: expected an object")
        return payload

    def request_code(self, cancel: Optional[threading.Event] = None) -> DeviceCodeResponse:
        """
        Request a device code and user code. The user code must be shown to the
        user together with verification_uri.
        """
        if cancel is not None and cancel.is_set():
            raise DeviceFlowCancelled("authentication cancelled")
        resp = self._post_form(self.code_path, {"client_id": self.client_id, "scope": self.scope})
        if not resp.is_success:
            raise DeviceFlowRequestError(
                f"requesting device code from {self.label}: {resp.status_code} {resp.reason_phrase}",
                metadata={"status_code": resp.status_code},
            )
        raw = self._decode(resp, "device code")
        if not raw.get("device_code") or not raw.get("user_code"):
            raise DeviceFlowRequestError(f"{self.label} returned no device code")
        code = DeviceCodeResponse(
            device_code=raw["device_code"],
            user_code=raw["user_code"],
            verification_uri=raw.get("verification_uri") or raw.get("verification_url") or "",
            expires_in=int(raw.get("expires_in") or 0),
            interval=int(raw.get("interval") or 0),
        )
        log.info("device_code_issued", extra=log_extra(provider=self.label, interval=code.interval))
        return code

    def poll_token(
        self,
        device_code: str,
        interval: int,
        *,
        deadline: Optional[float] = None,
        cancel: Optional[threading.Event] = None,
    ) -> TokenResponse:
        """
        Poll the token endpoint until the user approves or the flow fails.

        interval <= 0 skips the sleep between requests (tests). deadline is an
        absolute value of the flow's clock after which polling stops even if the
        server keeps answering authorization_pending. Setting cancel stops the
        loop before any further request is sent.
        """
        interval = max(interval, 0)
        attempt = 0
        while True:
            if cancel is not None and cancel.is_set():
                raise DeviceFlowCancelled("authentication cancelled")
            if interval > 0:
                wait = float(interval)
                if deadline is not None:
                    wait = max(0.0, min(wait, deadline - self.clock()))
                if self.sleep(wait, cancel):
                    raise DeviceFlowCancelled("authentication cancelled")
            if deadline is not None and self.clock() >= deadline:
                raise DeviceCodeExpiredError("device code expired: restart authentication")
            if cancel is not None and cancel.is_set():
                raise DeviceFlowCancelled("authentication cancelled")

            attempt += 1
            resp = self._post_form(
                self.token_path,
                {"client_id": self.client_id, "device_code": device_code, "grant_type": DEVICE_GRANT_TYPE},
            )
            raw = self._decode(resp, "token")
            error = raw.get("error") or ""
            if not error:
                token = raw.get("access_token")
                if token:
                    log.info("device_token_granted", extra=log_extra(provider=self.label, attempt=attempt))
                    return TokenResponse(access_token=token, refresh_token=raw.get("refresh_token") or None)
                if not resp.is_success:
                    raise DeviceFlowRequestError(
                        f"polling {self.label} token: {resp.status_code} {resp.reason_phrase}",
                        metadata={"status_code": resp.status_code},
                    )
                continue
            if error == "authorization_pending":
                continue
            if error == "slow_down":
                interval += SLOW_DOWN_STEP_SECONDS
                log.debug("device_poll_slow_down", extra=log_extra(provider=self.label, interval=interval))
                continue
            if error == "expired_token":
                raise DeviceCodeExpiredError("device code expired: restart authentication")
            if error == "access_denied":
                raise AccessDeniedError("access denied by user")
            raise UnexpectedDeviceFlowError(self.label, str(error))


class GitHubDeviceFlow(DeviceFlow):
    label = "GitHub"
    default_base_url = "https://github.com"
    code_path = "/login/device/code"
    token_path = "/login/oauth/access_token"
    scope = "repo,workflow"


class GitLabDeviceFlow(DeviceFlow):
    label = "GitLab"
    default_base_url = "https://gitlab.com"
    code_path = "/oauth/authorize_device"
    token_path = "/oauth/token"
    scope = "api"

    def refresh_token(self, refresh_token: str) -> TokenResponse:
        """Exchange a stored refresh token for a new access/refresh token pair."""
        try:
            resp = self._post_form(
                self.token_path,
                {"client_id": self.client_id, "refresh_token": refresh_token, "grant_type": "refresh_token"},
            )
        except DeviceFlowRequestError as exc:
            raise TokenRefreshError(str(exc)) from exc
        if not resp.is_success:
            raise TokenRefreshError(
                f"refreshing GitLab token: {resp.status_code} {resp.reason_phrase}",
                metadata={"status_code": resp.status_code},
            )
        try:
            raw = self._decode(resp, "refresh")
        except DeviceFlowRequestError as exc:
            raise TokenRefreshError(str(exc)) from exc
        if not raw.get("access_token"):
            raise TokenRefreshError("GitLab refresh response carried no access token")
        return TokenResponse(access_token=raw["access_token"], refresh_token=raw.get("refresh_token") or None)

import threading
from typing import Callable, Dict, Mapping, Optional

from pipedeck.auth.device import DeviceCodeResponse, DeviceFlow, TokenResponse
from pipedeck.errors import DeviceFlowRequestError
from pipedeck.logging import get_logger, log_extra

log = get_logger(__name__)

TokenCallback = Callable[[str, TokenResponse], None]


class ReAuthenticator:
    """
    Host-side callbacks the session uses for interactive re-authentication.

    The session only relies on request_code, poll_token and token_refreshed,
    so tests substitute any object with the same three methods.
    """

    def __init__(self, flows: Mapping[str, DeviceFlow], on_token_refreshed: Optional[TokenCallback] = None) -> None:
        self.flows: Dict[str, DeviceFlow] = dict(flows)
        self.on_token_refreshed = on_token_refreshed

    def _flow(self, provider: str) -> DeviceFlow:
        flow = self.flows.get(provider)
        if flow is None:
            raise DeviceFlowRequestError(f"no device flow configured for {provider}")
        return flow

    def request_code(self, provider: str, cancel: Optional[threading.Event] = None) -> DeviceCodeResponse:
        return self._flow(provider).request_code(cancel=cancel)

    def poll_token(
        self,
        provider: str,
        device_code: str,
        interval: int,
        deadline: Optional[float] = None,
        cancel: Optional[threading.Event] = None,
    ) -> TokenResponse:
        return self._flow(provider).poll_token(device_code, interval, deadline=deadline, cancel=cancel)

    def token_refreshed(self, provider: str, token: TokenResponse) -> None:
        log.info("reauth_token_received", extra=log_extra(provider=provider))
        if self.on_token_refreshed is not None:
            self.on_token_refreshed(provider, token)

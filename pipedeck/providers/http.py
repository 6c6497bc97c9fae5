from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import httpx

from pipedeck.errors import ProviderAPIError, UnauthorizedError


@dataclass
class APIClient:
    """Thin httpx wrapper shared by the provider adapters."""

    base_url: str
    token: Optional[str] = None
    label: str = "api"
    headers: Dict[str, str] = field(default_factory=dict)
    transport: Optional[httpx.BaseTransport] = None
    timeout: float = 15.0

    def _headers(self) -> Dict[str, str]:
        headers = dict(self.headers)
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    def request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        url = path if path.startswith("http") else path.lstrip("/")
        try:
            with httpx.Client(
                base_url=self.base_url.rstrip("/") + "/",
                headers=self._headers(),
                transport=self.transport,
                timeout=self.timeout,
                follow_redirects=True,
            ) as client:
                resp = client.request(method, url, **kwargs)
        except httpx.HTTPError as exc:
            raise ProviderAPIError(f"{self.label} request failed: {exc}", metadata={"path": path}) from exc
        if resp.status_code == 401:
            raise UnauthorizedError(
                f"{self.label} API error: {resp.status_code} {resp.reason_phrase}",
                status_code=resp.status_code,
                metadata={"path": path},
            )
        if not resp.is_success:
            raise ProviderAPIError(
                f"{self.label} API error: {resp.status_code} {resp.reason_phrase}",
                status_code=resp.status_code,
                metadata={"path": path},
            )
        return resp

    def get_json(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        resp = self.request("GET", path, params=params)
        try:
            return resp.json()
        except ValueError as exc:
            raise ProviderAPIError(f"{self.label} returned invalid JSON for {path}", metadata={"path": path}) from exc

    def get_text(self, path: str) -> str:
        return self.request("GET", path).text

    def post(self, path: str) -> None:
        self.request("POST", path)

"""OPNsense REST API client.

Thin async wrapper around httpx that:
- authenticates with the API key/secret pair (HTTP basic auth)
- follows redirects (OPNsense answers 308 when HTTPS is enforced)
- turns every connectivity, HTTP status and decoding failure into a
  TransportError so callers only have one transport failure to handle
"""
import json
import logging
from typing import Any, Optional

import httpx

from ..errors import TransportError
from ..utils.connection import with_retry
from ..utils.logging_config import timed
from .base import DeviceConfig

logger = logging.getLogger(__name__)


class OPNsenseClient:
    """Authenticated client for one device's ``/api`` tree."""

    def __init__(
        self,
        device_id: str,
        config: DeviceConfig,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.device_id = device_id
        self.config = config
        self._transport = transport
        self._http: Optional[httpx.AsyncClient] = None

    def _ensure_session(self) -> httpx.AsyncClient:
        if self._http is None:
            self._http = httpx.AsyncClient(
                base_url=self.config.base_url + "/",
                auth=(self.config.get_api_key(), self.config.get_api_secret()),
                headers={"Accept": "application/json"},
                timeout=httpx.Timeout(self.config.timeout),
                verify=self.config.ssl_verify,
                follow_redirects=True,
                max_redirects=self.config.max_redirects,
                transport=self._transport,
            )
        return self._http

    async def get(self, path: str) -> dict:
        """GET an API path (relative, e.g. ``haproxy/settings/get``)."""
        return await self._request("GET", path)

    async def post(self, path: str, body: Optional[dict] = None) -> dict:
        """POST a JSON body to an API path."""
        return await self._request("POST", path, body if body is not None else {})

    @timed("api_request")
    async def _request(self, method: str, path: str, body: Optional[dict] = None) -> Any:
        clean_path = path.lstrip("/")
        try:
            response = await self._send(method, clean_path, body)
        except httpx.TooManyRedirects as e:
            raise TransportError(
                f"OPNsense API: too many redirects (> {self.config.max_redirects}) for '{clean_path}'",
                device_id=self.device_id,
            ) from e
        except httpx.HTTPError as e:
            raise TransportError(
                f"OPNsense API connection failed for '{clean_path}' on {self.device_id}: {e}",
                device_id=self.device_id,
            ) from e

        return self._handle_response(response, clean_path)

    @with_retry(max_attempts=3, min_wait=1, max_wait=10)
    async def _send(self, method: str, path: str, body: Optional[dict]) -> httpx.Response:
        http = self._ensure_session()
        logger.debug(f"{self.device_id}: {method} {path}")
        if method == "POST":
            return await http.post(path, json=body)
        return await http.get(path)

    def _handle_response(self, response: httpx.Response, path: str) -> Any:
        if not response.is_success:
            raise TransportError(
                f"OPNsense API error {response.status_code} for '{path}': {response.text}",
                device_id=self.device_id,
                status_code=response.status_code,
            )

        text = response.text
        if not text or not text.strip():
            return {}

        try:
            return json.loads(text)
        except json.JSONDecodeError as e:
            raise TransportError(
                f"OPNsense API response parse error for '{path}': {e}",
                device_id=self.device_id,
                status_code=response.status_code,
            ) from e

    async def close(self) -> None:
        if self._http is not None:
            await self._http.aclose()
            self._http = None

    async def __aenter__(self):
        self._ensure_session()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
        return False

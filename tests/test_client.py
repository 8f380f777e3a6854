"""Tests for the OPNsense REST client (no network, httpx.MockTransport)."""
import base64
import json

import httpx
import pytest

from mcp_opnsense.devices import create_client
from mcp_opnsense.devices.base import DEFAULT_URL, DeviceConfig
from mcp_opnsense.devices.opnsense import OPNsenseClient
from mcp_opnsense.errors import TransportError


def make_client(handler, **config) -> OPNsenseClient:
    config.setdefault("url", "https://fw01.example.com/api")
    config.setdefault("api_key", "key")
    config.setdefault("api_secret", "secret")
    return OPNsenseClient("fw01", DeviceConfig(**config), transport=httpx.MockTransport(handler))


class TestDeviceConfig:
    """Tests for DeviceConfig."""

    def test_defaults(self):
        config = DeviceConfig()
        assert config.url == DEFAULT_URL
        assert config.ssl_verify is True
        assert config.max_redirects == 5

    def test_credentials_from_env(self, monkeypatch):
        monkeypatch.setenv("FW_KEY", "k")
        monkeypatch.setenv("FW_SECRET", "s")
        config = DeviceConfig(api_key_env="FW_KEY", api_secret_env="FW_SECRET")
        assert config.get_api_key() == "k"
        assert config.get_api_secret() == "s"

    def test_inline_credentials_win(self, monkeypatch):
        monkeypatch.setenv("OPNSENSE_API_KEY", "from-env")
        assert DeviceConfig(api_key="inline").get_api_key() == "inline"

    def test_base_url_trailing_slash(self):
        assert DeviceConfig(url="https://fw/api/").base_url == "https://fw/api"

    def test_create_client_rejects_unknown_settings(self):
        with pytest.raises(ValueError, match="password"):
            create_client("fw01", {"url": "https://fw/api", "password": "x"})


class TestRequests:
    """Tests for request building and response handling."""

    @pytest.mark.asyncio
    async def test_get(self):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"rows": []})

        async with make_client(handler) as client:
            assert await client.get("haproxy/settings/search_acls") == {"rows": []}

        request = seen[0]
        assert str(request.url) == "https://fw01.example.com/api/haproxy/settings/search_acls"
        assert request.headers["Accept"] == "application/json"
        expected = base64.b64encode(b"key:secret").decode()
        assert request.headers["Authorization"] == f"Basic {expected}"

    @pytest.mark.asyncio
    async def test_post_json_body(self):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={"result": "saved"})

        async with make_client(handler) as client:
            response = await client.post("/firewall/alias/add_item", {"alias": {"name": "a"}})

        assert response == {"result": "saved"}
        assert seen[0].method == "POST"
        assert seen[0].url.path == "/api/firewall/alias/add_item"
        assert json.loads(seen[0].content) == {"alias": {"name": "a"}}

    @pytest.mark.asyncio
    async def test_empty_body(self):
        async with make_client(lambda request: httpx.Response(200, content=b"")) as client:
            assert await client.post("firewall/alias/reconfigure") == {}

    @pytest.mark.asyncio
    async def test_http_error(self):
        def handler(request):
            return httpx.Response(401, text="Authentication Failed")

        async with make_client(handler) as client:
            with pytest.raises(TransportError) as exc_info:
                await client.get("core/firmware/status")

        assert exc_info.value.status_code == 401
        assert exc_info.value.device_id == "fw01"
        assert "Authentication Failed" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_invalid_json(self):
        async with make_client(lambda request: httpx.Response(200, text="<html>")) as client:
            with pytest.raises(TransportError, match="parse error"):
                await client.get("core/firmware/status")

    @pytest.mark.asyncio
    async def test_follows_redirect(self):
        def handler(request):
            if request.url.scheme == "http":
                return httpx.Response(308, headers={"Location": str(request.url.copy_with(scheme="https"))})
            return httpx.Response(200, json={"ok": True})

        async with make_client(handler, url="http://fw01.example.com/api") as client:
            assert await client.get("core/firmware/status") == {"ok": True}

    @pytest.mark.asyncio
    async def test_too_many_redirects(self):
        def handler(request):
            return httpx.Response(302, headers={"Location": str(request.url)})

        async with make_client(handler, max_redirects=2) as client:
            with pytest.raises(TransportError, match="too many redirects"):
                await client.get("core/firmware/status")

    @pytest.mark.asyncio
    async def test_read_timeout_not_retried(self):
        attempts = []

        def handler(request):
            attempts.append(request)
            raise httpx.ReadTimeout("slow", request=request)

        async with make_client(handler) as client:
            with pytest.raises(TransportError, match="connection failed"):
                await client.post("haproxy/settings/add_acl", {})

        assert len(attempts) == 1

    @pytest.mark.asyncio
    async def test_close_is_idempotent(self):
        client = make_client(lambda request: httpx.Response(200, json={}))
        await client.get("x")
        await client.close()
        await client.close()

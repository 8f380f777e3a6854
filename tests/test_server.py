"""Tests for the MCP tool handlers."""
import json

import pytest
from pydantic import AnyUrl

from mcp_opnsense import server
from conftest import FakeInventory, UUID_A

DOCUMENT = {"resources": [
    {"kind": "haproxy_acl", "name": "block-foo@fw01", "config": {"expression": "hdr_beg"}},
]}


@pytest.fixture
def inventory(monkeypatch):
    inventory = FakeInventory({"fw01": {
        ("POST", "haproxy/settings/search_acls"): {"rows": [{"uuid": UUID_A, "name": "existing"}]},
        ("POST", "haproxy/settings/add_acl"): {"result": "saved", "uuid": UUID_A},
        ("GET", "haproxy/service/configtest"): {"result": "Configuration file is valid"},
        ("POST", "haproxy/service/reconfigure"): {"status": "ok"},
    }})
    monkeypatch.setattr(server, "inventory", inventory)
    return inventory


def payload(contents) -> dict:
    return json.loads(contents[0].text)


class TestTools:
    """Tests for call_tool dispatch."""

    @pytest.mark.asyncio
    async def test_list_tools(self):
        names = {tool.name for tool in await server.list_tools()}
        assert names == {"list_devices", "list_kinds", "discover", "plan", "apply", "recent_changes"}

    @pytest.mark.asyncio
    async def test_list_kinds(self, inventory):
        kinds = payload(await server.call_tool("list_kinds", {}))["kinds"]
        action = next(k for k in kinds if k["kind"] == "haproxy_action")
        assert action["reload_domain"] == "haproxy"
        assert action["relations"]["linkedAcls"] == "haproxy_acl"

    @pytest.mark.asyncio
    async def test_discover(self, inventory):
        result = payload(await server.call_tool("discover", {"kind": "haproxy_acl"}))
        assert result["total"] == 1
        assert result["objects"][0]["identifier"] == UUID_A

    @pytest.mark.asyncio
    async def test_plan(self, inventory):
        result = payload(await server.call_tool("plan", {"document": DOCUMENT}))
        assert result["total_changes"] == 1
        assert result["changes"][0]["change"] == "create"

    @pytest.mark.asyncio
    async def test_apply(self, inventory):
        result = payload(await server.call_tool("apply", {"document": DOCUMENT}))
        assert result["success"] is True
        assert result["reloads"] == {"haproxy": {"fw01": "reloaded"}}

    @pytest.mark.asyncio
    async def test_errors_are_reported(self, inventory):
        contents = await server.call_tool("plan", {"document": {"resources": "nope"}})
        assert contents[0].text.startswith("Error:")

    @pytest.mark.asyncio
    async def test_unknown_tool(self, inventory):
        contents = await server.call_tool("reboot", {})
        assert contents[0].text == "Unknown tool: reboot"


class TestResources:
    """Tests for opnsense:// resources."""

    @pytest.mark.asyncio
    async def test_read_resource(self, inventory):
        text = await server.read_resource(AnyUrl("opnsense://fw01/haproxy_acl"))
        assert json.loads(text)["objects"][0]["name"] == "existing"

    @pytest.mark.asyncio
    async def test_unknown_resource(self, inventory):
        text = await server.read_resource(AnyUrl("opnsense://fw01/bogus"))
        assert "Unknown resource" in text

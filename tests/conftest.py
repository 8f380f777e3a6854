"""Shared fakes: API clients that record calls instead of using the network."""
import copy

import pytest

from mcp_opnsense.errors import TransportError


class FakeClient:
    """Stands in for OPNsenseClient.

    ``routes`` maps ``(method, path)`` to a response dict, an exception
    instance to raise, or a callable taking the POST body.
    """

    def __init__(self, device_id: str, routes: dict | None = None):
        self.device_id = device_id
        self.routes = routes or {}
        self.calls: list[tuple[str, str, dict | None]] = []

    async def get(self, path: str) -> dict:
        return self._respond("GET", path, None)

    async def post(self, path: str, body: dict | None = None) -> dict:
        return self._respond("POST", path, body)

    def _respond(self, method: str, path: str, body):
        self.calls.append((method, path, copy.deepcopy(body)))
        if (method, path) not in self.routes:
            raise TransportError(f"no route for {method} {path}", device_id=self.device_id)

        response = self.routes[(method, path)]
        if isinstance(response, Exception):
            raise response
        if callable(response):
            response = response(body)
        return copy.deepcopy(response)

    def calls_to(self, path: str) -> list:
        return [call for call in self.calls if call[1] == path]

    async def close(self) -> None:
        pass


class FakeInventory:
    """Stands in for DeviceInventory."""

    def __init__(self, routes_by_device: dict[str, dict]):
        self.clients = {
            device: FakeClient(device, routes) for device, routes in routes_by_device.items()
        }

    def device_names(self) -> list[str]:
        return list(self.clients)

    def client_for(self, device_id: str) -> FakeClient:
        return self.clients[device_id]

    def resolve_targets(self, targets=None) -> list[str]:
        return list(targets) if targets else self.device_names()

    async def close_all(self) -> None:
        pass


@pytest.fixture
def make_inventory():
    """Factory: ``make_inventory({"fw01": {("POST", path): response}})``."""
    return FakeInventory


UUID_A = "11111111-1111-1111-1111-111111111111"
UUID_B = "22222222-2222-2222-2222-222222222222"
UUID_C = "33333333-3333-3333-3333-333333333333"


@pytest.fixture
def uuids() -> tuple[str, str, str]:
    return UUID_A, UUID_B, UUID_C

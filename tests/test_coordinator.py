"""Tests for the reconfigure coordinator."""
import logging

import pytest

from mcp_opnsense.errors import TransportError
from mcp_opnsense.reconcile.coordinator import (
    CONFIGTEST_FAILED,
    FAILED,
    RELOADED,
    SKIPPED_ERRORED,
    UNEXPECTED_STATUS,
    ReconfigureCoordinator,
)
from mcp_opnsense.reconcile.kinds import MANAGED_KINDS, RELOAD_ACTIONS
from mcp_opnsense.reconcile.schema import ReconfigureState

ALIAS_RELOAD = "firewall/alias/reconfigure"
HAPROXY_RELOAD = "haproxy/service/reconfigure"
HAPROXY_TEST = "haproxy/service/configtest"


@pytest.fixture
def inventory(make_inventory):
    ok = {"status": "ok"}
    return make_inventory({
        "fw01": {("POST", ALIAS_RELOAD): ok},
        "fw02": {("POST", ALIAS_RELOAD): ok},
    })


@pytest.fixture
def coordinator(inventory):
    return ReconfigureCoordinator(RELOAD_ACTIONS["firewall_alias"], inventory.client_for)


class TestStateMachine:
    """Tests for per-device state transitions."""

    def test_starts_clean(self, coordinator):
        assert coordinator.state("fw01") == ReconfigureState.CLEAN

    def test_mark(self, coordinator):
        coordinator.mark("fw01")
        coordinator.mark("fw01")
        assert coordinator.state("fw01") == ReconfigureState.DIRTY
        assert coordinator.pending == ["fw01"]

    def test_error_overrides_dirty(self, coordinator):
        coordinator.mark("fw01")
        coordinator.mark_error("fw01")
        assert coordinator.state("fw01") == ReconfigureState.ERRORED

    def test_error_is_sticky(self, coordinator):
        coordinator.mark_error("fw01")
        coordinator.mark("fw01")
        assert coordinator.state("fw01") == ReconfigureState.ERRORED
        assert coordinator.pending == []

    def test_reset(self, coordinator):
        coordinator.mark("fw01")
        coordinator.mark_error("fw02")
        coordinator.reset()
        assert coordinator.state("fw01") == ReconfigureState.CLEAN
        assert coordinator.state("fw02") == ReconfigureState.CLEAN


class TestRun:
    """Tests for the coalesced reload."""

    @pytest.mark.asyncio
    async def test_reloads_once(self, coordinator, inventory):
        coordinator.mark("fw01")
        coordinator.mark("fw01")
        outcomes = await coordinator.run()
        assert outcomes == {"fw01": RELOADED}
        assert len(inventory.clients["fw01"].calls_to(ALIAS_RELOAD)) == 1
        assert inventory.clients["fw02"].calls == []

    @pytest.mark.asyncio
    async def test_mark_then_error_skips_reload(self, coordinator, inventory):
        coordinator.mark("fw01")
        coordinator.mark_error("fw01")
        outcomes = await coordinator.run()
        assert outcomes == {"fw01": SKIPPED_ERRORED}
        assert inventory.clients["fw01"].calls == []

    @pytest.mark.asyncio
    async def test_error_then_mark_skips_reload(self, coordinator, inventory):
        coordinator.mark_error("fw01")
        coordinator.mark("fw01")
        await coordinator.run()
        assert inventory.clients["fw01"].calls == []

    @pytest.mark.asyncio
    async def test_second_run_does_nothing(self, coordinator, inventory):
        coordinator.mark("fw01")
        await coordinator.run()
        assert await coordinator.run() == {}
        assert len(inventory.clients["fw01"].calls) == 1
        assert coordinator.state("fw01") == ReconfigureState.CLEAN

    @pytest.mark.asyncio
    async def test_state_cleared_after_run(self, coordinator):
        coordinator.mark_error("fw01")
        await coordinator.run()
        coordinator.mark("fw01")
        assert coordinator.state("fw01") == ReconfigureState.DIRTY

    @pytest.mark.asyncio
    async def test_failure_does_not_stop_other_devices(self, coordinator, inventory):
        inventory.clients["fw01"].routes[("POST", ALIAS_RELOAD)] = TransportError("down")
        coordinator.mark("fw01")
        coordinator.mark("fw02")
        outcomes = await coordinator.run()
        assert outcomes == {"fw01": FAILED, "fw02": RELOADED}
        assert len(inventory.clients["fw01"].calls) == 1  # no retry

    @pytest.mark.asyncio
    async def test_bad_device_settings_do_not_stop_other_devices(self, inventory):
        def client_for(device):
            if device == "fw01":
                raise ValueError("Unknown settings for device fw01: port")
            return inventory.client_for(device)

        coordinator = ReconfigureCoordinator(RELOAD_ACTIONS["firewall_alias"], client_for)
        coordinator.mark("fw01")
        coordinator.mark("fw02")
        outcomes = await coordinator.run()
        assert outcomes == {"fw01": FAILED, "fw02": RELOADED}
        assert coordinator.state("fw02") == ReconfigureState.CLEAN

    @pytest.mark.asyncio
    async def test_unexpected_status(self, coordinator, inventory, caplog):
        inventory.clients["fw01"].routes[("POST", ALIAS_RELOAD)] = {"status": "failed"}
        coordinator.mark("fw01")
        with caplog.at_level(logging.WARNING):
            outcomes = await coordinator.run()
        assert outcomes == {"fw01": UNEXPECTED_STATUS}
        assert "unexpected status" in caplog.text


class TestConfigtest:
    """Tests for the HAProxy config test before reload."""

    @pytest.fixture
    def haproxy(self, make_inventory):
        inventory = make_inventory({
            "fw01": {
                ("GET", HAPROXY_TEST): {"result": "Configuration file is valid"},
                ("POST", HAPROXY_RELOAD): {"status": "ok"},
            },
        })
        coordinator = ReconfigureCoordinator(RELOAD_ACTIONS["haproxy"], inventory.client_for)
        return coordinator, inventory.clients["fw01"]

    @pytest.mark.asyncio
    async def test_valid_config_reloads(self, haproxy):
        coordinator, client = haproxy
        coordinator.mark("fw01")
        assert await coordinator.run() == {"fw01": RELOADED}
        assert [c[1] for c in client.calls] == [HAPROXY_TEST, HAPROXY_RELOAD]

    @pytest.mark.asyncio
    async def test_alert_skips_reload(self, haproxy, caplog):
        coordinator, client = haproxy
        client.routes[("GET", HAPROXY_TEST)] = {"result": "[ALERT] parsing error"}
        coordinator.mark("fw01")
        with caplog.at_level(logging.ERROR):
            assert await coordinator.run() == {"fw01": CONFIGTEST_FAILED}
        assert client.calls_to(HAPROXY_RELOAD) == []
        assert "ALERT" in caplog.text

    @pytest.mark.asyncio
    async def test_warning_still_reloads(self, haproxy, caplog):
        coordinator, client = haproxy
        client.routes[("GET", HAPROXY_TEST)] = {"result": "[WARNING] deprecated option"}
        coordinator.mark("fw01")
        with caplog.at_level(logging.WARNING):
            assert await coordinator.run() == {"fw01": RELOADED}
        assert len(client.calls_to(HAPROXY_RELOAD)) == 1
        assert "WARNING" in caplog.text


class TestReloadActions:
    """Every reload domain has exactly one action."""

    def test_every_managed_domain_has_an_action(self):
        domains = {kind.reload_domain for kind in MANAGED_KINDS if kind.reload_domain}
        assert domains == set(RELOAD_ACTIONS)

    def test_domain_matches_key(self):
        for domain, action in RELOAD_ACTIONS.items():
            assert action.domain == domain

    def test_only_haproxy_runs_configtest(self):
        assert [d for d, a in RELOAD_ACTIONS.items() if a.configtest] == ["haproxy"]

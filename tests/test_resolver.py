"""Tests for the relation resolver."""
import pytest

from mcp_opnsense.errors import ReferenceLookupError
from mcp_opnsense.reconcile.kinds import get_kind
from mcp_opnsense.reconcile.resolver import RelationResolver, get_path, set_path
from conftest import UUID_A, UUID_B, UUID_C

ACLS = ("POST", "haproxy/settings/search_acls")
BACKENDS = ("POST", "haproxy/settings/search_backends")
USERS = ("POST", "haproxy/settings/search_users")
CRON = ("POST", "cron/settings/search_jobs")
MAILERS = ("POST", "haproxy/settings/searchmailers")

ACTION = get_kind("haproxy_action")
SETTINGS = get_kind("haproxy_settings")
BACKEND = get_kind("haproxy_backend")


@pytest.fixture
def inventory(make_inventory):
    return make_inventory({
        "fw01": {
            ACLS: {"rows": [
                {"uuid": UUID_A, "name": "acl-a"},
                {"uuid": UUID_B, "name": "acl-b"},
                {"uuid": "", "name": "orphan"},
            ]},
            BACKENDS: {"rows": [{"uuid": UUID_C, "name": "web"}]},
            USERS: {"rows": [{"uuid": UUID_A, "name": "alice"}, {"uuid": UUID_B, "name": "bob"}]},
            CRON: {"rows": [{"uuid": UUID_C, "description": "Sync certs"}]},
        },
    })


@pytest.fixture
def resolver(inventory):
    return RelationResolver(inventory.client_for)


class TestDottedPaths:
    """Tests for nested field access."""

    def test_get_and_set(self):
        data = {"general": {"stats": {"allowedUsers": "x"}}}
        assert get_path(data, "general.stats.allowedUsers") == "x"
        set_path(data, "general.stats.allowedUsers", "y")
        assert data["general"]["stats"]["allowedUsers"] == "y"

    def test_missing(self):
        from mcp_opnsense.reconcile.resolver import _MISSING
        assert get_path({"general": "flat"}, "general.stats") is _MISSING


class TestTranslateToNames:
    """Tests for identifier -> name translation."""

    @pytest.mark.asyncio
    async def test_single_and_multiple(self, resolver):
        attrs = {"linkedAcls": f"{UUID_B},{UUID_A}", "use_backend": UUID_C, "type": "use_backend"}
        result = await resolver.translate_to_names("fw01", ACTION.relations, attrs)
        assert result == {"linkedAcls": "acl-b,acl-a", "use_backend": "web", "type": "use_backend"}

    @pytest.mark.asyncio
    async def test_one_listing_per_target_kind(self, resolver, inventory):
        """Two fields pointing at backends list backends once."""
        attrs = {"use_backend": UUID_C, "map_data_use_backend_default": UUID_C}
        await resolver.translate_to_names("fw01", ACTION.relations, attrs)
        client = inventory.clients["fw01"]
        assert len(client.calls_to(BACKENDS[1])) == 1
        assert client.calls_to(ACLS[1]) == []

    @pytest.mark.asyncio
    async def test_unresolved_identifier_kept(self, resolver):
        unknown = "99999999-9999-9999-9999-999999999999"
        result = await resolver.translate_to_names(
            "fw01", ACTION.relations, {"linkedAcls": f"{UUID_A},{unknown}"}
        )
        assert result["linkedAcls"] == f"acl-a,{unknown}"

    @pytest.mark.asyncio
    async def test_empty_values_skipped(self, resolver, inventory):
        result = await resolver.translate_to_names("fw01", ACTION.relations, {"linkedAcls": ""})
        assert result == {"linkedAcls": ""}
        assert inventory.clients["fw01"].calls == []

    @pytest.mark.asyncio
    async def test_dotted_and_description_targets(self, resolver):
        attrs = {
            "general": {"stats": {"allowedUsers": f"{UUID_A},{UUID_B}"}},
            "maintenance": {"cronjobs": {"syncCertsCron": UUID_C}},
        }
        result = await resolver.translate_to_names("fw01", SETTINGS.relations, attrs)
        assert result["general"]["stats"]["allowedUsers"] == "alice,bob"
        assert result["maintenance"]["cronjobs"]["syncCertsCron"] == "Sync certs"

    @pytest.mark.asyncio
    async def test_input_not_mutated(self, resolver):
        attrs = {"general": {"stats": {"allowedUsers": UUID_A}}}
        await resolver.translate_to_names("fw01", SETTINGS.relations, attrs)
        assert attrs == {"general": {"stats": {"allowedUsers": UUID_A}}}


class TestTranslateToUuids:
    """Tests for name -> identifier translation."""

    @pytest.mark.asyncio
    async def test_names_resolved_in_order(self, resolver):
        result = await resolver.translate_to_uuids(
            "fw01", ACTION.relations, {"linkedAcls": "acl-b,acl-a", "use_backend": "web"}
        )
        assert result == {"linkedAcls": f"{UUID_B},{UUID_A}", "use_backend": UUID_C}

    @pytest.mark.asyncio
    async def test_round_trip(self, resolver):
        original = {"linkedAcls": f"{UUID_A},{UUID_B}", "use_backend": UUID_C}
        names = await resolver.translate_to_names("fw01", ACTION.relations, original)
        assert await resolver.translate_to_uuids("fw01", ACTION.relations, names) == original

    @pytest.mark.asyncio
    async def test_uuid_values_need_no_listing(self, resolver, inventory):
        result = await resolver.translate_to_uuids(
            "fw01", ACTION.relations, {"linkedAcls": f"{UUID_A},{UUID_B}"}
        )
        assert result["linkedAcls"] == f"{UUID_A},{UUID_B}"
        assert inventory.clients["fw01"].calls == []

    @pytest.mark.asyncio
    async def test_unknown_name_passes_through(self, resolver):
        result = await resolver.translate_to_uuids(
            "fw01", ACTION.relations, {"linkedAcls": "acl-a,typo"}
        )
        assert result["linkedAcls"] == f"{UUID_A},typo"

    @pytest.mark.asyncio
    async def test_strict_mode_raises(self, inventory):
        resolver = RelationResolver(inventory.client_for, strict=True)
        with pytest.raises(ReferenceLookupError) as exc_info:
            await resolver.translate_to_uuids("fw01", ACTION.relations, {"linkedAcls": "typo"})
        assert exc_info.value.reference == "typo"
        assert exc_info.value.kind == "haproxy_acl"

    @pytest.mark.asyncio
    async def test_shared_cache(self, resolver, inventory):
        cache = {}
        await resolver.translate_to_uuids("fw01", ACTION.relations, {"linkedAcls": "acl-a"}, cache)
        await resolver.translate_to_uuids("fw01", ACTION.relations, {"linkedAcls": "acl-b"}, cache)
        assert len(inventory.clients["fw01"].calls_to(ACLS[1])) == 1


class TestListingFailures:
    """A target kind that cannot be listed leaves its references raw."""

    @pytest.mark.asyncio
    async def test_identifier_kept_and_failure_cached(self, resolver, inventory, caplog):
        cache = {}
        attrs = {"linkedMailer": UUID_B, "linkedServers": ""}

        first = await resolver.translate_to_names("fw01", BACKEND.relations, attrs, cache)
        second = await resolver.translate_to_names("fw01", BACKEND.relations, attrs, cache)

        assert first["linkedMailer"] == UUID_B
        assert second["linkedMailer"] == UUID_B
        assert len(inventory.clients["fw01"].calls_to(MAILERS[1])) == 1
        assert "Cannot list haproxy_mailer on fw01" in caplog.text

    @pytest.mark.asyncio
    async def test_names_pass_through(self, resolver):
        result = await resolver.translate_to_uuids("fw01", BACKEND.relations, {"linkedMailer": "ops"})
        assert result["linkedMailer"] == "ops"

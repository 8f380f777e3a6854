"""Kind table: endpoints and quirks of every supported OPNsense object kind.

Managed kinds can be created, updated and deleted. Lookup kinds are only
listed, as targets of relation fields.
"""
from .schema import (
    Cardinality,
    IdentifierLookup,
    KindDescriptor,
    RelationField,
    ReloadAction,
)

MULTIPLE = Cardinality.MULTIPLE


# === Reload actions (one per reconfigure domain) ===

RELOAD_ACTIONS: dict[str, ReloadAction] = {
    "firewall_alias": ReloadAction(
        domain="firewall_alias",
        endpoint="firewall/alias/reconfigure",
    ),
    "firewall_group": ReloadAction(
        domain="firewall_group",
        endpoint="firewall/group/reconfigure",
    ),
    "firewall_filter": ReloadAction(
        domain="firewall_filter",
        endpoint="firewall/filter/apply",
    ),
    "cron": ReloadAction(
        domain="cron",
        endpoint="cron/service/reconfigure",
    ),
    "haproxy": ReloadAction(
        domain="haproxy",
        endpoint="haproxy/service/reconfigure",
        configtest="haproxy/service/configtest",
    ),
    "zabbix_agent": ReloadAction(
        domain="zabbix_agent",
        endpoint="zabbixagent/service/reconfigure",
    ),
    "zabbix_proxy": ReloadAction(
        domain="zabbix_proxy",
        endpoint="zabbixproxy/service/reconfigure",
    ),
}


def _haproxy_lookup(name: str, search: str, identity_field: str = "name") -> KindDescriptor:
    return KindDescriptor(name=name, search=search, identity_field=identity_field)


# === Lookup-only kinds ===

LOOKUP_KINDS = [
    _haproxy_lookup("haproxy_mapfile", "haproxy/settings/search_mapfiles"),
    _haproxy_lookup("haproxy_fcgi", "haproxy/settings/search_fcgis"),
    _haproxy_lookup("haproxy_resolver", "haproxy/settings/searchresolvers"),
    _haproxy_lookup("haproxy_healthcheck", "haproxy/settings/search_healthchecks"),
    _haproxy_lookup("haproxy_mailer", "haproxy/settings/searchmailers"),
    _haproxy_lookup("haproxy_errorfile", "haproxy/settings/search_errorfiles"),
]


def _haproxy_kind(name: str, noun: str, **kwargs) -> KindDescriptor:
    """A HAProxy model kind following the add_/set_/del_ endpoint pattern."""
    return KindDescriptor(
        name=name,
        search=f"haproxy/settings/search_{noun}s",
        add_path=f"haproxy/settings/add_{noun}",
        set_path=f"haproxy/settings/set_{noun}/{{id}}",
        del_path=f"haproxy/settings/del_{noun}/{{id}}",
        payload_key=noun,
        reload_domain="haproxy",
        **kwargs,
    )


# === Managed kinds (in evaluation order) ===

CERT_VOLATILE_FIELDS = frozenset({
    "action", "key_type", "digest", "cert_type", "lifetime", "private_key_location",
    "city", "state", "organization", "organizationalunit", "country", "email",
    "commonname", "ocsp_uri", "altnames_dns", "altnames_ip", "altnames_uri",
    "altnames_email", "crt_payload", "csr_payload", "prv_payload",
    "rfc3280_purpose", "in_use", "is_user", "name", "valid_from", "valid_to",
})

CA_VOLATILE_FIELDS = frozenset({
    "action", "key_type", "digest", "lifetime", "city", "state", "organization",
    "organizationalunit", "country", "email", "commonname", "ocsp_uri",
    "crt_payload", "prv_payload", "refcount", "name", "valid_from", "valid_to",
})

MANAGED_KINDS = [
    KindDescriptor(
        name="firewall_category",
        search="firewall/category/search_item",
        add_path="firewall/category/add_item",
        set_path="firewall/category/set_item/{id}",
        del_path="firewall/category/del_item/{id}",
        payload_key="category",
    ),
    KindDescriptor(
        name="firewall_alias",
        search="firewall/alias/search_item",
        add_path="firewall/alias/add_item",
        set_path="firewall/alias/set_item/{id}",
        del_path="firewall/alias/del_item/{id}",
        payload_key="alias",
        reload_domain="firewall_alias",
    ),
    # System groups (enc0, openvpn, ...) are listed with non-uuid ids
    KindDescriptor(
        name="firewall_group",
        search="firewall/group/search_item",
        identity_field="ifname",
        uuid_rows_only=True,
        add_path="firewall/group/add_item",
        set_path="firewall/group/set_item/{id}",
        del_path="firewall/group/del_item/{id}",
        payload_key="group",
        reload_domain="firewall_group",
    ),
    KindDescriptor(
        name="firewall_rule",
        search="firewall/filter/search_rule",
        identity_field="description",
        add_path="firewall/filter/add_rule",
        set_path="firewall/filter/set_rule/{id}",
        del_path="firewall/filter/del_rule/{id}",
        payload_key="rule",
        reload_domain="firewall_filter",
    ),
    KindDescriptor(
        name="cron",
        search="cron/settings/search_jobs",
        identity_field="description",
        add_path="cron/settings/add_job",
        set_path="cron/settings/set_job/{id}",
        del_path="cron/settings/del_job/{id}",
        payload_key="job",
        reload_domain="cron",
    ),
    KindDescriptor(
        name="trust_ca",
        search="trust/ca/search",
        identity_field="descr",
        add_path="trust/ca/add",
        set_path="trust/ca/set/{id}",
        del_path="trust/ca/del/{id}",
        payload_key="ca",
        skip_fields=CA_VOLATILE_FIELDS,
        volatile_fields=CA_VOLATILE_FIELDS,
    ),
    KindDescriptor(
        name="trust_cert",
        search="trust/cert/search",
        identity_field="descr",
        add_path="trust/cert/add",
        set_path="trust/cert/set/{id}",
        del_path="trust/cert/del/{id}",
        payload_key="cert",
        skip_fields=CERT_VOLATILE_FIELDS,
        volatile_fields=CERT_VOLATILE_FIELDS,
    ),
    # The CRL search lists every CA; only rows carrying a CRL count, and
    # the CRL itself is addressed by the CA reference.
    KindDescriptor(
        name="trust_crl",
        search="trust/crl/search",
        search_method="get",
        id_field="refid",
        identity_field="descr",
        inject_identity=False,
        required_fields=("crl_descr",),
        fetch_path="trust/crl/get/{id}",
        fetch_key="crl",
        set_path="trust/crl/set/{id}",
        del_path="trust/crl/del/{id}",
        payload_key="crl",
        status_field="status",
        identifier_lookup=IdentifierLookup(
            endpoint="trust/ca/caList",
            match_field="descr",
            ref_field="caref",
        ),
        skip_fields=frozenset({"serial", "caref", "text"}),
        skip_prefixes=("revoked_reason_",),
    ),
    _haproxy_kind("haproxy_server", "server"),
    # Passwords are stored as bcrypt hashes and never compare equal
    _haproxy_kind("haproxy_user", "user", skip_fields=frozenset({"password"})),
    _haproxy_kind(
        "haproxy_group", "group",
        relations=(RelationField("members", "haproxy_user", MULTIPLE),),
    ),
    _haproxy_kind("haproxy_lua", "lua"),
    _haproxy_kind("haproxy_acl", "acl"),
    _haproxy_kind(
        "haproxy_action", "action",
        relations=(
            RelationField("linkedAcls", "haproxy_acl", MULTIPLE),
            RelationField("use_backend", "haproxy_backend"),
            RelationField("use_server", "haproxy_server"),
            RelationField("mapfile", "haproxy_mapfile"),
            RelationField("map_data_use_backend_file", "haproxy_mapfile"),
            RelationField("map_data_use_backend_default", "haproxy_backend"),
            RelationField("map_use_backend_file", "haproxy_mapfile"),
            RelationField("map_use_backend_default", "haproxy_backend"),
        ),
    ),
    _haproxy_kind(
        "haproxy_backend", "backend",
        relations=(
            RelationField("linkedServers", "haproxy_server", MULTIPLE),
            RelationField("linkedFcgi", "haproxy_fcgi"),
            RelationField("linkedResolver", "haproxy_resolver"),
            RelationField("healthCheck", "haproxy_healthcheck"),
            RelationField("linkedMailer", "haproxy_mailer"),
            RelationField("linkedActions", "haproxy_action", MULTIPLE),
            RelationField("linkedErrorfiles", "haproxy_errorfile", MULTIPLE),
            RelationField("basicAuthUsers", "haproxy_user", MULTIPLE),
            RelationField("basicAuthGroups", "haproxy_group", MULTIPLE),
            RelationField("sslCA", "trust_ca_ref", MULTIPLE),
            RelationField("sslClientCertificate", "trust_cert_ref"),
            RelationField("sslCRL", "trust_crl_ref"),
        ),
    ),
    KindDescriptor(
        name="haproxy_settings",
        search="haproxy/settings/get",
        search_method="get",
        singleton=True,
        set_path="haproxy/settings/set",
        payload_key="haproxy",
        sections=("general", "maintenance"),
        disable_overlay={"general": {"enabled": "0"}},
        reload_domain="haproxy",
        relations=(
            RelationField("general.stats.allowedUsers", "haproxy_user", MULTIPLE),
            RelationField("general.stats.allowedGroups", "haproxy_group", MULTIPLE),
            RelationField("maintenance.cronjobs.syncCertsCron", "cron"),
            RelationField("maintenance.cronjobs.updateOcspCron", "cron"),
            RelationField("maintenance.cronjobs.reloadServiceCron", "cron"),
            RelationField("maintenance.cronjobs.restartServiceCron", "cron"),
        ),
    ),
    KindDescriptor(
        name="zabbix_agent",
        search="zabbixagent/settings/get",
        search_method="get",
        singleton=True,
        set_path="zabbixagent/settings/set",
        payload_key="zabbixagent",
        excluded_sections=("userparameters", "aliases"),
        disable_overlay={"settings": {"main": {"enabled": "0"}}},
        reload_domain="zabbix_agent",
    ),
    # Aliases are read from the agent settings document, keyed by uuid
    KindDescriptor(
        name="zabbix_agent_alias",
        search="zabbixagent/settings/get",
        search_method="get",
        rows_path=("zabbixagent", "aliases", "alias"),
        identity_field="key",
        hidden_fields=("id",),
        add_path="zabbixagent/settings/addAlias",
        set_path="zabbixagent/settings/setAlias/{id}",
        del_path="zabbixagent/settings/delAlias/{id}",
        payload_key="alias",
        reload_domain="zabbix_agent",
    ),
    KindDescriptor(
        name="zabbix_agent_userparameter",
        search="zabbixagent/settings/get",
        search_method="get",
        rows_path=("zabbixagent", "userparameters", "userparameter"),
        identity_field="key",
        hidden_fields=("id",),
        add_path="zabbixagent/settings/addUserparameter",
        set_path="zabbixagent/settings/setUserparameter/{id}",
        del_path="zabbixagent/settings/delUserparameter/{id}",
        payload_key="userparameter",
        reload_domain="zabbix_agent",
    ),
    KindDescriptor(
        name="zabbix_proxy",
        search="zabbixproxy/general/get",
        search_method="get",
        singleton=True,
        set_path="zabbixproxy/general/set",
        payload_key="general",
        disable_overlay={"enabled": "0"},
        reload_domain="zabbix_proxy",
    ),
]

# CA, certificate and CRL references in HAProxy are by refid, not uuid
REFERENCE_KINDS = [
    KindDescriptor(
        name="trust_ca_ref",
        search="trust/ca/search",
        id_field="refid",
        identity_field="descr",
    ),
    KindDescriptor(
        name="trust_cert_ref",
        search="trust/cert/search",
        id_field="refid",
        identity_field="descr",
    ),
    KindDescriptor(
        name="trust_crl_ref",
        search="trust/crl/search",
        search_method="get",
        id_field="refid",
        identity_field="crl_descr",
    ),
]


KINDS: dict[str, KindDescriptor] = {
    kind.name: kind for kind in MANAGED_KINDS + LOOKUP_KINDS + REFERENCE_KINDS
}


def get_kind(name: str) -> KindDescriptor:
    """Look up a kind by name."""
    try:
        return KINDS[name]
    except KeyError:
        raise KeyError(f"Unknown kind: {name}") from None


def managed_kind_names() -> list[str]:
    """Names of the kinds that can be reconciled, in evaluation order."""
    return [kind.name for kind in MANAGED_KINDS]

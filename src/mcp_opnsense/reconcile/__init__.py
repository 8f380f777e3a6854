"""Reconcile - declarative OPNsense configuration management.

Send desired resources, not API calls:
- Uniform discovery over heterogeneous endpoints
- Name <-> identifier translation for cross references
- Field-level diff against live configuration
- One service reload per device per run, skipped on failure

Usage:
    from mcp_opnsense.reconcile import ReconcileEngine, ResourceParser

    engine = ReconcileEngine(inventory)
    resources = ResourceParser().parse({
        "resources": [
            {"kind": "haproxy_acl", "name": "block-foo@fw01",
             "config": {"expression": "hdr_beg", "hdr_beg": "foo."}},
        ]
    })
    result = await engine.apply(resources, dry_run=True)
"""

from .engine import ReconcileEngine
from .schema import (
    Ensure,
    Cardinality,
    ReconfigureState,
    ChangeType,
    RelationField,
    IdentifierLookup,
    ReloadAction,
    KindDescriptor,
    RemoteObject,
    DesiredResource,
    ResourceChange,
    ResourceFailure,
    ReconcileResult,
)
from .kinds import KINDS, MANAGED_KINDS, RELOAD_ACTIONS, get_kind, managed_kind_names
from .normalizer import normalize_selections, is_selection
from .directory import ObjectDirectory, deep_merge
from .resolver import RelationResolver
from .coordinator import ReconfigureCoordinator
from .context import RunContext
from .diff import config_matches, changed_fields, plan_change, summarize_changes
from .driver import ReconciliationDriver
from .parser import ResourceParser, ParseError, split_title, load_document, parse_file

__all__ = [
    # Main engine
    "ReconcileEngine",
    # Schema classes
    "Ensure",
    "Cardinality",
    "ReconfigureState",
    "ChangeType",
    "RelationField",
    "IdentifierLookup",
    "ReloadAction",
    "KindDescriptor",
    "RemoteObject",
    "DesiredResource",
    "ResourceChange",
    "ResourceFailure",
    "ReconcileResult",
    # Kind table
    "KINDS",
    "MANAGED_KINDS",
    "RELOAD_ACTIONS",
    "get_kind",
    "managed_kind_names",
    # Components (for advanced use)
    "normalize_selections",
    "is_selection",
    "ObjectDirectory",
    "deep_merge",
    "RelationResolver",
    "ReconfigureCoordinator",
    "RunContext",
    "config_matches",
    "changed_fields",
    "plan_change",
    "summarize_changes",
    "ReconciliationDriver",
    # Parser
    "ResourceParser",
    "ParseError",
    "split_title",
    "load_document",
    "parse_file",
]

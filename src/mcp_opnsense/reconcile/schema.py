"""Schema definitions for the reconciliation engine.

Defines the remote/desired object model, the per-kind descriptor table
format and the diff/result dataclasses.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional


class Ensure(str, Enum):
    """Desired presence of a resource."""
    PRESENT = "present"
    ABSENT = "absent"


class Cardinality(str, Enum):
    """How many identifiers a relation field holds."""
    SINGLE = "single"
    MULTIPLE = "multiple"   # comma-joined list


class ReconfigureState(str, Enum):
    """Per-device reload state within one run."""
    CLEAN = "clean"
    DIRTY = "dirty"
    ERRORED = "errored"


class ChangeType(str, Enum):
    """Type of change in a plan."""
    CREATE = "create"
    MODIFY = "modify"
    DELETE = "delete"
    NO_CHANGE = "no_change"


@dataclass(frozen=True)
class RelationField:
    """An attribute that references objects of another kind.

    ``field`` may be a dotted path into nested settings
    (e.g. ``general.stats.allowedUsers``).
    """
    field: str
    target: str
    cardinality: Cardinality = Cardinality.SINGLE

    @property
    def multiple(self) -> bool:
        return self.cardinality == Cardinality.MULTIPLE


@dataclass(frozen=True)
class IdentifierLookup:
    """Resolve an object's identifier through a sibling list endpoint.

    Used by kinds that have no identifier of their own (revocation lists
    are addressed by their CA's ``caref``).
    """
    endpoint: str
    match_field: str
    ref_field: str
    method: str = "get"


@dataclass(frozen=True)
class ReloadAction:
    """Device-side action that applies saved configuration."""
    domain: str
    endpoint: str
    configtest: Optional[str] = None
    status_field: str = "status"
    expected_status: str = "ok"


@dataclass(frozen=True)
class KindDescriptor:
    """Parameter table for one remote object kind.

    Endpoint templates may contain ``{id}`` which is replaced by the
    object's identifier.
    """
    name: str
    search: str
    search_method: str = "post"
    # Path to the rows inside the search response. A list of rows carries
    # its identifier in ``id_field``; a mapping is keyed by identifier.
    rows_path: tuple[str, ...] = ("rows",)
    id_field: str = "uuid"
    identity_field: str = "name"
    inject_identity: bool = True
    required_fields: tuple[str, ...] = ()
    hidden_fields: tuple[str, ...] = ()
    # Skip rows whose identifier is not a uuid (system-managed entries)
    uuid_rows_only: bool = False

    add_path: Optional[str] = None
    set_path: Optional[str] = None
    del_path: Optional[str] = None
    fetch_path: Optional[str] = None
    fetch_key: Optional[str] = None
    payload_key: str = ""
    status_field: str = "result"
    identifier_lookup: Optional[IdentifierLookup] = None

    relations: tuple[RelationField, ...] = ()
    reload_domain: Optional[str] = None

    # Compared-but-ignored and stripped-on-update attributes
    skip_fields: frozenset[str] = frozenset()
    skip_prefixes: tuple[str, ...] = ()
    volatile_fields: frozenset[str] = frozenset()

    # Settings kinds: one object per device, named after the device
    singleton: bool = False
    sections: tuple[str, ...] = ()
    excluded_sections: tuple[str, ...] = ()
    disable_overlay: Optional[dict] = None

    @property
    def managed(self) -> bool:
        """Whether the kind can be mutated (lookup-only kinds cannot)."""
        return self.set_path is not None or self.add_path is not None

    def endpoint(self, template: str, identifier: Optional[str] = None) -> str:
        if "{id}" in template:
            if not identifier:
                raise ValueError(f"{self.name}: endpoint '{template}' needs an identifier")
            return template.replace("{id}", identifier)
        return template


@dataclass
class RemoteObject:
    """An object discovered on a device."""
    kind: str
    device: str
    identifier: Optional[str]
    name: str
    attributes: dict[str, Any] = field(default_factory=dict)

    @property
    def key(self) -> tuple[str, str]:
        return (self.device, self.name)


@dataclass
class DesiredResource:
    """A declared resource to reconcile."""
    kind: str
    device: str
    name: str
    attributes: dict[str, Any] = field(default_factory=dict)
    ensure: Ensure = Ensure.PRESENT

    @property
    def key(self) -> tuple[str, str]:
        return (self.device, self.name)

    @property
    def title(self) -> str:
        if self.name == self.device:
            return self.device
        return f"{self.name}@{self.device}"


# --- Plan ---

@dataclass
class ResourceChange:
    """A single planned change."""
    kind: str
    device: str
    name: str
    change_type: ChangeType
    identifier: Optional[str] = None
    desired: dict[str, Any] = field(default_factory=dict)
    current: Optional[dict[str, Any]] = None
    changed_fields: list[str] = field(default_factory=list)

    @property
    def title(self) -> str:
        if self.name == self.device:
            return self.device
        return f"{self.name}@{self.device}"


# --- Results ---

@dataclass
class ResourceFailure:
    """A resource whose change could not be applied."""
    kind: str
    device: str
    name: str
    operation: str
    error: str


@dataclass
class ReconcileResult:
    """Result of reconciling one or more kinds."""
    dry_run: bool = False
    changes: list[ResourceChange] = field(default_factory=list)
    applied: list[ResourceChange] = field(default_factory=list)
    failures: list[ResourceFailure] = field(default_factory=list)
    reloads: dict[str, dict[str, str]] = field(default_factory=dict)

    @property
    def success(self) -> bool:
        return not self.failures

    def merge(self, other: "ReconcileResult") -> None:
        self.changes.extend(other.changes)
        self.applied.extend(other.applied)
        self.failures.extend(other.failures)
        for domain, outcomes in other.reloads.items():
            self.reloads.setdefault(domain, {}).update(outcomes)

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "success": self.success,
            "dry_run": self.dry_run,
            "changes": [
                {
                    "kind": c.kind,
                    "title": c.title,
                    "change": c.change_type.value,
                    "fields": c.changed_fields,
                }
                for c in self.changes
            ],
            "applied": [f"{c.change_type.value} {c.kind} {c.title}" for c in self.applied],
            "failures": [
                {
                    "kind": f.kind,
                    "device": f.device,
                    "name": f.name,
                    "operation": f.operation,
                    "error": f.error,
                }
                for f in self.failures
            ],
            "reloads": self.reloads,
        }

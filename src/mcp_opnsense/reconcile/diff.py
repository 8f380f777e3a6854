"""Diff between desired resources and discovered remote objects.

Only attributes named in the desired config are compared; anything the
device adds on its own (defaults, computed fields) is ignored.
"""
from typing import Any, Optional

from .schema import (
    ChangeType,
    DesiredResource,
    Ensure,
    KindDescriptor,
    RemoteObject,
    ResourceChange,
)


def _as_wire(value: Any) -> str:
    """Render a desired scalar the way the device reports it."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "1" if value else "0"
    if isinstance(value, (list, tuple)):
        return ",".join(_as_wire(v) for v in value)
    return str(value)


def _skipped(kind: KindDescriptor, key: str) -> bool:
    return key in kind.skip_fields or any(key.startswith(p) for p in kind.skip_prefixes)


def changed_fields(
    kind: KindDescriptor,
    desired: dict,
    current: Any,
    prefix: str = "",
) -> list[str]:
    """List the dotted paths of desired attributes that differ from current."""
    current = current if isinstance(current, dict) else {}
    changed = []

    for key, want in desired.items():
        if _skipped(kind, key):
            continue
        if not prefix and key == kind.identity_field and not kind.singleton:
            continue

        path = f"{prefix}{key}"
        have = current.get(key)
        if isinstance(want, dict):
            changed.extend(changed_fields(kind, want, have, prefix=f"{path}."))
        elif isinstance(have, dict) or _as_wire(want) != _as_wire(have):
            changed.append(path)

    return changed


def config_matches(kind: KindDescriptor, desired: dict, current: Any) -> bool:
    """True when every desired attribute already has its value on the device."""
    return not changed_fields(kind, desired, current)


def plan_change(
    kind: KindDescriptor,
    resource: DesiredResource,
    current: Optional[RemoteObject],
) -> Optional[ResourceChange]:
    """Work out the change one resource needs. None means in sync."""
    if resource.ensure == Ensure.ABSENT:
        if current is None:
            return None
        if kind.singleton and config_matches(kind, kind.disable_overlay or {}, current.attributes):
            return None
        return ResourceChange(
            kind=kind.name,
            device=resource.device,
            name=resource.name,
            change_type=ChangeType.DELETE,
            identifier=current.identifier,
            current=current.attributes,
        )

    if current is None:
        return ResourceChange(
            kind=kind.name,
            device=resource.device,
            name=resource.name,
            change_type=ChangeType.CREATE,
            desired=resource.attributes,
        )

    fields = changed_fields(kind, resource.attributes, current.attributes)
    if not fields:
        return None

    return ResourceChange(
        kind=kind.name,
        device=resource.device,
        name=resource.name,
        change_type=ChangeType.MODIFY,
        identifier=current.identifier,
        desired=resource.attributes,
        current=current.attributes,
        changed_fields=fields,
    )


def summarize_changes(changes: list[ResourceChange]) -> str:
    """
    Create a human-readable summary of planned changes.

    Useful for dry-run output and logging.
    """
    if not changes:
        return "No changes needed - current state matches desired state"

    lines = [f"Changes to apply ({len(changes)} total):", ""]

    for change in changes:
        if change.change_type == ChangeType.CREATE:
            lines.append(f"  [+] Create {change.kind} {change.title}")
            for key in sorted(change.desired):
                lines.append(f"      {key}: {change.desired[key]}")

        elif change.change_type == ChangeType.DELETE:
            lines.append(f"  [-] Delete {change.kind} {change.title}")
            if change.identifier:
                lines.append(f"      (was: {change.identifier})")

        elif change.change_type == ChangeType.MODIFY:
            lines.append(f"  [~] Modify {change.kind} {change.title}")
            for path in change.changed_fields:
                lines.append(f"      {path}")

    return "\n".join(lines)

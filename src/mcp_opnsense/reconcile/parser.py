"""Parser for desired state documents.

Converts dict/YAML/JSON input to DesiredResource objects::

    resources:
      - kind: haproxy_acl
        name: block-foo@fw01
        config:
          expression: hdr_beg
      - kind: haproxy_settings
        name: fw01
        ensure: absent
"""
import json
from pathlib import Path
from typing import Any

import yaml

from .kinds import KINDS
from .schema import DesiredResource, Ensure


class ParseError(Exception):
    """Error parsing a desired state document."""
    pass


def split_title(title: str) -> tuple[str, str]:
    """Split ``name@device`` at the last ``@``.

    Examples:
        "block-foo@fw01" -> ("block-foo", "fw01")
        "ops@example.com@fw01" -> ("ops@example.com", "fw01")
    """
    name, sep, device = title.rpartition("@")
    if not sep or not name or not device:
        raise ParseError(f"Invalid title '{title}': expected 'name@device'")
    return name, device


class ResourceParser:
    """Parse desired resources from a document."""

    def parse(self, document: dict[str, Any]) -> list[DesiredResource]:
        """
        Parse a document with a top-level ``resources`` list.

        Raises:
            ParseError: If the document or any entry is invalid
        """
        if not isinstance(document, dict):
            raise ParseError("Document must be a mapping with a 'resources' list")

        entries = document.get("resources")
        if not isinstance(entries, list):
            raise ParseError("Missing required field: resources (a list)")

        resources = [self._parse_entry(i, entry) for i, entry in enumerate(entries)]

        seen = set()
        for resource in resources:
            key = (resource.kind, resource.device, resource.name)
            if key in seen:
                raise ParseError(f"Duplicate resource: {resource.kind} {resource.title}")
            seen.add(key)

        return resources

    def _parse_entry(self, index: int, entry: Any) -> DesiredResource:
        if not isinstance(entry, dict):
            raise ParseError(f"Resource #{index} must be a mapping")

        kind_name = entry.get("kind")
        if not kind_name:
            raise ParseError(f"Resource #{index}: missing required field: kind")
        kind = KINDS.get(kind_name)
        if kind is None or not kind.managed:
            raise ParseError(f"Resource #{index}: unsupported kind: {kind_name}")

        name = entry.get("name")
        if not name:
            raise ParseError(f"Resource #{index}: missing required field: name")
        name = str(name)

        device = entry.get("device")
        if kind.singleton:
            # Settings are one per device and titled by the device
            device = str(device or name)
            name = device
        elif device:
            device = str(device)
        else:
            name, device = split_title(name)

        ensure_str = entry.get("ensure", "present")
        try:
            ensure = Ensure(ensure_str)
        except ValueError:
            raise ParseError(
                f"Resource #{index}: invalid ensure: {ensure_str}. "
                f"Must be 'present' or 'absent'"
            )

        config = entry.get("config") or {}
        if not isinstance(config, dict):
            raise ParseError(f"Resource #{index}: config must be a mapping")

        return DesiredResource(
            kind=kind_name,
            device=device,
            name=name,
            attributes=config,
            ensure=ensure,
        )


def load_document(path: str) -> dict[str, Any]:
    """Read a YAML or JSON desired state file."""
    file = Path(path)
    try:
        text = file.read_text(encoding="utf-8")
    except OSError as e:
        raise ParseError(f"Cannot read {path}: {e}") from e

    try:
        if file.suffix == ".json":
            return json.loads(text)
        return yaml.safe_load(text) or {}
    except (json.JSONDecodeError, yaml.YAMLError) as e:
        raise ParseError(f"Cannot parse {path}: {e}") from e


def parse_file(path: str) -> list[DesiredResource]:
    return ResourceParser().parse(load_document(path))

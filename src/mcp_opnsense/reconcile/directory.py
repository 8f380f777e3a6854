"""Remote object directory.

Uniform list/fetch/create/update/delete over the heterogeneous OPNsense
endpoints, driven entirely by a KindDescriptor.
"""
import copy
import logging
import re
from typing import Any, Callable, Optional

from ..errors import MutationError, ReferenceLookupError
from .schema import KindDescriptor, RemoteObject

logger = logging.getLogger(__name__)

ClientProvider = Callable[[str], Any]

UUID_RE = re.compile(r"^[0-9a-f]{8}(-[0-9a-f]{4}){3}-[0-9a-f]{12}$", re.IGNORECASE)


def deep_merge(base: dict, overlay: dict) -> dict:
    """Recursively merge two mappings (overlay wins for scalars)."""
    merged = copy.deepcopy(base)
    for key, value in overlay.items():
        if isinstance(merged.get(key), dict) and isinstance(value, dict):
            merged[key] = deep_merge(merged[key], value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def _dig(data: Any, path: tuple[str, ...]) -> Any:
    for key in path:
        if not isinstance(data, dict):
            return None
        data = data.get(key)
    return data


class ObjectDirectory:
    """Directory of one object kind across devices."""

    def __init__(self, kind: KindDescriptor, client_for: ClientProvider):
        self.kind = kind
        self.client_for = client_for

    async def _call(self, device: str, method: str, path: str) -> Any:
        client = self.client_for(device)
        if method == "get":
            return await client.get(path)
        return await client.post(path, {})

    # === Discovery ===

    async def rows(self, device: str) -> list[tuple[Optional[str], dict]]:
        """Enumerate raw ``(identifier, row)`` pairs with one API call."""
        kind = self.kind
        response = await self._call(device, kind.search_method, kind.search)

        if kind.singleton:
            data = response.get(kind.payload_key) if isinstance(response, dict) else None
            return [(None, data if isinstance(data, dict) else {})]

        container = _dig(response, kind.rows_path)
        if isinstance(container, dict):
            return [
                (str(identifier), row)
                for identifier, row in container.items()
                if isinstance(row, dict)
            ]
        if isinstance(container, list):
            pairs = []
            for row in container:
                if not isinstance(row, dict):
                    continue
                identifier = str(row.get(kind.id_field) or "") or None
                if kind.uuid_rows_only and not UUID_RE.match(identifier or ""):
                    continue
                pairs.append((identifier, row))
            return pairs
        return []

    def _settings_sections(self, data: dict) -> dict:
        kind = self.kind
        if kind.sections:
            data = {k: v for k, v in data.items() if k in kind.sections}
        return {k: v for k, v in data.items() if k not in kind.excluded_sections}

    async def list(self, device: str) -> list[RemoteObject]:
        """List remote objects of this kind on a device.

        Rows without an identity name are discovery noise and are skipped.
        """
        kind = self.kind
        objects = []

        for identifier, row in await self.rows(device):
            if kind.singleton:
                objects.append(RemoteObject(
                    kind=kind.name,
                    device=device,
                    identifier=None,
                    name=device,
                    attributes=self._settings_sections(row),
                ))
                continue

            name = str(row.get(kind.identity_field) or "")
            if not name:
                continue
            if any(not row.get(f) for f in kind.required_fields):
                continue

            if kind.fetch_path:
                if not identifier:
                    continue
                attributes = await self.fetch(device, identifier)
            else:
                hidden = {kind.id_field, *kind.hidden_fields}
                attributes = {k: v for k, v in row.items() if k not in hidden}

            objects.append(RemoteObject(
                kind=kind.name,
                device=device,
                identifier=identifier,
                name=name,
                attributes=attributes,
            ))

        logger.debug(f"{kind.name}: found {len(objects)} objects on {device}")
        return objects

    async def fetch(self, device: str, identifier: str) -> dict:
        """Fetch the detail document of one object."""
        kind = self.kind
        if not kind.fetch_path:
            raise ValueError(f"{kind.name} has no detail endpoint")

        response = await self.client_for(device).get(kind.endpoint(kind.fetch_path, identifier))
        if not isinstance(response, dict):
            return {}
        detail = response.get(kind.fetch_key) if kind.fetch_key else response
        return detail if isinstance(detail, dict) else {}

    async def resolve_identifier(self, device: str, name: str) -> str:
        """Find the identifier of an object through its lookup endpoint.

        Raises:
            ReferenceLookupError: no row matches, or the match has no reference
        """
        kind = self.kind
        lookup = kind.identifier_lookup
        if lookup is None:
            raise ReferenceLookupError(
                f"{kind.name}: no identifier lookup for '{name}'",
                kind=kind.name, device=device, reference=name,
            )

        response = await self._call(device, lookup.method, lookup.endpoint)
        rows = (response.get("rows") or []) if isinstance(response, dict) else []
        match = next((r for r in rows if r.get(lookup.match_field) == name), None)
        if match is None:
            raise ReferenceLookupError(
                f"{kind.name}: '{name}' not found via '{lookup.endpoint}' on device '{device}'",
                kind=kind.name, device=device, reference=name,
            )

        reference = match.get(lookup.ref_field)
        if not reference:
            raise ReferenceLookupError(
                f"{kind.name}: '{name}' has no {lookup.ref_field} on device '{device}'",
                kind=kind.name, device=device, reference=name,
            )
        return str(reference)

    # === Mutation ===

    def _check(
        self,
        response: Any,
        expected: str,
        operation: str,
        name: str,
        device: str,
        identifier: Optional[str],
    ) -> None:
        status = response.get(self.kind.status_field) if isinstance(response, dict) else None
        if status is None or str(status).strip().lower() != expected:
            raise MutationError(
                kind=self.kind.name,
                operation=operation,
                name=name,
                device=device,
                identifier=identifier,
                response=response,
            )

    async def create(self, device: str, attributes: dict, name: str) -> Optional[str]:
        """Create an object; returns its identifier when the device reports one."""
        kind = self.kind
        identifier = None

        if kind.identifier_lookup is not None:
            identifier = await self.resolve_identifier(device, name)
            path = kind.endpoint(kind.set_path, identifier)
        elif kind.add_path:
            path = kind.add_path
        else:
            path = kind.endpoint(kind.set_path)

        response = await self.client_for(device).post(path, {kind.payload_key: attributes})
        self._check(response, "saved", "create", name, device, identifier)

        logger.info(f"{kind.name}: created '{name}' on {device}")
        if identifier is None and isinstance(response, dict) and response.get("uuid"):
            identifier = str(response["uuid"])
        return identifier

    async def update(self, device: str, identifier: Optional[str], attributes: dict, name: str) -> None:
        kind = self.kind
        if not kind.singleton and not identifier and kind.identifier_lookup is not None:
            identifier = await self.resolve_identifier(device, name)

        payload = {k: v for k, v in attributes.items() if k not in kind.volatile_fields}
        path = kind.endpoint(kind.set_path, identifier)

        response = await self.client_for(device).post(path, {kind.payload_key: payload})
        self._check(response, "saved", "update", name, device, identifier)
        logger.info(f"{kind.name}: updated '{name}' on {device}")

    async def delete(
        self,
        device: str,
        identifier: Optional[str],
        name: str,
        current: Optional[dict] = None,
    ) -> None:
        """Delete an object.

        Settings kinds cannot be deleted; they are disabled by saving the
        current settings with the kind's disable overlay applied.
        """
        kind = self.kind
        client = self.client_for(device)

        if kind.singleton:
            config = deep_merge(current or {}, kind.disable_overlay or {})
            response = await client.post(kind.endpoint(kind.set_path), {kind.payload_key: config})
            self._check(response, "saved", "delete", name, device, identifier)
            logger.info(f"{kind.name}: disabled on {device}")
            return

        if not identifier and kind.identifier_lookup is not None:
            identifier = await self.resolve_identifier(device, name)

        response = await client.post(kind.endpoint(kind.del_path, identifier), {})
        self._check(response, "deleted", "delete", name, device, identifier)
        logger.info(f"{kind.name}: deleted '{name}' on {device}")

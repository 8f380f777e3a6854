"""Relation resolver: name <-> identifier translation for cross references.

Devices store references to other objects as identifiers (uuid/refid);
desired state refers to them by name. Each target kind is listed at most
once per translation call (or once per shared cache).
"""
import copy
import logging
from typing import Any, Callable, Iterable, Optional

from ..errors import OpnError, ReferenceLookupError
from .directory import UUID_RE, ObjectDirectory
from .kinds import KINDS
from .schema import KindDescriptor, RelationField

logger = logging.getLogger(__name__)

# (device, target kind) -> (identifier -> name, name -> identifier)
RelationCache = dict[tuple[str, str], tuple[dict[str, str], dict[str, str]]]

_MISSING = object()


def get_path(data: dict, path: str) -> Any:
    """Read a dotted path from nested mappings, or _MISSING."""
    for key in path.split("."):
        if not isinstance(data, dict) or key not in data:
            return _MISSING
        data = data[key]
    return data


def set_path(data: dict, path: str, value: Any) -> None:
    """Write a dotted path that is known to exist."""
    *parents, leaf = path.split(".")
    for key in parents:
        data = data[key]
    data[leaf] = value


class RelationResolver:
    """Translate relation fields between device identifiers and names."""

    def __init__(
        self,
        client_for: Callable[[str], Any],
        kinds: Optional[dict[str, KindDescriptor]] = None,
        strict: bool = False,
    ):
        self.client_for = client_for
        self.kinds = kinds if kinds is not None else KINDS
        self.strict = strict

    async def _maps(
        self,
        device: str,
        target: str,
        cache: RelationCache,
    ) -> tuple[dict[str, str], dict[str, str]]:
        key = (device, target)
        if key in cache:
            return cache[key]

        kind = self.kinds[target]
        by_id: dict[str, str] = {}
        by_name: dict[str, str] = {}
        try:
            rows = await ObjectDirectory(kind, self.client_for).rows(device)
        except OpnError as e:
            # Unresolvable references then pass through as raw values
            logger.warning(f"Cannot list {target} on {device}, leaving references unresolved: {e}")
            rows = []

        for identifier, row in rows:
            name = str(row.get(kind.identity_field) or "")
            if not identifier or not name:
                continue
            by_id[identifier] = name
            by_name.setdefault(name, identifier)

        logger.debug(f"Resolved {len(by_id)} {target} references on {device}")
        cache[key] = (by_id, by_name)
        return cache[key]

    @staticmethod
    def _present(relations: Iterable[RelationField], attributes: dict):
        for relation in relations:
            value = get_path(attributes, relation.field)
            if value is _MISSING or value is None or str(value) == "":
                continue
            yield relation, str(value)

    @staticmethod
    def _items(relation: RelationField, value: str) -> list[str]:
        if relation.multiple:
            return [item.strip() for item in value.split(",")]
        return [value]

    async def translate_to_names(
        self,
        device: str,
        relations: Iterable[RelationField],
        attributes: dict,
        cache: Optional[RelationCache] = None,
    ) -> dict:
        """Return a copy of ``attributes`` with identifiers replaced by names.

        Identifiers that do not resolve are kept as they are.
        """
        cache = {} if cache is None else cache
        result = copy.deepcopy(attributes)

        for relation, value in self._present(relations, result):
            by_id, _ = await self._maps(device, relation.target, cache)
            names = [by_id.get(item, item) for item in self._items(relation, value)]
            set_path(result, relation.field, ",".join(names))

        return result

    async def translate_to_uuids(
        self,
        device: str,
        relations: Iterable[RelationField],
        attributes: dict,
        cache: Optional[RelationCache] = None,
    ) -> dict:
        """Return a copy of ``attributes`` with names replaced by identifiers.

        Values already shaped like a uuid are left alone. Names that do not
        resolve pass through unchanged so the device reports the invalid
        reference, unless the resolver is strict.

        Raises:
            ReferenceLookupError: strict mode and a name did not resolve
        """
        cache = {} if cache is None else cache
        result = copy.deepcopy(attributes)

        for relation, value in self._present(relations, result):
            items = self._items(relation, value)
            if all(not item or UUID_RE.match(item) for item in items):
                continue

            _, by_name = await self._maps(device, relation.target, cache)
            resolved = []
            for item in items:
                if not item or UUID_RE.match(item):
                    resolved.append(item)
                elif item in by_name:
                    resolved.append(by_name[item])
                elif self.strict:
                    raise ReferenceLookupError(
                        f"Cannot resolve {relation.target} '{item}' for field "
                        f"'{relation.field}' on '{device}'",
                        kind=relation.target, device=device, reference=item,
                    )
                else:
                    logger.debug(
                        f"{relation.field}: '{item}' is not a known {relation.target} "
                        f"on {device}, passing it through"
                    )
                    resolved.append(item)
            set_path(result, relation.field, ",".join(resolved))

        return result

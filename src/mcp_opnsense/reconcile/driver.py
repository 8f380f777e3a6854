"""Reconciliation driver: discover -> diff -> mutate -> coordinate, for one kind."""
import asyncio
import logging
from typing import Iterable, Optional

from ..errors import ReferenceLookupError
from ..utils.logging_config import timed_section
from .context import RunContext
from .diff import plan_change
from .directory import ObjectDirectory
from .normalizer import normalize_selections
from .resolver import RelationCache
from .schema import (
    ChangeType,
    DesiredResource,
    KindDescriptor,
    ReconcileResult,
    RemoteObject,
    ResourceChange,
    ResourceFailure,
)

logger = logging.getLogger(__name__)


class ReconciliationDriver:
    """
    Generic driver for one object kind.

    All kind-specific behaviour comes from the KindDescriptor; run-scoped
    state (coordinators, resolver, audit) comes from the RunContext.

    Usage:
        context = RunContext.for_inventory(inventory)
        driver = ReconciliationDriver(get_kind("haproxy_acl"), context)
        result = await driver.reconcile(resources)
        await context.finish()
    """

    def __init__(self, kind: KindDescriptor, context: RunContext):
        self.kind = kind
        self.context = context
        self.directory = ObjectDirectory(kind, context.client_for)

    # === Discovery ===

    async def discover(self, devices: Optional[Iterable[str]] = None) -> list[RemoteObject]:
        """List this kind on every device (all configured devices by default).

        Devices are read concurrently. A device that fails is reported as a
        warning and contributes no objects.
        """
        devices = list(devices) if devices is not None else self.context.device_names()
        per_device = await asyncio.gather(*(self._discover_device(d) for d in devices))
        return [obj for objects in per_device for obj in objects]

    async def _discover_device(self, device: str) -> list[RemoteObject]:
        kind = self.kind
        cache: RelationCache = {}
        try:
            async with timed_section("discover", device_id=device, kind=kind.name):
                objects = await self.directory.list(device)
                for obj in objects:
                    obj.attributes = normalize_selections(obj.attributes)
                    if kind.relations:
                        obj.attributes = await self.context.resolver.translate_to_names(
                            device, kind.relations, obj.attributes, cache
                        )
        except Exception as e:
            logger.warning(f"{kind.name}: discovery failed on '{device}': {e}")
            return []
        return objects

    # === Planning ===

    async def plan(self, resources: list[DesiredResource]) -> list[ResourceChange]:
        """Diff desired resources against the devices they name."""
        devices = sorted({r.device for r in resources})
        current: dict[tuple[str, str], RemoteObject] = {}
        for obj in await self.discover(devices):
            if obj.key in current:
                logger.debug(f"{self.kind.name}: duplicate '{obj.name}' on {obj.device}, keeping first")
                continue
            current[obj.key] = obj

        changes = []
        for resource in resources:
            change = plan_change(self.kind, resource, current.get(resource.key))
            if change is not None:
                changes.append(change)
        return changes

    # === Mutation ===

    async def _payload(self, change: ResourceChange) -> dict:
        kind = self.kind
        attributes = dict(change.desired)
        if kind.inject_identity and not kind.singleton:
            attributes[kind.identity_field] = change.name
        if kind.relations:
            attributes = await self.context.resolver.translate_to_uuids(
                change.device, kind.relations, attributes
            )
        return attributes

    async def _mutate(self, change: ResourceChange) -> Optional[str]:
        directory = self.directory
        device = change.device

        if change.change_type == ChangeType.DELETE:
            current = None
            if self.kind.singleton and self.kind.relations:
                current = await self.context.resolver.translate_to_uuids(
                    device, self.kind.relations, change.current or {}
                )
            elif self.kind.singleton:
                current = change.current
            await directory.delete(device, change.identifier, change.name, current=current)
            return change.identifier

        payload = await self._payload(change)
        if change.change_type == ChangeType.CREATE:
            return await directory.create(device, payload, change.name)

        await directory.update(device, change.identifier, payload, change.name)
        return change.identifier

    async def apply_change(self, change: ResourceChange) -> None:
        """Apply one change and record it with the coordinator.

        A failed lookup changed nothing and leaves the device unmarked; any
        other failure marks the device errored. Both propagate.
        """
        kind = self.kind
        context = self.context
        operation = change.change_type.value

        try:
            async with timed_section(operation, device_id=change.device, kind=kind.name):
                identifier = await self._mutate(change)
        except ReferenceLookupError as e:
            context.tracker.log_change(
                kind.name, change.device, change.name, operation, change.desired,
                success=False, identifier=change.identifier, error=str(e),
            )
            raise
        except Exception as e:
            context.mark_error(kind, change.device)
            context.tracker.log_change(
                kind.name, change.device, change.name, operation, change.desired,
                success=False, identifier=change.identifier, error=str(e),
            )
            raise

        context.mark(kind, change.device)
        context.tracker.log_change(
            kind.name, change.device, change.name, operation, change.desired,
            success=True, identifier=identifier,
        )

    async def reconcile(
        self,
        resources: list[DesiredResource],
        dry_run: Optional[bool] = None,
    ) -> ReconcileResult:
        """Plan and apply a batch of resources of this kind.

        Resources are applied one at a time. A failing resource is recorded
        in the result and the batch carries on. Reloads are not triggered
        here; see ``finish()``.
        """
        dry_run = self.context.dry_run if dry_run is None else dry_run
        result = ReconcileResult(dry_run=dry_run)
        result.changes = await self.plan(resources)

        for change in result.changes:
            if dry_run:
                logger.info(f"DRY RUN: would {change.change_type.value} {self.kind.name} {change.title}")
                self.context.tracker.log_change(
                    self.kind.name, change.device, change.name, change.change_type.value,
                    change.desired, success=True, identifier=change.identifier, dry_run=True,
                )
                continue

            try:
                await self.apply_change(change)
            except Exception as e:
                logger.error(f"{self.kind.name}: {change.change_type.value} {change.title} failed: {e}")
                result.failures.append(ResourceFailure(
                    kind=self.kind.name,
                    device=change.device,
                    name=change.name,
                    operation=change.change_type.value,
                    error=str(e),
                ))
                continue
            result.applied.append(change)

        return result

    async def finish(self) -> dict[str, dict[str, str]]:
        """Run the reload for this kind's domain (the end-of-batch hook)."""
        if self.kind.reload_domain is None:
            return {}
        return await self.context.finish([self.kind.reload_domain])

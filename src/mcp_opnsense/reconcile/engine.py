"""Reconcile Engine - orchestrates a multi-kind reconciliation run.

Provides a single entry point for:
1. Discovering remote objects of a kind
2. Planning the changes a set of desired resources needs
3. Applying them, with one coordinated reload per device and domain
"""
import logging
from collections import defaultdict
from typing import Optional

from ..config.inventory import DeviceInventory
from .context import RunContext
from .driver import ReconciliationDriver
from .kinds import MANAGED_KINDS, get_kind
from .schema import DesiredResource, ReconcileResult, RemoteObject, ResourceChange

logger = logging.getLogger(__name__)


class ReconcileEngine:
    """
    Main engine for reconciling desired resources against devices.

    Usage:
        engine = ReconcileEngine(inventory)
        result = await engine.apply(resources, dry_run=True)
    """

    def __init__(
        self,
        inventory: DeviceInventory,
        strict_relations: bool = False,
        user: str = "system",
    ):
        """
        Initialize the engine.

        Args:
            inventory: Device inventory providing clients per device
            strict_relations: Fail on relation names that do not resolve
            user: User identifier for the audit log
        """
        self.inventory = inventory
        self.strict_relations = strict_relations
        self.user = user

    def new_context(self, dry_run: bool = False) -> RunContext:
        return RunContext.for_inventory(
            self.inventory,
            dry_run=dry_run,
            strict_relations=self.strict_relations,
            user=self.user,
        )

    @staticmethod
    def _by_kind(resources: list[DesiredResource]) -> list[tuple[str, list[DesiredResource]]]:
        """Group resources by kind, in evaluation order."""
        grouped: dict[str, list[DesiredResource]] = defaultdict(list)
        for resource in resources:
            get_kind(resource.kind)
            grouped[resource.kind].append(resource)
        return [(k.name, grouped[k.name]) for k in MANAGED_KINDS if k.name in grouped]

    async def discover(self, kind: str, devices: Optional[list[str]] = None) -> list[RemoteObject]:
        """Discover objects of one kind (on all devices by default)."""
        context = self.new_context()
        if devices is not None:
            devices = self.inventory.resolve_targets(devices)
        return await ReconciliationDriver(get_kind(kind), context).discover(devices)

    async def plan(self, resources: list[DesiredResource]) -> list[ResourceChange]:
        """Calculate the changes needed, without touching any device."""
        context = self.new_context(dry_run=True)
        changes = []
        for kind, batch in self._by_kind(resources):
            changes.extend(await ReconciliationDriver(get_kind(kind), context).plan(batch))
        return changes

    async def apply(self, resources: list[DesiredResource], dry_run: bool = False) -> ReconcileResult:
        """
        Reconcile every resource, then reload each touched device once.

        Kinds are processed in table order. The reload barrier runs after
        all kinds, so a domain shared by several kinds (HAProxy) reloads a
        device at most once per run, and never if any mutation on it failed.

        Args:
            resources: Desired resources, any mix of kinds and devices
            dry_run: If True, plan and audit only

        Returns:
            ReconcileResult with changes, applied mutations, failures and reloads
        """
        context = self.new_context(dry_run=dry_run)
        context.begin()
        result = ReconcileResult(dry_run=dry_run)

        for kind, batch in self._by_kind(resources):
            logger.info(f"{'DRY RUN: ' if dry_run else ''}Reconciling {len(batch)} {kind} resources")
            driver = ReconciliationDriver(get_kind(kind), context)
            result.merge(await driver.reconcile(batch))

        if not dry_run:
            result.reloads = await context.finish()

        logger.info(
            f"Run finished: {len(result.applied)} applied, {len(result.failures)} failed, "
            f"{sum(len(o) for o in result.reloads.values())} reloads"
        )
        return result

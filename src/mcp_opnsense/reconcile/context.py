"""Run context: everything scoped to one reconciliation run."""
import logging
from typing import Any, Callable, Optional

from ..utils.audit_log import ChangeTracker
from .coordinator import ReconfigureCoordinator
from .kinds import KINDS, RELOAD_ACTIONS
from .resolver import RelationResolver
from .schema import KindDescriptor, ReloadAction

logger = logging.getLogger(__name__)


class RunContext:
    """Run-scoped state shared by every driver in a run.

    Holds one ReconfigureCoordinator per reconfigure domain, the relation
    resolver and the audit tracker. A new context (or ``begin()``) starts
    with every device clean.
    """

    def __init__(
        self,
        client_for: Callable[[str], Any],
        device_names: Optional[Callable[[], list[str]]] = None,
        dry_run: bool = False,
        strict_relations: bool = False,
        user: str = "system",
        kinds: Optional[dict[str, KindDescriptor]] = None,
        reload_actions: Optional[dict[str, ReloadAction]] = None,
    ):
        self.client_for = client_for
        self.device_names = device_names or (lambda: [])
        self.dry_run = dry_run
        self.kinds = kinds if kinds is not None else KINDS

        actions = reload_actions if reload_actions is not None else RELOAD_ACTIONS
        self.coordinators: dict[str, ReconfigureCoordinator] = {
            domain: ReconfigureCoordinator(action, client_for)
            for domain, action in actions.items()
        }
        self.resolver = RelationResolver(client_for, self.kinds, strict=strict_relations)
        self.tracker = ChangeTracker(user=user)

    @classmethod
    def for_inventory(cls, inventory, **kwargs) -> "RunContext":
        """Build a context backed by a DeviceInventory."""
        return cls(inventory.client_for, inventory.device_names, **kwargs)

    def begin(self) -> None:
        """Reset every coordinator at the start of a run."""
        for coordinator in self.coordinators.values():
            coordinator.reset()

    def coordinator_for(self, kind: KindDescriptor) -> Optional[ReconfigureCoordinator]:
        if kind.reload_domain is None:
            return None
        return self.coordinators[kind.reload_domain]

    def mark(self, kind: KindDescriptor, device: str) -> None:
        coordinator = self.coordinator_for(kind)
        if coordinator is not None:
            coordinator.mark(device)

    def mark_error(self, kind: KindDescriptor, device: str) -> None:
        coordinator = self.coordinator_for(kind)
        if coordinator is not None:
            coordinator.mark_error(device)

    async def finish(self, domains: Optional[list[str]] = None) -> dict[str, dict[str, str]]:
        """Run the coordinators (all of them, or just ``domains``).

        Returns domain -> device -> outcome, omitting domains with nothing to do.
        """
        outcomes = {}
        for domain, coordinator in self.coordinators.items():
            if domains is not None and domain not in domains:
                continue
            result = await coordinator.run()
            if result:
                outcomes[domain] = result
        return outcomes

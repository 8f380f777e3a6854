"""Reconfigure coordinator.

Applying saved configuration (a service reload) is expensive, so resource
mutations only mark their device; ``run()`` then reloads each marked
device once. A device with any failed mutation is never reloaded in that
run, so a half-applied change set is not made live.

State per device: clean -> dirty (mark), clean|dirty -> errored
(mark_error, sticky), dirty -> clean (run).
"""
import asyncio
import logging
from typing import Any, Callable

from ..errors import OpnError
from ..utils.logging_config import timed_section
from .schema import ReconfigureState, ReloadAction

logger = logging.getLogger(__name__)

# Per-device reload outcomes reported by run()
RELOADED = "reloaded"
UNEXPECTED_STATUS = "unexpected_status"
FAILED = "failed"
CONFIGTEST_FAILED = "configtest_failed"
SKIPPED_ERRORED = "skipped_errored"


class ReconfigureCoordinator:
    """Deferred, exactly-once, failure-aware reload for one domain."""

    def __init__(self, action: ReloadAction, client_for: Callable[[str], Any]):
        self.action = action
        self.client_for = client_for
        self._states: dict[str, ReconfigureState] = {}
        self._lock = asyncio.Lock()

    @property
    def domain(self) -> str:
        return self.action.domain

    def state(self, device: str) -> ReconfigureState:
        return self._states.get(device, ReconfigureState.CLEAN)

    def reset(self) -> None:
        """Forget all marks (called at the start of a run)."""
        self._states.clear()

    def mark(self, device: str) -> None:
        """Record that a device needs a reload. No-op for dirty or errored devices."""
        if self.state(device) == ReconfigureState.CLEAN:
            self._states[device] = ReconfigureState.DIRTY

    def mark_error(self, device: str) -> None:
        """Record a failed mutation on a device; suppresses its reload for the run."""
        if self.state(device) != ReconfigureState.ERRORED:
            logger.debug(f"{self.domain}: {device} marked errored")
        self._states[device] = ReconfigureState.ERRORED

    @property
    def pending(self) -> list[str]:
        return [d for d, s in self._states.items() if s == ReconfigureState.DIRTY]

    async def run(self) -> dict[str, str]:
        """Reload every dirty device once, then clear all marks.

        Returns a mapping of device -> outcome for every device that had a
        mark. Calling run() again without new marks does nothing.
        """
        async with self._lock:
            outcomes: dict[str, str] = {}

            for device, state in list(self._states.items()):
                if state == ReconfigureState.ERRORED:
                    logger.error(
                        f"{self.domain}: skipping reconfigure for '{device}' "
                        f"because one or more resources failed to evaluate"
                    )
                    outcomes[device] = SKIPPED_ERRORED
                elif state == ReconfigureState.DIRTY:
                    outcomes[device] = await self._reload(device)
                    self._states[device] = ReconfigureState.CLEAN

            self._states.clear()
            return outcomes

    async def _reload(self, device: str) -> str:
        action = self.action

        try:
            client = self.client_for(device)
            if action.configtest and not await self._configtest(device, client):
                return CONFIGTEST_FAILED

            async with timed_section("reconfigure", device_id=device, domain=self.domain):
                response = await client.post(action.endpoint, {})
        except (OpnError, KeyError, ValueError) as e:
            logger.error(f"{self.domain}: reconfigure of '{device}' failed: {e}")
            return FAILED

        status = response.get(action.status_field) if isinstance(response, dict) else None
        if status is not None and str(status).strip().lower() == action.expected_status:
            logger.info(f"{self.domain}: reconfigure of '{device}' completed")
            return RELOADED

        logger.warning(
            f"{self.domain}: reconfigure of '{device}' returned unexpected status: {response!r}"
        )
        return UNEXPECTED_STATUS

    async def _configtest(self, device: str, client: Any) -> bool:
        """Run the domain's config test; False means the reload must not happen."""
        result = await client.get(self.action.configtest)
        output = str(result.get("result", "")) if isinstance(result, dict) else ""

        if "ALERT" in output:
            logger.error(
                f"{self.domain}: configtest for '{device}' reported ALERT, "
                f"skipping reconfigure: {output.strip()}"
            )
            return False
        if "WARNING" in output:
            logger.warning(f"{self.domain}: configtest for '{device}' reported WARNING: {output.strip()}")
        else:
            logger.info(f"{self.domain}: configtest for '{device}' passed")
        return True

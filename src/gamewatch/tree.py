"""Map arbitrary PIDs to tracked processes by walking the process tree."""

import logging

from gamewatch.config import TreeWalk
from gamewatch.errors import OSQueryFailedError
from gamewatch.models import TrackedProcess
from gamewatch.processes import ProcessBackend
from gamewatch.registry import TrackedProcessRegistry

logger = logging.getLogger(__name__)


class ProcessTreeResolver:
    """
    Resolve the tracked ancestor of a PID.

    Games are often started through launchers, so the window the user sees can
    belong to a child of the process we spawned.
    """

    def __init__(self, backend: ProcessBackend, limits: TreeWalk | None = None) -> None:
        self._backend = backend
        self._limits = limits or TreeWalk()

    async def resolve_owner(
        self, pid: int, registry: TrackedProcessRegistry
    ) -> TrackedProcess | None:
        """Return the tracked process owning ``pid``, or None."""
        direct = registry.get(pid)
        if direct is not None:
            return direct

        current = pid
        for _ in range(self._limits.max_hops):
            try:
                parent = await self._backend.parent_process_id(current)
            except OSQueryFailedError as exc:
                logger.warning("Process tree walk from PID %d stopped: %s", pid, exc)
                return None

            owner = registry.get(parent)
            if owner is not None:
                logger.debug("PID %d is a descendant of tracked PID %d", pid, parent)
                return owner

            if parent < self._limits.system_pid_floor or parent == current:
                break
            current = parent

        return None

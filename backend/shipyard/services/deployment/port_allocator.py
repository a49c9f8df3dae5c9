"""
Port allocation service for project processes.

Hands out ports from the configured range (default 4000-5000) so no two
projects ever hold the same port. Internal and external ports are always equal.
"""
import asyncio
import logging
from dataclasses import dataclass
from typing import List, Optional, Set

from shipyard.core.config import settings
from shipyard.core.exceptions import PortExhaustedError, PortReservationError
from shipyard.services.store import store as default_store

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PortPair:
    """Ports held by a project."""

    internal: int
    external: int


@dataclass
class PortStats:
    """Read-only snapshot of the port range usage."""

    total: int
    used: int
    available: int
    base_port: int
    max_port: int
    used_ports: List[int]


class PortAllocator:
    """
    Exclusive port allocation with store persistence.

    The used set is re-read from the store on every call instead of cached,
    so assignments written outside this allocator are always honoured.
    Reservations are serialized by an allocator-wide lock.
    """

    def __init__(
        self,
        store=None,
        port_range_start: int = None,
        port_range_end: int = None,
    ):
        """
        Initialize the port allocator.

        Args:
            store: ProjectStore holding assignments (default: database store)
            port_range_start: Start of port range (default from settings)
            port_range_end: End of port range (default from settings)
        """
        self.store = store if store is not None else default_store
        self.port_range_start = settings.BASE_PROJECT_PORT if port_range_start is None else port_range_start
        self.port_range_end = settings.MAX_PROJECT_PORT if port_range_end is None else port_range_end
        self._lock = asyncio.Lock()

    def is_valid_port(self, port: Optional[int]) -> bool:
        return port is not None and self.port_range_start <= port <= self.port_range_end

    async def get_used_ports(self, exclude_project_id: Optional[int] = None) -> Set[int]:
        """
        Get all ports currently assigned to projects.

        Args:
            exclude_project_id: Optional project whose own assignment is ignored
                                (used when a project re-reserves)

        Returns:
            Set of port numbers in use
        """
        return set(await self.store.get_used_ports(exclude_project_id))

    async def is_in_use(self, port: int) -> bool:
        return port in await self.get_used_ports()

    def find_available_port_in_range(self, used_ports: Set[int], start: int, end: int) -> Optional[int]:
        """First port in [start, end] that is not in used_ports."""
        for port in range(start, end + 1):
            if port not in used_ports:
                return port
        return None

    async def reserve(self, project_id: int, preferred_port: Optional[int] = None) -> PortPair:
        """
        Reserve a port for a project.

        Uses the preferred port when it is free and inside the range, otherwise
        the first free port scanning upward from the range start.

        Args:
            project_id: Project to reserve for
            preferred_port: Port to try first

        Returns:
            The reserved port pair

        Raises:
            PortExhaustedError: If no ports are available
            PortReservationError: If the assignment could not be persisted
        """
        async with self._lock:
            used_ports = await self.get_used_ports(exclude_project_id=project_id)

            if self.is_valid_port(preferred_port) and preferred_port not in used_ports:
                port = preferred_port
            else:
                port = self.find_available_port_in_range(used_ports, self.port_range_start, self.port_range_end)
                if port is None:
                    raise PortExhaustedError(self.port_range_start, self.port_range_end)

            try:
                await self.store.save_port_assignment(project_id, port, port)
                await self.store.update_port_fields(project_id, port, port)
            except Exception as e:
                logger.error(f"Failed to persist port {port} for project {project_id}: {e}")
                raise PortReservationError(project_id, str(e)) from e

        logger.info(f"Reserved port {port} for project {project_id}")
        return PortPair(internal=port, external=port)

    async def release(self, project_id: int) -> None:
        """
        Release the project's port. Safe to call when nothing is assigned.

        Args:
            project_id: Project to release
        """
        async with self._lock:
            await self.store.delete_port_assignment(project_id)
            await self.store.clear_port_fields(project_id)
        logger.info(f"Released ports for project {project_id}")

    async def get_project_ports(self, project_id: int) -> Optional[PortPair]:
        project = await self.store.get_project(project_id)
        if project is None or project.internal_port is None:
            return None
        external = project.external_port if project.external_port is not None else project.internal_port
        return PortPair(internal=project.internal_port, external=external)

    async def stats(self) -> PortStats:
        used_ports = sorted(p for p in await self.get_used_ports() if self.is_valid_port(p))
        total = self.port_range_end - self.port_range_start + 1
        return PortStats(
            total=total,
            used=len(used_ports),
            available=total - len(used_ports),
            base_port=self.port_range_start,
            max_port=self.port_range_end,
            used_ports=used_ports,
        )


# Singleton instance
port_allocator = PortAllocator()

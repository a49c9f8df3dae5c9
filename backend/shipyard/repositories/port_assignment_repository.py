"""
Repository for PortAssignment entity database operations.
"""
from typing import Optional, Set

from sqlalchemy import delete, select

from shipyard.models.port_assignment import PortAssignment
from shipyard.repositories.base import BaseRepository


class PortAssignmentRepository(BaseRepository[PortAssignment]):
    """Repository for PortAssignment database operations."""

    model = PortAssignment

    async def replace(
        self,
        project_id: int,
        internal_port: int,
        external_port: int,
        protocol: str = "http",
    ) -> PortAssignment:
        """Store the project's assignment, replacing any previous one."""
        await self.db.execute(delete(PortAssignment).where(PortAssignment.project_id == project_id))
        assignment = PortAssignment(
            project_id=project_id,
            internal_port=internal_port,
            external_port=external_port,
            protocol=protocol,
        )
        return await self.create(assignment)

    async def delete_for_project(self, project_id: int) -> None:
        await self.db.execute(delete(PortAssignment).where(PortAssignment.project_id == project_id))
        await self.db.commit()

    async def get_used_ports(self, exclude_project_id: Optional[int] = None) -> Set[int]:
        stmt = select(PortAssignment.internal_port, PortAssignment.external_port)
        if exclude_project_id is not None:
            stmt = stmt.where(PortAssignment.project_id != exclude_project_id)
        result = await self.db.execute(stmt)
        ports: Set[int] = set()
        for internal_port, external_port in result.all():
            ports.add(internal_port)
            ports.add(external_port)
        return ports

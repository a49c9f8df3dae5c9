"""
Repository for Project entity database operations.
"""
from datetime import datetime
from typing import Any, List, Optional

from sqlalchemy import select, update

from shipyard.core.exceptions import ProjectNotFoundError
from shipyard.models.project import Project
from shipyard.repositories.base import BaseRepository

# Columns callers may set through upsert; status and ports have dedicated writers.
UPSERT_FIELDS = ("name", "path", "type", "description", "status")


class ProjectRepository(BaseRepository[Project]):
    """Repository for Project database operations."""

    model = Project

    async def get_by_name(self, name: str) -> Optional[Project]:
        result = await self.db.execute(select(Project).where(Project.name == name))
        return result.scalar_one_or_none()

    async def get_by_id_or_raise(self, id: int) -> Project:
        """Get a project by ID, raising exception if not found."""
        project = await self.get_by_id(id)
        if not project:
            raise ProjectNotFoundError(str(id))
        return project

    async def list_projects(self, status: Optional[str] = None) -> List[Project]:
        """List projects, optionally filtered by status."""
        query = select(Project).order_by(Project.id)
        if status:
            query = query.where(Project.status == status)
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def upsert(self, name: str, **fields: Any) -> Project:
        """
        Insert a project or update the existing one with the same name.

        Args:
            name: Unique project name
            **fields: Any of path, type, description, status

        Returns:
            The stored project
        """
        values = {k: v for k, v in fields.items() if k in UPSERT_FIELDS and v is not None}
        project = await self.get_by_name(name)
        if project is None:
            project = Project(name=name, **values)
            self.db.add(project)
        else:
            for key, value in values.items():
                setattr(project, key, value)
            project.updated_at = datetime.utcnow()
        await self.db.commit()
        await self.db.refresh(project)
        return project

    async def update_status(self, project_id: int, status: str) -> None:
        await self.db.execute(
            update(Project)
            .where(Project.id == project_id)
            .values(status=status, updated_at=datetime.utcnow())
        )
        await self.db.commit()

    async def update_ports(self, project_id: int, internal_port: Optional[int], external_port: Optional[int]) -> None:
        await self.db.execute(
            update(Project)
            .where(Project.id == project_id)
            .values(internal_port=internal_port, external_port=external_port, updated_at=datetime.utcnow())
        )
        await self.db.commit()

    async def get_used_ports(self, exclude_project_id: Optional[int] = None) -> List[int]:
        """Ports recorded on project rows (both internal and external)."""
        stmt = select(Project.id, Project.internal_port, Project.external_port).where(
            Project.internal_port.isnot(None)
        )
        if exclude_project_id is not None:
            stmt = stmt.where(Project.id != exclude_project_id)
        result = await self.db.execute(stmt)
        ports = []
        for _, internal_port, external_port in result.all():
            ports.append(internal_port)
            if external_port is not None:
                ports.append(external_port)
        return ports

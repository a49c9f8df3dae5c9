"""
Repository for Deployment entity database operations.
"""
from datetime import datetime
from typing import List, Optional

from sqlalchemy import desc, select, update

from shipyard.core.exceptions import DeploymentNotFoundError
from shipyard.models.deployment import Deployment, TERMINAL_DEPLOYMENT_STATUSES
from shipyard.repositories.base import BaseRepository


class DeploymentRepository(BaseRepository[Deployment]):
    """Repository for Deployment database operations."""

    model = Deployment

    async def get_by_id_or_raise(self, id: int) -> Deployment:
        """Get a deployment by ID, raising exception if not found."""
        deployment = await self.get_by_id(id)
        if not deployment:
            raise DeploymentNotFoundError(str(id))
        return deployment

    async def list_for_project(self, project_id: int, limit: int = 50) -> List[Deployment]:
        """List a project's deployments, newest first."""
        result = await self.db.execute(
            select(Deployment)
            .where(Deployment.project_id == project_id)
            .order_by(desc(Deployment.started_at), desc(Deployment.id))
            .limit(limit)
        )
        return list(result.scalars().all())

    async def create_deployment(self, project_id: int, log_path: Optional[str] = None) -> Deployment:
        """Create a new pending deployment."""
        deployment = Deployment(project_id=project_id, status="pending", log_path=log_path)
        return await self.create(deployment)

    async def update_status(
        self,
        deployment_id: int,
        status: str,
        error_message: Optional[str] = None,
    ) -> bool:
        """
        Move a deployment to a new status.

        Terminal deployments are immutable, so the update only applies while
        the row is still pending or building.

        Args:
            deployment_id: Deployment ID
            status: New status value
            error_message: Optional failure description

        Returns:
            True if the row was updated, False if it was already terminal
        """
        values = {"status": status}
        if status in TERMINAL_DEPLOYMENT_STATUSES:
            values["finished_at"] = datetime.utcnow()
        if error_message:
            values["error_message"] = error_message

        result = await self.db.execute(
            update(Deployment)
            .where(
                Deployment.id == deployment_id,
                Deployment.status.notin_(TERMINAL_DEPLOYMENT_STATUSES),
            )
            .values(**values)
        )
        await self.db.commit()
        return result.rowcount > 0

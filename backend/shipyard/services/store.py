"""
Persistence interface used by the supervisor and port allocator.

The supervisor is long-lived and outlives any request, so it talks to storage
through this narrow protocol instead of holding a session. ``DatabaseStore``
opens one short session per call; every call is an independent write.
"""
import logging
from typing import Any, List, Optional, Protocol, Set

from shipyard.core.database import session_scope
from shipyard.models.deployment import Deployment
from shipyard.models.log_entry import LogEntry
from shipyard.models.project import Project
from shipyard.repositories import (
    DeploymentRepository,
    LogRepository,
    PortAssignmentRepository,
    ProjectRepository,
)

logger = logging.getLogger(__name__)


class ProjectStore(Protocol):
    """Storage operations needed by the deployment services."""

    async def get_project(self, project_id: int) -> Optional[Project]: ...

    async def list_projects(self, status: Optional[str] = None) -> List[Project]: ...

    async def upsert_project(self, **fields: Any) -> Project: ...

    async def delete_project(self, project_id: int) -> bool: ...

    async def update_project_status(self, project_id: int, status: str) -> None: ...

    async def create_deployment(self, project_id: int, log_path: Optional[str] = None) -> Deployment: ...

    async def get_deployment(self, deployment_id: int) -> Optional[Deployment]: ...

    async def update_deployment_status(
        self, deployment_id: int, status: str, error_message: Optional[str] = None
    ) -> bool: ...

    async def list_deployments(self, project_id: int) -> List[Deployment]: ...

    async def update_port_fields(self, project_id: int, internal_port: int, external_port: int) -> None: ...

    async def clear_port_fields(self, project_id: int) -> None: ...

    async def save_port_assignment(
        self, project_id: int, internal_port: int, external_port: int, protocol: str = "http"
    ) -> None: ...

    async def delete_port_assignment(self, project_id: int) -> None: ...

    async def get_used_ports(self, exclude_project_id: Optional[int] = None) -> Set[int]: ...

    async def append_log(self, project_id: int, log_type: str, message: str) -> None: ...

    async def list_logs(
        self, project_id: int, log_type: Optional[str] = None, limit: int = 200
    ) -> List[LogEntry]: ...


class DatabaseStore:
    """ProjectStore backed by the SQLAlchemy repositories."""

    def __init__(self, session_factory=session_scope):
        self._session = session_factory

    async def get_project(self, project_id: int) -> Optional[Project]:
        async with self._session() as db:
            return await ProjectRepository(db).get_by_id(project_id)

    async def list_projects(self, status: Optional[str] = None) -> List[Project]:
        async with self._session() as db:
            return await ProjectRepository(db).list_projects(status=status)

    async def upsert_project(self, **fields: Any) -> Project:
        name = fields.pop("name")
        async with self._session() as db:
            return await ProjectRepository(db).upsert(name, **fields)

    async def delete_project(self, project_id: int) -> bool:
        async with self._session() as db:
            return await ProjectRepository(db).delete_by_id(project_id)

    async def update_project_status(self, project_id: int, status: str) -> None:
        async with self._session() as db:
            await ProjectRepository(db).update_status(project_id, status)

    async def create_deployment(self, project_id: int, log_path: Optional[str] = None) -> Deployment:
        async with self._session() as db:
            return await DeploymentRepository(db).create_deployment(project_id, log_path=log_path)

    async def get_deployment(self, deployment_id: int) -> Optional[Deployment]:
        async with self._session() as db:
            return await DeploymentRepository(db).get_by_id(deployment_id)

    async def update_deployment_status(
        self, deployment_id: int, status: str, error_message: Optional[str] = None
    ) -> bool:
        async with self._session() as db:
            updated = await DeploymentRepository(db).update_status(deployment_id, status, error_message)
        if not updated:
            logger.info(f"Deployment {deployment_id} already terminal, ignoring status {status}")
        return updated

    async def list_deployments(self, project_id: int) -> List[Deployment]:
        async with self._session() as db:
            return await DeploymentRepository(db).list_for_project(project_id)

    async def update_port_fields(self, project_id: int, internal_port: int, external_port: int) -> None:
        async with self._session() as db:
            await ProjectRepository(db).update_ports(project_id, internal_port, external_port)

    async def clear_port_fields(self, project_id: int) -> None:
        async with self._session() as db:
            await ProjectRepository(db).update_ports(project_id, None, None)

    async def save_port_assignment(
        self, project_id: int, internal_port: int, external_port: int, protocol: str = "http"
    ) -> None:
        async with self._session() as db:
            await PortAssignmentRepository(db).replace(project_id, internal_port, external_port, protocol)

    async def delete_port_assignment(self, project_id: int) -> None:
        async with self._session() as db:
            await PortAssignmentRepository(db).delete_for_project(project_id)

    async def get_used_ports(self, exclude_project_id: Optional[int] = None) -> Set[int]:
        async with self._session() as db:
            assigned = await PortAssignmentRepository(db).get_used_ports(exclude_project_id)
            recorded = await ProjectRepository(db).get_used_ports(exclude_project_id)
        return assigned | set(recorded)

    async def append_log(self, project_id: int, log_type: str, message: str) -> None:
        async with self._session() as db:
            await LogRepository(db).append(project_id, log_type, message)

    async def list_logs(
        self, project_id: int, log_type: Optional[str] = None, limit: int = 200
    ) -> List[LogEntry]:
        async with self._session() as db:
            return await LogRepository(db).list_for_project(project_id, log_type=log_type, limit=limit)


store = DatabaseStore()


async def persist_log_event(event) -> None:
    """Log channel sink writing each published line to the logs table."""
    await store.append_log(event.project_id, event.log_type, event.message)

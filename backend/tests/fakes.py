"""
In-memory stand-ins for the persistence layer and the type registry.
"""
import itertools
from collections import defaultdict
from datetime import datetime
from typing import Any, Dict, List, Optional, Set, Tuple

from shipyard.core.exceptions import UnsupportedProjectError
from shipyard.models.deployment import Deployment, TERMINAL_DEPLOYMENT_STATUSES
from shipyard.models.log_entry import LogEntry
from shipyard.models.project import Project


class InMemoryStore:
    """
    ProjectStore kept in dictionaries.

    Records every status write in ``events`` so tests can assert on ordering.
    """

    def __init__(self):
        self.projects: Dict[int, Project] = {}
        self.deployments: Dict[int, Deployment] = {}
        self.assignments: Dict[int, Tuple[int, int]] = {}
        self.logs: List[LogEntry] = []
        self.events: List[Tuple[str, int, str]] = []
        self.project_statuses: Dict[int, List[str]] = defaultdict(list)
        self.fail_port_writes = False
        self._project_ids = itertools.count(1)
        self._deployment_ids = itertools.count(1)
        self._log_ids = itertools.count(1)

    def add_project(
        self,
        name: str,
        path: str = "/tmp/project",
        type: str = "static",
        status: str = "stopped",
        project_id: Optional[int] = None,
        port: Optional[int] = None,
    ) -> Project:
        project_id = project_id if project_id is not None else next(self._project_ids)
        now = datetime.utcnow()
        project = Project(
            id=project_id,
            name=name,
            path=path,
            type=type,
            description=None,
            status=status,
            internal_port=port,
            external_port=port,
            created_at=now,
            updated_at=now,
        )
        self.projects[project_id] = project
        if port is not None:
            self.assignments[project_id] = (port, port)
        return project

    def deployment_statuses(self, deployment_id: int) -> List[str]:
        return [status for kind, key, status in self.events if kind == "deployment" and key == deployment_id]

    # ProjectStore -----------------------------------------------------------

    async def get_project(self, project_id: int) -> Optional[Project]:
        return self.projects.get(project_id)

    async def list_projects(self, status: Optional[str] = None) -> List[Project]:
        return [p for p in sorted(self.projects.values(), key=lambda p: p.id) if status is None or p.status == status]

    async def upsert_project(self, **fields: Any) -> Project:
        for project in self.projects.values():
            if project.name == fields["name"]:
                for key in ("path", "type", "description"):
                    if fields.get(key) is not None:
                        setattr(project, key, fields[key])
                project.updated_at = datetime.utcnow()
                return project
        project = self.add_project(fields["name"], path=fields["path"], type=fields["type"])
        project.description = fields.get("description")
        return project

    async def delete_project(self, project_id: int) -> bool:
        self.assignments.pop(project_id, None)
        return self.projects.pop(project_id, None) is not None

    async def update_project_status(self, project_id: int, status: str) -> None:
        self.events.append(("project", project_id, status))
        self.project_statuses[project_id].append(status)
        project = self.projects.get(project_id)
        if project is not None:
            project.status = status

    async def create_deployment(self, project_id: int, log_path: Optional[str] = None) -> Deployment:
        deployment = Deployment(
            id=next(self._deployment_ids),
            project_id=project_id,
            status="pending",
            started_at=datetime.utcnow(),
            log_path=log_path,
        )
        self.deployments[deployment.id] = deployment
        self.events.append(("deployment", deployment.id, "pending"))
        return deployment

    async def get_deployment(self, deployment_id: int) -> Optional[Deployment]:
        return self.deployments.get(deployment_id)

    async def update_deployment_status(
        self, deployment_id: int, status: str, error_message: Optional[str] = None
    ) -> bool:
        deployment = self.deployments.get(deployment_id)
        if deployment is None or deployment.status in TERMINAL_DEPLOYMENT_STATUSES:
            return False
        deployment.status = status
        if error_message:
            deployment.error_message = error_message
        if status in TERMINAL_DEPLOYMENT_STATUSES:
            deployment.finished_at = datetime.utcnow()
        self.events.append(("deployment", deployment_id, status))
        return True

    async def list_deployments(self, project_id: int) -> List[Deployment]:
        found = [d for d in self.deployments.values() if d.project_id == project_id]
        return sorted(found, key=lambda d: d.id, reverse=True)

    async def update_port_fields(self, project_id: int, internal_port: int, external_port: int) -> None:
        if self.fail_port_writes:
            raise RuntimeError("port write failed")
        project = self.projects.get(project_id)
        if project is not None:
            project.internal_port = internal_port
            project.external_port = external_port

    async def clear_port_fields(self, project_id: int) -> None:
        project = self.projects.get(project_id)
        if project is not None:
            project.internal_port = None
            project.external_port = None

    async def save_port_assignment(
        self, project_id: int, internal_port: int, external_port: int, protocol: str = "http"
    ) -> None:
        if self.fail_port_writes:
            raise RuntimeError("assignment write failed")
        self.assignments[project_id] = (internal_port, external_port)

    async def delete_port_assignment(self, project_id: int) -> None:
        self.assignments.pop(project_id, None)

    async def get_used_ports(self, exclude_project_id: Optional[int] = None) -> Set[int]:
        used: Set[int] = set()
        for project_id, (internal_port, external_port) in self.assignments.items():
            if project_id != exclude_project_id:
                used.update((internal_port, external_port))
        for project in self.projects.values():
            if project.id != exclude_project_id and project.internal_port is not None:
                used.add(project.internal_port)
        return used

    async def append_log(self, project_id: int, log_type: str, message: str) -> None:
        self.logs.append(
            LogEntry(
                id=next(self._log_ids),
                project_id=project_id,
                type=log_type,
                message=message,
                timestamp=datetime.utcnow(),
            )
        )

    async def list_logs(self, project_id: int, log_type: Optional[str] = None, limit: int = 200) -> List[LogEntry]:
        found = [e for e in self.logs if e.project_id == project_id and (log_type is None or e.type == log_type)]
        return found[-limit:]


class StubScanner:
    """Type registry with test-only project types."""

    def __init__(self, types):
        self.types = {info.type: info for info in types}

    def get_type_info(self, project_type: str):
        return self.types.get(project_type)

    def require_type(self, path: str):
        raise UnsupportedProjectError(path)

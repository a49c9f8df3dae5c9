"""
API endpoints for projects.

Lifecycle actions go through the process supervisor; reads go through the
project store. Domain exceptions are mapped to HTTP responses by the
registered exception handlers.
"""
from typing import List, Optional
from fastapi import APIRouter, Depends, Query, status

from shipyard.api.deps import get_port_allocator, get_scanner, get_store, get_supervisor
from shipyard.core.config import settings
from shipyard.core.exceptions import ProjectNotFoundError
from shipyard.schemas.deployment import DeploymentCreate, DeploymentQueuedResponse, DeploymentResponse
from shipyard.schemas.port import PortPairResponse, PortReserveRequest
from shipyard.schemas.process import LogEntryResponse
from shipyard.schemas.project import (
    ProjectActionResponse,
    ProjectResponse,
    ProjectStatus,
    ProjectSyncResponse,
    ProjectWithProcess,
)
from shipyard.services.deployment.port_allocator import PortAllocator
from shipyard.services.deployment.supervisor import ProcessSupervisor
from shipyard.services.project_scanner import ProjectScanner
from shipyard.services.store import ProjectStore

router = APIRouter()


async def _get_project_or_raise(store: ProjectStore, project_id: int):
    project = await store.get_project(project_id)
    if project is None:
        raise ProjectNotFoundError(str(project_id))
    return project


@router.get("", response_model=List[ProjectResponse])
async def list_projects(
    status_filter: Optional[ProjectStatus] = Query(None, alias="status"),
    store: ProjectStore = Depends(get_store),
):
    """List projects, optionally filtered by status."""
    return await store.list_projects(status=status_filter.value if status_filter else None)


@router.post("/sync", response_model=ProjectSyncResponse)
async def sync_projects(
    store: ProjectStore = Depends(get_store),
    scanner: ProjectScanner = Depends(get_scanner),
) -> ProjectSyncResponse:
    """
    Scan the projects directory and upsert every supported project.

    Existing projects keep their status and ports.
    """
    projects = await scanner.sync_projects(store)
    return ProjectSyncResponse(
        synced=len(projects),
        projects=[ProjectResponse.model_validate(p) for p in projects],
    )


@router.get("/{project_id}", response_model=ProjectWithProcess)
async def get_project(
    project_id: int,
    store: ProjectStore = Depends(get_store),
    supervisor: ProcessSupervisor = Depends(get_supervisor),
) -> ProjectWithProcess:
    """
    Get a project and its live process.

    Raises:
        ProjectNotFoundError: If project not found (404)
    """
    project = await _get_project_or_raise(store, project_id)
    process = supervisor.get_process_info(project_id)
    url = None
    if project.external_port is not None:
        url = f"http://{settings.PUBLIC_HOST}:{project.external_port}"
    return ProjectWithProcess(
        **ProjectResponse.model_validate(project).model_dump(),
        running=process is not None,
        pid=process.pid if process else None,
        url=url,
    )


# =============================================================================
# Lifecycle Endpoints
# =============================================================================

@router.post("/{project_id}/deploy", response_model=DeploymentQueuedResponse, status_code=status.HTTP_202_ACCEPTED)
async def deploy_project(
    project_id: int,
    payload: Optional[DeploymentCreate] = None,
    supervisor: ProcessSupervisor = Depends(get_supervisor),
) -> DeploymentQueuedResponse:
    """
    Queue a build-then-start deployment.

    Returns as soon as the deployment is queued; progress is reported on the
    project's log stream.
    """
    options = payload.options if payload else {}
    deployment_id = await supervisor.deploy(project_id, options)
    return DeploymentQueuedResponse(deployment_id=deployment_id, project_id=project_id)


@router.post("/{project_id}/start", response_model=ProjectActionResponse)
async def start_project(
    project_id: int,
    record_deployment: bool = Query(False),
    supervisor: ProcessSupervisor = Depends(get_supervisor),
) -> ProjectActionResponse:
    """
    Start a project without building it.

    Raises:
        ProjectNotFoundError: If project not found (404)
        UnsupportedProjectError: If the project type is unknown (400)
        SpawnError: If the process could not be created (500)
    """
    pid = await supervisor.start(project_id, record_deployment=record_deployment)
    return ProjectActionResponse(project_id=project_id, status="running", pid=pid, message="Project started")


@router.post("/{project_id}/stop", response_model=ProjectActionResponse)
async def stop_project(
    project_id: int,
    supervisor: ProcessSupervisor = Depends(get_supervisor),
) -> ProjectActionResponse:
    """
    Stop a project.

    Raises:
        ProjectNotFoundError: If project not found (404)
        ProjectNotRunningError: If there is nothing to stop (400)
    """
    outcome = await supervisor.stop(project_id)
    return ProjectActionResponse(
        project_id=project_id,
        status="stopped",
        outcome=outcome.value if outcome else None,
        message="Project stopped" if outcome else "No live process, status corrected",
    )


@router.post("/{project_id}/restart", response_model=ProjectActionResponse)
async def restart_project(
    project_id: int,
    supervisor: ProcessSupervisor = Depends(get_supervisor),
) -> ProjectActionResponse:
    """Restart a project without creating a deployment record."""
    pid = await supervisor.restart(project_id)
    return ProjectActionResponse(project_id=project_id, status="running", pid=pid, message="Project restarted")


@router.delete("/{project_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_project(
    project_id: int,
    supervisor: ProcessSupervisor = Depends(get_supervisor),
):
    """
    Stop a project if it is running and remove it along with its port.

    Raises:
        ProjectNotFoundError: If project not found (404)
    """
    await supervisor.delete_project(project_id)


# =============================================================================
# History Endpoints
# =============================================================================

@router.get("/{project_id}/deployments", response_model=List[DeploymentResponse])
async def list_project_deployments(
    project_id: int,
    store: ProjectStore = Depends(get_store),
):
    """List a project's deployments, newest first."""
    await _get_project_or_raise(store, project_id)
    return await store.list_deployments(project_id)


@router.get("/{project_id}/logs", response_model=List[LogEntryResponse])
async def list_project_logs(
    project_id: int,
    log_type: Optional[str] = Query(None, alias="type"),
    limit: int = Query(200, ge=1, le=5000),
    store: ProjectStore = Depends(get_store),
):
    """Most recent persisted log lines, oldest first."""
    await _get_project_or_raise(store, project_id)
    return await store.list_logs(project_id, log_type=log_type, limit=limit)


# =============================================================================
# Port Endpoints
# =============================================================================

@router.post("/{project_id}/ports/reserve", response_model=PortPairResponse)
async def reserve_project_port(
    project_id: int,
    payload: Optional[PortReserveRequest] = None,
    store: ProjectStore = Depends(get_store),
    allocator: PortAllocator = Depends(get_port_allocator),
) -> PortPairResponse:
    """
    Reserve a port for a project.

    Raises:
        PortExhaustedError: If the range is full (500)
    """
    await _get_project_or_raise(store, project_id)
    pair = await allocator.reserve(project_id, payload.preferred_port if payload else None)
    return PortPairResponse(project_id=project_id, internal_port=pair.internal, external_port=pair.external)


@router.delete("/{project_id}/ports", status_code=status.HTTP_204_NO_CONTENT)
async def release_project_port(
    project_id: int,
    store: ProjectStore = Depends(get_store),
    allocator: PortAllocator = Depends(get_port_allocator),
):
    """Release a project's port. Releasing an unassigned project is not an error."""
    await _get_project_or_raise(store, project_id)
    await allocator.release(project_id)

"""
API endpoints for deployments.
"""
from fastapi import APIRouter, Depends

from shipyard.api.deps import get_store, get_supervisor
from shipyard.core.exceptions import DeploymentNotFoundError
from shipyard.schemas.deployment import DeploymentResponse
from shipyard.services.deployment.supervisor import ProcessSupervisor
from shipyard.services.store import ProjectStore

router = APIRouter()


@router.get("/{deployment_id}", response_model=DeploymentResponse)
async def get_deployment(
    deployment_id: int,
    store: ProjectStore = Depends(get_store),
):
    """
    Get a deployment by ID.

    Raises:
        DeploymentNotFoundError: If deployment not found (404)
    """
    deployment = await store.get_deployment(deployment_id)
    if deployment is None:
        raise DeploymentNotFoundError(str(deployment_id))
    return deployment


@router.post("/{deployment_id}/cancel", response_model=DeploymentResponse)
async def cancel_deployment(
    deployment_id: int,
    supervisor: ProcessSupervisor = Depends(get_supervisor),
):
    """
    Cancel a pending or building deployment.

    Cancellation is best-effort: a deployment that is already building runs
    to completion, but keeps the ``cancelled`` status.

    Raises:
        DeploymentNotFoundError: If deployment not found (404)
        DeploymentNotCancellableError: If the deployment already finished (400)
    """
    return await supervisor.cancel_deployment(deployment_id)

"""
API endpoints for the running-process table and the port range.
"""
from typing import List
from fastapi import APIRouter, Depends

from shipyard.api.deps import get_port_allocator, get_supervisor
from shipyard.schemas.port import PortStatsResponse, PortUsageResponse
from shipyard.schemas.process import RunningProcessResponse
from shipyard.services.deployment.port_allocator import PortAllocator
from shipyard.services.deployment.supervisor import ProcessSupervisor

router = APIRouter()


@router.get("/processes", response_model=List[RunningProcessResponse])
async def list_running_processes(
    supervisor: ProcessSupervisor = Depends(get_supervisor),
):
    """Snapshot of the projects with a live process."""
    return supervisor.list_running()


@router.get("/ports/stats", response_model=PortStatsResponse)
async def get_port_stats(
    allocator: PortAllocator = Depends(get_port_allocator),
):
    """Usage of the managed port range."""
    return await allocator.stats()


@router.get("/ports/{port}", response_model=PortUsageResponse)
async def get_port_usage(
    port: int,
    allocator: PortAllocator = Depends(get_port_allocator),
) -> PortUsageResponse:
    """Whether a port is currently assigned to a project."""
    return PortUsageResponse(
        port=port,
        in_use=await allocator.is_in_use(port),
        in_range=allocator.is_valid_port(port),
    )

"""
API v1 router that includes all endpoint routers.
"""
from fastapi import APIRouter

from shipyard.api.v1.endpoints import (
    projects,
    deployments,
    system,
)

# Create main API router
api_router = APIRouter()

# Include endpoint routers
api_router.include_router(
    projects.router,
    prefix="/projects",
    tags=["projects"],
)

api_router.include_router(
    deployments.router,
    prefix="/deployments",
    tags=["deployments"],
)

# Running processes and port range
api_router.include_router(
    system.router,
    tags=["system"],
)

"""
Pydantic schemas for Deployment.
"""
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional
from pydantic import BaseModel, Field


class DeploymentStatus(str, Enum):
    """Status of a deployment."""
    PENDING = "pending"
    BUILDING = "building"
    SUCCESS = "success"
    FAILED = "failed"
    CANCELLED = "cancelled"


class DeploymentCreate(BaseModel):
    """Options for a queued deployment."""
    options: Dict[str, Any] = Field(default_factory=dict)


class DeploymentQueuedResponse(BaseModel):
    """Returned when a deployment has been queued."""
    deployment_id: int
    project_id: int
    status: DeploymentStatus = DeploymentStatus.PENDING


class DeploymentResponse(BaseModel):
    """Schema for Deployment response."""
    id: int
    project_id: int
    version: Optional[str] = None
    status: str
    started_at: datetime
    finished_at: Optional[datetime] = None
    log_path: Optional[str] = None
    error_message: Optional[str] = None

    class Config:
        from_attributes = True

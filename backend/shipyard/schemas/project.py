"""
Pydantic schemas for Project.
"""
from datetime import datetime
from enum import Enum
from typing import List, Optional
from pydantic import BaseModel, Field


class ProjectStatus(str, Enum):
    """Lifecycle status of a project."""
    STOPPED = "stopped"
    BUILDING = "building"
    RUNNING = "running"
    ERROR = "error"


class ProjectResponse(BaseModel):
    """Schema for Project response."""
    id: int
    name: str
    path: str
    type: str
    description: Optional[str] = None
    status: str
    internal_port: Optional[int] = None
    external_port: Optional[int] = None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class ProjectWithProcess(ProjectResponse):
    """Project with its live process, if any."""
    running: bool = False
    pid: Optional[int] = None
    url: Optional[str] = None


class ProjectSyncResponse(BaseModel):
    """Result of scanning the projects directory."""
    synced: int
    projects: List[ProjectResponse] = Field(default_factory=list)


class ProjectActionResponse(BaseModel):
    """Result of a start, stop or restart request."""
    project_id: int
    status: str
    pid: Optional[int] = None
    outcome: Optional[str] = None
    message: str

"""
Pydantic schemas for port allocation.
"""
from typing import List, Optional
from pydantic import BaseModel, Field


class PortReserveRequest(BaseModel):
    """Request body for an explicit port reservation."""
    preferred_port: Optional[int] = Field(None, ge=1, le=65535)


class PortPairResponse(BaseModel):
    """Ports held by a project."""
    project_id: int
    internal_port: int
    external_port: int


class PortStatsResponse(BaseModel):
    """Usage of the managed port range."""
    total: int
    used: int
    available: int
    base_port: int
    max_port: int
    used_ports: List[int] = Field(default_factory=list)


class PortUsageResponse(BaseModel):
    """Whether a single port is assigned."""
    port: int
    in_use: bool
    in_range: bool

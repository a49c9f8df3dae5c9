"""
Pydantic schemas for running processes and project logs.
"""
from datetime import datetime
from pydantic import BaseModel


class RunningProcessResponse(BaseModel):
    """Entry of the running-process table."""
    project_id: int
    pid: int
    started_at: datetime
    internal_port: int
    external_port: int

    class Config:
        from_attributes = True


class LogEntryResponse(BaseModel):
    """Persisted log line."""
    id: int
    project_id: int
    type: str
    message: str
    timestamp: datetime

    class Config:
        from_attributes = True

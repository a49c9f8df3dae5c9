"""
Repository layer for database operations.
"""
from shipyard.repositories.base import BaseRepository
from shipyard.repositories.project_repository import ProjectRepository
from shipyard.repositories.deployment_repository import DeploymentRepository
from shipyard.repositories.port_assignment_repository import PortAssignmentRepository
from shipyard.repositories.log_repository import LogRepository

__all__ = [
    "BaseRepository",
    "ProjectRepository",
    "DeploymentRepository",
    "PortAssignmentRepository",
    "LogRepository",
]

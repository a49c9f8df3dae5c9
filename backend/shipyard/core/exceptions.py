"""
Custom exception hierarchy for domain-specific errors.

This module provides a clean separation between domain errors and HTTP concerns.
Services raise domain exceptions, and the exception handlers in main.py map them to HTTP responses.
"""
from typing import Optional, Dict, Any


class DomainException(Exception):
    """Base exception for all domain errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)


# =============================================================================
# Not Found Errors (404)
# =============================================================================

class NotFoundError(DomainException):
    """Base class for resource not found errors."""
    pass


class ProjectNotFoundError(NotFoundError):
    """Project does not exist."""

    def __init__(self, identifier: str):
        super().__init__(f"Project not found: {identifier}", {"identifier": identifier})


class DeploymentNotFoundError(NotFoundError):
    """Deployment does not exist."""

    def __init__(self, identifier: str):
        super().__init__(f"Deployment not found: {identifier}", {"identifier": identifier})


# =============================================================================
# Validation Errors (400/422)
# =============================================================================

class ValidationError(DomainException):
    """Base class for validation errors."""
    pass


class UnsupportedProjectError(ValidationError):
    """No known project type matches the directory."""

    def __init__(self, path: str):
        super().__init__(f"Unsupported project: no known project type detected in {path}", {"path": path})


class ProjectNotRunningError(ValidationError):
    """Project has no live process and does not claim to be running."""

    def __init__(self, project_id: int, current_status: Optional[str] = None):
        super().__init__(
            f"Project {project_id} is not running (status: {current_status})",
            {"project_id": project_id, "current_status": current_status}
        )


class DeploymentNotCancellableError(ValidationError):
    """Deployment cannot be cancelled in its current state."""

    def __init__(self, deployment_id: int, current_status: str):
        super().__init__(
            f"Cannot cancel deployment {deployment_id} with status: {current_status}",
            {"deployment_id": deployment_id, "current_status": current_status}
        )


# =============================================================================
# Operation Errors (500)
# =============================================================================

class OperationError(DomainException):
    """Base class for operation failures."""
    pass


class PortExhaustedError(OperationError):
    """No available ports in range."""

    def __init__(self, port_range_start: int, port_range_end: int):
        super().__init__(
            f"No available ports in range {port_range_start}-{port_range_end}",
            {"port_range_start": port_range_start, "port_range_end": port_range_end}
        )


class PortReservationError(OperationError):
    """Port assignment could not be persisted."""

    def __init__(self, project_id: int, reason: str):
        super().__init__(
            f"Port reservation failed for project {project_id}: {reason}",
            {"project_id": project_id, "reason": reason}
        )


class BuildFailedError(OperationError):
    """Build command exited with a non-zero code."""

    def __init__(self, project_id: int, exit_code: Optional[int]):
        super().__init__(
            f"Build failed (exit code {exit_code})",
            {"project_id": project_id, "exit_code": exit_code}
        )


class SpawnError(OperationError):
    """The operating system could not start the project process."""

    def __init__(self, project_id: int, reason: str):
        super().__init__(
            f"Failed to start process for project {project_id}: {reason}",
            {"project_id": project_id, "reason": reason}
        )

"""
FastAPI dependencies for the long-lived services.

Endpoints resolve the supervisor, allocator, store and log channel through
these functions so tests can swap them with ``app.dependency_overrides``.
"""
from shipyard.core.log_channel import LogBroadcaster, log_broadcaster
from shipyard.services.deployment.port_allocator import PortAllocator, port_allocator
from shipyard.services.deployment.supervisor import ProcessSupervisor, process_supervisor
from shipyard.services.project_scanner import ProjectScanner, project_scanner
from shipyard.services.store import ProjectStore, store


def get_supervisor() -> ProcessSupervisor:
    return process_supervisor


def get_port_allocator() -> PortAllocator:
    return port_allocator


def get_store() -> ProjectStore:
    return store


def get_scanner() -> ProjectScanner:
    return project_scanner


def get_log_broadcaster() -> LogBroadcaster:
    return log_broadcaster

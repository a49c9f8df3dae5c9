"""
Deployment services.

This package supervises project processes on the local host: port allocation,
the deployment queue, process lifecycle and platform-specific termination.
"""
from shipyard.services.deployment.executor_base import (
    DeploymentRequest,
    RunningProcess,
    RunningProcessInfo,
    TerminationOutcome,
    TerminationStrategy,
)
from shipyard.services.deployment.port_allocator import PortAllocator, PortPair, PortStats, port_allocator
from shipyard.services.deployment.supervisor import ProcessSupervisor, process_supervisor
from shipyard.services.deployment.termination import select_termination_strategy

__all__ = [
    "DeploymentRequest",
    "RunningProcess",
    "RunningProcessInfo",
    "TerminationOutcome",
    "TerminationStrategy",
    "PortAllocator",
    "PortPair",
    "PortStats",
    "port_allocator",
    "ProcessSupervisor",
    "process_supervisor",
    "select_termination_strategy",
]

"""
Shared types for the process supervisor and its termination strategies.
"""
import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional


class TerminationOutcome(str, Enum):
    """How a process ended after a termination request."""
    TERMINATED = "terminated"
    KILLED = "killed"
    ALREADY_EXITED = "already_exited"


@dataclass
class DeploymentRequest:
    """One queued build-then-start job."""

    project_id: int
    deployment_id: int
    options: Dict[str, Any] = field(default_factory=dict)


@dataclass
class RunningProcess:
    """Live OS process owned by the supervisor for one project."""

    project_id: int
    process: asyncio.subprocess.Process
    pid: int
    internal_port: int
    external_port: int
    log_path: Optional[str] = None
    started_at: datetime = field(default_factory=datetime.utcnow)
    readers: List[asyncio.Task] = field(default_factory=list)
    watcher: Optional[asyncio.Task] = None

    def info(self) -> "RunningProcessInfo":
        return RunningProcessInfo(
            project_id=self.project_id,
            pid=self.pid,
            started_at=self.started_at,
            internal_port=self.internal_port,
            external_port=self.external_port,
        )


@dataclass(frozen=True)
class RunningProcessInfo:
    """Read-only view of a running-process table entry."""

    project_id: int
    pid: int
    started_at: datetime
    internal_port: int
    external_port: int


class TerminationStrategy(ABC):
    """
    Platform-specific way of ending a project process and its children.

    Implementations must tolerate processes that have already exited.
    """

    name: str = "base"

    @abstractmethod
    async def terminate(self, process: asyncio.subprocess.Process) -> TerminationOutcome:
        """
        Terminate a process, escalating if it does not exit in time.

        Args:
            process: The process to terminate

        Returns:
            How the process ended
        """
        pass

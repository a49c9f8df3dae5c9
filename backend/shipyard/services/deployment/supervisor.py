"""
Process supervisor: deployment queue and project process lifecycle.

Owns the two pieces of in-process mutable state, the running-process table
and the deployment queue. Deployments are drained by a single worker task so
builds never overlap. Start, stop and restart of the same project are
serialized by a per-project lock; different projects proceed concurrently.

Project status transitions:
    stopped -> building (deploy) -> running -> stopped | error
    stopped -> running (start) -> stopped | error
"""
import asyncio
import logging
from pathlib import Path
from typing import Any, BinaryIO, Dict, List, Optional

from shipyard.core.config import settings
from shipyard.core.exceptions import (
    DeploymentNotCancellableError,
    DeploymentNotFoundError,
    DomainException,
    ProjectNotFoundError,
    ProjectNotRunningError,
    BuildFailedError,
    SpawnError,
)
from shipyard.core.log_channel import LogBroadcaster, LogType, log_broadcaster
from shipyard.services.deployment.executor_base import (
    DeploymentRequest,
    RunningProcess,
    RunningProcessInfo,
    TerminationOutcome,
    TerminationStrategy,
)
from shipyard.services.deployment.platform import PlatformProfile, detect_platform
from shipyard.services.deployment.port_allocator import PortAllocator, port_allocator
from shipyard.services.deployment.termination import select_termination_strategy, wait_for_exit
from shipyard.services.project_scanner import ProjectScanner, ProjectTypeInfo, project_scanner
from shipyard.services.store import store as default_store

logger = logging.getLogger(__name__)

# asyncio stream buffer per pipe; longer lines are dropped with a warning
STREAM_LIMIT = 1024 * 1024
# How long to keep draining pipes after the process exited (grandchildren may hold them)
READER_DRAIN_SECONDS = 5.0
CLAIMED_RUNNING_STATUSES = ("running", "building")


def _error_message(error: Exception) -> str:
    if isinstance(error, DomainException):
        return error.message
    return str(error) or error.__class__.__name__


class ProcessSupervisor:
    """
    Supervises project processes on this host.

    Args:
        store: ProjectStore for durable state
        allocator: Port allocator sharing the same store
        broadcaster: Log channel for subscriber fan-out
        scanner: Project type registry
        platform_profile: Shell and interpreter profile (default: detected)
        termination_strategy: How processes are killed (default: detected)
        logs_path: Directory for build and runtime log files
        restart_grace_seconds: Pause between stop and start on restart
        public_host: Host name used in the published project URL
    """

    def __init__(
        self,
        store=None,
        allocator: Optional[PortAllocator] = None,
        broadcaster: Optional[LogBroadcaster] = None,
        scanner: Optional[ProjectScanner] = None,
        platform_profile: Optional[PlatformProfile] = None,
        termination_strategy: Optional[TerminationStrategy] = None,
        logs_path: Optional[str] = None,
        restart_grace_seconds: Optional[float] = None,
        public_host: Optional[str] = None,
    ):
        self.store = store if store is not None else default_store
        if allocator is None:
            allocator = port_allocator if store is None else PortAllocator(store=self.store)
        self.port_allocator = allocator
        self.broadcaster = broadcaster if broadcaster is not None else log_broadcaster
        self.scanner = scanner if scanner is not None else project_scanner
        self.platform = platform_profile or detect_platform()
        self.termination_strategy = termination_strategy or select_termination_strategy()
        self.logs_path = Path(logs_path or settings.LOGS_PATH)
        self.restart_grace_seconds = (
            settings.RESTART_GRACE_SECONDS if restart_grace_seconds is None else restart_grace_seconds
        )
        self.public_host = public_host or settings.PUBLIC_HOST

        self._processes: Dict[int, RunningProcess] = {}
        self._locks: Dict[int, asyncio.Lock] = {}
        self._queue: asyncio.Queue = asyncio.Queue()
        self._worker: Optional[asyncio.Task] = None

    # =========================================================================
    # Running-process table accessors
    # =========================================================================

    def list_running(self) -> List[RunningProcessInfo]:
        """Snapshot of the running-process table."""
        return [handle.info() for handle in self._processes.values()]

    def is_running(self, project_id: int) -> bool:
        return project_id in self._processes

    def get_process_info(self, project_id: int) -> Optional[RunningProcessInfo]:
        handle = self._processes.get(project_id)
        return handle.info() if handle else None

    @property
    def queued_deployments(self) -> int:
        return self._queue.qsize()

    # =========================================================================
    # Deployment queue
    # =========================================================================

    async def deploy(self, project_id: int, options: Optional[Dict[str, Any]] = None) -> int:
        """
        Queue a build-then-start deployment.

        Returns immediately; the deployment runs when the worker reaches it.

        Args:
            project_id: Project to deploy
            options: Free-form deployment options stored with the request

        Returns:
            The new deployment ID

        Raises:
            ProjectNotFoundError: If the project does not exist
        """
        project = await self._get_project_or_raise(project_id)
        deployment = await self.store.create_deployment(
            project.id, log_path=str(self._log_path(project.name, "build"))
        )
        self._queue.put_nowait(DeploymentRequest(project.id, deployment.id, dict(options or {})))
        self._ensure_worker()

        logger.info(f"Queued deployment {deployment.id} for project {project.name}")
        self._publish(project.id, LogType.SYSTEM, f"Deployment #{deployment.id} queued")
        return deployment.id

    async def cancel_deployment(self, deployment_id: int):
        """
        Cancel a pending or building deployment.

        Cancellation is best-effort: a deployment the worker already picked up
        keeps running, but its final status can no longer overwrite
        ``cancelled``.

        Raises:
            DeploymentNotFoundError: If the deployment does not exist
            DeploymentNotCancellableError: If it already finished
        """
        deployment = await self.store.get_deployment(deployment_id)
        if deployment is None:
            raise DeploymentNotFoundError(str(deployment_id))
        if deployment.is_terminal:
            raise DeploymentNotCancellableError(deployment_id, deployment.status)

        if not await self.store.update_deployment_status(deployment_id, "cancelled", "Cancelled by user"):
            current = await self.store.get_deployment(deployment_id)
            raise DeploymentNotCancellableError(deployment_id, current.status if current else "unknown")

        logger.info(f"Cancelled deployment {deployment_id}")
        self._publish(deployment.project_id, LogType.SYSTEM, f"Deployment #{deployment_id} cancelled")
        return await self.store.get_deployment(deployment_id)

    async def wait_for_idle(self) -> None:
        """Wait until every queued deployment has settled."""
        await self._queue.join()

    def _ensure_worker(self) -> None:
        if self._worker is None or self._worker.done():
            self._worker = asyncio.get_running_loop().create_task(self._drain_queue())

    async def _drain_queue(self) -> None:
        while True:
            try:
                request = self._queue.get_nowait()
            except asyncio.QueueEmpty:
                return
            try:
                await self._run_deployment(request)
            except Exception as e:
                logger.exception(f"Unhandled error in deployment {request.deployment_id}: {e}")
            finally:
                self._queue.task_done()

    async def _run_deployment(self, request: DeploymentRequest) -> None:
        deployment_id = request.deployment_id
        project_id = request.project_id

        # A failed transition means the row went terminal (cancelled) while queued.
        if not await self.store.update_deployment_status(deployment_id, "building"):
            logger.info(f"Skipping deployment {deployment_id}: no longer pending")
            return

        project = await self.store.get_project(project_id)
        if project is None:
            await self.store.update_deployment_status(deployment_id, "failed", f"Project not found: {project_id}")
            return

        previous_status = project.status
        started = False
        try:
            await self.store.update_project_status(project_id, "building")
            self._publish(project_id, LogType.SYSTEM, f"Deployment #{deployment_id} started")

            type_info = self._resolve_type(project)
            await self._run_build(project, type_info)

            if await self.port_allocator.get_project_ports(project_id) is None:
                await self.port_allocator.reserve(project_id, type_info.default_port)

            async with self._lock_for(project_id):
                handle = await self._start_locked(project_id)
            started = True

            if await self.store.update_deployment_status(deployment_id, "success"):
                self._publish(project_id, LogType.SYSTEM, f"Deployment #{deployment_id} completed successfully")
            self._publish(
                project_id,
                LogType.SYSTEM,
                f"Project available at http://{self.public_host}:{handle.external_port}",
            )
            logger.info(f"Deployment {deployment_id} for project {project.name} succeeded")

        except Exception as e:
            message = _error_message(e)
            logger.error(f"Deployment {deployment_id} for project {project.name} failed: {message}")
            await self.store.update_deployment_status(deployment_id, "failed", message)
            if not started:
                await self._restore_status(project_id, previous_status)
            self._publish(project_id, LogType.SYSTEM, f"Deployment #{deployment_id} failed: {message}")

    async def _restore_status(self, project_id: int, previous_status: str) -> None:
        """Undo the deploy's ``building`` status unless something else changed it since."""
        project = await self.store.get_project(project_id)
        if project is None or project.status != "building":
            return
        restored = "stopped" if previous_status == "building" else previous_status
        await self.store.update_project_status(project_id, restored)

    async def _run_build(self, project, type_info: ProjectTypeInfo) -> None:
        """
        Run the type's build command, streaming output to the build log.

        Raises:
            SpawnError: If the build process could not be created
            BuildFailedError: If the build exits non-zero
        """
        command = self.platform.render(type_info.build_command, type_info)
        if not command:
            self._publish(project.id, LogType.BUILD, f"No build step for {type_info.type} projects")
            return

        self._publish(project.id, LogType.SYSTEM, f"Running build: {command}")
        log_file = self._open_log(project.name, "build")
        try:
            try:
                process = await asyncio.create_subprocess_exec(
                    *self.platform.shell_command(command),
                    cwd=project.path,
                    env=self.platform.build_environment(),
                    stdout=asyncio.subprocess.PIPE,
                    stderr=asyncio.subprocess.PIPE,
                    limit=STREAM_LIMIT,
                    **self._spawn_options(),
                )
            except OSError as e:
                raise SpawnError(project.id, str(e)) from e

            loop = asyncio.get_running_loop()
            readers = [
                loop.create_task(self._pump(process.stdout, project.id, LogType.BUILD, log_file)),
                loop.create_task(self._pump(process.stderr, project.id, LogType.BUILD_ERROR, log_file)),
            ]
            try:
                exit_code = await wait_for_exit(process)
            finally:
                # Background children of the build may keep the pipes open indefinitely.
                await self._drain_readers(readers)
        finally:
            log_file.close()

        if exit_code != 0:
            raise BuildFailedError(project.id, exit_code)
        self._publish(project.id, LogType.SYSTEM, "Build finished")

    # =========================================================================
    # Process lifecycle
    # =========================================================================

    async def start(self, project_id: int, record_deployment: bool = False) -> int:
        """
        Start a project's process, stopping any existing one first.

        Args:
            project_id: Project to start
            record_deployment: Also record the start as a deployment

        Returns:
            The process ID

        Raises:
            ProjectNotFoundError: If the project does not exist
            UnsupportedProjectError: If the project type cannot be resolved
            PortExhaustedError: If no port is free
            SpawnError: If the process could not be created
        """
        async with self._lock_for(project_id):
            if not record_deployment:
                handle = await self._start_locked(project_id)
                return handle.pid

            project = await self._get_project_or_raise(project_id)
            deployment = await self.store.create_deployment(
                project.id, log_path=str(self._log_path(project.name, "runtime"))
            )
            await self.store.update_deployment_status(deployment.id, "building")
            try:
                handle = await self._start_locked(project_id)
            except Exception as e:
                await self.store.update_deployment_status(deployment.id, "failed", _error_message(e))
                raise
            await self.store.update_deployment_status(deployment.id, "success")
            return handle.pid

    async def stop(self, project_id: int) -> Optional[TerminationOutcome]:
        """
        Stop a project's process.

        When no process is tracked but the project still claims to be running,
        the status is corrected to ``stopped`` and its port released.

        Returns:
            How the process ended, or None for a status-only correction

        Raises:
            ProjectNotFoundError: If the project does not exist
            ProjectNotRunningError: If there is nothing to stop
        """
        async with self._lock_for(project_id):
            return await self._stop_locked(project_id)

    async def restart(self, project_id: int) -> int:
        """
        Stop the project if it runs, wait the grace interval, start it again.

        No deployment record is created.

        Returns:
            The new process ID
        """
        async with self._lock_for(project_id):
            project = await self._get_project_or_raise(project_id)
            if project_id in self._processes or project.status in CLAIMED_RUNNING_STATUSES:
                await self._stop_locked(project_id)
                await asyncio.sleep(self.restart_grace_seconds)
            handle = await self._start_locked(project_id)
            self._publish(project_id, LogType.SYSTEM, "Project restarted")
            return handle.pid

    async def delete_project(self, project_id: int) -> None:
        """
        Terminate a project's process if any, release its port and remove it from the store.

        Raises:
            ProjectNotFoundError: If the project does not exist
        """
        lock = self._lock_for(project_id)
        async with lock:
            project = await self._get_project_or_raise(project_id)
            handle = self._processes.get(project_id)
            if handle is not None:
                await self._terminate(handle)
            await self.port_allocator.release(project_id)
            await self.store.delete_project(project_id)
            logger.info(f"Deleted project {project.name}")
            self._publish(project_id, LogType.SYSTEM, f"Project deleted: {project.name}")

        # Later callers fail the project lookup, so the lock has nothing left to guard.
        if self._locks.get(project_id) is lock:
            del self._locks[project_id]

    async def _start_locked(self, project_id: int) -> RunningProcess:
        project = await self._get_project_or_raise(project_id)
        type_info = self._resolve_type(project)

        existing = self._processes.get(project_id)
        if existing is not None:
            logger.info(f"Project {project.name} already running (pid {existing.pid}), stopping it first")
            await self._terminate(existing)

        ports = await self.port_allocator.get_project_ports(project_id)
        if ports is None:
            ports = await self.port_allocator.reserve(project_id, type_info.default_port)

        command = self.platform.render(type_info.start_command, type_info, ports.internal)
        log_file = self._open_log(project.name, "runtime")
        try:
            process = await asyncio.create_subprocess_exec(
                *self.platform.shell_command(command),
                cwd=project.path,
                env=self.platform.build_environment(ports.internal),
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                limit=STREAM_LIMIT,
                **self._spawn_options(),
            )
        except OSError as e:
            log_file.close()
            logger.error(f"Failed to spawn project {project.name}: {e}")
            await self.port_allocator.release(project_id)
            await self.store.update_project_status(project_id, "error")
            self._publish(project_id, LogType.ERROR, f"Failed to start {project.name}: {e}")
            raise SpawnError(project_id, str(e)) from e

        handle = RunningProcess(
            project_id=project_id,
            process=process,
            pid=process.pid,
            internal_port=ports.internal,
            external_port=ports.external,
            log_path=log_file.name,
        )
        self._processes[project_id] = handle
        await self.store.update_project_status(project_id, "running")

        logger.info(f"Started project {project.name} (pid {process.pid}, port {ports.external}): {command}")
        self._publish(project_id, LogType.SYSTEM, f"Project started: {project.name} (port {ports.external})")

        loop = asyncio.get_running_loop()
        handle.readers = [
            loop.create_task(self._pump(process.stdout, project_id, LogType.STDOUT, log_file)),
            loop.create_task(self._pump(process.stderr, project_id, LogType.STDERR, log_file)),
        ]
        handle.watcher = loop.create_task(self._watch_exit(handle, log_file))
        return handle

    async def _stop_locked(self, project_id: int) -> Optional[TerminationOutcome]:
        handle = self._processes.get(project_id)
        if handle is None:
            project = await self._get_project_or_raise(project_id)
            if project.status not in CLAIMED_RUNNING_STATUSES:
                raise ProjectNotRunningError(project_id, project.status)
            logger.warning(f"Project {project_id} claims '{project.status}' with no live process, marking stopped")
            await self.store.update_project_status(project_id, "stopped")
            await self.port_allocator.release(project_id)
            self._publish(project_id, LogType.SYSTEM, "No live process found, status set to stopped")
            return None

        outcome = await self._terminate(handle)
        await self.port_allocator.release(project_id)
        await self.store.update_project_status(project_id, "stopped")
        self._publish(project_id, LogType.SYSTEM, f"Project stopped ({outcome.value})")
        return outcome

    async def _terminate(self, handle: RunningProcess) -> TerminationOutcome:
        """Remove a handle from the table and end its process. Ports and status are left alone."""
        if self._processes.get(handle.project_id) is handle:
            del self._processes[handle.project_id]

        outcome = await self.termination_strategy.terminate(handle.process)
        logger.info(f"Process {handle.pid} for project {handle.project_id} ended: {outcome.value}")
        if handle.watcher is not None:
            await asyncio.gather(handle.watcher, return_exceptions=True)
        return outcome

    async def _watch_exit(self, handle: RunningProcess, log_file: BinaryIO) -> None:
        project_id = handle.project_id
        try:
            exit_code = await wait_for_exit(handle.process)
            await self._drain_readers(handle.readers)
            log_file.close()

            # Only the current owner may clean up; stop() and restarts remove the handle first.
            # The handle stays registered until the cleanup is written, so a concurrent
            # start or stop goes through _terminate and waits for this task.
            if self._processes.get(project_id) is handle:
                logger.warning(f"Project {project_id} process {handle.pid} exited with code {exit_code}")
                try:
                    await self.port_allocator.release(project_id)
                    await self.store.update_project_status(project_id, "stopped")
                finally:
                    if self._processes.get(project_id) is handle:
                        del self._processes[project_id]

            self._publish(project_id, LogType.SYSTEM, f"Process exited (exit code {exit_code})")
        except Exception as e:
            logger.error(f"Error handling exit of project {project_id} process {handle.pid}: {e}")

    async def _drain_readers(self, readers: List[asyncio.Task]) -> None:
        """Give pipe readers a bounded time to finish, then cancel the rest."""
        if not readers:
            return
        _, pending = await asyncio.wait(readers, timeout=READER_DRAIN_SECONDS)
        for reader in pending:
            reader.cancel()
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)

    async def _pump(
        self,
        stream: Optional[asyncio.StreamReader],
        project_id: int,
        log_type: LogType,
        log_file: Optional[BinaryIO],
    ) -> None:
        """Forward a pipe line by line to the log file and the log channel."""
        if stream is None:
            return
        while True:
            try:
                line = await stream.readline()
            except ValueError:
                logger.warning(f"Dropped a {log_type.value} line over {STREAM_LIMIT} bytes for project {project_id}")
                continue
            if not line:
                return
            if log_file is not None and not log_file.closed:
                log_file.write(line)
                log_file.flush()
            self._publish(project_id, log_type, line.decode("utf-8", errors="replace").rstrip("\r\n"))

    # =========================================================================
    # Recovery and reconciliation
    # =========================================================================

    async def restore_running_projects(self) -> List[int]:
        """
        Start every project the store still marks as running.

        Used at startup: no process can have survived a supervisor restart, so
        the persisted claim is trusted. Failures are logged per project.

        Returns:
            IDs of the projects that were started
        """
        restored = []
        for project in await self.store.list_projects(status="running"):
            if project.id in self._processes:
                continue
            try:
                async with self._lock_for(project.id):
                    await self._start_locked(project.id)
                restored.append(project.id)
            except Exception as e:
                logger.error(f"Failed to restore project {project.name}: {_error_message(e)}")

        if restored:
            logger.info(f"Restored {len(restored)} running projects")
        return restored

    async def reconcile(self) -> List[int]:
        """
        Mark projects that claim to be running without a live process as stopped.

        Returns:
            IDs of the corrected projects
        """
        corrected = []
        for project in await self.store.list_projects(status="running"):
            lock = self._lock_for(project.id)
            if project.id in self._processes or lock.locked():
                continue
            async with lock:
                if project.id in self._processes:
                    continue
                await self.store.update_project_status(project.id, "stopped")
                await self.port_allocator.release(project.id)
                self._publish(project.id, LogType.SYSTEM, "No live process found, status set to stopped")
                corrected.append(project.id)

        if corrected:
            logger.warning(f"Reconciled projects without a live process: {corrected}")
        return corrected

    async def shutdown(self) -> None:
        """
        Stop the worker and every running process.

        Persisted statuses and ports are kept, so the same projects come back
        on the next ``restore_running_projects``.
        """
        if self._worker is not None and not self._worker.done():
            self._worker.cancel()
            await asyncio.gather(self._worker, return_exceptions=True)

        for handle in list(self._processes.values()):
            try:
                await self._terminate(handle)
            except Exception as e:
                logger.error(f"Failed to terminate project {handle.project_id} on shutdown: {e}")
        logger.info("Supervisor shut down")

    # =========================================================================
    # Helpers
    # =========================================================================

    def _lock_for(self, project_id: int) -> asyncio.Lock:
        lock = self._locks.get(project_id)
        if lock is None:
            lock = self._locks[project_id] = asyncio.Lock()
        return lock

    async def _get_project_or_raise(self, project_id: int):
        project = await self.store.get_project(project_id)
        if project is None:
            raise ProjectNotFoundError(str(project_id))
        return project

    def _resolve_type(self, project) -> ProjectTypeInfo:
        type_info = self.scanner.get_type_info(project.type)
        if type_info is None:
            type_info = self.scanner.require_type(project.path)
        return type_info

    def _spawn_options(self) -> Dict[str, Any]:
        # Own process group, so termination reaches the shell's children.
        return {} if self.platform.is_windows else {"start_new_session": True}

    def _log_path(self, project_name: str, category: str) -> Path:
        return self.logs_path / f"{project_name}_{category}.log"

    def _open_log(self, project_name: str, category: str) -> BinaryIO:
        self.logs_path.mkdir(parents=True, exist_ok=True)
        return open(self._log_path(project_name, category), "ab")

    def _publish(self, project_id: int, log_type: LogType, message: str) -> None:
        self.broadcaster.publish(project_id, log_type, message)


# Singleton instance
process_supervisor = ProcessSupervisor()

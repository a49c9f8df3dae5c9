"""
Termination strategies, one per host OS family.

Shells and language runtimes fork children that do not receive their parent's
signal, so every strategy targets the child processes as well and escalates
to a forced kill when the process outlives its grace window.
"""
import asyncio
import logging
import os
import signal
import sys
from typing import Optional

from shipyard.core.config import settings
from shipyard.services.deployment.executor_base import TerminationOutcome, TerminationStrategy

logger = logging.getLogger(__name__)

# Interval for checking whether a process has exited
EXIT_POLL_SECONDS = 0.05


async def _run_quietly(*args: str) -> Optional[int]:
    """Run a helper command, returning its exit code or None if it could not start."""
    try:
        proc = await asyncio.create_subprocess_exec(
            *args,
            stdout=asyncio.subprocess.DEVNULL,
            stderr=asyncio.subprocess.DEVNULL,
        )
    except OSError as e:
        logger.debug(f"Could not run {args[0]}: {e}")
        return None
    return await proc.wait()


async def wait_for_exit(process: asyncio.subprocess.Process) -> int:
    """
    Wait until the process itself has exited and return its exit code.

    ``Process.wait()`` may also wait for the stdio pipes to close, which a
    background grandchild can keep open long after the process is gone.
    """
    while process.returncode is None:
        await asyncio.sleep(EXIT_POLL_SECONDS)
    return process.returncode


async def _exited_within(process: asyncio.subprocess.Process, timeout: float) -> bool:
    try:
        await asyncio.wait_for(wait_for_exit(process), timeout=timeout)
        return True
    except asyncio.TimeoutError:
        return False


def _signal_group(pid: int, sig: int) -> None:
    """Signal the process group led by pid, or only the process when it leads no group."""
    try:
        if os.getpgid(pid) == pid:
            os.killpg(pid, sig)
            return
    except PermissionError:
        pass
    os.kill(pid, sig)


class SignalEscalationStrategy(TerminationStrategy):
    """
    SIGTERM to the process group, SIGKILL after a grace window.

    Args:
        grace_seconds: Time allowed between SIGTERM and SIGKILL
        kill_children_first: Run ``pkill -P`` on the pid before signalling
    """

    name = "signal-escalation"

    def __init__(self, grace_seconds: float = None, kill_children_first: bool = False):
        self.grace_seconds = settings.POSIX_KILL_GRACE_SECONDS if grace_seconds is None else grace_seconds
        self.kill_children_first = kill_children_first

    async def terminate(self, process: asyncio.subprocess.Process) -> TerminationOutcome:
        pid = process.pid
        if process.returncode is not None:
            return TerminationOutcome.ALREADY_EXITED

        if self.kill_children_first:
            await _run_quietly("pkill", "-P", str(pid))

        try:
            _signal_group(pid, signal.SIGTERM)
        except ProcessLookupError:
            await wait_for_exit(process)
            return TerminationOutcome.ALREADY_EXITED

        if await _exited_within(process, self.grace_seconds):
            logger.info(f"Process {pid} terminated")
            return TerminationOutcome.TERMINATED

        logger.warning(f"Process {pid} ignored SIGTERM for {self.grace_seconds}s, sending SIGKILL")
        try:
            _signal_group(pid, signal.SIGKILL)
        except ProcessLookupError:
            pass
        await wait_for_exit(process)
        return TerminationOutcome.KILLED


class DescendantsFirstStrategy(SignalEscalationStrategy):
    """Linux: kill direct children with ``pkill -P``, then escalate signals on the group."""

    name = "descendants-first"

    def __init__(self, grace_seconds: float = None):
        super().__init__(
            grace_seconds=settings.LINUX_KILL_GRACE_SECONDS if grace_seconds is None else grace_seconds,
            kill_children_first=True,
        )


class TreeKillStrategy(TerminationStrategy):
    """Windows: ``taskkill /t /f`` over the whole tree, direct kill if that fails."""

    name = "tree-kill"

    async def terminate(self, process: asyncio.subprocess.Process) -> TerminationOutcome:
        pid = process.pid
        if process.returncode is not None:
            return TerminationOutcome.ALREADY_EXITED

        code = await _run_quietly("taskkill", "/pid", str(pid), "/t", "/f")
        if code != 0:
            logger.warning(f"taskkill for {pid} exited with {code}, killing process directly")
            try:
                process.kill()
            except ProcessLookupError:
                await process.wait()
                return TerminationOutcome.ALREADY_EXITED

        await process.wait()
        return TerminationOutcome.KILLED


def select_termination_strategy(platform: str = None) -> TerminationStrategy:
    """
    Pick the termination strategy for a host OS.

    Args:
        platform: ``sys.platform`` style name (default: the current host)

    Returns:
        The strategy instance
    """
    platform = platform or sys.platform
    if platform.startswith("win"):
        strategy = TreeKillStrategy()
    elif platform.startswith("linux"):
        strategy = DescendantsFirstStrategy()
    elif platform == "darwin":
        strategy = SignalEscalationStrategy(kill_children_first=True)
    else:
        strategy = SignalEscalationStrategy()
    logger.debug(f"Using {strategy.name} termination strategy for {platform}")
    return strategy

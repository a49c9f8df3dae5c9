"""
Tests for the platform termination strategies and the platform profile.
"""
import asyncio
import os
import signal
import sys
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from shipyard.services.deployment.executor_base import TerminationOutcome
from shipyard.services.deployment.platform import LINUX, WINDOWS, detect_platform
from shipyard.services.deployment.termination import (
    DescendantsFirstStrategy,
    SignalEscalationStrategy,
    TreeKillStrategy,
    select_termination_strategy,
    wait_for_exit,
)
from shipyard.services.project_scanner import SUPPORTED_TYPES

posix_only = pytest.mark.skipif(sys.platform == "win32", reason="POSIX signals")


async def spawn_python(code: str) -> asyncio.subprocess.Process:
    return await asyncio.create_subprocess_exec(
        sys.executable, "-c", code,
        stdout=asyncio.subprocess.PIPE,
        start_new_session=True,
    )


class TestStrategySelection:
    """select_termination_strategy picks one strategy per OS family."""

    def test_windows(self):
        assert isinstance(select_termination_strategy("win32"), TreeKillStrategy)

    def test_linux(self):
        strategy = select_termination_strategy("linux")

        assert isinstance(strategy, DescendantsFirstStrategy)
        assert strategy.grace_seconds == 3.0
        assert strategy.kill_children_first

    def test_macos(self):
        strategy = select_termination_strategy("darwin")

        assert type(strategy) is SignalEscalationStrategy
        assert strategy.grace_seconds == 5.0
        assert strategy.kill_children_first

    def test_other_unix(self):
        strategy = select_termination_strategy("freebsd13")

        assert type(strategy) is SignalEscalationStrategy
        assert not strategy.kill_children_first


@posix_only
class TestSignalEscalation:
    """Real processes terminated through the signal strategies."""

    @pytest.mark.asyncio
    async def test_terminates_cooperative_process(self):
        process = await spawn_python("import time; time.sleep(30)")

        outcome = await SignalEscalationStrategy(grace_seconds=5).terminate(process)

        assert outcome == TerminationOutcome.TERMINATED
        assert process.returncode is not None

    @pytest.mark.asyncio
    async def test_escalates_when_sigterm_ignored(self):
        process = await spawn_python(
            "import signal, time\n"
            "signal.signal(signal.SIGTERM, signal.SIG_IGN)\n"
            "print('ready', flush=True)\n"
            "time.sleep(30)\n"
        )
        assert (await process.stdout.readline()).strip() == b"ready"

        outcome = await SignalEscalationStrategy(grace_seconds=0.5).terminate(process)

        assert outcome == TerminationOutcome.KILLED
        assert process.returncode is not None

    @pytest.mark.asyncio
    async def test_already_exited(self):
        process = await spawn_python("pass")
        await process.wait()

        outcome = await DescendantsFirstStrategy(grace_seconds=1).terminate(process)

        assert outcome == TerminationOutcome.ALREADY_EXITED

    @pytest.mark.asyncio
    async def test_wait_for_exit_ignores_grandchild_holding_the_pipe(self):
        process = await spawn_python(
            "import subprocess, sys; "
            "subprocess.Popen([sys.executable, '-c', 'import time; time.sleep(5)']); "
            "print('parent done', flush=True)"
        )
        try:
            exit_code = await asyncio.wait_for(wait_for_exit(process), timeout=3)

            assert exit_code == 0
            assert (await process.stdout.readline()).strip() == b"parent done"
        finally:
            try:
                os.killpg(process.pid, signal.SIGKILL)
            except ProcessLookupError:
                pass


class TestTreeKill:
    """Windows tree kill, with taskkill mocked."""

    @pytest.mark.asyncio
    async def test_taskkill_success(self):
        process = MagicMock(pid=321, returncode=None)
        process.wait = AsyncMock(return_value=1)
        taskkill = MagicMock()
        taskkill.wait = AsyncMock(return_value=0)

        with patch("asyncio.create_subprocess_exec", new=AsyncMock(return_value=taskkill)) as mock_exec:
            outcome = await TreeKillStrategy().terminate(process)

        assert outcome == TerminationOutcome.KILLED
        assert mock_exec.call_args.args == ("taskkill", "/pid", "321", "/t", "/f")
        process.kill.assert_not_called()

    @pytest.mark.asyncio
    async def test_falls_back_to_direct_kill(self):
        process = MagicMock(pid=321, returncode=None)
        process.wait = AsyncMock(return_value=1)
        taskkill = MagicMock()
        taskkill.wait = AsyncMock(return_value=128)

        with patch("asyncio.create_subprocess_exec", new=AsyncMock(return_value=taskkill)):
            outcome = await TreeKillStrategy().terminate(process)

        assert outcome == TerminationOutcome.KILLED
        process.kill.assert_called_once()

    @pytest.mark.asyncio
    async def test_already_exited(self):
        process = MagicMock(pid=321, returncode=0)

        assert await TreeKillStrategy().terminate(process) == TerminationOutcome.ALREADY_EXITED


class TestPlatformProfile:
    """Command rendering and environment overrides."""

    def test_flask_on_linux(self):
        command = LINUX.render(SUPPORTED_TYPES["python-flask"].start_command, SUPPORTED_TYPES["python-flask"], 4005)

        assert command == "python3 -m flask run --host=127.0.0.1 --port=4005"

    def test_django_on_windows_gets_utf8_code_page(self):
        info = SUPPORTED_TYPES["python-django"]

        command = WINDOWS.render(info.start_command, info, 4001)

        assert command == "chcp 65001 && python manage.py runserver 0.0.0.0:4001"

    def test_node_gets_port_prefix(self):
        info = SUPPORTED_TYPES["nodejs"]

        assert LINUX.render(info.start_command, info, 4001) == "PORT=4001 npm start"
        assert WINDOWS.render(info.start_command, info, 4001) == "set PORT=4001 && npm start"

    def test_build_without_port_has_no_prefix(self):
        info = SUPPORTED_TYPES["react"]

        assert LINUX.render(info.build_command, info) == "npm install && npm run build"

    def test_missing_template(self):
        info = SUPPORTED_TYPES["static"]

        assert LINUX.render(info.build_command, info) is None

    def test_environment_overrides(self):
        env = LINUX.build_environment(4002, base={"PATH": "/usr/bin", "PORT": "1"})

        assert env["PATH"] == "/usr/bin"
        assert env["PORT"] == "4002"
        assert env["FLASK_RUN_PORT"] == "4002"
        assert env["FLASK_RUN_HOST"] == "127.0.0.1"
        assert env["PYTHONUNBUFFERED"] == "1"
        assert env["PYTHONIOENCODING"] == "utf-8"
        assert env["NODE_ENV"] == "production"

    def test_shell_command(self):
        assert LINUX.shell_command("npm start") == ["bash", "-c", "npm start"]
        assert WINDOWS.shell_command("npm start") == ["cmd", "/c", "npm start"]

    def test_detect_platform(self):
        assert detect_platform("win32") is WINDOWS
        assert detect_platform("linux") is LINUX
        assert detect_platform("darwin").shell == "sh"
        assert detect_platform("openbsd7").name == "posix"

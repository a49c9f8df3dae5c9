"""
Host platform profile: shell, interpreter names and command rendering.
"""
import os
import sys
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from shipyard.services.project_scanner import ProjectTypeInfo


@dataclass(frozen=True)
class PlatformProfile:
    """How commands are spawned on one OS family."""

    name: str
    shell: str
    shell_args: Tuple[str, ...]
    python: str
    pip: str
    is_windows: bool = False

    def shell_command(self, command: str) -> List[str]:
        """Argument vector that runs ``command`` through the platform shell."""
        return [self.shell, *self.shell_args, command]

    def render(self, template: Optional[str], type_info: ProjectTypeInfo, port: Optional[int] = None) -> Optional[str]:
        """
        Fill a command template for this platform.

        Python commands get a UTF-8 code page on Windows. Node commands get
        an explicit ``PORT`` assignment, since ``npm start`` ignores arguments.

        Args:
            template: Start or build template, may be None
            type_info: Project type the template belongs to
            port: Port to substitute; Node prefixes are only added when set

        Returns:
            The concrete command, or None when there is no template
        """
        if not template:
            return None
        command = template.format(
            port=port if port is not None else "",
            python=self.python,
            pip=self.pip,
        )
        if type_info.is_python and self.is_windows:
            command = f"chcp 65001 && {command}"
        if type_info.is_node and port is not None:
            if self.is_windows:
                command = f"set PORT={port} && {command}"
            else:
                command = f"PORT={port} {command}"
        return command

    def build_environment(self, port: Optional[int] = None, base: Optional[Dict[str, str]] = None) -> Dict[str, str]:
        """Host environment plus the overrides every project process runs with."""
        env = dict(os.environ if base is None else base)
        env.update({
            "NODE_ENV": "production",
            "FLASK_APP": "app.py",
            "FLASK_ENV": "development",
            "FLASK_RUN_HOST": "127.0.0.1",
            "PYTHONIOENCODING": "utf-8",
            "PYTHONUNBUFFERED": "1",
        })
        if port is not None:
            env["PORT"] = str(port)
            env["FLASK_RUN_PORT"] = str(port)
        return env


WINDOWS = PlatformProfile(
    name="windows", shell="cmd", shell_args=("/c",), python="python", pip="pip", is_windows=True
)
LINUX = PlatformProfile(name="linux", shell="bash", shell_args=("-c",), python="python3", pip="pip3")
MACOS = PlatformProfile(name="darwin", shell="sh", shell_args=("-c",), python="python3", pip="pip3")
POSIX = PlatformProfile(name="posix", shell="sh", shell_args=("-c",), python="python3", pip="pip3")


def detect_platform(platform: str = None) -> PlatformProfile:
    platform = platform or sys.platform
    if platform.startswith("win"):
        return WINDOWS
    if platform.startswith("linux"):
        return LINUX
    if platform == "darwin":
        return MACOS
    return POSIX

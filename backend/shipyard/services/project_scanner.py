"""
Project type detection and projects directory scanning.

Classification runs in three passes, most specific first:
1. package.json dependencies (react > vue > generic Node server framework)
2. required-file probes in a fixed priority order
3. loose file-extension heuristics over a depth-bounded listing
"""
import json
import logging
import os
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from shipyard.core.config import settings
from shipyard.core.exceptions import UnsupportedProjectError

logger = logging.getLogger(__name__)

SKIPPED_DIRECTORIES = {"node_modules", ".git", ".svn", ".hg", "vendor"}
NODE_SERVER_FRAMEWORKS = ("express", "fastify", "koa")

PYTHON_TYPES = ("python-flask", "python-django")
NODE_TYPES = ("nodejs", "react", "vue")


@dataclass(frozen=True)
class ProjectTypeInfo:
    """
    Runtime classification of a project directory.

    Command templates may reference ``{port}``, ``{python}`` and ``{pip}``;
    they are rendered by the platform profile at start time.
    """

    type: str
    files: Tuple[str, ...]
    start_command: str
    build_command: Optional[str]
    default_port: int

    @property
    def is_python(self) -> bool:
        return self.type in PYTHON_TYPES

    @property
    def is_node(self) -> bool:
        return self.type in NODE_TYPES


SUPPORTED_TYPES: Dict[str, ProjectTypeInfo] = {
    "nodejs": ProjectTypeInfo(
        type="nodejs",
        files=("package.json",),
        start_command="npm start",
        build_command="npm install",
        default_port=3000,
    ),
    "python-flask": ProjectTypeInfo(
        type="python-flask",
        files=("requirements.txt",),
        start_command="{python} -m flask run --host=127.0.0.1 --port={port}",
        build_command="{pip} install -r requirements.txt",
        default_port=5000,
    ),
    "python-django": ProjectTypeInfo(
        type="python-django",
        files=("manage.py", "requirements.txt"),
        start_command="{python} manage.py runserver 0.0.0.0:{port}",
        build_command="{pip} install -r requirements.txt",
        default_port=8000,
    ),
    "php": ProjectTypeInfo(
        type="php",
        files=("index.php",),
        start_command="php -S 0.0.0.0:{port}",
        build_command=None,
        default_port=8080,
    ),
    "static": ProjectTypeInfo(
        type="static",
        files=("index.html",),
        start_command="npx --yes serve -l {port}",
        build_command=None,
        default_port=8080,
    ),
    "react": ProjectTypeInfo(
        type="react",
        files=("package.json",),
        start_command="npm start",
        build_command="npm install && npm run build",
        default_port=3000,
    ),
    "vue": ProjectTypeInfo(
        type="vue",
        files=("package.json",),
        start_command="npm run serve",
        build_command="npm install && npm run build",
        default_port=8080,
    ),
}

# Order matters: Django must win over Flask, which only needs requirements.txt.
PROBE_ORDER = ("python-django", "python-flask", "nodejs", "php", "static")

LOOSE_EXTENSIONS = (
    (".py", "python-flask"),
    (".php", "php"),
    (".html", "static"),
    (".js", "nodejs"),
)


@dataclass
class ProjectAnalysis:
    """What a scan learned about one directory under the projects root."""

    name: str
    path: str
    type: str
    description: str = ""
    version: str = "1.0.0"
    last_modified: Optional[datetime] = None
    type_info: Optional[ProjectTypeInfo] = field(default=None, repr=False)

    def to_project_fields(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "path": self.path,
            "type": self.type,
            "description": self.description or None,
        }


class ProjectScanner:
    """
    Classifies project directories and scans the projects root.

    Args:
        projects_path: Root directory holding one sub-directory per project
        max_depth: Directory depth for the loose extension heuristics
    """

    def __init__(self, projects_path: Optional[str] = None, max_depth: Optional[int] = None):
        self.projects_path = Path(projects_path or settings.PROJECTS_PATH).resolve()
        self.max_depth = settings.SCAN_MAX_DEPTH if max_depth is None else max_depth

    def supported_types(self) -> List[str]:
        return list(SUPPORTED_TYPES.keys())

    def get_type_info(self, project_type: str) -> Optional[ProjectTypeInfo]:
        return SUPPORTED_TYPES.get(project_type)

    def classify(self, path: str) -> Optional[ProjectTypeInfo]:
        """
        Detect the runtime type of a project directory.

        Args:
            path: Project directory

        Returns:
            The matching type info, or None when the project is unsupported
        """
        root = Path(path)
        if not root.is_dir():
            return None

        package_json = self._read_package_json(root)
        if package_json is not None:
            detected = self._classify_by_dependencies(package_json)
            if detected:
                return SUPPORTED_TYPES[detected]

        for project_type in PROBE_ORDER:
            info = SUPPORTED_TYPES[project_type]
            if not all((root / name).exists() for name in info.files):
                continue
            if project_type == "python-django" and not self._is_django_project(root):
                continue
            return info

        files = self._list_files(root)
        for extension, project_type in LOOSE_EXTENSIONS:
            if any(name.endswith(extension) for name in files):
                return SUPPORTED_TYPES[project_type]

        return None

    def require_type(self, path: str) -> ProjectTypeInfo:
        """Classify a directory, raising UnsupportedProjectError when nothing matches."""
        info = self.classify(path)
        if info is None:
            raise UnsupportedProjectError(str(path))
        return info

    def analyze_project(self, path: str, name: Optional[str] = None) -> Optional[ProjectAnalysis]:
        """
        Classify a directory and collect its display metadata.

        Returns:
            The analysis, or None for unsupported directories
        """
        root = Path(path)
        info = self.classify(str(root))
        if info is None:
            return None

        package_json = self._read_package_json(root) or {}
        return ProjectAnalysis(
            name=name or root.name,
            path=str(root.resolve()),
            type=info.type,
            description=str(package_json.get("description") or ""),
            version=str(package_json.get("version") or "1.0.0"),
            last_modified=datetime.utcfromtimestamp(root.stat().st_mtime),
            type_info=info,
        )

    def scan_projects(self, root: Optional[str] = None) -> List[ProjectAnalysis]:
        """
        Analyze every sub-directory of the projects root.

        Creates the root when it does not exist yet. Unsupported directories
        are skipped.
        """
        projects_root = Path(root).resolve() if root else self.projects_path
        if not projects_root.exists():
            projects_root.mkdir(parents=True, exist_ok=True)
            logger.info(f"Created projects directory {projects_root}")
            return []

        projects = []
        for entry in sorted(projects_root.iterdir()):
            if not entry.is_dir():
                continue
            analysis = self.analyze_project(str(entry), entry.name)
            if analysis is None:
                logger.debug(f"Skipping unsupported directory {entry}")
                continue
            projects.append(analysis)

        logger.info(f"Scanned {projects_root}: {len(projects)} supported projects")
        return projects

    async def sync_projects(self, store, root: Optional[str] = None) -> List[Any]:
        """
        Upsert every scanned project into the store.

        Existing rows keep their status and ports; only name, path, type and
        description are refreshed.

        Args:
            store: ProjectStore to write into
            root: Optional projects root (default from settings)

        Returns:
            The stored projects
        """
        stored = []
        for analysis in self.scan_projects(root):
            project = await store.upsert_project(**analysis.to_project_fields())
            stored.append(project)
        return stored

    @staticmethod
    def _classify_by_dependencies(package_json: Dict[str, Any]) -> Optional[str]:
        dependencies: Dict[str, Any] = {}
        for key in ("dependencies", "devDependencies"):
            section = package_json.get(key)
            if isinstance(section, dict):
                dependencies.update(section)

        if "react" in dependencies:
            return "react"
        if "vue" in dependencies:
            return "vue"
        if any(name in dependencies for name in NODE_SERVER_FRAMEWORKS):
            return "nodejs"
        return None

    @staticmethod
    def _read_package_json(root: Path) -> Optional[Dict[str, Any]]:
        package_path = root / "package.json"
        if not package_path.is_file():
            return None
        try:
            content = json.loads(package_path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.warning(f"Could not read {package_path}: {e}")
            return None
        return content if isinstance(content, dict) else None

    @staticmethod
    def _is_django_project(root: Path) -> bool:
        requirements = root / "requirements.txt"
        try:
            return "Django" in requirements.read_text(encoding="utf-8", errors="replace")
        except OSError:
            return False

    def _list_files(self, root: Path) -> List[str]:
        """Relative file paths up to max_depth directories below root."""
        files: List[str] = []

        def walk(directory: Path, depth: int) -> None:
            try:
                entries = list(os.scandir(directory))
            except OSError:
                return
            for entry in entries:
                if entry.name in SKIPPED_DIRECTORIES:
                    continue
                if entry.is_dir(follow_symlinks=False):
                    if depth < self.max_depth:
                        walk(Path(entry.path), depth + 1)
                else:
                    files.append(os.path.relpath(entry.path, root))

        walk(root, 0)
        return files


# Singleton instance
project_scanner = ProjectScanner()

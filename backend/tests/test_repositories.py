"""
Tests for the repositories and the database-backed store.

The session is mocked; these check the repository logic, not SQL.
"""
from contextlib import asynccontextmanager
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from shipyard.core.exceptions import DeploymentNotFoundError, ProjectNotFoundError
from shipyard.models.project import Project
from shipyard.repositories.deployment_repository import DeploymentRepository
from shipyard.repositories.log_repository import LogRepository
from shipyard.repositories.port_assignment_repository import PortAssignmentRepository
from shipyard.repositories.project_repository import ProjectRepository
from shipyard.services.store import DatabaseStore


@pytest.fixture
def mock_db():
    """Create a mock database session."""
    db = AsyncMock()
    db.add = MagicMock()
    return db


def result_with_rows(rows):
    result = MagicMock()
    result.all.return_value = rows
    return result


class TestDeploymentRepositoryUpdateStatus:
    """Tests for the conditional status update."""

    @pytest.mark.asyncio
    async def test_update_applies_to_active_row(self, mock_db):
        mock_db.execute.return_value = MagicMock(rowcount=1)
        repo = DeploymentRepository(mock_db)

        updated = await repo.update_status(1, "success")

        assert updated is True
        mock_db.commit.assert_called_once()

    @pytest.mark.asyncio
    async def test_terminal_row_is_not_overwritten(self, mock_db):
        mock_db.execute.return_value = MagicMock(rowcount=0)
        repo = DeploymentRepository(mock_db)

        assert await repo.update_status(1, "failed", "boom") is False

    @pytest.mark.asyncio
    async def test_update_sets_finished_at_for_terminal_status(self, mock_db):
        mock_db.execute.return_value = MagicMock(rowcount=1)
        repo = DeploymentRepository(mock_db)

        await repo.update_status(1, "failed", "Build failed (exit code 1)")

        values = mock_db.execute.call_args.args[0].compile().params
        assert values["status"] == "failed"
        assert values["error_message"] == "Build failed (exit code 1)"
        assert "finished_at" in values

    @pytest.mark.asyncio
    async def test_non_terminal_status_keeps_finished_at(self, mock_db):
        mock_db.execute.return_value = MagicMock(rowcount=1)
        repo = DeploymentRepository(mock_db)

        await repo.update_status(1, "building")

        assert "finished_at" not in mock_db.execute.call_args.args[0].compile().params

    @pytest.mark.asyncio
    async def test_get_by_id_or_raise(self, mock_db):
        repo = DeploymentRepository(mock_db)

        with patch.object(repo, "get_by_id", new_callable=AsyncMock) as mock_get:
            mock_get.return_value = None

            with pytest.raises(DeploymentNotFoundError):
                await repo.get_by_id_or_raise(42)

    @pytest.mark.asyncio
    async def test_create_deployment_starts_pending(self, mock_db):
        repo = DeploymentRepository(mock_db)

        deployment = await repo.create_deployment(3, log_path="/logs/app_build.log")

        assert deployment.status == "pending"
        assert deployment.project_id == 3
        assert deployment.log_path == "/logs/app_build.log"
        mock_db.add.assert_called_once_with(deployment)
        mock_db.commit.assert_called_once()


class TestProjectRepository:
    """Tests for ProjectRepository."""

    @pytest.mark.asyncio
    async def test_upsert_inserts_new_project(self, mock_db):
        repo = ProjectRepository(mock_db)

        with patch.object(repo, "get_by_name", new_callable=AsyncMock) as mock_get:
            mock_get.return_value = None

            project = await repo.upsert("api", path="/srv/api", type="nodejs", description=None)

        assert project.name == "api"
        assert project.path == "/srv/api"
        assert project.description is None
        mock_db.add.assert_called_once_with(project)
        mock_db.refresh.assert_called_once_with(project)

    @pytest.mark.asyncio
    async def test_upsert_updates_existing_without_touching_ports(self, mock_db):
        existing = Project(name="api", path="/old", type="static", status="running", internal_port=4001)
        repo = ProjectRepository(mock_db)

        with patch.object(repo, "get_by_name", new_callable=AsyncMock) as mock_get:
            mock_get.return_value = existing

            project = await repo.upsert("api", path="/new", type="react", internal_port=9999)

        assert project is existing
        assert existing.path == "/new"
        assert existing.type == "react"
        assert existing.status == "running"
        assert existing.internal_port == 4001
        mock_db.add.assert_not_called()

    @pytest.mark.asyncio
    async def test_get_by_id_or_raise(self, mock_db):
        repo = ProjectRepository(mock_db)

        with patch.object(repo, "get_by_id", new_callable=AsyncMock) as mock_get:
            mock_get.return_value = None

            with pytest.raises(ProjectNotFoundError):
                await repo.get_by_id_or_raise(7)

    @pytest.mark.asyncio
    async def test_get_used_ports_collects_both_columns(self, mock_db):
        mock_db.execute.return_value = result_with_rows([(1, 4000, 4000), (2, 4001, None)])
        repo = ProjectRepository(mock_db)

        ports = await repo.get_used_ports()

        assert ports == [4000, 4000, 4001]


class TestPortAssignmentRepository:
    """Tests for PortAssignmentRepository."""

    @pytest.mark.asyncio
    async def test_replace_deletes_then_creates(self, mock_db):
        repo = PortAssignmentRepository(mock_db)

        assignment = await repo.replace(5, 4002, 4002)

        assert mock_db.execute.call_count == 1
        assert assignment.project_id == 5
        assert assignment.protocol == "http"
        mock_db.add.assert_called_once_with(assignment)

    @pytest.mark.asyncio
    async def test_get_used_ports(self, mock_db):
        mock_db.execute.return_value = result_with_rows([(4000, 4000), (4003, 4003)])
        repo = PortAssignmentRepository(mock_db)

        assert await repo.get_used_ports(exclude_project_id=9) == {4000, 4003}


class TestLogRepository:
    """Tests for LogRepository."""

    @pytest.mark.asyncio
    async def test_list_returns_oldest_first(self, mock_db):
        newest_first = [MagicMock(message="c"), MagicMock(message="b"), MagicMock(message="a")]
        result = MagicMock()
        result.scalars.return_value.all.return_value = newest_first
        mock_db.execute.return_value = result
        repo = LogRepository(mock_db)

        entries = await repo.list_for_project(1, limit=3)

        assert [entry.message for entry in entries] == ["a", "b", "c"]


class TestDatabaseStore:
    """DatabaseStore opens one session per call and delegates to repositories."""

    @pytest.fixture
    def session_factory(self, mock_db):
        @asynccontextmanager
        async def factory():
            yield mock_db

        return factory

    @pytest.mark.asyncio
    async def test_get_used_ports_unions_both_sources(self, session_factory):
        store = DatabaseStore(session_factory=session_factory)

        with patch("shipyard.services.store.PortAssignmentRepository") as assignments, \
                patch("shipyard.services.store.ProjectRepository") as projects:
            assignments.return_value.get_used_ports = AsyncMock(return_value={4000})
            projects.return_value.get_used_ports = AsyncMock(return_value=[4000, 4005])

            used = await store.get_used_ports(exclude_project_id=2)

        assert used == {4000, 4005}
        assignments.return_value.get_used_ports.assert_awaited_once_with(2)

    @pytest.mark.asyncio
    async def test_update_deployment_status_reports_ignored_write(self, session_factory):
        store = DatabaseStore(session_factory=session_factory)

        with patch("shipyard.services.store.DeploymentRepository") as deployments:
            deployments.return_value.update_status = AsyncMock(return_value=False)

            assert await store.update_deployment_status(1, "success") is False

    @pytest.mark.asyncio
    async def test_upsert_passes_name_separately(self, session_factory):
        store = DatabaseStore(session_factory=session_factory)

        with patch("shipyard.services.store.ProjectRepository") as projects:
            projects.return_value.upsert = AsyncMock(return_value="stored")

            result = await store.upsert_project(name="api", path="/srv/api", type="nodejs")

        assert result == "stored"
        projects.return_value.upsert.assert_awaited_once_with("api", path="/srv/api", type="nodejs")

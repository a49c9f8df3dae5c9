"""
Repository for persisted project log lines.
"""
from typing import List, Optional

from sqlalchemy import desc, select

from shipyard.models.log_entry import LogEntry
from shipyard.repositories.base import BaseRepository


class LogRepository(BaseRepository[LogEntry]):
    """Repository for LogEntry database operations."""

    model = LogEntry

    async def append(self, project_id: int, log_type: str, message: str) -> LogEntry:
        return await self.create(LogEntry(project_id=project_id, type=log_type, message=message))

    async def list_for_project(
        self,
        project_id: int,
        log_type: Optional[str] = None,
        limit: int = 200,
    ) -> List[LogEntry]:
        """
        Most recent log lines for a project, returned oldest first.

        Args:
            project_id: Project ID
            log_type: Optional log type filter
            limit: Maximum number of lines

        Returns:
            List of log entries in chronological order
        """
        query = select(LogEntry).where(LogEntry.project_id == project_id)
        if log_type:
            query = query.where(LogEntry.type == log_type)
        query = query.order_by(desc(LogEntry.timestamp), desc(LogEntry.id)).limit(limit)
        result = await self.db.execute(query)
        return list(reversed(result.scalars().all()))

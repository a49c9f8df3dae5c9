"""
Deployment model for tracking build-then-start attempts.
"""
from datetime import datetime
from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, Text
from sqlalchemy.orm import relationship

from shipyard.core.database import Base

TERMINAL_DEPLOYMENT_STATUSES = ("success", "failed", "cancelled")


class Deployment(Base):
    """Deployment record."""

    __tablename__ = "deployments"

    id = Column(Integer, primary_key=True, autoincrement=True)
    project_id = Column(Integer, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, index=True)
    version = Column(String(100), nullable=True)
    status = Column(String(20), nullable=False, default="pending", index=True)
    started_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    finished_at = Column(DateTime, nullable=True)
    log_path = Column(String(1000), nullable=True)
    error_message = Column(Text, nullable=True)

    project = relationship("Project", back_populates="deployments")

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_DEPLOYMENT_STATUSES

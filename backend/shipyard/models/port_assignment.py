"""
Port assignment model: the live port reservation held by a project.
"""
from datetime import datetime
from sqlalchemy import Column, DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import relationship

from shipyard.core.database import Base


class PortAssignment(Base):
    """One row per project currently holding a port."""

    __tablename__ = "port_assignments"

    id = Column(Integer, primary_key=True, autoincrement=True)
    project_id = Column(Integer, ForeignKey("projects.id", ondelete="CASCADE"), nullable=False, unique=True)
    internal_port = Column(Integer, nullable=False, unique=True)
    external_port = Column(Integer, nullable=False)
    protocol = Column(String(10), nullable=False, default="http")
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    project = relationship("Project", back_populates="port_assignment")

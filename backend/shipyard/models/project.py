"""
Project model: a user application directory managed by the supervisor.
"""
from datetime import datetime
from sqlalchemy import Column, DateTime, Integer, String, Text
from sqlalchemy.orm import relationship

from shipyard.core.database import Base


class Project(Base):
    """Project record."""

    __tablename__ = "projects"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), unique=True, nullable=False, index=True)
    path = Column(String(1000), nullable=False)
    type = Column(String(50), nullable=False)
    description = Column(Text, nullable=True)
    status = Column(String(20), nullable=False, default="stopped", index=True)  # stopped, building, running, error
    internal_port = Column(Integer, nullable=True)
    external_port = Column(Integer, nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    deployments = relationship("Deployment", back_populates="project", cascade="all, delete-orphan", passive_deletes=True)
    port_assignment = relationship(
        "PortAssignment", back_populates="project", uselist=False, cascade="all, delete-orphan", passive_deletes=True
    )
    logs = relationship("LogEntry", back_populates="project", cascade="all, delete-orphan", passive_deletes=True)

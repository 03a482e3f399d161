"""Database models for the Workspace Reconciler."""

from datetime import datetime

from sqlalchemy import JSON, Boolean, Column, DateTime, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import DeclarativeBase, relationship

from .states import WorkspaceState


class Base(DeclarativeBase):
    """Base class for all database models."""

    pass


class AgentDB(Base):
    """Cluster agent with its remote development configuration."""

    __tablename__ = "agents"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(255), unique=True, nullable=False, index=True)
    dns_zone = Column(String(255), nullable=False)
    network_policy_enabled = Column(Boolean, nullable=False, default=True)
    gitlab_workspaces_proxy_namespace = Column(String(63), nullable=False, default="gitlab-workspaces")
    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    workspaces = relationship("WorkspaceDB", back_populates="agent", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<AgentDB(name={self.name}, dns_zone={self.dns_zone})>"


class WorkspaceDB(Base):
    """Remote development workspace."""

    __tablename__ = "workspaces"
    __table_args__ = (UniqueConstraint("agent_id", "name", name="uq_workspaces_agent_id_name"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    agent_id = Column(Integer, ForeignKey("agents.id"), nullable=False, index=True)
    user_id = Column(Integer, nullable=False, index=True)
    name = Column(String(64), nullable=False, index=True)
    namespace = Column(String(63), nullable=False)

    # State
    desired_state = Column(String(32), nullable=False, default=WorkspaceState.RUNNING.value)
    actual_state = Column(String(32), nullable=False, default=WorkspaceState.CREATION_REQUESTED.value)
    desired_state_updated_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    responded_to_agent_at = Column(DateTime)
    deployment_resource_version = Column(String(64))
    force_include_all_resources = Column(Boolean, nullable=False, default=True)

    # Lifecycle
    max_hours_before_termination = Column(Integer, nullable=False, default=24)

    # Configuration
    processed_devfile = Column(Text, nullable=False, default="")
    variables = Column(JSON, nullable=False, default=list)

    # Optimistic locking
    lock_version = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    agent = relationship("AgentDB", back_populates="workspaces")

    def __repr__(self):
        return f"<WorkspaceDB(name={self.name}, desired={self.desired_state}, actual={self.actual_state})>"

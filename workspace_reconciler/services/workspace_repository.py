"""Workspace persistence used by reconciliation."""

import logging
from abc import ABC, abstractmethod
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ..models.database import AgentDB, WorkspaceDB
from ..models.schemas import AgentConfig, Workspace

logger = logging.getLogger(__name__)


class StaleWorkspaceError(RuntimeError):
    """Raised when a workspace was modified concurrently since it was loaded."""


class WorkspaceRepository(ABC):
    """
    Storage for agents and workspaces.

    ``save`` must only succeed when the stored ``lock_version`` still matches
    the one the workspace was loaded with, and bumps it on success.
    """

    @abstractmethod
    async def get_agent(self, agent_id: int) -> Optional[AgentConfig]:
        """Get an agent by ID."""

    @abstractmethod
    async def find_agent(self, name: str) -> Optional[AgentConfig]:
        """Find an agent by name."""

    @abstractmethod
    async def add_agent(self, agent: AgentConfig) -> AgentConfig:
        """Store a new agent and return it with its ID."""

    @abstractmethod
    async def find_workspace(self, name: str, namespace: str, agent_id: int) -> Optional[Workspace]:
        """Find a workspace by name and namespace within an agent."""

    @abstractmethod
    async def get_workspace(self, workspace_id: int) -> Optional[Workspace]:
        """Get a workspace by ID."""

    @abstractmethod
    async def list_workspaces(self, agent_id: int) -> list[Workspace]:
        """List all workspaces of an agent, oldest first."""

    @abstractmethod
    async def add(self, workspace: Workspace) -> Workspace:
        """Store a new workspace and return it with its ID."""

    @abstractmethod
    async def save(self, workspace: Workspace) -> Workspace:
        """
        Persist changes to an existing workspace.

        Raises:
            StaleWorkspaceError: If the workspace changed since it was loaded
        """


class InMemoryWorkspaceRepository(WorkspaceRepository):
    """Dictionary backed repository, used by tests and local tooling."""

    def __init__(self):
        self._agents: dict[int, AgentConfig] = {}
        self._workspaces: dict[int, Workspace] = {}
        self._next_agent_id = 1
        self._next_workspace_id = 1

    async def get_agent(self, agent_id: int) -> Optional[AgentConfig]:
        agent = self._agents.get(agent_id)
        return agent.model_copy() if agent else None

    async def find_agent(self, name: str) -> Optional[AgentConfig]:
        for agent in self._agents.values():
            if agent.name == name:
                return agent.model_copy()
        return None

    async def add_agent(self, agent: AgentConfig) -> AgentConfig:
        if agent.id is None:
            agent.id = self._next_agent_id
        if agent.id in self._agents:
            raise ValueError(f"Agent {agent.id} already exists")
        self._agents[agent.id] = agent.model_copy()
        self._next_agent_id = max(self._next_agent_id, agent.id + 1)
        return agent

    async def find_workspace(self, name: str, namespace: str, agent_id: int) -> Optional[Workspace]:
        for workspace in self._workspaces.values():
            if workspace.name == name and workspace.namespace == namespace and workspace.agent_id == agent_id:
                return workspace.model_copy(deep=True)
        return None

    async def get_workspace(self, workspace_id: int) -> Optional[Workspace]:
        workspace = self._workspaces.get(workspace_id)
        return workspace.model_copy(deep=True) if workspace else None

    async def list_workspaces(self, agent_id: int) -> list[Workspace]:
        return [
            workspace.model_copy(deep=True)
            for workspace in sorted(self._workspaces.values(), key=lambda w: w.id)
            if workspace.agent_id == agent_id
        ]

    async def add(self, workspace: Workspace) -> Workspace:
        workspace.id = self._next_workspace_id
        self._next_workspace_id += 1
        self._workspaces[workspace.id] = workspace.model_copy(deep=True)
        return workspace

    async def save(self, workspace: Workspace) -> Workspace:
        stored = self._workspaces.get(workspace.id)
        if stored is None or stored.lock_version != workspace.lock_version:
            raise StaleWorkspaceError(f"Workspace {workspace.id} was modified concurrently")

        workspace.lock_version += 1
        self._workspaces[workspace.id] = workspace.model_copy(deep=True)
        return workspace


class SqlWorkspaceRepository(WorkspaceRepository):
    """SQLAlchemy backed repository."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_agent(self, agent_id: int) -> Optional[AgentConfig]:
        result = await self.db.execute(select(AgentDB).where(AgentDB.id == agent_id))
        agent = result.scalar_one_or_none()

        if not agent:
            return None

        return AgentConfig.model_validate(agent)

    async def find_agent(self, name: str) -> Optional[AgentConfig]:
        result = await self.db.execute(select(AgentDB).where(AgentDB.name == name))
        agent = result.scalar_one_or_none()

        if not agent:
            return None

        return AgentConfig.model_validate(agent)

    async def add_agent(self, agent: AgentConfig) -> AgentConfig:
        db_agent = AgentDB(**agent.model_dump(exclude_none=True))
        self.db.add(db_agent)
        await self.db.commit()
        await self.db.refresh(db_agent)

        logger.info(f"✓ Agent registered: {db_agent.name} ({db_agent.id})")

        return AgentConfig.model_validate(db_agent)

    async def find_workspace(self, name: str, namespace: str, agent_id: int) -> Optional[Workspace]:
        result = await self.db.execute(
            select(WorkspaceDB)
            .where(
                WorkspaceDB.name == name,
                WorkspaceDB.namespace == namespace,
                WorkspaceDB.agent_id == agent_id,
            )
            .execution_options(populate_existing=True)
        )
        workspace = result.scalar_one_or_none()

        if not workspace:
            return None

        return Workspace.model_validate(workspace)

    async def get_workspace(self, workspace_id: int) -> Optional[Workspace]:
        result = await self.db.execute(
            select(WorkspaceDB)
            .where(WorkspaceDB.id == workspace_id)
            .execution_options(populate_existing=True)
        )
        workspace = result.scalar_one_or_none()

        if not workspace:
            return None

        return Workspace.model_validate(workspace)

    async def list_workspaces(self, agent_id: int) -> list[Workspace]:
        result = await self.db.execute(
            select(WorkspaceDB)
            .where(WorkspaceDB.agent_id == agent_id)
            .order_by(WorkspaceDB.id)
            .execution_options(populate_existing=True)
        )
        return [Workspace.model_validate(workspace) for workspace in result.scalars().all()]

    async def add(self, workspace: Workspace) -> Workspace:
        db_workspace = WorkspaceDB(**self._column_values(workspace))
        self.db.add(db_workspace)
        await self.db.commit()
        await self.db.refresh(db_workspace)

        workspace.id = db_workspace.id
        return workspace

    async def save(self, workspace: Workspace) -> Workspace:
        values = self._column_values(workspace)
        values["lock_version"] = workspace.lock_version + 1

        result = await self.db.execute(
            update(WorkspaceDB)
            .where(
                WorkspaceDB.id == workspace.id,
                WorkspaceDB.lock_version == workspace.lock_version,
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )

        if result.rowcount != 1:
            await self.db.rollback()
            raise StaleWorkspaceError(f"Workspace {workspace.id} was modified concurrently")

        await self.db.commit()

        workspace.lock_version += 1
        return workspace

    @staticmethod
    def _column_values(workspace: Workspace) -> dict:
        values = workspace.model_dump(exclude={"id", "lock_version"}, mode="json")
        # Timestamps and enums are stored natively, only variables go through JSON
        for field in ("desired_state_updated_at", "responded_to_agent_at", "created_at"):
            values[field] = getattr(workspace, field)
        values["desired_state"] = workspace.desired_state.value
        values["actual_state"] = workspace.actual_state.value
        values["lock_version"] = workspace.lock_version
        return values

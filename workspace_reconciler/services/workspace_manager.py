"""Workspace Manager - creates workspaces and changes their desired state."""

import logging
from datetime import datetime
from typing import Callable, Optional, Union

from ..config import Settings, get_settings
from ..models import (
    VALID_DESIRED_STATES,
    AgentConfig,
    AgentCreate,
    Workspace,
    WorkspaceCreate,
    WorkspaceState,
)
from .workspace_repository import WorkspaceRepository

logger = logging.getLogger(__name__)

NAMESPACE_PREFIX = "gl-rd-ns"
MAX_NAMESPACE_LENGTH = 63


class DuplicateAgentError(ValueError):
    """Raised when an agent with the same name is already registered."""


class DuplicateWorkspaceError(ValueError):
    """Raised when the agent already has a workspace with the same name."""


class WorkspaceNotFoundError(LookupError):
    """Raised when a workspace does not exist."""


class InvalidDesiredStateError(ValueError):
    """Raised when a desired state cannot be applied to a workspace."""


class WorkspaceManager:
    """
    Workspace Manager handles the user facing side of the workspace lifecycle.

    Responsibilities:
    - Register agents
    - Create workspaces in their initial state
    - Change the desired state of workspaces

    Reconciliation with agents is left to ``WorkspaceReconciler``.
    """

    def __init__(
        self,
        repository: WorkspaceRepository,
        settings: Optional[Settings] = None,
        clock: Callable[[], datetime] = datetime.utcnow,
    ):
        self.repository = repository
        self.settings = settings or get_settings()
        self.clock = clock

    async def register_agent(self, agent_data: AgentCreate) -> AgentConfig:
        """
        Register a new agent.

        Args:
            agent_data: Agent registration data

        Returns:
            Registered agent

        Raises:
            DuplicateAgentError: If an agent with the same name already exists
        """
        if await self.repository.find_agent(agent_data.name):
            raise DuplicateAgentError(f"Agent '{agent_data.name}' already registered")

        agent = AgentConfig(
            name=agent_data.name,
            dns_zone=agent_data.dns_zone or self.settings.default_dns_zone,
            network_policy_enabled=(
                agent_data.network_policy_enabled
                if agent_data.network_policy_enabled is not None
                else self.settings.default_network_policy_enabled
            ),
            gitlab_workspaces_proxy_namespace=(
                agent_data.gitlab_workspaces_proxy_namespace
                or self.settings.default_gitlab_workspaces_proxy_namespace
            ),
        )
        return await self.repository.add_agent(agent)

    async def create_workspace(self, agent: AgentConfig, workspace_data: WorkspaceCreate) -> Workspace:
        """
        Create a workspace for an agent.

        The workspace starts with desired state Running and actual state
        CreationRequested, and is flagged so that the next reconciliation
        sends its full configuration.

        Args:
            agent: Agent that will host the workspace
            workspace_data: Workspace creation data

        Returns:
            Created workspace

        Raises:
            DuplicateWorkspaceError: If the agent already has a workspace with the same name
        """
        existing = [w for w in await self.repository.list_workspaces(agent.id) if w.name == workspace_data.name]
        if existing:
            raise DuplicateWorkspaceError(f"Workspace '{workspace_data.name}' already exists for agent {agent.id}")

        now = self.clock()
        workspace = Workspace(
            name=workspace_data.name,
            namespace=workspace_data.namespace or self.default_namespace(agent, workspace_data),
            agent_id=agent.id,
            user_id=workspace_data.user_id,
            desired_state=WorkspaceState.RUNNING,
            actual_state=WorkspaceState.CREATION_REQUESTED,
            desired_state_updated_at=now,
            responded_to_agent_at=None,
            deployment_resource_version=None,
            max_hours_before_termination=self.max_hours_before_termination(
                workspace_data.max_hours_before_termination
            ),
            created_at=now,
            force_include_all_resources=True,
            processed_devfile=workspace_data.processed_devfile,
            variables=workspace_data.variables,
        )
        workspace = await self.repository.add(workspace)

        logger.info(f"✓ Workspace created: {workspace.namespace}/{workspace.name} ({workspace.id})")

        return workspace

    async def get_workspace(self, workspace_id: int) -> Workspace:
        """
        Get a workspace by ID.

        Raises:
            WorkspaceNotFoundError: If the workspace does not exist
        """
        workspace = await self.repository.get_workspace(workspace_id)
        if workspace is None:
            raise WorkspaceNotFoundError(f"Workspace {workspace_id} not found")
        return workspace

    async def update_desired_state(
        self,
        workspace_id: int,
        desired_state: Union[WorkspaceState, str],
    ) -> Workspace:
        """
        Change the desired state of a workspace.

        Args:
            workspace_id: Workspace ID
            desired_state: New desired state

        Returns:
            Updated workspace

        Raises:
            WorkspaceNotFoundError: If the workspace does not exist
            InvalidDesiredStateError: If the state is not a valid desired state, or the
                workspace is already being terminated
        """
        try:
            desired_state = WorkspaceState(desired_state)
        except ValueError as e:
            raise InvalidDesiredStateError(f"Unknown workspace state: {desired_state}") from e

        if desired_state not in VALID_DESIRED_STATES:
            raise InvalidDesiredStateError(f"{desired_state.value} is not a valid desired state")

        workspace = await self.get_workspace(workspace_id)

        if workspace.desired_state == WorkspaceState.TERMINATED:
            raise InvalidDesiredStateError(f"Workspace {workspace_id} is terminated and cannot be changed")

        workspace.desired_state = desired_state
        workspace.desired_state_updated_at = self.clock()
        workspace = await self.repository.save(workspace)

        logger.info(f"Workspace {workspace.namespace}/{workspace.name} desired state set to {desired_state.value}")

        return workspace

    def max_hours_before_termination(self, requested: Optional[int]) -> int:
        """Requested lifetime, defaulted and capped by the configured limits."""
        if requested is None:
            requested = self.settings.default_max_hours_before_termination
        return min(requested, self.settings.max_hours_before_termination_limit)

    @staticmethod
    def default_namespace(agent: AgentConfig, workspace_data: WorkspaceCreate) -> str:
        namespace = f"{NAMESPACE_PREFIX}-{agent.id}-{workspace_data.user_id}-{workspace_data.name}"
        return namespace[:MAX_NAMESPACE_LENGTH].rstrip("-")

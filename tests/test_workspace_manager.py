"""Tests for the workspace manager."""

from datetime import timedelta

import pytest

from conftest import NOW
from workspace_reconciler.config import Settings
from workspace_reconciler.models import AgentConfig, AgentCreate, WorkspaceCreate, WorkspaceState
from workspace_reconciler.services import (
    DuplicateAgentError,
    DuplicateWorkspaceError,
    InvalidDesiredStateError,
    WorkspaceManager,
    WorkspaceNotFoundError,
)


@pytest.fixture
def settings():
    return Settings(
        default_max_hours_before_termination=24,
        max_hours_before_termination_limit=120,
        default_dns_zone="workspaces.example.dev",
        default_network_policy_enabled=False,
    )


@pytest.fixture
def manager(repository, settings, clock):
    return WorkspaceManager(repository, settings=settings, clock=clock)


@pytest.fixture
def workspace_data(processed_devfile):
    return WorkspaceCreate(name="workspace-1", user_id=3, processed_devfile=processed_devfile)


class TestRegisterAgent:
    """Tests for agent registration."""

    @pytest.mark.asyncio
    async def test_defaults_from_settings(self, manager):
        agent = await manager.register_agent(AgentCreate(name="remotedev"))

        assert agent.id is not None
        assert agent.dns_zone == "workspaces.example.dev"
        assert agent.network_policy_enabled is False
        assert agent.gitlab_workspaces_proxy_namespace == "gitlab-workspaces"

    @pytest.mark.asyncio
    async def test_explicit_values(self, manager):
        agent = await manager.register_agent(
            AgentCreate(name="remotedev", dns_zone="ws.internal", network_policy_enabled=True)
        )

        assert agent.dns_zone == "ws.internal"
        assert agent.network_policy_enabled is True

    @pytest.mark.asyncio
    async def test_duplicate_name(self, manager):
        await manager.register_agent(AgentCreate(name="remotedev"))

        with pytest.raises(DuplicateAgentError):
            await manager.register_agent(AgentCreate(name="remotedev"))


class TestCreateWorkspace:
    """Tests for workspace creation."""

    @pytest.mark.asyncio
    async def test_initial_state(self, manager, repository, agent, workspace_data):
        workspace = await manager.create_workspace(agent, workspace_data)

        stored = await repository.get_workspace(workspace.id)
        assert stored.desired_state == WorkspaceState.RUNNING
        assert stored.actual_state == WorkspaceState.CREATION_REQUESTED
        assert stored.force_include_all_resources is True
        assert stored.deployment_resource_version is None
        assert stored.responded_to_agent_at is None
        assert stored.desired_state_updated_at == NOW
        assert stored.created_at == NOW
        assert stored.max_hours_before_termination == 24
        assert stored.namespace == f"gl-rd-ns-{agent.id}-3-workspace-1"

    @pytest.mark.asyncio
    async def test_explicit_namespace(self, manager, agent, processed_devfile):
        data = WorkspaceCreate(
            name="workspace-1", namespace="my-namespace", user_id=3, processed_devfile=processed_devfile
        )

        workspace = await manager.create_workspace(agent, data)

        assert workspace.namespace == "my-namespace"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("requested,expected", [(8, 8), (120, 120), (500, 120)])
    async def test_max_hours_capped(self, manager, agent, processed_devfile, requested, expected):
        data = WorkspaceCreate(
            name="workspace-1",
            user_id=3,
            processed_devfile=processed_devfile,
            max_hours_before_termination=requested,
        )

        workspace = await manager.create_workspace(agent, data)

        assert workspace.max_hours_before_termination == expected

    @pytest.mark.asyncio
    async def test_duplicate_name(self, manager, agent, workspace_data):
        await manager.create_workspace(agent, workspace_data)

        with pytest.raises(DuplicateWorkspaceError):
            await manager.create_workspace(agent, workspace_data)

    def test_long_namespace_is_truncated(self, processed_devfile):
        agent = AgentConfig(id=1, name="remotedev", dns_zone="workspaces.example.dev")
        data = WorkspaceCreate(name="w" * 64, user_id=3, processed_devfile=processed_devfile)

        namespace = WorkspaceManager.default_namespace(agent, data)

        assert len(namespace) == 63
        assert namespace.startswith(f"gl-rd-ns-{agent.id}-3-")


class TestUpdateDesiredState:
    """Tests for desired state changes."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "desired_state",
        [WorkspaceState.STOPPED, WorkspaceState.TERMINATED, WorkspaceState.RESTART_REQUESTED, "Running"],
    )
    async def test_valid_states(self, manager, make_workspace, desired_state):
        workspace = await make_workspace(desired_state_updated_at=NOW - timedelta(hours=1))

        updated = await manager.update_desired_state(workspace.id, desired_state)

        assert updated.desired_state == WorkspaceState(desired_state)
        assert updated.desired_state_updated_at == NOW

    @pytest.mark.asyncio
    @pytest.mark.parametrize("desired_state", [WorkspaceState.STARTING, WorkspaceState.ERROR, "Sleeping"])
    async def test_invalid_states(self, manager, make_workspace, desired_state):
        workspace = await make_workspace()

        with pytest.raises(InvalidDesiredStateError):
            await manager.update_desired_state(workspace.id, desired_state)

    @pytest.mark.asyncio
    async def test_terminated_workspace_cannot_change(self, manager, make_workspace):
        workspace = await make_workspace(desired_state=WorkspaceState.TERMINATED)

        with pytest.raises(InvalidDesiredStateError):
            await manager.update_desired_state(workspace.id, WorkspaceState.RUNNING)

    @pytest.mark.asyncio
    async def test_missing_workspace(self, manager):
        with pytest.raises(WorkspaceNotFoundError):
            await manager.update_desired_state(404, WorkspaceState.STOPPED)

"""Pytest configuration and shared fixtures."""

from datetime import datetime, timedelta

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from workspace_reconciler.models import AgentConfig, Base, Workspace, WorkspaceState
from workspace_reconciler.services import InMemoryWorkspaceRepository

NOW = datetime(2024, 1, 15, 12, 0, 0)

PROCESSED_DEVFILE = """\
schemaVersion: 2.2.0
components:
  - name: tooling-container
    attributes:
      gl/inject-editor: true
    container:
      image: registry.gitlab.com/gitlab-org/remote-development/gitlab-workspaces-tools:latest
      env:
        - name: GL_EDITOR_PORT
          value: "60001"
      endpoints:
        - name: editor-server
          targetPort: 60001
          exposure: public
          secure: true
          protocol: https
      volumeMounts:
        - name: gl-workspace-data
          path: /projects
      memoryLimit: 1024Mi
      cpuLimit: 500m
  - name: gl-workspace-data
    volume:
      size: 50Gi
"""


def deployment_info(replicas, progressing=None, available=None):
    """Deployment snapshot as reported by an agent."""
    conditions = []
    if progressing:
        conditions.append({"type": "Progressing", "reason": progressing})
    if available:
        conditions.append({"type": "Available", "reason": available})
    return {"spec": {"replicas": replicas}, "status": {"conditions": conditions}}


RUNNING_DEPLOYMENT = deployment_info(1, "NewReplicaSetAvailable", "MinimumReplicasAvailable")
STOPPED_DEPLOYMENT = deployment_info(0, "NewReplicaSetAvailable", "MinimumReplicasAvailable")


@pytest.fixture
def now():
    """Fixed reconciliation time."""
    return NOW


@pytest.fixture
def clock():
    """Clock returning the fixed reconciliation time."""
    return lambda: NOW


@pytest.fixture
def processed_devfile():
    return PROCESSED_DEVFILE


@pytest.fixture
def repository():
    """Empty in-memory repository."""
    return InMemoryWorkspaceRepository()


@pytest.fixture
async def agent(repository):
    """Agent registered in the in-memory repository."""
    return await repository.add_agent(
        AgentConfig(
            name="remotedev-agent",
            dns_zone="workspaces.localdev.me",
            network_policy_enabled=True,
            gitlab_workspaces_proxy_namespace="gitlab-workspaces",
        )
    )


@pytest.fixture
def make_workspace(repository, agent):
    """Factory storing a workspace in the in-memory repository."""

    async def _make_workspace(name="workspace-1", **overrides):
        values = {
            "name": name,
            "namespace": f"gl-rd-ns-{agent.id}-1-{name}",
            "agent_id": agent.id,
            "user_id": 1,
            "desired_state": WorkspaceState.RUNNING,
            "actual_state": WorkspaceState.CREATION_REQUESTED,
            "desired_state_updated_at": NOW - timedelta(hours=1),
            "created_at": NOW - timedelta(hours=1),
            "processed_devfile": PROCESSED_DEVFILE,
        }
        values.update(overrides)
        return await repository.add(Workspace(**values))

    return _make_workspace


@pytest.fixture
async def test_db():
    """Create test database."""
    # Use in-memory SQLite for tests
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        echo=False,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async_session = async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    async with async_session() as session:
        yield session

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()

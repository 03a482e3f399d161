"""Agent API endpoints: registration, workspace creation and reconciliation."""

import logging
from typing import Any

from fastapi import APIRouter, Body, Depends, HTTPException, status

from ..dependencies import get_repository
from ..models import AgentConfig, AgentCreate, ReconcileResponse, WorkspaceCreate, WorkspaceResponse
from ..services import (
    DuplicateAgentError,
    DuplicateWorkspaceError,
    WorkspaceManager,
    WorkspaceReconciler,
    WorkspaceRepository,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/agents", tags=["agents"])


async def get_agent_or_404(agent_id: int, repository: WorkspaceRepository) -> AgentConfig:
    agent = await repository.get_agent(agent_id)

    if not agent:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Agent {agent_id} not found",
        )

    return agent


@router.post("/", response_model=AgentConfig, status_code=status.HTTP_201_CREATED)
async def register_agent(
    agent_data: AgentCreate,
    repository: WorkspaceRepository = Depends(get_repository),
):
    """
    Register a new agent.

    DNS zone, network policy and proxy namespace default to the service
    settings when not provided.
    """
    manager = WorkspaceManager(repository)

    try:
        return await manager.register_agent(agent_data)
    except DuplicateAgentError as e:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=str(e),
        )


@router.get("/{agent_id}", response_model=AgentConfig)
async def get_agent(
    agent_id: int,
    repository: WorkspaceRepository = Depends(get_repository),
):
    """Get agent details by ID."""
    return await get_agent_or_404(agent_id, repository)


@router.post(
    "/{agent_id}/workspaces",
    response_model=WorkspaceResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_workspace(
    agent_id: int,
    workspace_data: WorkspaceCreate,
    repository: WorkspaceRepository = Depends(get_repository),
):
    """Create a workspace; it is provisioned on the agent's next reconciliation."""
    agent = await get_agent_or_404(agent_id, repository)
    manager = WorkspaceManager(repository)

    try:
        return await manager.create_workspace(agent, workspace_data)
    except DuplicateWorkspaceError as e:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=str(e),
        )


@router.post("/{agent_id}/reconcile", response_model=ReconcileResponse)
async def reconcile(
    agent_id: int,
    params: dict[str, Any] = Body(...),
    repository: WorkspaceRepository = Depends(get_repository),
):
    """
    Reconcile the agent's workspaces.

    The agent sends:
    - update_type: "full" on startup, "partial" afterwards
    - workspace_agent_infos: what it observed for each workspace

    A request that cannot be processed is answered with a message and no payload.
    """
    agent = await get_agent_or_404(agent_id, repository)
    reconciler = WorkspaceReconciler(repository)

    response = await reconciler.reconcile(agent, params)

    if response.payload is not None:
        logger.info(f"Reconciled agent {agent_id}: {len(response.payload.workspace_rails_infos)} workspaces returned")

    return response

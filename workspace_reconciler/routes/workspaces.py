"""Workspace API endpoints."""

import logging

from fastapi import APIRouter, Depends, HTTPException, status

from ..dependencies import get_repository
from ..models import WorkspaceResponse, WorkspaceUpdate
from ..services import (
    InvalidDesiredStateError,
    StaleWorkspaceError,
    WorkspaceManager,
    WorkspaceNotFoundError,
    WorkspaceRepository,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/workspaces", tags=["workspaces"])


@router.get("/{workspace_id}", response_model=WorkspaceResponse)
async def get_workspace(
    workspace_id: int,
    repository: WorkspaceRepository = Depends(get_repository),
):
    """Get workspace details by ID."""
    manager = WorkspaceManager(repository)

    try:
        return await manager.get_workspace(workspace_id)
    except WorkspaceNotFoundError as e:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(e),
        )


@router.patch("/{workspace_id}", response_model=WorkspaceResponse)
async def update_workspace(
    workspace_id: int,
    update_data: WorkspaceUpdate,
    repository: WorkspaceRepository = Depends(get_repository),
):
    """
    Change the desired state of a workspace.

    Accepted states: Running, Stopped, Terminated, RestartRequested.
    Terminated workspaces cannot be changed anymore.
    """
    manager = WorkspaceManager(repository)

    try:
        return await manager.update_desired_state(workspace_id, update_data.desired_state)
    except WorkspaceNotFoundError as e:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(e),
        )
    except InvalidDesiredStateError as e:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=str(e),
        )
    except StaleWorkspaceError as e:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=str(e),
        )

"""API routes for the Workspace Reconciler."""

from .agents import router as agents_router
from .workspaces import router as workspaces_router

__all__ = [
    "agents_router",
    "workspaces_router",
]

"""FastAPI dependencies."""

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from .database import get_db
from .services import SqlWorkspaceRepository, WorkspaceRepository


async def get_repository(db: AsyncSession = Depends(get_db)) -> WorkspaceRepository:
    """Get the workspace repository bound to the request's database session."""
    return SqlWorkspaceRepository(db)

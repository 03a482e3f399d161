"""Workspace Reconciler - Main FastAPI application."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, status
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from .config import get_settings
from .database import check_db, close_db, init_db
from .routes import agents_router, workspaces_router

settings = get_settings()

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Handles:
    - Database initialization
    - Shutdown cleanup
    """
    # Startup
    logger.info("🚀 Starting Workspace Reconciler...")
    logger.info(f"Environment: {settings.environment}")
    logger.info(f"Service: {settings.service_name} v{settings.version}")

    await init_db()

    logger.info("✓ Workspace Reconciler ready")

    yield

    # Shutdown
    logger.info("🛑 Shutting down Workspace Reconciler...")
    await close_db()
    logger.info("✓ Workspace Reconciler stopped")


# Create FastAPI app
app = FastAPI(
    title="Workspace Reconciler",
    description="Reconciles remote development workspaces with the cluster agents running them",
    version=settings.version,
    lifespan=lifespan,
)

# Register routes
app.include_router(agents_router, prefix=settings.api_prefix)
app.include_router(workspaces_router, prefix=settings.api_prefix)


# Health check endpoints
@app.get("/health")
async def health_check():
    """Basic health check."""
    return {
        "status": "healthy",
        "service": settings.service_name,
        "version": settings.version,
    }


@app.get("/ready")
async def readiness_check():
    """Readiness check for Kubernetes, ready once the database answers."""
    try:
        await check_db()
    except (SQLAlchemyError, OSError) as e:
        logger.warning(f"Readiness check failed: {e}")
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"status": "not ready", "service": settings.service_name},
        )

    return {
        "status": "ready",
        "service": settings.service_name,
    }


@app.get("/")
async def root():
    """Root endpoint with service info."""
    return {
        "service": settings.service_name,
        "version": settings.version,
        "description": "Workspace Reconciler - Remote development workspace reconciliation",
        "endpoints": {
            "health": "/health",
            "ready": "/ready",
            "docs": "/docs",
            "agents": f"{settings.api_prefix}/agents",
            "reconcile": f"{settings.api_prefix}/agents/{{agent_id}}/reconcile",
            "workspaces": f"{settings.api_prefix}/workspaces",
        },
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "workspace_reconciler.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.environment == "development",
        log_level=settings.log_level.lower(),
    )

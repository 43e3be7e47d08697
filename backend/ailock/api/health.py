"""
Health API endpoints - Liveness and generation backend probes.
"""

from fastapi import APIRouter, Request

router = APIRouter(tags=["health"])


@router.get("/")
async def root(request: Request):
    """Root endpoint."""
    settings = request.app.state.settings
    return {
        "app": settings.app_name,
        "version": settings.app_version,
        "status": "running",
        "message": "Ailock session orchestrator",
    }


@router.get("/health")
async def health_check(request: Request):
    """Health check endpoint."""
    settings = request.app.state.settings
    return {
        "status": "healthy",
        "storage": settings.storage_type,
        "version": settings.app_version,
        "connections": len(request.app.state.connection_manager.connections),
    }


@router.get("/health/llm")
async def llm_health_check(request: Request):
    """Probe the generation backends with a minimal request."""
    gateway = request.app.state.gateway
    healthy = await gateway.is_healthy()
    return {"status": "healthy" if healthy else "unhealthy", **gateway.describe()}

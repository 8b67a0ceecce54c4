"""Service information and health probes."""

import logging
from typing import Any, Dict

from fastapi import APIRouter

from ..db.connection import get_db_pool
from ..errors.problem_details import ServiceUnavailableError


logger = logging.getLogger(__name__)

SERVICE_NAME = "Scaffold API"
SERVICE_VERSION = "1.0.0"

router = APIRouter(tags=["Health"])


@router.get("/", summary="Service information")
async def service_info() -> Dict[str, str]:
    return {
        "service": SERVICE_NAME,
        "version": SERVICE_VERSION,
        "docs": "/docs",
        "health": "/health"
    }


@router.get("/live", summary="Liveness probe")
async def live() -> Dict[str, str]:
    """The process is up; does not touch the database."""
    return {"status": "alive", "service": SERVICE_NAME}


@router.get(
    "/health",
    summary="Health check",
    responses={503: {"description": "Database unreachable"}}
)
async def health() -> Dict[str, Any]:
    """Round-trip ``SELECT 1`` through the pool.

    Raises:
        ServiceUnavailableError: If the database cannot be reached
    """
    try:
        pool = await get_db_pool()
        async with pool.acquire() as conn:
            await conn.execute("SELECT 1")
    except Exception as e:
        logger.error(f"Health check failed: {e}")
        raise ServiceUnavailableError(detail="Database connection failed", database_error=str(e))

    return {
        "status": "healthy",
        "service": SERVICE_NAME,
        "version": SERVICE_VERSION,
        "database": "connected"
    }


@router.get(
    "/ready",
    summary="Readiness probe",
    responses={503: {"description": "Not ready to serve traffic"}}
)
async def ready() -> Dict[str, Any]:
    """Report readiness together with the server's open connection count."""
    try:
        pool = await get_db_pool()
        async with pool.acquire() as conn:
            connections = await conn.fetchval("SELECT COUNT(*) FROM pg_stat_activity")
    except Exception as e:
        logger.error(f"Readiness check failed: {e}")
        raise ServiceUnavailableError(detail="Service not ready", database_error=str(e))

    return {"status": "ready", "service": SERVICE_NAME, "database_connections": connections}

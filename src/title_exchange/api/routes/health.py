"""Health check endpoint.

Verifies connectivity to the event database and that the custody books
balance, then returns structured status. Used by Docker healthchecks, load
balancers, and monitoring systems.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy import text

from title_exchange.api.deps import get_marketplace
from title_exchange.logging_config import get_logger
from title_exchange.schemas.market import HealthResponse
from title_exchange.services.marketplace_service import Marketplace

router = APIRouter(tags=["Health"])
logger = get_logger(__name__)


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Health check",
    description="Returns the health status of the application and its dependencies.",
)
async def health_check(marketplace: Marketplace = Depends(get_marketplace)) -> HealthResponse:
    """Check database connectivity and custody conservation."""
    db_status = "unknown"

    try:
        from title_exchange.infrastructure.database.engine import _get_engine

        engine = _get_engine()
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        db_status = "healthy"
    except Exception as exc:
        db_status = f"unhealthy: {exc}"
        logger.error("health.db_check_failed", error=str(exc))

    violations = marketplace.verify_conservation()
    if violations:
        logger.error("health.custody_violations", violations=violations)

    overall = "ok" if db_status == "healthy" and not violations else "degraded"
    return HealthResponse(status=overall, version="0.1.0", database=db_status)

"""
Health Check Router

Liveness plus a database round trip, for load balancers and the worker
deployment's readiness probe.
"""

import logging

from fastapi import APIRouter
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from coursegate import __version__
from coursegate.core.database import DbSession
from coursegate.models.contracts.common import HealthResponse

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


@router.get("/health", response_model=HealthResponse)
async def health_check(db: DbSession) -> HealthResponse:
    """Report ``healthy`` when the database answers, ``degraded`` otherwise."""
    try:
        await db.execute(text("SELECT 1"))
    except SQLAlchemyError:
        logger.warning("Health check could not reach the database", exc_info=True)
        await db.rollback()
        return HealthResponse(status="degraded", database="unreachable", version=__version__)
    return HealthResponse(status="healthy", database="ok", version=__version__)

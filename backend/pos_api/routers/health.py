"""
Health router - /api/health
"""

from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from pos_shared.config.settings import settings
from pos_shared.config.logging import rest_api_logger as logger
from pos_shared.infrastructure.db import get_db
from pos_shared.infrastructure.events import RealtimeNotifier
from pos_api.core.dependencies import provide_notifier

router = APIRouter(prefix="/api", tags=["health"])


@router.get("/health")
def health_check(
    db: Session = Depends(get_db),
    notifier: RealtimeNotifier = Depends(provide_notifier),
) -> dict:
    """
    Database and event publisher health.

    A broker outage only degrades real-time delivery, so it never makes
    the service unhealthy on its own.
    """
    database = "ok"
    try:
        db.execute(text("SELECT 1"))
    except SQLAlchemyError as e:
        logger.error("Database health check failed", error=str(e))
        database = "unavailable"

    events = notifier.health()
    if database != "ok":
        overall = "unhealthy"
    elif events.get("degraded"):
        overall = "degraded"
    else:
        overall = "healthy"
    return {
        "status": overall,
        "service": "pos-api",
        "environment": settings.environment,
        "database": database,
        "events": events,
    }

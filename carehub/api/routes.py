"""
API surface: the health check plus every feature router.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from carehub.api import (
    admin,
    appointments,
    assignments,
    auth,
    care_plans,
    medications,
    patients,
    providers,
    subscriptions,
    vitals,
)
from carehub.config import settings
from carehub.models.database import get_db
from carehub.schemas.api import HealthResponse

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/health", response_model=HealthResponse)
def health_check(db: Session = Depends(get_db)):
    """Basic health endpoint – verifies DB connectivity."""
    try:
        db.execute(text("SELECT 1"))
        db_status = "connected"
    except SQLAlchemyError:
        logger.exception("Health check could not reach the database")
        db_status = "disconnected"
    return HealthResponse(
        status="healthy",
        environment=settings.ENVIRONMENT,
        database=db_status,
    )


for module in (
    auth,
    patients,
    providers,
    care_plans,
    medications,
    appointments,
    subscriptions,
    assignments,
    vitals,
    admin,
):
    router.include_router(module.router)

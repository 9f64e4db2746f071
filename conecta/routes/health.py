"""
Liveness and database status.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.exc import SQLAlchemyError

from conecta.config import Settings
from conecta.db import DbClient, utcnow
from conecta.dependencies import get_db_client, get_settings_dep
from conecta.schemas import HealthResponse

logger = logging.getLogger(__name__)

router = APIRouter()

SERVICE_NAME = "conecta-alicante-api"


@router.get("/health", response_model=HealthResponse)
def health(
    db: DbClient = Depends(get_db_client),
    settings: Settings = Depends(get_settings_dep),
):
    try:
        db.ping()
        database = "connected"
    except SQLAlchemyError:
        logger.exception("Database ping failed")
        database = "disconnected"
    return HealthResponse(
        status="ok" if database == "connected" else "degraded",
        service=SERVICE_NAME,
        environment=settings.environment,
        database=database,
        timestamp=utcnow().isoformat(),
    )

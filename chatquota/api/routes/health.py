"""
Health check endpoint for deployment monitoring.
"""
import logging
import time
from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from chatquota.core.auth_dependency import get_db
from chatquota.core.config import APP_ENV
from chatquota.core.clock import utcnow
from chatquota.llm.router import is_provider_configured

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/health", tags=["Health"])

API_VERSION = "1.0.0"
STARTED_AT = time.monotonic()


@router.get("")
def health_check(db: Session = Depends(get_db)):
    """
    Returns 200 with status "healthy" when the database answers, "degraded"
    otherwise.
    """
    status = "healthy"
    try:
        db.execute(text("SELECT 1"))
        db_status = "connected"
    except SQLAlchemyError as e:
        logger.error(f"Health check database error: {e}")
        db_status = "error"
        status = "degraded"

    return {
        "status": status,
        "timestamp": utcnow().isoformat(),
        "database": db_status,
        "ai_configured": is_provider_configured(),
        "version": API_VERSION,
    }


@router.get("/detailed")
def detailed_health_check():
    """Process-level details; does not touch the database."""
    return {
        "status": "healthy",
        "timestamp": utcnow().isoformat(),
        "version": API_VERSION,
        "environment": APP_ENV,
        "uptime_seconds": round(time.monotonic() - STARTED_AT, 3),
    }

"""Observability API endpoints.

Provides the Prometheus scrape endpoint and a database-backed health check.
"""

import logging
import time

from fastapi import APIRouter, Depends, Response
from fastapi.responses import JSONResponse
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from database import get_db

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Observability"])


@router.get("/metrics", include_in_schema=False)
def metrics():
    """Expose Prometheus metrics in text exposition format."""
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST
    )


@router.get("/health", summary="Health check endpoint")
def health_check(db: Session = Depends(get_db)):
    """Report database connectivity. Returns 503 when the database is unreachable."""
    start = time.time()
    try:
        db.execute(text("SELECT 1"))
    except SQLAlchemyError as e:
        logger.error(f"Database health check failed: {e}", exc_info=True)
        return JSONResponse(
            content={"status": "unhealthy", "database": str(e)},
            status_code=503
        )

    return {
        "status": "healthy",
        "database_latency_ms": round((time.time() - start) * 1000, 2),
    }

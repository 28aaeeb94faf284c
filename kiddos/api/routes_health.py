"""Health check endpoints for the Kiddos catalog API."""

import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from kiddos.db.session import get_session

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


@router.get("/healthz")
async def health_check():
    """
    Health check endpoint.

    Returns:
        A simple status object indicating the service is up
    """
    return {"ok": True}


@router.get("/readyz")
async def readiness_check(db: AsyncSession = Depends(get_session)):
    """
    Readiness check endpoint.

    Returns:
        A simple status object once the database answers queries
    """
    try:
        await db.execute(text("SELECT 1"))
    except SQLAlchemyError:
        logger.error("Readiness check failed", exc_info=True)
        raise HTTPException(status_code=503, detail="Database unavailable")
    return {"ok": True}

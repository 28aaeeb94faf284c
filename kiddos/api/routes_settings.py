"""Catalog settings endpoints for the Kiddos catalog API."""

import logging
from typing import Any

from fastapi import APIRouter, Depends, Request
from pydantic import Field
from slowapi import Limiter
from slowapi.util import get_remote_address
from sqlalchemy.ext.asyncio import AsyncSession

from kiddos.auth.security import require_admin
from kiddos.catalog.models import CamelModel
from kiddos.config import get_settings
from kiddos.db import crud
from kiddos.db.session import CACHE_DURATION_KEY, get_session

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/settings", tags=["settings"])
limiter = Limiter(key_func=get_remote_address)


class CacheDuration(CamelModel):
    """How long fetched videos stay fresh, in minutes."""

    minutes: int = Field(ge=1, le=60 * 24 * 30)


@router.get("/cache-duration", response_model=CacheDuration)
@limiter.limit("60/minute")
async def get_cache_duration(
    request: Request,
    admin: dict[str, Any] = Depends(require_admin),
    db: AsyncSession = Depends(get_session),
):
    """
    Get the cache duration used for staleness checks.

    Returns:
        The current cache duration in minutes
    """
    minutes = await crud.get_int_setting(
        db, CACHE_DURATION_KEY, get_settings().cache_duration_minutes_default
    )
    return CacheDuration(minutes=minutes)


@router.put("/cache-duration", response_model=CacheDuration)
@limiter.limit("20/minute")
async def set_cache_duration(
    request: Request,
    body: CacheDuration,
    admin: dict[str, Any] = Depends(require_admin),
    db: AsyncSession = Depends(get_session),
):
    """
    Change the cache duration. Applies from the next staleness check.

    Returns:
        The stored cache duration in minutes
    """
    await crud.set_setting(db, CACHE_DURATION_KEY, str(body.minutes))
    logger.info(f"Cache duration set to {body.minutes} minutes by {admin.get('sub')}")
    return body

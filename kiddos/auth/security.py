"""Verification of access tokens issued by the account service."""

import logging
from typing import Annotated, Any

from fastapi import Cookie, Depends, Header, HTTPException
from jose import JWTError, jwt

from kiddos.config import get_settings

logger = logging.getLogger(__name__)

AUTH_COOKIE = "auth_token"
ALGORITHM = "HS256"


def verify_access_token(token: str) -> dict[str, Any] | None:
    """Verify a signed JWT and return its claims, or None if invalid."""
    settings = get_settings()
    try:
        claims = jwt.decode(token, settings.jwt_secret, algorithms=[ALGORITHM])
    except JWTError:
        return None
    if not claims.get("sub"):
        return None
    return claims


async def require_user(
    authorization: Annotated[str | None, Header()] = None,
    auth_cookie: Annotated[str | None, Cookie(alias=AUTH_COOKIE)] = None,
) -> dict[str, Any]:
    """
    FastAPI dependency that requires a valid access token.

    The token is read from the auth cookie or an ``Authorization: Bearer``
    header.

    Returns:
        The token claims (sub, username, role)

    Raises:
        HTTPException: 401 if the token is missing or invalid
    """
    token = auth_cookie
    if not token and authorization and authorization.lower().startswith("bearer "):
        token = authorization[7:].strip()

    if not token:
        raise HTTPException(status_code=401, detail="Authentication required")

    claims = verify_access_token(token)
    if claims is None:
        raise HTTPException(status_code=401, detail="Invalid or expired token")

    return claims


async def require_admin(
    claims: dict[str, Any] = Depends(require_user),
) -> dict[str, Any]:
    """
    FastAPI dependency that requires an authenticated admin.

    Raises:
        HTTPException: 403 if the user is not an admin
    """
    if claims.get("role") != "admin":
        logger.warning(f"Admin access denied for user {claims.get('sub')}")
        raise HTTPException(status_code=403, detail="Admin access required")
    return claims

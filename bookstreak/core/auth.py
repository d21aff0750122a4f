"""
Reader authentication.

Bearer tokens are HS256 JWTs signed with JWT_SECRET by the login service; the
reader id is the `sub` claim, or `userId` for tokens minted before `sub` was
adopted. X-User-Id is accepted only while ALLOW_HEADER_AUTH is on (dev/tests).
"""
import logging
from typing import Optional

import jwt
from fastapi import Header, HTTPException, Request

from bookstreak.core.config import settings

logger = logging.getLogger("bookstreak")


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(status_code=401, detail=detail, headers={"WWW-Authenticate": "Bearer"})


def _bearer_token(request: Request) -> Optional[str]:
    scheme, _, token = request.headers.get("Authorization", "").partition(" ")
    if scheme.lower() != "bearer" or not token:
        return None
    return token.strip()


def verify_jwt(token: str) -> str:
    """
    Decode a bearer token and return the reader id.

    Raises:
        HTTPException 401: no secret configured, bad signature, expired, or no subject
    """
    if not settings.JWT_SECRET:
        raise _unauthorized("Token verification unavailable")

    try:
        claims = jwt.decode(token, settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
    except jwt.ExpiredSignatureError:
        raise _unauthorized("Token expired")
    except jwt.InvalidTokenError as e:
        logger.debug(f"Rejected bearer token: {e}")
        raise _unauthorized("Invalid token")

    user_id = claims.get("sub") or claims.get("userId")
    if not user_id:
        raise _unauthorized("Token has no subject")
    return str(user_id)


async def get_current_user_id(
    request: Request,
    x_user_id: Optional[str] = Header(None, description="Dev/test reader id"),
) -> str:
    """FastAPI dependency: bearer token first, then X-User-Id, else 401."""
    from bookstreak.features.users.service import touch_reader

    token = _bearer_token(request)
    if token:
        user_id = verify_jwt(token)
    elif x_user_id and settings.ALLOW_HEADER_AUTH:
        user_id = x_user_id
    else:
        raise _unauthorized("Missing Authorization (Bearer JWT) or X-User-Id header")

    touch_reader(user_id)
    return user_id

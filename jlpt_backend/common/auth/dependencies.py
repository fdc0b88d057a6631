"""
Authentication dependencies for the JLPT backend.

Token issuance and verification live in the identity service; this module
only turns a ``Bearer <user-id>`` header into the numeric user id used for
ownership checks and session start.
"""

from typing import Optional
from fastapi import Header, HTTPException, status

from jlpt_backend.common.logger import app_logger

logger = app_logger.getChild("auth")


async def get_current_user_id(authorization: Optional[str] = Header(None)) -> int:
    """
    Get the current user ID from the authorization header.

    Args:
        authorization: Authorization header value

    Returns:
        User ID

    Raises:
        HTTPException: 401 if the header is missing or malformed
    """
    if not authorization:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing authorization header"
        )

    try:
        scheme, token = authorization.split()
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authorization header format"
        )

    if scheme.lower() != "bearer":
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authentication scheme"
        )

    if not token.isdigit():
        logger.warning("Rejected bearer token that is not a user id")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token"
        )

    return int(token)

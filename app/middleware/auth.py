# app/middleware/auth.py
from typing import Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from app.core.errors import AuthenticationError
from app.core.logging import logger
from app.core.security import decode_access_token
from app.schemas.user import AuthUser

BEARER_SCHEME = HTTPBearer(auto_error=False)


async def get_current_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(BEARER_SCHEME),
) -> AuthUser:
    """
    Resolve the caller from the ``Authorization: Bearer <token>`` header.
    The token is self-contained, so no database lookup happens here.
    """
    if credentials is None or not credentials.credentials:
        logger.warning(f"Bearer token missing from request to {request.url.path}")
        raise AuthenticationError("Authentication required")

    try:
        return decode_access_token(credentials.credentials, request.app.state.settings.SECRET_KEY)
    except AuthenticationError:
        logger.warning(f"Invalid bearer token used for {request.url.path}")
        raise

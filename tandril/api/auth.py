"""
Session authentication - resolve the caller from the hosted auth platform's JWT.
Tokens are HS256-signed with the project JWT secret; the user id is the `sub` claim.
"""
import logging
from typing import Optional

import jwt
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from tandril.config import Settings, get_settings
from tandril.errors import AuthenticationError, ConfigurationError

logger = logging.getLogger(__name__)
bearer_scheme = HTTPBearer(auto_error=False)


def decode_session_token(token: str, settings: Settings) -> str:
    """Return the user id for a valid session token."""
    if not settings.session_jwt_secret:
        raise ConfigurationError("SESSION_JWT_SECRET not configured")

    try:
        payload = jwt.decode(
            token,
            settings.session_jwt_secret,
            algorithms=["HS256"],
            audience=settings.session_jwt_audience,
        )
    except jwt.ExpiredSignatureError:
        raise AuthenticationError("Token expired")
    except jwt.InvalidTokenError:
        raise AuthenticationError("Unauthorized")

    user_id = payload.get("sub")
    if not user_id:
        raise AuthenticationError("Unauthorized")
    return str(user_id)


async def get_current_user_id(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    settings: Settings = Depends(get_settings),
) -> str:
    """Dependency: the authenticated user's id, or 401."""
    if credentials is None or not credentials.credentials:
        raise AuthenticationError("Missing authorization header")
    return decode_session_token(credentials.credentials, settings)

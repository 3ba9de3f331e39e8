import logging
from typing import Any, Dict, Optional

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from talent_calendar.utils.config import settings
from talent_calendar.utils.errors import AuthenticationError

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)


def decode_access_token(token: str) -> Dict[str, Any]:
    """Verify a bearer JWT issued by the platform's auth provider"""
    if not settings.JWT_SECRET_KEY:
        raise AuthenticationError("Bearer authentication is not configured")
    try:
        return jwt.decode(token, settings.JWT_SECRET_KEY, algorithms=[settings.JWT_ALGORITHM])
    except JWTError as e:
        logger.warning(f"Rejected bearer token: {e}")
        raise AuthenticationError("Invalid or expired token")


async def require_bearer(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme)
) -> Dict[str, Any]:
    """FastAPI dependency returning the caller's token claims"""
    if credentials is None or credentials.scheme.lower() != "bearer":
        raise AuthenticationError("Missing authorization header")
    return decode_access_token(credentials.credentials)

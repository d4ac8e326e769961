"""Bearer-token authentication for FastAPI routes."""

from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from advisory_engine.core.errors import AuthError
from advisory_engine.core.logging import get_logger
from advisory_engine.core.services import ServiceContainer, get_services

logger = get_logger(__name__)

# HTTP Bearer scheme for Authorization header
security = HTTPBearer(auto_error=False)


@dataclass
class AuthContext:
    """The authenticated caller."""

    user_id: str
    token: str
    email: str | None = None


async def require_user(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    services: ServiceContainer = Depends(get_services),
) -> AuthContext:
    """
    Resolve the caller from a Supabase JWT.

    Raises:
        AuthError: If the token is missing or Supabase rejects it
    """
    if not credentials or not credentials.credentials:
        raise AuthError("Unauthorized")

    token = credentials.credentials
    try:
        auth_response = services.supabase.auth.get_user(token)
    except Exception as e:
        logger.warning(f"Token validation failed for {request.url.path}: {e}")
        raise AuthError("Unauthorized") from e

    if not auth_response or not auth_response.user:
        raise AuthError("Unauthorized")

    user = auth_response.user
    return AuthContext(user_id=str(user.id), token=token, email=getattr(user, "email", None))

"""JWT authentication dependency for FastAPI.

Validates Bearer tokens from the Authorization header and resolves them to
the acting user and role. Session management lives with the marketplace;
this service only verifies the tokens it issues.
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from src.config import settings
from src.exceptions import ForbiddenException, UnauthorizedException
from src.models.enums import UserRole

logger = logging.getLogger(__name__)

_bearer_scheme = HTTPBearer(auto_error=False)


@dataclass
class Actor:
    """The authenticated user behind a request."""

    id: uuid.UUID
    email: str
    role: str = UserRole.USER.value

    @property
    def is_admin(self) -> bool:
        return self.role == UserRole.ADMIN.value


def _decode_token(token: str) -> dict:
    """Decode and validate a JWT token. Raises UnauthorizedException on failure."""
    try:
        return jwt.decode(
            token,
            settings.jwt_secret_key,
            algorithms=[settings.jwt_algorithm],
        )
    except JWTError as exc:
        logger.warning("JWT validation failed: %s", exc)
        raise UnauthorizedException("Invalid or expired token") from exc


def create_access_token(actor: Actor, expires_in: timedelta = timedelta(hours=1)) -> str:
    """Issue a signed token for ``actor`` (service-to-service calls, tests)."""
    claims = {
        "sub": str(actor.id),
        "email": actor.email,
        "role": actor.role,
        "exp": datetime.now(UTC) + expires_in,
    }
    return jwt.encode(claims, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


async def get_current_actor(
    request: Request,
    credentials: HTTPAuthorizationCredentials | None = Depends(_bearer_scheme),
) -> Actor:
    """FastAPI dependency that extracts and validates the acting user from JWT."""
    if credentials is None:
        raise UnauthorizedException("Authentication required")

    payload = _decode_token(credentials.credentials)

    try:
        actor = Actor(
            id=uuid.UUID(payload["sub"]),
            email=payload["email"],
            role=payload.get("role", UserRole.USER.value),
        )
    except (KeyError, ValueError) as exc:
        raise UnauthorizedException("Token is missing required claims") from exc

    request.state.actor = actor
    return actor


async def require_admin(actor: Actor = Depends(get_current_actor)) -> Actor:
    """Allow only operators with the ADMIN role."""
    if not actor.is_admin:
        raise ForbiddenException("This action requires admin access")
    return actor

"""JWT verification for access tokens issued by the identity backend."""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from typing import Any
from uuid import UUID

from fastapi.security import HTTPBearer
from jose import JWTError, jwt

from marketplace.core.config import get_settings
from marketplace.shared.exceptions import AuthenticationException

settings = get_settings()

bearer_scheme = HTTPBearer(auto_error=False)


def create_access_token(
    subject: UUID | str,
    roles: list[str],
    *,
    provider_id: UUID | str | None = None,
    expires_delta: timedelta = timedelta(minutes=30),
) -> str:
    """Create signed access token (local development, seeding and tests)."""
    payload: dict[str, Any] = {
        "sub": str(subject),
        "type": "access",
        "roles": [str(role) for role in roles],
        "exp": datetime.now(UTC) + expires_delta,
    }
    if provider_id is not None:
        payload["provider_id"] = str(provider_id)
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_token(token: str) -> dict[str, Any]:
    """Decode and validate JWT token."""
    try:
        return jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except JWTError as exc:
        raise AuthenticationException("Invalid token") from exc

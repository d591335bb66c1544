"""Actor identity and the session context handed to booking components."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from uuid import UUID

from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials

from marketplace.core.enums import RoleEnum
from marketplace.core.security import bearer_scheme, decode_token
from marketplace.shared.exceptions import AuthenticationException


@dataclass(frozen=True, slots=True)
class Actor:
    """Authenticated user with the roles granted by the identity backend."""

    id: UUID
    roles: frozenset[RoleEnum] = field(default_factory=frozenset)
    provider_id: UUID | None = None

    def has_role(self, role: RoleEnum) -> bool:
        return role in self.roles

    @property
    def is_provider(self) -> bool:
        return RoleEnum.PROVIDER in self.roles

    @property
    def is_admin(self) -> bool:
        return RoleEnum.ADMIN in self.roles


@dataclass(frozen=True, slots=True)
class SessionContext:
    """Explicit capability describing who is signed in.

    Passed to whatever builds a notification listener or calls the booking
    service; an empty context means nobody is signed in.
    """

    actor: Actor | None = None

    @property
    def user_id(self) -> UUID | None:
        return self.actor.id if self.actor is not None else None

    @property
    def is_authenticated(self) -> bool:
        return self.actor is not None

    def has_role(self, role: RoleEnum) -> bool:
        return self.actor is not None and self.actor.has_role(role)

    def identity_key(self) -> tuple | None:
        """Inputs that require a fresh realtime subscription when they change."""
        if self.actor is None:
            return None
        return (
            self.actor.id,
            tuple(sorted(self.actor.roles)),
            self.actor.provider_id,
        )


ANONYMOUS_SESSION = SessionContext()


def _parse_roles(raw_roles: Iterable[str] | str | None) -> frozenset[RoleEnum]:
    if raw_roles is None:
        return frozenset()
    if isinstance(raw_roles, str):
        raw_roles = [raw_roles]
    roles: set[RoleEnum] = set()
    for raw in raw_roles:
        try:
            roles.add(RoleEnum(str(raw).strip().lower()))
        except ValueError:
            continue
    return frozenset(roles)


def actor_from_claims(claims: dict) -> Actor:
    """Build actor from decoded access token claims."""
    if claims.get("type", "access") != "access":
        raise AuthenticationException("Invalid access token")

    subject = claims.get("sub")
    if not subject:
        raise AuthenticationException("Token subject is missing")

    provider_claim = claims.get("provider_id")
    try:
        return Actor(
            id=UUID(str(subject)),
            roles=_parse_roles(claims.get("roles", claims.get("role"))),
            provider_id=UUID(str(provider_claim)) if provider_claim else None,
        )
    except ValueError as exc:
        raise AuthenticationException("Token identifiers are not valid UUIDs") from exc


def actor_from_token(token: str) -> Actor:
    """Resolve actor from raw bearer token."""
    return actor_from_claims(decode_token(token))


async def get_current_actor(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> Actor:
    """Resolve currently authenticated actor from bearer token."""
    if credentials is None:
        raise AuthenticationException("Not authenticated")
    return actor_from_token(credentials.credentials)


async def get_optional_actor(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearer_scheme),
) -> Actor | None:
    """Resolve actor when a bearer token is supplied, ``None`` for anonymous calls."""
    if credentials is None:
        return None
    return actor_from_token(credentials.credentials)

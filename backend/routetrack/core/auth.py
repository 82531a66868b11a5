"""Authentication dependencies for API routes.

Provides API Key authentication via the X-API-Key header and resolves the
acting user from the ``X-Actor-Id`` / ``X-Actor-Role`` headers set by the
upstream identity provider. When API_KEY is not configured (empty string),
authentication is disabled to allow development without credentials.
"""

import secrets
from dataclasses import dataclass
from typing import Annotated, Literal, get_args

from fastapi import Depends, Header, HTTPException, Security, status
from fastapi.security import APIKeyHeader

from routetrack.core.config import settings

Role = Literal["admin", "manager", "operator", "viewer"]
ROLES: tuple[str, ...] = get_args(Role)

_api_key_header = APIKeyHeader(
    name=settings.API_KEY_HEADER,
    auto_error=False,
)


@dataclass(frozen=True)
class Actor:
    """Identity and role of the caller, recorded as provenance on edits."""

    id: str
    role: str = "operator"


SYSTEM_ACTOR = Actor(id="system", role="admin")


async def verify_api_key(
    api_key: Annotated[str | None, Security(_api_key_header)] = None,
) -> str:
    """Validate the API key from the request header.

    Raises HTTP 401 if the key is missing and HTTP 403 if invalid.
    Returns the validated API key string.

    When ``settings.API_KEY`` is empty, authentication is skipped
    (development mode).
    """
    if not settings.API_KEY:
        return "dev-no-auth"

    if api_key is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing API key",
        )

    if not secrets.compare_digest(api_key, settings.API_KEY):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Invalid API key",
        )

    return api_key


async def get_actor(
    actor_id: Annotated[str | None, Header(alias=settings.ACTOR_ID_HEADER)] = None,
    actor_role: Annotated[str | None, Header(alias=settings.ACTOR_ROLE_HEADER)] = None,
) -> Actor:
    """Resolve the acting user. Anonymous callers only exist in development."""
    if actor_id is None:
        if settings.API_KEY:
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail="Missing actor identity",
            )
        return Actor(id="dev-user", role="admin")

    role = (actor_role or "operator").lower()
    if role not in ROLES:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f"Unknown role: {role}",
        )
    return Actor(id=actor_id, role=role)


def require_roles(*roles: str):
    """Dependency factory that only admits actors holding one of ``roles``."""

    async def _check(actor: Annotated[Actor, Depends(get_actor)]) -> Actor:
        if actor.role not in roles:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="Access denied",
            )
        return actor

    return _check


OperatorActor = Annotated[Actor, Depends(require_roles("admin", "manager", "operator"))]
ManagerActor = Annotated[Actor, Depends(require_roles("admin", "manager"))]
AdminActor = Annotated[Actor, Depends(require_roles("admin"))]

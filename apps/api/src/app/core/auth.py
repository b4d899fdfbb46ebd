"""
Actor Resolution

FastAPI dependencies that turn an optional Bearer token into an Actor.

The admissions core uses the actor purely for audit attribution
(last_updated_by, audit events). Requests without a token are attributed
to SYSTEM_ACTOR. Registrar endpoints additionally require a registrar or
admin role; that check lives here, at the HTTP edge, and never inside
the lifecycle logic.
"""

import logging
from dataclasses import dataclass

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from app.core.security import decode_token

logger = logging.getLogger(__name__)

optional_bearer = HTTPBearer(
    auto_error=False,
    description="Optional JWT Bearer token used for audit attribution",
)

REGISTRAR_ROLES = frozenset({"registrar", "admin"})


@dataclass(frozen=True)
class Actor:
    """
    The identity an action is attributed to.

    Attributes:
        id: Subject of the token, None for the system actor
        name: Display name recorded in last_updated_by and audit events
        email: Contact recorded in audit events
        role: Role claim from the token
    """

    id: str | None
    name: str
    email: str | None = None
    role: str | None = None

    @property
    def display(self) -> str:
        if self.email:
            return f"{self.name} <{self.email}>"
        return self.name


SYSTEM_ACTOR = Actor(id=None, name="system", email=None, role="system")


def actor_from_claims(claims: dict) -> Actor:
    """
    Build an Actor from decoded JWT claims.

    Raises:
        ValueError: If the subject claim is missing or the token is not an access token
    """
    subject = claims.get("sub")
    if not subject:
        raise ValueError("Missing 'sub' claim in token")
    if claims.get("type", "access") != "access":
        raise ValueError(f"Invalid token type: {claims.get('type')}")

    return Actor(
        id=str(subject),
        name=claims.get("name") or str(subject),
        email=claims.get("email"),
        role=claims.get("role"),
    )


def _unauthorized(code: str, message: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail={"error": code, "message": message},
        headers={"WWW-Authenticate": "Bearer"},
    )


async def get_current_actor(
    credentials: HTTPAuthorizationCredentials | None = Depends(optional_bearer),
) -> Actor:
    """
    Resolve the acting identity for a request.

    No token means the system actor. A token that is present but invalid
    is rejected rather than silently downgraded.
    """
    if credentials is None:
        return SYSTEM_ACTOR

    claims = decode_token(credentials.credentials)
    if claims is None:
        raise _unauthorized("INVALID_TOKEN", "Invalid or expired authentication token.")

    try:
        return actor_from_claims(claims)
    except ValueError as e:
        logger.warning(f"Invalid token claims: {e}")
        raise _unauthorized(
            "INVALID_TOKEN_CLAIMS", "Token contains invalid or missing claims."
        ) from e


async def get_current_registrar(
    actor: Actor = Depends(get_current_actor),
) -> Actor:
    """
    Require a registrar (or admin) actor.

    Raises:
        HTTPException 401: No token supplied
        HTTPException 403: Token role is not a registrar role
    """
    if actor.id is None:
        raise _unauthorized("AUTHENTICATION_REQUIRED", "A registrar token is required.")

    if actor.role not in REGISTRAR_ROLES:
        logger.warning(f"Access denied: actor {actor.id} has role '{actor.role}'")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={
                "error": "REGISTRAR_ACCESS_REQUIRED",
                "message": "Registrar access is required for this endpoint.",
            },
        )

    return actor


__all__ = [
    "Actor",
    "SYSTEM_ACTOR",
    "actor_from_claims",
    "get_current_actor",
    "get_current_registrar",
]

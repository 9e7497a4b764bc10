from dataclasses import dataclass
from typing import Optional
from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from app.core.exceptions import AuthenticationError, AuthorizationError
from app.core.security import decode_access_token
from app.models.enums import UserRole

bearer_scheme = HTTPBearer(auto_error=False)


@dataclass
class Actor:
    """The authenticated caller, taken from the bearer token claims."""
    id: str
    role: UserRole
    name: str = ""
    badge_number: str = ""


def _actor_from_token(token: str) -> Actor:
    payload = decode_access_token(token)
    if payload is None or not payload.get("sub"):
        raise AuthenticationError("Could not validate credentials")
    try:
        role = UserRole(payload.get("role", UserRole.CITIZEN.value))
    except ValueError:
        raise AuthenticationError("Unknown role in token")
    return Actor(
        id=str(payload["sub"]),
        role=role,
        name=payload.get("name") or "",
        badge_number=payload.get("badge_number") or "",
    )


def get_current_actor(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> Actor:
    if credentials is None:
        raise AuthenticationError("Authentication required")
    return _actor_from_token(credentials.credentials)


def get_optional_actor(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> Optional[Actor]:
    """Like get_current_actor, but anonymous callers get None instead of 401."""
    if credentials is None:
        return None
    return _actor_from_token(credentials.credentials)


def require_role(allowed_roles: list[UserRole]):
    def role_checker(actor: Actor = Depends(get_current_actor)) -> Actor:
        if actor.role not in allowed_roles:
            raise AuthorizationError("Not enough permissions")
        return actor
    return role_checker

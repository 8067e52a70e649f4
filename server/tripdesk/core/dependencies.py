"""FastAPI dependencies for the acting principal."""

from typing import Optional

import jwt
from fastapi import Depends, Header
from jwt import PyJWTError

from .config import settings
from .exceptions import AuthenticationError
from .permissions import Actor, Role


def _parse_roles(raw_roles) -> frozenset[Role]:
    roles = set()
    for raw in raw_roles or []:
        try:
            roles.add(Role(raw))
        except ValueError:
            # Roles the engine does not know grant nothing
            continue
    return frozenset(roles or {Role.USER})


async def get_current_actor(
    authorization: Optional[str] = Header(None, alias="Authorization")
) -> Actor:
    """
    Authentication dependency that validates Bearer tokens.

    Tokens are issued by the external auth service; the engine only reads the
    subject and role claims.

    Raises:
        AuthenticationError: If token is invalid or missing
    """
    if not authorization:
        raise AuthenticationError(detail="Authorization header missing")

    try:
        scheme, token = authorization.split()
    except ValueError:
        raise AuthenticationError(detail="Invalid authorization header format")

    if scheme.lower() != "bearer":
        raise AuthenticationError(detail="Invalid authentication scheme")

    try:
        payload = jwt.decode(
            token,
            settings.bearer_token_secret,
            algorithms=["HS256"]
        )
    except PyJWTError as e:
        raise AuthenticationError(detail=f"Token validation failed: {str(e)}")

    user_id = payload.get("sub")
    if user_id is None:
        raise AuthenticationError(detail="Invalid token payload")

    return Actor(id=str(user_id), roles=_parse_roles(payload.get("roles")))


RequiredActor = Depends(get_current_actor)
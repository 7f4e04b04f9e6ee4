from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from jose import jwt, JWTError

from .config import settings
from ..workflow.states import Role

security = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class Actor:
    """Caller identity passed explicitly into every engine call"""

    user_id: str
    role: str
    email: Optional[str] = None


def decode_jwt(token: str) -> dict:
    """Decode and validate JWT token"""
    try:
        payload = jwt.decode(
            token,
            settings.JWT_SECRET,
            algorithms=[settings.JWT_ALGORITHM],
        )
        return payload
    except JWTError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid authentication token",
            headers={"WWW-Authenticate": "Bearer"},
        )


def actor_from_claims(payload: dict) -> Actor:
    user_id = payload.get("sub")
    role = payload.get("role")

    if not user_id or not role:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token claims",
        )

    valid_roles = {r.value for r in Role}
    if role not in valid_roles:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f"Invalid role: {role}",
        )

    return Actor(user_id=user_id, role=role, email=payload.get("email"))


async def get_current_actor(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> Actor:
    """
    Resolve the calling actor from the bearer token

    Without a token, dev mode (AUTH_REQUIRED=false) falls back to the
    configured dev actor; otherwise 401.
    """
    if credentials:
        return actor_from_claims(decode_jwt(credentials.credentials))

    if settings.AUTH_REQUIRED:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required",
            headers={"WWW-Authenticate": "Bearer"},
        )

    return Actor(user_id=settings.DEV_ACTOR_ID, role=settings.DEV_ACTOR_ROLE)

from dataclasses import dataclass
from typing import Annotated

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import APIKeyHeader
from jose import jwt, JWTError

from .config import settings

api_key_header = APIKeyHeader(name="Authorization")


@dataclass(frozen=True)
class CurrentUser:
    id: str
    is_admin: bool = False


def decode_token(jwt_token: str) -> dict:
    """Verifies a token issued by the identity provider and returns its claims."""
    options = {"verify_aud": settings.JWT_AUDIENCE is not None}
    return jwt.decode(
        jwt_token,
        settings.SECRET_KEY,
        algorithms=[settings.ALGORITHM],
        audience=settings.JWT_AUDIENCE,
        options=options,
    )


def _is_admin(payload: dict) -> bool:
    app_metadata = payload.get("app_metadata") or {}
    return bool(app_metadata.get("is_admin")) or app_metadata.get("role") == "admin"


async def get_key_by_user_id_or_ip(request: Request) -> str:
    """
    Tries to get the user ID from the JWT token.
    If it fails (no token, invalid token), it falls back to the client's IP.
    """
    try:
        token = request.headers.get("Authorization")
        scheme, jwt_token = token.split()
        if scheme.lower() != "bearer":
            return request.client.host  # Fallback to IP

        user_id = decode_token(jwt_token).get("sub")
        if user_id:
            return str(user_id)
    except (JWTError, ValueError, AttributeError, TypeError):
        # If token is invalid, missing, or malformed, limit by IP
        pass
    return request.client.host


async def get_current_user(token: Annotated[str, Depends(api_key_header)]) -> CurrentUser:
    """
    Decodes the JWT from the 'Authorization: Bearer ...' header to get the user.
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    try:
        scheme, jwt_token = token.split()
        if scheme.lower() != "bearer":
            raise credentials_exception
        payload = decode_token(jwt_token)
    except (JWTError, ValueError, AttributeError):
        raise credentials_exception

    user_id = payload.get("sub")
    if not user_id:
        raise credentials_exception
    return CurrentUser(id=str(user_id), is_admin=_is_admin(payload))


async def get_current_admin_user(user: Annotated[CurrentUser, Depends(get_current_user)]) -> CurrentUser:
    if not user.is_admin:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin access required")
    return user

"""
Bearer Token Identity

Authentication is owned by an external identity provider; this module
only verifies the HS256 tokens it issues and turns them into a Caller.
Guests are represented by ``None``.
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from tableside.core.config import get_settings

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class Caller:
    """An authenticated user."""
    user_id: str
    role: str = "customer"


def create_access_token(user_id: str, role: str = "customer", **claims: Any) -> str:
    settings = get_settings()
    payload = dict(claims)
    expire = datetime.now(tz=timezone.utc) + timedelta(
        minutes=settings.jwt_access_token_expire_minutes
    )
    payload.update({
        "sub": user_id,
        "role": role,
        "exp": expire,
        "type": "access",
        "jti": str(uuid.uuid4()),
    })
    return jwt.encode(payload, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)


def decode_token(token: str) -> dict[str, Any]:
    """Decode and validate a JWT. Raises JWTError on failure."""
    settings = get_settings()
    return jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])


def caller_from_token(token: str) -> Caller:
    claims = decode_token(token)
    subject = claims.get("sub")
    if not subject:
        raise JWTError("Token has no subject")
    return Caller(user_id=str(subject), role=claims.get("role", "customer"))


async def optional_caller(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> Optional[Caller]:
    """Resolve the caller if a valid token is present, otherwise treat as guest."""
    if credentials is None:
        return None
    try:
        return caller_from_token(credentials.credentials)
    except JWTError as e:
        logger.debug(f"Ignoring invalid bearer token on public route: {e}")
        return None


async def require_caller(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> Caller:
    """Resolve the caller or reject the request with 401."""
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing or invalid Authorization header. Expected: Bearer <token>",
            headers={"WWW-Authenticate": "Bearer"},
        )
    try:
        return caller_from_token(credentials.credentials)
    except JWTError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"Invalid or expired token: {e}",
            headers={"WWW-Authenticate": "Bearer"},
        )

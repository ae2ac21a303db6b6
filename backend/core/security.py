"""
Security utilities for the Flowline workflow engine.

Access tokens are issued by the hosted auth provider as HS256 JWTs
signed with the shared SECRET_KEY; this service only verifies them.

Includes:
- JWT token generation (tests, local tooling) and verification
- FastAPI dependency for authentication
"""

from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials as HTTPAuthCredentials
from fastapi.security import HTTPBearer
from pydantic import BaseModel

from app.config import get_settings
from core.constants import UserRole
from core.exceptions import UnauthorizedError

ALGORITHM = "HS256"

# auto_error=False so a missing header is reported through UnauthorizedError
security_scheme = HTTPBearer(auto_error=False)


class TokenPayload(BaseModel):
    """JWT token payload structure."""
    sub: str  # user_id
    email: str
    org_id: str
    role: str = UserRole.MEMBER.value
    exp: datetime
    iat: datetime
    type: str = "access"


def create_access_token(
    user_id: str,
    email: str,
    org_id: str,
    role: str = UserRole.MEMBER.value,
    expires_minutes: Optional[int] = None,
) -> str:
    """
    Create a JWT access token.

    Args:
        user_id: User ID
        email: User email
        org_id: Organization ID
        role: User role (admin, pm, member)

    Returns:
        Encoded JWT token
    """
    settings = get_settings()
    now = datetime.now(timezone.utc)
    expire = now + timedelta(minutes=expires_minutes or settings.ACCESS_TOKEN_EXPIRE_MINUTES)

    payload = {
        "sub": user_id,
        "email": email,
        "org_id": org_id,
        "role": role,
        "type": "access",
        "iat": now,
        "exp": expire,
    }
    return jwt.encode(payload, settings.SECRET_KEY, algorithm=ALGORITHM)


def verify_token(token: str) -> TokenPayload:
    """
    Verify and decode a JWT token.

    Args:
        token: Encoded JWT token

    Returns:
        Decoded token payload

    Raises:
        UnauthorizedError: If token is invalid or expired
    """
    try:
        payload = jwt.decode(token, get_settings().SECRET_KEY, algorithms=[ALGORITHM])
    except jwt.ExpiredSignatureError:
        raise UnauthorizedError("Token has expired")
    except jwt.InvalidTokenError:
        raise UnauthorizedError("Invalid token")

    user_id = payload.get("sub")
    email = payload.get("email")
    org_id = payload.get("org_id")
    if user_id is None or email is None or org_id is None:
        raise UnauthorizedError("Invalid token payload")

    return TokenPayload(
        sub=user_id,
        email=email,
        org_id=org_id,
        role=payload.get("role") or UserRole.MEMBER.value,
        exp=datetime.fromtimestamp(payload.get("exp"), tz=timezone.utc),
        iat=datetime.fromtimestamp(payload.get("iat"), tz=timezone.utc),
        type=payload.get("type") or "access",
    )


async def get_current_user(
    credentials: Optional[HTTPAuthCredentials] = Depends(security_scheme),
) -> TokenPayload:
    """
    FastAPI dependency to get the current authenticated user from JWT token.

    Reads the Authorization header, verifies the JWT token, and returns the payload.

    Raises:
        UnauthorizedError: If token is missing, invalid, or expired
    """
    if not credentials:
        raise UnauthorizedError("Missing authorization header")

    token_payload = verify_token(credentials.credentials)
    if token_payload.type != "access":
        raise UnauthorizedError("Invalid token type")
    return token_payload

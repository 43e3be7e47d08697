"""
Authentication utilities - JWT bearer token verification.

Tokens are issued by the identity service; this module only verifies the
signature and maps claims to a Principal.
"""

from typing import Optional
from jose import JWTError, jwt
from pydantic import ValidationError
from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from ..models import Principal

# Bearer token security
security = HTTPBearer(auto_error=False)


def decode_access_token(token: str, secret_key: str, algorithm: str = "HS256") -> Optional[Principal]:
    """
    Decode and verify a JWT access token.

    Args:
        token: JWT token string
        secret_key: Shared signing secret
        algorithm: Signing algorithm

    Returns:
        Optional[Principal]: Principal if the token is valid, None otherwise
    """
    try:
        payload = jwt.decode(token, secret_key, algorithms=[algorithm])
    except JWTError:
        return None

    user_id = payload.get("sub") or payload.get("userId")
    if not user_id:
        return None

    display_name = payload.get("name") or payload.get("username") or "User"
    try:
        return Principal(user_id=str(user_id), display_name=display_name, email=payload.get("email"))
    except ValidationError:
        # Malformed email claim
        return Principal(user_id=str(user_id), display_name=display_name)


async def get_current_principal(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> Principal:
    """
    Dependency to get the current principal from the bearer token.

    Raises:
        HTTPException: If token is missing or invalid
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    if credentials is None:
        raise credentials_exception

    settings = request.app.state.settings
    principal = decode_access_token(credentials.credentials, settings.secret_key, settings.algorithm)
    if principal is None:
        raise credentials_exception

    return principal

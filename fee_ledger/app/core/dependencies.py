"""
Identity dependencies for FastAPI.

Resolves the caller from a bearer token and confirms the account is still
active. Role comes from the user row, not the token, so a role change takes
effect immediately.
"""

from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession
from fee_ledger.app.core.exceptions import AuthenticationError, InsufficientPermissionsError
from fee_ledger.app.core.jwt import decode_access_token
from fee_ledger.app.db.session import get_db
from fee_ledger.app.models.user import User

# HTTP Bearer security scheme
security = HTTPBearer(auto_error=False)


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: AsyncSession = Depends(get_db)
) -> dict:
    """
    FastAPI dependency for JWT authentication.

    Returns:
        Token payload with "user_id", "sub" and the current "role"

    Raises:
        AuthenticationError: token missing, invalid or naming no user
        InsufficientPermissionsError: account is inactive
    """
    if credentials is None:
        raise AuthenticationError("Not authenticated")

    payload = decode_access_token(credentials.credentials)
    if payload is None:
        raise AuthenticationError("Could not validate credentials")

    user_id = payload.get("user_id")
    if not user_id:
        raise AuthenticationError("Invalid token payload")

    user = await db.get(User, user_id)
    if not user:
        raise AuthenticationError("User not found")

    if not user.is_active:
        raise InsufficientPermissionsError("User account is inactive")

    return {**payload, "sub": payload.get("sub", user.username), "role": user.role.value}

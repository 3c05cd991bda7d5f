"""
Authentication dependencies for FastAPI.

Identity is owned by an external collaborator: every core call carries a
bearer token it signed, and this module turns that token into the caller
payload used by the endpoints.
"""

from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from campus_parking.app.core.exceptions import AuthenticationError
from campus_parking.app.core.jwt import decode_access_token

# HTTP Bearer security scheme
security = HTTPBearer()


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
) -> dict:
    """
    FastAPI dependency for JWT authentication.

    Returns:
        Decoded token payload containing user_id, sub and role

    Raises:
        AuthenticationError: 401 if the token is invalid or lacks a user id
    """
    payload = decode_access_token(credentials.credentials)
    if payload is None:
        raise AuthenticationError("Could not validate credentials")

    if not payload.get("user_id"):
        raise AuthenticationError("Invalid token payload")

    return payload

"""
JWT token utilities for the identity collaborator.

Tokens are issued by the campus identity service; this backend only
verifies them. `issue_identity_token` exists for local development and
tests, where no identity service is running.
"""

from datetime import datetime, timedelta
from typing import Optional, Dict, Any
from jose import JWTError, jwt
from campus_parking.app.core.config import settings


def issue_identity_token(
    user_id: int,
    username: str,
    role: str = "USER",
    expires_delta: Optional[timedelta] = None
) -> str:
    """
    Sign an identity token the way the identity service does.

    Example payload:
        {
            "sub": "jdoe",
            "user_id": 123,
            "role": "USER",
            "exp": 1234567890
        }
    """
    expire = datetime.utcnow() + (
        expires_delta or timedelta(minutes=settings.access_token_expire_minutes)
    )
    payload = {"sub": username, "user_id": user_id, "role": role, "exp": expire}
    return jwt.encode(payload, settings.secret_key, algorithm=settings.algorithm)


def decode_access_token(token: str) -> Optional[Dict[str, Any]]:
    """
    Decode and validate an identity token.

    Returns:
        Decoded payload (sub, user_id, role, exp) if the signature and
        expiry check out, None otherwise
    """
    try:
        return jwt.decode(token, settings.secret_key, algorithms=[settings.algorithm])
    except JWTError:
        return None

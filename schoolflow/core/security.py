"""Bearer token handling.

Tokens are issued by the platform's authentication service; this module
only verifies them and turns their claims into an ``Actor``. Claims:
``sub`` (user id), ``school_id`` (tenant) and ``role``.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional
from uuid import UUID

from jose import JWTError, jwt

from schoolflow.core.approval.actor import Actor
from schoolflow.core.config import get_settings


def create_access_token(
    user_id: UUID,
    school_id: UUID,
    role: str,
    expires_delta: Optional[timedelta] = None,
) -> str:
    """Create a signed access token (used by tooling and tests)."""
    settings = get_settings()
    expire = datetime.now(timezone.utc) + (
        expires_delta or timedelta(minutes=settings.access_token_expire_minutes)
    )
    to_encode = {
        "sub": str(user_id),
        "school_id": str(school_id),
        "role": role,
        "exp": expire,
        "type": "access",
    }
    return jwt.encode(to_encode, settings.secret_key, algorithm=settings.algorithm)


def decode_token(token: str) -> Optional[Actor]:
    """Decode and validate a token. Returns the actor, or None if the token is unusable."""
    settings = get_settings()
    try:
        payload = jwt.decode(token, settings.secret_key, algorithms=[settings.algorithm])
    except JWTError:
        return None
    
    user_id = payload.get("sub")
    school_id = payload.get("school_id")
    role = payload.get("role")
    if not user_id or not school_id or not role:
        return None
    
    try:
        return Actor(tenant_id=UUID(school_id), actor_id=UUID(user_id), role=role)
    except ValueError:
        return None

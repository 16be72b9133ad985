from datetime import datetime, timedelta, timezone
from typing import Optional
from uuid import UUID

from jose import jwt

from app.core.config import settings


def create_access_token(user_id: UUID, role: str, expires_minutes: Optional[int] = None) -> str:
    """Sign a session token. Login lives in the identity service; this is used by tooling and tests."""
    if expires_minutes is None:
        expires_minutes = settings.access_token_expire_minutes

    claims = {
        "user_id": str(user_id),
        # Informational only; get_current_user reads the role from the users table
        "role": role,
        "exp": datetime.now(timezone.utc) + timedelta(minutes=expires_minutes),
    }
    return jwt.encode(claims, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)

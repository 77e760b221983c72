from datetime import timedelta
from typing import Dict, Optional

import jwt

from coursegate.clock import utcnow
from coursegate.config import get_settings


def create_access_token(user_id: int, role: str, expires_in: Optional[timedelta] = None) -> str:
    """
    Tokens are issued by the login service; this helper exists for local
    development and tests.
    """
    settings = get_settings()
    payload = {"user_id": user_id, "role": role}
    if expires_in is not None:
        payload["exp"] = utcnow() + expires_in
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str) -> Dict:
    """Raises jwt.PyJWTError when the token is invalid or expired."""
    settings = get_settings()
    return jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])

# happypulse/core/security.py
"""
JWT verification for the HTTP adapters.

Token issuance lives with the identity provider; `create_access_token` is kept
for service-to-service calls and test fixtures.
"""
from datetime import datetime, timedelta
from typing import Optional

from jose import JWTError, jwt

from happypulse.core.config import settings


def create_access_token(subject: str, expires_delta: Optional[timedelta] = None) -> str:
    expire = datetime.utcnow() + (
        expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    )
    payload = {"sub": str(subject), "exp": expire, "iat": datetime.utcnow()}
    return jwt.encode(payload, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def decode_access_token(token: str) -> Optional[str]:
    try:
        data = jwt.decode(token, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
        return data.get("sub")
    except JWTError:
        return None

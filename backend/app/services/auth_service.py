# auth service: bearer token verification for identity-provider tokens
# tokens are issued elsewhere; this service only signs tokens for local tooling and tests

import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from jose import JWTError, jwt
from app.config import settings

logger = logging.getLogger(__name__)

DEFAULT_TOKEN_LIFETIME = timedelta(minutes=60)


def create_access_token(data: dict, expires_delta: Optional[timedelta] = None) -> str:
    """sign an access token the way the identity provider does"""
    to_encode = data.copy()
    expire = datetime.now(timezone.utc) + (expires_delta or DEFAULT_TOKEN_LIFETIME)
    to_encode.update({"exp": expire, "type": "access"})
    if settings.JWT_AUDIENCE and "aud" not in to_encode:
        to_encode["aud"] = settings.JWT_AUDIENCE
    return jwt.encode(to_encode, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def decode_token(token: str) -> Optional[dict]:
    """decode and validate a jwt token, returns payload or none"""
    try:
        payload = jwt.decode(
            token,
            settings.JWT_SECRET,
            algorithms=[settings.JWT_ALGORITHM],
            audience=settings.JWT_AUDIENCE,
            options={"verify_aud": settings.JWT_AUDIENCE is not None},
        )
        return payload
    except JWTError as e:
        logger.warning(f"Token decode failed: {e}")
        return None

"""Password hashing (bcrypt via passlib) and signed bearer tokens (python-jose)"""

import logging
from datetime import datetime, timedelta
from typing import Any, Optional

from jose import JWTError, jwt
from passlib.context import CryptContext

from .config import ACCESS_TOKEN_EXPIRE_MINUTES, SECRET_KEY

logger = logging.getLogger(__name__)

TOKEN_ALGORITHM = "HS256"

pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")


def hash_password(password: str) -> str:
    return pwd_context.hash(password)


def verify_password(plain_password: str, hashed_password: Optional[str]) -> bool:
    """False for a wrong password and for an unusable stored hash"""
    if not hashed_password:
        return False
    try:
        return pwd_context.verify(plain_password, hashed_password)
    except ValueError as e:
        logger.error(f"❌ Stored password hash could not be read: {e}")
        return False


def create_access_token(user_id: int, organization_id: int, lifetime: Optional[timedelta] = None) -> str:
    """
    Token claims:
        sub - user id (string, as JWT requires)
        org - organization the user belonged to at login
        iat/exp - issue and expiry times
    """
    now = datetime.utcnow()
    claims = {
        "sub": str(user_id),
        "org": organization_id,
        "iat": now,
        "exp": now + (lifetime or timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES)),
    }
    return jwt.encode(claims, SECRET_KEY, algorithm=TOKEN_ALGORITHM)


def decode_access_token(token: str) -> Optional[dict[str, Any]]:
    """Claims of a valid token; None for a bad signature, expiry or garbage"""
    try:
        return jwt.decode(token, SECRET_KEY, algorithms=[TOKEN_ALGORITHM])
    except JWTError as e:
        logger.info(f"🔒 Rejected bearer token: {e}")
        return None

import logging
from typing import Optional

from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from .database import get_db
from .models import User
from .permissions import has_permission
from .security_utils import decode_access_token

logger = logging.getLogger(__name__)

security = HTTPBearer()


def resolve_token_user(token: str, db: Session) -> Optional[User]:
    """
    Decode a bearer token and load its active user.
    Returns None when the token is invalid, expired, or the user is gone/inactive.
    Shared by the HTTP dependency and the WebSocket handshake.
    """
    payload = decode_access_token(token)
    if not payload:
        return None

    try:
        user_id = int(payload.get("sub"))
    except (TypeError, ValueError):
        logger.warning("⚠️ Token missing a numeric subject claim")
        return None

    user = db.query(User).filter(User.id == user_id).first()
    if not user or not user.is_active:
        return None

    # Tokens are bound to the organization they were issued for
    if payload.get("org") != user.organization_id:
        logger.warning(f"⚠️ Token organization mismatch for user {user_id}")
        return None

    return user


async def get_current_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    db: Session = Depends(get_db),
) -> User:
    """Get current user from the bearer token"""
    if not credentials:
        raise HTTPException(
            status_code=401,
            detail="Not authenticated. Please provide a valid Bearer token in the Authorization header.",
        )

    user = resolve_token_user(credentials.credentials, db)
    if not user:
        raise HTTPException(status_code=401, detail="Invalid or expired token")

    logger.debug(f"✅ User authenticated: {user.username} (org {user.organization_id})")
    return user


def require_permission(permission: str):
    """
    Dependency factory guarding a route with a permission.

    Usage:
        current_user: User = Depends(require_permission("invoices.manage"))
    """

    async def dependency(current_user: User = Depends(get_current_user)) -> User:
        if not has_permission(current_user, permission):
            logger.warning(f"⚠️ User {current_user.id} denied: missing {permission}")
            raise HTTPException(status_code=403, detail=f"Permission required: {permission}")
        return current_user

    return dependency

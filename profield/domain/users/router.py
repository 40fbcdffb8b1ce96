"""User router - authentication, user administration and organization settings"""

import logging
from typing import Any

from fastapi import APIRouter, Body, Depends
from sqlalchemy.orm import Session

from ...auth import get_current_user, require_permission
from ...database import get_db
from ...models import User
from ...rate_limiter import create_rate_limiter
from .schemas import (
    LoginRequest,
    PermissionsUpdate,
    RegisterRequest,
    SettingsResponse,
    TokenResponse,
    UserCreate,
    UserResponse,
    UserStats,
    UserUpdate,
)
from .service import UserService, to_user_response

logger = logging.getLogger(__name__)

auth_router = APIRouter(prefix="/auth", tags=["Authentication"])
router = APIRouter(prefix="/users", tags=["Users"])
settings_router = APIRouter(prefix="/settings", tags=["Settings"])

rate_limit_login = create_rate_limiter(limit=20, window_seconds=60, key_prefix="auth_login")


def get_user_service(db: Session = Depends(get_db)) -> UserService:
    """Dependency injection for UserService"""
    return UserService(db)


# ============================================================================
# AUTHENTICATION
# ============================================================================


@auth_router.post("/register", response_model=TokenResponse, status_code=201)
async def register(data: RegisterRequest, service: UserService = Depends(get_user_service)):
    """Create a new organization with its first admin user"""
    return service.register(data)


@auth_router.post("/login", response_model=TokenResponse)
async def login(
    data: LoginRequest,
    service: UserService = Depends(get_user_service),
    _: None = Depends(rate_limit_login),
):
    """Exchange username/email and password for a bearer token"""
    return service.login(data)


@auth_router.get("/me", response_model=UserResponse)
async def get_me(current_user: User = Depends(get_current_user)):
    return to_user_response(current_user)


# ============================================================================
# USER ADMINISTRATION
# ============================================================================


@router.get("", response_model=list[UserResponse])
async def list_users(
    current_user: User = Depends(require_permission("users.view")),
    service: UserService = Depends(get_user_service),
):
    return [to_user_response(u) for u in service.get_users(current_user)]


@router.get("/stats", response_model=UserStats)
async def user_stats(
    current_user: User = Depends(require_permission("users.view")),
    service: UserService = Depends(get_user_service),
):
    return service.get_stats(current_user)


@router.post("", response_model=UserResponse, status_code=201)
async def create_user(
    data: UserCreate,
    current_user: User = Depends(require_permission("users.manage")),
    service: UserService = Depends(get_user_service),
):
    return to_user_response(service.create_user(data, current_user))


@router.get("/{user_id}", response_model=UserResponse)
async def get_user(
    user_id: int,
    current_user: User = Depends(get_current_user),
    service: UserService = Depends(get_user_service),
):
    return to_user_response(service.get_user(user_id, current_user))


@router.patch("/{user_id}", response_model=UserResponse)
async def update_user(
    user_id: int,
    data: UserUpdate,
    current_user: User = Depends(get_current_user),
    service: UserService = Depends(get_user_service),
):
    """Update a profile. Users may edit themselves; anyone else needs users.manage."""
    return to_user_response(service.update_user(user_id, data, current_user))


@router.put("/{user_id}/permissions", response_model=UserResponse)
async def set_user_permissions(
    user_id: int,
    data: PermissionsUpdate,
    current_user: User = Depends(require_permission("users.manage")),
    service: UserService = Depends(get_user_service),
):
    """Replace a user's explicit permission grants"""
    return to_user_response(service.set_permissions(user_id, data, current_user))


@router.delete("/{user_id}", response_model=UserResponse)
async def deactivate_user(
    user_id: int,
    current_user: User = Depends(require_permission("users.manage")),
    service: UserService = Depends(get_user_service),
):
    """Soft delete - the account is deactivated, its history is kept"""
    return to_user_response(service.deactivate_user(user_id, current_user))


# ============================================================================
# SETTINGS
# ============================================================================


@settings_router.get("/{category}", response_model=SettingsResponse)
async def get_settings(
    category: str,
    current_user: User = Depends(get_current_user),
    service: UserService = Depends(get_user_service),
):
    return service.get_settings(category, current_user)


@settings_router.put("/{category}", response_model=SettingsResponse)
async def update_settings(
    category: str,
    values: dict[str, Any] = Body(...),
    current_user: User = Depends(require_permission("settings.manage")),
    service: UserService = Depends(get_user_service),
):
    """Upsert every key in the body"""
    return service.update_settings(category, values, current_user)

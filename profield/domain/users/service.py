"""User service - registration, login, user administration and settings"""

import json
import logging
import re
from typing import Any

from fastapi import HTTPException
from sqlalchemy.orm import Session

from ...models import User
from ...permissions import ROLES, effective_permissions, has_permission, unknown_permissions
from ...security_utils import create_access_token, hash_password, verify_password
from ...shared.validators import slugify
from .repository import UserRepository
from .schemas import (
    LoginRequest,
    PermissionsUpdate,
    RegisterRequest,
    TokenResponse,
    UserCreate,
    UserResponse,
    UserStats,
    UserUpdate,
)

logger = logging.getLogger(__name__)

SETTINGS_CATEGORY = re.compile(r"^[a-z0-9_\-]{1,100}$")


def to_user_response(user: User) -> UserResponse:
    return UserResponse(
        id=user.id,
        organization_id=user.organization_id,
        username=user.username,
        email=user.email,
        first_name=user.first_name,
        last_name=user.last_name,
        phone=user.phone,
        role=user.role,
        permissions=list(user.permissions or []),
        effective_permissions=sorted(effective_permissions(user)),
        is_active=user.is_active,
        created_at=user.created_at,
    )


def _setting_value(value: Any):
    if value is None or isinstance(value, str):
        return value
    return json.dumps(value)


class UserService:
    """Service layer for users, organizations and settings"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = UserRepository()

    # ------------------------------------------------------------------
    # Authentication
    # ------------------------------------------------------------------

    def _issue_token(self, user: User) -> TokenResponse:
        token = create_access_token(user.id, user.organization_id)
        return TokenResponse(access_token=token, user=to_user_response(user))

    def _unique_slug(self, name: str) -> str:
        base = slugify(name)
        slug, n = base, 2
        while self.repo.slug_exists(self.db, slug):
            slug = f"{base}-{n}"
            n += 1
        return slug

    def register(self, data: RegisterRequest) -> TokenResponse:
        """Create an organization and its first admin"""
        if self.repo.username_or_email_taken(self.db, data.username, data.email):
            raise HTTPException(status_code=409, detail="Username or email already registered")

        org_data = {"name": data.organization_name, "slug": self._unique_slug(data.organization_name)}
        if data.timezone:
            org_data["timezone"] = data.timezone
        organization = self.repo.create_organization(self.db, **org_data)

        user = self.repo.create_user(
            self.db,
            organization_id=organization.id,
            username=data.username,
            email=data.email,
            password_hash=hash_password(data.password),
            first_name=data.first_name,
            last_name=data.last_name,
            phone=data.phone,
            role="admin",
            permissions=[],
        )
        logger.info(f"✅ Registered organization {organization.id} ({organization.slug}) with admin {user.id}")
        return self._issue_token(user)

    def login(self, data: LoginRequest) -> TokenResponse:
        user = self.repo.get_by_login(self.db, data.username.strip())
        if not user or not verify_password(data.password, user.password_hash):
            logger.warning(f"⚠️ Failed login for '{data.username}'")
            raise HTTPException(status_code=401, detail="Invalid username or password")
        if not user.is_active:
            raise HTTPException(status_code=401, detail="Account is deactivated")

        logger.info(f"🔑 User {user.id} logged in")
        return self._issue_token(user)

    # ------------------------------------------------------------------
    # User administration
    # ------------------------------------------------------------------

    def get_users(self, current_user: User) -> list[User]:
        return self.repo.get_users(self.db, current_user.organization_id)

    def get_stats(self, current_user: User) -> UserStats:
        users = self.get_users(current_user)
        active = sum(1 for u in users if u.is_active)
        by_role = {role: 0 for role in ROLES}
        for u in users:
            by_role[u.role] = by_role.get(u.role, 0) + 1
        return UserStats(
            total_users=len(users),
            active_users=active,
            inactive_users=len(users) - active,
            by_role=by_role,
        )

    def get_user(self, user_id: int, current_user: User) -> User:
        if user_id != current_user.id and not has_permission(current_user, "users.view"):
            raise HTTPException(status_code=403, detail="Permission required: users.view")
        user = self.repo.get_user(self.db, user_id, current_user.organization_id)
        if not user:
            raise HTTPException(status_code=404, detail="User not found")
        return user

    def create_user(self, data: UserCreate, current_user: User) -> User:
        if self.repo.username_or_email_taken(self.db, data.username, data.email):
            raise HTTPException(status_code=409, detail="Username or email already registered")

        unknown = unknown_permissions(data.permissions)
        if unknown:
            raise HTTPException(status_code=400, detail=f"Unknown permissions: {', '.join(unknown)}")

        user = self.repo.create_user(
            self.db,
            organization_id=current_user.organization_id,
            username=data.username,
            email=data.email,
            password_hash=hash_password(data.password),
            first_name=data.first_name,
            last_name=data.last_name,
            phone=data.phone,
            role=data.role,
            permissions=sorted(set(data.permissions)),
        )
        logger.info(f"👤 User {user.id} ({user.role}) created by {current_user.id}")
        return user

    def _guard_admin_change(self, target: User, current_user: User, role: str, is_active: bool) -> None:
        """Keep at least one active admin and stop admins locking themselves out"""
        if target.id == current_user.id and not is_active:
            raise HTTPException(status_code=400, detail="You cannot deactivate your own account")

        loses_admin = target.role == "admin" and target.is_active and (role != "admin" or not is_active)
        if loses_admin and self.repo.count_active_admins(self.db, target.organization_id) <= 1:
            raise HTTPException(status_code=400, detail="Organization must keep at least one active admin")

    def update_user(self, user_id: int, data: UserUpdate, current_user: User) -> User:
        is_manager = has_permission(current_user, "users.manage")
        if user_id != current_user.id and not is_manager:
            raise HTTPException(status_code=403, detail="Permission required: users.manage")

        user = self.repo.get_user(self.db, user_id, current_user.organization_id)
        if not user:
            raise HTTPException(status_code=404, detail="User not found")

        updates = data.model_dump(exclude_unset=True)
        if ("role" in updates or "is_active" in updates) and not is_manager:
            raise HTTPException(status_code=403, detail="Only user managers can change role or status")

        if updates.get("email") and self.repo.email_taken(self.db, updates["email"], user.id):
            raise HTTPException(status_code=409, detail="Email already in use")

        new_role = updates.get("role") or user.role
        new_active = updates["is_active"] if updates.get("is_active") is not None else user.is_active
        self._guard_admin_change(user, current_user, new_role, new_active)

        # Profile fields may be cleared with null; these may not
        for key in ("email", "role", "is_active"):
            if updates.get(key) is None:
                updates.pop(key, None)

        user = self.repo.update_user(self.db, user, **updates)
        logger.info(f"✏️ User {user.id} updated by {current_user.id}: {sorted(updates)}")
        return user

    def set_permissions(self, user_id: int, data: PermissionsUpdate, current_user: User) -> User:
        user = self.repo.get_user(self.db, user_id, current_user.organization_id)
        if not user:
            raise HTTPException(status_code=404, detail="User not found")

        unknown = unknown_permissions(data.permissions)
        if unknown:
            raise HTTPException(status_code=400, detail=f"Unknown permissions: {', '.join(unknown)}")

        return self.repo.update_user(self.db, user, permissions=sorted(set(data.permissions)))

    def deactivate_user(self, user_id: int, current_user: User) -> User:
        user = self.repo.get_user(self.db, user_id, current_user.organization_id)
        if not user:
            raise HTTPException(status_code=404, detail="User not found")

        self._guard_admin_change(user, current_user, user.role, False)
        user = self.repo.update_user(self.db, user, is_active=False)
        logger.info(f"🚫 User {user.id} deactivated by {current_user.id}")
        return user

    # ------------------------------------------------------------------
    # Settings
    # ------------------------------------------------------------------

    def _check_category(self, category: str) -> None:
        if not SETTINGS_CATEGORY.match(category):
            raise HTTPException(status_code=400, detail="Invalid settings category")

    def get_settings(self, category: str, current_user: User) -> dict:
        self._check_category(category)
        settings = self.repo.get_settings(self.db, current_user.organization_id, category)
        return {"category": category, "values": {s.key: s.value for s in settings}}

    def update_settings(self, category: str, values: dict, current_user: User) -> dict:
        self._check_category(category)
        if not values:
            raise HTTPException(status_code=400, detail="No settings provided")

        cleaned = {}
        for key, value in values.items():
            key = str(key).strip()
            if not key or len(key) > 255:
                raise HTTPException(status_code=400, detail="Setting keys must be 1-255 characters")
            cleaned[key] = _setting_value(value)

        self.repo.upsert_settings(self.db, current_user.organization_id, category, cleaned)
        logger.info(f"⚙️ Org {current_user.organization_id} updated {category} settings: {sorted(cleaned)}")
        return self.get_settings(category, current_user)

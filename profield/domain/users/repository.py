"""User repository - Database operations for organizations, users and settings"""

from typing import Optional

from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from ...models import Organization, Setting, User


class UserRepository:
    """Repository for user database operations"""

    @staticmethod
    def get_by_login(db: Session, login: str) -> Optional[User]:
        """Find a user by username or (case-insensitive) email"""
        return (
            db.query(User)
            .filter(or_(User.username == login, func.lower(User.email) == login.lower()))
            .first()
        )

    @staticmethod
    def username_or_email_taken(db: Session, username: str, email: str) -> bool:
        return (
            db.query(User.id)
            .filter(or_(User.username == username, func.lower(User.email) == email.lower()))
            .first()
            is not None
        )

    @staticmethod
    def email_taken(db: Session, email: str, exclude_user_id: int) -> bool:
        return (
            db.query(User.id)
            .filter(func.lower(User.email) == email.lower(), User.id != exclude_user_id)
            .first()
            is not None
        )

    @staticmethod
    def slug_exists(db: Session, slug: str) -> bool:
        return db.query(Organization.id).filter(Organization.slug == slug).first() is not None

    @staticmethod
    def create_organization(db: Session, **data) -> Organization:
        organization = Organization(**data)
        db.add(organization)
        db.flush()
        return organization

    @staticmethod
    def create_user(db: Session, **data) -> User:
        user = User(**data)
        db.add(user)
        db.commit()
        db.refresh(user)
        return user

    @staticmethod
    def get_users(db: Session, organization_id: int) -> list[User]:
        return (
            db.query(User)
            .filter(User.organization_id == organization_id)
            .order_by(User.created_at.desc(), User.id.desc())
            .all()
        )

    @staticmethod
    def get_user(db: Session, user_id: int, organization_id: int) -> Optional[User]:
        return db.query(User).filter(User.id == user_id, User.organization_id == organization_id).first()

    @staticmethod
    def count_active_admins(db: Session, organization_id: int) -> int:
        return (
            db.query(func.count(User.id))
            .filter(User.organization_id == organization_id, User.role == "admin", User.is_active.is_(True))
            .scalar()
        )

    @staticmethod
    def update_user(db: Session, user: User, **updates) -> User:
        for key, value in updates.items():
            if hasattr(user, key):
                setattr(user, key, value)
        db.commit()
        db.refresh(user)
        return user

    @staticmethod
    def get_settings(db: Session, organization_id: int, category: str) -> list[Setting]:
        return (
            db.query(Setting)
            .filter(Setting.organization_id == organization_id, Setting.category == category)
            .order_by(Setting.key)
            .all()
        )

    @staticmethod
    def upsert_settings(db: Session, organization_id: int, category: str, values: dict) -> None:
        existing = {s.key: s for s in UserRepository.get_settings(db, organization_id, category)}
        for key, value in values.items():
            if key in existing:
                existing[key].value = value
            else:
                db.add(Setting(organization_id=organization_id, category=category, key=key, value=value))
        db.commit()

"""Messaging repository - Database operations for messages and notifications"""

from typing import Optional

from sqlalchemy import func
from sqlalchemy.orm import Session, joinedload

from ...models import User
from ...models_messaging import Message, Notification


class MessagingRepository:
    """Repository for message and notification database operations"""

    @staticmethod
    def get_active_user(db: Session, user_id: int, organization_id: int) -> Optional[User]:
        return (
            db.query(User)
            .filter(User.id == user_id, User.organization_id == organization_id, User.is_active.is_(True))
            .first()
        )

    @staticmethod
    def get_active_users(db: Session, organization_id: int, exclude_user_id: int) -> list[User]:
        return (
            db.query(User)
            .filter(User.organization_id == organization_id, User.is_active.is_(True), User.id != exclude_user_id)
            .order_by(User.id)
            .all()
        )

    @staticmethod
    def create_messages(db: Session, messages: list[Message]) -> list[Message]:
        db.add_all(messages)
        db.commit()
        for message in messages:
            db.refresh(message)
        return messages

    @staticmethod
    def get_inbox(db: Session, user_id: int, organization_id: int) -> list[Message]:
        return (
            db.query(Message)
            .options(joinedload(Message.sender), joinedload(Message.recipient))
            .filter(
                Message.organization_id == organization_id,
                Message.recipient_id == user_id,
                Message.deleted_by_recipient.is_(False),
            )
            .order_by(Message.created_at.desc(), Message.id.desc())
            .all()
        )

    @staticmethod
    def get_sent(db: Session, user_id: int, organization_id: int) -> list[Message]:
        return (
            db.query(Message)
            .options(joinedload(Message.sender), joinedload(Message.recipient))
            .filter(
                Message.organization_id == organization_id,
                Message.sender_id == user_id,
                Message.deleted_by_sender.is_(False),
            )
            .order_by(Message.created_at.desc(), Message.id.desc())
            .all()
        )

    @staticmethod
    def count_unread(db: Session, user_id: int, organization_id: int) -> int:
        return (
            db.query(func.count(Message.id))
            .filter(
                Message.organization_id == organization_id,
                Message.recipient_id == user_id,
                Message.is_read.is_(False),
                Message.deleted_by_recipient.is_(False),
            )
            .scalar()
        )

    @staticmethod
    def get_message(db: Session, message_id: int, organization_id: int) -> Optional[Message]:
        return (
            db.query(Message)
            .filter(Message.id == message_id, Message.organization_id == organization_id)
            .first()
        )

    @staticmethod
    def save(db: Session, obj):
        db.commit()
        db.refresh(obj)
        return obj

    @staticmethod
    def delete(db: Session, obj) -> None:
        db.delete(obj)
        db.commit()

    # Notifications

    @staticmethod
    def get_notifications(db: Session, user_id: int, unread_only: bool = False, limit: int = 50) -> list[Notification]:
        query = db.query(Notification).filter(Notification.user_id == user_id)
        if unread_only:
            query = query.filter(Notification.is_read.is_(False))
        return query.order_by(Notification.created_at.desc(), Notification.id.desc()).limit(limit).all()

    @staticmethod
    def get_notification(db: Session, notification_id: int, user_id: int) -> Optional[Notification]:
        return (
            db.query(Notification)
            .filter(Notification.id == notification_id, Notification.user_id == user_id)
            .first()
        )

    @staticmethod
    def mark_all_read(db: Session, user_id: int) -> int:
        updated = (
            db.query(Notification)
            .filter(Notification.user_id == user_id, Notification.is_read.is_(False))
            .update({Notification.is_read: True}, synchronize_session=False)
        )
        db.commit()
        return updated

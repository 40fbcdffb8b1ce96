"""
In-app notification service
Persists a notification, pushes it to the user's open sockets and optionally
texts them, so every channel fires from the same event
"""

import logging
from typing import Optional

from sqlalchemy.orm import Session

from ..models import User
from ..models_messaging import Notification
from ..shared.validators import validate_us_phone
from .events import publish_to_user
from .twilio_service import send_sms

logger = logging.getLogger(__name__)

PRIORITIES = ("low", "normal", "high", "urgent")


def serialize_notification(notification: Notification) -> dict:
    return {
        "id": notification.id,
        "type": notification.type,
        "title": notification.title,
        "message": notification.message,
        "priority": notification.priority,
        "related_entity_type": notification.related_entity_type,
        "related_entity_id": notification.related_entity_id,
        "is_read": notification.is_read,
        "created_at": notification.created_at.isoformat() if notification.created_at else None,
    }


class NotificationService:
    """Creates notifications and fans them out to realtime/SMS"""

    def __init__(self, db: Session):
        self.db = db

    async def notify(
        self,
        user: User,
        type: str,
        title: str,
        message: str,
        priority: str = "normal",
        related_entity_type: Optional[str] = None,
        related_entity_id: Optional[int] = None,
        created_by: Optional[int] = None,
        send_sms: bool = False,
    ) -> Notification:
        if priority not in PRIORITIES:
            priority = "normal"

        notification = Notification(
            organization_id=user.organization_id,
            user_id=user.id,
            type=type,
            title=title,
            message=message,
            priority=priority,
            related_entity_type=related_entity_type,
            related_entity_id=related_entity_id,
            created_by=created_by,
        )
        self.db.add(notification)
        self.db.commit()
        self.db.refresh(notification)
        logger.info(f"🔔 Notification {notification.id} ({type}) for user {user.id}")

        await publish_to_user(
            user.id, user.organization_id, "new_notification", serialize_notification(notification)
        )

        if send_sms:
            await self._text_user(user, title, message, type)

        return notification

    async def _text_user(self, user: User, title: str, message: str, type: str) -> bool:
        if not user.phone:
            logger.debug(f"⚠️ No phone for user {user.id} - skipping {type} SMS")
            return False
        try:
            phone = validate_us_phone(user.phone)
        except ValueError:
            logger.warning(f"⚠️ Invalid phone number for user {user.id}: {user.phone}")
            return False

        result = await send_sms(phone, f"{title}: {message}", message_type=type)
        if not result.sent:
            logger.warning(f"⚠️ {type} SMS to user {user.id} not sent: {result.error}")
        return result.sent

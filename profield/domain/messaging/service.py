"""Messaging service - direct messages, broadcasts and notification inbox"""

import logging
from datetime import datetime

from fastapi import HTTPException
from sqlalchemy.orm import Session

from ...models import User
from ...models_messaging import Message, Notification
from ...services.events import publish_to_user
from .repository import MessagingRepository
from .schemas import BroadcastCreate, MessageCreate, MessageResponse

logger = logging.getLogger(__name__)


def to_message_response(message: Message) -> MessageResponse:
    return MessageResponse(
        id=message.id,
        sender_id=message.sender_id,
        sender_name=message.sender.display_name if message.sender else None,
        recipient_id=message.recipient_id,
        recipient_name=message.recipient.display_name if message.recipient else None,
        subject=message.subject,
        body=message.body,
        is_read=message.is_read,
        read_at=message.read_at,
        created_at=message.created_at,
    )


class MessagingService:
    """Service layer for internal messaging"""

    def __init__(self, db: Session):
        self.db = db
        self.repo = MessagingRepository()

    async def _deliver(self, message: Message) -> None:
        await publish_to_user(
            message.recipient_id,
            message.organization_id,
            "new_message",
            to_message_response(message).model_dump(mode="json"),
        )

    async def send_message(self, data: MessageCreate, user: User) -> Message:
        if data.recipient_id == user.id:
            raise HTTPException(status_code=400, detail="You cannot message yourself")
        recipient = self.repo.get_active_user(self.db, data.recipient_id, user.organization_id)
        if not recipient:
            raise HTTPException(status_code=404, detail="Recipient not found")

        message = Message(
            organization_id=user.organization_id,
            sender_id=user.id,
            recipient_id=recipient.id,
            subject=data.subject,
            body=data.body,
        )
        (message,) = self.repo.create_messages(self.db, [message])
        logger.info(f"✉️ Message {message.id} from {user.id} to {recipient.id}")
        await self._deliver(message)
        return message

    async def broadcast(self, data: BroadcastCreate, user: User) -> int:
        """One message per active colleague"""
        recipients = self.repo.get_active_users(self.db, user.organization_id, exclude_user_id=user.id)
        if not recipients:
            return 0

        messages = [
            Message(
                organization_id=user.organization_id,
                sender_id=user.id,
                recipient_id=r.id,
                subject=data.subject,
                body=data.body,
            )
            for r in recipients
        ]
        messages = self.repo.create_messages(self.db, messages)
        logger.info(f"📣 Broadcast from user {user.id} to {len(messages)} users")
        for message in messages:
            await self._deliver(message)
        return len(messages)

    def get_messages(self, user: User, box: str = "inbox") -> list[Message]:
        if box == "sent":
            return self.repo.get_sent(self.db, user.id, user.organization_id)
        if box != "inbox":
            raise HTTPException(status_code=400, detail="Box must be inbox or sent")
        return self.repo.get_inbox(self.db, user.id, user.organization_id)

    def unread_count(self, user: User) -> int:
        return self.repo.count_unread(self.db, user.id, user.organization_id)

    def mark_read(self, message_id: int, user: User) -> Message:
        message = self.repo.get_message(self.db, message_id, user.organization_id)
        if not message or message.recipient_id != user.id or message.deleted_by_recipient:
            raise HTTPException(status_code=404, detail="Message not found")
        if not message.is_read:
            message.is_read = True
            message.read_at = datetime.utcnow()
            message = self.repo.save(self.db, message)
        return message

    def delete_message(self, message_id: int, user: User) -> None:
        """Hide the message for the caller; the row goes once both sides deleted it"""
        message = self.repo.get_message(self.db, message_id, user.organization_id)
        if not message or user.id not in (message.sender_id, message.recipient_id):
            raise HTTPException(status_code=404, detail="Message not found")

        if message.sender_id == user.id:
            message.deleted_by_sender = True
        if message.recipient_id == user.id:
            message.deleted_by_recipient = True

        if message.deleted_by_sender and message.deleted_by_recipient:
            self.repo.delete(self.db, message)
        else:
            self.repo.save(self.db, message)

    # ------------------------------------------------------------------
    # Notifications
    # ------------------------------------------------------------------

    def get_notifications(self, user: User, unread_only: bool = False, limit: int = 50) -> list[Notification]:
        return self.repo.get_notifications(self.db, user.id, unread_only, limit)

    def mark_notification_read(self, notification_id: int, user: User) -> Notification:
        notification = self.repo.get_notification(self.db, notification_id, user.id)
        if not notification:
            raise HTTPException(status_code=404, detail="Notification not found")
        if not notification.is_read:
            notification.is_read = True
            notification = self.repo.save(self.db, notification)
        return notification

    def mark_all_notifications_read(self, user: User) -> int:
        return self.repo.mark_all_read(self.db, user.id)

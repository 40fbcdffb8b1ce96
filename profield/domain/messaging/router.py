"""Messaging router - internal messages and in-app notifications"""

import logging

from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.orm import Session

from ...auth import get_current_user, require_permission
from ...database import get_db
from ...models import User
from .schemas import (
    BroadcastCreate,
    BroadcastResponse,
    MessageCreate,
    MessageResponse,
    NotificationResponse,
    UnreadCount,
)
from .service import MessagingService, to_message_response

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/messages", tags=["Messages"])
notifications_router = APIRouter(prefix="/notifications", tags=["Notifications"])


def get_messaging_service(db: Session = Depends(get_db)) -> MessagingService:
    """Dependency injection for MessagingService"""
    return MessagingService(db)


# ============================================================================
# MESSAGES
# ============================================================================


@router.get("", response_model=list[MessageResponse])
async def get_messages(
    box: str = Query("inbox"),
    current_user: User = Depends(require_permission("messages.manage")),
    service: MessagingService = Depends(get_messaging_service),
):
    return [to_message_response(m) for m in service.get_messages(current_user, box)]


@router.get("/unread-count", response_model=UnreadCount)
async def get_unread_count(
    current_user: User = Depends(require_permission("messages.manage")),
    service: MessagingService = Depends(get_messaging_service),
):
    return UnreadCount(unread_count=service.unread_count(current_user))


@router.post("", response_model=MessageResponse, status_code=201)
async def send_message(
    data: MessageCreate,
    current_user: User = Depends(require_permission("messages.manage")),
    service: MessagingService = Depends(get_messaging_service),
):
    return to_message_response(await service.send_message(data, current_user))


@router.post("/broadcast", response_model=BroadcastResponse, status_code=201)
async def broadcast_message(
    data: BroadcastCreate,
    current_user: User = Depends(require_permission("users.manage")),
    service: MessagingService = Depends(get_messaging_service),
):
    """Send the same message to every active user in the organization"""
    count = await service.broadcast(data, current_user)
    return BroadcastResponse(message=f"Message sent to {count} users", recipients=count)


@router.post("/{message_id}/read", response_model=MessageResponse)
async def mark_message_read(
    message_id: int,
    current_user: User = Depends(require_permission("messages.manage")),
    service: MessagingService = Depends(get_messaging_service),
):
    return to_message_response(service.mark_read(message_id, current_user))


@router.delete("/{message_id}", status_code=204)
async def delete_message(
    message_id: int,
    current_user: User = Depends(require_permission("messages.manage")),
    service: MessagingService = Depends(get_messaging_service),
):
    service.delete_message(message_id, current_user)
    return Response(status_code=204)


# ============================================================================
# NOTIFICATIONS
# ============================================================================


@notifications_router.get("", response_model=list[NotificationResponse])
async def get_notifications(
    unread_only: bool = Query(False),
    limit: int = Query(50, ge=1, le=200),
    current_user: User = Depends(get_current_user),
    service: MessagingService = Depends(get_messaging_service),
):
    return service.get_notifications(current_user, unread_only, limit)


@notifications_router.post("/read-all")
async def mark_all_notifications_read(
    current_user: User = Depends(get_current_user),
    service: MessagingService = Depends(get_messaging_service),
):
    updated = service.mark_all_notifications_read(current_user)
    return {"message": "All notifications marked as read", "updated": updated}


@notifications_router.post("/{notification_id}/read", response_model=NotificationResponse)
async def mark_notification_read(
    notification_id: int,
    current_user: User = Depends(get_current_user),
    service: MessagingService = Depends(get_messaging_service),
):
    return service.mark_notification_read(notification_id, current_user)

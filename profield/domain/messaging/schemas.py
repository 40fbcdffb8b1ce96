"""Messaging domain schemas - internal messages and notifications"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class MessageCreate(BaseModel):
    recipient_id: int
    subject: Optional[str] = Field(None, max_length=255)
    body: str = Field(..., min_length=1)

    @field_validator("body")
    @classmethod
    def body_not_blank(cls, v):
        if not v.strip():
            raise ValueError("Message body is required")
        return v


class BroadcastCreate(BaseModel):
    subject: Optional[str] = Field(None, max_length=255)
    body: str = Field(..., min_length=1)

    @field_validator("body")
    @classmethod
    def body_not_blank(cls, v):
        if not v.strip():
            raise ValueError("Message body is required")
        return v


class MessageResponse(BaseModel):
    id: int
    sender_id: int
    sender_name: Optional[str] = None
    recipient_id: int
    recipient_name: Optional[str] = None
    subject: Optional[str] = None
    body: str
    is_read: bool
    read_at: Optional[datetime] = None
    created_at: Optional[datetime] = None


class BroadcastResponse(BaseModel):
    message: str
    recipients: int


class UnreadCount(BaseModel):
    unread_count: int


class NotificationResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    type: str
    title: str
    message: str
    priority: str
    related_entity_type: Optional[str] = None
    related_entity_id: Optional[int] = None
    is_read: bool
    created_at: Optional[datetime] = None

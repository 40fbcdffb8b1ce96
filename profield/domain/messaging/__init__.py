"""Messaging domain - internal messages and notifications"""

from .router import notifications_router, router

__all__ = ["router", "notifications_router"]

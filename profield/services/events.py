"""
Domain event publishing

Services call publish()/publish_to_user() after a change is committed.
Delivery problems are logged and never bubble into the request.
"""

import logging
from typing import Any, Optional

from .websocket_manager import get_ws_manager

logger = logging.getLogger(__name__)


async def publish(
    organization_id: int,
    event_type: str,
    data: Any,
    exclude_user_id: Optional[int] = None,
) -> int:
    """Broadcast an event to the organization's connected clients"""
    try:
        return await get_ws_manager().broadcast_to_organization(
            organization_id, event_type, data, exclude_user_id=exclude_user_id
        )
    except Exception as e:
        logger.error(f"❌ Failed to publish {event_type} for org {organization_id}: {e}")
        return 0


async def publish_to_user(user_id: int, organization_id: int, event_type: str, data: Any) -> int:
    """Send an event to one user's connected clients"""
    try:
        return await get_ws_manager().broadcast_to_user(user_id, organization_id, event_type, data)
    except Exception as e:
        logger.error(f"❌ Failed to publish {event_type} to user {user_id}: {e}")
        return 0

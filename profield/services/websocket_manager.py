"""
WebSocket Manager

Tracks authenticated WebSocket connections per organization and fans
domain events out to them. Events never leave the organization they
were published in.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional

from fastapi import WebSocket

logger = logging.getLogger(__name__)


@dataclass
class ConnectionInfo:
    user_id: int
    organization_id: int
    user_type: str = "web"  # web, mobile
    connected_at: str = field(default_factory=lambda: datetime.utcnow().isoformat())
    # Empty set means "deliver every event type"
    events: set[str] = field(default_factory=set)

    def wants(self, event_type: str) -> bool:
        return not self.events or event_type in self.events


def build_envelope(organization_id: int, event_type: str, data: Any) -> dict:
    return {
        "type": "update",
        "eventType": event_type,
        "data": data,
        "timestamp": datetime.utcnow().isoformat(),
        "organizationId": organization_id,
    }


class ConnectionManager:
    """
    Manages WebSocket connections for real-time updates.

    Features:
    - Connections grouped by organization
    - Per-connection event subscriptions
    - Broadcast to a whole organization or to one user's sockets
    - Dead connections dropped on the first failed send
    """

    def __init__(self):
        self.organizations: dict[int, dict[WebSocket, ConnectionInfo]] = {}
        self._lock = asyncio.Lock()

    async def connect(
        self, websocket: WebSocket, user_id: int, organization_id: int, user_type: str = "web"
    ) -> ConnectionInfo:
        """Register an already-accepted, authenticated socket"""
        info = ConnectionInfo(user_id=user_id, organization_id=organization_id, user_type=user_type)
        async with self._lock:
            self.organizations.setdefault(organization_id, {})[websocket] = info

        logger.info(
            f"🔌 WS connected: user {user_id} org {organization_id} "
            f"(org total: {self.connection_count(organization_id)})"
        )
        return info

    async def disconnect(self, websocket: WebSocket) -> None:
        """Remove a socket from whichever organization holds it"""
        async with self._lock:
            for organization_id, sockets in list(self.organizations.items()):
                info = sockets.pop(websocket, None)
                if info is not None:
                    if not sockets:
                        del self.organizations[organization_id]
                    logger.info(f"🔌 WS disconnected: user {info.user_id} org {organization_id}")
                    return

    def subscribe(self, websocket: WebSocket, events: list[str]) -> Optional[ConnectionInfo]:
        """Replace the event filter of a connection"""
        for sockets in self.organizations.values():
            info = sockets.get(websocket)
            if info is not None:
                info.events = {e for e in events if e}
                return info
        return None

    async def _send_many(self, targets: list[WebSocket], message: dict) -> int:
        """Send to each target independently; drop the ones that fail"""
        delivered = 0
        dead = []
        for websocket in targets:
            try:
                await websocket.send_json(message)
                delivered += 1
            except Exception as e:
                logger.warning(f"[WS] Send failed, dropping connection: {e}")
                dead.append(websocket)

        for websocket in dead:
            await self.disconnect(websocket)
        return delivered

    async def broadcast_to_organization(
        self,
        organization_id: int,
        event_type: str,
        data: Any,
        exclude_user_id: Optional[int] = None,
    ) -> int:
        """Send an event to every subscribed socket of an organization. Returns deliveries."""
        async with self._lock:
            targets = [
                ws
                for ws, info in self.organizations.get(organization_id, {}).items()
                if info.wants(event_type) and info.user_id != exclude_user_id
            ]

        if not targets:
            return 0

        delivered = await self._send_many(targets, build_envelope(organization_id, event_type, data))
        logger.debug(f"📡 {event_type} -> org {organization_id}: {delivered}/{len(targets)} sockets")
        return delivered

    async def broadcast_to_user(self, user_id: int, organization_id: int, event_type: str, data: Any) -> int:
        """Send an event to every socket a single user has open"""
        async with self._lock:
            targets = [
                ws
                for ws, info in self.organizations.get(organization_id, {}).items()
                if info.user_id == user_id and info.wants(event_type)
            ]

        if not targets:
            return 0
        return await self._send_many(targets, build_envelope(organization_id, event_type, data))

    def connection_count(self, organization_id: Optional[int] = None) -> int:
        if organization_id is not None:
            return len(self.organizations.get(organization_id, {}))
        return sum(len(sockets) for sockets in self.organizations.values())

    def get_status(self, organization_id: int) -> dict:
        """Connection summary for one organization"""
        sockets = self.organizations.get(organization_id, {})
        return {
            "total_connections": len(sockets),
            "connected_users": len({info.user_id for info in sockets.values()}),
            "connections": [
                {
                    "user_id": info.user_id,
                    "user_type": info.user_type,
                    "connected_at": info.connected_at,
                    "events": sorted(info.events),
                }
                for info in sockets.values()
            ],
        }


# Singleton instance
manager = ConnectionManager()


def get_ws_manager() -> ConnectionManager:
    """Get the singleton WebSocket manager."""
    return manager

"""
Realtime router

WebSocket endpoint streaming domain events to the web and mobile clients of
an organization, plus a small status endpoint for admins.

Protocol:
    client -> {"type": "auth", "token": "<bearer>"}          (within 10s)
    server -> {"type": "auth_success", "userId", "organizationId"}
    client -> {"type": "ping"}                                -> {"type": "pong", "timestamp"}
    client -> {"type": "subscribe", "events": ["job_status_updated"]}
    server -> {"type": "update", "eventType", "data", "timestamp", "organizationId"}
"""

import asyncio
import logging
from datetime import datetime

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect

from ..auth import require_permission, resolve_token_user
from ..database import SessionLocal
from ..models import User
from ..services.websocket_manager import ConnectionManager, get_ws_manager

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Realtime"])

AUTH_TIMEOUT_SECONDS = 10.0
AUTH_FAILED_CLOSE_CODE = 4401


def _authenticate(token: str):
    """Resolve the handshake token to (user_id, organization_id) or None"""
    db = SessionLocal()
    try:
        user = resolve_token_user(token, db)
        if not user:
            return None
        return user.id, user.organization_id
    finally:
        db.close()


async def _reject(websocket: WebSocket, message: str) -> None:
    try:
        await websocket.send_json({"type": "auth_error", "message": message})
        await websocket.close(code=AUTH_FAILED_CLOSE_CODE)
    except (WebSocketDisconnect, RuntimeError):
        # Client already went away
        pass


@router.websocket("/ws")
async def realtime_socket(websocket: WebSocket):
    """Authenticated event stream for one client"""
    manager = get_ws_manager()
    await websocket.accept()

    try:
        message = await asyncio.wait_for(websocket.receive_json(), timeout=AUTH_TIMEOUT_SECONDS)
    except asyncio.TimeoutError:
        logger.info("⏱️ WS closed: no auth message received")
        await _reject(websocket, "Authentication timeout")
        return
    except WebSocketDisconnect:
        return
    except ValueError:
        await _reject(websocket, "Invalid message")
        return

    if not isinstance(message, dict) or message.get("type") != "auth" or not message.get("token"):
        await _reject(websocket, "First message must be an auth message with a token")
        return

    identity = _authenticate(message["token"])
    if identity is None:
        logger.warning("⚠️ WS auth failed: invalid or expired token")
        await _reject(websocket, "Invalid or expired token")
        return

    user_id, organization_id = identity
    user_type = message.get("userType") if message.get("userType") in ("web", "mobile") else "web"
    await manager.connect(websocket, user_id, organization_id, user_type)
    await websocket.send_json({"type": "auth_success", "userId": user_id, "organizationId": organization_id})

    try:
        while True:
            try:
                data = await websocket.receive_json()
            except ValueError:
                # One unparsable frame doesn't end the session
                await websocket.send_json({"type": "error", "message": "Invalid message"})
                continue
            await _handle_client_message(manager, websocket, data)
    except WebSocketDisconnect:
        pass
    except Exception as e:
        logger.error(f"[WS] Error for user {user_id}: {e}")
    finally:
        await manager.disconnect(websocket)


async def _handle_client_message(manager: ConnectionManager, websocket: WebSocket, data) -> None:
    if not isinstance(data, dict):
        return

    kind = data.get("type")
    if kind == "ping":
        await websocket.send_json({"type": "pong", "timestamp": datetime.utcnow().isoformat()})
    elif kind == "subscribe":
        events = data.get("events") or []
        info = manager.subscribe(websocket, [str(e) for e in events])
        await websocket.send_json({"type": "subscribed", "events": sorted(info.events) if info else []})
    else:
        logger.debug(f"[WS] Ignoring message type {kind!r}")


@router.get("/realtime/status")
async def realtime_status(current_user: User = Depends(require_permission("users.view"))):
    """Open socket counts for the caller's organization"""
    return get_ws_manager().get_status(current_user.organization_id)

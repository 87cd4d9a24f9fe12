"""
Commission Tracker - WebSocket Router

Real-time record notifications via WebSocket.

Endpoints:
- /ws/notifications: notification stream for the logged-in user
- /ws/stats: connection statistics (admin only)
"""

import json
import logging
import uuid
from typing import Any, List, Optional

from fastapi import APIRouter, Depends, Query, WebSocket, WebSocketDisconnect, status
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.database import get_async_session
from app.dependencies import require_admin
from app.models.user import User
from app.services.notification_hub import (
    NotificationChannel,
    NotificationHub,
    get_notification_hub,
)
from app.utils.security import verify_access_token

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/ws", tags=["WebSocket"])


class WebSocketStats(BaseModel):
    """WebSocket statistics response."""
    total_connections: int
    unique_users: int
    channels: dict


# ===========================================
# HELPER FUNCTIONS
# ===========================================

async def authenticate_websocket(
    websocket: WebSocket,
    token: Optional[str] = None,
) -> Optional[dict]:
    """
    Authenticate WebSocket connection.

    Token can be provided via:
    1. Query parameter: ?token=xxx
    2. The session cookie
    3. First message after connection: {"type": "auth", "token": "..."}
    """
    token = token or websocket.cookies.get(settings.session_cookie_name)
    if token:
        return verify_access_token(token)

    await websocket.accept()
    try:
        auth_msg = await websocket.receive_json()
    except (json.JSONDecodeError, KeyError) as e:
        logger.warning(f"WebSocket authentication message unreadable: {e}")
        return None
    if isinstance(auth_msg, dict) and auth_msg.get("type") == "auth" and auth_msg.get("token"):
        return verify_access_token(auth_msg["token"])
    return None


def channel_list(value: Any) -> Optional[List[str]]:
    """Channel names from a subscribe message, or None when not a list of strings."""
    if value is None:
        return []
    if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
        return None
    return value


async def resolve_user(db: AsyncSession, payload: Optional[dict]) -> Optional[User]:
    """Active user named by the token subject, if any."""
    if not payload or not payload.get("sub"):
        return None
    try:
        user_id = uuid.UUID(payload["sub"])
    except ValueError:
        return None
    user = await db.get(User, user_id)
    if user is None or not user.is_active:
        return None
    return user


# ===========================================
# WEBSOCKET ENDPOINT
# ===========================================

@router.websocket("/notifications")
async def notifications_websocket(
    websocket: WebSocket,
    token: Optional[str] = Query(None),
    db: AsyncSession = Depends(get_async_session),
    hub: NotificationHub = Depends(get_notification_hub),
):
    """
    Record notification stream.

    Message Types (client -> server):
        - {"type": "auth", "token": "..."}: Authenticate (if no token in query or cookie)
        - {"type": "subscribe", "channels": ["records"]}
        - {"type": "unsubscribe", "channels": ["system"]}
        - {"type": "ping"}: Heartbeat

    Message Types (server -> client):
        - {"event": "connected", "data": {...}}
        - {"event": "record-event", "data": {...}}
        - {"event": "pong", "data": {}}
        - {"event": "error", "data": {"message": "..."}}
    """
    connection_id = None
    accepted = token is None and settings.session_cookie_name not in websocket.cookies

    try:
        user = await resolve_user(db, await authenticate_websocket(websocket, token))
        if user is None:
            await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
            logger.warning("WebSocket authentication failed")
            return

        connection_id = await hub.connect(
            websocket=websocket,
            user_id=user.id,
            role=user.role.value,
            advisor_id=user.advisor_id,
            channels=[channel.value for channel in NotificationChannel],
            accepted=accepted,
        )

        # Message loop
        while True:
            try:
                data = await websocket.receive_json()
            except json.JSONDecodeError:
                await hub.send_to_connection(
                    connection_id,
                    "error",
                    {"message": "Invalid JSON message"},
                )
                continue

            msg_type = data.get("type") if isinstance(data, dict) else None

            if msg_type == "ping":
                await hub.heartbeat(connection_id)

            elif msg_type in ("subscribe", "unsubscribe"):
                channels = channel_list(data.get("channels"))
                if channels is None:
                    await hub.send_to_connection(
                        connection_id,
                        "error",
                        {"message": "channels must be a list of channel names"},
                    )
                elif channels and msg_type == "subscribe":
                    await hub.subscribe(connection_id, channels)
                elif channels:
                    await hub.unsubscribe(connection_id, channels)

            else:
                await hub.send_to_connection(
                    connection_id,
                    "error",
                    {"message": f"Unknown message type: {msg_type}"},
                )

    except WebSocketDisconnect:
        logger.info(f"WebSocket disconnected: {connection_id}")

    finally:
        if connection_id:
            await hub.disconnect(connection_id)


# ===========================================
# HTTP ENDPOINTS FOR WEBSOCKET MANAGEMENT
# ===========================================

@router.get("/stats", response_model=WebSocketStats)
async def get_websocket_stats(
    current_user: User = Depends(require_admin),
    hub: NotificationHub = Depends(get_notification_hub),
):
    """Current connection counts and channel subscriptions."""
    return WebSocketStats(**hub.get_stats())

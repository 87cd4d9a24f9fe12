"""
Commission Tracker - Notification Hub

Real-time record-change notifications over WebSockets.

Features:
- Connection management per user
- Channel-based subscriptions (records, system)
- Record events scoped by advisor: advisors only hear about their own
  records, admin and accounting hear about every record
- Heartbeat (ping/pong)

Every message sent to a client is an envelope:
    {"event": <name>, "data": {...}, "timestamp": <ISO-8601>}
Record changes use the event name ``record-event``.
"""

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Set

from fastapi import WebSocket

logger = logging.getLogger(__name__)


def _now() -> datetime:
    return datetime.now(timezone.utc)


class NotificationChannel(str, Enum):
    """WebSocket notification channels."""
    RECORDS = "records"
    SYSTEM = "system"


class RecordEventType(str, Enum):
    CREATED = "record-created"
    UPDATED = "record-updated"
    DELETED = "record-deleted"


RECORD_EVENT = "record-event"

DEFAULT_DESCRIPTIONS = {
    RecordEventType.CREATED: "New record registered",
    RecordEventType.UPDATED: "Record updated",
    RecordEventType.DELETED: "Record deleted",
}

# Roles that receive every advisor's record events
UNSCOPED_ROLES = {"admin", "accounting"}


@dataclass
class HubConnection:
    """Represents a WebSocket connection."""
    websocket: WebSocket
    user_id: uuid.UUID
    role: str
    advisor_id: Optional[int] = None
    channels: Set[str] = field(default_factory=set)
    connected_at: datetime = field(default_factory=_now)
    last_heartbeat: datetime = field(default_factory=_now)

    def receives_record(self, record: Dict[str, Any]) -> bool:
        if self.role in UNSCOPED_ROLES:
            return True
        return self.advisor_id is not None and record.get("advisor_id") == self.advisor_id

    def to_dict(self) -> Dict[str, Any]:
        return {
            "user_id": str(self.user_id),
            "role": self.role,
            "advisor_id": self.advisor_id,
            "channels": sorted(self.channels),
            "connected_at": self.connected_at.isoformat(),
        }


def build_record_event(
    event_type: RecordEventType,
    record: Dict[str, Any],
    description: Optional[str] = None,
) -> Dict[str, Any]:
    """Payload of a ``record-event`` message."""
    event_type = RecordEventType(event_type)
    return {
        "id": f"{event_type.value}-{uuid.uuid4()}",
        "type": event_type.value,
        "record": record,
        "description": description or DEFAULT_DESCRIPTIONS[event_type],
        "timestamp": _now().isoformat(),
    }


class NotificationHub:
    """
    Manages WebSocket connections for real-time notifications.

    Implements:
    - Connection tracking by user
    - Channel-based pub/sub
    - Advisor-scoped record broadcasts
    """

    def __init__(self):
        # connection_id -> HubConnection
        self._connections: Dict[str, HubConnection] = {}

        # Index by user_id for quick lookup
        self._user_connections: Dict[uuid.UUID, Set[str]] = {}

        # Index by channel for channel broadcasts
        self._channel_connections: Dict[str, Set[str]] = {}

        self._lock = asyncio.Lock()

    async def connect(
        self,
        websocket: WebSocket,
        user_id: uuid.UUID,
        role: str,
        advisor_id: Optional[int] = None,
        channels: Optional[List[str]] = None,
        accepted: bool = False,
    ) -> str:
        """
        Register a WebSocket connection (accepting it unless already accepted).

        Returns:
            Connection ID
        """
        if not accepted:
            await websocket.accept()
        connection_id = str(uuid.uuid4())

        async with self._lock:
            connection = HubConnection(
                websocket=websocket,
                user_id=user_id,
                role=role,
                advisor_id=advisor_id,
                channels=set(channels or [
                    NotificationChannel.RECORDS.value,
                    NotificationChannel.SYSTEM.value,
                ]),
            )
            self._connections[connection_id] = connection
            self._user_connections.setdefault(user_id, set()).add(connection_id)
            for channel in connection.channels:
                self._channel_connections.setdefault(channel, set()).add(connection_id)

        logger.info(
            f"WebSocket connected: user={user_id}, role={role}, "
            f"channels={sorted(connection.channels)}, connection_id={connection_id}"
        )

        await self.send_to_connection(
            connection_id,
            "connected",
            {
                "connection_id": connection_id,
                "channels": sorted(connection.channels),
            }
        )

        return connection_id

    async def disconnect(self, connection_id: str):
        """Remove a WebSocket connection."""
        async with self._lock:
            connection = self._connections.pop(connection_id, None)
            if connection is None:
                return

            user_ids = self._user_connections.get(connection.user_id)
            if user_ids is not None:
                user_ids.discard(connection_id)
                if not user_ids:
                    del self._user_connections[connection.user_id]

            for channel in connection.channels:
                members = self._channel_connections.get(channel)
                if members is not None:
                    members.discard(connection_id)
                    if not members:
                        del self._channel_connections[channel]

        logger.info(f"WebSocket disconnected: connection_id={connection_id}")

    async def subscribe(self, connection_id: str, channels: List[str]):
        """Subscribe a connection to additional channels."""
        async with self._lock:
            connection = self._connections.get(connection_id)
            if connection is None:
                return
            for channel in channels:
                connection.channels.add(channel)
                self._channel_connections.setdefault(channel, set()).add(connection_id)

        await self.send_to_connection(connection_id, "subscribed", {"channels": channels})

    async def unsubscribe(self, connection_id: str, channels: List[str]):
        """Unsubscribe a connection from channels."""
        async with self._lock:
            connection = self._connections.get(connection_id)
            if connection is None:
                return
            for channel in channels:
                connection.channels.discard(channel)
                members = self._channel_connections.get(channel)
                if members is not None:
                    members.discard(connection_id)
                    if not members:
                        del self._channel_connections[channel]

        await self.send_to_connection(connection_id, "unsubscribed", {"channels": channels})

    async def send_to_connection(
        self,
        connection_id: str,
        event_type: str,
        data: Dict[str, Any]
    ) -> bool:
        """Send a message to a specific connection; a failed send drops it."""
        connection = self._connections.get(connection_id)
        if connection is None:
            return False

        try:
            await connection.websocket.send_json({
                "event": event_type,
                "data": data,
                "timestamp": _now().isoformat(),
            })
            return True
        except Exception as e:
            logger.error(f"Error sending to connection {connection_id}: {e}")
            await self.disconnect(connection_id)
            return False

    async def send_to_user(self, user_id: uuid.UUID, event_type: str, data: Dict[str, Any]) -> int:
        """Send a message to every connection of a user. Returns deliveries."""
        delivered = 0
        for connection_id in list(self._user_connections.get(user_id, set())):
            if await self.send_to_connection(connection_id, event_type, data):
                delivered += 1
        return delivered

    async def broadcast_to_channel(self, channel: str, event_type: str, data: Dict[str, Any]) -> int:
        """Broadcast a message to all connections subscribed to a channel."""
        delivered = 0
        for connection_id in list(self._channel_connections.get(channel, set())):
            if await self.send_to_connection(connection_id, event_type, data):
                delivered += 1
        return delivered

    async def publish_record_event(
        self,
        event_type: RecordEventType,
        record: Dict[str, Any],
        description: Optional[str] = None,
    ) -> str:
        """
        Push a record change to subscribers of the records channel.

        Returns the event id.
        """
        event = build_record_event(event_type, record, description)
        channel = NotificationChannel.RECORDS.value

        delivered = 0
        for connection_id in list(self._channel_connections.get(channel, set())):
            connection = self._connections.get(connection_id)
            if connection is None or not connection.receives_record(record):
                continue
            if await self.send_to_connection(connection_id, RECORD_EVENT, event):
                delivered += 1

        logger.debug(f"Published {event['type']} {event['id']} to {delivered} connection(s)")
        return event["id"]

    async def heartbeat(self, connection_id: str):
        """Update heartbeat timestamp for a connection."""
        connection = self._connections.get(connection_id)
        if connection is not None:
            connection.last_heartbeat = _now()
            await self.send_to_connection(connection_id, "pong", {})

    def get_connection_count(self) -> int:
        """Get total number of active connections."""
        return len(self._connections)

    def get_stats(self) -> Dict[str, Any]:
        """Get hub statistics."""
        return {
            "total_connections": len(self._connections),
            "unique_users": len(self._user_connections),
            "channels": {
                channel: len(connection_ids)
                for channel, connection_ids in self._channel_connections.items()
            },
        }


notification_hub = NotificationHub()


def get_notification_hub() -> NotificationHub:
    """Dependency returning the process-wide hub."""
    return notification_hub

"""
Commission Tracker - Notification Feed

Client-side state behind the dashboard notification bell:
- Buffers ``record-event`` messages from the notification hub, de-duplicated
  by id and kept newest first
- Mirrors records in a pending payment state as "pending case" entries
- Plays a short chime when something new arrives
- Tracks read state, the open/closed panel and navigation to a record

The feed is transport-agnostic: whatever receives hub messages calls
``handle_event`` with the event payload.
"""

import logging
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence

from app.utils.payment_status import is_pending

logger = logging.getLogger(__name__)


PENDING_CATEGORY = "pending-case"
PENDING_PREFIX = "pending-"

EVENT_TITLES = {
    "record-created": "Record added",
    "record-updated": "Record edited",
}


@dataclass(frozen=True)
class Tone:
    frequency: float
    start: float
    duration: float


# Two-tone ascending chime
NEW_NOTIFICATION_CUE = (
    Tone(frequency=660.0, start=0.0, duration=0.18),
    Tone(frequency=880.0, start=0.18, duration=0.22),
)


@dataclass
class Notification:
    id: str
    category: str
    title: str
    description: str
    timestamp: str
    read: bool = False
    target_id: Optional[str] = None
    target_rut: Optional[str] = None
    meta: Dict[str, Any] = field(default_factory=dict)


CuePlayer = Callable[[Sequence[Tone]], None]
Listener = Callable[[Dict[str, Any]], None]
Navigator = Callable[[Dict[str, Any]], None]


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _sort_key(notification: Notification) -> datetime:
    try:
        value = datetime.fromisoformat(notification.timestamp.replace("Z", "+00:00"))
    except (AttributeError, ValueError):
        return datetime.min.replace(tzinfo=timezone.utc)
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value


def record_subject(record: Optional[Dict[str, Any]], fallback: Optional[str] = None) -> str:
    record = record or {}
    return (
        record.get("title")
        or fallback
        or record.get("student_first_names")
        or record.get("student_rut")
        or "No reference"
    )


def build_notification(
    event_type: str,
    payload: Dict[str, Any],
    fallback_title: Optional[str] = None,
) -> Notification:
    """Turn a hub ``record-event`` payload into a feed entry."""
    record = payload.get("record") or {}
    subject = record_subject(record, fallback_title)
    prefix = EVENT_TITLES.get(event_type, "Update")
    record_id = record.get("id")

    return Notification(
        id=payload.get("id") or f"{event_type}-{record_id}",
        category=event_type,
        title=f"{prefix} · {subject}",
        description=payload.get("description") or "",
        timestamp=payload.get("timestamp") or _now_iso(),
        target_id=str(record_id) if record_id is not None else None,
        target_rut=record.get("student_rut"),
        meta={"status": record.get("status"), "amount": record.get("amount")},
    )


class NotificationFeed:
    """In-memory notification feed for one signed-in user."""

    def __init__(self, cue_player: Optional[CuePlayer] = None, max_items: int = 200):
        self._items: List[Notification] = []
        self._listeners: List[Listener] = []
        self._navigator: Optional[Navigator] = None
        self._pending_target: Optional[Dict[str, Any]] = None
        self._known_pending: set = set()
        self._pending_synced = False
        self.cue_player = cue_player
        self.max_items = max_items
        self.panel_open = False

    # ===========================================
    # STATE
    # ===========================================

    @property
    def notifications(self) -> List[Notification]:
        return list(self._items)

    @property
    def unread_count(self) -> int:
        return sum(1 for item in self._items if not item.read)

    def get(self, notification_id: str) -> Optional[Notification]:
        return next((item for item in self._items if item.id == notification_id), None)

    def _store(self, items: Iterable[Notification]) -> None:
        self._items = sorted(items, key=_sort_key, reverse=True)[:self.max_items]

    def play_cue(self) -> None:
        if self.cue_player is None:
            return
        try:
            self.cue_player(NEW_NOTIFICATION_CUE)
        except Exception as exc:
            # Audio is best effort (e.g. autoplay blocked)
            logger.debug(f"Notification cue failed: {exc}")

    # ===========================================
    # INCOMING
    # ===========================================

    def push(self, notification: Notification, open_panel: bool = False, play_sound: bool = False) -> None:
        """Add or replace a notification by id."""
        others = [item for item in self._items if item.id != notification.id]
        self._store([notification, *others])
        if play_sound:
            self.play_cue()
        if open_panel:
            self.panel_open = True

    def add_listener(self, listener: Listener) -> Callable[[], None]:
        """Register a realtime listener; returns a function that removes it."""
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    def handle_event(self, event: Dict[str, Any], open_panel: bool = False) -> Optional[Notification]:
        """
        Process one ``record-event`` payload from the hub.

        Creation and edit events become notifications; every event is also
        forwarded to realtime listeners.
        """
        notification = None
        event_type = event.get("type")
        if event_type in EVENT_TITLES:
            notification = build_notification(event_type, event)
            self.push(notification, open_panel=open_panel, play_sound=True)

        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception as exc:
                logger.error(f"Realtime listener failed for {event.get('id')}: {exc}")

        return notification

    def sync_pending_cases(self, records: Iterable[Dict[str, Any]]) -> List[str]:
        """
        Mirror pending records as ``pending-<id>`` notifications.

        Existing entries keep their timestamp and read flag, entries for
        records that are no longer pending are dropped, and the chime plays
        when a new pending case shows up after the first sync.

        Returns the ids of newly seen pending cases.
        """
        existing = {item.id: item for item in self._items}
        pending: Dict[str, Notification] = {}

        for record in records:
            if record.get("id") is None or not is_pending(record.get("status")):
                continue
            pending_id = f"{PENDING_PREFIX}{record['id']}"
            previous = existing.get(pending_id)
            status = record.get("payment_status") or record.get("status")
            entry = Notification(
                id=pending_id,
                category=PENDING_CATEGORY,
                title=f"Pending case · {record_subject(record)}",
                description=f"Payment status: {status}",
                timestamp=previous.timestamp if previous else (record.get("created_at") or _now_iso()),
                read=previous.read if previous else False,
                target_id=str(record["id"]),
                target_rut=record.get("student_rut"),
                meta={"status": record.get("status"), "amount": record.get("amount")},
            )
            pending[pending_id] = entry

        new_ids = [pending_id for pending_id in pending if pending_id not in self._known_pending]

        kept = [
            item for item in self._items
            if item.category != PENDING_CATEGORY or item.id in pending
        ]
        kept = [pending.get(item.id, item) for item in kept]
        kept_ids = {item.id for item in kept}
        kept.extend(entry for pending_id, entry in pending.items() if pending_id not in kept_ids)
        self._store(kept)

        if new_ids and self._pending_synced:
            self.play_cue()

        self._known_pending = set(pending)
        self._pending_synced = True
        return new_ids

    # ===========================================
    # USER ACTIONS
    # ===========================================

    def mark_all_read(self) -> None:
        self._items = [replace(item, read=True) if not item.read else item for item in self._items]

    def toggle_panel(self) -> bool:
        self.panel_open = not self.panel_open
        return self.panel_open

    def close_panel(self) -> None:
        self.panel_open = False

    def set_navigator(self, navigator: Optional[Navigator]) -> None:
        """Register the view that focuses a record; a queued target is delivered at once."""
        self._navigator = navigator
        if navigator is not None and self._pending_target is not None:
            target, self._pending_target = self._pending_target, None
            navigator(target)

    def open(self, notification_id: str) -> Optional[Dict[str, Any]]:
        """
        Mark a notification read, close the panel and navigate to its record.

        Returns the navigation target, or None for an unknown id.
        """
        notification = self.get(notification_id)
        if notification is None:
            return None

        self._items = [
            replace(item, read=True) if item.id == notification_id else item
            for item in self._items
        ]
        self.panel_open = False

        target = {"id": notification.target_id, "rut": notification.target_rut}
        if self._navigator is not None:
            self._navigator(target)
        else:
            self._pending_target = target
        return target

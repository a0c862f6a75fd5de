"""
📡 CHANGE NOTIFICATION CHANNEL
==============================
Fans prospect changes out to every live viewer of a creator's data.

GUARANTEES:
- One logical channel per owner; subscribers only ever see their owner's events
- Events for the same prospect are delivered in commit (version) order;
  an event whose version is not newer than the last one delivered for that
  prospect is dropped as superseded
- At-least-once, snapshot semantics: each event carries the full new state,
  subscribers apply it only if its version is newer than what they hold
- The channel is an optimization, not the source of truth: a subscriber whose
  queue overflowed is flagged for resync and must re-fetch from the store

Usage:
    channel = ChangeNotificationChannel()

    with channel.subscribe(owner_id) as sub:
        view = ProspectView(owner_id)
        view.load(state_machine.list_prospects(owner_id))
        while True:
            event = sub.get(timeout=30)
            if sub.needs_resync:
                view.load(state_machine.list_prospects(owner_id))
                sub.acknowledge_resync()
            elif event:
                view.apply(event)
"""

import queue
import threading
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Tuple

from loguru import logger

from config.settings import settings
from models.errors import NotificationError
from models.outreach import Prospect, utcnow


class EventKind(str, Enum):
    CREATED = "created"
    UPDATED = "updated"
    DELETED = "deleted"


@dataclass(frozen=True)
class ProspectEvent:
    """State snapshot of one prospect after a committed change."""
    owner_id: str
    prospect_id: str
    kind: EventKind
    new_state: Optional[Dict[str, Any]]
    version: int
    emitted_at: datetime = field(default_factory=utcnow)

    @classmethod
    def for_prospect(cls, prospect: Prospect, kind: EventKind) -> "ProspectEvent":
        return cls(
            owner_id=prospect.owner_id,
            prospect_id=prospect.id,
            kind=kind,
            new_state=None if kind is EventKind.DELETED else prospect.to_row(),
            version=prospect.version,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "prospect_id": self.prospect_id,
            "kind": self.kind.value,
            "new_state": self.new_state,
            "version": self.version,
        }


class Subscription:
    """A live viewer's handle on one owner's event stream."""

    def __init__(self, channel: "ChangeNotificationChannel", owner_id: str, queue_size: int):
        self.channel = channel
        self.owner_id = owner_id
        self._queue: "queue.Queue[ProspectEvent]" = queue.Queue(maxsize=queue_size)
        self._resync = threading.Event()
        self.closed = False

    @property
    def needs_resync(self) -> bool:
        return self._resync.is_set()

    def acknowledge_resync(self) -> None:
        self._resync.clear()

    def _deliver(self, event: ProspectEvent) -> bool:
        try:
            self._queue.put_nowait(event)
            return True
        except queue.Full:
            if not self._resync.is_set():
                logger.warning(f"⚠️ Subscriber queue full for owner {self.owner_id}, "
                               f"flagging for resync")
            self._resync.set()
            self._clear()
            return False

    def _clear(self) -> None:
        while True:
            try:
                self._queue.get_nowait()
            except queue.Empty:
                return

    def get(self, timeout: Optional[float] = None) -> Optional[ProspectEvent]:
        """Next event, or None if nothing arrived within ``timeout`` seconds."""
        try:
            return self._queue.get(timeout=timeout)
        except queue.Empty:
            return None

    def drain(self) -> List[ProspectEvent]:
        """All events currently queued, oldest first."""
        events = []
        while True:
            try:
                events.append(self._queue.get_nowait())
            except queue.Empty:
                return events

    def close(self) -> None:
        if not self.closed:
            self.closed = True
            self.channel.unsubscribe(self)

    def __enter__(self) -> "Subscription":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


class ChangeNotificationChannel:
    """
    In-process, owner-scoped fan-out of prospect change events.

    Writers call publish() after their change is committed. publish() raises
    NotificationError once the channel is closed; writers log it and carry on.
    """

    def __init__(self, queue_size: Optional[int] = None):
        self.queue_size = queue_size or settings.notifications.queue_size
        self._subscribers: Dict[str, List[Subscription]] = {}
        self._last_version: Dict[Tuple[str, str], int] = {}
        self._lock = threading.Lock()
        self._closed = False

    def subscribe(self, owner_id: str) -> Subscription:
        with self._lock:
            if self._closed:
                raise NotificationError("Notification channel is closed")
            subscription = Subscription(self, owner_id, self.queue_size)
            self._subscribers.setdefault(owner_id, []).append(subscription)
        logger.debug(f"📡 New subscriber for owner {owner_id}")
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        with self._lock:
            subscribers = self._subscribers.get(subscription.owner_id, [])
            if subscription in subscribers:
                subscribers.remove(subscription)
            if not subscribers:
                self._subscribers.pop(subscription.owner_id, None)

    def subscriber_count(self, owner_id: str) -> int:
        with self._lock:
            return len(self._subscribers.get(owner_id, []))

    def tracked_count(self) -> int:
        """Prospects whose last published version is held for supersession checks."""
        with self._lock:
            return len(self._last_version)

    def publish(self, event: ProspectEvent) -> int:
        """
        Deliver ``event`` to every subscriber of its owner.

        Returns:
            Number of subscribers the event was queued for (0 if superseded)
        """
        with self._lock:
            if self._closed:
                raise NotificationError("Notification channel is closed")

            key = (event.owner_id, event.prospect_id)
            last = self._last_version.get(key)
            if event.kind is not EventKind.CREATED and last is not None and event.version <= last:
                logger.debug(f"Dropping superseded event for {event.prospect_id} "
                             f"(v{event.version} <= v{last})")
                return 0
            if event.kind is EventKind.DELETED:
                # Subscriber views keep their own tombstones
                self._last_version.pop(key, None)
            else:
                self._last_version[key] = event.version

            delivered = 0
            for subscription in list(self._subscribers.get(event.owner_id, [])):
                if subscription._deliver(event):
                    delivered += 1

        logger.debug(f"📡 {event.kind.value} {event.prospect_id} v{event.version} "
                     f"-> {delivered} subscriber(s)")
        return delivered

    def close(self) -> None:
        with self._lock:
            self._closed = True
            subscriptions = [s for subs in self._subscribers.values() for s in subs]
            self._subscribers.clear()
        for subscription in subscriptions:
            subscription.closed = True
        logger.info("📡 Notification channel closed")

    @property
    def closed(self) -> bool:
        return self._closed


class ProspectView:
    """
    Subscriber-side cache of one owner's prospects.

    Applies events as idempotent snapshots: an event is applied only when its
    version is newer than the one held, so duplicates and late arrivals are
    harmless.
    """

    def __init__(self, owner_id: str):
        self.owner_id = owner_id
        self.prospects: Dict[str, Dict[str, Any]] = {}
        self.versions: Dict[str, int] = {}
        self._deleted: Dict[str, int] = {}

    def load(self, prospects: Iterable[Prospect]) -> None:
        """Full re-fetch: replace everything held."""
        self.prospects = {}
        self.versions = {}
        self._deleted = {}
        for prospect in prospects:
            if prospect.owner_id != self.owner_id:
                continue
            self.prospects[prospect.id] = prospect.to_row()
            self.versions[prospect.id] = prospect.version

    def apply(self, event: ProspectEvent) -> bool:
        """Apply ``event`` if it is newer than the held state. Returns True if applied."""
        if event.owner_id != self.owner_id:
            return False

        held = self.versions.get(event.prospect_id, self._deleted.get(event.prospect_id))
        recreated = event.kind is EventKind.CREATED and event.prospect_id in self._deleted
        if held is not None and event.version <= held and not recreated:
            return False

        if event.kind is EventKind.DELETED:
            self.prospects.pop(event.prospect_id, None)
            self.versions.pop(event.prospect_id, None)
            self._deleted[event.prospect_id] = event.version
        else:
            self.prospects[event.prospect_id] = dict(event.new_state or {})
            self.versions[event.prospect_id] = event.version
            self._deleted.pop(event.prospect_id, None)
        return True

    def status_of(self, prospect_id: str) -> Optional[str]:
        state = self.prospects.get(prospect_id)
        return state.get("outreach_status") if state else None

import asyncio
import json
import logging
import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Dict, List, Tuple

from ..api.models import SessionEvent, SessionSnapshot, SessionStatus, status_payload

logger = logging.getLogger(__name__)

EVENTS_CHANNEL = "events:session"
EVENTS_HISTORY_KEY = "session:events"
EVENTS_HISTORY_LIMIT = 1000

Delivery = Tuple[str, Any]


@dataclass(eq=False)
class Observer:
    """One connected realtime client."""

    queue: asyncio.Queue
    observer_id: str = field(default_factory=lambda: str(uuid.uuid4()))

    async def next_event(self) -> Delivery:
        return await self.queue.get()


class EventBroadcaster:
    def __init__(self, queue_size: int = 100, redis_client=None):
        """
        Initialize broadcaster.

        Args:
            queue_size: Per-observer buffer; a full observer misses events
            redis_client: Optional async Redis client for the monitoring mirror
        """
        self.queue_size = queue_size
        self.redis = redis_client
        self._observers: Dict[str, Observer] = {}

    @property
    def observer_count(self) -> int:
        return len(self._observers)

    def join(self, snapshot: SessionSnapshot) -> Observer:
        """
        Register an observer and replay current state to it.

        Replay order: status first, then the pending QR, then the pending
        pairing code. Nothing here awaits, so no live event can slip in
        between registration and replay.
        """
        observer = Observer(queue=asyncio.Queue(maxsize=self.queue_size))
        self._observers[observer.observer_id] = observer

        user = snapshot.user if snapshot.status == SessionStatus.CONNECTED else None
        self._deliver(observer, SessionEvent.STATUS, status_payload(snapshot.status, user=user))
        if snapshot.qr:
            self._deliver(observer, SessionEvent.QR, snapshot.qr)
        if snapshot.code:
            self._deliver(observer, SessionEvent.PAIRING_CODE, snapshot.code)

        logger.info(f"Observer {observer.observer_id} joined ({self.observer_count} connected)")
        return observer

    def leave(self, observer: Observer) -> None:
        if self._observers.pop(observer.observer_id, None) is not None:
            logger.info(f"Observer {observer.observer_id} left ({self.observer_count} connected)")

    async def broadcast(self, event: SessionEvent, payload: Any) -> None:
        """Fan an event out to every observer. No acknowledgement, no retry."""
        for observer in list(self._observers.values()):
            self._deliver(observer, event, payload)

        if self.redis is not None:
            await self._mirror(event, payload)

    def _deliver(self, observer: Observer, event: SessionEvent, payload: Any) -> None:
        try:
            observer.queue.put_nowait((event.value, payload))
        except asyncio.QueueFull:
            logger.warning(f"Observer {observer.observer_id} is lagging, dropped {event.value}")

    async def _mirror(self, event: SessionEvent, payload: Any) -> None:
        """Publish event for monitoring"""
        record = json.dumps(
            {"type": event.value, "timestamp": datetime.now(UTC).isoformat(), "data": payload}
        )
        try:
            await self.redis.publish(EVENTS_CHANNEL, record)
            await self.redis.lpush(EVENTS_HISTORY_KEY, record)
            await self.redis.ltrim(EVENTS_HISTORY_KEY, 0, EVENTS_HISTORY_LIMIT - 1)
        except Exception as e:
            logger.warning(f"Failed to mirror {event.value} to Redis: {e}")

    async def recent_events(self, limit: int = 50) -> List[Dict[str, Any]]:
        """Most recent mirrored events, newest first. Empty without Redis."""
        if self.redis is None:
            return []
        raw = await self.redis.lrange(EVENTS_HISTORY_KEY, 0, limit - 1)
        return [json.loads(item) for item in raw]

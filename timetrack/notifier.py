import asyncio
import threading
from collections import defaultdict
from datetime import datetime, timezone
from typing import Any, Protocol

from .logging import get_logger

logger = get_logger(__name__)

QUEUE_MAXSIZE = 256


def room_for(user_id: str) -> str:
    return f"user-{user_id}"


class Notifier(Protocol):
    def publish(self, room: str, event: str, payload: dict[str, Any]) -> None: ...


class NullNotifier:
    """Drops every event."""

    def publish(self, room: str, event: str, payload: dict[str, Any]) -> None:
        return None


class EventBroker:
    """Fans events out to the SSE connections joined to each room.

    ``publish`` is called from FastAPI's worker threads, so delivery is handed
    to each subscriber's event loop with ``call_soon_threadsafe``.
    """

    def __init__(self, queue_maxsize: int = QUEUE_MAXSIZE):
        self.queue_maxsize = queue_maxsize
        self._rooms: dict[str, dict[asyncio.Queue, asyncio.AbstractEventLoop]] = defaultdict(dict)
        self._lock = threading.Lock()

    async def connect(self, room: str) -> asyncio.Queue:
        queue: asyncio.Queue = asyncio.Queue(maxsize=self.queue_maxsize)
        with self._lock:
            self._rooms[room][queue] = asyncio.get_running_loop()
        logger.info(f"Event stream joined {room}")
        return queue

    def disconnect(self, room: str, queue: asyncio.Queue) -> None:
        with self._lock:
            subscribers = self._rooms.get(room)
            if subscribers is not None:
                subscribers.pop(queue, None)
                if not subscribers:
                    del self._rooms[room]
        logger.info(f"Event stream left {room}")

    def publish(self, room: str, event: str, payload: dict[str, Any]) -> None:
        message = {
            "type": event,
            "data": payload,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
        with self._lock:
            subscribers = list(self._rooms.get(room, {}).items())

        dead = []
        for queue, loop in subscribers:
            try:
                loop.call_soon_threadsafe(self._deliver, room, queue, message)
            except RuntimeError:
                # Subscriber's loop is closed.
                dead.append(queue)

        for queue in dead:
            self.disconnect(room, queue)

    def _deliver(self, room: str, queue: asyncio.Queue, message: dict[str, Any]) -> None:
        try:
            queue.put_nowait(message)
        except asyncio.QueueFull:
            logger.warning(f"Dropping {message['type']} for {room}: subscriber queue full")

    def connection_count(self, room: str) -> int:
        with self._lock:
            return len(self._rooms.get(room, {}))

    def total_connections(self) -> int:
        with self._lock:
            return sum(len(subscribers) for subscribers in self._rooms.values())


broker = EventBroker()


def get_notifier() -> Notifier:
    return broker


def notify(
    notifier: Notifier,
    user_id: str,
    resource: str,
    action: str,
    payload: dict[str, Any],
) -> None:
    """Publish ``{resource}-{action}`` to the user's room without ever raising."""
    event = f"{resource}-{action}"
    try:
        notifier.publish(room_for(user_id), event, payload)
    except Exception:
        logger.exception(f"Failed to publish {event} for user {user_id}")

from fastapi import WebSocket
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional, Set
import asyncio
import json
import logging

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from ..core.config import settings
from ..models.queue_entry import QueueEntry
from ..schemas.queue import QueueEventMessage, StatusSnapshot

logger = logging.getLogger(__name__)

class QueueEvent(str, Enum):
    ENTRY_CREATED = "entry-created"
    ENTRY_CALLED = "entry-called"
    ENTRY_COMPLETED = "entry-completed"
    ENTRY_CANCELLED = "entry-cancelled"
    QUEUE_UPDATE = "queue-update"

def entry_event_data(entry: QueueEntry) -> Dict[str, Any]:
    """Advisory payload; subscribers re-fetch the status snapshot on receipt."""
    return {
        "entryId": entry.id,
        "ticketNumber": entry.ticket_number,
        "patientDisplayName": entry.patient_display_name,
    }

class EventBroadcaster:
    """Best-effort fan-out of queue changes to connected websocket clients.

    With the ``redis`` backend every process publishes to one pub/sub channel
    and relays what it hears to its own sockets. Nothing is persisted or
    replayed: a client that misses a message catches up on its next poll.
    """

    def __init__(
        self,
        use_redis: bool = False,
        redis_url: str = None,
        channel: str = None,
        send_timeout: float = 2.0,
        retry_delay: float = None,
    ):
        self.use_redis = use_redis
        self.redis_url = redis_url
        self.channel = channel
        self.send_timeout = send_timeout
        self.retry_delay = settings.STATUS_POLL_INTERVAL_SECONDS if retry_delay is None else retry_delay
        self._clients: Set[WebSocket] = set()
        self._redis = None
        self._pubsub = None
        self._listener: Optional[asyncio.Task] = None

    @property
    def subscriber_count(self) -> int:
        return len(self._clients)

    async def start(self):
        if not self.use_redis or self._listener is not None:
            return
        self._redis = aioredis.from_url(self.redis_url, decode_responses=True)
        self._pubsub = self._redis.pubsub()
        await self._pubsub.subscribe(self.channel)
        self._listener = asyncio.create_task(self._relay())
        logger.info(f"Relaying queue events through Redis channel '{self.channel}'")

    async def stop(self):
        if self._listener is not None:
            self._listener.cancel()
            try:
                await self._listener
            except asyncio.CancelledError:
                pass
            self._listener = None
        if self._pubsub is not None:
            await self._pubsub.aclose()
            self._pubsub = None
        if self._redis is not None:
            await self._redis.aclose()
            self._redis = None

    async def connect(self, websocket: WebSocket):
        await websocket.accept()
        self._clients.add(websocket)
        logger.info(f"Queue subscriber connected ({self.subscriber_count} total)")

    def disconnect(self, websocket: WebSocket):
        self._clients.discard(websocket)
        logger.info(f"Queue subscriber disconnected ({self.subscriber_count} total)")

    async def publish(self, event: QueueEvent, data: Dict[str, Any] = None):
        """Announce a committed mutation. Never raises."""
        message = QueueEventMessage(
            event=event.value,
            data=data or {},
            timestamp=datetime.utcnow(),
        ).model_dump(mode="json", by_alias=True)

        if self._redis is not None:
            try:
                await self._redis.publish(self.channel, json.dumps(message))
                return
            except RedisError as e:
                logger.warning(f"Redis publish of '{event.value}' failed, delivering locally: {e}")

        await self.deliver(message)

    async def announce(self, event: QueueEvent, entry: QueueEntry, snapshot: StatusSnapshot):
        """Publish a mutation event followed by the status it produced."""
        await self.publish(event, entry_event_data(entry))
        await self.publish(
            QueueEvent.QUEUE_UPDATE,
            snapshot.model_dump(mode="json", by_alias=True),
        )

    async def deliver(self, message: Dict[str, Any]):
        """Send ``message`` to every local subscriber, dropping dead or slow sockets."""
        if not self._clients:
            return
        results = await asyncio.gather(
            *(self._send(websocket, message) for websocket in list(self._clients))
        )
        for websocket, delivered in results:
            if not delivered:
                self._clients.discard(websocket)

    async def _send(self, websocket: WebSocket, message: Dict[str, Any]):
        try:
            await asyncio.wait_for(websocket.send_json(message), timeout=self.send_timeout)
            return websocket, True
        except asyncio.TimeoutError:
            logger.warning(f"Dropping queue subscriber after {self.send_timeout}s send timeout")
        except Exception as e:
            logger.debug(f"Dropping queue subscriber after send failure: {e}")
        return websocket, False

    async def _relay(self):
        while True:
            try:
                async for item in self._pubsub.listen():
                    if item.get("type") != "message":
                        continue
                    await self.deliver(json.loads(item["data"]))
                logger.warning(f"Redis channel '{self.channel}' stopped listening")
            except asyncio.CancelledError:
                raise
            except RedisError as e:
                logger.error(f"Redis relay interrupted: {e}")

            await asyncio.sleep(self.retry_delay)
            try:
                await self._pubsub.subscribe(self.channel)
                logger.info(f"Resubscribed to Redis channel '{self.channel}'")
            except RedisError as e:
                logger.error(f"Resubscribing to '{self.channel}' failed: {e}")

broadcaster = EventBroadcaster(
    use_redis=settings.use_redis_broadcast,
    redis_url=settings.REDIS_URL,
    channel=settings.BROADCAST_CHANNEL,
    send_timeout=settings.BROADCAST_SEND_TIMEOUT_SECONDS,
)

"""Best-effort fan-out of stream messages to subscribers."""

import asyncio
from typing import Iterable, List, Optional, Set

from .logging_config import get_logger
from .schemas import StreamMessage, StreamMessageType

logger = get_logger(__name__)

_CLOSED = object()


class Subscription:
    """One subscriber's bounded queue. Iterate with ``async for``."""

    def __init__(
        self,
        bus: "EventBus",
        maxsize: int,
        tourist_id: Optional[str] = None,
        types: Optional[Iterable[StreamMessageType]] = None,
    ):
        self._bus = bus
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)
        self.tourist_id = tourist_id
        self.types: Optional[Set[StreamMessageType]] = set(types) if types else None
        self.dropped = 0
        self.closed = False

    def wants(self, message: StreamMessage) -> bool:
        if self.tourist_id is not None and message.tourist_id != self.tourist_id:
            return False
        if self.types is not None and message.type not in self.types:
            return False
        return True

    def _offer(self, item) -> bool:
        """Enqueue without blocking; returns False when the oldest item was dropped."""
        dropped = False
        if self._queue.full():
            self._queue.get_nowait()
            self.dropped += 1
            dropped = True
        self._queue.put_nowait(item)
        return not dropped

    async def get(self, timeout: Optional[float] = None) -> Optional[StreamMessage]:
        """Next message, or None once the subscription is closed and drained."""
        item = await asyncio.wait_for(self._queue.get(), timeout) if timeout else await self._queue.get()
        if item is _CLOSED:
            return None
        return item

    def get_nowait(self) -> Optional[StreamMessage]:
        try:
            item = self._queue.get_nowait()
        except asyncio.QueueEmpty:
            return None
        return None if item is _CLOSED else item

    def drain(self) -> List[StreamMessage]:
        """Everything buffered right now."""
        messages = []
        while True:
            try:
                item = self._queue.get_nowait()
            except asyncio.QueueEmpty:
                return messages
            if item is not _CLOSED:
                messages.append(item)

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        self._bus.unsubscribe(self)
        self._offer(_CLOSED)

    def qsize(self) -> int:
        return self._queue.qsize()

    def __aiter__(self):
        return self

    async def __anext__(self) -> StreamMessage:
        message = await self.get()
        if message is None:
            raise StopAsyncIteration
        return message

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        self.close()


class EventBus:
    """Fans messages out to zero or many subscribers without ever blocking."""

    def __init__(self, subscriber_queue_size: int = 1000):
        self.subscriber_queue_size = subscriber_queue_size
        self._subscriptions: List[Subscription] = []

    def subscribe(
        self,
        tourist_id: Optional[str] = None,
        types: Optional[Iterable[StreamMessageType]] = None,
        maxsize: Optional[int] = None,
    ) -> Subscription:
        subscription = Subscription(self, maxsize or self.subscriber_queue_size, tourist_id, types)
        self._subscriptions.append(subscription)
        logger.debug("subscriber_added", total=len(self._subscriptions))
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        if subscription in self._subscriptions:
            self._subscriptions.remove(subscription)
            logger.debug("subscriber_removed", total=len(self._subscriptions))

    @property
    def subscriber_count(self) -> int:
        return len(self._subscriptions)

    def publish(self, message: StreamMessage) -> int:
        """Deliver to every interested subscriber; returns the delivery count."""
        delivered = 0
        for subscription in self._subscriptions.copy():
            if not subscription.wants(message):
                continue
            if not subscription._offer(message):
                logger.warning(
                    "subscriber_queue_overflow",
                    tourist_id=message.tourist_id,
                    message_type=message.type.value,
                    dropped=subscription.dropped,
                )
            delivered += 1
        return delivered

    def close(self) -> None:
        for subscription in self._subscriptions.copy():
            subscription.close()

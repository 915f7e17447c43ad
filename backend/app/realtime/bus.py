"""
bus.py — Real-time fan-out of committed alert events.

═══════════════════════════════════════════════════════════════════════════
DELIVERY MODEL
═══════════════════════════════════════════════════════════════════════════

    publish(event) ──┬──▶ [queue A] ──pump A──▶ observer A (socket A)
                     ├──▶ [queue B] ──pump B──▶ observer B (socket B)
                     └──▶ [queue C] ──pump C──▶ observer C (socket C)

• ``publish`` never awaits a subscriber. It only ``put_nowait``s into each
  subscriber's bounded queue, so the write path that committed the change
  is never held up by a slow client.
• One pump task per subscriber delivers events in publish order.
• A subscriber whose queue is full, or whose observer raises, is dropped
  (unsubscribed and its ``on_drop`` callback fired). Other subscribers are
  unaffected.
• No replay: a subscriber sees only events published after it subscribed.

Lifecycle mirrors the job runners: ``start()`` at application startup,
``stop()`` at shutdown (cancels every pump).
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import uuid
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set

from backend.app.core.config import settings
from backend.app.realtime.events import AlertEvent

logger = logging.getLogger(__name__)

Observer = Callable[[AlertEvent], Awaitable[None]]
DropCallback = Callable[["Subscription"], Any]


@dataclass(eq=False)
class Subscription:
    """Handle returned by ``FanOutBus.subscribe``."""
    id: str
    label: str
    observer: Observer
    queue: asyncio.Queue
    on_drop: Optional[DropCallback] = None
    task: Optional[asyncio.Task] = None
    delivered: int = 0
    active: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "label": self.label,
            "delivered": self.delivered,
            "queued": self.queue.qsize(),
            "active": self.active,
        }


class FanOutBus:
    """
    Broadcasts each published ``AlertEvent`` to every live subscriber.

    Usage:
        bus = FanOutBus()
        await bus.start()

        async def send(event):
            await websocket.send_json(event.to_message())

        sub = bus.subscribe(send, label="ws:user-1")
        bus.publish(AlertEvent.created(alert))
        ...
        bus.unsubscribe(sub)
        await bus.stop()
    """

    def __init__(self, queue_size: Optional[int] = None):
        self.queue_size = queue_size or settings.FANOUT_QUEUE_SIZE
        self._subscriptions: Dict[str, Subscription] = {}
        self._callbacks: Set[asyncio.Task] = set()
        self._running = False
        self.published = 0
        self.dropped = 0

    # ── lifecycle ──

    @property
    def running(self) -> bool:
        return self._running

    async def start(self) -> None:
        if self._running:
            return
        self._running = True
        logger.info("Fan-out bus started (queue_size=%d)", self.queue_size)

    async def stop(self) -> None:
        if not self._running:
            return
        self._running = False

        tasks: List[asyncio.Task] = []
        for sub in list(self._subscriptions.values()):
            if sub.task is not None:
                tasks.append(sub.task)
            self.unsubscribe(sub)
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        if self._callbacks:
            await asyncio.gather(*self._callbacks, return_exceptions=True)

        logger.info(
            "Fan-out bus stopped (published=%d, dropped=%d)",
            self.published, self.dropped,
        )

    # ── subscriptions ──

    @property
    def subscriber_count(self) -> int:
        return len(self._subscriptions)

    def subscriptions(self) -> List[Subscription]:
        return list(self._subscriptions.values())

    def subscribe(
        self,
        observer: Observer,
        *,
        label: Optional[str] = None,
        on_drop: Optional[DropCallback] = None,
    ) -> Subscription:
        """
        Register ``observer`` for every event published from now on.

        Must be called from inside the running event loop.
        """
        if not self._running:
            raise RuntimeError("Fan-out bus is not running")

        sub_id = uuid.uuid4().hex[:8]
        sub = Subscription(
            id=sub_id,
            label=label or sub_id,
            observer=observer,
            queue=asyncio.Queue(maxsize=self.queue_size),
            on_drop=on_drop,
        )
        sub.task = asyncio.create_task(self._pump(sub), name=f"fanout-{sub_id}")
        self._subscriptions[sub_id] = sub

        logger.info(
            "Subscriber %s joined (%s)", sub_id, sub.label,
            extra={"subscription_id": sub_id, "subscriber_count": self.subscriber_count},
        )
        return sub

    def unsubscribe(self, sub: Subscription) -> None:
        """Remove a subscription. Safe to call more than once."""
        if self._subscriptions.pop(sub.id, None) is None:
            return
        sub.active = False
        if sub.task is not None and sub.task is not asyncio.current_task():
            sub.task.cancel()
        self._discard_queued(sub)

        logger.info(
            "Subscriber %s left (%s)", sub.id, sub.label,
            extra={"subscription_id": sub.id, "subscriber_count": self.subscriber_count},
        )

    # ── publishing ──

    def publish(self, event: AlertEvent) -> int:
        """
        Enqueue ``event`` for every live subscriber without waiting.

        Returns the number of subscribers the event was queued for.
        """
        if not self._running:
            logger.debug("Bus not running; %s event for %s not published",
                         event.kind.value, event.alert_id)
            return 0

        self.published += 1
        queued = 0
        for sub in list(self._subscriptions.values()):
            try:
                sub.queue.put_nowait(event)
                queued += 1
            except asyncio.QueueFull:
                self._drop(sub, "queue full")

        logger.debug(
            "Published %s for %s to %d subscriber(s)",
            event.kind.value, event.alert_id, queued,
            extra={"event": event.kind.value, "alert_id": event.alert_id,
                   "subscriber_count": queued},
        )
        return queued

    async def flush(self) -> None:
        """Wait until every live subscriber has processed its queued events."""
        for sub in list(self._subscriptions.values()):
            await sub.queue.join()

    # ── internals ──

    async def _pump(self, sub: Subscription) -> None:
        while True:
            event = await sub.queue.get()
            try:
                await sub.observer(event)
                sub.delivered += 1
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                self._drop(sub, f"observer failed: {exc!r}")
                return
            finally:
                sub.queue.task_done()

    def _drop(self, sub: Subscription, reason: str) -> None:
        if not sub.active:
            return
        self.dropped += 1
        logger.warning(
            "Dropping subscriber %s (%s): %s", sub.id, sub.label, reason,
            extra={"subscription_id": sub.id},
        )
        self.unsubscribe(sub)

        if sub.on_drop is None:
            return
        try:
            result = sub.on_drop(sub)
        except Exception:
            logger.exception("on_drop callback for subscriber %s failed", sub.id)
            return
        if inspect.isawaitable(result):
            task = asyncio.ensure_future(result)
            self._callbacks.add(task)
            task.add_done_callback(self._callback_done)

    def _callback_done(self, task: asyncio.Task) -> None:
        self._callbacks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.warning("on_drop callback failed: %r", task.exception())

    @staticmethod
    def _discard_queued(sub: Subscription) -> None:
        while True:
            try:
                sub.queue.get_nowait()
            except asyncio.QueueEmpty:
                return
            sub.queue.task_done()

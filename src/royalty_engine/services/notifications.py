"""Recipient notifications for completed payouts.

Notifications are decoupled from the payment path through a queue:
- the dispatcher subscribes to ``PayoutCompleted`` events, which the
  orchestrator publishes only after the transaction record is terminal
- a single worker task drains the queue and hands each notification to a
  ``Notifier``
- delivery failures are logged and dropped; nothing is retried and the
  record is never touched
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Protocol

from royalty_engine.config import NotificationConfig
from royalty_engine.errors import NotificationFailure
from royalty_engine.events import AsyncEventEmitter, DomainEvent, PayoutCompleted

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Notification:
    """A message telling one recipient they were paid."""

    transaction_id: str
    work_id: str
    recipient_id: str | None
    recipient_name: str
    amount: Decimal
    currency: str
    external_reference: str | None

    @classmethod
    def from_event(cls, event: PayoutCompleted) -> Notification:
        return cls(
            transaction_id=event.transaction_id,
            work_id=event.work_id,
            recipient_id=event.recipient_id,
            recipient_name=event.recipient_name,
            amount=event.amount,
            currency=event.currency,
            external_reference=event.external_reference,
        )

    @property
    def message(self) -> str:
        return (
            f"You received {self.amount} {self.currency} in royalties "
            f"for work {self.work_id} (ref {self.external_reference})"
        )


class Notifier(Protocol):
    """Delivery channel (email, push, webhook)."""

    async def send(self, notification: Notification) -> None:
        """Deliver one notification. Raise NotificationFailure on failure."""
        ...


class LoggingNotifier:
    """Notifier that writes each notification to the log and keeps nothing."""

    async def send(self, notification: Notification) -> None:
        logger.info(
            "Notify %s: %s",
            notification.recipient_id or notification.recipient_name,
            notification.message,
        )


class NotificationDispatcher:
    """Queue-backed fan-out of payout notifications.

    Usage:
        dispatcher = NotificationDispatcher(LoggingNotifier())
        dispatcher.subscribe(emitter)
        await dispatcher.start()
        ...
        await dispatcher.stop()
    """

    def __init__(
        self,
        notifier: Notifier | None = None,
        config: NotificationConfig | None = None,
    ):
        self.notifier = notifier or LoggingNotifier()
        self.config = config or NotificationConfig()
        self._queue: asyncio.Queue[Notification] = asyncio.Queue(maxsize=self.config.queue_size)
        self._worker: asyncio.Task[None] | None = None
        self.delivered = 0
        self.failed = 0
        self.dropped = 0

    def subscribe(self, emitter: AsyncEventEmitter) -> None:
        emitter.on_nowait(PayoutCompleted, self.enqueue)

    def enqueue(self, event: DomainEvent) -> None:
        """Queue a notification for a PayoutCompleted event. Never blocks.

        Zero-amount lines (0% shares, tiny totals) are not notified.
        """
        if not self.config.enabled or not isinstance(event, PayoutCompleted):
            return
        if not event.amount:
            return
        try:
            self._queue.put_nowait(Notification.from_event(event))
        except asyncio.QueueFull:
            self.dropped += 1
            logger.warning(
                "Notification queue full; dropped notification for %s on %s",
                event.recipient_name,
                event.transaction_id,
            )

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    @property
    def running(self) -> bool:
        return self._worker is not None and not self._worker.done()

    async def start(self) -> None:
        if not self.running:
            self._worker = asyncio.create_task(self._run(), name="notification-dispatcher")

    async def join(self) -> None:
        """Wait until every queued notification has been handled."""
        await self._queue.join()

    async def stop(self) -> None:
        """Deliver what is queued, then stop the worker."""
        if self._worker is None:
            return
        await self._queue.join()
        self._worker.cancel()
        try:
            await self._worker
        except asyncio.CancelledError:
            pass
        self._worker = None

    async def _run(self) -> None:
        while True:
            notification = await self._queue.get()
            try:
                await self._deliver(notification)
            finally:
                self._queue.task_done()

    async def _deliver(self, notification: Notification) -> None:
        try:
            await self.notifier.send(notification)
        except NotificationFailure as e:
            self.failed += 1
            logger.warning(
                "Notification to %s for %s failed: %s",
                notification.recipient_name,
                notification.transaction_id,
                e,
            )
        except Exception:
            self.failed += 1
            logger.exception(
                "Notifier %s crashed delivering to %s for %s",
                self.notifier,
                notification.recipient_name,
                notification.transaction_id,
            )
        else:
            self.delivered += 1

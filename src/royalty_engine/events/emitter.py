"""Publishing of disbursement events.

The orchestrator emits each event once, after the record it describes is
stored. Subscribers come in two kinds:

- listeners (``on``): coroutines awaited one after another in registration
  order, so a consumer sees a transaction's events in the order they
  happened
- hand-offs (``on_nowait``): plain callables run inline; they must only
  queue work (the notification dispatcher is one)

Subscriptions match by ``isinstance``; subscribing to ``DomainEvent``
receives everything. A failing subscriber is logged and reported in the
return value of ``emit``; it never raises into the orchestrator and never
stops later subscribers.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Awaitable, Callable, Union

from royalty_engine.events.types import DomainEvent

logger = logging.getLogger(__name__)

Listener = Callable[[DomainEvent], Awaitable[None]]
HandOff = Callable[[DomainEvent], None]
EventTypes = Union[type[DomainEvent], tuple[type[DomainEvent], ...]]


@dataclass(frozen=True)
class _Subscription:
    event_types: EventTypes
    handler: Listener | HandOff
    awaited: bool


class AsyncEventEmitter:
    """Fan-out of disbursement events to in-process subscribers.

    Usage:
        emitter = AsyncEventEmitter()
        emitter.on(DisbursementFinished, audit_listener)
        emitter.on_nowait(PayoutCompleted, dispatcher.enqueue)
        await emitter.emit(event)
    """

    def __init__(self) -> None:
        self._subscriptions: list[_Subscription] = []

    def on(self, event_types: EventTypes, listener: Listener) -> None:
        """Await ``listener`` for every matching event."""
        self._subscriptions.append(_Subscription(event_types, listener, awaited=True))

    def on_nowait(self, event_types: EventTypes, handler: HandOff) -> None:
        """Call ``handler`` inline for every matching event. Must not block."""
        self._subscriptions.append(_Subscription(event_types, handler, awaited=False))

    async def emit(self, event: DomainEvent) -> list[Exception]:
        """Deliver ``event`` to every matching subscriber.

        Returns the exceptions raised by subscribers, if any.
        """
        errors: list[Exception] = []
        for sub in self._subscriptions:
            if not isinstance(event, sub.event_types):
                continue
            try:
                if sub.awaited:
                    await sub.handler(event)  # type: ignore[misc]
                else:
                    sub.handler(event)
            except Exception as e:
                logger.exception(
                    "Subscriber %r failed for %s on %s",
                    sub.handler,
                    event.event_type,
                    event.metadata.correlation_id,
                )
                errors.append(e)
        return errors

"""Shared mechanics for simulated payment rails.

Stub ports never move money. They resolve a payout destination, optionally
sleep to mimic network latency, and record each payout in memory so tests
and local runs can inspect what would have been sent.
"""

from __future__ import annotations

import asyncio
import datetime
import logging
import uuid
from decimal import Decimal
from typing import Any

from royalty_engine.calculators.types import PaymentRail
from royalty_engine.ports.base import (
    ExecutionResult,
    InMemoryPayoutProfileStore,
    PayoutProfileStore,
    PayoutRecipient,
)

logger = logging.getLogger(__name__)


class SimulatedRailPort:
    """Base class for stub rails.

    Subclasses set ``rail``/``port_name`` and build rail-specific references.
    """

    rail: PaymentRail
    port_name: str

    def __init__(
        self,
        profiles: PayoutProfileStore | None = None,
        latency_seconds: float = 0.0,
    ):
        """Initialize stub port.

        Args:
            profiles: Payout profile lookup. Defaults to an empty store, so
                every recipient fails until a destination is registered.
            latency_seconds: Artificial delay before each payout resolves.
        """
        self.profiles = profiles if profiles is not None else InMemoryPayoutProfileStore()
        self.latency_seconds = latency_seconds
        self.outage = False
        self._failures: dict[str, str] = {}
        # Keyed by idempotency key
        self._payouts: dict[str, dict[str, Any]] = {}

    @property
    def payouts(self) -> list[dict[str, Any]]:
        """Successful payouts, in submission order."""
        return [p for p in self._payouts.values() if p["status"] == "paid"]

    @property
    def call_count(self) -> int:
        return len(self._payouts)

    def simulate_outage(self, down: bool = True) -> None:
        """Make every subsequent payout fail as if the rail were unreachable."""
        self.outage = down

    def simulate_failure(self, recipient_key: str, reason: str = "Payout rejected") -> None:
        """Fail payouts for a recipient, matched by recipient_id or name."""
        self._failures[recipient_key] = reason

    def clear_failure(self, recipient_key: str) -> None:
        self._failures.pop(recipient_key, None)

    def _make_reference(self, destination: str, idempotency_key: str) -> str:
        raise NotImplementedError

    async def execute(
        self,
        *,
        recipient: PayoutRecipient,
        amount: Decimal,
        currency: str,
        metadata: dict[str, Any],
    ) -> ExecutionResult:
        """Execute payout (stub implementation)."""
        idempotency_key = str(metadata.get("idempotency_key", ""))
        previous = self._payouts.get(idempotency_key) if idempotency_key else None
        if previous is not None and previous["status"] == "paid":
            return ExecutionResult.success(previous["reference"])

        if self.latency_seconds:
            await asyncio.sleep(self.latency_seconds)

        if not idempotency_key:
            idempotency_key = uuid.uuid4().hex
        result = await self._attempt(recipient, idempotency_key)
        self._payouts[idempotency_key] = {
            "recipient": recipient,
            "amount": amount,
            "currency": currency,
            "metadata": dict(metadata),
            "status": "paid" if result.succeeded else "failed",
            "reference": result.external_reference,
            "error": result.error,
            "at": datetime.datetime.now(datetime.timezone.utc),
        }
        logger.debug(
            "%s payout %s %s to %s: %s",
            self.port_name,
            amount,
            currency,
            recipient.recipient_name,
            result.outcome.value,
        )
        return result

    async def _attempt(self, recipient: PayoutRecipient, idempotency_key: str) -> ExecutionResult:
        if self.outage:
            return ExecutionResult.failure(f"{self.port_name} rail unavailable")

        for key in (recipient.recipient_id, recipient.recipient_name):
            if key and key in self._failures:
                return ExecutionResult.failure(self._failures[key])

        if not recipient.recipient_id:
            return ExecutionResult.failure(
                f"{recipient.recipient_name} is not a registered payee; no payout destination"
            )

        destination = await self.profiles.resolve(recipient.recipient_id, self.rail)
        if not destination:
            return ExecutionResult.failure(
                f"No {self.rail.value} payout destination configured for {recipient.recipient_id}"
            )

        return ExecutionResult.success(self._make_reference(destination, idempotency_key))


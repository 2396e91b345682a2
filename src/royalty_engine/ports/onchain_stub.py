"""On-chain settlement stub for local development and testing.

Produces deterministic pseudo transaction hashes. It models no gas,
confirmations or finality; a real adapter owns those concerns entirely.
"""

from __future__ import annotations

import hashlib

from royalty_engine.calculators.types import PaymentRail
from royalty_engine.ports.base import PayoutProfileStore
from royalty_engine.ports.simulated import SimulatedRailPort


class OnChainStubPort(SimulatedRailPort):
    """Stub on-chain transfer rail."""

    rail = PaymentRail.ON_CHAIN
    port_name = "onchain_stub"

    def __init__(
        self,
        profiles: PayoutProfileStore | None = None,
        latency_seconds: float = 0.0,
        network: str = "polygon",
    ):
        super().__init__(profiles=profiles, latency_seconds=latency_seconds)
        self.network = network

    def _make_reference(self, destination: str, idempotency_key: str) -> str:
        payload = f"{self.network}:{destination}:{idempotency_key}".encode()
        return "0x" + hashlib.sha256(payload).hexdigest()

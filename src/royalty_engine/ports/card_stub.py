"""Card processor payout stub for local development and testing.

Replace with a real processor adapter (connected-account transfers) for
production.
"""

from __future__ import annotations

import hashlib

from royalty_engine.calculators.types import PaymentRail
from royalty_engine.ports.simulated import SimulatedRailPort


class CardPayoutStubPort(SimulatedRailPort):
    """Stub card payout rail.

    In production, this would:
    - Look up the recipient's connected payout account
    - Create a transfer with the line's idempotency key
    - Map processor decline codes to failure reasons
    """

    rail = PaymentRail.CARD
    port_name = "card_stub"

    def _make_reference(self, destination: str, idempotency_key: str) -> str:
        digest = hashlib.sha256(f"{destination}:{idempotency_key}".encode()).hexdigest()
        return f"CARDSTUB-{digest[:16].upper()}"

"""Pytest fixtures for royalty engine tests."""

from __future__ import annotations

from collections.abc import AsyncGenerator, Callable
from decimal import Decimal
from uuid import uuid4

import pytest
import pytest_asyncio

from royalty_engine.calculators.types import (
    PaymentRail,
    PurchaseEvent,
    RecipientRole,
    SplitLedger,
    SplitShare,
)
from royalty_engine.config import EngineConfig, ExecutionConfig
from royalty_engine.ports import CardPayoutStubPort, InMemoryPayoutProfileStore, OnChainStubPort
from royalty_engine.services import Notification, RoyaltyEngine

# Registered recipients used across tests
ARTIST_ID = "rcp-artist"
PRODUCER_ID = "rcp-producer"
WRITER_ID = "rcp-writer"


@pytest.fixture
def profiles() -> InMemoryPayoutProfileStore:
    """Payout profiles for the registered recipients on both rails."""
    store = InMemoryPayoutProfileStore()
    for recipient_id in (ARTIST_ID, PRODUCER_ID, WRITER_ID):
        store.register(recipient_id, PaymentRail.CARD, f"acct_{recipient_id}")
        store.register(recipient_id, PaymentRail.ON_CHAIN, f"0xwallet_{recipient_id}")
    return store


@pytest.fixture
def card_port(profiles: InMemoryPayoutProfileStore) -> CardPayoutStubPort:
    return CardPayoutStubPort(profiles)


@pytest.fixture
def onchain_port(profiles: InMemoryPayoutProfileStore) -> OnChainStubPort:
    return OnChainStubPort(profiles)


class RecordingNotifier:
    """Notifier that keeps every notification it is handed."""

    def __init__(self) -> None:
        self.sent: list[Notification] = []

    async def send(self, notification: Notification) -> None:
        self.sent.append(notification)


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def engine_config() -> EngineConfig:
    return EngineConfig(execution=ExecutionConfig(port_timeout_seconds=1.0))


@pytest_asyncio.fixture
async def engine(
    card_port: CardPayoutStubPort,
    onchain_port: OnChainStubPort,
    engine_config: EngineConfig,
    notifier: RecordingNotifier,
) -> AsyncGenerator[RoyaltyEngine, None]:
    """In-memory engine with stub rails, started and stopped per test."""
    engine = RoyaltyEngine.in_memory(
        ports={PaymentRail.CARD: card_port, PaymentRail.ON_CHAIN: onchain_port},
        config=engine_config,
        notifier=notifier,
    )
    await engine.start()
    yield engine
    await engine.stop()


@pytest.fixture
def make_ledger() -> Callable[..., SplitLedger]:
    """Build a ledger from (name, role, percentage[, recipient_id]) tuples."""

    def _make(*shares: tuple, work_id: str = "work-1", title: str | None = None) -> SplitLedger:
        return SplitLedger(
            work_id=work_id,
            title=title,
            shares=tuple(
                SplitShare(
                    recipient_name=share[0],
                    role=RecipientRole(share[1]),
                    percentage=Decimal(str(share[2])),
                    recipient_id=share[3] if len(share) > 3 else None,
                )
                for share in shares
            ),
        )

    return _make


@pytest.fixture
def artist_producer_shares() -> list[SplitShare]:
    """The canonical 70/30 artist/producer split."""
    return [
        SplitShare("Ana Artist", RecipientRole.ARTIST, Decimal("70"), ARTIST_ID),
        SplitShare("Bo Producer", RecipientRole.PRODUCER, Decimal("30"), PRODUCER_ID),
    ]


@pytest.fixture
def make_purchase() -> Callable[..., PurchaseEvent]:
    """Build a purchase with a fresh purchase_id unless one is given."""

    def _make(
        amount: str | Decimal = "10.00",
        work_id: str = "work-1",
        purchase_id: str | None = None,
        currency: str = "USD",
        rail: PaymentRail = PaymentRail.CARD,
    ) -> PurchaseEvent:
        return PurchaseEvent(
            purchase_id=purchase_id or f"pur_{uuid4().hex[:12]}",
            work_id=work_id,
            buyer_id="buyer-1",
            total_amount=Decimal(str(amount)),
            currency=currency,
            requested_rail=rail,
        )

    return _make

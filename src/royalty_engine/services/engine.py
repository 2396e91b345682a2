"""Royalty engine facade - the single integration path.

Usage:
    engine = RoyaltyEngine.in_memory()
    await engine.start()

    # Rights holders publish a split before the work goes on sale
    await engine.publish_split_ledger("work-1", shares)

    # Checkout hands over each authorized purchase
    transaction_id = await engine.submit_purchase(purchase)

    # Operators inspect and repair disbursements
    record = await engine.get_transaction(transaction_id)
    await engine.redrive_failed_lines(transaction_id)

    await engine.stop()

The facade:
- Wires validator, calculator, orchestrator and notifications together
- Refuses invalid or locked split ledgers before they are stored
- Hides the background task that runs each disbursement
"""

from __future__ import annotations

import logging
from datetime import date
from decimal import Decimal
from typing import Iterable, Mapping

from royalty_engine.calculators import DistributionCalculator, SplitValidator
from royalty_engine.calculators.types import (
    DistributionLine,
    PaymentRail,
    PurchaseEvent,
    RoyaltyReport,
    SplitLedger,
    SplitShare,
    TransactionRecord,
    TransactionStatus,
    ValidationResult,
    WorkDailyStats,
)
from royalty_engine.config import EngineConfig
from royalty_engine.database import Database
from royalty_engine.errors import (
    LedgerLockedError,
    SplitValidationError,
    TransactionNotFoundError,
)
from royalty_engine.events import AsyncEventEmitter
from royalty_engine.ports import (
    CardPayoutStubPort,
    InMemoryPayoutProfileStore,
    OnChainStubPort,
    PaymentExecutionPort,
    PayoutProfileStore,
)
from royalty_engine.services.notifications import NotificationDispatcher, Notifier
from royalty_engine.services.orchestrator import DisbursementOrchestrator
from royalty_engine.services.record_store import (
    InMemoryTransactionRecordStore,
    SqlTransactionRecordStore,
    TransactionRecordStore,
    still_failed_lines,
)
from royalty_engine.services.work_catalog import InMemoryWorkCatalog, SqlWorkCatalog, WorkCatalog

logger = logging.getLogger(__name__)


def stub_ports(
    profiles: PayoutProfileStore | None = None,
) -> dict[PaymentRail, PaymentExecutionPort]:
    """One stub port per rail, sharing a payout profile store."""
    profiles = profiles if profiles is not None else InMemoryPayoutProfileStore()
    return {
        PaymentRail.CARD: CardPayoutStubPort(profiles),
        PaymentRail.ON_CHAIN: OnChainStubPort(profiles),
    }


class RoyaltyEngine:
    """Facade over split management and purchase disbursement."""

    def __init__(
        self,
        *,
        catalog: WorkCatalog,
        records: TransactionRecordStore,
        ports: Mapping[PaymentRail, PaymentExecutionPort],
        config: EngineConfig | None = None,
        emitter: AsyncEventEmitter | None = None,
        notifier: Notifier | None = None,
    ):
        self.config = config or EngineConfig()
        self.catalog = catalog
        self.records = records
        self.emitter = emitter or AsyncEventEmitter()
        self.validator = SplitValidator(self.config.validator)
        self.calculator = DistributionCalculator()
        self.orchestrator = DisbursementOrchestrator(
            catalog=catalog,
            records=records,
            ports=ports,
            emitter=self.emitter,
            config=self.config,
            validator=self.validator,
            calculator=self.calculator,
        )
        self.notifications = NotificationDispatcher(notifier, self.config.notifications)
        self.notifications.subscribe(self.emitter)

    @classmethod
    def in_memory(
        cls,
        *,
        ports: Mapping[PaymentRail, PaymentExecutionPort] | None = None,
        profiles: PayoutProfileStore | None = None,
        config: EngineConfig | None = None,
        notifier: Notifier | None = None,
    ) -> RoyaltyEngine:
        """Engine backed by in-memory stores (tests, local runs)."""
        return cls(
            catalog=InMemoryWorkCatalog(),
            records=InMemoryTransactionRecordStore(),
            ports=ports if ports is not None else stub_ports(profiles),
            config=config,
            notifier=notifier,
        )

    @classmethod
    def from_database(
        cls,
        db: Database,
        *,
        ports: Mapping[PaymentRail, PaymentExecutionPort] | None = None,
        profiles: PayoutProfileStore | None = None,
        config: EngineConfig | None = None,
        notifier: Notifier | None = None,
    ) -> RoyaltyEngine:
        """Engine backed by SQL stores."""
        return cls(
            catalog=SqlWorkCatalog(db),
            records=SqlTransactionRecordStore(db),
            ports=ports if ports is not None else stub_ports(profiles),
            config=config,
            notifier=notifier,
        )

    @property
    def ports(self) -> dict[PaymentRail, PaymentExecutionPort]:
        return self.orchestrator.ports

    async def start(self) -> None:
        await self.notifications.start()

    async def stop(self) -> None:
        """Let running disbursements finish, flush notifications, stop."""
        await self.orchestrator.drain()
        await self.notifications.stop()

    async def __aenter__(self) -> RoyaltyEngine:
        await self.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.stop()

    # Purchases

    async def submit_purchase(self, purchase: PurchaseEvent) -> str:
        """Accept a purchase for disbursement and return its transaction id.

        Returns as soon as the record is claimed; disbursement continues in
        the background. Submitting the same ``purchase_id`` again returns
        the original transaction id.
        """
        record = await self.orchestrator.submit(purchase)
        return record.transaction_id

    async def process_purchase(self, purchase: PurchaseEvent) -> TransactionRecord:
        """Submit a purchase and wait for its terminal record."""
        return await self.orchestrator.process(purchase)

    async def wait_for_transaction(self, transaction_id: str) -> TransactionRecord:
        return await self.orchestrator.wait(transaction_id)

    async def get_transaction(self, transaction_id: str) -> TransactionRecord:
        return await self.records.get(transaction_id)

    async def get_purchase_transaction(self, purchase_id: str) -> TransactionRecord:
        """The original transaction record for a purchase."""
        record = await self.records.get_by_purchase(purchase_id)
        if record is None:
            raise TransactionNotFoundError(purchase_id)
        return record

    async def list_transactions(
        self,
        status: TransactionStatus | None = None,
        limit: int = 100,
    ) -> list[TransactionRecord]:
        return await self.records.list_by_status(status, limit=limit)

    async def redrive_failed_lines(self, transaction_id: str) -> TransactionRecord:
        """Re-attempt still-failed lines; returns the new linked record."""
        return await self.orchestrator.redrive(transaction_id)

    # Split ledgers

    async def get_split_ledger(self, work_id: str) -> SplitLedger:
        return await self.catalog.get_split_ledger(work_id)

    async def propose_split_ledger(
        self,
        work_id: str,
        shares: Iterable[SplitShare],
    ) -> ValidationResult:
        """Validate a prospective ledger without storing it."""
        return self.validator.validate(SplitLedger(work_id=work_id, shares=tuple(shares)))

    async def publish_split_ledger(
        self,
        work_id: str,
        shares: Iterable[SplitShare],
        title: str | None = None,
    ) -> SplitLedger:
        """Store a ledger for a work.

        Raises:
            SplitValidationError: if the ledger is structurally invalid.
            LedgerLockedError: if a purchase already references the work.
        """
        ledger = SplitLedger(work_id=work_id, shares=tuple(shares), title=title)
        result = self.validator.validate(ledger)
        if not result.valid:
            raise SplitValidationError(result)
        try:
            stored = await self.catalog.save_split_ledger(ledger)
        except LedgerLockedError:
            logger.info("Refused amendment of locked split ledger for %s", work_id)
            raise
        logger.info("Published split ledger for %s (score %d)", work_id, result.score)
        return stored

    def preview_distribution(
        self,
        total_amount: Decimal,
        ledger: SplitLedger,
        currency: str = "USD",
    ) -> list[DistributionLine]:
        """Compute the lines a purchase would produce, without paying anyone."""
        result = self.validator.validate(ledger)
        if not result.valid:
            raise SplitValidationError(result)
        return self.calculator.calculate(total_amount, ledger, currency)

    # Reporting

    async def get_royalty_report(self, work_id: str) -> RoyaltyReport:
        """Ledger, sales statistics and payout totals for a work."""
        ledger = await self.catalog.get_split_ledger(work_id)
        stats = await self.catalog.get_work_stats(work_id)
        records = await self.records.list_for_work(work_id)

        redrives: dict[str, list[TransactionRecord]] = {}
        for record in records:
            if record.redrive_of is not None:
                redrives.setdefault(record.redrive_of, []).append(record)
        originals = [r for r in records if r.redrive_of is None]

        awaiting = tuple(
            r.transaction_id
            for r in originals
            if r.overall_status == TransactionStatus.PARTIALLY_FAILED
            and still_failed_lines(r, redrives.get(r.transaction_id, []))
        )
        return RoyaltyReport(
            ledger=ledger,
            stats=stats,
            total_paid=sum((r.total_paid for r in records), Decimal("0")),
            transaction_count=len(originals),
            awaiting_reconciliation=awaiting,
        )

    async def get_daily_stats(
        self,
        work_id: str,
        start: date | None = None,
        end: date | None = None,
    ) -> list[WorkDailyStats]:
        return await self.catalog.get_daily_stats(work_id, start, end)

    async def get_recipient_earnings(self, recipient_id: str) -> Decimal:
        return await self.catalog.get_recipient_earnings(recipient_id)

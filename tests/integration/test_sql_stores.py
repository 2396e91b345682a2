"""SQL store integration tests.

Tests verify:
1. A purchase claims exactly one record, however often it is delivered
2. Terminal records reject every further write
3. Statistics and earnings are incremented atomically
4. Split ledgers are locked in the same step that references them
5. The full disbursement flow runs unchanged on the SQL stores
"""

import asyncio
from datetime import date
from decimal import Decimal

import pytest

from royalty_engine.calculators import SplitValidator
from royalty_engine.calculators.types import (
    DisbursementState,
    LineStatus,
    PaymentRail,
    PurchaseEvent,
    RecipientRole,
    SplitLedger,
    SplitShare,
    TransactionStatus,
)
from royalty_engine.errors import (
    ImmutableRecordError,
    LedgerLockedError,
    TransactionNotFoundError,
    WorkNotFoundError,
)

from tests.conftest import ARTIST_ID, PRODUCER_ID

pytestmark = pytest.mark.asyncio


def purchase(purchase_id: str = "pur-1", amount: str = "10.00") -> PurchaseEvent:
    return PurchaseEvent(
        purchase_id=purchase_id,
        work_id="work-1",
        buyer_id="buyer-1",
        total_amount=Decimal(amount),
        currency="USD",
        requested_rail=PaymentRail.CARD,
    )


def seventy_thirty(work_id: str = "work-1") -> SplitLedger:
    return SplitLedger(
        work_id=work_id,
        title="Night Drive",
        shares=(
            SplitShare("Ana Artist", RecipientRole.ARTIST, Decimal("70"), ARTIST_ID),
            SplitShare("Bo Producer", RecipientRole.PRODUCER, Decimal("30"), PRODUCER_ID),
        ),
    )


class TestRecordClaims:
    """Test idempotent record creation."""

    async def test_claim_once(self, records):
        first, created_first = await records.claim(purchase())
        second, created_second = await records.claim(purchase())

        assert created_first is True
        assert created_second is False
        assert first.transaction_id == second.transaction_id
        assert second.idempotency_key == "pur-1"

    async def test_concurrent_claims(self, records):
        results = await asyncio.gather(*(records.claim(purchase()) for _ in range(5)))

        assert sum(1 for _, created in results if created) == 1
        assert len({record.transaction_id for record, _ in results}) == 1

    async def test_redrive_claims_share_purchase(self, records):
        original, _ = await records.claim(purchase())
        redrive, created = await records.claim(
            purchase(),
            idempotency_key=f"redrive:{original.transaction_id}:1",
            redrive_of=original.transaction_id,
            total_amount=Decimal("3.00"),
        )

        assert created is True
        assert redrive.purchase_id == original.purchase_id
        assert (await records.get_by_purchase("pur-1")).transaction_id == original.transaction_id
        redrives = await records.list_redrives(original.transaction_id)
        assert [r.transaction_id for r in redrives] == [redrive.transaction_id]
        assert redrives[0].total_amount == Decimal("3.00")

    async def test_get_unknown(self, records):
        with pytest.raises(TransactionNotFoundError):
            await records.get("missing")
        assert await records.get_by_purchase("missing") is None

    async def test_conflict_without_record_raises(self, records, monkeypatch):
        await records.claim(purchase())

        async def nothing(session, criterion):
            return None

        monkeypatch.setattr(records, "_load_one", nothing)
        with pytest.raises(RuntimeError, match="no record holds the key"):
            await records.claim(purchase())


class TestRecordImmutability:
    """Test that terminal records cannot change."""

    async def test_terminal_record_rejects_save(self, records):
        record, _ = await records.claim(purchase())
        record.state = DisbursementState.FAILED
        record.overall_status = TransactionStatus.FAILED
        await records.save(record)

        record.state = DisbursementState.COMPLETED
        record.overall_status = TransactionStatus.COMPLETED
        with pytest.raises(ImmutableRecordError) as exc_info:
            await records.save(record)

        assert exc_info.value.status == "failed"
        stored = await records.get(record.transaction_id)
        assert stored.overall_status == TransactionStatus.FAILED

    async def test_save_unknown(self, records):
        record, _ = await records.claim(purchase())
        record.transaction_id = "missing"

        with pytest.raises(TransactionNotFoundError):
            await records.save(record)


class TestWorkCatalog:
    """Test ledgers and counters."""

    async def test_ledger_round_trip(self, catalog):
        await catalog.save_split_ledger(seventy_thirty())

        ledger = await catalog.get_split_ledger("work-1")

        assert ledger.title == "Night Drive"
        assert [s.recipient_name for s in ledger.shares] == ["Ana Artist", "Bo Producer"]
        assert ledger.shares[0].percentage == Decimal("70")
        assert ledger.locked is False

    async def test_replace_then_reference(self, catalog):
        await catalog.save_split_ledger(seventy_thirty())
        await catalog.save_split_ledger(
            SplitLedger(
                work_id="work-1",
                shares=(SplitShare("Ana Artist", RecipientRole.ARTIST, Decimal("100")),),
            )
        )
        ledger, result = await catalog.reference_split_ledger("work-1", SplitValidator().validate)
        assert result.valid is True
        assert ledger.locked is True

        with pytest.raises(LedgerLockedError):
            await catalog.save_split_ledger(seventy_thirty())

        ledger = await catalog.get_split_ledger("work-1")
        assert ledger.locked is True
        assert len(ledger.shares) == 1

    async def test_unknown_work(self, catalog):
        with pytest.raises(WorkNotFoundError):
            await catalog.get_split_ledger("missing")
        with pytest.raises(WorkNotFoundError):
            await catalog.reference_split_ledger("missing", SplitValidator().validate)

    async def test_invalid_ledger_stays_amendable(self, catalog):
        await catalog.save_split_ledger(
            SplitLedger(
                work_id="work-1",
                shares=(SplitShare("Ana Artist", RecipientRole.ARTIST, Decimal("60")),),
            )
        )

        ledger, result = await catalog.reference_split_ledger("work-1", SplitValidator().validate)

        assert result.valid is False
        assert ledger.locked is False
        await catalog.save_split_ledger(seventy_thirty())

    async def test_reference_races_amendment(self, catalog):
        """Whichever lands first, the referenced ledger is the stored one."""
        await catalog.save_split_ledger(seventy_thirty())
        amended = SplitLedger(
            work_id="work-1",
            shares=(SplitShare("Cy Writer", RecipientRole.SONGWRITER, Decimal("100")),),
        )

        referenced, saved = await asyncio.gather(
            catalog.reference_split_ledger("work-1", SplitValidator().validate),
            catalog.save_split_ledger(amended),
            return_exceptions=True,
        )

        ledger, _ = referenced
        stored = await catalog.get_split_ledger("work-1")
        assert stored.locked is True
        assert stored.shares == ledger.shares
        if isinstance(saved, LedgerLockedError):
            assert len(stored.shares) == 2
        else:
            assert len(stored.shares) == 1

    async def test_concurrent_sales(self, catalog):
        await catalog.save_split_ledger(seventy_thirty())
        day = date(2024, 5, 1)

        await asyncio.gather(*(catalog.record_sale("work-1", Decimal("1.50"), day) for _ in range(10)))
        await catalog.record_sale("work-1", Decimal("2.00"), date(2024, 5, 2))

        stats = await catalog.get_work_stats("work-1")
        assert stats.license_count == 11
        assert stats.total_revenue == Decimal("17.00")

        daily = await catalog.get_daily_stats("work-1")
        assert [(d.day, d.license_count) for d in daily] == [(day, 10), (date(2024, 5, 2), 1)]
        assert daily[0].revenue == Decimal("15.00")
        only_second = await catalog.get_daily_stats("work-1", start=date(2024, 5, 2))
        assert len(only_second) == 1

    async def test_recipient_earnings(self, catalog):
        await asyncio.gather(
            catalog.credit_recipient(ARTIST_ID, Decimal("7.00")),
            catalog.credit_recipient(ARTIST_ID, Decimal("14.00")),
        )

        assert await catalog.get_recipient_earnings(ARTIST_ID) == Decimal("21.00")
        assert await catalog.get_recipient_earnings("nobody") == Decimal("0")


class TestSqlDisbursement:
    """Test the engine end to end on the SQL stores."""

    async def test_completed_purchase(self, sql_engine, card_port):
        await sql_engine.publish_split_ledger("work-1", seventy_thirty().shares)

        record = await sql_engine.process_purchase(purchase())
        stored = await sql_engine.get_transaction(record.transaction_id)

        assert stored.overall_status == TransactionStatus.COMPLETED
        assert stored.state == DisbursementState.COMPLETED
        assert [line.amount for line in stored.distributions] == [
            Decimal("7.00"),
            Decimal("3.00"),
        ]
        assert str(stored.distributions[0].amount) == "7.00"
        assert all(line.external_reference for line in stored.distributions)
        assert stored.validation_score == 100
        assert card_port.call_count == 2
        assert (await sql_engine.get_split_ledger("work-1")).locked is True

    async def test_rejected_purchase_records_errors(self, sql_engine):
        record = await sql_engine.process_purchase(purchase())
        stored = await sql_engine.get_transaction(record.transaction_id)

        assert stored.overall_status == TransactionStatus.FAILED
        assert stored.errors[0].code == "work_not_found"
        assert stored.distributions == []

    async def test_partial_failure_and_redrive(self, sql_engine, card_port):
        await sql_engine.publish_split_ledger("work-1", seventy_thirty().shares)
        card_port.simulate_failure(PRODUCER_ID, "Account frozen")

        original = await sql_engine.process_purchase(purchase())
        card_port.clear_failure(PRODUCER_ID)
        redrive = await sql_engine.redrive_failed_lines(original.transaction_id)

        stored_original = await sql_engine.get_transaction(original.transaction_id)
        assert stored_original.overall_status == TransactionStatus.PARTIALLY_FAILED
        assert stored_original.distributions[1].status == LineStatus.FAILED
        assert stored_original.distributions[1].error == "Account frozen"

        assert redrive.redrive_of == original.transaction_id
        assert redrive.overall_status == TransactionStatus.COMPLETED

        report = await sql_engine.get_royalty_report("work-1")
        assert report.stats.license_count == 1
        assert report.total_paid == Decimal("10.00")
        assert report.transaction_count == 1
        assert report.awaiting_reconciliation == ()
        assert await sql_engine.get_recipient_earnings(PRODUCER_ID) == Decimal("3.00")

    async def test_duplicate_delivery(self, sql_engine, card_port):
        await sql_engine.publish_split_ledger("work-1", seventy_thirty().shares)

        ids = await asyncio.gather(*(sql_engine.submit_purchase(purchase()) for _ in range(3)))
        record = await sql_engine.wait_for_transaction(ids[0])

        assert len(set(ids)) == 1
        assert record.overall_status == TransactionStatus.COMPLETED
        assert card_port.call_count == 2

    async def test_list_transactions(self, sql_engine):
        await sql_engine.publish_split_ledger("work-1", seventy_thirty().shares)
        await sql_engine.process_purchase(purchase("pur-1"))
        await sql_engine.process_purchase(purchase("pur-2", amount="0"))

        failed = await sql_engine.list_transactions(TransactionStatus.FAILED)
        completed = await sql_engine.list_transactions(TransactionStatus.COMPLETED)

        assert [r.purchase_id for r in failed] == ["pur-2"]
        assert [r.purchase_id for r in completed] == ["pur-1"]

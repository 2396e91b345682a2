"""Transaction record storage.

Records are the audit trail of every disbursement:
- one record per idempotency key (``purchase_id`` for originals), claimed
  atomically so a purchase delivered twice is processed once
- written only while ``processing``; a terminal record is immutable
- never deleted

Two implementations share the ``TransactionRecordStore`` protocol: an
in-memory store for tests and local runs, and a SQLAlchemy store.
"""

from __future__ import annotations

import copy
import uuid
from decimal import Decimal
from typing import Protocol

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from royalty_engine.calculators.types import (
    DisbursementState,
    DistributionLine,
    LineStatus,
    PaymentRail,
    PurchaseEvent,
    RecipientRole,
    TransactionRecord,
    TransactionStatus,
    ValidationIssue,
    currency_quantum,
    utcnow,
)
from royalty_engine.database import Database
from royalty_engine.errors import ImmutableRecordError, TransactionNotFoundError
from royalty_engine.models import Transaction, TransactionDistribution


class TransactionRecordStore(Protocol):
    """Persistence for transaction records."""

    async def claim(
        self,
        purchase: PurchaseEvent,
        *,
        idempotency_key: str | None = None,
        redrive_of: str | None = None,
        total_amount: Decimal | None = None,
    ) -> tuple[TransactionRecord, bool]:
        """Insert a record for ``idempotency_key`` or return the existing one.

        Returns:
            (record, created). Only the caller that created the record may
            process it.
        """
        ...

    async def save(self, record: TransactionRecord, *, with_distributions: bool = False) -> None:
        """Persist state, status and outcome fields of a non-terminal record.

        Raises:
            ImmutableRecordError: if the stored record is already terminal.
        """
        ...

    async def get(self, transaction_id: str) -> TransactionRecord:
        """Raises TransactionNotFoundError."""
        ...

    async def get_by_purchase(self, purchase_id: str) -> TransactionRecord | None:
        """The original (non re-drive) record for a purchase."""
        ...

    async def list_for_work(self, work_id: str) -> list[TransactionRecord]:
        ...

    async def list_by_status(
        self,
        status: TransactionStatus | None = None,
        limit: int = 100,
    ) -> list[TransactionRecord]:
        ...

    async def list_redrives(self, transaction_id: str) -> list[TransactionRecord]:
        """Re-drive records linked to ``transaction_id``, oldest first."""
        ...


def new_transaction_id() -> str:
    return uuid.uuid4().hex


def _new_record(
    purchase: PurchaseEvent,
    idempotency_key: str,
    redrive_of: str | None,
    total_amount: Decimal | None,
) -> TransactionRecord:
    return TransactionRecord(
        transaction_id=new_transaction_id(),
        purchase_id=purchase.purchase_id,
        work_id=purchase.work_id,
        buyer_id=purchase.buyer_id,
        total_amount=purchase.total_amount if total_amount is None else total_amount,
        currency=purchase.currency.upper(),
        rail=purchase.requested_rail,
        redrive_of=redrive_of,
        idempotency_key=idempotency_key,
    )


def still_failed_lines(
    original: TransactionRecord,
    redrives: list[TransactionRecord],
) -> list[DistributionLine]:
    """Lines of ``original`` that failed and no re-drive has since paid."""
    paid = {
        line.line_index
        for redrive in redrives
        for line in redrive.distributions
        if line.status == LineStatus.COMPLETED
    }
    return [line for line in original.failed_lines if line.line_index not in paid]


class InMemoryTransactionRecordStore:
    """Records held in dicts. Callers only ever see copies."""

    def __init__(self) -> None:
        self._records: dict[str, TransactionRecord] = {}
        self._by_key: dict[str, str] = {}

    async def claim(
        self,
        purchase: PurchaseEvent,
        *,
        idempotency_key: str | None = None,
        redrive_of: str | None = None,
        total_amount: Decimal | None = None,
    ) -> tuple[TransactionRecord, bool]:
        key = idempotency_key or purchase.purchase_id
        existing_id = self._by_key.get(key)
        if existing_id is not None:
            return copy.deepcopy(self._records[existing_id]), False

        record = _new_record(purchase, key, redrive_of, total_amount)
        self._records[record.transaction_id] = record
        self._by_key[key] = record.transaction_id
        return copy.deepcopy(record), True

    async def save(self, record: TransactionRecord, *, with_distributions: bool = False) -> None:
        stored = self._records.get(record.transaction_id)
        if stored is None:
            raise TransactionNotFoundError(record.transaction_id)
        if stored.is_terminal:
            raise ImmutableRecordError(record.transaction_id, stored.overall_status.value)

        stored.state = record.state
        stored.overall_status = record.overall_status
        stored.validation_score = record.validation_score
        stored.errors = list(record.errors)
        stored.recommendations = list(record.recommendations)
        stored.completed_at = record.completed_at
        if with_distributions:
            stored.distributions = copy.deepcopy(record.distributions)

    async def get(self, transaction_id: str) -> TransactionRecord:
        record = self._records.get(transaction_id)
        if record is None:
            raise TransactionNotFoundError(transaction_id)
        return copy.deepcopy(record)

    async def get_by_purchase(self, purchase_id: str) -> TransactionRecord | None:
        transaction_id = self._by_key.get(purchase_id)
        if transaction_id is None:
            return None
        return copy.deepcopy(self._records[transaction_id])

    async def list_for_work(self, work_id: str) -> list[TransactionRecord]:
        return [copy.deepcopy(r) for r in self._ordered() if r.work_id == work_id]

    async def list_by_status(
        self,
        status: TransactionStatus | None = None,
        limit: int = 100,
    ) -> list[TransactionRecord]:
        matches = [r for r in self._ordered() if status is None or r.overall_status == status]
        return [copy.deepcopy(r) for r in matches[:limit]]

    async def list_redrives(self, transaction_id: str) -> list[TransactionRecord]:
        return [copy.deepcopy(r) for r in self._ordered() if r.redrive_of == transaction_id]

    def _ordered(self) -> list[TransactionRecord]:
        # dicts keep insertion order, which is creation order
        return list(self._records.values())


class SqlTransactionRecordStore:
    """Records persisted through SQLAlchemy (PostgreSQL or SQLite)."""

    def __init__(self, db: Database):
        self.db = db

    async def claim(
        self,
        purchase: PurchaseEvent,
        *,
        idempotency_key: str | None = None,
        redrive_of: str | None = None,
        total_amount: Decimal | None = None,
    ) -> tuple[TransactionRecord, bool]:
        key = idempotency_key or purchase.purchase_id
        record = _new_record(purchase, key, redrive_of, total_amount)

        async with self.db.session() as session:
            stmt = (
                self.db.insert(Transaction)
                .values(
                    transaction_id=record.transaction_id,
                    idempotency_key=key,
                    purchase_id=record.purchase_id,
                    work_id=record.work_id,
                    buyer_id=record.buyer_id,
                    total_amount=record.total_amount,
                    currency=record.currency,
                    rail=record.rail.value,
                    state=record.state.value,
                    overall_status=record.overall_status.value,
                    errors_json=[],
                    recommendations_json=[],
                    redrive_of=redrive_of,
                    created_at=record.created_at,
                )
                .on_conflict_do_nothing(index_elements=["idempotency_key"])
            )
            result = await session.execute(stmt)
            created = result.rowcount == 1

            if created:
                return record, True

            row = await self._load_one(session, Transaction.idempotency_key == key)
            if row is None:
                raise RuntimeError(f"Claim for {key!r} conflicted but no record holds the key")
            return _to_record(row), False

    async def save(self, record: TransactionRecord, *, with_distributions: bool = False) -> None:
        async with self.db.session() as session:
            # Conditional update: only a processing record may change
            result = await session.execute(
                update(Transaction)
                .where(
                    Transaction.transaction_id == record.transaction_id,
                    Transaction.overall_status == TransactionStatus.PROCESSING.value,
                )
                .values(
                    state=record.state.value,
                    overall_status=record.overall_status.value,
                    validation_score=record.validation_score,
                    errors_json=[_issue_to_json(e) for e in record.errors],
                    recommendations_json=list(record.recommendations),
                    completed_at=record.completed_at,
                )
            )
            if result.rowcount != 1:
                current = await session.get(Transaction, record.transaction_id)
                if current is None:
                    raise TransactionNotFoundError(record.transaction_id)
                raise ImmutableRecordError(record.transaction_id, current.overall_status)

            if with_distributions:
                session.add_all(
                    TransactionDistribution(
                        transaction_id=record.transaction_id,
                        line_index=line.line_index,
                        recipient_id=line.recipient_id,
                        recipient_name=line.recipient_name,
                        role=line.role.value,
                        percentage=line.percentage,
                        amount=line.amount,
                        status=line.status.value,
                        external_reference=line.external_reference,
                        error=line.error,
                    )
                    for line in record.distributions
                )

    async def get(self, transaction_id: str) -> TransactionRecord:
        async with self.db.session() as session:
            row = await self._load_one(session, Transaction.transaction_id == transaction_id)
        if row is None:
            raise TransactionNotFoundError(transaction_id)
        return _to_record(row)

    async def get_by_purchase(self, purchase_id: str) -> TransactionRecord | None:
        async with self.db.session() as session:
            row = await self._load_one(session, Transaction.idempotency_key == purchase_id)
        return _to_record(row) if row is not None else None

    async def list_for_work(self, work_id: str) -> list[TransactionRecord]:
        return await self._load_many(Transaction.work_id == work_id)

    async def list_by_status(
        self,
        status: TransactionStatus | None = None,
        limit: int = 100,
    ) -> list[TransactionRecord]:
        criteria = [] if status is None else [Transaction.overall_status == status.value]
        return await self._load_many(*criteria, limit=limit)

    async def list_redrives(self, transaction_id: str) -> list[TransactionRecord]:
        return await self._load_many(Transaction.redrive_of == transaction_id)

    async def _load_one(self, session: AsyncSession, criterion) -> Transaction | None:
        result = await session.execute(
            select(Transaction)
            .where(criterion)
            .options(selectinload(Transaction.distributions))
        )
        return result.scalar_one_or_none()

    async def _load_many(self, *criteria, limit: int | None = None) -> list[TransactionRecord]:
        stmt = (
            select(Transaction)
            .where(*criteria)
            .options(selectinload(Transaction.distributions))
            .order_by(Transaction.created_at, Transaction.transaction_id)
        )
        if limit is not None:
            stmt = stmt.limit(limit)
        async with self.db.session() as session:
            result = await session.execute(stmt)
            return [_to_record(row) for row in result.scalars().all()]


def _issue_to_json(issue: ValidationIssue) -> dict[str, str | None]:
    return {
        "code": issue.code,
        "message": issue.message,
        "recipient_name": issue.recipient_name,
    }


def _to_record(row: Transaction) -> TransactionRecord:
    """Map ORM rows back to the domain record."""
    quantum = currency_quantum(row.currency)
    return TransactionRecord(
        transaction_id=row.transaction_id,
        purchase_id=row.purchase_id,
        work_id=row.work_id,
        buyer_id=row.buyer_id,
        total_amount=row.total_amount.quantize(quantum),
        currency=row.currency,
        rail=PaymentRail(row.rail),
        state=DisbursementState(row.state),
        overall_status=TransactionStatus(row.overall_status),
        validation_score=row.validation_score,
        distributions=[
            DistributionLine(
                line_index=d.line_index,
                recipient_id=d.recipient_id,
                recipient_name=d.recipient_name,
                role=RecipientRole(d.role),
                percentage=d.percentage,
                amount=d.amount.quantize(quantum),
                status=LineStatus(d.status),
                external_reference=d.external_reference,
                error=d.error,
            )
            for d in row.distributions
        ],
        errors=[ValidationIssue(**e) for e in row.errors_json or []],
        recommendations=list(row.recommendations_json or []),
        redrive_of=row.redrive_of,
        idempotency_key=row.idempotency_key,
        created_at=row.created_at or utcnow(),
        completed_at=row.completed_at,
    )

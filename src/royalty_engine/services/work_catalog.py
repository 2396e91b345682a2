"""Work catalog: split ledgers, sales statistics and recipient earnings.

Statistics are only ever changed by increments applied in a single step
(``UPDATE ... SET x = x + :n`` in SQL), so concurrent sales of the same
work never lose an update.
"""

from __future__ import annotations

from dataclasses import replace
from datetime import date
from decimal import Decimal
from typing import Callable, Protocol

from sqlalchemy import delete, select, update
from sqlalchemy.orm import selectinload

from royalty_engine.calculators.types import (
    RecipientRole,
    SplitLedger,
    SplitShare,
    ValidationResult,
    WorkDailyStats,
    WorkStats,
)
from royalty_engine.database import Database
from royalty_engine.errors import LedgerLockedError, WorkNotFoundError
from royalty_engine.models import RecipientEarning, Work, WorkDailyStat, WorkSplitShare


class WorkCatalog(Protocol):
    """Lookup and bookkeeping for licensable works."""

    async def get_split_ledger(self, work_id: str) -> SplitLedger:
        """Raises WorkNotFoundError."""
        ...

    async def save_split_ledger(self, ledger: SplitLedger) -> SplitLedger:
        """Create or replace a ledger. Raises LedgerLockedError once locked."""
        ...

    async def reference_split_ledger(
        self,
        work_id: str,
        validate: Callable[[SplitLedger], ValidationResult],
    ) -> tuple[SplitLedger, ValidationResult]:
        """Read the ledger a purchase will pay and lock it if ``validate`` accepts it.

        Read, validation and lock are one step: no amendment can land
        between them. An invalid ledger is returned unlocked.

        Raises:
            WorkNotFoundError: if the work has no ledger.
        """
        ...

    async def record_sale(self, work_id: str, amount: Decimal, day: date) -> None:
        """Count one license and its revenue, overall and for ``day``."""
        ...

    async def get_work_stats(self, work_id: str) -> WorkStats:
        ...

    async def get_daily_stats(
        self,
        work_id: str,
        start: date | None = None,
        end: date | None = None,
    ) -> list[WorkDailyStats]:
        ...

    async def credit_recipient(self, recipient_id: str, amount: Decimal) -> None:
        ...

    async def get_recipient_earnings(self, recipient_id: str) -> Decimal:
        ...


class InMemoryWorkCatalog:
    """Catalog held in dicts.

    Every mutation runs without an ``await`` in between its read and write,
    so it is a single step on the event loop.
    """

    def __init__(self, ledgers: list[SplitLedger] | None = None):
        self._ledgers: dict[str, SplitLedger] = {}
        self._stats: dict[str, WorkStats] = {}
        self._daily: dict[tuple[str, date], WorkDailyStats] = {}
        self._earnings: dict[str, Decimal] = {}
        for ledger in ledgers or []:
            self._ledgers[ledger.work_id] = ledger

    async def get_split_ledger(self, work_id: str) -> SplitLedger:
        ledger = self._ledgers.get(work_id)
        if ledger is None:
            raise WorkNotFoundError(work_id)
        return ledger

    async def save_split_ledger(self, ledger: SplitLedger) -> SplitLedger:
        existing = self._ledgers.get(ledger.work_id)
        if existing is not None and existing.locked:
            raise LedgerLockedError(ledger.work_id)
        stored = replace(ledger, locked=False)
        self._ledgers[ledger.work_id] = stored
        return stored

    async def reference_split_ledger(
        self,
        work_id: str,
        validate: Callable[[SplitLedger], ValidationResult],
    ) -> tuple[SplitLedger, ValidationResult]:
        ledger = self._ledgers.get(work_id)
        if ledger is None:
            raise WorkNotFoundError(work_id)
        result = validate(ledger)
        if result.valid and not ledger.locked:
            ledger = replace(ledger, locked=True)
            self._ledgers[work_id] = ledger
        return ledger, result

    async def record_sale(self, work_id: str, amount: Decimal, day: date) -> None:
        stats = self._stats.get(work_id, WorkStats(work_id=work_id))
        self._stats[work_id] = replace(
            stats,
            license_count=stats.license_count + 1,
            total_revenue=stats.total_revenue + amount,
        )
        daily = self._daily.get((work_id, day), WorkDailyStats(work_id=work_id, day=day))
        self._daily[(work_id, day)] = replace(
            daily,
            license_count=daily.license_count + 1,
            revenue=daily.revenue + amount,
        )

    async def get_work_stats(self, work_id: str) -> WorkStats:
        return self._stats.get(work_id, WorkStats(work_id=work_id))

    async def get_daily_stats(
        self,
        work_id: str,
        start: date | None = None,
        end: date | None = None,
    ) -> list[WorkDailyStats]:
        rows = [
            stats
            for (wid, day), stats in self._daily.items()
            if wid == work_id
            and (start is None or day >= start)
            and (end is None or day <= end)
        ]
        return sorted(rows, key=lambda s: s.day)

    async def credit_recipient(self, recipient_id: str, amount: Decimal) -> None:
        self._earnings[recipient_id] = self._earnings.get(recipient_id, Decimal("0")) + amount

    async def get_recipient_earnings(self, recipient_id: str) -> Decimal:
        return self._earnings.get(recipient_id, Decimal("0"))


class SqlWorkCatalog:
    """Catalog persisted through SQLAlchemy (PostgreSQL or SQLite)."""

    def __init__(self, db: Database):
        self.db = db

    async def get_split_ledger(self, work_id: str) -> SplitLedger:
        async with self.db.session() as session:
            result = await session.execute(
                select(Work).where(Work.work_id == work_id).options(selectinload(Work.shares))
            )
            work = result.scalar_one_or_none()
        if work is None:
            raise WorkNotFoundError(work_id)
        return _to_ledger(work)

    async def save_split_ledger(self, ledger: SplitLedger) -> SplitLedger:
        async with self.db.session() as session:
            # Idempotent create, then a conditional update that loses to a lock
            await session.execute(
                self.db.insert(Work)
                .values(work_id=ledger.work_id, title=ledger.title, ledger_locked=False)
                .on_conflict_do_nothing(index_elements=["work_id"])
            )
            result = await session.execute(
                update(Work)
                .where(Work.work_id == ledger.work_id, Work.ledger_locked.is_(False))
                .values(title=ledger.title)
            )
            if result.rowcount != 1:
                raise LedgerLockedError(ledger.work_id)

            await session.execute(
                delete(WorkSplitShare).where(WorkSplitShare.work_id == ledger.work_id)
            )
            session.add_all(
                WorkSplitShare(
                    work_id=ledger.work_id,
                    position=position,
                    recipient_id=share.recipient_id,
                    recipient_name=share.recipient_name,
                    role=share.role.value,
                    percentage=share.percentage,
                )
                for position, share in enumerate(ledger.shares)
            )
        return replace(ledger, locked=False)

    async def reference_split_ledger(
        self,
        work_id: str,
        validate: Callable[[SplitLedger], ValidationResult],
    ) -> tuple[SplitLedger, ValidationResult]:
        async with self.db.session() as session:
            # Write to the work row before reading it: the row lock (the
            # database write lock on SQLite) is held until commit
            touched = await session.execute(
                update(Work)
                .where(Work.work_id == work_id)
                .values(ledger_locked=Work.ledger_locked)
            )
            if touched.rowcount != 1:
                raise WorkNotFoundError(work_id)

            result = await session.execute(
                select(Work).where(Work.work_id == work_id).options(selectinload(Work.shares))
            )
            ledger = _to_ledger(result.scalar_one())
            verdict = validate(ledger)
            if verdict.valid and not ledger.locked:
                await session.execute(
                    update(Work).where(Work.work_id == work_id).values(ledger_locked=True)
                )
                ledger = replace(ledger, locked=True)
        return ledger, verdict

    async def record_sale(self, work_id: str, amount: Decimal, day: date) -> None:
        async with self.db.session() as session:
            await session.execute(
                update(Work)
                .where(Work.work_id == work_id)
                .values(
                    license_count=Work.license_count + 1,
                    total_revenue=Work.total_revenue + amount,
                )
            )
            stmt = self.db.insert(WorkDailyStat).values(
                work_id=work_id,
                day=day,
                license_count=1,
                revenue=amount,
            )
            await session.execute(
                stmt.on_conflict_do_update(
                    index_elements=["work_id", "day"],
                    set_={
                        "license_count": WorkDailyStat.license_count + 1,
                        "revenue": WorkDailyStat.revenue + amount,
                    },
                )
            )

    async def get_work_stats(self, work_id: str) -> WorkStats:
        async with self.db.session() as session:
            work = await session.get(Work, work_id)
        if work is None:
            return WorkStats(work_id=work_id)
        return WorkStats(
            work_id=work_id,
            license_count=work.license_count,
            total_revenue=work.total_revenue,
        )

    async def get_daily_stats(
        self,
        work_id: str,
        start: date | None = None,
        end: date | None = None,
    ) -> list[WorkDailyStats]:
        stmt = select(WorkDailyStat).where(WorkDailyStat.work_id == work_id)
        if start is not None:
            stmt = stmt.where(WorkDailyStat.day >= start)
        if end is not None:
            stmt = stmt.where(WorkDailyStat.day <= end)
        async with self.db.session() as session:
            result = await session.execute(stmt.order_by(WorkDailyStat.day))
            return [
                WorkDailyStats(
                    work_id=row.work_id,
                    day=row.day,
                    license_count=row.license_count,
                    revenue=row.revenue,
                )
                for row in result.scalars().all()
            ]

    async def credit_recipient(self, recipient_id: str, amount: Decimal) -> None:
        async with self.db.session() as session:
            stmt = self.db.insert(RecipientEarning).values(
                recipient_id=recipient_id,
                total_earnings=amount,
                payout_count=1,
            )
            await session.execute(
                stmt.on_conflict_do_update(
                    index_elements=["recipient_id"],
                    set_={
                        "total_earnings": RecipientEarning.total_earnings + amount,
                        "payout_count": RecipientEarning.payout_count + 1,
                    },
                )
            )

    async def get_recipient_earnings(self, recipient_id: str) -> Decimal:
        async with self.db.session() as session:
            row = await session.get(RecipientEarning, recipient_id)
        return row.total_earnings if row is not None else Decimal("0")


def _to_ledger(work: Work) -> SplitLedger:
    return SplitLedger(
        work_id=work.work_id,
        title=work.title,
        locked=work.ledger_locked,
        shares=tuple(
            SplitShare(
                recipient_name=share.recipient_name,
                role=RecipientRole(share.role),
                percentage=share.percentage,
                recipient_id=share.recipient_id,
            )
            for share in work.shares
        ),
    )

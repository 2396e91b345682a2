"""Disbursement orchestrator.

Drives one purchase through the disbursement state machine:

1. Validating - purchase checks, ledger lookup, split validation
2. Calculating - distribution amounts, routing to the requested rail
3. Executing - one Port call per line, concurrently, each under a timeout
4. Aggregating - line outcomes decide Completed or PartiallyFailed

Invariants:
- a purchase is processed once (records are claimed by idempotency key)
- no money moves unless validation and calculation both succeeded
- money already moved is never reversed; failed lines stay failed until
  an operator re-drives them
- events are published only after the record they describe is written
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import replace
from decimal import Decimal
from typing import Any, Coroutine, Mapping

from royalty_engine.calculators import DistributionCalculator, SplitValidator
from royalty_engine.calculators.types import (
    DisbursementState,
    DistributionLine,
    LineStatus,
    PaymentRail,
    PurchaseEvent,
    SplitLedger,
    TransactionRecord,
    TransactionStatus,
    ValidationIssue,
    ValidationResult,
    utcnow,
)
from royalty_engine.config import EngineConfig
from royalty_engine.errors import (
    CalculationError,
    ImmutableRecordError,
    RedriveNotAllowedError,
    SplitValidationError,
    WorkNotFoundError,
)
from royalty_engine.events import (
    AsyncEventEmitter,
    DisbursementFinished,
    EventMetadata,
    PayoutCompleted,
    PayoutFailed,
    PurchaseReceived,
    SplitRejected,
)
from royalty_engine.ports.base import PaymentExecutionPort, PayoutRecipient
from royalty_engine.services.record_store import TransactionRecordStore, still_failed_lines
from royalty_engine.services.state_machine import DisbursementStateMachine
from royalty_engine.services.work_catalog import WorkCatalog

logger = logging.getLogger(__name__)


class DisbursementOrchestrator:
    """Turns purchases into transaction records and payouts.

    Each disbursement runs in its own task. Callers that wait on it are
    shielded from it: cancelling a waiter never cancels a disbursement.
    """

    def __init__(
        self,
        *,
        catalog: WorkCatalog,
        records: TransactionRecordStore,
        ports: Mapping[PaymentRail, PaymentExecutionPort],
        emitter: AsyncEventEmitter | None = None,
        config: EngineConfig | None = None,
        validator: SplitValidator | None = None,
        calculator: DistributionCalculator | None = None,
    ):
        self.catalog = catalog
        self.records = records
        self.ports = dict(ports)
        self.emitter = emitter or AsyncEventEmitter()
        self.config = config or EngineConfig()
        self.validator = validator or SplitValidator(self.config.validator)
        self.calculator = calculator or DistributionCalculator()
        self._tasks: dict[str, asyncio.Task[TransactionRecord]] = {}

    @property
    def in_flight(self) -> list[str]:
        """Transaction ids with a running disbursement task."""
        return [tid for tid, task in self._tasks.items() if not task.done()]

    async def submit(self, purchase: PurchaseEvent) -> TransactionRecord:
        """Claim a record for the purchase and start disbursing it.

        Idempotent: a purchase seen before returns its existing record and
        starts nothing.
        """
        record, created = await self.records.claim(purchase)
        if created:
            self._spawn(record, self._disburse(purchase, record))
        else:
            logger.info(
                "Purchase %s already claimed by transaction %s",
                purchase.purchase_id,
                record.transaction_id,
            )
        return record

    async def process(self, purchase: PurchaseEvent) -> TransactionRecord:
        """Submit a purchase and wait for its terminal record."""
        record = await self.submit(purchase)
        return await self.wait(record.transaction_id)

    async def wait(self, transaction_id: str) -> TransactionRecord:
        """Wait for a disbursement to reach a terminal status.

        A disbursement running in this process is awaited directly. One
        claimed elsewhere (a concurrent caller that has not started its
        task yet, or another process) is polled in the store. After
        ``wait_timeout_seconds`` the record is returned as stored, which
        may still be processing.
        """
        execution = self.config.execution
        loop = asyncio.get_running_loop()
        deadline = loop.time() + execution.wait_timeout_seconds
        while True:
            task = self._tasks.get(transaction_id)
            if task is not None:
                return await asyncio.shield(task)
            record = await self.records.get(transaction_id)
            if record.is_terminal or loop.time() >= deadline:
                return record
            await asyncio.sleep(execution.wait_poll_interval_seconds)

    async def drain(self) -> None:
        """Wait for every running disbursement to finish."""
        tasks = [task for task in self._tasks.values() if not task.done()]
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    async def redrive(self, transaction_id: str) -> TransactionRecord:
        """Re-attempt the lines of a transaction that are still failed.

        The original record is left untouched. A new record linked through
        ``redrive_of`` carries only the re-targeted lines. Each round has its
        own idempotency key, so concurrent requests share one round.

        Raises:
            RedriveNotAllowedError: if the transaction is still processing,
                failed before execution, or has no failed lines left.
        """
        original = await self.records.get(transaction_id)
        if original.redrive_of is not None:
            original = await self.records.get(original.redrive_of)

        if not original.is_terminal:
            raise RedriveNotAllowedError(
                f"Transaction {original.transaction_id} is still processing"
            )
        if original.overall_status == TransactionStatus.FAILED:
            raise RedriveNotAllowedError(
                f"Transaction {original.transaction_id} failed before any payout was "
                "attempted; resubmit the purchase instead"
            )

        redrives = await self.records.list_redrives(original.transaction_id)
        running = [r for r in redrives if not r.is_terminal]
        if running:
            return await self.wait(running[0].transaction_id)

        targets = still_failed_lines(original, redrives)
        if not targets:
            raise RedriveNotAllowedError(
                f"Transaction {original.transaction_id} has no failed lines to re-drive"
            )

        purchase = PurchaseEvent(
            purchase_id=original.purchase_id,
            work_id=original.work_id,
            buyer_id=original.buyer_id,
            total_amount=original.total_amount,
            currency=original.currency,
            requested_rail=original.rail,
        )
        record, created = await self.records.claim(
            purchase,
            idempotency_key=f"redrive:{original.transaction_id}:{len(redrives) + 1}",
            redrive_of=original.transaction_id,
            total_amount=sum((line.amount for line in targets), Decimal("0")),
        )
        if created:
            lines = [
                replace(line, status=LineStatus.PENDING, external_reference=None, error=None)
                for line in targets
            ]
            logger.info(
                "Re-driving %d line(s) of %s as %s",
                len(lines),
                original.transaction_id,
                record.transaction_id,
            )
            self._spawn(record, self._redrive(record, original, lines))
        return await self.wait(record.transaction_id)

    def _spawn(
        self,
        record: TransactionRecord,
        coro: Coroutine[Any, Any, TransactionRecord],
    ) -> asyncio.Task[TransactionRecord]:
        transaction_id = record.transaction_id
        task = asyncio.create_task(coro, name=f"disburse-{transaction_id}")
        self._tasks[transaction_id] = task

        def _done(t: asyncio.Task[TransactionRecord]) -> None:
            self._tasks.pop(transaction_id, None)
            if not t.cancelled() and t.exception() is not None:
                logger.error(
                    "Disbursement %s crashed",
                    transaction_id,
                    exc_info=t.exception(),
                )

        task.add_done_callback(_done)
        return task

    async def _disburse(
        self,
        purchase: PurchaseEvent,
        record: TransactionRecord,
    ) -> TransactionRecord:
        machine = DisbursementStateMachine()
        await self.emitter.emit(
            PurchaseReceived(
                metadata=EventMetadata.create(record.transaction_id),
                transaction_id=record.transaction_id,
                purchase_id=record.purchase_id,
                work_id=record.work_id,
                total_amount=record.total_amount,
                currency=record.currency,
                rail=record.rail.value,
            )
        )

        try:
            ledger = await self._validate(purchase, record)
            await self._advance(record, machine, DisbursementState.CALCULATING)
            lines = self.calculator.calculate(record.total_amount, ledger, record.currency)
            port = self._route(record.rail)
        except (SplitValidationError, CalculationError) as e:
            return await self._fail(record, machine, e)

        record.distributions = lines
        await self._execute_and_aggregate(record, machine, port)
        await self._book_sale(record)
        await self._publish_outcome(record)
        return record

    async def _redrive(
        self,
        record: TransactionRecord,
        original: TransactionRecord,
        lines: list[DistributionLine],
    ) -> TransactionRecord:
        machine = DisbursementStateMachine()
        record.validation_score = original.validation_score
        # Validation and amounts were settled by the original disbursement
        try:
            await self._advance(record, machine, DisbursementState.CALCULATING)
            port = self._route(record.rail)
        except CalculationError as e:
            return await self._fail(record, machine, e)

        record.distributions = lines
        await self._execute_and_aggregate(record, machine, port)
        await self._credit_recipients(record)
        await self._publish_outcome(record)
        return record

    async def _validate(self, purchase: PurchaseEvent, record: TransactionRecord) -> SplitLedger:
        try:
            self.calculator.validate_amount(purchase.total_amount, record.currency)
        except CalculationError as e:
            raise SplitValidationError(_rejection("invalid_amount", str(e))) from e

        # A valid ledger is locked in the same step that reads it
        try:
            ledger, result = await self.catalog.reference_split_ledger(
                purchase.work_id, self.validator.validate
            )
        except WorkNotFoundError as e:
            raise SplitValidationError(_rejection("work_not_found", str(e))) from e

        record.validation_score = result.score
        record.recommendations = list(result.recommendations)
        if not result.valid:
            raise SplitValidationError(result)
        return ledger

    def _route(self, rail: PaymentRail) -> PaymentExecutionPort:
        port = self.ports.get(rail)
        if port is None:
            raise CalculationError(f"No payment port configured for rail '{rail.value}'")
        return port

    async def _advance(
        self,
        record: TransactionRecord,
        machine: DisbursementStateMachine,
        state: DisbursementState,
        *,
        with_distributions: bool = False,
    ) -> None:
        machine.transition(state)
        record.state = state
        record.overall_status = machine.status_for(state)
        if machine.is_terminal(state):
            record.completed_at = utcnow()
        if with_distributions:
            await self._save_outcomes(record)
        else:
            await self.records.save(record)

    async def _save_outcomes(self, record: TransactionRecord) -> None:
        """Store line outcomes, retrying; the Port calls behind them are done."""
        attempts = self.config.execution.outcome_write_attempts
        delay = self.config.execution.outcome_retry_delay_seconds
        for attempt in range(1, attempts + 1):
            try:
                await self.records.save(record, with_distributions=True)
                return
            except ImmutableRecordError:
                raise
            except Exception:
                if attempt == attempts:
                    self._log_unsaved_outcomes(record)
                    raise
                logger.warning(
                    "Storing line outcomes of %s failed (attempt %d of %d)",
                    record.transaction_id,
                    attempt,
                    attempts,
                    exc_info=True,
                )
                await asyncio.sleep(delay * attempt)

    def _log_unsaved_outcomes(self, record: TransactionRecord) -> None:
        for line in record.distributions:
            logger.error(
                "Unsaved outcome: transaction=%s purchase=%s line=%d recipient=%s "
                "amount=%s %s status=%s reference=%s error=%s",
                record.transaction_id,
                record.purchase_id,
                line.line_index,
                line.recipient_id or line.recipient_name,
                line.amount,
                record.currency,
                line.status.value,
                line.external_reference,
                line.error,
            )

    async def _fail(
        self,
        record: TransactionRecord,
        machine: DisbursementStateMachine,
        error: SplitValidationError | CalculationError,
    ) -> TransactionRecord:
        if isinstance(error, SplitValidationError):
            record.errors = list(error.result.errors)
            if record.validation_score is None:
                record.validation_score = error.result.score
        else:
            record.errors = [ValidationIssue(code="calculation_error", message=str(error))]

        await self._advance(record, machine, DisbursementState.FAILED)
        logger.info(
            "Transaction %s for work %s failed before execution: %s",
            record.transaction_id,
            record.work_id,
            error,
        )
        await self.emitter.emit(
            SplitRejected(
                metadata=EventMetadata.create(record.transaction_id),
                transaction_id=record.transaction_id,
                work_id=record.work_id,
                error_codes=tuple(issue.code for issue in record.errors),
                errors=tuple(issue.message for issue in record.errors),
            )
        )
        return record

    async def _execute_and_aggregate(
        self,
        record: TransactionRecord,
        machine: DisbursementStateMachine,
        port: PaymentExecutionPort,
    ) -> None:
        await self._advance(record, machine, DisbursementState.EXECUTING)
        await asyncio.gather(
            *(self._execute_line(record, port, line) for line in record.distributions)
        )
        # Line outcomes are written exactly once, on leaving Executing
        await self._advance(
            record, machine, DisbursementState.AGGREGATING, with_distributions=True
        )
        final = (
            DisbursementState.PARTIALLY_FAILED
            if record.failed_lines
            else DisbursementState.COMPLETED
        )
        await self._advance(record, machine, final)
        logger.info(
            "Transaction %s %s: %d paid, %d failed",
            record.transaction_id,
            record.overall_status.value,
            len(record.completed_lines),
            len(record.failed_lines),
        )

    async def _execute_line(
        self,
        record: TransactionRecord,
        port: PaymentExecutionPort,
        line: DistributionLine,
    ) -> None:
        if line.amount == 0:
            line.status = LineStatus.COMPLETED
            return

        line.status = LineStatus.EXECUTING
        timeout = self.config.execution.port_timeout_seconds
        try:
            result = await asyncio.wait_for(
                port.execute(
                    recipient=PayoutRecipient(
                        recipient_name=line.recipient_name,
                        role=line.role,
                        recipient_id=line.recipient_id,
                    ),
                    amount=line.amount,
                    currency=record.currency,
                    metadata={
                        "idempotency_key": f"{record.transaction_id}:{line.line_index}",
                        "transaction_id": record.transaction_id,
                        "purchase_id": record.purchase_id,
                        "work_id": record.work_id,
                        "line_index": line.line_index,
                    },
                ),
                timeout=timeout,
            )
        except asyncio.TimeoutError:
            logger.warning(
                "%s timed out after %ss on line %d of %s",
                port.port_name,
                timeout,
                line.line_index,
                record.transaction_id,
            )
            line.status = LineStatus.FAILED
            line.error = f"{port.port_name} did not respond within {timeout}s"
            return
        except Exception as e:
            logger.exception(
                "%s raised on line %d of %s",
                port.port_name,
                line.line_index,
                record.transaction_id,
            )
            line.status = LineStatus.FAILED
            line.error = f"{type(e).__name__}: {e}"
            return

        if result.succeeded:
            line.status = LineStatus.COMPLETED
            line.external_reference = result.external_reference
        else:
            line.status = LineStatus.FAILED
            line.error = result.error or "Payout failed"

    async def _book_sale(self, record: TransactionRecord) -> None:
        """Count the sale for the work, then credit paid recipients."""
        try:
            await self.catalog.record_sale(
                record.work_id, record.total_amount, record.created_at.date()
            )
        except Exception:
            logger.exception("Failed to update work statistics for %s", record.transaction_id)
        await self._credit_recipients(record)

    async def _credit_recipients(self, record: TransactionRecord) -> None:
        for line in record.completed_lines:
            if not line.recipient_id or not line.amount:
                continue
            try:
                await self.catalog.credit_recipient(line.recipient_id, line.amount)
            except Exception:
                logger.exception(
                    "Failed to credit %s for line %d of %s",
                    line.recipient_id,
                    line.line_index,
                    record.transaction_id,
                )

    async def _publish_outcome(self, record: TransactionRecord) -> None:
        for line in record.distributions:
            metadata = EventMetadata.create(record.transaction_id)
            if line.status == LineStatus.COMPLETED:
                event = PayoutCompleted(
                    metadata=metadata,
                    transaction_id=record.transaction_id,
                    work_id=record.work_id,
                    line_index=line.line_index,
                    recipient_id=line.recipient_id,
                    recipient_name=line.recipient_name,
                    amount=line.amount,
                    currency=record.currency,
                    external_reference=line.external_reference,
                )
            else:
                event = PayoutFailed(
                    metadata=metadata,
                    transaction_id=record.transaction_id,
                    work_id=record.work_id,
                    line_index=line.line_index,
                    recipient_id=line.recipient_id,
                    recipient_name=line.recipient_name,
                    amount=line.amount,
                    currency=record.currency,
                    failure_reason=line.error or "unknown",
                )
            await self.emitter.emit(event)

        await self.emitter.emit(
            DisbursementFinished(
                metadata=EventMetadata.create(record.transaction_id),
                transaction_id=record.transaction_id,
                work_id=record.work_id,
                overall_status=record.overall_status.value,
                completed_count=len(record.completed_lines),
                failed_count=len(record.failed_lines),
                redrive_of=record.redrive_of,
            )
        )


def _rejection(code: str, message: str) -> ValidationResult:
    return ValidationResult(
        valid=False,
        score=0,
        errors=(ValidationIssue(code=code, message=message),),
    )

"""Work split ledger and reporting endpoints."""

from datetime import date
from typing import Annotated

from fastapi import APIRouter, Path, Query, status

from royalty_engine.api.dependencies import Engine
from royalty_engine.api.schemas import (
    DailyStatsResponse,
    ErrorResponse,
    RecipientEarningsResponse,
    RoyaltyReportResponse,
    SplitLedgerPublish,
    SplitLedgerResponse,
    SplitProposal,
    ValidationResponse,
)

router = APIRouter(prefix="/works", tags=["works"])
recipients_router = APIRouter(prefix="/recipients", tags=["recipients"])

WorkId = Annotated[str, Path(min_length=1, max_length=64)]


@router.get(
    "/{work_id}/split-ledger",
    response_model=SplitLedgerResponse,
    responses={404: {"model": ErrorResponse}},
)
async def get_split_ledger(engine: Engine, work_id: WorkId) -> SplitLedgerResponse:
    """Get the split ledger for a work."""
    ledger = await engine.get_split_ledger(work_id)
    return SplitLedgerResponse.model_validate(ledger)


@router.put(
    "/{work_id}/split-ledger",
    response_model=SplitLedgerResponse,
    status_code=status.HTTP_200_OK,
    responses={409: {"model": ErrorResponse}, 422: {"model": ErrorResponse}},
)
async def publish_split_ledger(
    engine: Engine,
    work_id: WorkId,
    payload: SplitLedgerPublish,
) -> SplitLedgerResponse:
    """Publish (create or replace) the split ledger for a work.

    Refused with 422 when the split is invalid and with 409 once a purchase
    has referenced the work.
    """
    ledger = await engine.publish_split_ledger(
        work_id,
        [share.to_domain() for share in payload.shares],
        title=payload.title,
    )
    return SplitLedgerResponse.model_validate(ledger)


@router.post(
    "/{work_id}/split-ledger/proposals",
    response_model=ValidationResponse,
    status_code=status.HTTP_200_OK,
)
async def propose_split_ledger(
    engine: Engine,
    work_id: WorkId,
    payload: SplitProposal,
) -> ValidationResponse:
    """Validate and score a split without storing it."""
    result = await engine.propose_split_ledger(
        work_id, [share.to_domain() for share in payload.shares]
    )
    return ValidationResponse.model_validate(result)


@router.get(
    "/{work_id}/royalty-report",
    response_model=RoyaltyReportResponse,
    responses={404: {"model": ErrorResponse}},
)
async def get_royalty_report(
    engine: Engine,
    work_id: WorkId,
    start: Annotated[date | None, Query()] = None,
    end: Annotated[date | None, Query()] = None,
) -> RoyaltyReportResponse:
    """Sales, payouts and outstanding failures for a work."""
    report = await engine.get_royalty_report(work_id)
    daily = await engine.get_daily_stats(work_id, start, end)
    return RoyaltyReportResponse(
        work_id=work_id,
        ledger=SplitLedgerResponse.model_validate(report.ledger),
        license_count=report.stats.license_count,
        total_revenue=report.stats.total_revenue,
        total_paid=report.total_paid,
        transaction_count=report.transaction_count,
        awaiting_reconciliation=list(report.awaiting_reconciliation),
        daily=[DailyStatsResponse.model_validate(d) for d in daily],
    )


@recipients_router.get(
    "/{recipient_id}/earnings",
    response_model=RecipientEarningsResponse,
)
async def get_recipient_earnings(
    engine: Engine,
    recipient_id: Annotated[str, Path(min_length=1, max_length=64)],
) -> RecipientEarningsResponse:
    """Total paid to a registered recipient across all works."""
    total = await engine.get_recipient_earnings(recipient_id)
    return RecipientEarningsResponse(recipient_id=recipient_id, total_earnings=total)

"""Purchase intake and transaction endpoints."""

from typing import Annotated

from fastapi import APIRouter, Path, Query, status

from royalty_engine.api.dependencies import Engine
from royalty_engine.api.schemas import (
    ErrorResponse,
    PurchaseAccepted,
    PurchaseCreate,
    PurchaseOutcomeResponse,
    TransactionListResponse,
    TransactionResponse,
)
from royalty_engine.calculators.types import TransactionStatus

purchases_router = APIRouter(prefix="/purchases", tags=["purchases"])
transactions_router = APIRouter(prefix="/transactions", tags=["transactions"])

TransactionId = Annotated[str, Path(min_length=1, max_length=64)]


# ============================================================================
# Purchases (buyer-facing)
# ============================================================================


@purchases_router.post(
    "",
    response_model=PurchaseAccepted,
    status_code=status.HTTP_202_ACCEPTED,
)
async def submit_purchase(engine: Engine, payload: PurchaseCreate) -> PurchaseAccepted:
    """Accept an authorized purchase for disbursement.

    Idempotent on ``purchase_id``: resubmitting returns the original
    transaction id. Disbursement continues after the response is sent.
    """
    transaction_id = await engine.submit_purchase(payload.to_domain())
    return PurchaseAccepted(purchase_id=payload.purchase_id, transaction_id=transaction_id)


@purchases_router.get(
    "/{purchase_id}",
    response_model=PurchaseOutcomeResponse,
    responses={404: {"model": ErrorResponse}},
)
async def get_purchase_outcome(
    engine: Engine,
    purchase_id: Annotated[str, Path(min_length=1, max_length=128)],
) -> PurchaseOutcomeResponse:
    """Single buyer-visible outcome of a purchase."""
    record = await engine.get_purchase_transaction(purchase_id)
    if not record.is_terminal:
        outcome = "processing"
    elif record.license_granted:
        outcome = "license_granted"
    else:
        outcome = "declined"
    return PurchaseOutcomeResponse(
        purchase_id=purchase_id,
        transaction_id=record.transaction_id,
        status=outcome,
        license_granted=record.license_granted,
    )


# ============================================================================
# Transactions (operator-facing)
# ============================================================================


@transactions_router.get("", response_model=TransactionListResponse)
async def list_transactions(
    engine: Engine,
    status_filter: Annotated[TransactionStatus | None, Query(alias="status")] = None,
    limit: Annotated[int, Query(ge=1, le=500)] = 100,
) -> TransactionListResponse:
    """List transaction records, optionally filtered by overall status."""
    records = await engine.list_transactions(status_filter, limit=limit)
    return TransactionListResponse(
        items=[TransactionResponse.model_validate(r) for r in records],
        total=len(records),
    )


@transactions_router.get(
    "/{transaction_id}",
    response_model=TransactionResponse,
    responses={404: {"model": ErrorResponse}},
)
async def get_transaction(engine: Engine, transaction_id: TransactionId) -> TransactionResponse:
    """Full transaction record with per-recipient line status."""
    record = await engine.get_transaction(transaction_id)
    return TransactionResponse.model_validate(record)


@transactions_router.post(
    "/{transaction_id}/redrive",
    response_model=TransactionResponse,
    status_code=status.HTTP_201_CREATED,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
)
async def redrive_transaction(
    engine: Engine,
    transaction_id: TransactionId,
) -> TransactionResponse:
    """Re-attempt the still-failed lines of a transaction.

    Returns the new linked record once the re-drive has finished, or as
    stored if it is still running when the wait timeout expires.
    """
    record = await engine.redrive_failed_lines(transaction_id)
    return TransactionResponse.model_validate(record)

"""FastAPI application factory."""

import logging
from contextlib import asynccontextmanager
from collections.abc import AsyncGenerator

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from royalty_engine import __version__
from royalty_engine.api.routes import (
    health_router,
    purchases_router,
    recipients_router,
    transactions_router,
    works_router,
)
from royalty_engine.calculators.types import serialize_value
from royalty_engine.config import EngineConfig, Settings, get_settings
from royalty_engine.database import Database
from royalty_engine.errors import (
    ImmutableRecordError,
    LedgerLockedError,
    RedriveNotAllowedError,
    RoyaltyEngineError,
    SplitValidationError,
    TransactionNotFoundError,
    WorkNotFoundError,
)
from royalty_engine.services import RoyaltyEngine

logger = logging.getLogger(__name__)

# Domain error -> (HTTP status, error code)
ERROR_STATUS: dict[type[RoyaltyEngineError], tuple[int, str]] = {
    WorkNotFoundError: (status.HTTP_404_NOT_FOUND, "WORK_NOT_FOUND"),
    TransactionNotFoundError: (status.HTTP_404_NOT_FOUND, "TRANSACTION_NOT_FOUND"),
    SplitValidationError: (status.HTTP_422_UNPROCESSABLE_ENTITY, "INVALID_SPLIT"),
    LedgerLockedError: (status.HTTP_409_CONFLICT, "LEDGER_LOCKED"),
    RedriveNotAllowedError: (status.HTTP_409_CONFLICT, "REDRIVE_NOT_ALLOWED"),
    ImmutableRecordError: (status.HTTP_409_CONFLICT, "RECORD_IMMUTABLE"),
}


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler."""
    # Startup
    await app.state.db.create_all()
    await app.state.engine.start()
    yield
    # Shutdown
    await app.state.engine.stop()
    await app.state.db.dispose()


def create_app(
    settings: Settings | None = None,
    engine: RoyaltyEngine | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        settings: Process settings; read from the environment when omitted.
        engine: Pre-built engine (custom ports or stores); by default one is
            built on the configured database with stub payment rails.
    """
    settings = settings or get_settings()
    db = Database(settings.database_url, echo=settings.debug)

    app = FastAPI(
        title="Royalty Engine API",
        description="Royalty split validation and purchase disbursement",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.db = db
    app.state.engine = engine or RoyaltyEngine.from_database(
        db, config=EngineConfig.from_settings(settings)
    )

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # Configure appropriately for production
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Exception handlers
    @app.exception_handler(RoyaltyEngineError)
    async def engine_exception_handler(
        request: Request, exc: RoyaltyEngineError
    ) -> JSONResponse:
        """Map domain errors to HTTP responses."""
        status_code, code = status.HTTP_400_BAD_REQUEST, "ENGINE_ERROR"
        for error_type, mapped in ERROR_STATUS.items():
            if isinstance(exc, error_type):
                status_code, code = mapped
                break

        context = None
        if isinstance(exc, SplitValidationError):
            context = serialize_value(exc.result.to_dict())
        return JSONResponse(
            status_code=status_code,
            content={"detail": str(exc), "code": code, "context": context},
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(
        request: Request, exc: Exception
    ) -> JSONResponse:
        """Handle unexpected exceptions."""
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "detail": "An unexpected error occurred",
                "code": "INTERNAL_ERROR",
            },
        )

    # Include routers
    app.include_router(health_router)
    app.include_router(works_router, prefix="/api/v1")
    app.include_router(recipients_router, prefix="/api/v1")
    app.include_router(purchases_router, prefix="/api/v1")
    app.include_router(transactions_router, prefix="/api/v1")

    return app

"""API routes."""

from royalty_engine.api.routes.health import router as health_router
from royalty_engine.api.routes.purchases import purchases_router, transactions_router
from royalty_engine.api.routes.works import recipients_router
from royalty_engine.api.routes.works import router as works_router

__all__ = [
    "health_router",
    "works_router",
    "recipients_router",
    "purchases_router",
    "transactions_router",
]

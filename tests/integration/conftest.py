"""Integration test fixtures with a real database.

Each test gets a fresh SQLite file, so the SQL stores, the conflict-aware
inserts and the HTTP API run exactly as they would against PostgreSQL
(``DATABASE_URL`` selects PostgreSQL in deployment).
"""

from collections.abc import AsyncGenerator

import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from royalty_engine.api.app import create_app
from royalty_engine.calculators.types import PaymentRail
from royalty_engine.config import EngineConfig, ExecutionConfig, Settings
from royalty_engine.database import Database
from royalty_engine.ports import CardPayoutStubPort, OnChainStubPort
from royalty_engine.services import (
    RoyaltyEngine,
    SqlTransactionRecordStore,
    SqlWorkCatalog,
)

from tests.conftest import RecordingNotifier


def sqlite_url(tmp_path) -> str:
    return f"sqlite+aiosqlite:///{tmp_path / 'royalties.db'}"


@pytest_asyncio.fixture
async def db(tmp_path) -> AsyncGenerator[Database, None]:
    """Database with every table created."""
    database = Database(sqlite_url(tmp_path))
    await database.create_all()
    yield database
    await database.dispose()


@pytest_asyncio.fixture
async def catalog(db: Database) -> SqlWorkCatalog:
    return SqlWorkCatalog(db)


@pytest_asyncio.fixture
async def records(db: Database) -> SqlTransactionRecordStore:
    return SqlTransactionRecordStore(db)


@pytest_asyncio.fixture
async def sql_engine(
    db: Database,
    card_port: CardPayoutStubPort,
    onchain_port: OnChainStubPort,
    notifier: RecordingNotifier,
) -> AsyncGenerator[RoyaltyEngine, None]:
    """SQL-backed engine with stub rails."""
    engine = RoyaltyEngine.from_database(
        db,
        ports={PaymentRail.CARD: card_port, PaymentRail.ON_CHAIN: onchain_port},
        config=EngineConfig(execution=ExecutionConfig(port_timeout_seconds=1.0)),
        notifier=notifier,
    )
    await engine.start()
    yield engine
    await engine.stop()


@pytest_asyncio.fixture
async def app(tmp_path, card_port, onchain_port):
    """Application wired to a fresh database.

    ASGITransport does not run the lifespan, so startup is done here.
    """
    settings = Settings(
        database_url=sqlite_url(tmp_path),
        host="127.0.0.1",
        port=8000,
        debug=False,
        log_level="INFO",
        port_timeout_seconds=1.0,
        default_currency="USD",
    )
    application = create_app(settings)
    db = application.state.db
    application.state.engine = RoyaltyEngine.from_database(
        db,
        ports={PaymentRail.CARD: card_port, PaymentRail.ON_CHAIN: onchain_port},
        config=EngineConfig.from_settings(settings),
    )
    await db.create_all()
    await application.state.engine.start()
    yield application
    await application.state.engine.stop()
    await db.dispose()


@pytest_asyncio.fixture
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    """Create async HTTP client for API testing."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

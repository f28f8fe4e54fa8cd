"""Shared test infrastructure for the Load Insights test suite.

Provides:
- db_session: async SQLite in-memory session with all tables created
- make_load: factory for LoadRecord candidates
- make_app_client: factory for an httpx client against a minimal FastAPI app
- auth_headers: factory for Bearer headers for an account
"""

from unittest.mock import patch

import pytest
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

# Import Base first, then models to register all tables
from load_insights.infra.database import Base, get_db

import load_insights.domain.models  # noqa: F401

from load_insights.app.errors import register_error_handlers
from load_insights.domain.schemas import LoadRecord
from load_insights.services.auth_service import create_access_token


# ---------------------------------------------------------------------------
# Database session fixture
# ---------------------------------------------------------------------------

@pytest.fixture
async def db_session():
    """Async SQLite in-memory session with all tables created.

    Creates a fresh engine + tables for each test, yields a session,
    then rolls back and tears down.
    """
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    session_factory = async_sessionmaker(
        engine, class_=AsyncSession, expire_on_commit=False,
    )

    async with session_factory() as session:
        yield session
        await session.rollback()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


# ---------------------------------------------------------------------------
# Load factory
# ---------------------------------------------------------------------------

@pytest.fixture
def make_load():
    """Factory that builds a complete LoadRecord with sensible defaults.

    Usage:
        load = make_load(load_id="L-1", broker_phone="")
    """
    def _factory(**overrides) -> LoadRecord:
        data = {
            "load_id": "L-100",
            "broker_name": "Acme Logistics",
            "broker_email": "dispatch@acme.com",
            "broker_phone": "555-1234",
            "carrier_name": "Fast Freight LLC",
            "carrier_mc": "MC123456",
            "rate_total": 2500.0,
            "linehaul_rate": 2200.0,
            "accessorials": [{"name": "Fuel", "amount": 300}],
            "equipment_type": "Dry Van",
            "stops": [
                {"type": "pickup", "city": "Dallas", "state": "TX",
                 "address": "100 Main St", "date": "2026-10-10"},
                {"type": "delivery", "city": "Atlanta", "state": "GA",
                 "address": "200 Peach St", "date": "2026-10-12"},
            ],
            "commodity": "Paper",
            "weight": "40000",
            "miles": "",
            "notes": "",
            "source_file": "rc.pdf",
            "source_channel": "upload",
            "extracted_at": "2026-10-10T12:00:00+00:00",
        }
        data.update(overrides)
        return LoadRecord.model_validate(data)

    return _factory


# ---------------------------------------------------------------------------
# HTTP helpers
# ---------------------------------------------------------------------------

@pytest.fixture
def make_app_client(db_session):
    """Factory for an AsyncClient against a FastAPI app with the given routers.

    ``get_db`` is overridden to yield the test session. Extra dependency
    overrides can be passed as a dict.
    """
    def _factory(*routers, overrides: dict | None = None) -> AsyncClient:
        test_app = FastAPI()
        register_error_handlers(test_app)
        for router in routers:
            test_app.include_router(router)

        async def _override_get_db():
            yield db_session

        test_app.dependency_overrides[get_db] = _override_get_db
        for dep, replacement in (overrides or {}).items():
            test_app.dependency_overrides[dep] = replacement

        return AsyncClient(
            transport=ASGITransport(app=test_app),
            base_url="http://testserver",
        )

    return _factory


@pytest.fixture
def auth_headers():
    def _factory(email: str = "a@x.com") -> dict:
        return {"Authorization": f"Bearer {create_access_token(email)}"}

    return _factory


@pytest.fixture
def no_broker_sync():
    """Stop ingestion from spawning the background broker sync."""
    with patch("load_insights.services.ingestion.schedule_broker_sync") as mocked:
        yield mocked

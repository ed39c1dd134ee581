"""Pytest configuration and fixtures."""

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import models  # noqa: F401
from api.helpers import get_portfolio_service
from database import Base
from main import app
from services.asset_service import AssetService
from services.client_storage import ClientStorage
from services.currency_service import CurrencyService
from services.history_service import HistoryService
from services.holdings_state import HoldingsState
from services.portfolio_service import PortfolioService
from services.price_resolver import PriceResolver
from services.pricing_service import PricingService
from tests.fixtures import NOW
from tests.fixtures.mocks import (
    SAMPLE_COINS,
    SAMPLE_CRYPTO_PRICES,
    SAMPLE_STOCK_QUOTES,
    MockCryptoSource,
    MockRateSource,
    MockStockSource,
)


@pytest.fixture(name="session_factory")
def session_factory_fixture():
    """Create an in-memory SQLite database and return its sessionmaker."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)

    TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    try:
        yield TestingSessionLocal
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture(name="db")
def db_fixture(session_factory):
    """A session on the test database, for direct assertions."""
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture(name="storage")
def storage_fixture():
    """In-memory client storage."""
    storage = ClientStorage().open()
    yield storage
    storage.close()


@pytest.fixture(name="crypto_source")
def crypto_source_fixture():
    return MockCryptoSource(coins=dict(SAMPLE_COINS), prices=dict(SAMPLE_CRYPTO_PRICES))


@pytest.fixture(name="stock_source")
def stock_source_fixture():
    return MockStockSource(quotes=dict(SAMPLE_STOCK_QUOTES))


@pytest.fixture(name="rate_source")
def rate_source_fixture():
    return MockRateSource()


@pytest.fixture(name="resolver")
def resolver_fixture(crypto_source, stock_source):
    return PriceResolver(crypto_source=crypto_source, stock_source=stock_source)


@pytest.fixture(name="portfolio_service")
def portfolio_service_fixture(storage, session_factory, resolver, rate_source):
    """A fully wired PortfolioService backed by mocks and the test database."""
    state = HoldingsState()
    service = PortfolioService(
        state,
        AssetService(state, storage, session_factory=session_factory, resolver=resolver, clock=lambda: NOW),
        PricingService(resolver=resolver, max_workers=4, clock=lambda: NOW),
        CurrencyService(storage, rate_source=rate_source, clock=lambda: NOW),
        HistoryService(storage, session_factory=session_factory, sync_delay=60),
        refresh_delay=60,
    )
    yield service
    service.close()


@pytest.fixture(name="client")
def client_fixture(portfolio_service):
    """Create a test client wired to the mocked portfolio service."""
    app.dependency_overrides[get_portfolio_service] = lambda: portfolio_service
    client = TestClient(app)
    yield client
    app.dependency_overrides.clear()

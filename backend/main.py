"""FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from api import assets, currency, portfolio, prices
from api.helpers import set_portfolio_service
from config import settings
from database import get_session_local, init_db
from logging_config import setup_logging
from services.client_storage import ClientStorage
from services.portfolio_service import create_portfolio_service

setup_logging()
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Load holdings, rate and history on startup; stop timers on shutdown."""
    storage = ClientStorage(settings.CLIENT_STORAGE_PATH).open()

    session_factory = None
    if not settings.DEMO_MODE:
        try:
            init_db()
            session_factory = get_session_local()
        except Exception:
            logger.warning("Remote store unavailable, running from local storage", exc_info=True)

    service = create_portfolio_service(settings, storage, session_factory)
    service.load()
    service.schedule_initial_refresh()
    set_portfolio_service(service)
    if settings.DEMO_MODE:
        logger.info("Demo mode: serving the built-in dataset")

    try:
        yield
    finally:
        set_portfolio_service(None)
        service.close()
        storage.close()


app = FastAPI(
    title="Fold",
    description="Personal portfolio valuation: prices, currency and net-worth history",
    version="0.1.0",
    lifespan=lifespan,
)

# CORS configuration for frontend
app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000", "http://localhost:5173"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include API routers
app.include_router(assets.router)
app.include_router(currency.router)
app.include_router(portfolio.router)
app.include_router(prices.router)


@app.get("/health")
def health_check():
    """Health check endpoint."""
    return {"status": "ok"}

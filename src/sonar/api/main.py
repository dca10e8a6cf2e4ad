"""
FastAPI Application for the Sonar signal monitor.

Main entry point for the REST API server.

Usage:
    uvicorn sonar.api.main:app --reload
    # or
    python -m sonar.api.main
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from sonar.api.routers import (
    config_router,
    market_router,
    signals_router,
    system_router,
    whales_router,
)
from sonar.config import MonitorConfig
from sonar.feeds.quotes import MarketQuoteSource
from sonar.feeds.stream import BinanceStreamSource
from sonar.monitor import SignalMonitor


logger = logging.getLogger(__name__)


# =============================================================================
# Create FastAPI Application
# =============================================================================


def create_app(
    monitor: SignalMonitor | None = None,
    market_quotes: MarketQuoteSource | None = None,
    config: MonitorConfig | None = None,
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        monitor: Monitor to serve (built from config with live sources if omitted)
        market_quotes: Exchange ticker source for /market/price
        config: Used only when monitor or market_quotes are built here
    """
    config = config or (monitor.config if monitor is not None else MonitorConfig.from_env())
    quotes = market_quotes or MarketQuoteSource(config)
    if monitor is None:
        monitor = SignalMonitor(quotes, BinanceStreamSource(config), config)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Start the monitor with the app and stop it on shutdown."""
        logger.info("Sonar API starting up...")
        await monitor.start()

        yield

        await monitor.stop()
        await quotes.close()
        logger.info("Sonar API shutting down...")

    app = FastAPI(
        title="Sonar Signal Monitor API",
        description="""
## Sonar REST API

Live market signals across crypto, US and Korean equities.

### Features
- **Signals**: Filtered signal view with a sticky selection
- **Search**: Track any symbol, even when no price is available
- **Whales**: Recent large executions above a runtime threshold
- **Market Data**: Normalized tickers from BINANCE, UPBIT, BITHUMB and OKX
        """,
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    app.state.monitor = monitor
    app.state.market_quotes = quotes

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Include routers
    app.include_router(
        signals_router,
        prefix="/api/v1/signals",
        tags=["Signals"],
    )

    app.include_router(
        whales_router,
        prefix="/api/v1/whales",
        tags=["Whales"],
    )

    app.include_router(
        config_router,
        prefix="/api/v1/config",
        tags=["Config"],
    )

    app.include_router(
        market_router,
        prefix="/api/v1/market",
        tags=["Market Data"],
    )

    app.include_router(
        system_router,
        prefix="/api/v1/system",
        tags=["System"],
    )

    # Root endpoint
    @app.get("/", include_in_schema=False)
    async def root() -> JSONResponse:
        return JSONResponse(
            {
                "name": "Sonar Signal Monitor API",
                "version": "0.1.0",
                "docs": "/docs",
                "health": "/api/v1/system/health",
            }
        )

    return app


def run(host: str = "0.0.0.0", port: int = 8000, **kwargs: Any) -> None:
    """Serve the default application with uvicorn."""
    import uvicorn

    uvicorn.run("sonar.api.main:app", host=host, port=port, **kwargs)


# Create default app instance
app = create_app()


if __name__ == "__main__":
    run(reload=True)

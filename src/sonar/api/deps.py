"""
FastAPI Dependencies.

Service instances live on app.state and are injected per request.
"""

from __future__ import annotations

from fastapi import Request

from sonar.feeds.quotes import MarketQuoteSource
from sonar.monitor import SignalMonitor


def get_monitor(request: Request) -> SignalMonitor:
    """Get the app's SignalMonitor."""
    return request.app.state.monitor


def get_market_quotes(request: Request) -> MarketQuoteSource:
    """Get the app's exchange ticker source."""
    return request.app.state.market_quotes

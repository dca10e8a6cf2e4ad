"""
Sonar REST API.

Provides a FastAPI-based REST API over a running SignalMonitor:
- /api/v1/signals - Filtered signal view, selection and search
- /api/v1/whales - Whale alert log
- /api/v1/config - Runtime thresholds
- /api/v1/market - Exchange tickers
- /api/v1/system - Health

Usage:
    # Run with uvicorn
    uvicorn sonar.api.main:app --reload

    # Or programmatically
    from sonar.api import create_app
    app = create_app(monitor)
"""

from sonar.api.main import app, create_app

__all__ = ["app", "create_app"]

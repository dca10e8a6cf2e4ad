"""
API Routers for the Sonar REST API.

Each router handles a specific domain:
- signals: Filtered view, selection and search
- whales: Whale alert log
- config: Runtime thresholds
- market: Exchange tickers
- system: Health
"""

from sonar.api.routers.market import router as market_router
from sonar.api.routers.signals import router as signals_router
from sonar.api.routers.system import config_router
from sonar.api.routers.system import router as system_router
from sonar.api.routers.whales import router as whales_router

__all__ = [
    "signals_router",
    "whales_router",
    "config_router",
    "market_router",
    "system_router",
]

"""
Sonar: live market signal monitor.

Aggregates crypto, US and Korean equity signals into one ordered registry:
- Watchlist batch refresh on a timer
- Binance stream ticker updates and whale executions
- User search that always yields a tracked, selected signal

Quick Start:
    from sonar import MonitorConfig, SignalMonitor
    from sonar.feeds import BinanceStreamSource, MarketQuoteSource

    config = MonitorConfig.from_env()
    async with MarketQuoteSource(config) as quotes:
        async with SignalMonitor(quotes, BinanceStreamSource(config), config) as monitor:
            signal = await monitor.insert_from_search("btcusdt")
            crypto = monitor.select("CRYPTO")
"""

__version__ = "0.1.0"

from sonar.config import MonitorConfig, Thresholds
from sonar.monitor import MonitorState, SignalMonitor
from sonar.signals import (
    MarketType,
    SearchResolver,
    Signal,
    SignalFilter,
    SignalRegistry,
    WhaleAlert,
    WhaleDetector,
    WhaleSignal,
)


__all__ = [
    "MarketType",
    "MonitorConfig",
    "MonitorState",
    "SearchResolver",
    "Signal",
    "SignalFilter",
    "SignalMonitor",
    "SignalRegistry",
    "Thresholds",
    "WhaleAlert",
    "WhaleDetector",
    "WhaleSignal",
    "__version__",
]

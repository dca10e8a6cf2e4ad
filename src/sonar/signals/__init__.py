"""
Sonar Signals Module.

Signal aggregation core shared by every producer:
- SignalRegistry: ordered snapshot with merge, upsert and search insert
- WhaleDetector: threshold gate, global alert log, per-signal annotations
- SearchResolver: user search to tracked, selected signal
- select_signals: filtered view that always keeps the selection visible

Records (Signal, WhaleSignal, WhaleAlert, ...) are immutable msgspec
Structs; every registry transition swaps in a new snapshot.
"""

from sonar.signals.protocol import (
    MAX_WHALE_ALERTS,
    MAX_WHALE_SIGNALS,
    REASON_NO_PRICE,
    REASON_SEARCH,
    REASON_STREAM,
    REASON_WATCHLIST,
    # Enums
    MarketType,
    OrderSide,
    SignalFilter,
    WhaleSignalType,
    # Functions
    classify_market,
    score_from_change,
    watchlist_market,
    whale_intensity,
    # Records
    Quote,
    Signal,
    TradeUpdate,
    WhaleAlert,
    WhaleEvent,
    WhaleSignal,
)
from sonar.signals.registry import SelectionState, SignalRegistry
from sonar.signals.resolver import SearchResolver
from sonar.signals.selector import matches_filter, select_signals
from sonar.signals.whale import WhaleDetector, WhaleStats


__all__ = [
    "MAX_WHALE_ALERTS",
    "MAX_WHALE_SIGNALS",
    "REASON_NO_PRICE",
    "REASON_SEARCH",
    "REASON_STREAM",
    "REASON_WATCHLIST",
    # Enums
    "MarketType",
    "OrderSide",
    "SelectionState",
    "SignalFilter",
    "WhaleSignalType",
    # Functions
    "classify_market",
    "matches_filter",
    "score_from_change",
    "select_signals",
    "watchlist_market",
    "whale_intensity",
    # Records
    "Quote",
    "Signal",
    "TradeUpdate",
    "WhaleAlert",
    "WhaleEvent",
    "WhaleSignal",
    # Services
    "SearchResolver",
    "SignalRegistry",
    "WhaleDetector",
    "WhaleStats",
]

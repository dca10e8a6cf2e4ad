"""
Signal Aggregation Protocol.

Defines the records shared by the registry, the whale detector and the
feeds that drive them.

Records:
- Signal: tracked state for one instrument
- WhaleAlert: global large-order event
- WhaleSignal: per-instrument projection of a WhaleAlert
- TradeUpdate / WhaleEvent: stream payloads
- Quote: quote source payload

All records are immutable msgspec Structs. Mutations produce new records
via msgspec.structs.replace so registry snapshots can be swapped atomically.
"""

from __future__ import annotations

import math
import time
from enum import Enum
from uuid import uuid4

import msgspec


# Buffer caps
MAX_WHALE_ALERTS = 50
MAX_WHALE_SIGNALS = 20

# Notional that maps to full whale intensity
WHALE_INTENSITY_FULL_USD = 1_000_000.0

# Reason strings attached at creation
REASON_SEARCH = "Added via Global Search"
REASON_NO_PRICE = "Price data unavailable"
REASON_WATCHLIST = "Watchlist"
REASON_STREAM = "Live stream"


# =============================================================================
# Enums
# =============================================================================


class MarketType(str, Enum):
    """Market an instrument trades on."""

    CRYPTO = "CRYPTO"
    NASDAQ = "NASDAQ"
    NYSE = "NYSE"
    KOSPI = "KOSPI"
    KOSDAQ = "KOSDAQ"

    @property
    def is_korean(self) -> bool:
        """KOSPI and KOSDAQ."""
        return "KOS" in self.value


class SignalFilter(str, Enum):
    """
    View filters for the signal list.

    - ALL: everything
    - CRYPTO: crypto only
    - KR: Korean exchanges (KOSPI/KOSDAQ)
    - GLOBAL: neither crypto nor Korean
    - WHALE: signals carrying at least one whale annotation
    """

    ALL = "ALL"
    CRYPTO = "CRYPTO"
    KR = "KR"
    GLOBAL = "GLOBAL"
    WHALE = "WHALE"

    @classmethod
    def parse(cls, value: str | SignalFilter) -> SignalFilter:
        """Parse a filter name case-insensitively."""
        if isinstance(value, SignalFilter):
            return value
        try:
            return cls(value.strip().upper())
        except ValueError:
            raise ValueError(f"Unknown signal filter: {value!r}") from None


class OrderSide(str, Enum):
    """Aggressor side of a whale order."""

    BUY = "BUY"
    SELL = "SELL"


class WhaleSignalType(str, Enum):
    """Types of whale annotations."""

    LARGE_ORDER = "LARGE_ORDER"


# =============================================================================
# Classification
# =============================================================================


def classify_market(symbol: str) -> MarketType:
    """
    Derive the market from the shape of a symbol.

    Rules are checked in order, first match wins:
    1. contains "USDT"   -> CRYPTO
    2. ends with ".KS"   -> KOSPI
    3. ends with ".KQ"   -> KOSDAQ
    4. no "." separator  -> NASDAQ
    5. anything else     -> NYSE

    Examples:
        classify_market("BTCUSDT")    # CRYPTO
        classify_market("005930.KS")  # KOSPI
        classify_market("AAPL")       # NASDAQ
        classify_market("BRK.B")      # NYSE
    """
    normalized = symbol.strip().upper()
    if "USDT" in normalized:
        return MarketType.CRYPTO
    if normalized.endswith(".KS"):
        return MarketType.KOSPI
    if normalized.endswith(".KQ"):
        return MarketType.KOSDAQ
    if "." not in normalized:
        return MarketType.NASDAQ
    return MarketType.NYSE


def watchlist_market(symbol: str) -> MarketType:
    """Market for a canonical watchlist symbol (.KS/.KQ, otherwise NASDAQ)."""
    normalized = symbol.strip().upper()
    if ".KS" in normalized:
        return MarketType.KOSPI
    if ".KQ" in normalized:
        return MarketType.KOSDAQ
    return MarketType.NASDAQ


def score_from_change(change_rate: float) -> float:
    """Momentum score 0-100 centred on 50, 5 points per percent of change."""
    if not math.isfinite(change_rate):
        return 50.0
    return round(min(100.0, max(0.0, 50.0 + 5.0 * change_rate)), 1)


def whale_intensity(amount_usd: float) -> float:
    """Intensity 0.0-1.0, saturating at $1M."""
    return min(max(amount_usd / WHALE_INTENSITY_FULL_USD, 0.0), 1.0)


def format_execution(side: OrderSide, amount_usd: float) -> str:
    """Describe an executed whale order, e.g. "Executed BUY $1,250,000"."""
    return f"Executed {side.value} ${math.floor(amount_usd):,}"


# =============================================================================
# Stream / Quote Payloads
# =============================================================================


class TradeUpdate(msgspec.Struct, frozen=True, gc=False):
    """Ticker update delivered by the stream for one crypto symbol."""

    symbol: str
    price: float
    change_rate: float
    volume: float
    score: float


class WhaleEvent(msgspec.Struct, frozen=True, gc=False):
    """Large order observed on the stream, before threshold filtering."""

    symbol: str
    side: OrderSide
    value_usd: float
    description: str = ""


class Quote(msgspec.Struct, frozen=True, gc=False):
    """Latest quote for one symbol as returned by a QuoteSource."""

    symbol: str
    price: float
    change_percent: float
    volume: float = 0.0


# =============================================================================
# Whale Records
# =============================================================================


class WhaleSignal(msgspec.Struct, frozen=True, gc=False):
    """
    Whale annotation attached to a single Signal.

    Attributes:
        type: Annotation type
        description: Human-readable summary
        intensity: 0.0-1.0, amount_usd / $1M clamped
    """

    type: WhaleSignalType
    description: str
    intensity: float

    def __post_init__(self) -> None:
        if not 0.0 <= self.intensity <= 1.0:
            raise ValueError(f"intensity must be 0.0-1.0, got {self.intensity}")

    @classmethod
    def from_event(cls, event: WhaleEvent) -> WhaleSignal:
        """Project a stream event onto an instrument annotation."""
        return cls(
            type=WhaleSignalType.LARGE_ORDER,
            description=format_execution(event.side, event.value_usd),
            intensity=whale_intensity(event.value_usd),
        )


class WhaleAlert(msgspec.Struct, frozen=True, gc=False):
    """
    Entry in the global whale alert log.

    Market is always CRYPTO: the stream is the only source of whale events.
    """

    id: str
    timestamp_ms: int
    symbol: str
    side: OrderSide
    amount_usd: float
    description: str
    market: MarketType = MarketType.CRYPTO
    type: WhaleSignalType = WhaleSignalType.LARGE_ORDER

    @classmethod
    def from_event(cls, event: WhaleEvent) -> WhaleAlert:
        """Factory method with auto-id and auto-timestamp."""
        return cls(
            id=uuid4().hex,
            timestamp_ms=time.time_ns() // 1_000_000,
            symbol=event.symbol,
            side=event.side,
            amount_usd=event.value_usd,
            description=event.description,
        )


# =============================================================================
# Signal
# =============================================================================


class Signal(msgspec.Struct, frozen=True, gc=False):
    """
    Tracked state for one instrument.

    Attributes:
        id: Stable identifier, never changes once created
        symbol: Ticker (compare uppercased)
        market: Market the instrument trades on
        price: Last price
        change_rate: Daily change in percent
        volume: Traded volume (quote currency where available)
        score: Momentum score 0-100
        reasons: Annotations set at creation
        whale_signals: Recent whale annotations, newest first
        created_ns: Creation time in nanoseconds

    Example:
        signal = Signal.create(
            symbol="AAPL",
            market=MarketType.NASDAQ,
            price=192.5,
            change_rate=1.2,
            reasons=(REASON_WATCHLIST,),
        )
    """

    id: str
    symbol: str
    market: MarketType
    price: float = 0.0
    change_rate: float = 0.0
    volume: float = 0.0
    score: float = 50.0
    reasons: tuple[str, ...] = ()
    whale_signals: tuple[WhaleSignal, ...] = ()
    created_ns: int = 0

    @classmethod
    def create(
        cls,
        symbol: str,
        market: MarketType,
        price: float = 0.0,
        change_rate: float = 0.0,
        volume: float = 0.0,
        score: float | None = None,
        reasons: tuple[str, ...] | list[str] = (),
        signal_id: str | None = None,
    ) -> Signal:
        """Factory method with auto-id, auto-timestamp and derived score."""
        return cls(
            id=signal_id or uuid4().hex[:12],
            symbol=symbol,
            market=market,
            price=price,
            change_rate=change_rate,
            volume=volume,
            score=score_from_change(change_rate) if score is None else score,
            reasons=tuple(reasons),
            created_ns=time.time_ns(),
        )

    @classmethod
    def from_trade(cls, update: TradeUpdate) -> Signal:
        """First sighting of a symbol on the stream."""
        return cls.create(
            symbol=update.symbol,
            market=MarketType.CRYPTO,
            price=update.price,
            change_rate=update.change_rate,
            volume=update.volume,
            score=update.score,
            reasons=(REASON_STREAM,),
        )

    @property
    def key(self) -> str:
        """Uppercased symbol used for identity comparisons."""
        return self.symbol.upper()

    @property
    def has_whale_activity(self) -> bool:
        return bool(self.whale_signals)

    def with_trade(self, update: TradeUpdate) -> Signal:
        """Copy with the numeric fields replaced; identity fields untouched."""
        return msgspec.structs.replace(
            self,
            price=update.price,
            change_rate=update.change_rate,
            volume=update.volume,
            score=update.score,
        )

    def with_whale_signal(
        self,
        whale_signal: WhaleSignal,
        cap: int = MAX_WHALE_SIGNALS,
    ) -> Signal:
        """Copy with whale_signal prepended, keeping the newest `cap` entries."""
        return msgspec.structs.replace(
            self,
            whale_signals=(whale_signal, *self.whale_signals)[:cap],
        )

    def to_dict(self) -> dict:
        """Convert to builtin types for serialization."""
        return msgspec.to_builtins(self)


# =============================================================================
# Exports
# =============================================================================

__all__ = [
    "MAX_WHALE_ALERTS",
    "MAX_WHALE_SIGNALS",
    "REASON_NO_PRICE",
    "REASON_SEARCH",
    "REASON_STREAM",
    "REASON_WATCHLIST",
    "WHALE_INTENSITY_FULL_USD",
    # Enums
    "MarketType",
    "OrderSide",
    "SignalFilter",
    "WhaleSignalType",
    # Functions
    "classify_market",
    "format_execution",
    "score_from_change",
    "watchlist_market",
    "whale_intensity",
    # Records
    "Quote",
    "Signal",
    "TradeUpdate",
    "WhaleAlert",
    "WhaleEvent",
    "WhaleSignal",
]

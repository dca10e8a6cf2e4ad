"""
Pytest configuration and shared fixtures for Sonar tests.
"""

from __future__ import annotations

from collections.abc import Sequence

import pytest

from sonar.signals.protocol import (
    REASON_WATCHLIST,
    MarketType,
    OrderSide,
    Quote,
    Signal,
    TradeUpdate,
    WhaleEvent,
    classify_market,
)
from sonar.signals.registry import SignalRegistry


# =============================================================================
# Async fixtures
# =============================================================================


@pytest.fixture
def anyio_backend() -> str:
    """Use asyncio as the async backend."""
    return "asyncio"


# =============================================================================
# Record factories
# =============================================================================


def make_signal(
    symbol: str,
    market: MarketType | None = None,
    price: float = 100.0,
    change_rate: float = 0.0,
    signal_id: str | None = None,
) -> Signal:
    """Build a signal with the market derived from the symbol by default."""
    return Signal.create(
        symbol=symbol,
        market=market or classify_market(symbol),
        price=price,
        change_rate=change_rate,
        reasons=(REASON_WATCHLIST,),
        signal_id=signal_id,
    )


def make_trade(symbol: str = "BTCUSDT", price: float = 64_000.0, change: float = 1.5) -> TradeUpdate:
    """Build a stream ticker update."""
    return TradeUpdate(
        symbol=symbol,
        price=price,
        change_rate=change,
        volume=2.5e9,
        score=57.5,
    )


def make_whale(
    symbol: str = "BTCUSDT",
    value_usd: float = 250_000.0,
    side: OrderSide = OrderSide.BUY,
) -> WhaleEvent:
    """Build a stream whale event."""
    return WhaleEvent(symbol=symbol, side=side, value_usd=value_usd, description="test")


class FakeQuoteSource:
    """In-memory QuoteSource with call recording."""

    def __init__(
        self,
        quotes: Sequence[Quote] = (),
        fail_batch: bool = False,
        fail_single: bool = False,
    ) -> None:
        self.quotes = {q.symbol.upper(): q for q in quotes}
        self.fail_batch = fail_batch
        self.fail_single = fail_single
        self.batch_calls: list[tuple[str, ...]] = []
        self.single_calls: list[str] = []

    async def fetch_batch(self, symbols: Sequence[str]) -> list[Quote]:
        self.batch_calls.append(tuple(symbols))
        if self.fail_batch:
            raise ConnectionError("quote service unavailable")
        return [self.quotes[s.upper()] for s in symbols if s.upper() in self.quotes]

    async def fetch_single(self, query: str) -> Quote | None:
        self.single_calls.append(query)
        if self.fail_single:
            raise ConnectionError("quote service unavailable")
        return self.quotes.get(query.strip().upper())

    async def close(self) -> None:
        pass


@pytest.fixture
def registry() -> SignalRegistry:
    """Create an empty registry."""
    return SignalRegistry()


@pytest.fixture
def quotes() -> FakeQuoteSource:
    """Quote source knowing a few equities and one crypto pair."""
    return FakeQuoteSource(
        [
            Quote("AAPL", 192.5, 1.2, 5.1e7),
            Quote("TSLA", 250.0, -3.0, 9.0e7),
            Quote("005930.KS", 71_000.0, 0.8, 1.2e7),
            Quote("BTCUSDT", 64_000.0, 2.0, 3.0e9),
        ]
    )


# =============================================================================
# Markers
# =============================================================================


def pytest_configure(config: pytest.Config) -> None:
    """Register custom markers."""
    config.addinivalue_line("markers", "slow: marks tests as slow")
    config.addinivalue_line("markers", "integration: marks integration tests")

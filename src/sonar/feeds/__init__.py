"""
Sonar Feeds Module.

Producers that feed the signal registry:
- MarketQuoteSource: HTTP batch/single quotes and exchange tickers
- BinanceStreamSource: websocket ticker and aggTrade stream
- InMemoryStreamSource: queue-backed stream for tests and demos
"""

from sonar.feeds.quotes import (
    Exchange,
    ExchangeTicker,
    MarketQuoteSource,
    QuoteSource,
)
from sonar.feeds.stream import (
    BinanceStreamSource,
    InMemoryStreamSource,
    StreamSource,
    parse_agg_trade,
    parse_ticker,
)


__all__ = [
    "BinanceStreamSource",
    "Exchange",
    "ExchangeTicker",
    "InMemoryStreamSource",
    "MarketQuoteSource",
    "QuoteSource",
    "StreamSource",
    "parse_agg_trade",
    "parse_ticker",
]

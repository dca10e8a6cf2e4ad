"""
Quote Sources: batch and single-symbol price lookups.

Each exchange endpoint is wrapped in a QuoteFetcher that follows the
3-stage TET pipeline (Transform-Extract-Transform):
1. transform_query() - Validate params into a typed query
2. extract_data() - Fetch raw JSON over HTTP
3. transform_data() - Normalize into Quote / ExchangeTicker

Normalized ticker fields per exchange:
- BINANCE: lastPrice, priceChangePercent, quoteVolume (fallback volume)
- UPBIT: trade_price, signed_change_rate * 100, acc_trade_price_24h
- BITHUMB: closing_price, fluctate_rate_24H, acc_trade_value_24H
- OKX: last, (last - open24h) / open24h * 100, volCcy24h (fallback vol24h)

MarketQuoteSource composes the fetchers into the QuoteSource contract used
by the batch refresh and the search resolver.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections.abc import Sequence
from dataclasses import dataclass
from enum import Enum
from typing import Any, Generic, Protocol, TypeVar, runtime_checkable

import httpx
import msgspec

from sonar.config import MonitorConfig
from sonar.signals.protocol import Quote


logger = logging.getLogger(__name__)


# =============================================================================
# Contract
# =============================================================================


@runtime_checkable
class QuoteSource(Protocol):
    """Price lookups consumed by the aggregation core."""

    async def fetch_batch(self, symbols: Sequence[str]) -> list[Quote]:
        """Quotes for many symbols. Missing symbols are simply absent."""
        ...

    async def fetch_single(self, query: str) -> Quote | None:
        """Quote for one user-entered symbol, or None if unknown."""
        ...


class Exchange(str, Enum):
    """Exchanges with a normalized ticker endpoint."""

    BINANCE = "BINANCE"
    UPBIT = "UPBIT"
    BITHUMB = "BITHUMB"
    OKX = "OKX"

    @classmethod
    def parse(cls, value: str) -> Exchange:
        try:
            return cls(value.strip().upper())
        except ValueError:
            raise ValueError(f"Unsupported market: {value}") from None


# =============================================================================
# Query / Response Types
# =============================================================================


@dataclass(frozen=True)
class TickerQuery:
    """
    Query for one exchange ticker.

    Symbol format is exchange-native:
    BINANCE "BTCUSDT", UPBIT "KRW-BTC", BITHUMB "BTC_KRW", OKX "BTC-USDT".
    """

    symbol: str


@dataclass(frozen=True)
class BatchQuoteQuery:
    """Query for many equity quotes at once."""

    symbols: tuple[str, ...]


class ExchangeTicker(msgspec.Struct, frozen=True, gc=False):
    """24h ticker normalized across exchanges."""

    symbol: str
    exchange: Exchange
    last_price: float
    change_24h: float  # Percent
    volume_24h: float  # Quote currency

    def to_quote(self) -> Quote:
        return Quote(
            symbol=self.symbol,
            price=self.last_price,
            change_percent=self.change_24h,
            volume=self.volume_24h,
        )


def _to_float(value: Any) -> float:
    if value is None:
        raise ValueError("missing numeric field")
    return float(value)


# =============================================================================
# Fetcher Base
# =============================================================================

Q = TypeVar("Q")
R = TypeVar("R")


class QuoteFetcher(ABC, Generic[Q, R]):
    """
    Abstract base class for HTTP quote fetchers.

    Subclasses implement the three pipeline stages; fetch() chains them.

    Example:
        fetcher = BinanceTickerFetcher(client)
        ticker = await fetcher.fetch(symbol="BTCUSDT")
    """

    DEFAULT_BASE_URL: str = ""

    def __init__(self, client: httpx.AsyncClient, base_url: str | None = None) -> None:
        """
        Initialize fetcher.

        Args:
            client: Shared HTTP client (owned by the caller)
            base_url: Override for the endpoint host
        """
        self._client = client
        self._base_url = (base_url or self.DEFAULT_BASE_URL).rstrip("/")

    @property
    def base_url(self) -> str:
        return self._base_url

    @abstractmethod
    def transform_query(self, params: dict[str, Any]) -> Q:
        """
        Transform input parameters to a typed query.

        Raises:
            ValueError: If required parameters are missing
        """
        ...

    @abstractmethod
    async def extract_data(self, query: Q) -> Any:
        """
        Fetch raw JSON from the provider.

        Raises:
            httpx.HTTPError: On transport errors or non-2xx responses
        """
        ...

    @abstractmethod
    def transform_data(self, query: Q, raw: Any) -> R:
        """
        Normalize raw JSON.

        Raises:
            ValueError: If the payload is malformed
        """
        ...

    async def fetch(self, **params: Any) -> R:
        """Execute the full pipeline."""
        query = self.transform_query(params)
        raw = await self.extract_data(query)
        return self.transform_data(query, raw)

    async def _get_json(self, path: str, params: dict[str, Any] | None = None) -> Any:
        response = await self._client.get(f"{self._base_url}{path}", params=params)
        response.raise_for_status()
        return response.json()


class TickerFetcher(QuoteFetcher[TickerQuery, ExchangeTicker]):
    """Base for single-ticker fetchers."""

    exchange: Exchange

    def transform_query(self, params: dict[str, Any]) -> TickerQuery:
        symbol = str(params.get("symbol") or "").strip()
        if not symbol:
            raise ValueError("symbol is required")
        return TickerQuery(symbol=symbol)

    def _ticker(self, query: TickerQuery, last: float, change: float, volume: float) -> ExchangeTicker:
        return ExchangeTicker(
            symbol=query.symbol,
            exchange=self.exchange,
            last_price=last,
            change_24h=change,
            volume_24h=volume,
        )


# =============================================================================
# Exchange Fetchers
# =============================================================================


class BinanceTickerFetcher(TickerFetcher):
    """Binance spot 24h ticker."""

    DEFAULT_BASE_URL = "https://api.binance.com"
    exchange = Exchange.BINANCE

    async def extract_data(self, query: TickerQuery) -> Any:
        return await self._get_json("/api/v3/ticker/24hr", {"symbol": query.symbol.upper()})

    def transform_data(self, query: TickerQuery, raw: Any) -> ExchangeTicker:
        volume = raw.get("quoteVolume")
        if volume is None:
            volume = raw.get("volume")
        return self._ticker(
            TickerQuery(symbol=raw.get("symbol", query.symbol)),
            _to_float(raw.get("lastPrice")),
            _to_float(raw.get("priceChangePercent")),
            _to_float(volume),
        )


class UpbitTickerFetcher(TickerFetcher):
    """Upbit ticker (change reported as a fraction)."""

    DEFAULT_BASE_URL = "https://api.upbit.com"
    exchange = Exchange.UPBIT

    async def extract_data(self, query: TickerQuery) -> Any:
        return await self._get_json("/v1/ticker", {"markets": query.symbol})

    def transform_data(self, query: TickerQuery, raw: Any) -> ExchangeTicker:
        if not raw:
            raise ValueError(f"Upbit returned no ticker for {query.symbol}")
        data = raw[0]
        return self._ticker(
            query,
            _to_float(data.get("trade_price")),
            _to_float(data.get("signed_change_rate")) * 100,
            _to_float(data.get("acc_trade_price_24h")),
        )


class BithumbTickerFetcher(TickerFetcher):
    """Bithumb public ticker."""

    DEFAULT_BASE_URL = "https://api.bithumb.com"
    exchange = Exchange.BITHUMB

    async def extract_data(self, query: TickerQuery) -> Any:
        return await self._get_json(f"/public/ticker/{query.symbol}")

    def transform_data(self, query: TickerQuery, raw: Any) -> ExchangeTicker:
        data = raw.get("data") or {}
        return self._ticker(
            query,
            _to_float(data.get("closing_price")),
            _to_float(data.get("fluctate_rate_24H")),
            _to_float(data.get("acc_trade_value_24H")),
        )


class OkxTickerFetcher(TickerFetcher):
    """OKX ticker (change derived from the 24h open)."""

    DEFAULT_BASE_URL = "https://www.okx.com"
    exchange = Exchange.OKX

    async def extract_data(self, query: TickerQuery) -> Any:
        return await self._get_json("/api/v5/market/ticker", {"instId": query.symbol})

    def transform_data(self, query: TickerQuery, raw: Any) -> ExchangeTicker:
        rows = raw.get("data") or []
        if not rows:
            raise ValueError(f"OKX returned no ticker for {query.symbol}")
        data = rows[0]

        last = _to_float(data.get("last"))
        open_24h = _to_float(data.get("open24h"))
        volume = data.get("volCcy24h")
        if volume is None:
            volume = data.get("vol24h")
        change = (last - open_24h) / open_24h * 100 if open_24h else 0.0

        return self._ticker(query, last, change, _to_float(volume))


class EquityQuoteFetcher(QuoteFetcher[BatchQuoteQuery, list[Quote]]):
    """
    Batch equity quotes from a Yahoo-style /v7/finance/quote endpoint.

    Rows without a price are skipped rather than failing the batch.
    """

    DEFAULT_BASE_URL = "https://query1.finance.yahoo.com"

    def transform_query(self, params: dict[str, Any]) -> BatchQuoteQuery:
        symbols = tuple(s.strip().upper() for s in params.get("symbols", ()) if s.strip())
        return BatchQuoteQuery(symbols=symbols)

    async def extract_data(self, query: BatchQuoteQuery) -> Any:
        if not query.symbols:
            return {}
        return await self._get_json("/v7/finance/quote", {"symbols": ",".join(query.symbols)})

    def transform_data(self, query: BatchQuoteQuery, raw: Any) -> list[Quote]:
        rows = ((raw or {}).get("quoteResponse") or {}).get("result") or []
        quotes: list[Quote] = []
        for row in rows:
            price = row.get("regularMarketPrice")
            if price is None or not row.get("symbol"):
                continue
            quotes.append(
                Quote(
                    symbol=row["symbol"],
                    price=float(price),
                    change_percent=float(row.get("regularMarketChangePercent") or 0.0),
                    volume=float(row.get("regularMarketVolume") or 0.0),
                )
            )
        return quotes


_TICKER_FETCHERS: dict[Exchange, type[TickerFetcher]] = {
    Exchange.BINANCE: BinanceTickerFetcher,
    Exchange.UPBIT: UpbitTickerFetcher,
    Exchange.BITHUMB: BithumbTickerFetcher,
    Exchange.OKX: OkxTickerFetcher,
}


# =============================================================================
# Composite Source
# =============================================================================


class MarketQuoteSource:
    """
    QuoteSource over HTTP.

    - fetch_batch: equities endpoint
    - fetch_single: Binance ticker for symbols containing USDT, else the
      equities endpoint; HTTP 4xx means "unknown symbol" and yields None
    - fetch_ticker: any supported exchange, normalized

    Example:
        async with MarketQuoteSource(config) as quotes:
            batch = await quotes.fetch_batch(["AAPL", "005930.KS"])
            btc = await quotes.fetch_single("btcusdt")
    """

    def __init__(
        self,
        config: MonitorConfig | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """
        Initialize source.

        Args:
            config: Endpoint and timeout settings
            client: HTTP client to use (not closed by this source)
        """
        self.config = config or MonitorConfig()
        self._client = client
        self._owns_client = client is None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self.config.http_timeout_sec,
                headers={"Accept": "application/json", "User-Agent": "sonar/0.1"},
            )
        return self._client

    def _equities(self) -> EquityQuoteFetcher:
        return EquityQuoteFetcher(self._get_client(), self.config.quote_base_url)

    def _ticker_fetcher(self, exchange: Exchange) -> TickerFetcher:
        base_url = self.config.binance_rest_url if exchange is Exchange.BINANCE else None
        return _TICKER_FETCHERS[exchange](self._get_client(), base_url)

    async def fetch_batch(self, symbols: Sequence[str]) -> list[Quote]:
        quotes = await self._equities().fetch(symbols=symbols)
        logger.debug("Fetched %d/%d quotes", len(quotes), len(symbols))
        return quotes

    async def fetch_single(self, query: str) -> Quote | None:
        symbol = query.strip().upper()
        if not symbol:
            return None

        try:
            if "USDT" in symbol:
                ticker = await self._ticker_fetcher(Exchange.BINANCE).fetch(symbol=symbol)
                return ticker.to_quote()

            quotes = await self._equities().fetch(symbols=[symbol])
        except httpx.HTTPStatusError as e:
            if e.response.is_client_error:
                logger.info("No quote for %s (HTTP %d)", symbol, e.response.status_code)
                return None
            raise

        for quote in quotes:
            if quote.symbol.upper() == symbol:
                return quote
        return quotes[0] if quotes else None

    async def fetch_ticker(self, exchange: Exchange | str, symbol: str) -> ExchangeTicker:
        """
        Normalized 24h ticker from one exchange.

        Raises:
            ValueError: Unsupported exchange or malformed payload
            httpx.HTTPError: Upstream failure
        """
        if not isinstance(exchange, Exchange):
            exchange = Exchange.parse(exchange)
        return await self._ticker_fetcher(exchange).fetch(symbol=symbol)

    async def close(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> MarketQuoteSource:
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()


__all__ = [
    "BatchQuoteQuery",
    "BinanceTickerFetcher",
    "BithumbTickerFetcher",
    "EquityQuoteFetcher",
    "Exchange",
    "ExchangeTicker",
    "MarketQuoteSource",
    "OkxTickerFetcher",
    "QuoteFetcher",
    "QuoteSource",
    "TickerFetcher",
    "TickerQuery",
    "UpbitTickerFetcher",
]

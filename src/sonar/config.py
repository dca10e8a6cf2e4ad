"""
Configuration for the signal monitor.

Covers:
- Batch refresh cadence and the canonical watchlist
- Whale threshold (runtime-reconfigurable through SignalMonitor)
- Buffer caps
- Quote and stream endpoints
"""

from __future__ import annotations

import os

import msgspec

from sonar.signals.protocol import MAX_WHALE_ALERTS, MAX_WHALE_SIGNALS


DEFAULT_WATCHLIST: tuple[str, ...] = (
    "AAPL",
    "NVDA",
    "TSLA",
    "MSFT",
    "AMZN",
    "005930.KS",  # Samsung Electronics
    "000660.KS",  # SK hynix
    "035720.KS",  # Kakao
    "247540.KQ",  # Ecopro BM
)

DEFAULT_STREAM_SYMBOLS: tuple[str, ...] = (
    "BTCUSDT",
    "ETHUSDT",
    "SOLUSDT",
    "XRPUSDT",
    "DOGEUSDT",
)


class Thresholds(msgspec.Struct, frozen=True, gc=False):
    """Detection thresholds."""

    # Minimum notional (USD) for a whale alert; equal values are accepted
    whale_usd: float = 100_000.0

    def __post_init__(self) -> None:
        if self.whale_usd < 0:
            raise ValueError(f"whale_usd must be >= 0, got {self.whale_usd}")


class MonitorConfig(msgspec.Struct, frozen=True, gc=False):
    """
    Signal monitor configuration.

    Examples:
        # Defaults (10s refresh, $100K whale threshold)
        config = MonitorConfig()

        # Custom watchlist
        config = MonitorConfig(
            watchlist=("AAPL", "005930.KS"),
            thresholds=Thresholds(whale_usd=250_000),
        )

        # From environment variables
        config = MonitorConfig.from_env()
    """

    # Batch refresh
    refresh_interval_sec: float = 10.0
    watchlist: tuple[str, ...] = DEFAULT_WATCHLIST

    # Whale detection
    thresholds: Thresholds = msgspec.field(default_factory=Thresholds)

    # Buffer caps
    max_whale_alerts: int = MAX_WHALE_ALERTS
    max_whale_signals: int = MAX_WHALE_SIGNALS

    # Quote endpoints
    quote_base_url: str = "https://query1.finance.yahoo.com"
    binance_rest_url: str = "https://api.binance.com"
    http_timeout_sec: float = 10.0

    # Stream
    binance_ws_url: str = "wss://stream.binance.com:9443/stream"
    stream_symbols: tuple[str, ...] = DEFAULT_STREAM_SYMBOLS
    stream_min_notional_usd: float = 50_000.0  # Pre-filter before the threshold
    stream_reconnect_delay_sec: float = 1.0

    def __post_init__(self) -> None:
        if self.refresh_interval_sec <= 0:
            raise ValueError("refresh_interval_sec must be > 0")
        if self.max_whale_alerts < 1 or self.max_whale_signals < 1:
            raise ValueError("buffer caps must be >= 1")
        if self.http_timeout_sec <= 0:
            raise ValueError("http_timeout_sec must be > 0")
        if self.stream_reconnect_delay_sec < 0:
            raise ValueError("stream_reconnect_delay_sec must be >= 0")

    @property
    def whale_threshold_usd(self) -> float:
        return self.thresholds.whale_usd

    @classmethod
    def from_env(cls) -> MonitorConfig:
        """
        Create config from environment variables.

        Environment variables:
        - SONAR_REFRESH_INTERVAL (default: 10)
        - SONAR_WATCHLIST (comma separated, default: built-in list)
        - SONAR_WHALE_USD (default: 100000)
        - SONAR_QUOTE_URL (default: Yahoo Finance)
        - SONAR_BINANCE_REST_URL (default: https://api.binance.com)
        - SONAR_BINANCE_WS_URL (default: Binance combined stream)
        - SONAR_STREAM_SYMBOLS (comma separated)
        - SONAR_STREAM_MIN_NOTIONAL (default: 50000)
        - SONAR_STREAM_RECONNECT_DELAY (default: 1)
        - SONAR_HTTP_TIMEOUT (default: 10)

        Returns:
            MonitorConfig from environment.
        """
        defaults = cls()

        def _list(name: str, default: tuple[str, ...]) -> tuple[str, ...]:
            raw = os.getenv(name)
            if not raw:
                return default
            return tuple(s.strip().upper() for s in raw.split(",") if s.strip())

        return cls(
            refresh_interval_sec=float(
                os.getenv("SONAR_REFRESH_INTERVAL", str(defaults.refresh_interval_sec))
            ),
            watchlist=_list("SONAR_WATCHLIST", defaults.watchlist),
            thresholds=Thresholds(
                whale_usd=float(os.getenv("SONAR_WHALE_USD", str(defaults.whale_threshold_usd)))
            ),
            quote_base_url=os.getenv("SONAR_QUOTE_URL", defaults.quote_base_url),
            binance_rest_url=os.getenv("SONAR_BINANCE_REST_URL", defaults.binance_rest_url),
            binance_ws_url=os.getenv("SONAR_BINANCE_WS_URL", defaults.binance_ws_url),
            stream_symbols=_list("SONAR_STREAM_SYMBOLS", defaults.stream_symbols),
            stream_min_notional_usd=float(
                os.getenv("SONAR_STREAM_MIN_NOTIONAL", str(defaults.stream_min_notional_usd))
            ),
            stream_reconnect_delay_sec=float(
                os.getenv(
                    "SONAR_STREAM_RECONNECT_DELAY", str(defaults.stream_reconnect_delay_sec)
                )
            ),
            http_timeout_sec=float(os.getenv("SONAR_HTTP_TIMEOUT", str(defaults.http_timeout_sec))),
        )


__all__ = [
    "DEFAULT_STREAM_SYMBOLS",
    "DEFAULT_WATCHLIST",
    "MonitorConfig",
    "Thresholds",
]

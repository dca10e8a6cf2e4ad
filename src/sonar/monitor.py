"""
SignalMonitor: lifecycle owner for the aggregation core.

Wires the producers to the registry:
- batch timer: QuoteSource.fetch_batch -> SignalRegistry.merge_batch
- stream: on_trade -> SignalRegistry.upsert, on_whale -> WhaleDetector.ingest
- search: SearchResolver.insert_from_search

State machine:
    INITIALIZED -> STARTING -> RUNNING -> STOPPING -> STOPPED (-> STARTING)

Changing the whale threshold while running is a restart transition of the
stream subscription: the old subscription is fully stopped before the new
one starts, so no event is delivered twice or evaluated by both thresholds.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Iterable, Sequence
from enum import IntEnum
from typing import Any

from sonar.config import MonitorConfig
from sonar.feeds.quotes import QuoteSource
from sonar.feeds.stream import StreamSource
from sonar.signals.protocol import (
    REASON_WATCHLIST,
    Quote,
    Signal,
    SignalFilter,
    TradeUpdate,
    WhaleAlert,
    WhaleEvent,
    watchlist_market,
)
from sonar.signals.registry import SignalRegistry
from sonar.signals.resolver import SearchResolver
from sonar.signals.whale import WhaleDetector


logger = logging.getLogger(__name__)


class MonitorState(IntEnum):
    """SignalMonitor lifecycle states."""

    INITIALIZED = 0  # Created but not started
    STARTING = 1  # start() in progress
    RUNNING = 2  # Timer and stream active
    STOPPING = 3  # stop() in progress
    STOPPED = 4  # Timer cancelled, stream unsubscribed


def watchlist_signal_id(symbol: str) -> str:
    """Deterministic id for a watchlist signal, stable across refreshes."""
    return f"watch:{symbol.strip().upper()}"


def build_watchlist_signals(
    watchlist: Iterable[str],
    quotes: Iterable[Quote],
) -> list[Signal]:
    """
    One fresh signal per canonical symbol.

    Symbols the quote source omitted get a zero-valued placeholder.
    """
    by_symbol = {q.symbol.upper(): q for q in quotes}
    signals: list[Signal] = []

    for symbol in watchlist:
        quote = by_symbol.get(symbol.upper())
        signals.append(
            Signal.create(
                symbol=symbol,
                market=watchlist_market(symbol),
                price=quote.price if quote else 0.0,
                change_rate=quote.change_percent if quote else 0.0,
                volume=quote.volume if quote else 0.0,
                reasons=(REASON_WATCHLIST,),
                signal_id=watchlist_signal_id(symbol),
            )
        )
    return signals


class SignalMonitor:
    """
    Runs the batch refresh and stream subscription against one registry.

    Example:
        monitor = SignalMonitor(quotes, stream)

        async with monitor:
            await monitor.set_whale_threshold(250_000)
            crypto = monitor.select(SignalFilter.CRYPTO)
            alerts = monitor.whale_alerts
    """

    def __init__(
        self,
        quotes: QuoteSource,
        stream: StreamSource,
        config: MonitorConfig | None = None,
        registry: SignalRegistry | None = None,
    ) -> None:
        """
        Initialize monitor.

        Args:
            quotes: Batch and single quote lookups
            stream: Push feed of ticker and whale events
            config: Monitor configuration
            registry: Registry to drive (created if omitted)
        """
        self.config = config or MonitorConfig()
        self._quotes = quotes
        self._stream = stream

        self.registry = registry or SignalRegistry(
            max_whale_signals=self.config.max_whale_signals
        )
        self.detector = WhaleDetector(self.registry, max_alerts=self.config.max_whale_alerts)
        self.resolver = SearchResolver(self.registry, quotes)

        self._watchlist = tuple(self.config.watchlist)
        self._whale_threshold_usd = self.config.whale_threshold_usd

        self._state = MonitorState.INITIALIZED
        self._refresh_task: asyncio.Task[None] | None = None
        self._transition_lock = asyncio.Lock()

        self.refresh_count = 0
        self.refresh_failures = 0
        self.stream_restarts = 0

    # =========================================================================
    # Properties
    # =========================================================================

    @property
    def state(self) -> MonitorState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._state == MonitorState.RUNNING

    @property
    def whale_threshold_usd(self) -> float:
        return self._whale_threshold_usd

    @property
    def watchlist(self) -> tuple[str, ...]:
        return self._watchlist

    @property
    def signals(self) -> list[Signal]:
        """Current registry snapshot."""
        return self.registry.signals

    @property
    def whale_alerts(self) -> list[WhaleAlert]:
        """Global whale alert log, newest first."""
        return self.detector.alerts

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def start(self) -> None:
        """
        Start the batch timer (first refresh immediately) and subscribe to
        the stream.
        """
        async with self._transition_lock:
            if self._state in (MonitorState.STARTING, MonitorState.RUNNING):
                logger.warning("Monitor already running")
                return

            self._state = MonitorState.STARTING
            logger.info(
                "Starting monitor: %d watchlist symbols, refresh every %.1fs, whale >= $%.0f",
                len(self._watchlist),
                self.config.refresh_interval_sec,
                self._whale_threshold_usd,
            )

            self._refresh_task = asyncio.create_task(self._refresh_loop(), name="watchlist-refresh")
            try:
                await self._stream.start(self._on_trade, self._on_whale)
            except Exception:
                await self._cancel_refresh()
                self._state = MonitorState.STOPPED
                raise

            self._state = MonitorState.RUNNING

    async def stop(self) -> None:
        """Halt the timer and unsubscribe from the stream, in that order."""
        async with self._transition_lock:
            if self._state not in (MonitorState.STARTING, MonitorState.RUNNING):
                return

            self._state = MonitorState.STOPPING
            try:
                await self._cancel_refresh()
                await self._stream.stop()
            finally:
                self._state = MonitorState.STOPPED
            logger.info("Monitor stopped")

    async def set_whale_threshold(self, threshold_usd: float) -> bool:
        """
        Reconfigure the whale threshold.

        While running, the stream subscription is torn down and
        re-established around the change. Past alerts are not re-evaluated.

        Returns:
            True if the threshold changed

        Raises:
            ValueError: If the threshold is negative
        """
        if threshold_usd < 0:
            raise ValueError(f"whale threshold must be >= 0, got {threshold_usd}")

        async with self._transition_lock:
            if threshold_usd == self._whale_threshold_usd:
                return False

            previous = self._whale_threshold_usd
            if self._state == MonitorState.RUNNING:
                await self._stream.stop()
                self._whale_threshold_usd = threshold_usd
                await self._stream.start(self._on_trade, self._on_whale)
                self.stream_restarts += 1
            else:
                self._whale_threshold_usd = threshold_usd

            logger.info("Whale threshold $%.0f -> $%.0f", previous, threshold_usd)
            return True

    async def _cancel_refresh(self) -> None:
        if self._refresh_task is not None:
            self._refresh_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._refresh_task
            self._refresh_task = None

    async def _refresh_loop(self) -> None:
        while True:
            try:
                await self.refresh_watchlist()
            except Exception:
                logger.exception("Error in watchlist refresh tick")
            await asyncio.sleep(self.config.refresh_interval_sec)

    async def __aenter__(self) -> SignalMonitor:
        await self.start()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.stop()

    # =========================================================================
    # Producers
    # =========================================================================

    async def refresh_watchlist(self) -> bool:
        """
        One batch refresh tick.

        Quotes are fetched without holding the registry lock. On failure the
        registry is left unchanged; the next tick retries.

        Returns:
            True if the merge was applied
        """
        try:
            quotes = await self._quotes.fetch_batch(self._watchlist)
        except Exception as e:
            self.refresh_failures += 1
            logger.warning("Watchlist refresh failed: %s", e)
            return False

        fresh = build_watchlist_signals(self._watchlist, quotes)
        await self.registry.merge_batch(fresh, self._watchlist)
        self.refresh_count += 1
        return True

    async def _on_trade(self, update: TradeUpdate) -> None:
        await self.registry.upsert(update)

    async def _on_whale(self, event: WhaleEvent) -> None:
        await self.detector.ingest(event, self._whale_threshold_usd)

    # =========================================================================
    # Presentation Contract
    # =========================================================================

    def select(
        self,
        signal_filter: SignalFilter | str = SignalFilter.ALL,
        selected_id: str | None = None,
    ) -> list[Signal]:
        """Filtered view; the selected signal is always included."""
        return self.registry.view(signal_filter, selected_id)

    def select_signal(self, signal_id: str | None) -> bool:
        """Set the selection. Returns True if the id is tracked."""
        return self.registry.select(signal_id)

    async def merge_batch(
        self,
        fresh_watchlist_signals: Sequence[Signal],
        canonical_watchlist_symbols: Sequence[str] | None = None,
    ) -> list[Signal]:
        return await self.registry.merge_batch(
            fresh_watchlist_signals,
            self._watchlist if canonical_watchlist_symbols is None else canonical_watchlist_symbols,
        )

    async def upsert(self, update: TradeUpdate) -> Signal:
        return await self.registry.upsert(update)

    async def insert_from_search(self, query: str) -> Signal:
        return await self.resolver.insert_from_search(query)

    def get_summary(self) -> dict[str, Any]:
        """Get monitor summary."""
        return {
            "state": self._state.name,
            "whale_threshold_usd": self._whale_threshold_usd,
            "refresh_interval_sec": self.config.refresh_interval_sec,
            "watchlist": list(self._watchlist),
            "signals": len(self.registry),
            "selected_id": self.registry.selected_id,
            "refresh_count": self.refresh_count,
            "refresh_failures": self.refresh_failures,
            "stream_running": self._stream.is_running,
            "stream_restarts": self.stream_restarts,
            "whales": self.detector.get_summary(),
        }


__all__ = [
    "MonitorState",
    "SignalMonitor",
    "build_watchlist_signals",
    "watchlist_signal_id",
]

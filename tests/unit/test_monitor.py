"""Unit tests for SignalMonitor lifecycle and producers."""

from __future__ import annotations

import asyncio
from typing import Any

import pytest
import websockets
from conftest import FakeQuoteSource, make_trade, make_whale
from websockets.exceptions import InvalidHandshake

from sonar.config import MonitorConfig, Thresholds
from sonar.feeds.stream import BinanceStreamSource, InMemoryStreamSource
from sonar.monitor import (
    MonitorState,
    SignalMonitor,
    build_watchlist_signals,
    watchlist_signal_id,
)
from sonar.signals.protocol import REASON_WATCHLIST, MarketType, Quote, SignalFilter


WATCHLIST = ("AAPL", "TSLA", "005930.KS", "247540.KQ")


@pytest.fixture
def config() -> MonitorConfig:
    """Fast refresh over a short watchlist."""
    return MonitorConfig(
        refresh_interval_sec=3600.0,
        watchlist=WATCHLIST,
        thresholds=Thresholds(whale_usd=100_000.0),
    )


@pytest.fixture
def stream() -> InMemoryStreamSource:
    """Create an in-memory stream."""
    return InMemoryStreamSource()


@pytest.fixture
def monitor(
    quotes: FakeQuoteSource,
    stream: InMemoryStreamSource,
    config: MonitorConfig,
) -> SignalMonitor:
    """Create a monitor over fake sources."""
    return SignalMonitor(quotes, stream, config)


async def wait_for_refresh(monitor: SignalMonitor, count: int = 1) -> None:
    """Wait until the refresh loop has completed `count` ticks."""
    for _ in range(200):
        if monitor.refresh_count + monitor.refresh_failures >= count:
            return
        await asyncio.sleep(0.005)
    raise AssertionError("refresh did not run")


# =============================================================================
# Watchlist Signals
# =============================================================================


class TestWatchlistSignals:
    """Tests for building fresh watchlist signals."""

    def test_build(self) -> None:
        """Test one signal per canonical symbol with deterministic ids."""
        signals = build_watchlist_signals(
            WATCHLIST, [Quote("AAPL", 190.0, 2.0, 1e7), Quote("005930.KS", 71_000.0, -1.0)]
        )

        assert [s.symbol for s in signals] == list(WATCHLIST)
        assert [s.market for s in signals] == [
            MarketType.NASDAQ,
            MarketType.NASDAQ,
            MarketType.KOSPI,
            MarketType.KOSDAQ,
        ]
        assert signals[0].id == "watch:AAPL"
        assert signals[0].score == 60.0
        assert all(s.reasons == (REASON_WATCHLIST,) for s in signals)

    def test_missing_quote_placeholder(self) -> None:
        """Test symbols without a quote get a zero-valued signal."""
        (signal,) = build_watchlist_signals(["TSLA"], [])

        assert signal.price == 0.0
        assert signal.score == 50.0

    def test_signal_id(self) -> None:
        """Test ids are normalized."""
        assert watchlist_signal_id(" aapl ") == "watch:AAPL"


# =============================================================================
# Lifecycle
# =============================================================================


class TestLifecycle:
    """Tests for start/stop."""

    @pytest.mark.asyncio
    async def test_start_refreshes_immediately(
        self, monitor: SignalMonitor, stream: InMemoryStreamSource, quotes: FakeQuoteSource
    ) -> None:
        """Test the first refresh runs right after start."""
        await monitor.start()
        try:
            await wait_for_refresh(monitor)

            assert monitor.state == MonitorState.RUNNING
            assert stream.is_running is True
            assert quotes.batch_calls == [WATCHLIST]
            assert [s.symbol for s in monitor.signals] == list(WATCHLIST)
            assert monitor.registry.selected_id == "watch:AAPL"
        finally:
            await monitor.stop()

        assert monitor.state == MonitorState.STOPPED
        assert stream.is_running is False

    @pytest.mark.asyncio
    async def test_context_manager(self, monitor: SignalMonitor) -> None:
        """Test async with starts and stops."""
        async with monitor:
            assert monitor.is_running is True
        assert monitor.state == MonitorState.STOPPED

    @pytest.mark.asyncio
    async def test_start_twice(self, monitor: SignalMonitor, stream: InMemoryStreamSource) -> None:
        """Test a second start is a no-op."""
        async with monitor:
            await monitor.start()
            assert stream.start_count == 1

    @pytest.mark.asyncio
    async def test_stop_before_start(self, monitor: SignalMonitor) -> None:
        """Test stop on an idle monitor is a no-op."""
        await monitor.stop()
        assert monitor.state == MonitorState.INITIALIZED

    @pytest.mark.asyncio
    async def test_stop_halts_delivery(
        self, monitor: SignalMonitor, stream: InMemoryStreamSource
    ) -> None:
        """Test events after stop never reach the registry."""
        async with monitor:
            await wait_for_refresh(monitor)
        version = monitor.registry.version

        assert stream.push_trade(make_trade("BTCUSDT")) is False
        assert monitor.registry.version == version

    @pytest.mark.asyncio
    async def test_restart(self, monitor: SignalMonitor, stream: InMemoryStreamSource) -> None:
        """Test a stopped monitor can start again."""
        async with monitor:
            pass
        async with monitor:
            assert monitor.state == MonitorState.RUNNING
        assert stream.start_count == 2


# =============================================================================
# Producers
# =============================================================================


class TestProducers:
    """Tests for batch and stream producers."""

    @pytest.mark.asyncio
    async def test_refresh_failure_leaves_registry(self, config: MonitorConfig) -> None:
        """Test a failed batch fetch changes nothing."""
        quotes = FakeQuoteSource([Quote("AAPL", 190.0, 1.0)])
        monitor = SignalMonitor(quotes, InMemoryStreamSource(), config)
        assert await monitor.refresh_watchlist() is True
        before = monitor.registry.snapshot

        quotes.fail_batch = True
        assert await monitor.refresh_watchlist() is False

        assert monitor.registry.snapshot is before
        assert monitor.refresh_failures == 1

    @pytest.mark.asyncio
    async def test_refresh_keeps_selection(self, monitor: SignalMonitor) -> None:
        """Test the auto-selected watchlist signal survives refreshes."""
        await monitor.refresh_watchlist()
        selected = monitor.registry.selected_id

        await monitor.refresh_watchlist()

        assert monitor.registry.selected_id == selected
        assert monitor.registry.selected_signal is not None

    @pytest.mark.asyncio
    async def test_stream_events_applied(
        self, monitor: SignalMonitor, stream: InMemoryStreamSource
    ) -> None:
        """Test trades upsert and whales are gated by the threshold."""
        async with monitor:
            await wait_for_refresh(monitor)
            stream.push_trade(make_trade("BTCUSDT"))
            stream.push_whale(make_whale("BTCUSDT", 99_000))
            stream.push_whale(make_whale("BTCUSDT", 150_000))
            await stream.drain()

            btc = monitor.registry.get("BTCUSDT")
            assert btc is not None
            assert len(btc.whale_signals) == 1
            assert len(monitor.whale_alerts) == 1
            assert monitor.select(SignalFilter.WHALE)[0] is btc

    @pytest.mark.asyncio
    async def test_stream_signal_survives_refresh(
        self, monitor: SignalMonitor, stream: InMemoryStreamSource
    ) -> None:
        """Test a refresh keeps stream and searched signals in front."""
        async with monitor:
            await wait_for_refresh(monitor)
            stream.push_trade(make_trade("BTCUSDT"))
            await stream.drain()
            await monitor.insert_from_search("ZZZNOPE")

            await monitor.refresh_watchlist()

            symbols = [s.symbol for s in monitor.signals]
            assert symbols == ["BTCUSDT", "ZZZNOPE", *WATCHLIST]


# =============================================================================
# Threshold Changes
# =============================================================================


class TestThresholdChange:
    """Tests for runtime whale threshold changes."""

    @pytest.mark.asyncio
    async def test_restart_exactly_once(
        self, monitor: SignalMonitor, stream: InMemoryStreamSource
    ) -> None:
        """Test a running stream is stopped and started once."""
        async with monitor:
            changed = await monitor.set_whale_threshold(500_000)

            assert changed is True
            assert stream.stop_count == 1
            assert stream.start_count == 2
            assert stream.is_running is True
            assert monitor.stream_restarts == 1

    @pytest.mark.asyncio
    async def test_new_threshold_applies(
        self, monitor: SignalMonitor, stream: InMemoryStreamSource
    ) -> None:
        """Test events after the change use the new threshold."""
        async with monitor:
            await wait_for_refresh(monitor)
            stream.push_trade(make_trade("BTCUSDT"))
            stream.push_whale(make_whale("BTCUSDT", 200_000))
            await stream.drain()

            await monitor.set_whale_threshold(500_000)
            stream.push_whale(make_whale("BTCUSDT", 200_000))
            stream.push_whale(make_whale("BTCUSDT", 500_000))
            await stream.drain()

        amounts = [a.amount_usd for a in monitor.whale_alerts]
        assert amounts == [500_000, 200_000]

    @pytest.mark.asyncio
    async def test_same_value_no_restart(
        self, monitor: SignalMonitor, stream: InMemoryStreamSource
    ) -> None:
        """Test setting the current value does nothing."""
        async with monitor:
            assert await monitor.set_whale_threshold(100_000) is False
            assert stream.start_count == 1

    @pytest.mark.asyncio
    async def test_change_while_stopped(
        self, monitor: SignalMonitor, stream: InMemoryStreamSource
    ) -> None:
        """Test a change while stopped does not start the stream."""
        assert await monitor.set_whale_threshold(0) is True

        assert monitor.whale_threshold_usd == 0
        assert stream.start_count == 0

    @pytest.mark.asyncio
    async def test_negative_rejected(self, monitor: SignalMonitor) -> None:
        """Test negative thresholds are rejected."""
        with pytest.raises(ValueError):
            await monitor.set_whale_threshold(-1)


class TestSummary:
    """Tests for the monitor summary."""

    @pytest.mark.asyncio
    async def test_summary(self, monitor: SignalMonitor) -> None:
        """Test summary fields."""
        await monitor.refresh_watchlist()

        summary = monitor.get_summary()

        assert summary["state"] == "INITIALIZED"
        assert summary["signals"] == len(WATCHLIST)
        assert summary["whale_threshold_usd"] == 100_000.0
        assert summary["stream_running"] is False
        assert summary["whales"]["alerts"] == 0


# =============================================================================
# Stream Failures
# =============================================================================


class FailingStopStream(InMemoryStreamSource):
    """In-memory stream whose unsubscribe raises after tearing down."""

    async def stop(self) -> None:
        await super().stop()
        raise RuntimeError("unsubscribe failed")


class TestStreamFailures:
    """Tests for the monitor over a misbehaving stream."""

    @pytest.fixture
    def rejecting_stream(self, monkeypatch: pytest.MonkeyPatch) -> BinanceStreamSource:
        """Binance stream whose every handshake is refused."""
        def reject(url: str, **kwargs: Any) -> None:
            raise InvalidHandshake("HTTP 451")

        monkeypatch.setattr(websockets, "connect", reject)
        return BinanceStreamSource(MonitorConfig(stream_reconnect_delay_sec=0.001))

    @pytest.mark.asyncio
    async def test_rejected_stream_threshold_change(
        self,
        quotes: FakeQuoteSource,
        config: MonitorConfig,
        rejecting_stream: BinanceStreamSource,
    ) -> None:
        """Test a threshold change restarts a stream stuck in handshake retries."""
        monitor = SignalMonitor(quotes, rejecting_stream, config)

        async with monitor:
            for _ in range(200):
                if rejecting_stream.reconnect_count >= 2:
                    break
                await asyncio.sleep(0.005)

            assert await monitor.set_whale_threshold(500_000) is True
            assert monitor.state == MonitorState.RUNNING
            assert rejecting_stream.is_running is True
            assert monitor.stream_restarts == 1

        assert monitor.state == MonitorState.STOPPED
        assert rejecting_stream.is_running is False

    @pytest.mark.asyncio
    async def test_stop_failure_still_stopped(
        self, quotes: FakeQuoteSource, config: MonitorConfig
    ) -> None:
        """Test a failing unsubscribe leaves the monitor restartable."""
        stream = FailingStopStream()
        monitor = SignalMonitor(quotes, stream, config)
        await monitor.start()

        with pytest.raises(RuntimeError):
            await monitor.stop()

        assert monitor.state == MonitorState.STOPPED
        assert monitor._refresh_task is None

        await monitor.start()
        assert monitor.state == MonitorState.RUNNING
        assert stream.start_count == 2
        with pytest.raises(RuntimeError):
            await monitor.stop()

"""Unit tests for WhaleDetector."""

from __future__ import annotations

import pytest
from conftest import make_signal, make_trade, make_whale

from sonar.signals.protocol import MAX_WHALE_ALERTS, MAX_WHALE_SIGNALS, OrderSide
from sonar.signals.registry import SignalRegistry
from sonar.signals.whale import WhaleDetector


THRESHOLD = 100_000.0


@pytest.fixture
def detector(registry: SignalRegistry) -> WhaleDetector:
    """Create a detector over the shared registry."""
    return WhaleDetector(registry)


class TestThreshold:
    """Tests for threshold filtering."""

    @pytest.mark.asyncio
    async def test_below_threshold_dropped(
        self, registry: SignalRegistry, detector: WhaleDetector
    ) -> None:
        """Test events below the threshold leave no trace."""
        await registry.upsert(make_trade("BTCUSDT"))

        alert = await detector.ingest(make_whale(value_usd=99_999.99), THRESHOLD)

        assert alert is None
        assert detector.alerts == []
        assert registry.get("BTCUSDT").whale_signals == ()
        assert detector.get_stats().dropped == 1

    @pytest.mark.asyncio
    async def test_exactly_threshold_accepted(
        self, registry: SignalRegistry, detector: WhaleDetector
    ) -> None:
        """Test an event equal to the threshold is accepted."""
        await registry.upsert(make_trade("BTCUSDT"))

        alert = await detector.ingest(make_whale(value_usd=THRESHOLD), THRESHOLD)

        assert alert is not None
        assert detector.alerts == [alert]
        signal = registry.get("BTCUSDT")
        assert len(signal.whale_signals) == 1
        assert signal.whale_signals[0].description == "Executed BUY $100,000"
        assert signal.whale_signals[0].intensity == pytest.approx(0.1)

    @pytest.mark.asyncio
    async def test_zero_threshold_accepts_everything(self, detector: WhaleDetector) -> None:
        """Test a zero threshold accepts any event."""
        assert await detector.ingest(make_whale(value_usd=1.0), 0.0) is not None

    @pytest.mark.asyncio
    @pytest.mark.parametrize("value_usd", [float("nan"), float("inf")])
    async def test_non_finite_amount_dropped(
        self, registry: SignalRegistry, detector: WhaleDetector, value_usd: float
    ) -> None:
        """Test a non-finite amount touches neither log."""
        await registry.upsert(make_trade("BTCUSDT"))

        alert = await detector.ingest(make_whale(value_usd=value_usd), 0.0)

        assert alert is None
        assert detector.alerts == []
        assert registry.get("BTCUSDT").whale_signals == ()
        assert detector.get_stats().dropped == 1
        assert detector.get_stats().accepted == 0


class TestAlertLog:
    """Tests for the global alert log."""

    @pytest.mark.asyncio
    async def test_newest_first(self, detector: WhaleDetector) -> None:
        """Test the log is ordered newest first."""
        first = await detector.ingest(make_whale(value_usd=200_000), THRESHOLD)
        second = await detector.ingest(make_whale(value_usd=300_000), THRESHOLD)

        assert detector.alerts == [second, first]

    @pytest.mark.asyncio
    async def test_cap_evicts_oldest(self, detector: WhaleDetector) -> None:
        """Test the 51st alert evicts the oldest."""
        alerts = [
            await detector.ingest(make_whale(value_usd=200_000 + i), THRESHOLD)
            for i in range(MAX_WHALE_ALERTS + 1)
        ]

        log = detector.alerts
        assert len(log) == MAX_WHALE_ALERTS
        assert log[0] is alerts[-1]
        assert alerts[0] not in log

    @pytest.mark.asyncio
    async def test_untracked_symbol_still_logged(
        self, registry: SignalRegistry, detector: WhaleDetector
    ) -> None:
        """Test alerts for untracked symbols enter the log only."""
        await registry.merge_batch([make_signal("AAPL")], ["AAPL"])
        version = registry.version

        alert = await detector.ingest(make_whale("DOGEUSDT", 500_000), THRESHOLD)

        assert detector.alerts == [alert]
        assert registry.get("DOGEUSDT") is None
        assert registry.version == version
        assert detector.get_stats().unmatched == 1

    @pytest.mark.asyncio
    async def test_get_alerts_filters(self, detector: WhaleDetector) -> None:
        """Test symbol and limit filters."""
        await detector.ingest(make_whale("BTCUSDT", 200_000), THRESHOLD)
        await detector.ingest(make_whale("ETHUSDT", 200_000), THRESHOLD)
        await detector.ingest(make_whale("BTCUSDT", 300_000, OrderSide.SELL), THRESHOLD)

        btc = detector.get_alerts(symbol="btcusdt")
        assert [a.amount_usd for a in btc] == [300_000, 200_000]
        assert len(detector.get_alerts(limit=2)) == 2

    def test_invalid_cap(self, registry: SignalRegistry) -> None:
        """Test alert cap must be positive."""
        with pytest.raises(ValueError):
            WhaleDetector(registry, max_alerts=0)


class TestSignalAnnotations:
    """Tests for per-signal whale annotations."""

    @pytest.mark.asyncio
    async def test_cap_per_signal(
        self, registry: SignalRegistry, detector: WhaleDetector
    ) -> None:
        """Test the 21st whale signal evicts the oldest annotation."""
        await registry.upsert(make_trade("BTCUSDT"))

        for i in range(MAX_WHALE_SIGNALS + 1):
            await detector.ingest(make_whale(value_usd=100_000 * (i + 1)), THRESHOLD)

        signal = registry.get("BTCUSDT")
        assert len(signal.whale_signals) == MAX_WHALE_SIGNALS
        assert signal.whale_signals[0].description == "Executed BUY $2,100,000"
        assert signal.whale_signals[-1].description == "Executed BUY $200,000"

    @pytest.mark.asyncio
    async def test_annotation_survives_upsert(
        self, registry: SignalRegistry, detector: WhaleDetector
    ) -> None:
        """Test a later ticker update keeps the whale annotations."""
        await registry.upsert(make_trade("BTCUSDT"))
        await detector.ingest(make_whale(value_usd=400_000), THRESHOLD)

        updated = await registry.upsert(make_trade("BTCUSDT", price=70_000.0))

        assert len(updated.whale_signals) == 1


class TestSummary:
    """Tests for stats and reset."""

    @pytest.mark.asyncio
    async def test_summary(self, detector: WhaleDetector) -> None:
        """Test summary statistics."""
        await detector.ingest(make_whale(value_usd=50_000), THRESHOLD)
        await detector.ingest(make_whale(value_usd=150_000), THRESHOLD)
        await detector.ingest(make_whale(value_usd=250_000), THRESHOLD)

        summary = detector.get_summary()

        assert summary["alerts"] == 2
        assert summary["max_alerts"] == MAX_WHALE_ALERTS
        assert summary["stats"]["accepted"] == 2
        assert summary["stats"]["dropped"] == 1
        assert summary["stats"]["total_value_usd"] == "400000.00"
        assert summary["stats"]["max_value_usd"] == "250000.00"

    @pytest.mark.asyncio
    async def test_reset(self, detector: WhaleDetector) -> None:
        """Test reset clears log and stats."""
        await detector.ingest(make_whale(value_usd=150_000), THRESHOLD)

        detector.reset()

        assert detector.alerts == []
        assert detector.get_stats().accepted == 0

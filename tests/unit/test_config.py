"""Tests for monitor configuration."""

from __future__ import annotations

import pytest

from sonar.config import DEFAULT_WATCHLIST, MonitorConfig, Thresholds


class TestMonitorConfig:
    """Tests for MonitorConfig."""

    def test_defaults(self) -> None:
        """Test default values."""
        config = MonitorConfig()

        assert config.refresh_interval_sec == 10.0
        assert config.whale_threshold_usd == 100_000.0
        assert config.max_whale_alerts == 50
        assert config.max_whale_signals == 20
        assert config.watchlist == DEFAULT_WATCHLIST

    def test_validation(self) -> None:
        """Test invalid values are rejected."""
        with pytest.raises(ValueError):
            MonitorConfig(refresh_interval_sec=0)
        with pytest.raises(ValueError):
            MonitorConfig(max_whale_alerts=0)
        with pytest.raises(ValueError):
            Thresholds(whale_usd=-1)
        with pytest.raises(ValueError):
            MonitorConfig(stream_reconnect_delay_sec=-0.5)

    def test_from_env(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test environment overrides."""
        monkeypatch.setenv("SONAR_REFRESH_INTERVAL", "5")
        monkeypatch.setenv("SONAR_WATCHLIST", "aapl, 005930.ks ,")
        monkeypatch.setenv("SONAR_WHALE_USD", "250000")
        monkeypatch.setenv("SONAR_STREAM_SYMBOLS", "btcusdt")
        monkeypatch.setenv("SONAR_STREAM_RECONNECT_DELAY", "2.5")

        config = MonitorConfig.from_env()

        assert config.refresh_interval_sec == 5.0
        assert config.watchlist == ("AAPL", "005930.KS")
        assert config.whale_threshold_usd == 250_000.0
        assert config.stream_symbols == ("BTCUSDT",)
        assert config.stream_reconnect_delay_sec == 2.5

    def test_from_env_defaults(self, monkeypatch: pytest.MonkeyPatch) -> None:
        """Test unset variables fall back to defaults."""
        for name in (
            "SONAR_REFRESH_INTERVAL",
            "SONAR_WATCHLIST",
            "SONAR_WHALE_USD",
            "SONAR_STREAM_RECONNECT_DELAY",
        ):
            monkeypatch.delenv(name, raising=False)

        config = MonitorConfig.from_env()

        assert config.refresh_interval_sec == 10.0
        assert config.watchlist == DEFAULT_WATCHLIST
        assert config.stream_reconnect_delay_sec == 1.0

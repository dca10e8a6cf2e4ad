"""
Whale Detector.

Filters stream-derived large-order events by a notional USD threshold and
fans accepted events into two bounded logs:
- the global alert log (newest first, capped at 50)
- the matching signal's whale annotations (newest first, capped at 20)

The threshold is passed per call. The owner (SignalMonitor) restarts the
stream subscription when it changes, so past events are never re-evaluated.
"""

from __future__ import annotations

import logging
import math
from collections import deque
from dataclasses import dataclass
from typing import Any

from sonar.signals.protocol import (
    MAX_WHALE_ALERTS,
    WhaleAlert,
    WhaleEvent,
    WhaleSignal,
)
from sonar.signals.registry import SignalRegistry


logger = logging.getLogger(__name__)


@dataclass
class WhaleStats:
    """Statistics about whale event handling."""

    accepted: int = 0
    dropped: int = 0
    unmatched: int = 0  # Accepted but no tracked signal for the symbol
    total_value_usd: float = 0.0
    max_value_usd: float = 0.0


class WhaleDetector:
    """
    Threshold filter and bounded alert log for whale events.

    Example:
        detector = WhaleDetector(registry)

        alert = await detector.ingest(event, threshold_usd=100_000)
        if alert:
            print(alert.description)

        recent = detector.get_alerts(limit=10)
    """

    def __init__(
        self,
        registry: SignalRegistry,
        max_alerts: int = MAX_WHALE_ALERTS,
    ) -> None:
        """
        Initialize detector.

        Args:
            registry: Registry receiving per-instrument annotations
            max_alerts: Cap on the global alert log
        """
        if max_alerts < 1:
            raise ValueError("max_alerts must be >= 1")

        self._registry = registry
        self._alerts: deque[WhaleAlert] = deque(maxlen=max_alerts)
        self._stats = WhaleStats()

    @property
    def alerts(self) -> list[WhaleAlert]:
        """Alert log, newest first (copy)."""
        return list(self._alerts)

    async def ingest(
        self,
        event: WhaleEvent,
        threshold_usd: float,
    ) -> WhaleAlert | None:
        """
        Evaluate one stream event against the threshold.

        Events strictly below the threshold are dropped silently; an event
        exactly at the threshold is accepted. Non-finite amounts are dropped.

        Args:
            event: Whale event from the stream
            threshold_usd: Threshold in effect at evaluation time

        Returns:
            The recorded alert, or None if dropped
        """
        if not math.isfinite(event.value_usd) or event.value_usd < threshold_usd:
            self._stats.dropped += 1
            return None

        # Both records are built before either log is touched
        alert = WhaleAlert.from_event(event)
        whale_signal = WhaleSignal.from_event(event)
        self._alerts.appendleft(alert)

        updated = await self._registry.attach_whale_signal(event.symbol, whale_signal)
        if updated is None:
            self._stats.unmatched += 1
            logger.debug("Whale alert for untracked symbol %s", event.symbol)

        self._stats.accepted += 1
        self._stats.total_value_usd += event.value_usd
        self._stats.max_value_usd = max(self._stats.max_value_usd, event.value_usd)

        logger.info(
            "Whale %s %s $%.0f (threshold $%.0f)",
            event.side.value,
            event.symbol,
            event.value_usd,
            threshold_usd,
        )
        return alert

    def get_alerts(
        self,
        limit: int | None = None,
        symbol: str | None = None,
    ) -> list[WhaleAlert]:
        """
        Get alert log entries.

        Args:
            limit: Maximum alerts to return
            symbol: Filter by symbol (case-insensitive)

        Returns:
            Alerts, newest first
        """
        alerts = list(self._alerts)
        if symbol:
            key = symbol.upper()
            alerts = [a for a in alerts if a.symbol.upper() == key]
        if limit:
            alerts = alerts[:limit]
        return alerts

    def get_stats(self) -> WhaleStats:
        return self._stats

    def get_summary(self) -> dict[str, Any]:
        """Get detector summary."""
        return {
            "alerts": len(self._alerts),
            "max_alerts": self._alerts.maxlen,
            "stats": {
                "accepted": self._stats.accepted,
                "dropped": self._stats.dropped,
                "unmatched": self._stats.unmatched,
                "total_value_usd": f"{self._stats.total_value_usd:.2f}",
                "max_value_usd": f"{self._stats.max_value_usd:.2f}",
            },
        }

    def reset(self) -> None:
        """Clear the alert log and statistics."""
        self._alerts.clear()
        self._stats = WhaleStats()


__all__ = [
    "WhaleDetector",
    "WhaleStats",
]

"""
Signal Selector.

Pure view over a registry snapshot: applies a SignalFilter while always
keeping the currently selected signal visible.
"""

from __future__ import annotations

from collections.abc import Iterable

from sonar.signals.protocol import MarketType, Signal, SignalFilter


def matches_filter(signal: Signal, signal_filter: SignalFilter) -> bool:
    """Check a single signal against a filter (selection ignored)."""
    if signal_filter is SignalFilter.CRYPTO:
        return signal.market is MarketType.CRYPTO
    if signal_filter is SignalFilter.KR:
        return signal.market.is_korean
    if signal_filter is SignalFilter.GLOBAL:
        return signal.market is not MarketType.CRYPTO and not signal.market.is_korean
    if signal_filter is SignalFilter.WHALE:
        return signal.has_whale_activity
    return True


def select_signals(
    signals: Iterable[Signal],
    signal_filter: SignalFilter | str = SignalFilter.ALL,
    selected_id: str | None = None,
) -> list[Signal]:
    """
    Produce the displayed subset of signals.

    The signal whose id equals `selected_id` is always included regardless
    of the filter. Output preserves input order.

    Args:
        signals: Registry snapshot in display order
        signal_filter: Filter (enum or case-insensitive name)
        selected_id: Currently selected signal id, if any

    Returns:
        Filtered signals

    Raises:
        ValueError: If the filter name is unknown
    """
    active = SignalFilter.parse(signal_filter)
    return [
        s for s in signals
        if (selected_id is not None and s.id == selected_id)
        or matches_filter(s, active)
    ]


__all__ = [
    "matches_filter",
    "select_signals",
]

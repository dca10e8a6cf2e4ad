"""
SignalRegistry: Authoritative in-memory store of tracked signals.

Two unsynchronized producers write to the registry:
- the batch refresh (merge_batch), on a fixed interval
- the push stream (upsert, attach_whale_signal), at arbitrary times

Every mutation is a read-modify-write transition over the whole snapshot.
Transitions are serialized by a single asyncio.Lock and publish a new tuple
in one assignment, so readers never observe a half-applied transition and
no transition works from a stale snapshot.

Transitions never await I/O while holding the lock. Network lookups happen
outside and hand their results in through the entry points below.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable
from enum import Enum

from sonar.signals.protocol import (
    MAX_WHALE_SIGNALS,
    MarketType,
    Signal,
    SignalFilter,
    TradeUpdate,
    WhaleSignal,
)
from sonar.signals.selector import select_signals


logger = logging.getLogger(__name__)


class SelectionState(str, Enum):
    """
    Auto-selection latch.

    UNSELECTED -> SELECTED fires once, on the first merge that finds no
    selection. It never resets, even if the selected signal later leaves
    the registry.
    """

    UNSELECTED = "unselected"
    SELECTED = "selected"


class SignalRegistry:
    """
    Ordered, lock-guarded collection of Signals plus the current selection.

    Order is display-significant: new stream symbols and search results are
    prepended; merges emit stream-owned, user-added, then watchlist signals.

    Example:
        registry = SignalRegistry()

        await registry.merge_batch(fresh, {"AAPL", "005930.KS"})
        await registry.upsert(TradeUpdate("BTCUSDT", 64000.0, 1.2, 3.1e9, 56.0))

        visible = registry.view(SignalFilter.CRYPTO)
    """

    def __init__(self, max_whale_signals: int = MAX_WHALE_SIGNALS) -> None:
        """
        Initialize registry.

        Args:
            max_whale_signals: Cap on whale annotations kept per signal
        """
        if max_whale_signals < 1:
            raise ValueError("max_whale_signals must be >= 1")

        self._max_whale_signals = max_whale_signals
        self._signals: tuple[Signal, ...] = ()
        self._lock = asyncio.Lock()

        self._selected_id: str | None = None
        self._selection_state = SelectionState.UNSELECTED

        # Number of applied transitions
        self._version = 0

    # =========================================================================
    # Read Access (lock-free snapshots)
    # =========================================================================

    @property
    def signals(self) -> list[Signal]:
        """Current signals in display order (copy)."""
        return list(self._signals)

    @property
    def snapshot(self) -> tuple[Signal, ...]:
        """Current immutable snapshot."""
        return self._signals

    @property
    def version(self) -> int:
        return self._version

    @property
    def selected_id(self) -> str | None:
        return self._selected_id

    @property
    def selected_signal(self) -> Signal | None:
        """Selected signal, or None if nothing is selected or it was dropped."""
        if self._selected_id is None:
            return None
        for signal in self._signals:
            if signal.id == self._selected_id:
                return signal
        return None

    @property
    def selection_state(self) -> SelectionState:
        return self._selection_state

    def __len__(self) -> int:
        return len(self._signals)

    def get(self, symbol: str) -> Signal | None:
        """Get a signal by symbol (case-insensitive)."""
        key = symbol.strip().upper()
        for signal in self._signals:
            if signal.key == key:
                return signal
        return None

    def find(self, query: str) -> Signal | None:
        """Match a query against every symbol and id (case-insensitive)."""
        needle = query.strip().upper()
        for signal in self._signals:
            if signal.key == needle or signal.id.upper() == needle:
                return signal
        return None

    def view(
        self,
        signal_filter: SignalFilter | str = SignalFilter.ALL,
        selected_id: str | None = None,
    ) -> list[Signal]:
        """
        Filtered view of the current snapshot.

        Args:
            signal_filter: View filter
            selected_id: Selection to keep visible (defaults to the registry's)
        """
        if selected_id is None:
            selected_id = self._selected_id
        return select_signals(self._signals, signal_filter, selected_id)

    # =========================================================================
    # Selection
    # =========================================================================

    def select(self, signal_id: str | None) -> bool:
        """
        Set the current selection.

        Selecting an id that is not tracked is allowed (dangling selection).

        Returns:
            True if the id refers to a tracked signal
        """
        self._selected_id = signal_id
        if signal_id is not None:
            self._selection_state = SelectionState.SELECTED
        return any(s.id == signal_id for s in self._signals)

    # =========================================================================
    # Transitions
    # =========================================================================

    async def merge_batch(
        self,
        fresh_watchlist_signals: Iterable[Signal],
        canonical_watchlist_symbols: Iterable[str],
    ) -> list[Signal]:
        """
        Replace the watchlist subset with freshly built signals.

        Partition of the current snapshot:
        - stream-owned: market == CRYPTO (kept)
        - user-added: non-crypto, symbol not canonical (kept)
        - watchlist-tracked: non-crypto, symbol canonical (discarded)

        Result order is stream-owned ++ user-added ++ fresh.

        On the first merge that finds no selection, the first fresh signal
        becomes selected (latched, fires once).

        Args:
            fresh_watchlist_signals: One signal per canonical symbol
            canonical_watchlist_symbols: The watchlist definition

        Returns:
            The new snapshot
        """
        fresh = tuple(fresh_watchlist_signals)
        canonical = {s.strip().upper() for s in canonical_watchlist_symbols}

        async with self._lock:
            stream_owned: list[Signal] = []
            user_added: list[Signal] = []
            dropped = 0

            for signal in self._signals:
                if signal.market is MarketType.CRYPTO:
                    stream_owned.append(signal)
                elif signal.key not in canonical:
                    user_added.append(signal)
                else:
                    dropped += 1

            self._commit((*stream_owned, *user_added, *fresh))

            if (
                self._selection_state is SelectionState.UNSELECTED
                and self._selected_id is None
                and fresh
            ):
                self._selected_id = fresh[0].id
                self._selection_state = SelectionState.SELECTED
                logger.info("Auto-selected %s", fresh[0].symbol)

            logger.debug(
                "Merged batch: %d stream, %d user, %d replaced by %d fresh",
                len(stream_owned),
                len(user_added),
                dropped,
                len(fresh),
            )
            return list(self._signals)

    async def upsert(self, update: TradeUpdate) -> Signal:
        """
        Apply a stream tick.

        Existing symbol: numeric fields replaced in place, id, reasons,
        whale_signals and position preserved. Unseen symbol: a new CRYPTO
        signal is prepended.

        Returns:
            The stored signal
        """
        key = update.symbol.upper()

        async with self._lock:
            for idx, signal in enumerate(self._signals):
                if signal.key == key:
                    updated = signal.with_trade(update)
                    self._commit(
                        (*self._signals[:idx], updated, *self._signals[idx + 1:])
                    )
                    return updated

            created = Signal.from_trade(update)
            self._commit((created, *self._signals))
            logger.debug("New stream symbol %s", created.symbol)
            return created

    async def attach_whale_signal(
        self,
        symbol: str,
        whale_signal: WhaleSignal,
    ) -> Signal | None:
        """
        Prepend a whale annotation to the signal tracking `symbol`.

        Returns:
            The updated signal, or None if the symbol is not tracked
        """
        key = symbol.upper()

        async with self._lock:
            for idx, signal in enumerate(self._signals):
                if signal.key == key:
                    updated = signal.with_whale_signal(
                        whale_signal, cap=self._max_whale_signals
                    )
                    self._commit(
                        (*self._signals[:idx], updated, *self._signals[idx + 1:])
                    )
                    return updated
            return None

    async def insert(self, signal: Signal, select: bool = True) -> Signal:
        """
        Prepend a new signal unless its symbol is already tracked.

        If another producer added the same symbol first, the existing signal
        is kept and returned instead.

        Args:
            signal: Signal to insert
            select: Select the resulting signal

        Returns:
            The tracked signal for that symbol
        """
        async with self._lock:
            existing = next((s for s in self._signals if s.key == signal.key), None)
            if existing is not None:
                logger.debug("Insert of %s deduplicated", signal.symbol)
                result = existing
            else:
                self._commit((signal, *self._signals))
                result = signal

            if select:
                self.select(result.id)
            return result

    def _commit(self, signals: tuple[Signal, ...]) -> None:
        """Publish a new snapshot. Caller holds the lock."""
        self._signals = signals
        self._version += 1

    async def reset(self) -> None:
        """Clear signals, selection and the auto-selection latch."""
        async with self._lock:
            self._commit(())
            self._selected_id = None
            self._selection_state = SelectionState.UNSELECTED


__all__ = [
    "SelectionState",
    "SignalRegistry",
]

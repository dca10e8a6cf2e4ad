"""
Search Resolver: on-demand tracking of user-entered symbols.

Resolution order:
1. Already tracked (symbol or id, case-insensitive): select it, no lookup
2. Quote found: new signal with the market classified from the symbol
3. Lookup absent or failed: degraded signal with zero price

Resolution never raises for an unknown symbol; the user always gets a
visible entry.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from sonar.signals.protocol import (
    REASON_NO_PRICE,
    REASON_SEARCH,
    MarketType,
    Quote,
    Signal,
    classify_market,
)
from sonar.signals.registry import SignalRegistry

if TYPE_CHECKING:
    from sonar.feeds.quotes import QuoteSource


logger = logging.getLogger(__name__)


class SearchResolver:
    """
    Resolves search queries into tracked, selected signals.

    Example:
        resolver = SearchResolver(registry, quotes)
        signal = await resolver.insert_from_search("tsla")
        assert registry.selected_id == signal.id
    """

    def __init__(self, registry: SignalRegistry, quotes: QuoteSource) -> None:
        self._registry = registry
        self._quotes = quotes

    async def insert_from_search(self, query: str) -> Signal:
        """
        Track and select the instrument named by `query`.

        The quote lookup runs without holding the registry lock. The insert
        re-checks the symbol, so a signal added by the stream in the meantime
        is selected instead of duplicated.

        Args:
            query: User-entered symbol or signal id

        Returns:
            The selected signal

        Raises:
            ValueError: If the query is blank
        """
        text = query.strip()
        if not text:
            raise ValueError("search query must not be empty")

        existing = self._registry.find(text)
        if existing is not None:
            self._registry.select(existing.id)
            logger.debug("Search %r matched tracked %s", text, existing.symbol)
            return existing

        quote = await self._lookup(text)
        if quote is not None:
            signal = Signal.create(
                symbol=quote.symbol,
                market=classify_market(quote.symbol),
                price=quote.price,
                change_rate=quote.change_percent,
                volume=quote.volume,
                reasons=(REASON_SEARCH,),
            )
        else:
            signal = self.degraded_signal(text)

        tracked = await self._registry.insert(signal, select=True)
        logger.info(
            "Search %r -> %s (%s)%s",
            text,
            tracked.symbol,
            tracked.market.value,
            "" if quote is not None else " without price data",
        )
        return tracked

    async def _lookup(self, query: str) -> Quote | None:
        try:
            return await self._quotes.fetch_single(query)
        except Exception as e:
            logger.warning("Quote lookup failed for %r: %s", query, e)
            return None

    @staticmethod
    def degraded_signal(query: str) -> Signal:
        """Placeholder for a symbol with no price data."""
        return Signal.create(
            symbol=query.strip().upper(),
            market=MarketType.NYSE,
            price=0.0,
            change_rate=0.0,
            reasons=(REASON_SEARCH, REASON_NO_PRICE),
        )


__all__ = [
    "SearchResolver",
]

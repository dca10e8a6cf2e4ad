"""
Market Data Router.

Endpoints:
- GET /price - Normalized 24h ticker from BINANCE, UPBIT, BITHUMB or OKX
"""

from __future__ import annotations

import logging
from typing import Annotated

import httpx
from fastapi import APIRouter, Depends, HTTPException, Query, status

from sonar.api.deps import get_market_quotes
from sonar.api.schemas import PriceResponse
from sonar.feeds.quotes import Exchange, MarketQuoteSource


logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/price", response_model=PriceResponse)
async def get_price(
    quotes: Annotated[MarketQuoteSource, Depends(get_market_quotes)],
    market: str = Query("BINANCE", description="BINANCE, UPBIT, BITHUMB or OKX"),
    symbol: str = Query("BTCUSDT", min_length=1, description="Exchange-native symbol"),
) -> PriceResponse:
    """
    Get a 24h ticker normalized across exchanges.

    **Symbol formats:**
    - BINANCE: BTCUSDT
    - UPBIT: KRW-BTC
    - BITHUMB: BTC_KRW
    - OKX: BTC-USDT
    """
    try:
        exchange = Exchange.parse(market)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e

    try:
        ticker = await quotes.fetch_ticker(exchange, symbol)
    except (httpx.HTTPError, ValueError) as e:
        logger.warning("Price lookup %s %s failed: %s", exchange.value, symbol, e)
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=f"{exchange.value} price lookup failed: {e}",
        ) from e

    return PriceResponse(
        market=exchange.value,
        symbol=ticker.symbol,
        last_price=ticker.last_price,
        change_24h=ticker.change_24h,
        volume_24h=ticker.volume_24h,
    )

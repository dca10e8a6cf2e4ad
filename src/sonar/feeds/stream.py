"""
Stream Sources: push feeds of crypto ticker updates and whale events.

A StreamSource delivers two kinds of events to coroutine callbacks:
- on_trade(TradeUpdate): latest ticker for a symbol
- on_whale(WhaleEvent): a single large execution

Implementations:
- BinanceStreamSource: Binance combined websocket (@ticker + @aggTrade)
- InMemoryStreamSource: queue-backed source for tests and demos

start() and stop() bracket one subscription. After stop() returns no
further callbacks are made, so a replacement subscription never overlaps.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Awaitable, Callable, Sequence
from typing import Any, Protocol, runtime_checkable

import msgspec
import websockets
from websockets.exceptions import ConnectionClosed, WebSocketException

from sonar.config import MonitorConfig
from sonar.signals.protocol import (
    OrderSide,
    TradeUpdate,
    WhaleEvent,
    score_from_change,
)


logger = logging.getLogger(__name__)

# Callback types
TradeHandler = Callable[[TradeUpdate], Awaitable[None]]
WhaleHandler = Callable[[WhaleEvent], Awaitable[None]]


@runtime_checkable
class StreamSource(Protocol):
    """Always-on push feed consumed by the aggregation core."""

    @property
    def is_running(self) -> bool:
        ...

    async def start(self, on_trade: TradeHandler, on_whale: WhaleHandler) -> None:
        """Subscribe; events are delivered until stop()."""
        ...

    async def stop(self) -> None:
        """Unsubscribe; returns once no further callbacks can fire."""
        ...


# =============================================================================
# Message Parsing (Binance payloads)
# =============================================================================


def parse_ticker(data: dict[str, Any]) -> TradeUpdate:
    """
    Convert a Binance 24hrTicker payload.

    Fields: s (symbol), c (last), P (change %), q (quote volume).
    """
    change = float(data["P"])
    return TradeUpdate(
        symbol=str(data["s"]).upper(),
        price=float(data["c"]),
        change_rate=change,
        volume=float(data.get("q") or data.get("v") or 0.0),
        score=score_from_change(change),
    )


def parse_agg_trade(data: dict[str, Any], min_notional_usd: float) -> WhaleEvent | None:
    """
    Convert a Binance aggTrade payload into a whale event.

    Fields: s (symbol), p (price), q (quantity), m (buyer is maker).
    When the buyer is the maker the aggressor sold.

    Returns:
        WhaleEvent if price * quantity >= min_notional_usd, else None
    """
    price = float(data["p"])
    qty = float(data["q"])
    notional = price * qty
    if notional < min_notional_usd:
        return None

    side = OrderSide.SELL if data.get("m") else OrderSide.BUY
    symbol = str(data["s"]).upper()
    return WhaleEvent(
        symbol=symbol,
        side=side,
        value_usd=notional,
        description=f"Aggressive {side.value} {qty:g} {symbol} @ {price:g}",
    )


# =============================================================================
# Binance Websocket
# =============================================================================


class BinanceStreamSource:
    """
    Binance combined-stream subscription.

    Opens one websocket carrying <symbol>@ticker and <symbol>@aggTrade for
    each configured symbol and reconnects after a short delay while running.

    Example:
        stream = BinanceStreamSource(config)
        await stream.start(on_trade, on_whale)
        ...
        await stream.stop()
    """

    def __init__(
        self,
        config: MonitorConfig | None = None,
        symbols: Sequence[str] | None = None,
    ) -> None:
        """
        Initialize stream.

        Args:
            config: Endpoint, symbols and pre-filter settings
            symbols: Override for config.stream_symbols
        """
        self.config = config or MonitorConfig()
        self._symbols = tuple(s.upper() for s in (symbols or self.config.stream_symbols))
        self._decoder = msgspec.json.Decoder()

        self._on_trade: TradeHandler | None = None
        self._on_whale: WhaleHandler | None = None
        self._task: asyncio.Task[None] | None = None
        self._running = False

        self.message_count = 0
        self.reconnect_count = 0

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def url(self) -> str:
        streams = "/".join(
            f"{s.lower()}@ticker/{s.lower()}@aggTrade" for s in self._symbols
        )
        return f"{self.config.binance_ws_url}?streams={streams}"

    async def start(self, on_trade: TradeHandler, on_whale: WhaleHandler) -> None:
        if self._running:
            raise RuntimeError("stream already started")

        self._on_trade = on_trade
        self._on_whale = on_whale
        self._running = True
        self._task = asyncio.create_task(self._run(), name="binance-stream")
        logger.info("Binance stream started for %d symbols", len(self._symbols))

    async def stop(self) -> None:
        self._running = False
        task, self._task = self._task, None
        try:
            if task is not None:
                task.cancel()
                try:
                    await task
                except asyncio.CancelledError:
                    pass
                except Exception:
                    logger.exception("Binance stream task failed")
        finally:
            self._on_trade = None
            self._on_whale = None
        logger.info("Binance stream stopped")

    async def _run(self) -> None:
        while self._running:
            try:
                async with websockets.connect(self.url, ping_interval=20) as ws:
                    async for message in ws:
                        await self.handle_message(message)
            except ConnectionClosed as e:
                logger.warning("Binance stream closed: %s", e)
            except WebSocketException as e:
                # Handshake rejections (HTTP 429/451) included
                logger.warning("Binance stream rejected: %s", e)
            except OSError as e:
                logger.warning("Binance stream connection failed: %s", e)
            except Exception:
                logger.exception("Error in Binance stream loop")

            if self._running:
                self.reconnect_count += 1
                await asyncio.sleep(self.config.stream_reconnect_delay_sec)

    async def handle_message(self, message: str | bytes) -> None:
        """Decode one websocket frame and dispatch it."""
        try:
            payload = self._decoder.decode(message)
        except msgspec.DecodeError:
            logger.debug("Skipping undecodable frame")
            return

        data = payload.get("data", payload) if isinstance(payload, dict) else None
        if not isinstance(data, dict):
            return

        self.message_count += 1
        event_type = data.get("e")

        try:
            if event_type == "24hrTicker" and self._on_trade is not None:
                await self._on_trade(parse_ticker(data))
            elif event_type == "aggTrade" and self._on_whale is not None:
                event = parse_agg_trade(data, self.config.stream_min_notional_usd)
                if event is not None:
                    await self._on_whale(event)
        except (KeyError, TypeError, ValueError) as e:
            logger.warning("Malformed %s message: %s", event_type, e)
        except Exception:
            logger.exception("Stream callback failed for %s", event_type)


# =============================================================================
# In-Memory Source
# =============================================================================


class InMemoryStreamSource:
    """
    Queue-backed StreamSource.

    Events pushed while stopped are discarded; events still queued when
    stop() is called are dropped with the subscription.

    Example:
        stream = InMemoryStreamSource()
        await stream.start(on_trade, on_whale)
        stream.push_trade(TradeUpdate("BTCUSDT", 64000.0, 1.5, 2e9, 57.5))
        await stream.drain()
    """

    def __init__(self) -> None:
        self._queue: asyncio.Queue[TradeUpdate | WhaleEvent] = asyncio.Queue()
        self._on_trade: TradeHandler | None = None
        self._on_whale: WhaleHandler | None = None
        self._task: asyncio.Task[None] | None = None

        self.start_count = 0
        self.stop_count = 0
        self.delivered = 0
        self.discarded = 0

    @property
    def is_running(self) -> bool:
        return self._task is not None

    async def start(self, on_trade: TradeHandler, on_whale: WhaleHandler) -> None:
        if self._task is not None:
            raise RuntimeError("stream already started")

        self._on_trade = on_trade
        self._on_whale = on_whale
        self._task = asyncio.create_task(self._dispatch(), name="memory-stream")
        self.start_count += 1

    async def stop(self) -> None:
        if self._task is None:
            return

        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        self._task = None
        self._on_trade = None
        self._on_whale = None

        while not self._queue.empty():
            self._queue.get_nowait()
            self._queue.task_done()
            self.discarded += 1
        self.stop_count += 1

    def push_trade(self, update: TradeUpdate) -> bool:
        """Queue a ticker update. Returns False if not subscribed."""
        return self._push(update)

    def push_whale(self, event: WhaleEvent) -> bool:
        """Queue a whale event. Returns False if not subscribed."""
        return self._push(event)

    def _push(self, item: TradeUpdate | WhaleEvent) -> bool:
        if self._task is None:
            self.discarded += 1
            return False
        self._queue.put_nowait(item)
        return True

    async def drain(self) -> None:
        """Wait until every queued event has been delivered."""
        await self._queue.join()

    async def _dispatch(self) -> None:
        while True:
            item = await self._queue.get()
            try:
                if isinstance(item, TradeUpdate):
                    if self._on_trade is not None:
                        await self._on_trade(item)
                elif self._on_whale is not None:
                    await self._on_whale(item)
                self.delivered += 1
            except Exception:
                logger.exception("Stream callback failed")
            finally:
                self._queue.task_done()


__all__ = [
    "BinanceStreamSource",
    "InMemoryStreamSource",
    "StreamSource",
    "TradeHandler",
    "WhaleHandler",
    "parse_agg_trade",
    "parse_ticker",
]

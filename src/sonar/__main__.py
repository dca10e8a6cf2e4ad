"""
Entry point for running Sonar as a module.

Usage:
    python -m sonar                  # Run the monitor and log the signal board
    python -m sonar --serve          # Serve the REST API
    python -m sonar --threshold 250000 --interval 5
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import os

from sonar.config import MonitorConfig, Thresholds
from sonar.signals.protocol import SignalFilter


logger = logging.getLogger("sonar")


def build_config(args: argparse.Namespace) -> MonitorConfig:
    """Environment config with command-line overrides applied."""
    config = MonitorConfig.from_env()
    changes: dict[str, object] = {}
    if args.threshold is not None:
        changes["thresholds"] = Thresholds(whale_usd=args.threshold)
    if args.interval is not None:
        changes["refresh_interval_sec"] = args.interval
    if args.watchlist:
        changes["watchlist"] = tuple(s.strip().upper() for s in args.watchlist.split(",") if s.strip())
    if not changes:
        return config

    fields = {name: getattr(config, name) for name in config.__struct_fields__}
    return MonitorConfig(**{**fields, **changes})


async def run_monitor(config: MonitorConfig, signal_filter: SignalFilter, report_every: float) -> None:
    """Run the monitor until cancelled, logging the filtered board."""
    from sonar.feeds.quotes import MarketQuoteSource
    from sonar.feeds.stream import BinanceStreamSource
    from sonar.monitor import SignalMonitor

    async with MarketQuoteSource(config) as quotes:
        async with SignalMonitor(quotes, BinanceStreamSource(config), config) as monitor:
            while True:
                await asyncio.sleep(report_every)
                board = monitor.select(signal_filter)
                logger.info("%d signals (%s)", len(board), signal_filter.value)
                for signal in board:
                    logger.info(
                        "  %-10s %-7s %12.4f %+6.2f%% score=%5.1f whales=%d",
                        signal.symbol,
                        signal.market.value,
                        signal.price,
                        signal.change_rate,
                        signal.score,
                        len(signal.whale_signals),
                    )
                for alert in monitor.whale_alerts[:5]:
                    logger.info("  WHALE %s %s", alert.symbol, alert.description)


def main() -> None:
    """Parse arguments and run the monitor or the API server."""
    parser = argparse.ArgumentParser(
        description="Sonar Signal Monitor",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    python -m sonar                          # Log the board every 10s
    python -m sonar --filter CRYPTO          # Only crypto signals
    python -m sonar --serve --port 8080      # REST API on :8080

Environment:
    SONAR_WHALE_USD, SONAR_REFRESH_INTERVAL, SONAR_WATCHLIST, ...
        """,
    )
    parser.add_argument(
        "--serve",
        action="store_true",
        default=False,
        help="Serve the REST API instead of logging the board",
    )
    parser.add_argument("--host", default="0.0.0.0", help="API bind host")
    parser.add_argument("--port", type=int, default=8000, help="API bind port")
    parser.add_argument("--threshold", type=float, default=None, help="Whale threshold in USD")
    parser.add_argument("--interval", type=float, default=None, help="Watchlist refresh seconds")
    parser.add_argument("--watchlist", default=None, help="Comma separated watchlist symbols")
    parser.add_argument(
        "--filter",
        default="ALL",
        help="Board filter: ALL, CRYPTO, KR, GLOBAL or WHALE",
    )
    parser.add_argument("--report", type=float, default=10.0, help="Board log period in seconds")
    parser.add_argument(
        "--log-level",
        default=os.getenv("SONAR_LOG_LEVEL", "INFO"),
        help="Logging level (default: INFO)",
    )

    args = parser.parse_args()

    logging.basicConfig(
        level=args.log_level.upper(),
        format="%(asctime)s %(levelname)-7s %(name)s: %(message)s",
    )

    try:
        signal_filter = SignalFilter.parse(args.filter)
        config = build_config(args)
    except ValueError as e:
        parser.error(str(e))

    if args.serve:
        # Import here to avoid slow startup for --help
        import uvicorn

        from sonar.api.main import create_app

        uvicorn.run(create_app(config=config), host=args.host, port=args.port)
        return

    try:
        asyncio.run(run_monitor(config, signal_filter, args.report))
    except KeyboardInterrupt:
        logger.info("Interrupted")


if __name__ == "__main__":
    main()

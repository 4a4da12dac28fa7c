"""Stock Draft CLI entry point."""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

from dotenv import load_dotenv
from pydantic import ValidationError

load_dotenv()

from stockdraft import __version__
from stockdraft.config import get_settings
from stockdraft.exceptions import StockDraftError
from stockdraft.live import build_service
from stockdraft.market import get_market_status
from stockdraft.scheduler import start_scheduler
from stockdraft.standings import calculate_standings, format_percent, rank_change

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)

logger = logging.getLogger(__name__)

CONFIG_TEMPLATE = """# Stock Draft Configuration
# Operational parameters only. API keys and secrets belong in .env.

quotes:
  delay_seconds: 1.0
  fetch_mode: alternating   # or: sequential
  batch_groups: 2
  max_retries: 1

cache:
  shared_ttl_seconds: 300
  local_ttl_seconds: 60
  direct_fetch_on_miss: true

scheduler:
  refresh_minutes: 1
  close_hour: 16
  close_minute: 30
  embedded: false

contest:
  players_file: players.json
  stocks_per_player: 10
"""


def _init_logfire() -> None:
    """Initialize Logfire if available, without failing commands."""
    try:
        from stockdraft.observability import initialize_logfire

        initialize_logfire(get_settings())
    except Exception as e:
        logger.warning(f"Failed to initialize Logfire: {e}")


def cmd_init(args: argparse.Namespace) -> int:
    """Initialize data directory structure and configuration files."""
    data_dir = Path(args.data_dir).resolve()

    try:
        (data_dir / "history").mkdir(parents=True, exist_ok=True)
        logger.info(f"Created data directory: {data_dir}")

        config_path = data_dir / "config.yaml"
        if not config_path.exists():
            config_path.write_text(CONFIG_TEMPLATE)
            logger.info(f"Created config template: {config_path}")
        else:
            logger.info(f"Config file already exists: {config_path}")

        prices_path = data_dir / "current.json"
        if not prices_path.exists():
            prices_path.write_text(json.dumps({"lastUpdated": "", "prices": {}}, indent=2))
            logger.info(f"Created empty price file: {prices_path}")

        print(f"\n✓ Data directory initialized at {data_dir}")
        print("\nNext steps:")
        print("1. Add the draft results to data/players.json")
        print("2. Put FINNHUB_API_KEY (and CRON_SECRET, REDIS_URL) in .env")
        print("3. Run 'python -m stockdraft close' to record base close prices")
        print("4. Run 'python -m stockdraft serve' to start the API\n")

        return 0

    except OSError as e:
        logger.error(f"Failed to initialize: {e}")
        print(f"\n❌ Initialization failed: {e}\n")
        return 1


def cmd_config(args: argparse.Namespace) -> int:
    """Display merged configuration."""
    try:
        settings = get_settings()

        print("\n=== Stock Draft Configuration ===\n")
        print(f"Data Directory: {settings.data_dir}")
        print(f"Environment: {settings.environment}\n")

        print("Quotes:")
        print(f"  Base URL: {settings.quotes.base_url}")
        print(f"  Fetch Mode: {settings.quotes.fetch_mode}")
        print(f"  Delay Between Calls: {settings.quotes.delay_seconds}s")
        print(f"  Batch Groups: {settings.quotes.batch_groups}\n")

        print("Cache (seconds):")
        print(f"  Shared TTL: {settings.cache.shared_ttl_seconds}")
        print(f"  Local TTL: {settings.cache.local_ttl_seconds}")
        print(f"  Direct Fetch On Miss: {settings.cache.direct_fetch_on_miss}\n")

        print("Scheduler:")
        print(f"  Refresh Every: {settings.scheduler.refresh_minutes} min")
        print(
            f"  Daily Close: {settings.scheduler.close_hour:02d}:"
            f"{settings.scheduler.close_minute:02d} ET"
        )
        print(f"  Embedded In Server: {settings.scheduler.embedded}\n")

        print("Secrets:")
        print(f"  Finnhub: {'✓ Set' if settings.finnhub_api_key else '✗ Not set'}")
        print(f"  Cron Secret: {'✓ Set' if settings.cron_secret else '✗ Not set'}")
        print(f"  Redis: {'✓ Set' if settings.redis_url else '✗ Not set (in-process cache)'}")
        print(f"  Logfire: {'✓ Set' if settings.logfire_token else '✗ Not set'}\n")

        return 0

    except ValidationError as e:
        print("\n❌ Configuration Error:\n")
        for error in e.errors():
            print(f"  • {'.'.join(str(x) for x in error['loc'])}: {error['msg']}")
        print()
        return 1


def cmd_standings(args: argparse.Namespace) -> int:
    """Print the current leaderboard."""
    try:
        service = build_service(get_settings())

        previous: dict[str, int] = {}
        if args.previous:
            previous = json.loads(Path(args.previous).read_text())

        async def run():
            try:
                return await service.current_prices()
            finally:
                await service.cache.close()

        prices, live = asyncio.run(run())
        standings = calculate_standings(service.contest.players, prices, previous)

        print(f"\n=== {service.contest.contest_info.name} ===\n")
        print(f"Market: {live.market_status.message} | Prices: {live.source}\n")
        for s in standings:
            change = rank_change(s.rank, previous.get(s.player.id))
            arrow = {"up": "↑", "down": "↓", "same": "–"}.get(change, " ")
            print(
                f"  {s.rank:>2}. {arrow} {s.player.name:<14} {format_percent(s.total_return):>9}"
                f"   best {s.best_stock.ticker} {format_percent(s.best_stock.return_)}"
                f"   worst {s.worst_stock.ticker} {format_percent(s.worst_stock.return_)}"
            )
        print()
        return 0

    except StockDraftError as e:
        logger.error(f"Standings failed: {e}")
        print(f"\n❌ Standings failed: {e}\n")
        return 1


def cmd_refresh(args: argparse.Namespace) -> int:
    """Run one live price refresh cycle."""
    _init_logfire()

    try:
        service = build_service(get_settings())

        async def run():
            try:
                return await service.refresh()
            finally:
                await service.cache.close()

        result = asyncio.run(run())
        print(f"\n✓ {result.message} ({result.market_status.message})\n")
        return 0

    except StockDraftError as e:
        logger.error(f"Refresh failed: {e}", exc_info=True)
        print(f"\n❌ Refresh failed: {e}\n")
        return 1


def cmd_close(args: argparse.Namespace) -> int:
    """Record today's close prices to current.json and history/."""
    _init_logfire()

    try:
        service = build_service(get_settings())

        async def run():
            try:
                return await service.close_prices()
            finally:
                await service.cache.close()

        result = asyncio.run(run())

        print(f"\n✓ Close prices recorded for {result.date}\n")
        print(f"Fetched: {result.fetched}")
        print(f"Carried over: {len(result.filled_from_previous)}")
        if result.missing:
            print(f"Missing: {', '.join(result.missing)}")
        print(f"History file written: {result.history_written}\n")
        return 0

    except StockDraftError as e:
        logger.error(f"Close failed: {e}", exc_info=True)
        print(f"\n❌ Close failed: {e}\n")
        return 1


def cmd_serve(args: argparse.Namespace) -> int:
    """Start the HTTP API."""
    import uvicorn

    from stockdraft.api.server import create_app
    from stockdraft.observability import initialize_logfire

    settings = get_settings()
    app = create_app(settings)
    initialize_logfire(settings, app)

    uvicorn.run(
        app,
        host=args.host or settings.host,
        port=args.port or settings.port,
        log_level="debug" if args.debug else "info",
    )
    return 0


def cmd_run(args: argparse.Namespace) -> int:
    """Start the refresh and daily close scheduler."""
    try:
        _init_logfire()

        if args.debug:
            logging.getLogger().setLevel(logging.DEBUG)

        settings = get_settings()
        status = get_market_status()

        print("\n=== Stock Draft Price Scheduler ===\n")
        print(f"Version: {__version__}")
        print(f"Market: {status.message}")
        print(f"Fetch Mode: {settings.quotes.fetch_mode}")
        print(f"Data Directory: {settings.data_dir}\n")

        print("Starting scheduler...\n")
        start_scheduler(settings)

        return 0

    except KeyboardInterrupt:
        print("\n\nReceived interrupt signal. Shutting down...\n")
        return 0
    except StockDraftError as e:
        logger.error(f"Failed to start scheduler: {e}", exc_info=True)
        print(f"\nFailed to start: {e}\n")
        return 1


def main() -> int:
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Stock Draft: fantasy stock draft leaderboard",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"Stock Draft {__version__}",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    parser_init = subparsers.add_parser(
        "init",
        help="Initialize data directory and configuration files",
    )
    parser_init.add_argument("--data-dir", default="data", help="Data directory to create")
    parser_init.set_defaults(func=cmd_init)

    parser_config = subparsers.add_parser(
        "config",
        help="Display merged configuration",
    )
    parser_config.set_defaults(func=cmd_config)

    parser_standings = subparsers.add_parser(
        "standings",
        help="Print the current leaderboard",
    )
    parser_standings.add_argument(
        "--previous",
        help="JSON file of {player_id: rank} to show rank movement against",
    )
    parser_standings.set_defaults(func=cmd_standings)

    parser_refresh = subparsers.add_parser(
        "refresh",
        help="Run one live price refresh cycle",
    )
    parser_refresh.set_defaults(func=cmd_refresh)

    parser_close = subparsers.add_parser(
        "close",
        help="Record today's close prices",
    )
    parser_close.set_defaults(func=cmd_close)

    parser_serve = subparsers.add_parser(
        "serve",
        help="Start the HTTP API",
    )
    parser_serve.add_argument("--host", help="Bind address")
    parser_serve.add_argument("--port", type=int, help="Port")
    parser_serve.add_argument("--debug", action="store_true", help="Enable debug logging")
    parser_serve.set_defaults(func=cmd_serve)

    parser_run = subparsers.add_parser(
        "run",
        help="Start the price scheduler",
    )
    parser_run.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug logging",
    )
    parser_run.set_defaults(func=cmd_run)

    args = parser.parse_args()

    if not hasattr(args, "func"):
        parser.print_help()
        return 1

    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())

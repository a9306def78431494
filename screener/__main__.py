"""Main entry point for the stock screener."""
import argparse
import asyncio
import json
import logging
import signal
import sys

from screener.core.config import load_config, ConfigError
from screener.core.orchestrator import Orchestrator

logger = logging.getLogger(__name__)

COMMANDS = ["import", "update-prices", "schedule", "serve", "status", "clear-cache"]


def parse_args(args: list[str] | None = None) -> argparse.Namespace:
    """Parse command line arguments.

    Args:
        args: Command line arguments (defaults to sys.argv[1:])

    Returns:
        Parsed arguments namespace
    """
    parser = argparse.ArgumentParser(
        prog="python -m screener",
        description="Value Screener - NYSE/NASDAQ fundamentals import and screening API",
    )

    parser.add_argument(
        "-c", "--config",
        default="config/default.yaml",
        help="Path to configuration file (default: config/default.yaml)",
    )

    parser.add_argument(
        "-l", "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Logging level (default: INFO)",
    )

    subparsers = parser.add_subparsers(dest="command")

    import_parser = subparsers.add_parser("import", help="Import fundamentals for new symbols (default)")
    import_parser.add_argument(
        "symbols",
        nargs="*",
        help="Symbols to import (default: configured list or provider listing)",
    )

    subparsers.add_parser("update-prices", help="Refresh prices of stored stocks")
    subparsers.add_parser("schedule", help="Import repeatedly at the configured interval")

    serve_parser = subparsers.add_parser("serve", help="Run the REST API")
    serve_parser.add_argument("--host", help="Bind address (default: from config)")
    serve_parser.add_argument("--port", type=int, help="Port (default: from config)")

    subparsers.add_parser("status", help="Print import status, progress and record count")

    clear_parser = subparsers.add_parser("clear-cache", help="Remove expired cache entries")
    clear_parser.add_argument("--all", action="store_true", help="Remove every cache entry")

    parsed = parser.parse_args(args)
    if parsed.command is None:
        parsed.command = "import"
        parsed.symbols = []
    return parsed


def setup_logging(level: str) -> None:
    """Configure logging for the application.

    Args:
        level: Logging level string (DEBUG, INFO, etc.)
    """
    log_format = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    logging.basicConfig(
        level=getattr(logging, level),
        format=log_format,
        handlers=[
            logging.StreamHandler(sys.stdout),
        ],
    )

    # Reduce noise from external libraries
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    logging.getLogger("aiohttp").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)


def _serve(orchestrator: Orchestrator, host: str | None, port: int | None, log_level: str) -> int:
    import uvicorn

    from screener.web.app import create_app

    app = create_app(orchestrator.record_store, orchestrator.status_store)
    server_config = orchestrator.config.server
    uvicorn.run(
        app,
        host=host or server_config.host,
        port=port or server_config.port,
        log_level=log_level.lower(),
    )
    return 0


def main(args: list[str] | None = None) -> int:
    """Main entry point.

    Args:
        args: Command line arguments (defaults to sys.argv[1:])

    Returns:
        Exit code (0 for success, 1 for error)
    """
    parsed_args = parse_args(args)

    setup_logging(parsed_args.log_level)

    logger.info(f"Value Screener starting ({parsed_args.command})...")
    logger.info(f"Config: {parsed_args.config}")

    orchestrator = None

    try:
        # Load configuration
        config = load_config(parsed_args.config)
        orchestrator = Orchestrator(config)

        if parsed_args.command == "import":
            result = asyncio.run(orchestrator.run_import(parsed_args.symbols or None))
            logger.info(result.message)
            return 0 if result.success else 1

        if parsed_args.command == "update-prices":
            result = asyncio.run(orchestrator.run_price_update())
            logger.info(result.message)
            return 0 if result.success else 1

        if parsed_args.command == "schedule":
            # Set up signal handlers for graceful shutdown
            def signal_handler(signum, frame):
                logger.info(f"Received signal {signum}, shutting down...")
                if orchestrator:
                    orchestrator.stop()

            signal.signal(signal.SIGINT, signal_handler)
            signal.signal(signal.SIGTERM, signal_handler)

            # Blocks until stopped
            orchestrator.start()
            return 0

        if parsed_args.command == "serve":
            return _serve(orchestrator, parsed_args.host, parsed_args.port, parsed_args.log_level)

        if parsed_args.command == "status":
            print(json.dumps(orchestrator.diagnostics(), indent=2))
            return 0

        if parsed_args.command == "clear-cache":
            if parsed_args.all:
                removed = orchestrator.cache.clear_all()
            else:
                removed = orchestrator.cache.clear_expired()
            logger.info(f"Removed {removed} cache entries")
            return 0

        logger.error(f"Unknown command: {parsed_args.command}")
        return 1

    except ConfigError as e:
        logger.error(f"Configuration error: {e}")
        return 1

    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        if orchestrator:
            orchestrator.stop()
        return 0

    except Exception as e:
        logger.exception(f"Unexpected error: {e}")
        if orchestrator:
            orchestrator.stop()
        return 1


if __name__ == "__main__":
    sys.exit(main())

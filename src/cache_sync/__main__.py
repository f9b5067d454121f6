"""Cache-sync event receiver. Use --help for usage."""

import argparse
import asyncio
import logging
from pathlib import Path

from aiohttp import web
from dotenv import load_dotenv
from prometheus_client import start_http_server

from cache_sync.server import create_app_from_config
from cache_sync.signals import setup_shutdown_signal_handlers
from config.config import CacheSyncConfig, load_config
from core.logging.setup import generate_worker_id, log_worker_startup, setup_logging

# Project root directory (where .env file is located)
# __main__.py is at src/cache_sync/__main__.py, so root is 3 levels up
PROJECT_ROOT = Path(__file__).parent.parent.parent

# Placeholder logger until setup_logging() is called in main()
logger = logging.getLogger(__name__)


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Run the cache-sync change-event receiver",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    # Serve with the bundled config (src/config/config.yaml)
    python -m cache_sync

    # Custom config and port
    python -m cache_sync --config /etc/cache-sync/config.yaml --port 9000
        """,
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to config YAML (default: src/config/config.yaml)",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=None,
        help="HTTP port for event delivery (default: from config, 8080)",
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default="INFO",
        help="Console logging level (default: INFO)",
    )
    return parser.parse_args()


async def serve(config: CacheSyncConfig) -> None:
    """Serve events until SIGTERM/SIGINT, then release every resource."""
    shutdown_event = asyncio.Event()
    setup_shutdown_signal_handlers(shutdown_event.set)

    app = create_app_from_config(config)
    runner = web.AppRunner(app)
    # Runs on_startup: the cache store connects before the site listens
    await runner.setup()
    site = web.TCPSite(runner, config.server_host, config.server_port)
    await site.start()
    logger.info(
        "Event receiver listening",
        extra={"server_host": config.server_host, "server_port": config.server_port},
    )

    try:
        await shutdown_event.wait()
        logger.info("Shutdown signal received")
    finally:
        # Runs on_cleanup: HTTP session and cache store are closed
        await runner.cleanup()
        logger.info("Cache-sync shutdown complete")


def main() -> None:
    global logger

    load_dotenv(PROJECT_ROOT / ".env")
    args = parse_args()

    config = load_config(args.config)
    if args.port is not None:
        config.server_port = args.port

    worker_id = generate_worker_id("cache-sync")
    setup_logging(
        name="cache_sync",
        log_dir=Path(config.log_dir),
        json_format=config.json_logs,
        console_level=getattr(logging, args.log_level),
        worker_id=worker_id,
        log_to_stdout=config.log_to_stdout,
    )
    logger = logging.getLogger(__name__)

    log_worker_startup(
        logger,
        "cache-sync",
        {
            "worker_id": worker_id,
            "server": f"{config.server_host}:{config.server_port}",
            "redis": f"{config.redis.host}:{config.redis.port}",
            "cluster_mode": config.redis.cluster_mode,
            "test_mode": config.test_mode,
            "metrics_port": config.metrics_port,
        },
    )

    if config.metrics_port:
        start_http_server(config.metrics_port)
        logger.info("Metrics server started", extra={"metrics_port": config.metrics_port})

    try:
        asyncio.run(serve(config))
    except KeyboardInterrupt:
        logger.info("Keyboard interrupt received, shutting down...")


if __name__ == "__main__":
    main()

"""offlinecache - Offline-capable caching proxy for the orders dashboard."""

import argparse
import logging
import signal
import sys
from threading import Event
from typing import Optional

__version__ = "0.1.0"

# Global shutdown event for signal handlers
_shutdown_event: Optional[Event] = None

logger = logging.getLogger(__name__)


def _setup_logging(verbose: bool = False) -> None:
    """Configure logging for the application."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        stream=sys.stdout,
    )


def _handle_shutdown(signum: int, frame: object) -> None:
    """Signal handler for graceful shutdown."""
    sig_name = signal.Signals(signum).name
    logger.info("Received %s, initiating shutdown...", sig_name)
    if _shutdown_event is not None:
        _shutdown_event.set()


def _load_config_or_exit(path: str):
    from .config import ConfigError, load_config

    try:
        return load_config(path)
    except ConfigError as e:
        print(f"Error: {e}")
        sys.exit(1)


def _open_store_or_exit(config):
    from .storage import StorageError, open_store

    try:
        return open_store(config.storage.path)
    except StorageError as e:
        print(f"Error: {e}")
        sys.exit(1)


def _build_controller(config, store):
    """Wire fetcher, connectivity checker and controller for a command."""
    from .controller import OfflineController
    from .network import ConnectivityChecker, Fetcher

    fetcher = Fetcher(config.upstream)
    checker = ConnectivityChecker(config.upstream)
    return OfflineController(config, store, fetcher, is_online=checker.is_online), fetcher


def _cmd_run(args: argparse.Namespace) -> None:
    """Execute the run command - install, activate and serve the proxy."""
    global _shutdown_event

    _setup_logging(args.verbose)

    logger.info("offlinecache %s starting...", __version__)

    # Import here to avoid circular imports and allow logging setup first
    from .config import ConfigError, load_config
    from .proxy import ProxyError, ProxyServer
    from .storage import StorageError, open_store

    # 1. Load configuration
    try:
        config = load_config(args.config)
        logger.info("Configuration loaded from %s", args.config)
        logger.info("Fronting %s with cache version %s", config.upstream.origin, config.cache.version)
    except ConfigError as e:
        logger.error("Configuration error: %s", e)
        sys.exit(1)

    # 2. Open partition store
    try:
        store = open_store(config.storage.path)
        logger.info("Partition store opened at %s", config.storage.path)
    except StorageError as e:
        logger.error("Storage error: %s", e)
        sys.exit(1)

    # 3. Setup shutdown handler
    _shutdown_event = Event()
    signal.signal(signal.SIGTERM, _handle_shutdown)
    signal.signal(signal.SIGINT, _handle_shutdown)

    controller, fetcher = _build_controller(config, store)
    proxy: Optional[ProxyServer] = None

    try:
        # 4. Install and activate before serving
        outcome = controller.on_install()
        if outcome.failed:
            logger.warning("Precache incomplete, %d route(s) failed", len(outcome.failed))
        controller.on_activate()

        # 5. Start proxy
        try:
            proxy = ProxyServer(config.proxy, controller, fetcher, config.upstream.origin)
            proxy.start()
        except ProxyError as e:
            logger.error("Failed to start proxy server: %s", e)
            sys.exit(1)

        logger.info("All components started, waiting for shutdown signal...")

        # 6. Wait for shutdown signal
        _shutdown_event.wait()

    except KeyboardInterrupt:
        # Backup handler if signal doesn't work
        logger.info("Keyboard interrupt received")
    except StorageError as e:
        logger.error("Storage error: %s", e)
        sys.exit(1)
    finally:
        # 7. Cleanup - stop all components
        logger.info("Shutting down components...")

        if proxy is not None:
            proxy.stop()

        controller.wait_for_background(timeout=5.0)
        fetcher.close()

        close = getattr(store, "close", None)
        if close is not None:
            close()
            logger.info("Partition store closed")

        logger.info("Shutdown complete")


def _cmd_precache(args: argparse.Namespace) -> None:
    """Execute the precache command - populate the precache partition only."""
    from .storage import StorageError

    _setup_logging(args.verbose)
    config = _load_config_or_exit(args.config)
    store = _open_store_or_exit(config)
    controller, fetcher = _build_controller(config, store)

    try:
        outcome = controller.on_install()
    except StorageError as e:
        print(f"Error: {e}")
        sys.exit(1)
    finally:
        fetcher.close()

    for route in outcome.stored:
        print(f"✓ CACHED: {route}")
    for route in outcome.failed:
        print(f"✗ FAILED: {route}")
    print(f"\nResult: {len(outcome.stored)}/{len(config.cache.routes)} routes in {outcome.partition}")


def _cmd_clean(args: argparse.Namespace) -> None:
    """Execute the clean command - evict stale or all cache partitions."""
    from .partitions import PartitionManager
    from .storage import StorageError

    config = _load_config_or_exit(args.config)
    store = _open_store_or_exit(config)
    manager = PartitionManager(config.cache, store)

    try:
        if args.all:
            deleted = manager.clear_all()
            print(f"Deleted all {deleted} cache partitions.")
        else:
            stale = manager.evict_stale(config.cache.version)
            print(f"Deleted {len(stale)} stale partition(s) not matching version {config.cache.version}.")
            for name in stale:
                print(f"  - {name}")
    except StorageError as e:
        print(f"Error: {e}")
        sys.exit(1)


def _cmd_partitions(args: argparse.Namespace) -> None:
    """Execute the partitions command - list partitions and entry counts."""
    from .storage import StorageError

    config = _load_config_or_exit(args.config)
    store = _open_store_or_exit(config)

    try:
        names = store.names()
        if not names:
            print("No cache partitions.")
            return
        current = config.cache.precache_partition
        for name in names:
            marker = " (current precache)" if name == current else ""
            print(f"{name}: {store.count(name)} entries{marker}")
    except StorageError as e:
        print(f"Error: {e}")
        sys.exit(1)


def _cmd_sync(args: argparse.Namespace) -> None:
    """Execute the sync command - fire a sync tag at a running proxy."""
    import requests

    config = _load_config_or_exit(args.config)
    tag = args.tag or config.sync.tag
    url = f"http://localhost:{config.proxy.port}/__offline/sync"

    try:
        response = requests.post(url, json={"tag": tag}, timeout=10)
        response.raise_for_status()
    except requests.RequestException as e:
        print(f"Error: Failed to send sync signal to {url}: {e}")
        sys.exit(1)

    print(f"Sync signal '{tag}' delivered to proxy on port {config.proxy.port}.")


def main() -> None:
    """Main entry point for the offlinecache package."""
    parser = argparse.ArgumentParser(
        description="offlinecache - Offline-capable caching proxy for the orders dashboard"
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"offlinecache {__version__}",
    )

    subparsers = parser.add_subparsers(dest="command")

    def add_config_arg(sub: argparse.ArgumentParser) -> None:
        sub.add_argument(
            "-c", "--config",
            default="config.yaml",
            help="Path to configuration file (default: config.yaml)",
        )

    # Run subcommand (default behavior)
    run_parser = subparsers.add_parser(
        "run",
        help="Install, activate and start the caching proxy (default)",
    )
    add_config_arg(run_parser)
    run_parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose (debug) logging",
    )
    run_parser.set_defaults(func=_cmd_run)

    # Precache subcommand
    precache_parser = subparsers.add_parser(
        "precache",
        help="Populate the precache partition from the configured routes",
    )
    add_config_arg(precache_parser)
    precache_parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose (debug) logging",
    )
    precache_parser.set_defaults(func=_cmd_precache)

    # Clean subcommand
    clean_parser = subparsers.add_parser(
        "clean",
        help="Remove cache partitions from previous versions",
    )
    add_config_arg(clean_parser)
    clean_parser.add_argument(
        "--all",
        action="store_true",
        help="Delete every cache partition, including the current version",
    )
    clean_parser.set_defaults(func=_cmd_clean)

    # Partitions subcommand
    partitions_parser = subparsers.add_parser(
        "partitions",
        help="List cache partitions and their entry counts",
    )
    add_config_arg(partitions_parser)
    partitions_parser.set_defaults(func=_cmd_partitions)

    # Sync subcommand
    sync_parser = subparsers.add_parser(
        "sync",
        help="Send a background sync signal to a running proxy",
    )
    add_config_arg(sync_parser)
    sync_parser.add_argument(
        "--tag",
        help="Sync tag to fire (default: the configured tag)",
    )
    sync_parser.set_defaults(func=_cmd_sync)

    args = parser.parse_args()

    # Default to 'run' if no command specified
    if args.command is None:
        args.config = "config.yaml"
        args.verbose = False
        args.func = _cmd_run

    args.func(args)

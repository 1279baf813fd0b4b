"""CLI entry point for peersync."""

import argparse
import asyncio
import json
import logging
import sys
import traceback
from datetime import datetime
from pathlib import Path

from .config import ConfigError, load_config
from .errors import NotFoundError, UnsupportedPolicyError
from .store import FileRecordStore
from .sync import CycleReport, HttpPeerClient, IntegrityVerifier, SyncOrchestrator

logger = logging.getLogger(__name__)


class JSONFormatter(logging.Formatter):
    """JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_data = {
            "timestamp": datetime.fromtimestamp(record.created).isoformat(),
            "level": record.levelname,
            "component": record.name,
            "message": record.getMessage(),
        }

        if record.exc_info:
            log_data["exception"] = "".join(traceback.format_exception(*record.exc_info))

        try:
            return json.dumps(log_data)
        except (TypeError, ValueError):
            # Fallback for non-serializable objects
            log_data["message"] = str(log_data["message"])
            if "exception" in log_data:
                log_data["exception"] = str(log_data["exception"])
            return json.dumps(log_data)


def setup_logging(verbose: bool = False, log_level: str | None = None, json_output: bool = False) -> None:
    """Configure logging.

    Args:
        verbose: Enable debug logging (ignored if log_level is set).
        log_level: Explicit log level (warning, info, debug).
        json_output: Output logs as JSON lines for machine parsing.
    """
    if log_level:
        level_map = {
            "warning": logging.WARNING,
            "info": logging.INFO,
            "debug": logging.DEBUG,
        }
        level = level_map.get(log_level, logging.INFO)
    else:
        level = logging.DEBUG if verbose else logging.INFO

    handler = logging.StreamHandler()
    if json_output:
        handler.setFormatter(JSONFormatter())
    else:
        formatter = logging.Formatter(
            fmt="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
        handler.setFormatter(formatter)

    logging.basicConfig(
        level=level,
        handlers=[handler],
    )


def _print_report(report: CycleReport, as_json: bool) -> None:
    if as_json:
        print(json.dumps(report.to_dict(), indent=2))
        return

    print(f"Cycle finished in {report.duration:.2f}s")
    for outcome in report.outcomes:
        if outcome.succeeded:
            print(f"  ✓ {outcome.peer_name}: kept {outcome.resolution} version")
        else:
            print(f"  ✗ {outcome.peer_name}: {outcome.error_detail}")


async def cmd_sync(args: argparse.Namespace) -> int:
    """Run a single sync cycle."""
    config = load_config(args.config)
    peers = config.peer_list()
    if not peers:
        print("No peers configured", file=sys.stderr)
        return 1

    store = FileRecordStore(config.storage.path)
    async with HttpPeerClient(timeout=config.sync.timeout_seconds) as client:
        orchestrator = SyncOrchestrator.from_config(config, store, client)
        report = await orchestrator.run_cycle(peers)

    for outcome in report.failed:
        logger.warning(f"Peer {outcome.peer_name} failed: {outcome.error_detail}")

    _print_report(report, getattr(args, "output_json", False))
    return 0 if report.all_succeeded else 1


async def cmd_run(args: argparse.Namespace) -> int:
    """Run sync cycles at the configured interval."""
    config = load_config(args.config)
    peers = config.peer_list()
    if not peers:
        print("No peers configured", file=sys.stderr)
        return 1

    print(f"Starting peersync node: {config.node.name}")
    print(f"Storage: {config.storage.path}")
    print(f"Peers: {', '.join(p.name for p in peers)}")
    print(f"Policy: {config.sync.policy}, interval {config.sync.interval_seconds}s")

    store = FileRecordStore(config.storage.path)
    async with HttpPeerClient(timeout=config.sync.timeout_seconds) as client:
        orchestrator = SyncOrchestrator.from_config(config, store, client)
        try:
            await orchestrator.run_forever(peers, config.sync.interval_seconds)
        except asyncio.CancelledError:
            print("\nShutting down...")

    return 0


def cmd_verify(args: argparse.Namespace) -> int:
    """Verify a stored record against an expected digest."""
    config = load_config(args.config)
    verifier = IntegrityVerifier(FileRecordStore(config.storage.path))

    try:
        result = verifier.verify(args.key, args.digest)
    except NotFoundError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    if getattr(args, "output_json", False):
        print(json.dumps(result.to_dict(), indent=2))
    elif result.matched:
        print(f"✓ {result.key}: digest matches ({result.digest})")
    else:
        print(f"✗ {result.key}: digest mismatch")
        print(f"  expected: {result.expected}")
        print(f"  actual:   {result.digest}")

    return 0 if result.matched else 1


def cmd_digest(args: argparse.Namespace) -> int:
    """Print the digest of a stored record."""
    config = load_config(args.config)
    verifier = IntegrityVerifier(FileRecordStore(config.storage.path))

    try:
        print(verifier.digest(args.key))
    except NotFoundError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    return 0


def cmd_stats(args: argparse.Namespace) -> int:
    """Print record count and aggregate size."""
    config = load_config(args.config)
    store = FileRecordStore(config.storage.path)
    stats = store.get_stats()

    if getattr(args, "output_json", False):
        data = stats.to_dict()
        data["records"] = {key: store.size(key) for key in store.list()}
        print(json.dumps(data, indent=2))
        return 0

    print(f"Storage: {stats.root}")
    print(f"Records: {stats.record_count}")
    print(f"Total size: {stats.total_bytes} bytes")
    return 0


async def cmd_serve(args: argparse.Namespace) -> int:
    """Start the peer-facing HTTP server."""
    config = load_config(args.config)

    try:
        from .server import create_app

        import uvicorn
    except ImportError as e:
        print(f"Server dependencies not installed: {e}", file=sys.stderr)
        print("Install with: pip install peersync[server]", file=sys.stderr)
        return 1

    host = args.host or config.server.host
    port = args.port or config.server.port

    print(f"Starting peersync server for node {config.node.name}")
    print(f"URL: http://{host}:{port}/records")

    app = create_app(config, FileRecordStore(config.storage.path))

    verbose = getattr(args, "verbose", False)
    server = uvicorn.Server(
        uvicorn.Config(
            app,
            host=host,
            port=port,
            log_level="info" if verbose else "warning",
        )
    )
    await server.serve()
    return 0


def main() -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        prog="peersync",
        description="Pull-based record synchronization between peer nodes",
    )
    parser.add_argument(
        "-c", "--config",
        type=Path,
        default=None,
        help="Path to config file (default: built-in defaults)",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        choices=["warning", "info", "debug"],
        default=None,
        help="Set log level explicitly (overrides -v/--verbose)",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        help="Output logs as JSON for machine parsing",
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # Sync command
    sync_parser = subparsers.add_parser("sync", help="Run one sync cycle")
    sync_parser.add_argument(
        "--json",
        dest="output_json",
        action="store_true",
        help="Output the cycle report as JSON",
    )
    sync_parser.set_defaults(func=cmd_sync)

    # Run command
    run_parser = subparsers.add_parser("run", help="Run sync cycles at the configured interval")
    run_parser.set_defaults(func=cmd_run)

    # Verify command
    verify_parser = subparsers.add_parser("verify", help="Verify a stored record's digest")
    verify_parser.add_argument("key", help="Record key")
    verify_parser.add_argument("digest", help="Expected hex digest")
    verify_parser.add_argument(
        "--json",
        dest="output_json",
        action="store_true",
        help="Output the result as JSON",
    )
    verify_parser.set_defaults(func=cmd_verify)

    # Digest command
    digest_parser = subparsers.add_parser("digest", help="Print a stored record's digest")
    digest_parser.add_argument("key", help="Record key")
    digest_parser.set_defaults(func=cmd_digest)

    # Stats command
    stats_parser = subparsers.add_parser("stats", help="Show stored record statistics")
    stats_parser.add_argument(
        "--json",
        dest="output_json",
        action="store_true",
        help="Output stats as JSON",
    )
    stats_parser.set_defaults(func=cmd_stats)

    # Serve command
    serve_parser = subparsers.add_parser("serve", help="Serve records to other peers")
    serve_parser.add_argument(
        "-p", "--port",
        type=int,
        default=None,
        help="Port to listen on (default: from config, 8080)",
    )
    serve_parser.add_argument(
        "--host",
        type=str,
        default=None,
        help="Host to bind to (default: from config, 0.0.0.0)",
    )
    serve_parser.set_defaults(func=cmd_serve)

    args = parser.parse_args()

    setup_logging(args.verbose, args.log_level, getattr(args, "json", False))

    if not args.command:
        parser.print_help()
        return 1

    func = args.func
    try:
        if asyncio.iscoroutinefunction(func):
            return asyncio.run(func(args))
        return func(args)
    except (ConfigError, UnsupportedPolicyError) as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        return 2
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        print("\nShutting down...")
        return 0


if __name__ == "__main__":
    sys.exit(main())

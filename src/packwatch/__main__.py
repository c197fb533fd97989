"""Command line entry point: ``packwatch watch``.

Exit status is 0 after a graceful shutdown (SIGINT/SIGTERM), 1 when the
watcher cannot start and 2 for invalid configuration.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import signal
import sys
from collections.abc import Sequence
from typing import Any

from packwatch import __version__
from packwatch.config import WatchConfig
from packwatch.exceptions import StartupError, WatchConfigError
from packwatch.generator import FilesystemPackGenerator
from packwatch.registry import RegistryClient
from packwatch.watcher import Watcher

_logger = logging.getLogger("packwatch")

EXIT_OK = 0
EXIT_STARTUP_FAILED = 1
EXIT_BAD_CONFIG = 2


def _parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="packwatch",
        description="Generate deployment packs for new or updated MCP registry packages",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    commands = parser.add_subparsers(dest="command", required=True)

    watch = commands.add_parser(
        "watch",
        help="Poll the registry continuously and generate packs for new/updated servers",
        description=(
            "Unset options fall back to PACKWATCH_* environment variables, then to defaults. "
            "List options take comma-separated values."
        ),
    )
    watch.add_argument("--registry-url", default=None, help="Registry base URL")
    watch.add_argument("--poll-interval", type=float, default=None, help="Seconds between polls (min 30)")
    watch.add_argument("--output-dir", default=None, help="Directory for generated packs")
    watch.add_argument("--output-type", choices=("packdir", "archive"), default=None, help="Pack output type")
    watch.add_argument("--state-file", default=None, help="Path to the JSON state file")
    watch.add_argument("--filter-package-types", default=None, help="Allowed package types (npm,pypi,oci,nuget)")
    watch.add_argument("--filter-transport-types", default=None, help="Allowed transport types (stdio,http,sse)")
    watch.add_argument("--filter-server-names", default=None, help="Server names to watch (namespace/name)")
    watch.add_argument("--max-concurrent", type=int, default=None, help="Maximum concurrent pack generations")
    watch.add_argument("--dry-run", action="store_true", default=None, help="Show what would be generated")
    watch.add_argument("--force-overwrite", action="store_true", default=None, help="Regenerate existing packs")
    watch.add_argument("--allow-deprecated", action="store_true", default=None, help="Include deprecated servers")
    watch.add_argument("--log-level", default=None, help="debug, info, warning or error")
    watch.add_argument("--verbose", "-v", action="store_true", help="Shortcut for --log-level debug")
    return parser.parse_args(argv)


def _config_from_args(args: argparse.Namespace) -> WatchConfig:
    overrides: dict[str, Any] = {
        "registry_url": args.registry_url,
        "poll_interval": args.poll_interval,
        "output_dir": args.output_dir,
        "output_type": args.output_type,
        "state_file": args.state_file,
        "filter_package_types": args.filter_package_types,
        "filter_transport_types": args.filter_transport_types,
        "filter_server_names": args.filter_server_names,
        "max_concurrent": args.max_concurrent,
        "dry_run": args.dry_run,
        "force_overwrite": args.force_overwrite,
        "allow_deprecated": args.allow_deprecated,
        "log_level": "debug" if args.verbose else args.log_level,
    }
    return WatchConfig.from_env(**overrides)


def _install_signal_handlers(watcher: Watcher) -> None:
    loop = asyncio.get_running_loop()
    for signum in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(signum, watcher.request_stop)
        except NotImplementedError:  # pragma: no cover - Windows event loops
            signal.signal(signum, lambda _signum, _frame: loop.call_soon_threadsafe(watcher.request_stop))


async def _run_watch(config: WatchConfig) -> int:
    async with RegistryClient(config.registry_url) as registry:
        watcher = Watcher(config, registry, FilesystemPackGenerator())
        _install_signal_handlers(watcher)
        try:
            watcher.prepare()
        except StartupError as exc:
            _logger.error("Cannot start watcher: %s", exc)
            return EXIT_STARTUP_FAILED
        await watcher.run()
    return EXIT_OK


def main(argv: Sequence[str] | None = None) -> int:
    args = _parse_args(argv)
    try:
        config = _config_from_args(args)
    except WatchConfigError as exc:
        print(f"packwatch: invalid configuration: {exc}", file=sys.stderr)
        return EXIT_BAD_CONFIG

    logging.basicConfig(
        level=config.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    try:
        return asyncio.run(_run_watch(config))
    except KeyboardInterrupt:
        _logger.info("Interrupted before the watch loop started")
        return EXIT_OK


if __name__ == "__main__":
    raise SystemExit(main())

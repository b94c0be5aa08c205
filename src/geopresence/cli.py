"""Command line entry point.

``geopresence report`` runs the reporter, ``geopresence view`` the viewer,
and ``geopresence both`` runs the two against one store in a single process
(useful with the in-memory backend).
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import signal
import sys
from collections.abc import Sequence

import aiohttp

from geopresence.config import PresenceConfig, StoreBackend
from geopresence.display import PresenceDisplay
from geopresence.exceptions import PresenceConfigError
from geopresence.location import HttpLocationProvider, LocationProvider, StaticLocationProvider
from geopresence.reporter import Reporter
from geopresence.store import build_store
from geopresence.viewer import Viewer

_LOG = logging.getLogger("geopresence")


def _parse_args(argv: Sequence[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="geopresence",
        description="Report or watch whether a device is near a fixed location.",
    )
    parser.add_argument(
        "command",
        choices=("report", "view", "both"),
        help="Role to run.",
    )
    parser.add_argument(
        "--store",
        choices=[backend.value for backend in StoreBackend],
        default=None,
        help="Store backend (default: GEOPRESENCE_STORE or memory).",
    )
    parser.add_argument(
        "--static",
        nargs=2,
        type=float,
        metavar=("LAT", "LNG"),
        default=None,
        help="Report fixed coordinates instead of querying a location source.",
    )
    parser.add_argument(
        "--location-url",
        default=None,
        help="JSON endpoint answering with the current position.",
    )
    parser.add_argument(
        "--once",
        action="store_true",
        help="Run a single reporter cycle and exit.",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable debug logs.",
    )
    return parser.parse_args(argv)


def _print_display(role: str, display: PresenceDisplay) -> None:
    print(f"[{role}] {display.answer} | {display.subtitle}")
    for line in display.details:
        print(f"[{role}]   {line}")
    if display.store_status:
        print(f"[{role}]   {display.store_status}")


def _build_provider(
    args: argparse.Namespace,
    config: PresenceConfig,
    http_session: aiohttp.ClientSession,
) -> LocationProvider | None:
    if args.static is not None:
        lat, lng = args.static
        return StaticLocationProvider(lat, lng)
    if config.location_url:
        return HttpLocationProvider(config.location_url, http_session)
    return None


async def _run(args: argparse.Namespace, config: PresenceConfig) -> int:
    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop_event.set)

    async with aiohttp.ClientSession() as http_session:
        store = build_store(config, http_session)
        reporter: Reporter | None = None
        viewer: Viewer | None = None
        try:
            if args.command in ("view", "both"):
                viewer = Viewer(
                    store,
                    key=config.status_key,
                    on_display=lambda d: _print_display("view", d),
                )
                await viewer.start()

            if args.command in ("report", "both"):
                reporter = Reporter(
                    config,
                    store,
                    _build_provider(args, config, http_session),
                    on_display=lambda d: _print_display("report", d),
                )
                if args.once:
                    await reporter.report_once()
                    return 0
                await reporter.start()

            await stop_event.wait()
        finally:
            if reporter is not None:
                await reporter.stop()
            if viewer is not None:
                await viewer.stop()
            await store.close()
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    args = _parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    overrides: dict[str, object] = {}
    if args.store is not None:
        overrides["store_backend"] = StoreBackend(args.store)
    if args.location_url is not None:
        overrides["location_url"] = args.location_url
    try:
        config = PresenceConfig.from_env(**overrides)
    except PresenceConfigError as exc:
        print(f"geopresence: {exc}", file=sys.stderr)
        return 2

    if config.store_backend == StoreBackend.MEMORY and args.command != "both":
        _LOG.warning("The memory store is process-local; use 'both' or a shared backend")

    try:
        return asyncio.run(_run(args, config))
    except PresenceConfigError as exc:
        print(f"geopresence: {exc}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    sys.exit(main())

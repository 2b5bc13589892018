#!/usr/bin/env python3
"""Report this device's location to the telematics backend.

Usage
-----
::

    python scripts/track.py --vehicle-id V1 --driver-id D1 --lat 12.9716 --lng 77.5946
    python scripts/track.py --serial-port /dev/ttyUSB0 --baudrate 4800

Identifiers given on the command line are remembered; later runs may
omit them. Options::

    --vehicle-id ID      Vehicle identifier
    --driver-id ID       Driver identifier
    --lat / --lng        Report fixed coordinates
    --serial-port DEV    Read fixes from an NMEA GPS receiver
    --baudrate N         Serial speed (default: 9600)
    --endpoint URL       WebSocket endpoint (default: production backend)
    --interval SECS      Seconds between reports (default: 30)
    --duration SECS      Stop after this many seconds (0 = until Ctrl+C)
    --clear-ids          Forget the remembered identifiers and exit
    --verbose / -v       Enable debug logging
"""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import logging
import signal
import sys
from pathlib import Path
from typing import Any

# Allow running from repo root without installing the package.
_repo = Path(__file__).resolve().parent.parent
_src = _repo / "src"
if _src.is_dir():
    sys.path.insert(0, str(_src))

from pyvtrack import (  # noqa: E402
    IdentityPair,
    IdentityStore,
    NmeaPositionProvider,
    SessionStats,
    StaticPositionProvider,
    TrackerConfig,
    TrackerError,
    TrackingSession,
)


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Periodically report vehicle location over WebSocket.",
    )
    parser.add_argument("--vehicle-id", help="Vehicle identifier.")
    parser.add_argument("--driver-id", help="Driver identifier.")
    parser.add_argument("--lat", type=float, help="Fixed latitude to report.")
    parser.add_argument("--lng", type=float, help="Fixed longitude to report.")
    parser.add_argument("--serial-port", help="Serial device of an NMEA GPS receiver.")
    parser.add_argument("--baudrate", type=int, default=9600, help="Serial speed for --serial-port.")
    parser.add_argument("--endpoint", help="WebSocket endpoint URL.")
    parser.add_argument("--interval", type=float, help="Seconds between location reports.")
    parser.add_argument(
        "--duration",
        type=float,
        default=0,
        help="Maximum runtime in seconds (0 = run until Ctrl+C).",
    )
    parser.add_argument(
        "--identity-file",
        type=Path,
        default=None,
        help="Where remembered identifiers are stored.",
    )
    parser.add_argument(
        "--clear-ids",
        action="store_true",
        help="Forget the remembered identifiers and exit.",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable debug logs.",
    )
    return parser.parse_args()


def _format_status(stats: SessionStats) -> str:
    last_call = stats.last_api_call.strftime("%H:%M:%S") if stats.last_api_call else "Never"
    if stats.last_location is not None:
        location = f"{stats.last_location.latitude:.6f}, {stats.last_location.longitude:.6f}"
    else:
        location = "-"
    return (
        f"[track] tracking={'yes' if stats.is_tracking else 'no'}"
        f" sent={stats.api_call_count}"
        f" last={last_call}"
        f" location={location}"
        f" connection={stats.connection_status.value}"
    )


def _build_provider(args: argparse.Namespace) -> Any:
    if args.serial_port:
        return NmeaPositionProvider(args.serial_port, baudrate=args.baudrate)
    return StaticPositionProvider(args.lat, args.lng)


def _resolve_identity(args: argparse.Namespace, store: IdentityStore) -> IdentityPair | None:
    stored = store.load()
    vehicle_id = args.vehicle_id or (stored.vehicle_id if stored else None)
    driver_id = args.driver_id or (stored.driver_id if stored else None)
    if not vehicle_id or not driver_id:
        return None
    return IdentityPair(vehicle_id=vehicle_id, driver_id=driver_id)


async def _run(
    args: argparse.Namespace,
    config: TrackerConfig,
    identity: IdentityPair,
    provider: Any,
) -> int:
    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        with contextlib.suppress(NotImplementedError):
            loop.add_signal_handler(sig, stop_event.set)

    async with TrackingSession(provider, config=config) as session:
        started = await session.start(identity.vehicle_id, identity.driver_id)
        if not started:
            print("[track] Location permission denied; not tracking.", file=sys.stderr)
            return 1

        print(f"[track] Tracking vehicle={identity.vehicle_id} driver={identity.driver_id}")
        print(_format_status(session.stats))
        deadline = loop.time() + args.duration if args.duration > 0 else None
        while not stop_event.is_set():
            timeout = config.status_poll_interval
            if deadline is not None:
                remaining = deadline - loop.time()
                if remaining <= 0:
                    print(f"[track] Reached --duration={args.duration}s, stopping.")
                    break
                timeout = min(timeout, remaining)
            with contextlib.suppress(TimeoutError):
                await asyncio.wait_for(stop_event.wait(), timeout)
            print(_format_status(session.stats))

        await session.stop()
        print(_format_status(session.stats))
    return 0


def _main() -> int:
    args = _parse_args()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    store = IdentityStore(args.identity_file) if args.identity_file else IdentityStore()
    try:
        if args.clear_ids:
            store.clear()
            print(f"[track] Cleared identifiers at {store.path}")
            return 0

        identity = _resolve_identity(args, store)
        if identity is None:
            print("[track] --vehicle-id and --driver-id are required (none remembered).", file=sys.stderr)
            return 2
        if not args.serial_port and (args.lat is None or args.lng is None):
            print("[track] Provide --lat and --lng, or --serial-port.", file=sys.stderr)
            return 2

        overrides: dict[str, Any] = {}
        if args.endpoint:
            overrides["endpoint_url"] = args.endpoint
        if args.interval:
            overrides["report_interval"] = args.interval
        config = TrackerConfig.from_env(**overrides)
        provider = _build_provider(args)
        store.save(identity)
    except (TrackerError, ValueError) as exc:
        print(f"[track] {exc}", file=sys.stderr)
        return 2

    try:
        return asyncio.run(_run(args, config, identity, provider))
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    raise SystemExit(_main())

"""
Entry point for `python -m countdown_sync`.

Usage:
    python -m countdown_sync [--url http://localhost:3000] [--timeout 15] [--no-cache]
"""

import asyncio
import argparse
import logging
import signal
import sys

from .config import SyncConfig, default_cache_path
from .session import CountdownSession

logger = logging.getLogger("CountdownSync")


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Countdown Sync - server-consistent countdown")
    parser.add_argument("--url", "-u", default="http://localhost:3000", help="Server origin")
    parser.add_argument("--path", default="/api/end-time", help="Sync endpoint path")
    parser.add_argument("--timeout", type=float, default=15.0, help="Request timeout (s)")
    parser.add_argument("--interval", type=float, default=60.0, help="Normal sync interval (s)")
    parser.add_argument("--cache", default=default_cache_path(), help="Snapshot file")
    parser.add_argument("--no-cache", action="store_true", help="Do not persist snapshots")
    parser.add_argument("--verbose", "-v", action="store_true")
    return parser.parse_args(argv)


def build_config(args) -> SyncConfig:
    return SyncConfig(
        base_url=args.url,
        endpoint_path=args.path,
        request_timeout=args.timeout,
        normal_sync_interval=args.interval,
        cache_path=None if args.no_cache else args.cache,
    )


async def run():
    args = parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )

    config = build_config(args)
    print(f"URL:   {config.endpoint_url}")
    print(f"Cache: {config.cache_path or 'disabled'}\n")

    session = CountdownSession(config)

    shutdown = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, shutdown.set)

    try:
        await session.start()

        async def countdown_printer():
            while not shutdown.is_set():
                await asyncio.sleep(1.0)
                if not session.is_timestamp_valid:
                    line = "unable to determine time"
                elif session.is_expired:
                    line = "expired"
                else:
                    line = str(session.parts)
                if session.error_message:
                    line += f"  ({session.error_message})"
                logger.info(line)
                logger.debug(f"Stats: {session.stats}")

        task = asyncio.create_task(countdown_printer())
        await shutdown.wait()
        task.cancel()
    finally:
        await session.close()

    return 0


def main():
    try:
        sys.exit(asyncio.run(run()))
    except KeyboardInterrupt:
        sys.exit(0)


if __name__ == "__main__":
    main()

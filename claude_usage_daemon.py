#!/usr/bin/env python3
"""
Claude Quota Watch daemon - periodic /usage polling

Runs continuously to:
1. Fetch usage shortly after startup, then on a fixed interval
2. Skip a poll while the previous fetch is still in flight (a fetch drives a
   real claude session and takes ~18-20 seconds)
3. Report "fetching" / "error" status and every obtained record (fresh or
   cached) to its listeners
4. Keep the last good record in ~/.claudequotawatch/usage_cache.json
"""

import sys
import signal
import asyncio
import argparse
import logging
from enum import Enum
from pathlib import Path
from typing import Iterable, List, Optional

from usage_console import ConsoleListener
from usage_fetcher import UsageCache, UsageFetcher
from usage_limits_parser import UsageRecord
from version import __version__, __title__, __description__

# Module-level logger
logger = logging.getLogger(__name__)

STATUS_FETCHING = "fetching"
STATUS_ERROR = "error"


class FetchState(Enum):
    IDLE = "idle"
    RUNNING = "running"


class UsageListener:
    """Receiver of poller events. Subclass and override what you need."""

    def on_status(self, status: str):
        pass

    def on_data(self, record: UsageRecord):
        pass


class UsagePoller:
    """Invoke the fetcher periodically without ever overlapping fetches."""

    STARTUP_DELAY = 1.5  # seconds
    POLL_INTERVAL = 10  # seconds; the busy guard absorbs ticks during a fetch

    def __init__(self, fetcher: UsageFetcher, listeners: Iterable[UsageListener] = (),
                 poll_interval: float = POLL_INTERVAL, startup_delay: float = STARTUP_DELAY):
        self.fetcher = fetcher
        self.listeners: List[UsageListener] = list(listeners)
        self.poll_interval = poll_interval
        self.startup_delay = startup_delay
        self.state = FetchState.IDLE
        self.poll_count = 0
        self._task: Optional[asyncio.Task] = None

    def _emit_status(self, status: str):
        for listener in self.listeners:
            try:
                listener.on_status(status)
            except Exception as e:
                logger.error(f"Listener failed on status {status!r}: {e}", exc_info=True)

    def _emit_data(self, record: UsageRecord):
        for listener in self.listeners:
            try:
                listener.on_data(record)
            except Exception as e:
                logger.error(f"Listener failed on usage data: {e}", exc_info=True)

    def _log_record(self, record: UsageRecord):
        source = "cache" if record.from_cache else "claude"
        for slot, section in record.sections():
            line = f"  {slot}: {section.percent}% used"
            if section.reset_time:
                line += f", resets {section.reset_time}"
            if section.spent is not None and section.limit is not None:
                line += f", ${section.spent:.2f} / ${section.limit:.2f}"
            logger.info(f"{line} ({source})")

    async def refresh(self) -> bool:
        """
        Run one fetch unless one is already running.

        Returns:
            False if the call was skipped because a fetch was in flight
        """
        if self.state is FetchState.RUNNING:
            logger.debug("Fetch already in flight, skipping")
            return False
        self.state = FetchState.RUNNING

        try:
            self.poll_count += 1
            logger.info(f"Poll #{self.poll_count}")
            self._emit_status(STATUS_FETCHING)

            record = await self.fetcher.fetch_usage()

            if record is None:
                logger.warning("Failed to collect usage data")
                self._emit_status(STATUS_ERROR)
                return True

            self._log_record(record)
            if record.from_cache:
                self._emit_status(STATUS_ERROR)
            self._emit_data(record)
            return True
        finally:
            self.state = FetchState.IDLE

    def request_refresh(self) -> Optional[asyncio.Task]:
        """Start a fetch in the background (e.g. a manual refresh) if idle."""
        if self.state is FetchState.RUNNING or (self._task and not self._task.done()):
            logger.debug("Refresh requested while busy, ignoring")
            return None
        self._task = asyncio.ensure_future(self.refresh())
        return self._task

    async def run(self, stop_event: asyncio.Event):
        """Poll until `stop_event` is set."""
        logger.info("=" * 60)
        logger.info(f"{__title__} {__version__} started")
        logger.info(f"Poll interval: {self.poll_interval} seconds")
        logger.info("=" * 60)

        if await self._wait(stop_event, self.startup_delay):
            return

        while not stop_event.is_set():
            self.request_refresh()
            if await self._wait(stop_event, self.poll_interval):
                break

        if self._task and not self._task.done():
            logger.info("Waiting for the running fetch to finish...")
            await self._task

        logger.info("Poller shutdown complete")

    @staticmethod
    async def _wait(stop_event: asyncio.Event, delay: float) -> bool:
        """Sleep for `delay`; True if the stop event fired meanwhile."""
        try:
            await asyncio.wait_for(stop_event.wait(), delay)
        except asyncio.TimeoutError:
            return False
        return True


def setup_logging(debug=False, log_file: Optional[Path] = None):
    """Set up logging to file and console.

    Args:
        debug: If True, set log level to DEBUG; otherwise INFO
        log_file: Defaults to daemon.log next to the usage cache
    """
    log_file = log_file or UsageCache.DATA_DIR / "daemon.log"
    log_file.parent.mkdir(parents=True, exist_ok=True)

    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        format='%(asctime)s - %(levelname)s - %(message)s',
        handlers=[
            logging.FileHandler(log_file),
            logging.StreamHandler(sys.stderr)
        ]
    )

    if debug:
        logger.info("Debug logging enabled")


async def serve(poller: UsagePoller, once: bool = False):
    if once:
        await poller.refresh()
        return

    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()

    def shutdown(signum):
        logger.info(f"Received signal {signum}, shutting down...")
        stop_event.set()

    for signum in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(signum, shutdown, signum)

    await poller.run(stop_event)


def main(argv=None):
    """Entry point for the daemon."""
    parser = argparse.ArgumentParser(
        prog='claude-quota-watch',
        description=__description__,
        formatter_class=argparse.RawDescriptionHelpFormatter
    )
    parser.add_argument(
        '--version',
        action='version',
        version=f'{__title__} {__version__}'
    )
    parser.add_argument(
        '--debug',
        action='store_true',
        help='Enable debug logging (verbose output)'
    )
    parser.add_argument(
        '--once',
        action='store_true',
        help='Fetch a single time and exit'
    )
    parser.add_argument(
        '--interval',
        type=float,
        default=UsagePoller.POLL_INTERVAL,
        help=f'Seconds between polls (default: {UsagePoller.POLL_INTERVAL})'
    )
    parser.add_argument(
        '--timeout',
        type=float,
        default=UsageFetcher.HELPER_TIMEOUT,
        help=f'Hard timeout for one fetch in seconds (default: {UsageFetcher.HELPER_TIMEOUT})'
    )
    parser.add_argument(
        '--cache-file',
        type=Path,
        default=UsageCache.CACHE_FILE,
        help=f'Where the last good record is kept (default: {UsageCache.CACHE_FILE})'
    )
    parser.add_argument(
        '--claude-path',
        help='Path to the claude binary (default: auto-detect)'
    )

    args = parser.parse_args(argv)
    setup_logging(debug=args.debug)

    fetcher = UsageFetcher(
        cache=UsageCache(args.cache_file),
        claude_path=args.claude_path,
        timeout=args.timeout,
    )
    poller = UsagePoller(fetcher, [ConsoleListener()], poll_interval=args.interval)

    asyncio.run(serve(poller, once=args.once))
    return 0


if __name__ == "__main__":
    sys.exit(main())

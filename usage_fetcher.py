#!/usr/bin/env python3
"""
Fetch usage through the claude_session helper process, with cache fallback.

The pty automation runs in its own Python process so that a hung or crashing
claude session can never take the caller down with it; the caller only waits
on a subprocess with a hard timeout. Every successful record is written to a
single-slot JSON cache, and any failure falls back to that cache.
"""

import sys
import json
import asyncio
import logging
from pathlib import Path
from typing import List, Optional, Sequence

from usage_limits_parser import UsageRecord

# Module-level logger
logger = logging.getLogger(__name__)

HELPER_SCRIPT = Path(__file__).with_name("claude_session.py")


class HelperError(Exception):
    """A helper run produced no usable record."""


class UsageCache:
    """Single JSON document holding the last successfully fetched record."""

    DATA_DIR = Path.home() / ".claudequotawatch"
    CACHE_FILE = DATA_DIR / "usage_cache.json"

    def __init__(self, path: Optional[Path] = None):
        self.path = Path(path) if path else self.CACHE_FILE

    def load(self) -> Optional[UsageRecord]:
        """Return the cached record, or None if it is missing or unreadable."""
        try:
            with open(self.path, 'r') as f:
                data = json.load(f)
            return UsageRecord.from_dict(data)
        except FileNotFoundError:
            logger.debug(f"No cache file at {self.path}")
            return None
        except (OSError, ValueError) as e:
            logger.warning(f"Ignoring unreadable cache {self.path}: {e}")
            return None

    def save(self, record: UsageRecord):
        """Overwrite the cache with `record`."""
        data = record.to_dict()
        data["fromCache"] = False
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.path, 'w') as f:
                json.dump(data, f, indent=2)
        except OSError as e:
            logger.error(f"Error writing cache {self.path}: {e}")


class UsageFetcher:
    """Run the helper once per fetch and always return something if possible."""

    HELPER_TIMEOUT = 30  # seconds
    MAX_OUTPUT_BYTES = 1024 * 1024
    READ_CHUNK = 64 * 1024

    def __init__(self, cache: Optional[UsageCache] = None,
                 helper_command: Optional[Sequence[str]] = None,
                 claude_path: Optional[str] = None,
                 timeout: float = HELPER_TIMEOUT,
                 max_output: int = MAX_OUTPUT_BYTES):
        self.cache = cache or UsageCache()
        self.helper_command = list(helper_command or self.default_command(claude_path))
        self.timeout = timeout
        self.max_output = max_output

    @staticmethod
    def default_command(claude_path: Optional[str] = None) -> List[str]:
        command = [sys.executable, str(HELPER_SCRIPT)]
        if claude_path:
            command += ["--claude-path", claude_path]
        return command

    async def _read_bounded(self, stream: asyncio.StreamReader) -> bytes:
        data = bytearray()
        while True:
            chunk = await stream.read(self.READ_CHUNK)
            if not chunk:
                return bytes(data)
            data += chunk
            if len(data) > self.max_output:
                raise HelperError(f"Helper output exceeded {self.max_output} bytes")

    async def _communicate(self, proc: asyncio.subprocess.Process):
        stdout, stderr = await asyncio.gather(
            self._read_bounded(proc.stdout),
            self._read_bounded(proc.stderr),
        )
        await proc.wait()
        return stdout, stderr

    async def _kill(self, proc: asyncio.subprocess.Process):
        if proc.returncode is None:
            try:
                proc.kill()
            except ProcessLookupError:
                pass
            await proc.wait()

    async def fetch_via_helper(self) -> UsageRecord:
        """
        Run the helper process and parse its stdout.

        Raises:
            HelperError: launch failure, timeout, non-zero exit, bad output,
                or a record without session and week data
        """
        logger.info("Running helper script...")
        logger.debug(f"Helper command: {self.helper_command}")

        try:
            proc = await asyncio.create_subprocess_exec(
                *self.helper_command,
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise HelperError(f"Could not start helper: {e}") from e

        try:
            stdout, stderr = await asyncio.wait_for(self._communicate(proc), self.timeout)
        except asyncio.TimeoutError:
            await self._kill(proc)
            raise HelperError(f"Helper timed out after {self.timeout:g} seconds")
        except HelperError:
            await self._kill(proc)
            raise

        if stderr:
            logger.info(f"Helper stderr: {stderr.decode('utf-8', errors='replace').strip()}")

        if proc.returncode != 0:
            raise HelperError(f"Helper exited with status {proc.returncode}")

        try:
            record = UsageRecord.from_dict(json.loads(stdout.decode('utf-8').strip()))
        except (UnicodeDecodeError, ValueError) as e:
            raise HelperError(f"Failed to parse helper output: {e}") from e

        if not (record.session or record.week):
            raise HelperError("Helper returned no usage data")

        return record

    async def fetch_usage(self) -> Optional[UsageRecord]:
        """
        Fetch fresh usage, falling back to the cached record.

        Returns:
            A fresh record, the cached record with from_cache=True, or None
            when neither is available. Never raises.
        """
        try:
            record = await self.fetch_via_helper()
        except HelperError as e:
            logger.warning(f"Helper failed: {e}")
        except Exception as e:
            logger.error(f"Unexpected error fetching usage: {e}", exc_info=True)
        else:
            logger.info(f"Success: {json.dumps(record.to_dict())[:200]}")
            record.from_cache = False
            self.cache.save(record)
            return record

        logger.info("Falling back to cache...")
        cached = self.cache.load()
        if cached:
            cached.from_cache = True
            return cached

        logger.warning("No cached usage data available")
        return None

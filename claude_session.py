#!/usr/bin/env python3
"""
Drive an interactive 'claude' session in a pseudo-terminal and capture /usage.

Claude Code has no machine-readable usage mode, so the session is steered with
a fixed timed script: type /usage, confirm it (twice, in case the report asks
for an extra acknowledgement), then /exit. Everything the pty emits is kept
and handed to the cleaner and parser once the session ends, either because
claude exited on its own or because it was killed after the deadline.

This module is also the helper process run by usage_fetcher:

    python claude_session.py [--claude-path PATH] [--raw] [--debug]

It prints exactly one JSON usage record on stdout. Diagnostics go to stderr.
"""

import os
import sys
import json
import shutil
import asyncio
import logging
import argparse
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

import pexpect

from terminal_cleaner import clean_output
from usage_limits_parser import UsageLimitsParser, UsageRecord

# Module-level logger
logger = logging.getLogger(__name__)

# Known install locations, checked before falling back to PATH
CLAUDE_CANDIDATES = (
    Path.home() / ".local" / "bin" / "claude",
    Path("/usr/local/bin/claude"),
    Path("/opt/homebrew/bin/claude"),
)


class ClaudeNotFoundError(Exception):
    """The claude binary could not be located."""


def find_claude_binary(candidates: Optional[Sequence[Path]] = None) -> str:
    """
    Locate the claude executable.

    Order: $CLAUDE_PATH, the known install locations, then PATH.

    Raises:
        ClaudeNotFoundError: nothing executable was found
    """
    override = os.environ.get("CLAUDE_PATH")
    if override:
        if os.access(override, os.X_OK):
            return override
        logger.warning(f"CLAUDE_PATH={override} is not executable, searching default locations")

    for path in CLAUDE_CANDIDATES if candidates is None else candidates:
        if Path(path).is_file() and os.access(path, os.X_OK):
            logger.debug(f"Found claude at {path}")
            return str(path)

    found = shutil.which("claude")
    if found:
        logger.debug(f"Found claude on PATH at {found}")
        return found

    raise ClaudeNotFoundError(
        "Could not find claude binary. Make sure Claude Code CLI is installed."
    )


@dataclass(frozen=True)
class ScriptStep:
    """Keys to type into the session, `offset` seconds after launch."""
    offset: float
    keys: str


DEFAULT_STEPS = (
    ScriptStep(5.0, "/usage"),
    ScriptStep(6.0, "\r"),
    ScriptStep(7.0, "\r"),
    ScriptStep(15.0, "/exit\r"),
)


@dataclass
class SessionScript:
    """Timed keystrokes plus the deadline after which the session is killed."""
    steps: Tuple[ScriptStep, ...] = DEFAULT_STEPS
    kill_after: float = 18.0

    def __post_init__(self):
        self.steps = tuple(self.steps)
        offsets = [step.offset for step in self.steps]
        if offsets != sorted(offsets):
            raise ValueError("Script steps must be ordered by offset")
        if offsets and offsets[-1] >= self.kill_after:
            raise ValueError(
                f"Last step at {offsets[-1]}s does not precede kill deadline {self.kill_after}s"
            )


@dataclass
class ClaudeSession:
    """
    One scripted claude run in a pty.

    The session ends exactly once: whichever of natural exit (EOF on the pty)
    or the kill deadline comes first resolves the run, the other is ignored.
    """
    claude_path: str
    script: SessionScript = field(default_factory=SessionScript)
    # /usage needs a trusted working directory; the temp dir works
    cwd: str = field(default_factory=tempfile.gettempdir)
    args: List[str] = field(default_factory=lambda: ["--dangerously-skip-permissions"])
    dimensions: Tuple[int, int] = (80, 120)  # rows, cols

    READ_SIZE = 4096

    def _spawn(self) -> pexpect.spawn:
        env = dict(os.environ, TERM="xterm-256color", NO_COLOR="1", FORCE_COLOR="0")
        return pexpect.spawn(
            self.claude_path,
            list(self.args),
            cwd=self.cwd,
            env=env,
            encoding="utf-8",
            codec_errors="replace",
            dimensions=self.dimensions,
        )

    async def run(self) -> str:
        """
        Run the timed script and return everything the session printed.

        Raises:
            pexpect.ExceptionPexpect: claude could not be launched
        """
        loop = asyncio.get_running_loop()
        child = self._spawn()
        logger.debug(f"Spawned {self.claude_path} (pid {child.pid}) in {self.cwd}")

        chunks: List[str] = []
        ended: asyncio.Future = loop.create_future()

        def finish(reason: str):
            if ended.done():
                return
            ended.set_result(reason)

        def on_readable():
            try:
                chunk = child.read_nonblocking(self.READ_SIZE, timeout=0)
            except pexpect.TIMEOUT:
                return
            except pexpect.EOF:
                loop.remove_reader(child.child_fd)
                finish("exit")
                return
            chunks.append(chunk)

        def send(step: ScriptStep):
            if ended.done():
                return
            logger.debug(f"T+{step.offset:g}s sending {step.keys!r}")
            try:
                child.send(step.keys)
            except OSError as e:
                logger.debug(f"Could not send {step.keys!r}: {e}")

        loop.add_reader(child.child_fd, on_readable)
        timers = [loop.call_later(step.offset, send, step) for step in self.script.steps]
        timers.append(loop.call_later(self.script.kill_after, finish, "deadline"))

        try:
            reason = await ended
        finally:
            for timer in timers:
                timer.cancel()
            loop.remove_reader(child.child_fd)

        if reason == "deadline":
            logger.debug(f"Session still running after {self.script.kill_after:g}s, killing it")
            chunks.append(self._drain(child))
        else:
            logger.debug("Session exited on its own")

        self._close(child)
        output = "".join(chunks)
        logger.debug(f"Captured {len(output)} characters")
        return output

    def _drain(self, child: pexpect.spawn, max_reads: int = 64) -> str:
        """Collect whatever is already buffered on the pty."""
        pending = []
        for _ in range(max_reads):
            try:
                pending.append(child.read_nonblocking(self.READ_SIZE, timeout=0))
            except (pexpect.TIMEOUT, pexpect.EOF):
                break
        return "".join(pending)

    def _close(self, child: pexpect.spawn):
        try:
            child.close(force=True)
        except (OSError, pexpect.ExceptionPexpect) as e:
            logger.warning(f"Failed to close claude session cleanly: {e}")

    async def capture(self) -> UsageRecord:
        """Run the session and parse its output."""
        raw = await self.run()
        return UsageLimitsParser.parse_raw(raw)


def main(argv=None) -> int:
    """Helper entry point: one capture, one JSON record on stdout."""
    parser = argparse.ArgumentParser(
        prog='claude-session',
        description='Capture Claude Code /usage once and print it as JSON',
    )
    parser.add_argument('--claude-path', help='Path to the claude binary (default: auto-detect)')
    parser.add_argument('--raw', action='store_true', help='Print the cleaned capture instead of JSON')
    parser.add_argument('--debug', action='store_true', help='Enable debug logging on stderr')
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.debug else logging.INFO,
        format='%(asctime)s - %(levelname)s - %(message)s',
        stream=sys.stderr,
    )

    try:
        claude_path = args.claude_path or find_claude_binary()
    except ClaudeNotFoundError as e:
        logger.error(str(e))
        return 1

    session = ClaudeSession(claude_path)
    try:
        raw = asyncio.run(session.run())
    except pexpect.ExceptionPexpect as e:
        logger.error(f"Failed to launch {claude_path}: {e}")
        return 1

    if args.raw:
        sys.stdout.write(clean_output(raw) + "\n")
        return 0

    record = UsageLimitsParser.parse_raw(raw)
    sys.stdout.write(json.dumps(record.to_dict()))
    sys.stdout.flush()
    return 0


if __name__ == "__main__":
    sys.exit(main())

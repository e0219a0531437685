"""Shared fixtures for the quota watch tests."""

import sys
from pathlib import Path

import pytest

from usage_limits_parser import UsageRecord, UsageSection

FAKE_CLAUDE = Path(__file__).with_name("fake_claude.py")

# What the /usage screen looks like on the wire: rows placed with cursor
# positioning, words separated by cursor-right moves, bars drawn in blocks.
RAW_USAGE_CAPTURE = (
    "\x1b]0;claude\x07"
    "\x1b[2J\x1b[3;1H Current\x1b[1Csession"
    "\x1b[4;1H\x1b[38;5;174m█████████████▌\x1b[39m\x1b[35C32%\x1b[1Cused"
    "\x1b[5;1HRese\x1b[1Cts\x1b[1C7pm\x1b[1C(America/New_York)"
    "\x1b[7;1HCurrent\x1b[1Cweek\x1b[1C(all\x1b[1Cmodels)"
    "\x1b[8;1H██████▌\x1b[40C13% used"
    "\x1b[9;1HResets Oct 20, 9am (America/New_York)"
    "\x1b[11;1HCurrent week (Sonnet only)"
    "\x1b[12;1H█\x1b[45C2% used"
    "\x1b[13;1HResets Oct 20, 9am (America/New_York)"
    "\x1b[15;1HExtra usage"
    "\x1b[16;1H████████████████████████\x1b[20C48% used"
    "\x1b[17;1H$24.08 / $50.00 spent · Resets Nov 1 (America/New_York)"
    "\x1b[19;1H\x1b[2mEsc to cancel\x1b[22m"
)


@pytest.fixture
def raw_usage_capture() -> str:
    return RAW_USAGE_CAPTURE


@pytest.fixture
def fake_claude_args():
    """Build (claude_path, args) that run the fake CLI in a given mode."""
    def build(mode: str = "normal"):
        return sys.executable, [str(FAKE_CLAUDE), mode]
    return build


@pytest.fixture
def sample_record() -> UsageRecord:
    return UsageRecord(
        session=UsageSection(percent=32, reset_time="7pm (America/New_York)"),
        week=UsageSection(percent=13, reset_time="Oct 20, 9am (America/New_York)"),
        extra=UsageSection(percent=48, reset_time="Nov 1 (America/New_York)", spent=24.08, limit=50.0),
        timestamp="2026-10-19T14:05:00",
    )

#!/usr/bin/env python3
"""
Parse the cleaned output of Claude Code's /usage screen.

Example cleaned output:
    Current session
    32% used
    Resets 7pm (America/New_York)
    Current week (all models)
    13% used
    Resets Oct 20, 9am (America/New_York)
    Current week (Sonnet only)
    2% used
    Resets Oct 20, 9am (America/New_York)
    Extra usage
    48% used
    $24.08 / $50.00 spent · Resets Nov 1 (America/New_York)

Sections are assigned by the order their "NN% used" markers appear, not by
their headings: 1st -> session, 2nd -> week, 3rd -> week_model_variant,
4th -> extra. Reset markers are paired with sections by the same index.
"""

import re
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Optional, Dict, Any, Iterator, Tuple

from terminal_cleaner import clean_output

# Module-level logger
logger = logging.getLogger(__name__)

SLOTS = ("session", "week", "week_model_variant", "extra")

# JSON field names, shared by the helper's stdout payload and the cache file
WIRE_NAMES = {
    "session": "session",
    "week": "week",
    "week_model_variant": "weekModelVariant",
    "extra": "extra",
}

PERCENT_USED = re.compile(r'(\d+)\s*%\s*used', re.IGNORECASE)

# "Resets" is often garbled by cursor movement ("Rese ts", "Rese s"), so only
# the first four letters are anchored. The time text ends at the timezone.
RESET = re.compile(r'Rese\w*\s+([\w,: ]+\([\w/+-]+\))', re.IGNORECASE)

SPEND = re.compile(r'\$(\d+\.?\d*)\s*/\s*\$(\d+\.?\d*)\s*spent', re.IGNORECASE)

# Leftover of a split "Resets" token, e.g. the "s" in "Rese s 3pm (UTC)"
GARBLED_PREFIX = re.compile(r'^[a-z]{1,2}\s+')


@dataclass
class UsageSection:
    """One quota bucket."""
    percent: int
    reset_time: Optional[str] = None
    spent: Optional[float] = None
    limit: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"percent": self.percent}
        if self.reset_time is not None:
            data["resetTime"] = self.reset_time
        if self.spent is not None and self.limit is not None:
            data["spent"] = self.spent
            data["limit"] = self.limit
        return data

    @classmethod
    def from_dict(cls, data: Any) -> "UsageSection":
        if not isinstance(data, dict):
            raise ValueError(f"Section must be an object, got {type(data).__name__}")

        percent = data.get("percent")
        if isinstance(percent, bool) or not isinstance(percent, int):
            raise ValueError(f"Section percent must be an integer, got {percent!r}")

        reset_time = data.get("resetTime")
        if reset_time is not None and not isinstance(reset_time, str):
            raise ValueError(f"Section resetTime must be a string, got {reset_time!r}")

        spent = data.get("spent")
        limit = data.get("limit")
        if spent is None or limit is None:
            spent = limit = None
        else:
            spent, limit = float(spent), float(limit)

        return cls(percent=percent, reset_time=reset_time, spent=spent, limit=limit)


@dataclass
class UsageRecord:
    """Result of one extraction attempt (or a cached substitute)."""
    session: Optional[UsageSection] = None
    week: Optional[UsageSection] = None
    week_model_variant: Optional[UsageSection] = None
    extra: Optional[UsageSection] = None
    timestamp: str = ""
    from_cache: bool = False

    def __post_init__(self):
        if not self.timestamp:
            self.timestamp = datetime.now().isoformat()

    def sections(self) -> Iterator[Tuple[str, UsageSection]]:
        """Yield (slot name, section) for every populated slot, in slot order."""
        for slot in SLOTS:
            section = getattr(self, slot)
            if section is not None:
                yield slot, section

    def has_data(self) -> bool:
        return any(True for _ in self.sections())

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {}
        for slot in SLOTS:
            section = getattr(self, slot)
            data[WIRE_NAMES[slot]] = section.to_dict() if section else None
        data["timestamp"] = self.timestamp
        data["fromCache"] = self.from_cache
        return data

    @classmethod
    def from_dict(cls, data: Any) -> "UsageRecord":
        """
        Build a record from its JSON form.

        Raises:
            ValueError: payload is not an object or a section is malformed
        """
        if not isinstance(data, dict):
            raise ValueError(f"Usage record must be an object, got {type(data).__name__}")

        sections = {}
        for slot in SLOTS:
            raw = data.get(WIRE_NAMES[slot])
            sections[slot] = UsageSection.from_dict(raw) if raw is not None else None

        timestamp = data.get("timestamp")
        return cls(
            timestamp=str(timestamp) if timestamp else "",
            from_cache=bool(data.get("fromCache", False)),
            **sections
        )


class UsageLimitsParser:
    """Extract usage sections from cleaned /usage output."""

    @staticmethod
    def normalize_reset(text: str) -> str:
        """Trim a matched reset time and drop the garbled-token artifact."""
        text = GARBLED_PREFIX.sub('', text.strip())
        return re.sub(r'\s+', ' ', text)

    @staticmethod
    def parse_output(text: str) -> UsageRecord:
        """
        Parse cleaned /usage text into a UsageRecord.

        Never fails: text without any "% used" marker gives a record with
        no sections, which the fetcher treats as a failed attempt.
        """
        record = UsageRecord()

        percents = PERCENT_USED.findall(text)
        resets = RESET.findall(text)
        spend = SPEND.search(text)

        logger.debug(f"Found {len(percents)} percent markers, {len(resets)} reset markers, "
                     f"spend={'yes' if spend else 'no'}")

        for idx, slot in enumerate(SLOTS[:len(percents)]):
            section = UsageSection(percent=int(percents[idx]))
            if idx < len(resets):
                section.reset_time = UsageLimitsParser.normalize_reset(resets[idx])
            setattr(record, slot, section)
            logger.debug(f"  {slot}: {section.percent}% used, resets {section.reset_time}")

        if record.extra and spend:
            record.extra.spent = float(spend.group(1))
            record.extra.limit = float(spend.group(2))
            logger.debug(f"  extra: ${record.extra.spent:.2f} / ${record.extra.limit:.2f} spent")

        if len(percents) > len(SLOTS):
            logger.debug(f"Ignoring {len(percents) - len(SLOTS)} percent markers past the fourth")

        return record

    @classmethod
    def parse_raw(cls, raw: str) -> UsageRecord:
        """Clean a raw pty capture and parse it."""
        logger.debug("=" * 80)
        logger.debug("RAW CAPTURE:")
        logger.debug(repr(raw))
        cleaned = clean_output(raw)
        logger.debug("AFTER CLEANING:")
        logger.debug(cleaned)
        logger.debug("=" * 80)
        return cls.parse_output(cleaned)

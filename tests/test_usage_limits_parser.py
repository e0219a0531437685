"""Tests for positional extraction of /usage sections."""

from datetime import datetime

import pytest

from usage_limits_parser import UsageLimitsParser, UsageRecord, UsageSection


def test_full_capture(raw_usage_capture):
    record = UsageLimitsParser.parse_raw(raw_usage_capture)

    assert record.session == UsageSection(percent=32, reset_time="7pm (America/New_York)")
    assert record.week == UsageSection(percent=13, reset_time="Oct 20, 9am (America/New_York)")
    assert record.week_model_variant == UsageSection(percent=2, reset_time="Oct 20, 9am (America/New_York)")
    assert record.extra == UsageSection(
        percent=48, reset_time="Nov 1 (America/New_York)", spent=24.08, limit=50.0
    )
    assert record.from_cache is False


def test_no_percent_markers_gives_empty_record():
    record = UsageLimitsParser.parse_output("Welcome to Claude Code\nResets 7pm (UTC)\n$1.00 / $5.00 spent")

    assert record.session is None
    assert record.week is None
    assert record.week_model_variant is None
    assert record.extra is None
    assert not record.has_data()


def test_sections_follow_document_order_not_values():
    text = "\n".join([
        "90% used", "Resets 1am (UTC)",
        "5% used", "Resets 2am (UTC)",
        "100% used", "Resets 3am (UTC)",
        "0% used", "Resets 4am (UTC)",
    ])
    record = UsageLimitsParser.parse_output(text)

    assert [s.percent for _, s in record.sections()] == [90, 5, 100, 0]
    assert [s.reset_time for _, s in record.sections()] == [
        "1am (UTC)", "2am (UTC)", "3am (UTC)", "4am (UTC)"
    ]


def test_markers_past_the_fourth_are_ignored():
    text = "\n".join(f"{n}% used\nResets {n}pm (UTC)" for n in range(1, 7))
    record = UsageLimitsParser.parse_output(text)

    assert [slot for slot, _ in record.sections()] == ["session", "week", "week_model_variant", "extra"]
    assert record.extra.percent == 4
    assert record.extra.reset_time == "4pm (UTC)"


def test_garbled_reset_prefix_is_stripped():
    text = "45% used\nRese ts 3:00 PM (America/Los_Angeles)\n78% used"
    record = UsageLimitsParser.parse_output(text)

    assert record.session.percent == 45
    assert record.session.reset_time == "3:00 PM (America/Los_Angeles)"
    assert record.week.percent == 78
    assert record.week.reset_time is None


def test_reset_matched_by_index_not_by_proximity():
    # Only one reset marker: it belongs to index 0 even though it follows the 2nd percent
    text = "45% used\n78% used\nResets 3pm (UTC)"
    record = UsageLimitsParser.parse_output(text)

    assert record.session.reset_time == "3pm (UTC)"
    assert record.week.reset_time is None


def test_reset_whitespace_collapsed():
    assert UsageLimitsParser.normalize_reset("  s   Oct 20,   9am (UTC) ") == "Oct 20, 9am (UTC)"
    assert UsageLimitsParser.normalize_reset("Oct 20, 9am (UTC)") == "Oct 20, 9am (UTC)"


def test_percent_pattern_is_case_insensitive_and_allows_spaces():
    record = UsageLimitsParser.parse_output("12 % USED\n34%Used")

    assert record.session.percent == 12
    assert record.week.percent == 34


@pytest.mark.parametrize("count", [0, 1, 2, 3])
def test_spend_needs_a_fourth_section(count):
    text = "\n".join(f"{n}% used" for n in range(count)) + "\n$12.50 / $50.00 spent"
    record = UsageLimitsParser.parse_output(text)

    for _, section in record.sections():
        assert section.spent is None
        assert section.limit is None
    assert record.extra is None


def test_spend_attaches_to_fourth_section():
    text = "1% used\n2% used\n3% used\n4% used\n$12.5 / $50 spent"
    record = UsageLimitsParser.parse_output(text)

    assert record.extra.spent == 12.5
    assert record.extra.limit == 50.0
    assert record.session.spent is None


def test_timestamp_is_set_at_parse_time():
    before = datetime.now()
    record = UsageLimitsParser.parse_output("10% used")

    assert datetime.fromisoformat(record.timestamp) >= before.replace(microsecond=0)


def test_record_round_trips_through_json_form(sample_record):
    data = sample_record.to_dict()

    assert data["weekModelVariant"] is None
    assert data["session"] == {"percent": 32, "resetTime": "7pm (America/New_York)"}
    assert data["extra"]["spent"] == 24.08
    assert data["fromCache"] is False
    assert UsageRecord.from_dict(data) == sample_record


@pytest.mark.parametrize("payload", [
    [],
    "session",
    {"session": {"resetTime": "7pm (UTC)"}},
    {"session": {"percent": "32"}},
    {"week": {"percent": True}},
    {"session": {"percent": 3, "resetTime": 7}},
])
def test_from_dict_rejects_malformed_payloads(payload):
    with pytest.raises(ValueError):
        UsageRecord.from_dict(payload)


def test_from_dict_drops_half_spend():
    section = UsageSection.from_dict({"percent": 40, "spent": 3.0})

    assert section.spent is None
    assert section.limit is None

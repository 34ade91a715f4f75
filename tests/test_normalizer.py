"""
Unit tests for record normalization.

Tests row rejection, lenient numeric defaults and timestamp parsing.
"""

from datetime import datetime

import pytest

from copilot_usage.core.normalizer import (
    NoValidRecordsError,
    NormalizationStats,
    Rejected,
    RejectionReason,
    finalize_events,
    normalize_lines,
    normalize_row,
    parse_exceeds_flag,
    parse_monthly_quota,
    parse_request_count,
    parse_timestamp,
)
from copilot_usage.core.quota import compute_quota_records
from copilot_usage.storage.models import REQUIRED_COLUMNS, QuotaStatus, UsageEvent

HEADERS = list(REQUIRED_COLUMNS)


def row(timestamp="2025-06-01T10:00:00Z", user="alice", model="gpt-4o",
        requests="5", exceeds="FALSE", quota="300"):
    return [timestamp, user, model, requests, exceeds, quota]


class TestParseTimestamp:
    """Test timestamp parsing."""

    def test_iso_with_z_suffix(self):
        assert parse_timestamp("2025-06-01T10:00:00Z") == datetime(2025, 6, 1, 10, 0, 0)

    def test_iso_with_offset_converted_to_utc(self):
        assert parse_timestamp("2025-06-01T12:00:00+02:00") == datetime(2025, 6, 1, 10, 0, 0)

    def test_iso_with_space_and_fraction(self):
        assert parse_timestamp("2025-06-01 10:00:00.500000") == datetime(2025, 6, 1, 10, 0, 0, 500000)

    def test_plain_date(self):
        assert parse_timestamp("2025-06-01") == datetime(2025, 6, 1)

    def test_us_layouts(self):
        assert parse_timestamp("06/01/2025") == datetime(2025, 6, 1)
        assert parse_timestamp("06/01/2025 3:30 PM") == datetime(2025, 6, 1, 15, 30)

    def test_invalid_values(self):
        """Test that unparseable values return None."""
        assert parse_timestamp("") is None
        assert parse_timestamp("yesterday") is None
        assert parse_timestamp("2025-13-45") is None


class TestNumericFields:
    """Test lenient numeric parsing."""

    def test_request_count_float(self):
        assert parse_request_count("2.5") == (2.5, False)

    def test_request_count_fallback(self):
        """Test that non-numeric, missing and negative counts default to 1."""
        assert parse_request_count("abc") == (1.0, True)
        assert parse_request_count("") == (1.0, True)
        assert parse_request_count(None) == (1.0, True)
        assert parse_request_count("-3") == (1.0, True)
        assert parse_request_count("nan") == (1.0, True)

    def test_zero_request_count_is_kept(self):
        assert parse_request_count("0") == (0.0, False)

    def test_monthly_quota_integer(self):
        assert parse_monthly_quota("1000") == (1000, False)

    def test_monthly_quota_fallback(self):
        """Test that unparseable quotas fall back to the configured default."""
        assert parse_monthly_quota("Unlimited") == (300, True)
        assert parse_monthly_quota("") == (300, True)
        assert parse_monthly_quota("-1", default=50) == (50, True)

    @pytest.mark.parametrize("value, expected", [
        ("1000.0", 1000),
        ("12.5", 12),
        ("300 requests", 300),
    ])
    def test_monthly_quota_leading_integer(self, value, expected):
        """Test that a quota written in float form keeps its integer part."""
        assert parse_monthly_quota(value) == (expected, False)

    def test_float_form_quota_drives_status(self):
        event = normalize_row(HEADERS, row(requests="900", quota="1000.0"))

        record = compute_quota_records([event])[0]

        assert record.monthly_quota == 1000
        assert record.status == QuotaStatus.NEAR_QUOTA

    def test_exceeds_flag_tokens(self):
        """Test that only TRUE and True are truthy."""
        assert parse_exceeds_flag("TRUE") is True
        assert parse_exceeds_flag("True") is True
        assert parse_exceeds_flag("true") is False
        assert parse_exceeds_flag("yes") is False
        assert parse_exceeds_flag("1") is False
        assert parse_exceeds_flag(None) is False


class TestNormalizeRow:
    """Test mapping of raw rows onto events."""

    def test_valid_row(self):
        event = normalize_row(HEADERS, row(exceeds="True", quota="1000"))

        assert isinstance(event, UsageEvent)
        assert event.timestamp == datetime(2025, 6, 1, 10, 0, 0)
        assert event.user == "alice"
        assert event.model == "gpt-4o"
        assert event.request_count == 5.0
        assert event.monthly_quota == 1000
        assert event.exceeds_quota_flag is True

    def test_raw_fields_retained_in_header_order(self):
        headers = HEADERS + ["Team"]
        event = normalize_row(headers, row() + ["platform"])

        assert list(event.raw_fields.keys()) == headers
        assert event.raw_fields["Requests Used"] == "5"
        assert event.raw_fields["Team"] == "platform"

    def test_values_are_trimmed(self):
        event = normalize_row(HEADERS, row(user=" alice ", model=" gpt-4o"))
        assert event.user == "alice"
        assert event.model == "gpt-4o"

    def test_shape_mismatch_rejected(self):
        outcome = normalize_row(HEADERS, row()[:5], line_number=7)

        assert isinstance(outcome, Rejected)
        assert outcome.reason == RejectionReason.ROW_SHAPE_MISMATCH
        assert outcome.line_number == 7

    def test_invalid_timestamp_rejected(self):
        outcome = normalize_row(HEADERS, row(timestamp="not a date"))
        assert outcome.reason == RejectionReason.INVALID_TIMESTAMP

    def test_missing_user_or_model_rejected(self):
        assert normalize_row(HEADERS, row(user="")).reason == RejectionReason.MISSING_USER_OR_MODEL
        assert normalize_row(HEADERS, row(model="  ")).reason == RejectionReason.MISSING_USER_OR_MODEL

    def test_non_numeric_requests_retained_with_default(self):
        """Test that 'abc' requests keeps the row with a count of 1."""
        stats = NormalizationStats()
        event = normalize_row(HEADERS, row(requests="abc"), stats=stats)

        assert isinstance(event, UsageEvent)
        assert event.request_count == 1
        assert event.raw_fields["Requests Used"] == "abc"
        assert stats.defaulted_request_counts == 1

    def test_missing_quota_uses_configured_default(self):
        event = normalize_row(HEADERS, row(quota=""), default_quota=500)
        assert event.monthly_quota == 500


class TestNormalizeLines:
    """Test batch normalization and finalization."""

    def test_rejected_rows_counted_not_raised(self):
        stats = NormalizationStats()
        lines = [
            "2025-06-01T10:00:00Z,alice,gpt-4o,5,FALSE,300",
            "2025-06-01T10:00:00Z,alice,gpt-4o,5",
            "garbage,alice,gpt-4o,5,FALSE,300",
            "2025-06-01T11:00:00Z,,gpt-4o,5,FALSE,300",
        ]

        events = normalize_lines(HEADERS, lines, first_line_number=2, stats=stats)

        assert len(events) == 1
        assert stats.accepted == 1
        assert stats.total_rejected == 3
        assert stats.total_rows == 4
        assert stats.rejected == {
            RejectionReason.ROW_SHAPE_MISMATCH: 1,
            RejectionReason.INVALID_TIMESTAMP: 1,
            RejectionReason.MISSING_USER_OR_MODEL: 1,
        }

    def test_quoted_fields_in_lines(self):
        stats = NormalizationStats()
        lines = ['2025-06-01T10:00:00Z,"Smith, Alice",gpt-4o,5,FALSE,300']

        events = normalize_lines(HEADERS, lines, first_line_number=2, stats=stats)

        assert events[0].user == "Smith, Alice"

    def test_rejected_rows_keep_given_line_numbers(self):
        stats = NormalizationStats()
        lines = [
            "2025-06-01T10:00:00Z,alice,gpt-4o,5,FALSE,300",
            "garbage,alice,gpt-4o,5,FALSE,300",
        ]

        normalize_lines(HEADERS, lines, first_line_number=2, stats=stats, line_numbers=[2, 5])

        assert [r.line_number for r in stats.rejected_rows] == [5]

    def test_raw_fields_are_read_only(self):
        event = normalize_row(HEADERS, row())

        with pytest.raises(TypeError):
            event.raw_fields["User"] = "mallory"

    def test_finalize_sorts_stably_by_timestamp(self):
        t1 = datetime(2025, 6, 2)
        t0 = datetime(2025, 6, 1)
        events = [
            UsageEvent(timestamp=t1, user="a", model="m"),
            UsageEvent(timestamp=t0, user="b", model="m"),
            UsageEvent(timestamp=t1, user="c", model="m"),
        ]
        stats = NormalizationStats(accepted=3)

        result = finalize_events(events, stats)

        assert [e.user for e in result] == ["b", "a", "c"]

    def test_finalize_with_no_events_raises_error(self):
        stats = NormalizationStats()
        stats.record(Rejected(reason=RejectionReason.INVALID_TIMESTAMP, line_number=2))

        with pytest.raises(NoValidRecordsError, match="No valid data"):
            finalize_events([], stats)

"""
Record normalization.

Maps raw CSV rows onto typed UsageEvent records. Malformed rows are
rejected and counted; numeric fields that fail to parse fall back to
documented defaults instead of rejecting the row.
"""

import logging
import math
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, Iterable, List, Optional, Sequence, Tuple, Union

from copilot_usage.config.loader import DEFAULT_MONTHLY_QUOTA
from copilot_usage.storage.csv_reader import IngestionError, parse_line
from copilot_usage.storage.models import (
    EXCEEDS_QUOTA_COLUMN,
    MODEL_COLUMN,
    QUOTA_COLUMN,
    REQUESTS_COLUMN,
    TIMESTAMP_COLUMN,
    USER_COLUMN,
    UsageEvent,
)

logger = logging.getLogger(__name__)

DEFAULT_REQUEST_COUNT = 1.0
TRUE_TOKENS = frozenset({"TRUE", "True"})
_LEADING_INTEGER = re.compile(r"[+-]?\d+")

# Non-ISO layouts seen in spreadsheet re-exports
_FALLBACK_TIMESTAMP_FORMATS = (
    "%m/%d/%Y %I:%M:%S %p",
    "%m/%d/%Y %I:%M %p",
    "%m/%d/%Y %H:%M:%S",
    "%m/%d/%Y %H:%M",
    "%m/%d/%Y",
    "%Y/%m/%d %H:%M:%S",
    "%Y/%m/%d",
)


class NoValidRecordsError(IngestionError):
    """Raised when every data row of an input was rejected."""


class RejectionReason(Enum):
    """Why a data row was dropped from the working collection."""
    ROW_SHAPE_MISMATCH = "row_shape_mismatch"
    INVALID_TIMESTAMP = "invalid_timestamp"
    MISSING_USER_OR_MODEL = "missing_user_or_model"


@dataclass(frozen=True)
class Rejected:
    """A data row that could not be normalized."""
    reason: RejectionReason
    line_number: int
    detail: str = ""


@dataclass
class NormalizationStats:
    """Diagnostic counters for one ingestion run."""
    accepted: int = 0
    rejected: Dict[RejectionReason, int] = field(default_factory=dict)
    defaulted_request_counts: int = 0
    defaulted_quotas: int = 0
    rejected_rows: List[Rejected] = field(default_factory=list)

    @property
    def total_rejected(self) -> int:
        return sum(self.rejected.values())

    @property
    def total_rows(self) -> int:
        return self.accepted + self.total_rejected

    def record(self, outcome: Union[UsageEvent, Rejected]) -> None:
        """Count the outcome of a single row."""
        if isinstance(outcome, Rejected):
            self.rejected[outcome.reason] = self.rejected.get(outcome.reason, 0) + 1
            self.rejected_rows.append(outcome)
        else:
            self.accepted += 1


def parse_timestamp(value: str) -> Optional[datetime]:
    """Parse a timestamp field into a naive UTC datetime.

    Accepts ISO-8601 (with ``T`` or space, optional ``Z`` or offset) and a
    handful of US spreadsheet layouts. Offset-aware values are converted to
    UTC; naive values are taken as UTC.

    Returns:
        The parsed datetime, or None if the value is not a valid date
    """
    text = (value or "").strip()
    if not text:
        return None

    iso_text = text[:-1] + "+00:00" if text.endswith(("Z", "z")) else text
    parsed = None
    try:
        parsed = datetime.fromisoformat(iso_text)
    except ValueError:
        for fmt in _FALLBACK_TIMESTAMP_FORMATS:
            try:
                parsed = datetime.strptime(text, fmt)
                break
            except ValueError:
                continue

    if parsed is None:
        return None
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def parse_request_count(value: Optional[str]) -> Tuple[float, bool]:
    """Parse the request count, falling back to 1.

    Returns:
        Tuple of (count, defaulted)
    """
    try:
        count = float((value or "").strip())
    except ValueError:
        return DEFAULT_REQUEST_COUNT, True
    if math.isnan(count) or math.isinf(count) or count < 0:
        return DEFAULT_REQUEST_COUNT, True
    return count, False


def parse_monthly_quota(value: Optional[str], default: int = DEFAULT_MONTHLY_QUOTA) -> Tuple[int, bool]:
    """Parse the leading integer of the monthly quota, falling back to ``default``.

    ``"1000.0"`` and ``"12.5"`` read as 1000 and 12.

    Returns:
        Tuple of (quota, defaulted)
    """
    match = _LEADING_INTEGER.match((value or "").strip())
    if match is None:
        return default, True
    quota = int(match.group())
    if quota < 0:
        return default, True
    return quota, False


def parse_exceeds_flag(value: Optional[str]) -> bool:
    """Only the literal tokens TRUE and True are truthy."""
    return (value or "").strip() in TRUE_TOKENS


def normalize_row(
    headers: Sequence[str],
    values: Sequence[str],
    line_number: int = 0,
    default_quota: int = DEFAULT_MONTHLY_QUOTA,
    stats: Optional[NormalizationStats] = None,
) -> Union[UsageEvent, Rejected]:
    """Map one raw row onto a UsageEvent.

    Args:
        headers: Trimmed header names, in file order
        values: Raw field values for the row
        line_number: 1-based line number, for diagnostics
        default_quota: Fallback for an unparseable monthly quota
        stats: Optional counters updated with defaulted fields

    Returns:
        UsageEvent, or Rejected describing why the row was dropped
    """
    if len(values) != len(headers):
        return Rejected(
            reason=RejectionReason.ROW_SHAPE_MISMATCH,
            line_number=line_number,
            detail=f"expected {len(headers)} fields, got {len(values)}",
        )

    row = {header: value.strip() for header, value in zip(headers, values)}

    timestamp = parse_timestamp(row.get(TIMESTAMP_COLUMN, ""))
    if timestamp is None:
        return Rejected(
            reason=RejectionReason.INVALID_TIMESTAMP,
            line_number=line_number,
            detail=repr(row.get(TIMESTAMP_COLUMN)),
        )

    user = row.get(USER_COLUMN, "")
    model = row.get(MODEL_COLUMN, "")
    if not user or not model:
        return Rejected(reason=RejectionReason.MISSING_USER_OR_MODEL, line_number=line_number)

    request_count, count_defaulted = parse_request_count(row.get(REQUESTS_COLUMN))
    monthly_quota, quota_defaulted = parse_monthly_quota(row.get(QUOTA_COLUMN), default_quota)
    if stats is not None:
        stats.defaulted_request_counts += int(count_defaulted)
        stats.defaulted_quotas += int(quota_defaulted)

    return UsageEvent(
        timestamp=timestamp,
        user=user,
        model=model,
        request_count=request_count,
        monthly_quota=monthly_quota,
        exceeds_quota_flag=parse_exceeds_flag(row.get(EXCEEDS_QUOTA_COLUMN)),
        raw_fields=row,
    )


def normalize_lines(
    headers: Sequence[str],
    lines: Iterable[str],
    first_line_number: int,
    stats: NormalizationStats,
    default_quota: int = DEFAULT_MONTHLY_QUOTA,
    line_numbers: Optional[Sequence[int]] = None,
) -> List[UsageEvent]:
    """Parse and normalize a batch of data lines.

    Rejected rows are counted in ``stats`` and logged, never raised. Lines are
    numbered from ``first_line_number`` unless ``line_numbers`` gives the
    file position of each one.
    """
    events = []
    for offset, line in enumerate(lines):
        line_number = line_numbers[offset] if line_numbers else first_line_number + offset
        outcome = normalize_row(
            headers,
            parse_line(line),
            line_number=line_number,
            default_quota=default_quota,
            stats=stats,
        )
        stats.record(outcome)
        if isinstance(outcome, Rejected):
            logger.debug("Rejected line %d (%s) %s", line_number, outcome.reason.value, outcome.detail)
        else:
            events.append(outcome)
    return events


def finalize_events(events: List[UsageEvent], stats: NormalizationStats) -> List[UsageEvent]:
    """Check that something survived normalization and sort by timestamp.

    Raises:
        NoValidRecordsError: If every row was rejected
    """
    if stats.total_rejected:
        logger.warning(
            "Dropped %d of %d rows: %s",
            stats.total_rejected,
            stats.total_rows,
            ", ".join(f"{reason.value}={count}" for reason, count in stats.rejected.items()),
        )
    if not events:
        raise NoValidRecordsError(
            "No valid data found in the CSV file. Please check the format."
        )
    # sorted() is stable, so equal timestamps keep file order
    return sorted(events, key=lambda e: e.timestamp)

"""
Data models for the usage event collection.

Defines the normalized event record and the value objects derived from it.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from types import MappingProxyType
from typing import List, Mapping, Union


ALL = "all"

# Canonical export columns, in the order the usage report emits them
TIMESTAMP_COLUMN = "Timestamp"
USER_COLUMN = "User"
MODEL_COLUMN = "Model"
REQUESTS_COLUMN = "Requests Used"
EXCEEDS_QUOTA_COLUMN = "Exceeds Monthly Quota"
QUOTA_COLUMN = "Total Monthly Quota"

REQUIRED_COLUMNS = (
    TIMESTAMP_COLUMN,
    USER_COLUMN,
    MODEL_COLUMN,
    REQUESTS_COLUMN,
    EXCEEDS_QUOTA_COLUMN,
    QUOTA_COLUMN,
)


@dataclass(frozen=True)
class UsageEvent:
    """Immutable record of one user's consumption of one model at one instant.

    The typed fields drive every aggregation. ``raw_fields`` keeps the
    original header->value mapping (in header order) so that an export
    reproduces exactly what was ingested. It is stored as a read-only copy.
    """
    timestamp: datetime
    user: str
    model: str
    request_count: float = 1.0
    monthly_quota: int = 300
    exceeds_quota_flag: bool = False
    raw_fields: Mapping[str, str] = field(default_factory=dict, compare=False)

    def __post_init__(self):
        """Validate the event invariants."""
        if not self.user:
            raise ValueError("user cannot be empty")
        if not self.model:
            raise ValueError("model cannot be empty")
        if self.request_count < 0:
            raise ValueError("request_count cannot be negative")
        if self.monthly_quota < 0:
            raise ValueError("monthly_quota cannot be negative")
        object.__setattr__(self, "raw_fields", MappingProxyType(dict(self.raw_fields)))


@dataclass(frozen=True)
class FilterCriteria:
    """Filter state supplied by the presentation layer.

    ``ALL`` ("all") disables the corresponding dimension.
    """
    date_window_days: Union[int, str] = ALL
    user: str = ALL
    model: str = ALL
    search_text: str = ""

    def __post_init__(self):
        """Validate the date window."""
        if self.date_window_days != ALL:
            if isinstance(self.date_window_days, bool) or not isinstance(self.date_window_days, int):
                raise ValueError("date_window_days must be an integer or 'all'")
            if self.date_window_days < 0:
                raise ValueError("date_window_days cannot be negative")

    @classmethod
    def all(cls) -> "FilterCriteria":
        """Criteria that match every event."""
        return cls()


class QuotaStatus(Enum):
    """Consumption status of a user against their monthly quota."""
    NORMAL = "Normal"
    NEAR_QUOTA = "Near Quota"
    OVER_QUOTA = "Over Quota"


@dataclass(frozen=True)
class QuotaRecord:
    """Per-user consumption summary, derived from that user's events."""
    user: str
    total_requests: float
    monthly_quota: int
    usage_percentage: float
    status: QuotaStatus
    normal_portion: float
    exceeding_portion: float
    remaining_quota: float
    contributing_timestamps: List[datetime] = field(default_factory=list, compare=False)

"""Shared fixtures and builders for the test suite."""

from datetime import datetime
from typing import Iterable, Tuple

import pytest

from copilot_usage.storage.models import REQUIRED_COLUMNS, UsageEvent

HEADER = ",".join(REQUIRED_COLUMNS)


def make_event(
    timestamp: datetime,
    user: str = "alice",
    model: str = "gpt-4o",
    requests: float = 1,
    quota: int = 300,
    exceeds: bool = False,
) -> UsageEvent:
    """Create a test usage event."""
    return UsageEvent(
        timestamp=timestamp,
        user=user,
        model=model,
        request_count=requests,
        monthly_quota=quota,
        exceeds_quota_flag=exceeds,
    )


def make_csv(rows: Iterable[Tuple[str, ...]], header: str = HEADER) -> str:
    """Build CSV text from tuples of raw field strings."""
    return "\n".join([header] + [",".join(row) for row in rows])


@pytest.fixture
def now():
    return datetime(2025, 6, 30, 12, 0, 0)


@pytest.fixture
def sample_csv():
    """Six valid rows across three users and three models."""
    return make_csv([
        ("2025-06-01T09:15:00Z", "alice", "gpt-4o", "100", "FALSE", "300"),
        ("2025-06-02T10:00:00Z", "bob", "claude-sonnet-4", "20", "FALSE", "300"),
        ("2025-06-03T14:30:00Z", "alice", "gpt-4o", "150", "FALSE", "300"),
        ("2025-06-10T09:45:00Z", "carol", "gpt-4.1-mini", "40", "FALSE", "1000"),
        ("2025-06-20T16:00:00Z", "alice", "claude-sonnet-4", "100", "TRUE", "300"),
        ("2025-06-28T11:00:00Z", "bob", "gpt-4o", "5", "FALSE", "300"),
    ])

"""
Quota consumption per user.

Derives one QuotaRecord per distinct user from their events. Records are
always recomputed from the full event collection, never patched in place.

Rules:
- Events whose model name contains an excluded pattern (case-insensitive,
  ``gpt-4.1`` and ``gpt-4.0`` by default) do not count toward consumption
- A user's quota is taken from their events; if it varies between events,
  the last event processed wins
- Status: > over_threshold is Over Quota, > near_threshold is Near Quota
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Sequence

from copilot_usage.config.loader import QuotaConfig
from copilot_usage.storage.models import QuotaRecord, QuotaStatus, UsageEvent


@dataclass(frozen=True)
class QuotaSummary:
    """Totals across a set of quota records."""
    users: int
    normal: int
    near_quota: int
    over_quota: int
    total_normal_portion: float
    total_exceeding_portion: float


def is_excluded_model(model: str, patterns: Sequence[str]) -> bool:
    """Whether a model is excluded from quota consumption."""
    name = model.lower()
    return any(pattern.lower() in name for pattern in patterns)


def usage_percentage(total_requests: float, monthly_quota: int) -> float:
    return total_requests / monthly_quota * 100 if monthly_quota > 0 else 0.0


def classify_usage(percentage: float, config: Optional[QuotaConfig] = None) -> QuotaStatus:
    """Classify a usage percentage.

    Both thresholds are exclusive: exactly 80% is Normal, exactly 100% is
    Near Quota.
    """
    config = config or QuotaConfig()
    if percentage > config.over_threshold:
        return QuotaStatus.OVER_QUOTA
    if percentage > config.near_threshold:
        return QuotaStatus.NEAR_QUOTA
    return QuotaStatus.NORMAL


def build_quota_record(
    user: str,
    total_requests: float,
    monthly_quota: int,
    contributing_timestamps: Optional[List[datetime]] = None,
    config: Optional[QuotaConfig] = None,
) -> QuotaRecord:
    """Build one record from a user's consumption and quota."""
    percentage = usage_percentage(total_requests, monthly_quota)
    return QuotaRecord(
        user=user,
        total_requests=total_requests,
        monthly_quota=monthly_quota,
        usage_percentage=percentage,
        status=classify_usage(percentage, config),
        normal_portion=min(total_requests, monthly_quota),
        exceeding_portion=max(0, total_requests - monthly_quota),
        remaining_quota=max(0, monthly_quota - total_requests),
        contributing_timestamps=list(contributing_timestamps or []),
    )


def compute_quota_records(
    events: Iterable[UsageEvent],
    config: Optional[QuotaConfig] = None,
) -> List[QuotaRecord]:
    """Compute quota consumption for every user appearing in ``events``.

    Users whose every event uses an excluded model still get a record, with
    zero consumption.

    Args:
        events: Usage events, typically the current filtered view
        config: Quota policy; defaults to QuotaConfig()

    Returns:
        One QuotaRecord per distinct user, in first-seen order
    """
    config = config or QuotaConfig()

    totals: Dict[str, float] = {}
    quotas: Dict[str, int] = {}
    timestamps: Dict[str, List[datetime]] = {}
    fallback_quotas: Dict[str, int] = {}

    for event in events:
        totals.setdefault(event.user, 0)
        timestamps.setdefault(event.user, [])
        if is_excluded_model(event.model, config.excluded_model_patterns):
            fallback_quotas[event.user] = event.monthly_quota
            continue
        totals[event.user] += event.request_count
        quotas[event.user] = event.monthly_quota
        timestamps[event.user].append(event.timestamp)

    return [
        build_quota_record(
            user=user,
            total_requests=total,
            monthly_quota=quotas.get(user, fallback_quotas.get(user, config.default_monthly_quota)),
            contributing_timestamps=timestamps[user],
            config=config,
        )
        for user, total in totals.items()
    ]


def filter_quota_records(
    records: Iterable[QuotaRecord],
    status: Optional[QuotaStatus] = None,
    search_text: str = "",
) -> List[QuotaRecord]:
    """Filtered view of the quota table by status and user substring."""
    term = (search_text or "").strip().lower()
    return [
        record for record in records
        if (status is None or record.status == status)
        and (not term or term in record.user.lower())
    ]


def sort_quota_records(records: Iterable[QuotaRecord], by: str = "usage") -> List[QuotaRecord]:
    """Sort records by ``usage`` (descending percentage), ``requests`` or ``user``.

    Raises:
        ValueError: If the sort key is unknown
    """
    if by == "usage":
        return sorted(records, key=lambda r: r.usage_percentage, reverse=True)
    if by == "requests":
        return sorted(records, key=lambda r: r.total_requests, reverse=True)
    if by == "user":
        return sorted(records, key=lambda r: r.user)
    raise ValueError(f"Unknown sort key: {by}")


def quota_summary(records: Iterable[QuotaRecord]) -> QuotaSummary:
    records = list(records)
    return QuotaSummary(
        users=len(records),
        normal=sum(1 for r in records if r.status == QuotaStatus.NORMAL),
        near_quota=sum(1 for r in records if r.status == QuotaStatus.NEAR_QUOTA),
        over_quota=sum(1 for r in records if r.status == QuotaStatus.OVER_QUOTA),
        total_normal_portion=sum(r.normal_portion for r in records),
        total_exceeding_portion=sum(r.exceeding_portion for r in records),
    )

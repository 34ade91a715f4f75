"""
Aggregation engine.

Pure functions over any UsageEvent collection (raw or filtered) that build
the view-models the charts and stat cards consume. Every function accepts an
empty collection and returns empty or zeroed output.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Dict, Hashable, Iterable, List, Optional, Sequence, Tuple

from copilot_usage.config.loader import GROWTH_PERIODS
from copilot_usage.storage.models import UsageEvent

KeyFunc = Callable[[UsageEvent], Hashable]

DAY_NAMES = ("Sunday", "Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday")
MIN_GROWTH_SPAN_DAYS = 14


def day_key(event: UsageEvent) -> str:
    return event.timestamp.date().isoformat()


def model_key(event: UsageEvent) -> str:
    return event.model


def user_key(event: UsageEvent) -> str:
    return event.user


def hour_key(event: UsageEvent) -> int:
    return event.timestamp.hour


def weekday_key(event: UsageEvent) -> int:
    """Day of week with Sunday as 0, matching DAY_NAMES."""
    return (event.timestamp.weekday() + 1) % 7


@dataclass(frozen=True)
class CardinalityStats:
    """Distinct counts over a collection."""
    users: int
    models: int
    active_days: int


@dataclass(frozen=True)
class PeakHour:
    """Busiest hour of day; ``hour`` is None for an empty collection."""
    hour: Optional[int]
    requests: float


@dataclass(frozen=True)
class GrowthResult:
    """Period-over-period comparison of summed requests."""
    current: float
    previous: float
    growth_percentage: float
    period_days: Optional[int]
    split_by_count: bool


@dataclass(frozen=True)
class ShareRow:
    """One row of a breakdown table: key, summed requests and share of total."""
    key: str
    requests: float
    percentage: float


def total_requests(events: Iterable[UsageEvent]) -> float:
    return sum(event.request_count for event in events)


def grouped_sum(events: Iterable[UsageEvent], key: KeyFunc) -> Dict[Hashable, float]:
    """Sum request counts per key, keeping the order keys are first seen."""
    sums: Dict[Hashable, float] = {}
    for event in events:
        group = key(event)
        sums[group] = sums.get(group, 0) + event.request_count
    return sums


def sort_by_sum(sums: Dict[Hashable, float]) -> List[Tuple[Hashable, float]]:
    """Items by descending sum; ties keep first-seen order (stable sort)."""
    return sorted(sums.items(), key=lambda item: item[1], reverse=True)


def top_n(sums: Dict[Hashable, float], n: int) -> List[Tuple[Hashable, float]]:
    """The ``n`` largest groups, ties broken by first-encountered order."""
    if n <= 0:
        return []
    return sort_by_sum(sums)[:n]


def most_popular(sums: Dict[Hashable, float]) -> Optional[Hashable]:
    """Key with the largest sum, or None when there are no groups."""
    ranked = top_n(sums, 1)
    return ranked[0][0] if ranked else None


def cardinality_stats(events: Iterable[UsageEvent]) -> CardinalityStats:
    users = set()
    models = set()
    days = set()
    for event in events:
        users.add(event.user)
        models.add(event.model)
        days.add(event.timestamp.date())
    return CardinalityStats(users=len(users), models=len(models), active_days=len(days))


def daily_average(events: Iterable[UsageEvent]) -> float:
    """Total requests divided by distinct active days, 0 with no active days."""
    events = list(events)
    active_days = cardinality_stats(events).active_days
    return total_requests(events) / active_days if active_days > 0 else 0


def avg_requests_per_user(events: Iterable[UsageEvent]) -> float:
    events = list(events)
    users = cardinality_stats(events).users
    return total_requests(events) / users if users > 0 else 0


def hourly_distribution(events: Iterable[UsageEvent]) -> List[float]:
    """Summed requests for each hour 0-23."""
    buckets = [0.0] * 24
    for hour, requests in grouped_sum(events, hour_key).items():
        buckets[hour] = requests
    return buckets


def weekday_distribution(events: Iterable[UsageEvent]) -> List[float]:
    """Summed requests for each day of week, Sunday first."""
    buckets = [0.0] * 7
    for day, requests in grouped_sum(events, weekday_key).items():
        buckets[day] = requests
    return buckets


def peak_hour(events: Iterable[UsageEvent]) -> PeakHour:
    """Hour with the maximum summed requests; the lowest hour wins ties."""
    events = list(events)
    if not events:
        return PeakHour(hour=None, requests=0)

    buckets = hourly_distribution(events)
    best_hour = 0
    for hour in range(1, 24):
        if buckets[hour] > buckets[best_hour]:
            best_hour = hour
    return PeakHour(hour=best_hour, requests=buckets[best_hour])


def daily_series(events: Iterable[UsageEvent]) -> List[Tuple[str, float]]:
    """Summed requests per ISO day, in chronological order."""
    return sorted(grouped_sum(events, day_key).items())


def cumulative_series(series: Sequence[Tuple[str, float]]) -> List[Tuple[str, float]]:
    """Running total of a daily series, keeping its day order."""
    running = 0.0
    result = []
    for day, value in series:
        running += value
        result.append((day, running))
    return result


def growth_percentage(current: float, previous: float) -> float:
    """Percent change from previous to current.

    With no previous activity, any current activity counts as +100%.
    """
    if previous == 0:
        return 100.0 if current > 0 else 0.0
    return (current - previous) / previous * 100


def period_growth(events: Sequence[UsageEvent], period_days: int = 7) -> GrowthResult:
    """Compare the trailing period with the one before it.

    Windows are measured back from the latest event, not from wall-clock
    time. When the collection spans fewer than 14 days the sorted events are
    split in half by count instead (earlier half is "previous").

    Args:
        events: Events sorted ascending by timestamp
        period_days: Length of each window, one of 7, 30 or 90

    Raises:
        ValueError: If period_days is not a supported period
    """
    if period_days not in GROWTH_PERIODS:
        raise ValueError(f"period_days must be one of: {list(GROWTH_PERIODS)}")

    events = list(events)
    if not events:
        return GrowthResult(current=0, previous=0, growth_percentage=0.0,
                            period_days=period_days, split_by_count=False)

    latest = events[-1].timestamp
    earliest = events[0].timestamp

    if latest - earliest < timedelta(days=MIN_GROWTH_SPAN_DAYS):
        midpoint = len(events) // 2
        previous = total_requests(events[:midpoint])
        current = total_requests(events[midpoint:])
        return GrowthResult(
            current=current,
            previous=previous,
            growth_percentage=growth_percentage(current, previous),
            period_days=None,
            split_by_count=True,
        )

    current_start = latest - timedelta(days=period_days)
    previous_start = current_start - timedelta(days=period_days)
    current = sum(e.request_count for e in events if current_start < e.timestamp <= latest)
    previous = sum(e.request_count for e in events if previous_start < e.timestamp <= current_start)
    return GrowthResult(
        current=current,
        previous=previous,
        growth_percentage=growth_percentage(current, previous),
        period_days=period_days,
        split_by_count=False,
    )


def share_breakdown(events: Iterable[UsageEvent], key: KeyFunc) -> List[ShareRow]:
    """Per-group sums with their percentage of the total, largest first."""
    sums = grouped_sum(events, key)
    total = sum(sums.values())
    return [
        ShareRow(key=str(group), requests=requests,
                 percentage=requests / total * 100 if total > 0 else 0.0)
        for group, requests in sort_by_sum(sums)
    ]


def model_user_breakdown(events: Iterable[UsageEvent], model: str) -> List[ShareRow]:
    """Per-user share of one model's requests."""
    return share_breakdown((e for e in events if e.model == model), user_key)


def model_trends(
    events: Iterable[UsageEvent],
    days: int = 30,
    now: Optional[datetime] = None,
) -> Dict[str, List[Tuple[str, float]]]:
    """Dense per-model daily series over the trailing ``days`` window.

    Every model present in the window gets a value for every day, zero-filled.

    Args:
        events: Source events
        days: Window length in days
        now: End of the window; defaults to the latest event's timestamp
    """
    events = list(events)
    if not events:
        return {}

    end = now or max(event.timestamp for event in events)
    start = end - timedelta(days=days)
    recent = [event for event in events if start <= event.timestamp <= end]

    day_labels = []
    day = start.date()
    while day <= end.date():
        day_labels.append(day.isoformat())
        day += timedelta(days=1)

    trends: Dict[str, Dict[str, float]] = {}
    for event in recent:
        per_day = trends.setdefault(event.model, dict.fromkeys(day_labels, 0.0))
        per_day[day_key(event)] += event.request_count

    return {model: list(per_day.items()) for model, per_day in trends.items()}

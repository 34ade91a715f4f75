"""
Dashboard view-model assembly.

Collects the stat cards, chart series and record rows for one event
collection. Re-rendering means calling these again on a new filtered view.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Tuple

from copilot_usage.config.loader import AnalyzerConfig
from copilot_usage.storage.models import UsageEvent

from .aggregation import (
    GrowthResult,
    PeakHour,
    avg_requests_per_user,
    cardinality_stats,
    cumulative_series,
    daily_average,
    daily_series,
    grouped_sum,
    hourly_distribution,
    model_key,
    model_trends,
    most_popular,
    peak_hour,
    period_growth,
    top_n,
    total_requests,
    user_key,
    weekday_distribution,
)

DEFAULT_RECORD_LIMIT = 100


@dataclass(frozen=True)
class StatCards:
    """Headline numbers shown above the charts."""
    total_users: int
    total_requests: float
    total_models: int
    avg_requests_per_user: float
    daily_average: float
    most_popular_model: Optional[str]
    peak_hour: PeakHour
    growth: GrowthResult


@dataclass(frozen=True)
class DashboardSummary:
    """Every view-model the dashboard renders for one collection."""
    stats: StatCards
    daily: List[Tuple[str, float]] = field(default_factory=list)
    cumulative: List[Tuple[str, float]] = field(default_factory=list)
    top_models: List[Tuple[str, float]] = field(default_factory=list)
    top_users: List[Tuple[str, float]] = field(default_factory=list)
    hourly: List[float] = field(default_factory=list)
    weekday: List[float] = field(default_factory=list)
    model_trends: Dict[str, List[Tuple[str, float]]] = field(default_factory=dict)


@dataclass(frozen=True)
class RecordRow:
    """A formatted row of the record table."""
    timestamp: str
    user: str
    model: str
    requests: str
    exceeds_quota: str
    monthly_quota: str


@dataclass(frozen=True)
class RecordTable:
    rows: List[RecordRow]
    total: int

    @property
    def truncated(self) -> bool:
        return self.total > len(self.rows)

    @property
    def note(self) -> str:
        """Footer shown when only part of the collection is displayed."""
        if not self.truncated:
            return ""
        return f"Showing first {len(self.rows):,} rows of {self.total:,} total rows"


def build_stat_cards(events: List[UsageEvent], config: Optional[AnalyzerConfig] = None) -> StatCards:
    config = config or AnalyzerConfig.default()
    cardinality = cardinality_stats(events)
    return StatCards(
        total_users=cardinality.users,
        total_requests=total_requests(events),
        total_models=cardinality.models,
        avg_requests_per_user=avg_requests_per_user(events),
        daily_average=daily_average(events),
        most_popular_model=most_popular(grouped_sum(events, model_key)),
        peak_hour=peak_hour(events),
        growth=period_growth(events, config.dashboard.growth_period_days),
    )


def build_dashboard(
    events: Iterable[UsageEvent],
    config: Optional[AnalyzerConfig] = None,
    now: Optional[datetime] = None,
) -> DashboardSummary:
    """Build the full dashboard for a collection.

    Args:
        events: Events sorted ascending by timestamp, usually a filtered view
        config: Sizes of the top-N views and the trend window
        now: End of the model trend window; defaults to the latest event

    Returns:
        DashboardSummary; zeroed and empty for an empty collection
    """
    config = config or AnalyzerConfig.default()
    events = list(events)
    daily = daily_series(events)

    return DashboardSummary(
        stats=build_stat_cards(events, config),
        daily=daily,
        cumulative=cumulative_series(daily),
        top_models=top_n(grouped_sum(events, model_key), config.dashboard.top_models),
        top_users=top_n(grouped_sum(events, user_key), config.dashboard.top_users),
        hourly=hourly_distribution(events),
        weekday=weekday_distribution(events),
        model_trends=model_trends(events, days=config.dashboard.trend_days, now=now),
    )


def _format_requests(value: float) -> str:
    return f"{value:,.0f}" if float(value).is_integer() else f"{value:,.2f}"


def build_record_table(events: Iterable[UsageEvent], limit: int = DEFAULT_RECORD_LIMIT) -> RecordTable:
    """Format the first ``limit`` events for the record table."""
    events = list(events)
    rows = [
        RecordRow(
            timestamp=event.timestamp.strftime("%Y-%m-%d %H:%M:%S"),
            user=event.user,
            model=event.model,
            requests=_format_requests(event.request_count),
            exceeds_quota="TRUE" if event.exceeds_quota_flag else "FALSE",
            monthly_quota=str(event.monthly_quota),
        )
        for event in events[:max(limit, 0)]
    ]
    return RecordTable(rows=rows, total=len(events))

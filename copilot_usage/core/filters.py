"""
Filter engine for the event collection.

Each filter is a pure predicate; ``filter_events`` is their conjunction and
always returns a new list without touching its input.
"""

from datetime import datetime, timedelta, timezone
from typing import Callable, Iterable, List, Optional, Tuple

from copilot_usage.storage.models import ALL, FilterCriteria, UsageEvent

Predicate = Callable[[UsageEvent], bool]


def utc_now() -> datetime:
    """Wall-clock now as a naive UTC datetime, comparable with event timestamps."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def format_event_date(event: UsageEvent) -> str:
    return event.timestamp.strftime("%m/%d/%Y")


def render_search_text(event: UsageEvent) -> str:
    """Lower-cased text the free-text search is matched against."""
    return " ".join((event.user, event.model, format_event_date(event))).lower()


def by_date_window(days, now: Optional[datetime] = None) -> Predicate:
    """Keep events at or after ``now - days``.

    "Now" is read when the predicate is built, so repeated calls without an
    explicit ``now`` are not stable once time has elapsed. A window reaching
    back past the earliest representable date keeps every event.
    """
    if days == ALL:
        return lambda event: True
    try:
        cutoff = (now or utc_now()) - timedelta(days=days)
    except OverflowError:
        return lambda event: True
    return lambda event: event.timestamp >= cutoff


def by_user(user: str) -> Predicate:
    if user == ALL:
        return lambda event: True
    return lambda event: event.user == user


def by_model(model: str) -> Predicate:
    if model == ALL:
        return lambda event: True
    return lambda event: event.model == model


def by_search_text(search_text: str) -> Predicate:
    """Case-insensitive substring match on user, model and formatted date."""
    term = (search_text or "").strip().lower()
    if not term:
        return lambda event: True
    return lambda event: term in render_search_text(event)


def build_predicates(criteria: FilterCriteria, now: Optional[datetime] = None) -> List[Predicate]:
    """Build the predicate list for a set of criteria."""
    return [
        by_date_window(criteria.date_window_days, now=now),
        by_user(criteria.user),
        by_model(criteria.model),
        by_search_text(criteria.search_text),
    ]


def apply_predicates(events: Iterable[UsageEvent], predicates: Iterable[Predicate]) -> List[UsageEvent]:
    predicates = list(predicates)
    return [event for event in events if all(predicate(event) for predicate in predicates)]


def filter_events(
    events: Iterable[UsageEvent],
    criteria: FilterCriteria,
    now: Optional[datetime] = None,
) -> List[UsageEvent]:
    """Return the events matching every criterion.

    Args:
        events: Source collection, left unchanged
        criteria: Filter state
        now: Reference time for the date window; defaults to wall-clock UTC

    Returns:
        New list of matching events, in source order
    """
    return apply_predicates(events, build_predicates(criteria, now=now))


def distinct_values(events: Iterable[UsageEvent]) -> Tuple[List[str], List[str]]:
    """Sorted distinct users and models, used to populate filter options."""
    users = set()
    models = set()
    for event in events:
        users.add(event.user)
        models.add(event.model)
    return sorted(users), sorted(models)

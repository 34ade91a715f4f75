"""
CSV export of a filtered event view.

Escaping mirrors the reader: a double quote only toggles quoting, so a field
containing a comma is wrapped in quotes and embedded quote characters, which
the reader could never return, are dropped.
"""

from datetime import date
from typing import Iterable, List, Optional, Sequence

from .csv_reader import DELIMITER, QUOTE
from .models import (
    EXCEEDS_QUOTA_COLUMN,
    MODEL_COLUMN,
    QUOTA_COLUMN,
    REQUESTS_COLUMN,
    REQUIRED_COLUMNS,
    TIMESTAMP_COLUMN,
    USER_COLUMN,
    UsageEvent,
)


def escape_field(value: str) -> str:
    value = value.replace(QUOTE, "").replace("\r", " ").replace("\n", " ")
    if DELIMITER in value:
        return f"{QUOTE}{value}{QUOTE}"
    return value


def _format_number(value: float) -> str:
    return str(int(value)) if float(value).is_integer() else str(value)


def _typed_value(event: UsageEvent, column: str) -> str:
    """Render a canonical column from the typed fields."""
    if column == TIMESTAMP_COLUMN:
        return event.timestamp.isoformat()
    if column == USER_COLUMN:
        return event.user
    if column == MODEL_COLUMN:
        return event.model
    if column == REQUESTS_COLUMN:
        return _format_number(event.request_count)
    if column == EXCEEDS_QUOTA_COLUMN:
        return "TRUE" if event.exceeds_quota_flag else "FALSE"
    if column == QUOTA_COLUMN:
        return str(event.monthly_quota)
    return ""


def export_headers(events: Sequence[UsageEvent]) -> List[str]:
    """Column order of the ingested file, or the canonical columns."""
    for event in events:
        if event.raw_fields:
            return list(event.raw_fields.keys())
    return list(REQUIRED_COLUMNS)


def export_csv(events: Iterable[UsageEvent], headers: Optional[Sequence[str]] = None) -> str:
    """Serialize events back to CSV text.

    Original raw strings are written wherever the event carries them, so a
    re-import sees exactly what was ingested.

    Args:
        events: Events to export, in output order
        headers: Column order; defaults to the ingested header order

    Returns:
        CSV text with a header line, lines joined by ``\\n``
    """
    events = list(events)
    columns = list(headers) if headers is not None else export_headers(events)

    lines = [DELIMITER.join(escape_field(column) for column in columns)]
    for event in events:
        values = []
        for column in columns:
            if column in event.raw_fields:
                values.append(event.raw_fields[column])
            else:
                values.append(_typed_value(event, column))
        lines.append(DELIMITER.join(escape_field(value) for value in values))
    return "\n".join(lines)


def export_filename(today: Optional[date] = None) -> str:
    """Default download name for a filtered export."""
    today = today or date.today()
    return f"copilot-metrics-filtered-{today.isoformat()}.csv"

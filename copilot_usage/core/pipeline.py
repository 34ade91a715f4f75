"""
Chunked ingestion pipeline.

Turns CSV text into the sorted UsageEvent collection. Lines are split once
and normalized in fixed-size batches; the async runner yields to the event
loop between batches and stops early once a newer ingestion supersedes it.
The result never depends on the batch size.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Callable, Iterator, List, Optional

from copilot_usage.config.loader import AnalyzerConfig
from copilot_usage.storage.csv_reader import IngestionError, iter_line_batches, read_table
from copilot_usage.storage.models import REQUIRED_COLUMNS, UsageEvent

from .normalizer import NormalizationStats, finalize_events, normalize_lines

logger = logging.getLogger(__name__)


@dataclass
class IngestResult:
    """Outcome of one ingestion run.

    Pipeline-aborting errors are carried in ``error`` rather than raised.
    """
    events: List[UsageEvent] = field(default_factory=list)
    headers: List[str] = field(default_factory=list)
    stats: NormalizationStats = field(default_factory=NormalizationStats)
    error: Optional[IngestionError] = None
    superseded: bool = False

    @property
    def ok(self) -> bool:
        return self.error is None and not self.superseded

    @property
    def message(self) -> str:
        """User-facing description of the outcome."""
        if self.superseded:
            return "Ingestion was superseded by a newer file"
        if self.error is not None:
            return str(self.error)
        return f"Loaded {len(self.events):,} events ({self.stats.total_rejected:,} rows dropped)"


class IngestionPipeline:
    """Parses and normalizes CSV text in batches."""

    def __init__(self, config: Optional[AnalyzerConfig] = None, batch_size: Optional[int] = None):
        """Initialize the pipeline.

        Args:
            config: Analyzer configuration; defaults to built-in defaults
            batch_size: Overrides config.ingest.batch_size

        Raises:
            ValueError: If batch_size is not positive
        """
        if batch_size is not None and batch_size <= 0:
            raise ValueError("batch_size must be > 0")
        self.config = config or AnalyzerConfig.default()
        self.batch_size = batch_size if batch_size is not None else self.config.ingest.batch_size

    def iter_batches(self, text: str, result: IngestResult) -> Iterator[List[UsageEvent]]:
        """Yield the normalized events of each batch of lines.

        Headers and counters are recorded on ``result`` as batches are consumed.

        Raises:
            EmptyInputError: If the text holds no data rows
        """
        table = read_table(text)
        result.headers = table.headers

        missing = [column for column in REQUIRED_COLUMNS if column not in table.headers]
        if missing:
            logger.warning("CSV header is missing columns: %s", ", ".join(missing))

        offset = 0
        for batch in iter_line_batches(table.lines, self.batch_size):
            yield normalize_lines(
                table.headers,
                batch,
                first_line_number=offset + 2,
                stats=result.stats,
                default_quota=self.config.quota.default_monthly_quota,
                line_numbers=table.line_numbers[offset:offset + len(batch)],
            )
            offset += len(batch)

    def ingest(self, text: str) -> IngestResult:
        """Run the whole pipeline synchronously."""
        result = IngestResult()
        events: List[UsageEvent] = []
        try:
            for batch_events in self.iter_batches(text, result):
                events.extend(batch_events)
            result.events = finalize_events(events, result.stats)
        except IngestionError as e:
            logger.error("Ingestion failed: %s", e)
            result.error = e
        return result

    async def run(self, text: str, is_current: Callable[[], bool] = lambda: True) -> IngestResult:
        """Run the pipeline, yielding to the event loop between batches.

        Args:
            text: Raw CSV text
            is_current: Checked after every yield; once it returns False the
                run stops and reports itself as superseded

        Returns:
            IngestResult; never raises for empty or fully-rejected input
        """
        result = IngestResult()
        events: List[UsageEvent] = []
        try:
            for batch_events in self.iter_batches(text, result):
                events.extend(batch_events)
                await asyncio.sleep(0)
                if not is_current():
                    logger.info("Dropping superseded ingestion after %d rows", result.stats.total_rows)
                    result.superseded = True
                    return result
            result.events = finalize_events(events, result.stats)
        except IngestionError as e:
            logger.error("Ingestion failed: %s", e)
            result.error = e
        return result


def ingest(text: str, config: Optional[AnalyzerConfig] = None) -> IngestResult:
    """Convenience wrapper around IngestionPipeline.ingest."""
    return IngestionPipeline(config).ingest(text)

"""
In-memory event store.

Owns the normalized event collection, the single source of truth from which
every filtered view and derived record is recomputed.
"""

import logging
from datetime import datetime
from pathlib import Path
from typing import List, Optional, Tuple

from copilot_usage.config.loader import AnalyzerConfig
from copilot_usage.core.filters import distinct_values, filter_events
from copilot_usage.core.pipeline import IngestionPipeline, IngestResult
from copilot_usage.core.quota import compute_quota_records

from .models import FilterCriteria, QuotaRecord, UsageEvent

logger = logging.getLogger(__name__)


class UsageRepository:
    """Repository for the ingested usage events.

    Each load bumps a generation counter. A chunked load that is overtaken by
    a newer one stops at its next batch boundary and never replaces the
    events committed by the newer load.
    """

    def __init__(self, config: Optional[AnalyzerConfig] = None):
        """Initialize an empty repository.

        Args:
            config: Analyzer configuration shared with the pipeline
        """
        self.config = config or AnalyzerConfig.default()
        self._events: List[UsageEvent] = []
        self._headers: List[str] = []
        self._generation = 0
        self.last_result: Optional[IngestResult] = None

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def headers(self) -> List[str]:
        return list(self._headers)

    @property
    def raw_events(self) -> List[UsageEvent]:
        return list(self._events)

    def _commit(self, result: IngestResult) -> None:
        self.last_result = result
        if result.ok:
            self._events = result.events
            self._headers = result.headers
            logger.info(result.message)

    async def load(self, text: str, batch_size: Optional[int] = None) -> IngestResult:
        """Ingest CSV text, superseding any load still in progress.

        The previous collection is kept when ingestion fails.
        """
        self._generation += 1
        generation = self._generation
        pipeline = IngestionPipeline(self.config, batch_size=batch_size)

        result = await pipeline.run(text, is_current=lambda: generation == self._generation)
        if generation != self._generation:
            result.superseded = True
        if not result.superseded:
            self._commit(result)
        return result

    def load_sync(self, text: str) -> IngestResult:
        """Ingest CSV text without an event loop."""
        self._generation += 1
        result = IngestionPipeline(self.config).ingest(text)
        self._commit(result)
        return result

    def load_path(self, path: str) -> IngestResult:
        """Read a CSV file and ingest it.

        Raises:
            FileNotFoundError: If the file doesn't exist
        """
        csv_path = Path(path)
        if not csv_path.exists():
            raise FileNotFoundError(f"CSV file not found: {path}")
        return self.load_sync(csv_path.read_text(encoding="utf-8"))

    def get_events(
        self,
        criteria: Optional[FilterCriteria] = None,
        now: Optional[datetime] = None,
    ) -> List[UsageEvent]:
        """Filtered view of the current collection."""
        return filter_events(self._events, criteria or FilterCriteria.all(), now=now)

    def get_quota_records(
        self,
        criteria: Optional[FilterCriteria] = None,
        now: Optional[datetime] = None,
    ) -> List[QuotaRecord]:
        """Quota records recomputed from the filtered view."""
        return compute_quota_records(self.get_events(criteria, now=now), self.config.quota)

    def filter_options(self) -> Tuple[List[str], List[str]]:
        """Sorted users and models present in the collection."""
        return distinct_values(self._events)


# Global repository instance
_default_repository: Optional[UsageRepository] = None


def get_repository(config: Optional[AnalyzerConfig] = None) -> UsageRepository:
    """Get the shared repository instance.

    Args:
        config: Replaces the instance's configuration when given

    Returns:
        An instance of UsageRepository
    """
    global _default_repository
    if _default_repository is None:
        _default_repository = UsageRepository(config)
    elif config is not None:
        _default_repository.config = config
    return _default_repository

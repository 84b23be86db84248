"""
Per-table metadata fetching with progress reporting.
"""

import logging
from abc import ABC, abstractmethod
from typing import Callable, List, Optional, Sequence, Tuple

from bqcost.bigquery.models import TableMetadata, TableRef
from bqcost.ingestion.caller import ApiCaller
from bqcost.ingestion.context import RunContext
from bqcost.logging_config import get_logger

# Percent reserved before metadata fetching starts (listing) and after
# it ends (saving). Fetching fills the range in between.
LISTING_PERCENT = 10
SAVING_PERCENT = 1

LISTING_MESSAGE = "Listing tables..."
SAVING_MESSAGE = "Saving results..."


class ProgressReporter(ABC):
    """Receives progress updates from a running ingestion."""

    @abstractmethod
    def report(self, percent: int, message: str) -> None:
        pass


class NullProgressReporter(ProgressReporter):
    def report(self, percent: int, message: str) -> None:
        pass


def estimate_progress(done: int, total: int) -> Tuple[int, str]:
    """Percent and message for `done` of `total` tables fetched.

    estimate_progress(0, 100)   -> (10, "Reading table metadata: 0/100 tables")
    estimate_progress(100, 100) -> (99, "Reading table metadata: 100/100 tables")
    """
    span = 100 - LISTING_PERCENT - SAVING_PERCENT
    fraction = done / total if total > 0 else 0.0
    percent = LISTING_PERCENT + round(span * fraction)
    return percent, f"Reading table metadata: {done}/{total} tables"


class MetadataFetcher:
    """Fetches metadata for every listed table, in listing order."""

    def __init__(
        self,
        caller: ApiCaller,
        get_table: Callable[[str, str, str], TableMetadata],
        report_interval: int = 100,
        logger: Optional[logging.Logger] = None,
    ):
        if report_interval < 1:
            raise ValueError(f"report_interval must be at least 1, got {report_interval}")
        self.caller = caller
        self.get_table = get_table
        self.report_interval = report_interval
        self._logger = logger or get_logger(__name__)

    def fetch_all(
        self,
        project_id: str,
        table_refs: Sequence[TableRef],
        progress: ProgressReporter,
        ctx: Optional[RunContext] = None,
    ) -> List[TableMetadata]:
        """Fetch every table's metadata; any failed fetch aborts the whole run.

        Progress is reported once before the first fetch (10%, even when
        there is nothing to fetch), before every later report_interval-th
        table, and at 99% after the last one.
        """
        total = len(table_refs)
        results: List[TableMetadata] = []
        progress.report(*estimate_progress(0, total))
        for i, ref in enumerate(table_refs):
            if i > 0 and i % self.report_interval == 0:
                progress.report(*estimate_progress(i, total))
            results.append(
                self.caller.call(
                    self.get_table, ref.project_id, ref.dataset_id, ref.table_id, ctx=ctx
                )
            )
        self._logger.info(f"Fetched metadata for {total} tables in {project_id}")
        progress.report(100 - SAVING_PERCENT, SAVING_MESSAGE)
        return results

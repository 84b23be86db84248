"""
Full metadata scrape of one BigQuery project.

List datasets, list the tables of each dataset, then fetch every
table's metadata. All calls share one rate limiter and retry policy.
"""

import logging
from typing import List, Optional

from bqcost.bigquery.client import ListingAPI
from bqcost.bigquery.models import DatasetRef, TableMetadata, TableRef
from bqcost.config import IngestConfig
from bqcost.ingestion.caller import ApiCaller
from bqcost.ingestion.context import RunContext
from bqcost.ingestion.fetcher import (
    LISTING_MESSAGE,
    MetadataFetcher,
    NullProgressReporter,
    ProgressReporter,
)
from bqcost.ingestion.paginator import Paginator
from bqcost.ingestion.ratelimit import RateLimiter
from bqcost.ingestion.retry import RetryPolicy
from bqcost.logging_config import get_logger


class TableScraper:
    """Scrapes all table metadata of a project through a ListingAPI."""

    def __init__(
        self,
        api: ListingAPI,
        config: Optional[IngestConfig] = None,
        limiter: Optional[RateLimiter] = None,
        retry: Optional[RetryPolicy] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.api = api
        self.config = config or IngestConfig()
        self._logger = logger or get_logger(__name__)
        self.caller = ApiCaller(
            limiter or RateLimiter(self.config.requests_per_second, self.config.burst),
            retry or RetryPolicy.from_config(self.config, logger=self._logger),
        )

    def list_datasets(self, project_id: str, ctx: Optional[RunContext] = None) -> List[DatasetRef]:
        paginator = Paginator(
            "datasets", self.config.max_datasets, self.caller, project_id, logger=self._logger
        )
        return paginator.list_all(
            lambda token: self.api.list_datasets(project_id, token), ctx
        )

    def list_tables(
        self,
        project_id: str,
        datasets: List[DatasetRef],
        ctx: Optional[RunContext] = None,
    ) -> List[TableRef]:
        """List tables of every dataset; the table ceiling applies to the total."""
        paginator = Paginator(
            "tables", self.config.max_tables, self.caller, project_id, logger=self._logger
        )
        tables: List[TableRef] = []
        for dataset in datasets:
            paginator.list_all(
                lambda token, d=dataset: self.api.list_tables(d.project_id, d.dataset_id, token),
                ctx,
                into=tables,
            )
        return tables

    def get_all_tables(
        self,
        project_id: str,
        progress: Optional[ProgressReporter] = None,
        ctx: Optional[RunContext] = None,
    ) -> List[TableMetadata]:
        """Return metadata for every table in the project, in listing order."""
        progress = progress or NullProgressReporter()
        progress.report(0, LISTING_MESSAGE)

        datasets = self.list_datasets(project_id, ctx)
        tables = self.list_tables(project_id, datasets, ctx)
        self._logger.info(
            f"Project {project_id}: {len(datasets)} datasets, {len(tables)} tables"
        )

        fetcher = MetadataFetcher(
            self.caller,
            self.api.get_table,
            report_interval=self.config.progress_report_interval,
            logger=self._logger,
        )
        return fetcher.fetch_all(project_id, tables, progress, ctx)

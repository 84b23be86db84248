"""
Background project loading.

BackgroundLoader is the loader the state machine calls when it claims a
project. It copies the user id, access token and project id into a
thread pool task; the task scrapes the project, saves the table rows
and always ends by calling finish(), whether the scrape succeeded,
failed or was cancelled.
"""

import logging
import threading
import uuid
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Callable, Dict, List, Optional, Sequence, Tuple

from bqcost.bigquery.client import BigQueryAPI, ListingAPI
from bqcost.bigquery.models import TableMetadata
from bqcost.config import IngestConfig
from bqcost.ingestion.context import RunContext
from bqcost.ingestion.exceptions import LoaderUnavailable, PersistenceError, StateError
from bqcost.ingestion.scrape import TableScraper
from bqcost.loading.progress import DatabaseProgressReporter
from bqcost.loading.state import LoadStateMachine
from bqcost.logging_config import get_correlation_id, get_logger, set_correlation_id
from bqcost.store import db as store
from bqcost.store.db import Database
from bqcost.store.models import Table, User

# Builds a ListingAPI authenticated as the given access token.
ApiFactory = Callable[[str], ListingAPI]

SAVED_TABLE_TYPE = "TABLE"


class BackgroundLoader:
    """
    Runs project loads on a thread pool.

    Usage:
        loader = BackgroundLoader(state, db, config=config)
        state.set_loader(loader.start_loading)
    """

    def __init__(
        self,
        state: LoadStateMachine,
        db: Database,
        api_factory: Optional[ApiFactory] = None,
        config: Optional[IngestConfig] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.state = state
        self.db = db
        self.config = config or IngestConfig()
        self.api_factory = api_factory or self._bigquery_api
        self._logger = logger or get_logger(__name__)
        self._executor = ThreadPoolExecutor(
            max_workers=self.config.max_workers, thread_name_prefix="bqcost-load"
        )
        self._lock = threading.Lock()
        self._active: Dict[Tuple[int, str], RunContext] = {}
        self._shutdown = False

    def _bigquery_api(self, access_token: str) -> ListingAPI:
        return BigQueryAPI(
            access_token,
            base_url=self.config.api_url,
            timeout=self.config.request_timeout_seconds,
            max_results=self.config.max_results_per_page,
        )

    @property
    def active_count(self) -> int:
        with self._lock:
            return len(self._active)

    @property
    def is_shut_down(self) -> bool:
        return self._shutdown

    def start_loading(self, user: User, project_id: str) -> Future:
        """Submit a load of `project_id` for `user` and return immediately.

        The run logs under the caller's correlation ID, so a load can be
        traced back to the request that started it.
        """
        if self._shutdown:
            raise LoaderUnavailable("Background loader is shut down")
        user_id, access_token = user.id, user.access_token
        correlation_id = get_correlation_id() or f"load-{uuid.uuid4().hex[:12]}"
        try:
            return self._executor.submit(
                self._run, user_id, access_token, project_id, correlation_id
            )
        except RuntimeError as e:
            # ThreadPoolExecutor refuses work once shutdown() has started.
            raise LoaderUnavailable(f"Background loader is shut down: {e}") from e

    def _run(
        self, user_id: int, access_token: str, project_id: str, correlation_id: str
    ) -> None:
        """Thread pool entry point: load, then finish exactly once."""
        set_correlation_id(correlation_id)
        ctx = RunContext.with_timeout(self.config.run_timeout_seconds)
        key = (user_id, project_id)
        with self._lock:
            self._active[key] = ctx
            if self._shutdown:
                ctx.cancel()

        self._logger.info(f"Loading project {project_id} for user {user_id}")
        err: Optional[BaseException] = None
        try:
            self.load_project(user_id, access_token, project_id, ctx)
        except Exception as e:
            err = e
            self._logger.exception(f"Loading project {project_id} failed")
        except BaseException as e:
            err = e
            raise
        finally:
            with self._lock:
                self._active.pop(key, None)
            try:
                self.state.finish(user_id, project_id, err)
            except (StateError, PersistenceError) as e:
                self._logger.error(f"Could not finish loading project {project_id}: {e}")

    def load_project(
        self, user_id: int, access_token: str, project_id: str, ctx: RunContext
    ) -> int:
        """Scrape and save one project. Returns the number of rows saved."""
        api = self.api_factory(access_token)
        try:
            progress = DatabaseProgressReporter(
                self.state, user_id, project_id, logger=self._logger
            )
            scraper = TableScraper(api, self.config, logger=self._logger)
            tables = scraper.get_all_tables(project_id, progress, ctx)
        finally:
            api.close()
        return self.save_tables(user_id, project_id, tables)

    def save_tables(
        self, user_id: int, project_id: str, tables: Sequence[TableMetadata]
    ) -> int:
        """Insert rows for every plain table; views and external tables are skipped."""
        rows: List[Table] = []
        for meta in tables:
            if meta.type != SAVED_TABLE_TYPE:
                self._logger.info(
                    f"Skipping {meta.dataset_id}.{meta.table_id}: type {meta.type}"
                )
                continue
            rows.append(Table.from_metadata(user_id, project_id, meta))

        with self.db.transaction() as conn:
            count = store.insert_tables(conn, rows)
        self._logger.info(f"Saved {count} tables for project {project_id}")
        return count

    def shutdown(self, cancel: bool = True, wait: bool = True) -> None:
        """Stop accepting loads.

        With cancel=True, running and queued loads stop at their next
        wait and finish with a cancellation error.
        """
        with self._lock:
            self._shutdown = True
            if cancel:
                for ctx in self._active.values():
                    ctx.cancel()
        self._executor.shutdown(wait=wait)
        self._logger.info("Background loader stopped")

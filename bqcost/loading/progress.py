"""
ProgressReporter that persists progress through the load state machine.
"""

import logging
from typing import Optional

from bqcost.ingestion.exceptions import PersistenceError, StateError
from bqcost.ingestion.fetcher import ProgressReporter
from bqcost.loading.state import LoadStateMachine
from bqcost.logging_config import get_logger


class DatabaseProgressReporter(ProgressReporter):
    """Writes each report to the project row.

    Progress is advisory: a failed write (the run finished concurrently,
    or the database is busy) is logged and the run continues.
    """

    def __init__(
        self,
        state: LoadStateMachine,
        user_id: int,
        project_id: str,
        logger: Optional[logging.Logger] = None,
    ):
        self.state = state
        self.user_id = user_id
        self.project_id = project_id
        self._logger = logger or get_logger(__name__)

    def report(self, percent: int, message: str) -> None:
        self._logger.debug(f"Project {self.project_id}: {percent}% {message}")
        try:
            self.state.report_progress(self.user_id, self.project_id, percent, message)
        except (StateError, PersistenceError) as e:
            self._logger.warning(f"Ignoring progress update for {self.project_id}: {e}")

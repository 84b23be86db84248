"""
Poll-based project status for callers.
"""

import logging
from typing import Optional

from bqcost.loading.state import LoadStateMachine, LoadStatus, Ready
from bqcost.logging_config import get_logger
from bqcost.store.reports import query_project


class ProjectStatusService:
    """Answers "what is the state of this project?" and starts loads as needed."""

    def __init__(
        self,
        state: LoadStateMachine,
        max_top_results: int = 20,
        logger: Optional[logging.Logger] = None,
    ):
        self.state = state
        self.max_top_results = max_top_results
        self._logger = logger or get_logger(__name__)

    def request_status(self, access_token: str, project_id: str) -> LoadStatus:
        """Return Loading, Failed, or Ready with the project's storage report.

        The first request for a project starts its load. Load failures
        surface here as Failed, never as exceptions.
        """
        status = self.state.acquire_or_observe(access_token, project_id)
        if not isinstance(status, Ready):
            return status

        project = status.project
        with self.state.db.transaction() as conn:
            report = query_project(
                conn, project.user_id, project.project_id, self.max_top_results
            )
        return Ready(project, report)

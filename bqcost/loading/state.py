"""
Single-flight load state machine for (user, project) pairs.

A project row is created the first time a user asks for it, in the same
transaction that starts its load, so at most one load per project ever
starts. After that the row only moves loading -> failed or
loading -> ready, via finish().

    absent --acquire_or_observe--> loading --finish(err)--> failed
                                           --finish()-----> ready
"""

import logging
from dataclasses import dataclass
from typing import Callable, Optional, Union

from bqcost.ingestion.exceptions import StateError
from bqcost.logging_config import get_logger
from bqcost.store import db as store
from bqcost.store.db import Database
from bqcost.store.models import Project, User
from bqcost.store.reports import ProjectReport

# Starts a background load. Must return promptly; it runs inside the
# claiming transaction.
Loader = Callable[[User, str], None]


@dataclass(frozen=True)
class Loading:
    percent: int
    message: str


@dataclass(frozen=True)
class Ready:
    project: Project
    report: Optional[ProjectReport] = None


@dataclass(frozen=True)
class Failed:
    message: str


LoadStatus = Union[Loading, Ready, Failed]


def error_message(err: BaseException) -> str:
    """Text stored as loading_error; never empty for a real error."""
    return str(err) or type(err).__name__


class LoadStateMachine:
    """Claims, observes and finishes project loads stored in a Database."""

    def __init__(
        self,
        db: Database,
        loader: Optional[Loader] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.db = db
        self.loader = loader
        self._logger = logger or get_logger(__name__)

    def set_loader(self, loader: Loader) -> None:
        """Set the function that starts a background load."""
        self.loader = loader

    def acquire_or_observe(self, access_token: str, project_id: str) -> LoadStatus:
        """Return the project's status, starting its load if it was never requested.

        Creates the user on first sight of the access token. If the
        loader raises, nothing is written (not even the user) and the
        error propagates.
        """
        if self.loader is None:
            raise StateError("No loader configured")

        with self.db.transaction() as conn:
            user = store.get_user_by_access_token(conn, access_token)
            if user is None:
                user = store.insert_user(conn, access_token)
                self._logger.info(f"Created user {user.id}")

            project = store.get_project(conn, user.id, project_id)
            if project is None:
                project = Project(user_id=user.id, project_id=project_id, is_loading=True)
                store.insert_project(conn, project)
                self.loader(user, project_id)
                self._logger.info(f"Started loading project {project_id} for user {user.id}")
                return Loading(project.loading_percent, project.loading_message)

        if project.is_loading:
            return Loading(project.loading_percent, project.loading_message)
        if project.loading_error:
            return Failed(project.loading_error)
        return Ready(project)

    def finish(
        self, user_id: int, project_id: str, err: Optional[BaseException] = None
    ) -> None:
        """Move a loading project to failed (err given) or ready.

        Raises StateError if the project does not exist or has already
        finished; nothing is written in that case.
        """
        with self.db.transaction() as conn:
            project = store.get_project(conn, user_id, project_id)
            if project is None:
                raise StateError(f"user_id={user_id} project_id={project_id} does not exist")
            if not project.is_loading:
                raise StateError(
                    f"user_id={user_id} project_id={project_id} has already finished loading"
                )
            project.is_loading = False
            if err is not None:
                project.loading_error = error_message(err)
            store.update_project(conn, project)

        if err is not None:
            self._logger.warning(f"Project {project_id} failed to load: {project.loading_error}")
        else:
            self._logger.info(f"Project {project_id} finished loading")

    def report_progress(
        self, user_id: int, project_id: str, percent: int, message: str
    ) -> None:
        """Record progress of a loading project.

        Raises StateError if the project does not exist or is not loading.
        """
        with self.db.transaction() as conn:
            project = store.get_project(conn, user_id, project_id)
            if project is None:
                raise StateError(f"user_id={user_id} project_id={project_id} does not exist")
            if not project.is_loading:
                raise StateError(
                    f"user_id={user_id} project_id={project_id} is not loading"
                )
            project.loading_percent = percent
            project.loading_message = message
            store.update_project(conn, project)

"""
SQLite-backed storage for users, projects and table metadata.

Every read-modify-write goes through Database.transaction(), which opens
the transaction with BEGIN IMMEDIATE. That takes the write lock up
front, so two concurrent claims of the same project serialize instead
of both observing "absent".
"""

import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Iterable, Iterator, List, Optional

from bqcost.ingestion.exceptions import PersistenceError
from bqcost.logging_config import get_logger
from bqcost.store.models import Project, Table, User

logger = get_logger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS users (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    access_token TEXT NOT NULL UNIQUE
);

CREATE TABLE IF NOT EXISTS projects (
    user_id INTEGER NOT NULL REFERENCES users(id),
    project_id TEXT NOT NULL,
    is_loading INTEGER NOT NULL DEFAULT 0,
    loading_percent INTEGER NOT NULL DEFAULT 0,
    loading_message TEXT NOT NULL DEFAULT '',
    loading_error TEXT NOT NULL DEFAULT '',
    PRIMARY KEY (user_id, project_id)
);

CREATE TABLE IF NOT EXISTS tables (
    user_id INTEGER NOT NULL,
    project_id TEXT NOT NULL,
    dataset_id TEXT NOT NULL,
    table_id TEXT NOT NULL,
    friendly_name TEXT NOT NULL DEFAULT '',
    description TEXT NOT NULL DEFAULT '',
    num_bytes INTEGER NOT NULL DEFAULT 0,
    num_long_term_bytes INTEGER NOT NULL DEFAULT 0,
    num_rows INTEGER NOT NULL DEFAULT 0,
    creation_time_ms INTEGER NOT NULL DEFAULT 0,
    last_modified_time_ms INTEGER NOT NULL DEFAULT 0,
    streaming_estimated_bytes INTEGER NOT NULL DEFAULT 0,
    streaming_estimated_rows INTEGER NOT NULL DEFAULT 0,
    PRIMARY KEY (user_id, project_id, dataset_id, table_id),
    FOREIGN KEY (user_id, project_id) REFERENCES projects(user_id, project_id)
);
"""

TABLE_COLUMNS = (
    "user_id",
    "project_id",
    "dataset_id",
    "table_id",
    "friendly_name",
    "description",
    "num_bytes",
    "num_long_term_bytes",
    "num_rows",
    "creation_time_ms",
    "last_modified_time_ms",
    "streaming_estimated_bytes",
    "streaming_estimated_rows",
)


def _rollback(conn: sqlite3.Connection) -> None:
    # SQLite may already have rolled back on its own (e.g. SQLITE_FULL).
    if conn.in_transaction:
        conn.execute("ROLLBACK")


class Database:
    """
    SQLite database file holding all load state.

    Connections are opened per transaction and closed afterwards, so a
    Database can be shared between request handlers and worker threads.
    """

    def __init__(self, db_path: Path | str, busy_timeout: float = 30.0):
        self.db_path = Path(db_path)
        self.busy_timeout = busy_timeout
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _init_db(self):
        """Initialize the database schema."""
        with self._get_conn() as conn:
            try:
                conn.execute("PRAGMA journal_mode=WAL")
                conn.executescript(SCHEMA)
            except sqlite3.Error as e:
                raise PersistenceError(f"Failed to initialize {self.db_path}: {e}") from e

    @contextmanager
    def _get_conn(self) -> Iterator[sqlite3.Connection]:
        conn = sqlite3.connect(
            str(self.db_path),
            timeout=self.busy_timeout,
            isolation_level=None,
            check_same_thread=False,
        )
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys=ON")
        try:
            yield conn
        finally:
            conn.close()

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """Run the block in one write transaction.

        Commits on normal exit. Rolls back on any exception; sqlite3
        errors are re-raised as PersistenceError, anything else as is.
        """
        with self._get_conn() as conn:
            try:
                conn.execute("BEGIN IMMEDIATE")
            except sqlite3.Error as e:
                raise PersistenceError(f"Failed to begin transaction: {e}") from e
            try:
                yield conn
            except sqlite3.Error as e:
                _rollback(conn)
                raise PersistenceError(str(e)) from e
            except BaseException:
                _rollback(conn)
                raise
            try:
                conn.execute("COMMIT")
            except sqlite3.Error as e:
                _rollback(conn)
                raise PersistenceError(f"Failed to commit: {e}") from e

    def ping(self) -> bool:
        """Return True if the database answers a trivial query."""
        try:
            with self._get_conn() as conn:
                conn.execute("SELECT 1").fetchone()
            return True
        except sqlite3.Error as e:
            logger.warning(f"Database ping failed: {e}")
            return False


# =============================================================================
# Users
# =============================================================================

def get_user_by_access_token(conn: sqlite3.Connection, access_token: str) -> Optional[User]:
    row = conn.execute(
        "SELECT id, access_token FROM users WHERE access_token = ?", (access_token,)
    ).fetchone()
    return User.from_row(row) if row else None


def insert_user(conn: sqlite3.Connection, access_token: str) -> User:
    cursor = conn.execute("INSERT INTO users (access_token) VALUES (?)", (access_token,))
    return User(id=cursor.lastrowid, access_token=access_token)


# =============================================================================
# Projects
# =============================================================================

def get_project(conn: sqlite3.Connection, user_id: int, project_id: str) -> Optional[Project]:
    row = conn.execute(
        "SELECT * FROM projects WHERE user_id = ? AND project_id = ?",
        (user_id, project_id),
    ).fetchone()
    return Project.from_row(row) if row else None


def insert_project(conn: sqlite3.Connection, project: Project) -> None:
    conn.execute(
        """INSERT INTO projects (
               user_id, project_id, is_loading,
               loading_percent, loading_message, loading_error
           ) VALUES (?, ?, ?, ?, ?, ?)""",
        (
            project.user_id,
            project.project_id,
            int(project.is_loading),
            project.loading_percent,
            project.loading_message,
            project.loading_error,
        ),
    )


def update_project(conn: sqlite3.Connection, project: Project) -> None:
    conn.execute(
        """UPDATE projects SET
               is_loading = ?, loading_percent = ?,
               loading_message = ?, loading_error = ?
           WHERE user_id = ? AND project_id = ?""",
        (
            int(project.is_loading),
            project.loading_percent,
            project.loading_message,
            project.loading_error,
            project.user_id,
            project.project_id,
        ),
    )


# =============================================================================
# Tables
# =============================================================================

def insert_tables(conn: sqlite3.Connection, tables: Iterable[Table]) -> int:
    """Bulk-insert table rows. Existing rows are never replaced.

    Returns the number of rows written.
    """
    placeholders = ", ".join("?" for _ in TABLE_COLUMNS)
    rows = [tuple(getattr(t, col) for col in TABLE_COLUMNS) for t in tables]
    conn.executemany(
        f"INSERT INTO tables ({', '.join(TABLE_COLUMNS)}) VALUES ({placeholders})",
        rows,
    )
    return len(rows)


def get_tables(conn: sqlite3.Connection, user_id: int, project_id: str) -> List[Table]:
    rows = conn.execute(
        f"""SELECT {', '.join(TABLE_COLUMNS)} FROM tables
            WHERE user_id = ? AND project_id = ?
            ORDER BY dataset_id, table_id""",
        (user_id, project_id),
    ).fetchall()
    return [Table.from_row(row) for row in rows]


def query_total_table_bytes(conn: sqlite3.Connection, user_id: int, project_id: str) -> int:
    row = conn.execute(
        "SELECT COALESCE(SUM(num_bytes), 0) FROM tables WHERE user_id = ? AND project_id = ?",
        (user_id, project_id),
    ).fetchone()
    return int(row[0])

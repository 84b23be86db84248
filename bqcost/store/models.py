"""
Persisted records: users, projects and table metadata rows.
"""

import sqlite3
from dataclasses import dataclass

from bqcost.bigquery.models import TableMetadata


@dataclass(frozen=True)
class User:
    """A user is identified by their OAuth access token."""
    id: int
    access_token: str

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "User":
        return cls(id=row["id"], access_token=row["access_token"])


@dataclass
class Project:
    """
    Load state of one (user, project) pair.

    Exactly one of loading, failed or ready holds: a project with a
    loading_error is never loading.
    """
    user_id: int
    project_id: str
    is_loading: bool = False
    loading_percent: int = 0
    loading_message: str = ""
    loading_error: str = ""

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "Project":
        return cls(
            user_id=row["user_id"],
            project_id=row["project_id"],
            is_loading=bool(row["is_loading"]),
            loading_percent=row["loading_percent"],
            loading_message=row["loading_message"] or "",
            loading_error=row["loading_error"] or "",
        )


@dataclass
class Table:
    user_id: int
    project_id: str
    dataset_id: str
    table_id: str
    friendly_name: str = ""
    description: str = ""
    num_bytes: int = 0
    num_long_term_bytes: int = 0
    num_rows: int = 0
    creation_time_ms: int = 0
    last_modified_time_ms: int = 0
    streaming_estimated_bytes: int = 0
    streaming_estimated_rows: int = 0

    @classmethod
    def from_metadata(cls, user_id: int, project_id: str, meta: TableMetadata) -> "Table":
        """Row for `meta`, stored under the requested project.

        The row is keyed by the project the user asked for, which is the
        project the metadata was listed from.
        """
        return cls(
            user_id=user_id,
            project_id=project_id,
            dataset_id=meta.dataset_id,
            table_id=meta.table_id,
            friendly_name=meta.friendly_name,
            description=meta.description,
            num_bytes=meta.num_bytes,
            num_long_term_bytes=meta.num_long_term_bytes,
            num_rows=meta.num_rows,
            creation_time_ms=meta.creation_time_ms,
            last_modified_time_ms=meta.last_modified_time_ms,
            streaming_estimated_bytes=meta.streaming_estimated_bytes,
            streaming_estimated_rows=meta.streaming_estimated_rows,
        )

    @classmethod
    def from_row(cls, row: sqlite3.Row) -> "Table":
        return cls(**{key: row[key] for key in row.keys()})

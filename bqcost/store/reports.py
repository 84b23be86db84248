"""
Storage usage summaries over ingested table metadata.
"""

import sqlite3
from dataclasses import dataclass, field
from typing import List

from bqcost.store.db import query_total_table_bytes


@dataclass
class StorageUsage:
    """Bytes stored by one dataset or table."""
    id: str
    bytes: int

    def percent(self, total: int) -> float:
        """Share of `total` bytes, in percent; 0 for an empty project."""
        if total <= 0:
            return 0.0
        return 100.0 * self.bytes / total


@dataclass
class ProjectReport:
    project_id: str
    total_bytes: int = 0
    table_count: int = 0
    datasets: List[StorageUsage] = field(default_factory=list)
    tables: List[StorageUsage] = field(default_factory=list)


def query_project(
    conn: sqlite3.Connection,
    user_id: int,
    project_id: str,
    max_top_results: int = 20,
) -> ProjectReport:
    """Summarize storage of a loaded project.

    Returns the total bytes and row count, plus the largest datasets
    (bytes summed over their tables) and the largest tables, each sorted
    by bytes descending and limited to max_top_results.
    """
    total = query_total_table_bytes(conn, user_id, project_id)
    count = conn.execute(
        "SELECT COUNT(*) FROM tables WHERE user_id = ? AND project_id = ?",
        (user_id, project_id),
    ).fetchone()[0]

    dataset_rows = conn.execute(
        """SELECT dataset_id, SUM(num_bytes) AS total_bytes FROM tables
           WHERE user_id = ? AND project_id = ?
           GROUP BY dataset_id
           ORDER BY total_bytes DESC, dataset_id
           LIMIT ?""",
        (user_id, project_id, max_top_results),
    ).fetchall()

    table_rows = conn.execute(
        """SELECT dataset_id, table_id, num_bytes FROM tables
           WHERE user_id = ? AND project_id = ?
           ORDER BY num_bytes DESC, dataset_id, table_id
           LIMIT ?""",
        (user_id, project_id, max_top_results),
    ).fetchall()

    return ProjectReport(
        project_id=project_id,
        total_bytes=total,
        table_count=count,
        datasets=[StorageUsage(row["dataset_id"], row["total_bytes"]) for row in dataset_rows],
        tables=[
            StorageUsage(f"{row['dataset_id']}.{row['table_id']}", row["num_bytes"])
            for row in table_rows
        ],
    )

"""
Shared test fixtures for the bqcost test suite.
"""

import threading
from pathlib import Path
from typing import Callable, Dict, List, Optional

import pytest

from bqcost.bigquery.client import ListingAPI
from bqcost.bigquery.models import DatasetRef, Page, TableMetadata, TableRef
from bqcost.config import IngestConfig
from bqcost.store.db import Database


class FakeListingAPI(ListingAPI):
    """In-memory ListingAPI serving `page_size` items per page.

    `datasets` maps dataset ID to the metadata of its tables, in order.
    `table_errors` maps table ID to a list of exceptions raised by
    successive get_table calls for that table before it succeeds.
    """

    def __init__(
        self,
        project_id: str = "my-project",
        datasets: Optional[Dict[str, List[TableMetadata]]] = None,
        page_size: int = 2,
    ):
        self.project_id = project_id
        self.datasets = datasets or {}
        self.page_size = page_size
        self.table_errors: Dict[str, List[Exception]] = {}
        self.on_get_table: Optional[Callable[[str], None]] = None
        self.calls: List[tuple] = []
        self.closed = False
        self._lock = threading.Lock()

    def _page(self, items: list, page_token: str) -> Page:
        start = int(page_token) if page_token else 0
        end = start + self.page_size
        next_token = str(end) if end < len(items) else ""
        return Page(items=items[start:end], next_page_token=next_token)

    def list_datasets(self, project_id: str, page_token: str = "") -> Page[DatasetRef]:
        with self._lock:
            self.calls.append(("list_datasets", project_id, page_token))
        refs = [DatasetRef(project_id, d) for d in self.datasets]
        return self._page(refs, page_token)

    def list_tables(self, project_id: str, dataset_id: str, page_token: str = "") -> Page[TableRef]:
        with self._lock:
            self.calls.append(("list_tables", dataset_id, page_token))
        refs = [
            TableRef(project_id, dataset_id, t.table_id)
            for t in self.datasets[dataset_id]
        ]
        return self._page(refs, page_token)

    def get_table(self, project_id: str, dataset_id: str, table_id: str) -> TableMetadata:
        with self._lock:
            self.calls.append(("get_table", dataset_id, table_id))
            errors = self.table_errors.get(table_id)
            err = errors.pop(0) if errors else None
        if self.on_get_table is not None:
            self.on_get_table(table_id)
        if err is not None:
            raise err
        for meta in self.datasets[dataset_id]:
            if meta.table_id == table_id:
                return meta
        raise KeyError(table_id)

    def close(self) -> None:
        self.closed = True

    def count(self, method: str) -> int:
        return sum(1 for call in self.calls if call[0] == method)


def make_table(
    dataset_id: str,
    table_id: str,
    num_bytes: int = 0,
    type: str = "TABLE",
    project_id: str = "my-project",
) -> TableMetadata:
    return TableMetadata(
        project_id=project_id,
        dataset_id=dataset_id,
        table_id=table_id,
        type=type,
        num_bytes=num_bytes,
        num_rows=num_bytes // 10,
        creation_time_ms=1500000000000,
        last_modified_time_ms=1500000001000,
    )


@pytest.fixture
def test_data_dir(tmp_path: Path) -> Path:
    """Provide a temporary directory for test data."""
    data_dir = tmp_path / "data"
    data_dir.mkdir()
    return data_dir


@pytest.fixture
def db(test_data_dir: Path) -> Database:
    """A fresh SQLite database in the temp directory."""
    return Database(test_data_dir / "bqcost.db")


@pytest.fixture
def fast_config() -> IngestConfig:
    """Unlimited rate and millisecond backoff so tests never wait long."""
    return IngestConfig(
        requests_per_second=float("inf"),
        initial_interval_seconds=0.001,
        max_interval_seconds=0.002,
        run_timeout_seconds=30.0,
        max_workers=2,
    )


@pytest.fixture
def sample_api() -> FakeListingAPI:
    """Two datasets holding three tables, 600 bytes in total."""
    return FakeListingAPI(
        datasets={
            "analytics": [
                make_table("analytics", "events", 300),
                make_table("analytics", "sessions", 200),
            ],
            "raw": [make_table("raw", "dump", 100)],
        }
    )

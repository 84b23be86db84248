"""Unit tests for bqcost.store (database, repositories, reports)."""

import pytest

from conftest import make_table

from bqcost.ingestion.exceptions import PersistenceError
from bqcost.store import db as store
from bqcost.store.models import Project, Table
from bqcost.store.reports import StorageUsage, query_project


def add_project(db, access_token="token-a", project_id="my-project") -> int:
    with db.transaction() as conn:
        user = store.insert_user(conn, access_token)
        store.insert_project(conn, Project(user_id=user.id, project_id=project_id))
    return user.id


def add_tables(db, user_id, tables, project_id="my-project"):
    with db.transaction() as conn:
        store.insert_tables(conn, [Table.from_metadata(user_id, project_id, t) for t in tables])


class TestTransaction:
    """Tests for Database.transaction."""

    def test_commits_on_success(self, db):
        with db.transaction() as conn:
            store.insert_user(conn, "token-a")
        with db.transaction() as conn:
            assert store.get_user_by_access_token(conn, "token-a") is not None

    def test_rolls_back_on_error(self, db):
        with pytest.raises(RuntimeError):
            with db.transaction() as conn:
                store.insert_user(conn, "token-a")
                raise RuntimeError("boom")
        with db.transaction() as conn:
            assert store.get_user_by_access_token(conn, "token-a") is None

    def test_sqlite_errors_become_persistence_errors(self, db):
        with pytest.raises(PersistenceError, match="UNIQUE"):
            with db.transaction() as conn:
                store.insert_user(conn, "token-a")
                store.insert_user(conn, "token-a")

    def test_ping(self, db):
        assert db.ping()


class TestRepositories:
    """Tests for user, project and table row access."""

    def test_user_ids_autoincrement(self, db):
        with db.transaction() as conn:
            first = store.insert_user(conn, "token-a")
            second = store.insert_user(conn, "token-b")
        assert second.id == first.id + 1

    def test_project_round_trip(self, db):
        user_id = add_project(db)
        with db.transaction() as conn:
            project = store.get_project(conn, user_id, "my-project")
            project.is_loading = True
            project.loading_percent = 42
            project.loading_message = "halfway"
            store.update_project(conn, project)
        with db.transaction() as conn:
            loaded = store.get_project(conn, user_id, "my-project")
        assert loaded == Project(
            user_id=user_id,
            project_id="my-project",
            is_loading=True,
            loading_percent=42,
            loading_message="halfway",
            loading_error="",
        )

    def test_missing_project(self, db):
        with db.transaction() as conn:
            assert store.get_project(conn, 1, "nope-project") is None

    def test_insert_and_read_tables(self, db):
        user_id = add_project(db)
        add_tables(db, user_id, [make_table("ds", "b", 10), make_table("ds", "a", 20)])
        with db.transaction() as conn:
            tables = store.get_tables(conn, user_id, "my-project")
        assert [t.table_id for t in tables] == ["a", "b"]
        assert tables[0].num_bytes == 20
        assert tables[0].creation_time_ms == 1500000000000

    def test_duplicate_table_rows_rejected(self, db):
        user_id = add_project(db)
        add_tables(db, user_id, [make_table("ds", "a", 10)])
        with pytest.raises(PersistenceError):
            add_tables(db, user_id, [make_table("ds", "a", 10)])

    def test_total_bytes(self, db):
        user_id = add_project(db)
        with db.transaction() as conn:
            assert store.query_total_table_bytes(conn, user_id, "my-project") == 0
        add_tables(db, user_id, [make_table("ds", "a", 300), make_table("ds", "b", 200)])
        with db.transaction() as conn:
            assert store.query_total_table_bytes(conn, user_id, "my-project") == 500


class TestReports:
    """Tests for query_project storage summaries."""

    def test_top_datasets_and_tables(self, db):
        user_id = add_project(db)
        add_tables(db, user_id, [
            make_table("small", "x", 50),
            make_table("big", "y", 400),
            make_table("big", "z", 100),
            make_table("mid", "w", 450),
        ])
        with db.transaction() as conn:
            report = query_project(conn, user_id, "my-project", max_top_results=2)

        assert report.total_bytes == 1000
        assert report.table_count == 4
        assert report.datasets == [StorageUsage("big", 500), StorageUsage("mid", 450)]
        assert report.tables == [StorageUsage("mid.w", 450), StorageUsage("big.y", 400)]

    def test_empty_project(self, db):
        user_id = add_project(db)
        with db.transaction() as conn:
            report = query_project(conn, user_id, "my-project")
        assert report.total_bytes == 0
        assert report.datasets == []

    def test_percent(self):
        assert StorageUsage("a", 250).percent(1000) == pytest.approx(25.0)
        assert StorageUsage("a", 0).percent(0) == 0.0

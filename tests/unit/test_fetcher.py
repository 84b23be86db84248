"""Unit tests for metadata fetching, progress estimates and the table scraper."""

from dataclasses import replace
from typing import List, Tuple

import pytest

from conftest import FakeListingAPI, make_table

from bqcost.bigquery.models import TableRef
from bqcost.ingestion.caller import ApiCaller
from bqcost.ingestion.context import RunContext
from bqcost.ingestion.exceptions import ApiError, Cancelled, ResourceLimitError
from bqcost.ingestion.fetcher import MetadataFetcher, ProgressReporter, estimate_progress
from bqcost.ingestion.ratelimit import RateLimiter
from bqcost.ingestion.retry import RetryPolicy
from bqcost.ingestion.scrape import TableScraper


class RecordingReporter(ProgressReporter):
    def __init__(self):
        self.reports: List[Tuple[int, str]] = []

    def report(self, percent: int, message: str) -> None:
        self.reports.append((percent, message))


@pytest.fixture
def reporter() -> RecordingReporter:
    return RecordingReporter()


@pytest.fixture
def caller() -> ApiCaller:
    return ApiCaller(RateLimiter(float("inf"), 0), RetryPolicy(sleep=lambda s: None))


def five_table_api() -> FakeListingAPI:
    return FakeListingAPI(datasets={
        "ds": [make_table("ds", f"t{i}", i * 10) for i in range(5)],
    })


def five_refs() -> List[TableRef]:
    return [TableRef("my-project", "ds", f"t{i}") for i in range(5)]


class TestEstimateProgress:
    """Tests for the progress percentage formula."""

    @pytest.mark.parametrize("done,total,percent", [
        (0, 100, 10),
        (50, 100, 54),
        (100, 100, 99),
        (1, 4, 32),
    ])
    def test_breakpoints(self, done, total, percent):
        assert estimate_progress(done, total)[0] == percent

    def test_message(self):
        assert estimate_progress(50, 100) == (54, "Reading table metadata: 50/100 tables")

    def test_empty_total(self):
        assert estimate_progress(0, 0)[0] == 10


class TestMetadataFetcher:
    """Tests for MetadataFetcher.fetch_all."""

    def test_rejects_non_positive_interval(self, caller):
        with pytest.raises(ValueError):
            MetadataFetcher(caller, lambda *a: None, report_interval=0)

    def test_reports_every_interval(self, caller, reporter):
        api = five_table_api()
        refs = five_refs()
        fetcher = MetadataFetcher(caller, api.get_table, report_interval=2)
        results = fetcher.fetch_all("my-project", refs, reporter)

        assert [t.table_id for t in results] == ["t0", "t1", "t2", "t3", "t4"]
        assert reporter.reports == [
            (10, "Reading table metadata: 0/5 tables"),
            (46, "Reading table metadata: 2/5 tables"),
            (81, "Reading table metadata: 4/5 tables"),
            (99, "Saving results..."),
        ]

    def test_no_tables_reports_start_and_end(self, caller, reporter):
        fetcher = MetadataFetcher(caller, lambda *a: None)
        assert fetcher.fetch_all("my-project", [], reporter) == []
        assert reporter.reports == [
            (10, "Reading table metadata: 0/0 tables"),
            (99, "Saving results..."),
        ]

    def test_failed_fetch_aborts(self, caller, reporter):
        api = five_table_api()
        api.table_errors["t2"] = [ApiError(403, "denied", ["accessDenied"])]
        refs = five_refs()
        fetcher = MetadataFetcher(caller, api.get_table)
        with pytest.raises(ApiError, match="denied"):
            fetcher.fetch_all("my-project", refs, reporter)
        assert api.count("get_table") == 3
        assert (99, "Saving results...") not in reporter.reports


class TestTableScraper:
    """Tests for the full listing pipeline against a fake API."""

    def test_progress_sequence_for_four_tables(self, fast_config, reporter):
        api = FakeListingAPI(datasets={
            "a": [make_table("a", "t1"), make_table("a", "t2")],
            "b": [make_table("b", "t3"), make_table("b", "t4")],
        })
        tables = TableScraper(api, fast_config).get_all_tables("my-project", reporter)

        assert len(tables) == 4
        assert reporter.reports == [
            (0, "Listing tables..."),
            (10, "Reading table metadata: 0/4 tables"),
            (99, "Saving results..."),
        ]

    @pytest.mark.parametrize("datasets", [{}, {"ds": []}, {"a": [], "b": []}])
    def test_empty_project_still_reports_fetch_start(self, fast_config, reporter, datasets):
        api = FakeListingAPI(datasets=datasets)
        tables = TableScraper(api, fast_config).get_all_tables("my-project", reporter)

        assert tables == []
        assert reporter.reports == [
            (0, "Listing tables..."),
            (10, "Reading table metadata: 0/0 tables"),
            (99, "Saving results..."),
        ]

    def test_preserves_listing_order(self, fast_config):
        api = FakeListingAPI(datasets={
            "z": [make_table("z", "t3"), make_table("z", "t1"), make_table("z", "t2")],
            "a": [make_table("a", "t9")],
        })
        tables = TableScraper(api, fast_config).get_all_tables("my-project")
        assert [(t.dataset_id, t.table_id) for t in tables] == [
            ("z", "t3"), ("z", "t1"), ("z", "t2"), ("a", "t9"),
        ]

    def test_progress_is_monotonic(self, fast_config, reporter):
        api = FakeListingAPI(datasets={
            f"ds{d}": [make_table(f"ds{d}", f"t{i}") for i in range(7)] for d in range(5)
        })
        config = replace(fast_config, progress_report_interval=3)
        TableScraper(api, config).get_all_tables("my-project", reporter)
        percents = [p for p, _ in reporter.reports]
        assert percents == sorted(percents)
        assert percents[0] == 0 and percents[-1] == 99

    def test_table_limit_spans_datasets(self, fast_config, sample_api):
        config = replace(fast_config, max_tables=2)
        with pytest.raises(ResourceLimitError, match="exceeded max tables:2"):
            TableScraper(sample_api, config).get_all_tables("my-project")
        assert sample_api.count("get_table") == 0

    def test_dataset_limit(self, fast_config, sample_api):
        config = replace(fast_config, max_datasets=1)
        with pytest.raises(ResourceLimitError, match="exceeded max datasets:1"):
            TableScraper(sample_api, config).get_all_tables("my-project")
        assert sample_api.count("list_tables") == 0

    def test_transient_fetch_error_retried(self, fast_config, sample_api):
        sample_api.table_errors["sessions"] = [ApiError(500, "backend", ["backendError"])]
        tables = TableScraper(sample_api, fast_config).get_all_tables("my-project")
        assert len(tables) == 3
        assert sample_api.count("get_table") == 4

    def test_cancelled_context_stops_listing(self, fast_config, sample_api):
        ctx = RunContext()
        ctx.cancel()
        with pytest.raises(Cancelled):
            TableScraper(sample_api, fast_config).get_all_tables("my-project", ctx=ctx)
        assert sample_api.calls == []

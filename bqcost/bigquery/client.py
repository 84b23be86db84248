"""
Remote listing API for BigQuery projects.

ListingAPI is the seam the ingestion pipeline depends on; BigQueryAPI
implements it against the BigQuery REST v2 endpoints with the user's
OAuth access token.
"""

from abc import ABC, abstractmethod
from logging import Logger
from typing import Any, Dict, Optional

import httpx

from bqcost.bigquery.models import DatasetRef, Page, TableMetadata, TableRef
from bqcost.ingestion.exceptions import ApiError
from bqcost.logging_config import get_logger

DEFAULT_API_URL = "https://bigquery.googleapis.com/bigquery/v2"


class ListingAPI(ABC):
    """Paginated dataset/table listing plus per-table metadata lookup.

    Implementations raise ApiError for error responses so the retry
    policy can classify them by reason code.
    """

    @abstractmethod
    def list_datasets(self, project_id: str, page_token: str = "") -> Page[DatasetRef]:
        """Return one page of datasets in the project."""
        pass

    @abstractmethod
    def list_tables(
        self, project_id: str, dataset_id: str, page_token: str = ""
    ) -> Page[TableRef]:
        """Return one page of tables in the dataset."""
        pass

    @abstractmethod
    def get_table(self, project_id: str, dataset_id: str, table_id: str) -> TableMetadata:
        """Return storage metadata for one table."""
        pass

    def close(self) -> None:
        """Release any held connections."""
        pass


def error_from_response(response: httpx.Response) -> ApiError:
    """Build an ApiError from a Google API error body.

    Expected shape:
        {"error": {"code": 403, "message": "...", "errors": [{"reason": "accessDenied"}]}}
    Bodies that are not JSON keep the status code and have no reasons.
    """
    try:
        body = response.json()
    except ValueError:
        return ApiError(response.status_code, response.text[:200] or response.reason_phrase)

    error = body.get("error") if isinstance(body, dict) else None
    if not isinstance(error, dict):
        return ApiError(response.status_code, response.text[:200])

    reasons = [
        item.get("reason", "")
        for item in error.get("errors") or []
        if isinstance(item, dict) and item.get("reason")
    ]
    return ApiError(
        error.get("code", response.status_code),
        error.get("message", response.reason_phrase),
        reasons,
    )


class BigQueryAPI(ListingAPI):
    """BigQuery REST v2 client authenticated with a bearer access token."""

    def __init__(
        self,
        access_token: str,
        base_url: str = DEFAULT_API_URL,
        timeout: float = 30.0,
        max_results: int = 1000,
        transport: Optional[httpx.BaseTransport] = None,
        logger: Optional[Logger] = None,
    ):
        self.max_results = max_results
        self._logger = logger or get_logger(__name__)
        self._client = httpx.Client(
            base_url=base_url.rstrip("/"),
            headers={"Authorization": f"Bearer {access_token}"},
            timeout=timeout,
            transport=transport,
        )

    def _get(self, path: str, params: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        response = self._client.get(path, params=params)
        if response.status_code >= 400:
            err = error_from_response(response)
            self._logger.debug(f"GET {path} failed: {err}")
            raise err
        return response.json()

    def _page_params(self, page_token: str) -> Dict[str, Any]:
        params: Dict[str, Any] = {"maxResults": self.max_results}
        if page_token:
            params["pageToken"] = page_token
        return params

    def list_datasets(self, project_id: str, page_token: str = "") -> Page[DatasetRef]:
        data = self._get(
            f"/projects/{project_id}/datasets", params=self._page_params(page_token)
        )
        return Page(
            items=[DatasetRef.from_api(d) for d in data.get("datasets", [])],
            next_page_token=data.get("nextPageToken", ""),
        )

    def list_tables(
        self, project_id: str, dataset_id: str, page_token: str = ""
    ) -> Page[TableRef]:
        data = self._get(
            f"/projects/{project_id}/datasets/{dataset_id}/tables",
            params=self._page_params(page_token),
        )
        return Page(
            items=[TableRef.from_api(t) for t in data.get("tables", [])],
            next_page_token=data.get("nextPageToken", ""),
        )

    def get_table(self, project_id: str, dataset_id: str, table_id: str) -> TableMetadata:
        data = self._get(f"/projects/{project_id}/datasets/{dataset_id}/tables/{table_id}")
        return TableMetadata.from_api(data)

    def close(self) -> None:
        self._client.close()

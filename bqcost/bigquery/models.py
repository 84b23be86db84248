"""
Value types for BigQuery REST v2 listing responses.

Int64 fields arrive as JSON strings ("numBytes": "1024"); the from_api
constructors convert them and treat absent fields as zero.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Generic, List, TypeVar

T = TypeVar("T")


def _int(value: Any) -> int:
    if value in (None, ""):
        return 0
    return int(value)


@dataclass
class Page(Generic[T]):
    """One page of a listing. An empty next_page_token means last page."""
    items: List[T] = field(default_factory=list)
    next_page_token: str = ""


@dataclass(frozen=True)
class DatasetRef:
    project_id: str
    dataset_id: str

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "DatasetRef":
        ref = data["datasetReference"]
        return cls(project_id=ref["projectId"], dataset_id=ref["datasetId"])


@dataclass(frozen=True)
class TableRef:
    project_id: str
    dataset_id: str
    table_id: str

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "TableRef":
        ref = data["tableReference"]
        return cls(
            project_id=ref["projectId"],
            dataset_id=ref["datasetId"],
            table_id=ref["tableId"],
        )


@dataclass
class TableMetadata:
    """Storage metadata of one table, as returned by tables.get."""
    project_id: str
    dataset_id: str
    table_id: str
    type: str = "TABLE"
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
    def from_api(cls, data: Dict[str, Any]) -> "TableMetadata":
        ref = data["tableReference"]
        streaming = data.get("streamingBuffer") or {}
        return cls(
            project_id=ref["projectId"],
            dataset_id=ref["datasetId"],
            table_id=ref["tableId"],
            type=data.get("type", "TABLE"),
            friendly_name=data.get("friendlyName", ""),
            description=data.get("description", ""),
            num_bytes=_int(data.get("numBytes")),
            num_long_term_bytes=_int(data.get("numLongTermBytes")),
            num_rows=_int(data.get("numRows")),
            creation_time_ms=_int(data.get("creationTime")),
            last_modified_time_ms=_int(data.get("lastModifiedTime")),
            streaming_estimated_bytes=_int(streaming.get("estimatedBytes")),
            streaming_estimated_rows=_int(streaming.get("estimatedRows")),
        )

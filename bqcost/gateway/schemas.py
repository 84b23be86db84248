"""
Pydantic schemas for the project status API.
"""

from enum import Enum
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from bqcost.loading.state import Failed, Loading, LoadStatus, Ready
from bqcost.store.reports import ProjectReport, StorageUsage


class LoadState(str, Enum):
    """Project load states."""
    LOADING = "loading"
    READY = "ready"
    FAILED = "failed"


class StorageUsageModel(BaseModel):
    id: str = Field(..., description="Dataset ID, or dataset.table for tables")
    bytes: int = Field(..., ge=0)
    percent: float = Field(..., description="Share of the project's total bytes")

    @classmethod
    def from_usage(cls, usage: StorageUsage, total: int) -> "StorageUsageModel":
        return cls(id=usage.id, bytes=usage.bytes, percent=round(usage.percent(total), 2))


class ProjectReportModel(BaseModel):
    """Storage summary of a loaded project."""
    project_id: str
    total_bytes: int = Field(0, ge=0)
    table_count: int = Field(0, ge=0)
    datasets: List[StorageUsageModel] = Field(default_factory=list)
    tables: List[StorageUsageModel] = Field(default_factory=list)

    @classmethod
    def from_report(cls, report: ProjectReport) -> "ProjectReportModel":
        total = report.total_bytes
        return cls(
            project_id=report.project_id,
            total_bytes=total,
            table_count=report.table_count,
            datasets=[StorageUsageModel.from_usage(u, total) for u in report.datasets],
            tables=[StorageUsageModel.from_usage(u, total) for u in report.tables],
        )


class ProjectStatusResponse(BaseModel):
    """Response for GET /api/v1/projects/{project_id}."""
    project_id: str
    state: LoadState
    percent: Optional[int] = Field(None, ge=0, le=100, description="Set while loading")
    message: str = Field("", description="Progress message while loading")
    error: Optional[str] = Field(None, description="Set when loading failed")
    report: Optional[ProjectReportModel] = Field(None, description="Set when ready")

    @classmethod
    def from_status(cls, project_id: str, status: LoadStatus) -> "ProjectStatusResponse":
        if isinstance(status, Loading):
            return cls(
                project_id=project_id,
                state=LoadState.LOADING,
                percent=status.percent,
                message=status.message,
            )
        if isinstance(status, Failed):
            return cls(project_id=project_id, state=LoadState.FAILED, error=status.message)
        if isinstance(status, Ready):
            return cls(
                project_id=project_id,
                state=LoadState.READY,
                percent=100,
                report=ProjectReportModel.from_report(status.report) if status.report else None,
            )
        raise TypeError(f"Unknown load status: {status!r}")


class HealthStatus(BaseModel):
    status: str = Field(..., description="healthy or unhealthy")
    checks: Dict[str, bool] = Field(default_factory=dict)
    active_loads: int = 0

"""
Gateway API route handlers.

Provides:
- Project status (GET /api/v1/projects/{project_id})
- Health check (GET /api/v1/health)
- Exception handlers mapping errors to the {"error", "code"} shape

Handlers read their collaborators from app.state:
    status_service  ProjectStatusService
    loader          BackgroundLoader
    db              Database
"""

import re
from typing import Optional

from starlette.concurrency import run_in_threadpool
from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.routing import Route

from bqcost.gateway.schemas import HealthStatus, LoadState, ProjectStatusResponse
from bqcost.ingestion.exceptions import LoaderUnavailable, PersistenceError
from bqcost.logging_config import get_logger

logger = get_logger(__name__)

# Optional domain prefix ("example.com:"), then a standard project ID.
PROJECT_ID_PATTERN = re.compile(r"^(?:[a-z0-9.\-]+:)?[a-z][a-z0-9\-]{4,28}[a-z0-9]$")


def get_access_token_from_request(request: Request) -> Optional[str]:
    """Extract the OAuth access token from the Authorization header."""
    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        return auth_header[7:].strip() or None
    return None


# =============================================================================
# Project Endpoints
# =============================================================================

async def api_project_status(request: Request) -> JSONResponse:
    """
    Project load status.

    GET /api/v1/projects/{project_id}

    The first request for a project starts loading it (202). Poll until
    the state is ready (200, with the storage report) or failed (200,
    with the error).
    """
    access_token = get_access_token_from_request(request)
    if not access_token:
        return JSONResponse(
            {"error": "Missing access token", "code": "UNAUTHORIZED"},
            status_code=401,
        )

    project_id = request.path_params["project_id"]
    if not PROJECT_ID_PATTERN.match(project_id):
        return JSONResponse(
            {"error": f"Invalid project ID: {project_id}", "code": "BAD_REQUEST"},
            status_code=400,
        )

    service = request.app.state.status_service
    status = await run_in_threadpool(service.request_status, access_token, project_id)

    response = ProjectStatusResponse.from_status(project_id, status)
    return JSONResponse(
        response.model_dump(mode="json"),
        status_code=202 if response.state == LoadState.LOADING else 200,
    )


# =============================================================================
# Health
# =============================================================================

async def api_health(request: Request) -> JSONResponse:
    """
    Service health.

    GET /api/v1/health
    """
    db = request.app.state.db
    loader = request.app.state.loader
    checks = {
        "database": await run_in_threadpool(db.ping),
        "loader": not loader.is_shut_down,
    }
    healthy = all(checks.values())
    response = HealthStatus(
        status="healthy" if healthy else "unhealthy",
        checks=checks,
        active_loads=loader.active_count,
    )
    return JSONResponse(response.model_dump(mode="json"), status_code=200 if healthy else 503)


gateway_routes = [
    Route("/api/v1/projects/{project_id}", api_project_status, methods=["GET"]),
    Route("/api/v1/health", api_health, methods=["GET"]),
]


# =============================================================================
# Exception Handlers
# =============================================================================

async def database_error(request: Request, exc: PersistenceError) -> JSONResponse:
    logger.error(f"Database error on {request.url.path}: {exc}")
    return JSONResponse(
        {"error": "Database unavailable", "code": "DATABASE_ERROR"},
        status_code=503,
    )


async def loader_unavailable(request: Request, exc: LoaderUnavailable) -> JSONResponse:
    logger.error(f"Could not start loading on {request.url.path}: {exc}")
    return JSONResponse(
        {"error": "Could not start loading project", "code": "LOAD_NOT_STARTED"},
        status_code=503,
    )


async def unhandled_error(request: Request, exc: Exception) -> JSONResponse:
    logger.error(f"Unhandled exception on {request.url.path}: {exc}", exc_info=exc)
    return JSONResponse(
        {"error": "Internal server error", "code": "INTERNAL_ERROR"},
        status_code=500,
    )


gateway_exception_handlers = {
    PersistenceError: database_error,
    LoaderUnavailable: loader_unavailable,
    Exception: unhandled_error,
}

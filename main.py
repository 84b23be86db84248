"""
API server for BigQuery storage-cost reports.

Clients poll GET /api/v1/projects/{project_id} with their Google OAuth
access token; the first poll starts a background scrape of the
project's table metadata.
"""
from contextlib import asynccontextmanager
from pathlib import Path

import uvicorn
from starlette.applications import Starlette
from starlette.middleware import Middleware

from bqcost.config import IngestConfig, get
from bqcost.gateway.api import gateway_exception_handlers, gateway_routes
from bqcost.gateway.middleware import CorrelationIdMiddleware
from bqcost.loading.service import ProjectStatusService
from bqcost.loading.state import LoadStateMachine
from bqcost.loading.worker import BackgroundLoader
from bqcost.logging_config import configure_logging, get_logger
from bqcost.store.db import Database

LOG_LEVEL = get("app", "log_level").upper()
configure_logging(
    log_level=LOG_LEVEL,
    service="bqcost",
    log_dir=Path(get("app", "log_dir")) if get("app", "log_to_file", fallback=False) else None,
)
logger = get_logger("bqcost")

config = IngestConfig.from_config()
db = Database(get("app", "database_path"))
state = LoadStateMachine(db)
loader = BackgroundLoader(state, db, config=config)
state.set_loader(loader.start_loading)
status_service = ProjectStatusService(state, max_top_results=config.max_top_results)


@asynccontextmanager
async def lifespan(app: Starlette):
    app.state.db = db
    app.state.loader = loader
    app.state.status_service = status_service
    logger.info("Application startup complete")
    yield
    loader.shutdown(cancel=True, wait=True)
    logger.info("Application shutdown complete")


app = Starlette(
    debug=False,
    routes=gateway_routes,
    middleware=[Middleware(CorrelationIdMiddleware)],
    exception_handlers=gateway_exception_handlers,
    lifespan=lifespan,
)


if __name__ == "__main__":
    uvicorn.run(
        "main:app",
        host=get("app", "host"),
        port=get("app", "port"),
        log_level=LOG_LEVEL.lower(),
    )

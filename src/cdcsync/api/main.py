"""FastAPI application factory."""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from cdcsync.api.deps import shutdown_orchestrator
from cdcsync.api.routes import connections, risingwave, sync as sync_routes, tasks
from cdcsync.errors import ConfigError, NotFoundError, SyncError, ValidationError

logger = logging.getLogger(__name__)

_STATUS_CODES = {
    NotFoundError: 404,
    ValidationError: 400,
    ConfigError: 500,
}


async def _sync_error_handler(request: Request, exc: SyncError) -> JSONResponse:
    status_code = next(
        (code for cls, code in _STATUS_CODES.items() if isinstance(exc, cls)), 500
    )
    if status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=status_code, content={"detail": str(exc)})


def create_app() -> FastAPI:
    """Build and return the FastAPI app."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        yield
        await shutdown_orchestrator()

    app = FastAPI(
        title="cdcsync",
        description="MySQL → RisingWave → StarRocks CDC provisioning",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.add_exception_handler(SyncError, _sync_error_handler)

    @app.get("/health", tags=["health"])
    def health():
        return {"status": "healthy", "service": "cdcsync"}

    app.include_router(sync_routes.router, prefix="/sync", tags=["sync"])
    app.include_router(tasks.router, prefix="/tasks", tags=["tasks"])
    app.include_router(connections.router, prefix="/connections", tags=["connections"])
    app.include_router(risingwave.router, prefix="/risingwave", tags=["risingwave"])

    return app


# Module-level app instance for uvicorn
app = create_app()

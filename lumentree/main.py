"""FastAPI application entry point."""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from lumentree import __version__
from lumentree.api.dependencies import (
    get_hub,
    get_lumentree_client,
    limiter,
)
from lumentree.api.routes import debug, devices, hub
from lumentree.api.schemas import HealthResponse
from lumentree.config import get_settings
from lumentree.core import LumentreeError
from lumentree.core.logger import configure_logging, get_logger
from lumentree.scheduler import (
    get_scheduler,
    init_scheduler,
    shutdown_scheduler,
    start_scheduler,
)

configure_logging()
logger = get_logger(__name__)
settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Start the push scheduler and release the upstream client on shutdown."""
    logger.info("application_starting", app_name=settings.app_name, env=settings.app_env)

    if settings.realtime.enabled:
        try:
            init_scheduler()
            start_scheduler()
        except Exception as e:
            # Live push is optional, the REST API still serves
            logger.error("scheduler_start_failed", error=str(e), exc_info=True)

    yield

    logger.info("application_shutting_down")
    await shutdown_scheduler()
    await get_lumentree_client().close()


app = FastAPI(
    title=settings.app_name,
    version=__version__,
    description="Dashboard API for Lumentree solar inverters",
    lifespan=lifespan,
)

app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials="*" not in settings.cors_origins,
    allow_methods=["GET"],
    allow_headers=["Content-Type", "Authorization"],
)


@app.exception_handler(LumentreeError)
async def lumentree_error_handler(request: Request, exc: LumentreeError) -> JSONResponse:
    """Render gateway errors as JSON with their stable code."""
    log = logger.error if exc.status_code >= 500 else logger.warning
    log(
        "request_failed",
        path=request.url.path,
        code=exc.code,
        status_code=exc.status_code,
        error=exc.message,
    )
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """Last-resort 500 with the same JSON shape."""
    logger.error("request_unhandled_error", path=request.url.path, error=str(exc), exc_info=exc)
    return JSONResponse(
        status_code=500,
        content={
            "error": "Đã xảy ra lỗi khi xử lý yêu cầu. Vui lòng thử lại sau.",
            "code": "INTERNAL_ERROR",
        },
    )


@app.get("/")
async def root() -> dict[str, str]:
    """Root endpoint."""
    return {
        "message": "Lumentree Gateway API",
        "version": __version__,
        "status": "running",
    }


@app.get("/health", response_model=HealthResponse)
async def health() -> HealthResponse:
    """Health check endpoint."""
    device_hub = get_hub()
    scheduler = get_scheduler()
    return HealthResponse(
        status="healthy",
        version=__version__,
        hub_clients=device_hub.client_count,
        subscribed_devices=len(device_hub.subscribed_devices()),
        scheduler_running=scheduler is not None and scheduler.running,
    )


app.include_router(devices.router)
app.include_router(debug.router)
app.include_router(hub.router)


def main() -> None:
    """Run the API with uvicorn."""
    import uvicorn

    uvicorn.run(
        "lumentree.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.app_env == "development",
    )


if __name__ == "__main__":
    main()

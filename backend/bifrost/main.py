"""Bifrost control service - FastAPI application."""

import logging
import time
from contextlib import asynccontextmanager
from uuid import uuid4

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from bifrost import __version__
from bifrost.api.http.control import router as control_router
from bifrost.config import Settings, get_settings
from bifrost.core.engine import BifrostEngine, build_engine
from bifrost.exceptions import AppError, SceneNotAvailableError, TokenNotFoundError
from bifrost.logging_config import clear_request_context, set_request_context, setup_logging

logger = logging.getLogger("app")


def create_app(engine: BifrostEngine | None = None, settings: Settings | None = None) -> FastAPI:
    """Build the control app.

    Args:
        engine: Engine to serve; built from settings with an in-memory
            host when omitted
        settings: Settings override (defaults to ``get_settings()``)
    """
    settings = settings or (engine.settings if engine else get_settings())

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan handler for startup/shutdown."""
        setup_logging(
            log_level=settings.log_level,
            debug_namespaces=settings.debug_namespaces,
        )
        logger.info("Starting Bifrost", extra={"service": "app"})
        settings.log_config_summary()

        app.state.engine = engine or build_engine(settings)
        await app.state.engine.start()

        yield

        logger.info("Shutting down Bifrost", extra={"service": "app"})
        await app.state.engine.shutdown()

    app = FastAPI(
        title="Bifrost API",
        description="Heimdall marker tracking bridge",
        version=__version__,
        lifespan=lifespan,
    )
    app.include_router(control_router)

    @app.exception_handler(AppError)
    async def _app_error_handler(_request: Request, exc: AppError) -> JSONResponse:
        status_code = 404 if isinstance(exc, TokenNotFoundError | SceneNotAvailableError) else 400
        return JSONResponse(status_code=status_code, content=exc.to_dict())

    @app.middleware("http")
    async def _http_request_context(request: Request, call_next):
        request_id = request.headers.get("x-request-id") or str(uuid4())
        set_request_context(request_id=request_id)
        start = time.time()
        status_code: int | None = None
        try:
            response = await call_next(request)
            status_code = response.status_code
            return response
        finally:
            logger.info(
                "HTTP request completed",
                extra={
                    "service": "http",
                    "duration_ms": int((time.time() - start) * 1000),
                    "metadata": {
                        "method": request.method,
                        "path": request.url.path,
                        "status_code": status_code,
                    },
                },
            )
            clear_request_context()

    @app.get("/health")
    async def health_check():
        """Basic health check endpoint."""
        return {"status": "healthy", "service": "bifrost"}

    return app


app = create_app()

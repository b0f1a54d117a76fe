"""FastAPI service module for the NEXUS gateway.

Wires the routers, the app-wide error handlers and the ``Gateway``
lifecycle together. Every failure leaves the process as a JSON
``{"success": false, "error": ...}`` body; nothing propagates far enough to
stop the server.
"""

from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager
from typing import Any, Dict

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from .api.exceptions import error_response, status_for
from .api.routes_config import router as config_router
from .api.routes_feeds import router as feeds_router
from .api.routes_scenes import router as scenes_router
from .api.routes_sessions import router as sessions_router
from .api.routes_settings import router as settings_router
from .api.routes_shelly import router as shelly_router
from .errors import GatewayError
from .gateway import Gateway
from .logging_config import configure_logging

logger = logging.getLogger(__name__)

DEFAULT_PORT = 3000

# Global gateway instance - initialized lazily on first access
_gateway_instance: Gateway | None = None


def get_gateway() -> Gateway:
    """Get or create the singleton gateway instance."""
    global _gateway_instance
    if _gateway_instance is None:
        _gateway_instance = Gateway()
    return _gateway_instance


def reset_gateway() -> None:
    """Forget the singleton so the next access rebuilds it (tests, config dir changes)."""
    global _gateway_instance
    _gateway_instance = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage gateway startup and shutdown via FastAPI lifespan."""
    gateway = getattr(app.state, "gateway", None) or get_gateway()
    app.state.gateway = gateway
    await gateway.start()
    try:
        yield
    finally:
        await gateway.stop()


def create_app(gateway: Gateway | None = None) -> FastAPI:
    """Build the application, optionally around a prepared gateway."""
    app = FastAPI(title="NEXUS Gateway", lifespan=lifespan)
    if gateway is not None:
        app.state.gateway = gateway

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(GatewayError)
    async def gateway_error_handler(request: Request, exc: GatewayError) -> JSONResponse:
        logger.warning(f"{request.method} {request.url.path}: {exc.message}")
        return error_response(status_for(exc), exc.message)

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        return error_response(exc.status_code, str(exc.detail))

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        errors = exc.errors()
        message = errors[0].get("msg", "Invalid request") if errors else "Invalid request"
        return error_response(422, f"Invalid request: {message}")

    @app.exception_handler(Exception)
    async def unexpected_error_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.error(f"Unhandled error on {request.method} {request.url.path}", exc_info=exc)
        return error_response(500, str(exc) or type(exc).__name__)

    @app.get("/api/health")
    async def health_check(request: Request) -> Dict[str, Any]:
        """Health check endpoint for container monitoring."""
        return request.app.state.gateway.health()

    app.include_router(config_router)
    app.include_router(settings_router)
    app.include_router(sessions_router)
    app.include_router(shelly_router)
    app.include_router(feeds_router)
    app.include_router(scenes_router)
    return app


app = create_app()


def main() -> None:  # pragma: no cover
    """Run the FastAPI service under Uvicorn.

    Configuration is handled via environment variables (``PORT``,
    ``NEXUS_LOG_LEVEL``, ``NEXUS_CONFIG_DIR``, ...).
    """
    import uvicorn

    from .logging_config import get_uvicorn_log_config
    from .utils import get_env_int

    configure_logging()
    port = get_env_int("PORT", DEFAULT_PORT)
    host = os.getenv("HOST", "0.0.0.0")
    logger.info(f"Starting NEXUS gateway on {host}:{port}")

    uvicorn.run(
        app,
        host=host,
        port=port,
        log_config=get_uvicorn_log_config(),
    )


if __name__ == "__main__":
    main()

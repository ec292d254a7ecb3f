"""
FastAPI application factory.

The ClearNodeClient is built once here and stored on app.state; route
handlers reach it through the request. The lifespan connects it at startup
(a failed connect is logged and the API still serves status endpoints) and
disconnects it at shutdown.
"""

import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from paywiser.client import ClearNodeClient
from paywiser.core.config import ClearNodeSettings, load_settings
from paywiser.core.errors import PayWiserError
from paywiser.protocol.session import SessionError
from .routes import yellow_router

logger = logging.getLogger(__name__)


def _error_body(error: str, details=None, **extra) -> dict:
    body = {"success": False, "error": error, "details": details}
    body.update(extra)
    return body


@asynccontextmanager
async def lifespan(app: FastAPI):
    client: ClearNodeClient = app.state.client
    if app.state.connect_on_startup:
        try:
            await client.connect()
            logger.info("Yellow Network client ready")
        except PayWiserError as e:
            logger.error("Failed to connect to Yellow Network at startup: %s", e)
    yield
    await client.disconnect()
    logger.info("Yellow Network client stopped")


def setup_error_handling(app: FastAPI) -> None:
    """Map client and session errors to JSON error bodies."""

    @app.exception_handler(PayWiserError)
    async def paywiser_error_handler(request: Request, exc: PayWiserError):
        if exc.http_status >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc)
        return JSONResponse(
            status_code=exc.http_status,
            content=_error_body(exc.message, exc.details, code=exc.code),
        )

    @app.exception_handler(SessionError)
    async def session_error_handler(request: Request, exc: SessionError):
        return JSONResponse(status_code=exc.status_code, content=_error_body(str(exc)))

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        missing = [str(err["loc"][-1]) for err in exc.errors() if err.get("type") == "missing"]
        if missing:
            return JSONResponse(
                status_code=400,
                content=_error_body("Missing required fields", required=missing),
            )
        return JSONResponse(
            status_code=400,
            content=_error_body("Invalid request", [err.get("msg") for err in exc.errors()]),
        )


def create_app(
    client: Optional[ClearNodeClient] = None,
    settings: Optional[ClearNodeSettings] = None,
    connect_on_startup: bool = True,
) -> FastAPI:
    """
    Create the PayWiser Yellow Network API.

    Args:
        client: Client context to serve (built from settings if not provided)
        settings: Settings used to build the client (loaded from env if not provided)
        connect_on_startup: Connect the client in the lifespan

    Raises:
        ConfigurationError: If no client given and settings are invalid
    """
    if client is None:
        client = ClearNodeClient(settings or load_settings())

    app = FastAPI(
        title="PayWiser Yellow Network API",
        description="Biometric payments over Yellow Network state channels",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.client = client
    app.state.connect_on_startup = connect_on_startup

    setup_error_handling(app)
    app.include_router(yellow_router, prefix="/api")

    @app.get("/health")
    def health(request: Request) -> dict:
        status = request.app.state.client.get_status()
        return {
            "status": "OK",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "services": {
                "yellowNetwork": status["authenticated"],
            },
        }

    return app

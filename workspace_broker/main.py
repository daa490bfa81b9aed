"""Google Workspace Broker server.

Serves per-account Google API access to tool callers and the OAuth setup
flow that provisions refresh tokens for OAuth accounts.
Entry point: ``workspace-broker`` (or ``python -m workspace_broker.main``).
"""

import sys
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from loguru import logger
from pydantic import ValidationError

from workspace_broker import api
from workspace_broker.authorization import AuthorizationFlow
from workspace_broker.bootstrap import write_credentials_from_env
from workspace_broker.broker import WorkspaceBroker
from workspace_broker.config import Settings, get_settings
from workspace_broker.exceptions import TokenStoreError
from workspace_broker.logging import configure_logging


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Global handler for unhandled exceptions."""
    logger.exception(
        "Unhandled exception",
        extra={"path": request.url.path, "error": str(exc)},
    )
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error"},
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    settings: Settings = app.state.settings
    broker: WorkspaceBroker = app.state.broker

    logger.info(
        f"Starting workspace broker on port {settings.port}",
        extra={"configured_accounts": broker.configured_accounts()},
    )

    yield

    logger.info("Shutting down workspace broker")


def create_app(
    settings: Settings | None = None,
    broker: WorkspaceBroker | None = None,
    authorization_flow: AuthorizationFlow | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Raises:
        TokenStoreError: If the token file exists but is corrupt.
    """
    settings = settings or get_settings()
    broker = broker or WorkspaceBroker.from_settings(settings)

    app = FastAPI(
        title="Google Workspace Broker",
        description="Per-account Google API access with delegated and OAuth credentials",
        version=api.SERVER_VERSION,
        lifespan=lifespan,
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
    )

    app.add_exception_handler(Exception, unhandled_exception_handler)

    app.state.settings = settings
    app.state.broker = broker
    app.state.authorization_flow = None

    app.include_router(api.router)

    if settings.oauth_enabled:
        app.state.authorization_flow = authorization_flow or AuthorizationFlow(
            broker=broker,
            client_id=settings.google_oauth_client_id,
            client_secret=settings.google_oauth_client_secret,
            redirect_uri=settings.redirect_uri,
            setup_secret=settings.setup_token,
        )
        app.include_router(api.setup_router)
        if not settings.setup_token:
            logger.warning("SETUP_TOKEN is not set; account setup requests will be rejected")
    else:
        logger.info("OAuth client not configured; account setup routes disabled")

    return app


def main() -> None:
    """Start the server. Exits with status 1 on configuration errors."""
    try:
        settings = get_settings()
    except ValidationError as e:
        configure_logging(is_production=False)
        logger.error(f"Invalid configuration: {e}")
        sys.exit(1)

    configure_logging(is_production=settings.is_production, log_level=settings.log_level)

    try:
        write_credentials_from_env(settings)
        if not Path(settings.google_sa_key_file).is_file():
            raise ValueError(f"Service account key file not found: {settings.google_sa_key_file}")
        app = create_app(settings)
    except (ValueError, TokenStoreError) as e:
        logger.error(f"Startup failed: {e}")
        sys.exit(1)

    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=settings.port, log_config=None)


if __name__ == "__main__":
    main()

"""FastAPI application exposing the Graph webhook endpoints.

Every path is accepted by a single catch-all route and dispatched by
suffix, so the relay works behind any reverse-proxy prefix.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from fastapi import BackgroundTasks, FastAPI, Request
from fastapi.responses import JSONResponse, PlainTextResponse, Response

from teamsrelay import __version__
from teamsrelay.scheduler import MaintenanceScheduler
from teamsrelay.webhook.endpoint import WebhookEndpoint

if TYPE_CHECKING:
    from collections.abc import AsyncGenerator

    from teamsrelay.integration import Integration

logger = logging.getLogger(__name__)

ALL_METHODS = ["GET", "POST", "PUT", "PATCH", "DELETE"]


def create_app(
    integration: Integration,
    *,
    scheduler: MaintenanceScheduler | None = None,
    close_on_shutdown: bool = True,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        integration: Wired integration whose router receives notifications
        scheduler: Maintenance scheduler started for the app's lifetime
        close_on_shutdown: Close the integration's HTTP client on shutdown

    Returns:
        Configured FastAPI application instance
    """
    config = integration.config
    endpoint = WebhookEndpoint(
        integration.router,
        client_state=config.webhook.client_state,
        verify_client_state=config.webhook.verify_client_state,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        logger.info("Starting Teams Relay webhook server")
        if scheduler is not None:
            scheduler.start()

        yield

        logger.info("Shutting down Teams Relay webhook server")
        if scheduler is not None:
            scheduler.shutdown()
        if close_on_shutdown:
            await integration.aclose()

    app = FastAPI(
        title="Teams Relay",
        description="Microsoft Graph change-notification relay for Teams channel messages",
        version=__version__,
        docs_url=None,
        redoc_url=None,
        openapi_url=None,
        lifespan=lifespan,
    )
    app.state.integration = integration
    app.state.endpoint = endpoint

    @app.api_route("/{full_path:path}", methods=ALL_METHODS)
    async def dispatch(request: Request, background_tasks: BackgroundTasks) -> Response:
        raw_body = await request.body()
        result = await endpoint.handle(
            request.url.path,
            dict(request.query_params),
            raw_body,
        )

        if result.resync_requested:
            background_tasks.add_task(integration.request_resync)

        if result.media_type == "text/plain":
            return PlainTextResponse(str(result.body), status_code=result.status_code)
        return JSONResponse(result.body, status_code=result.status_code)

    return app

"""Main FastAPI application for the Statement Dispatch Service."""

import time
from contextlib import asynccontextmanager
from typing import Optional

import httpx
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from app.api.health import router as health_router
from app.api.webhook import router as webhook_router
from app.core.config import Settings, get_settings
from app.core.exceptions import BaseAPIException
from app.core.logging import get_logger, setup_logging
from app.core.middleware import CorrelationIDMiddleware
from app.database import StoreContext
from app.services.dispatcher import MessageDispatcher
from app.services.fulfillment import FulfillmentOrchestrator
from app.services.phone_matcher import PhoneMatcher
from app.services.render_client import DocumentRenderClient
from app.services.request_tracker import RequestLifecycleTracker
from app.services.statement_checker import StatementAvailabilityChecker
from app.services.transport import WhatsAppGatewayClient

logger = get_logger(__name__)


def build_orchestrator(
    settings: Settings,
    store: StoreContext,
    renderer: DocumentRenderClient,
) -> FulfillmentOrchestrator:
    """Wire the fulfillment flow onto a store context."""
    return FulfillmentOrchestrator(
        settings=settings,
        tracker=RequestLifecycleTracker(store.requests),
        matcher=PhoneMatcher(store.customers),
        checker=StatementAvailabilityChecker(store.statements),
        renderer=renderer,
    )


def create_app(
    settings: Optional[Settings] = None,
    store: Optional[StoreContext] = None,
    render_transport: Optional[httpx.AsyncBaseTransport] = None,
    gateway_transport: Optional[httpx.AsyncBaseTransport] = None,
) -> FastAPI:
    """
    Build the application.

    Args:
        settings: Settings to use; loaded from the environment when omitted
        store: Pre-built store context; built from settings when omitted
        render_transport: httpx transport override for the render service
        gateway_transport: httpx transport override for the WhatsApp gateway

    Raises:
        ConfigurationError: If required settings are missing
    """
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        setup_logging(settings.log_level, settings.service_name, settings.service_version)
        logger.info("Starting Statement Dispatch Service", version=settings.service_version)

        context = store or StoreContext(settings)
        if not await context.bind():
            logger.warning("Datastore unavailable on startup, requests will fail until restart")

        renderer = DocumentRenderClient(settings, transport=render_transport)
        gateway = WhatsAppGatewayClient(settings, transport=gateway_transport)
        dispatcher = MessageDispatcher(
            orchestrator=build_orchestrator(settings, context, renderer),
            gateway=gateway,
            settings=settings,
        )
        await dispatcher.start()

        app.state.store = context
        app.state.dispatcher = dispatcher
        app.state.service_clients = [renderer, gateway]
        logger.info("Service startup complete", datastore_bound=context.is_bound)

        try:
            yield
        finally:
            logger.info("Shutting down Statement Dispatch Service")
            await dispatcher.stop()
            await renderer.close()
            await gateway.close()
            await context.close()
            app.state.dispatcher = None
            app.state.service_clients = []

    app = FastAPI(
        title="Statement Dispatch Service",
        description="Answers WhatsApp messages with the sender's latest account statement",
        version=settings.service_version,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.start_time = time.time()
    app.state.store = store
    app.state.dispatcher = None
    app.state.service_clients = []

    app.add_middleware(CorrelationIDMiddleware)

    @app.exception_handler(BaseAPIException)
    async def api_exception_handler(request: Request, exc: BaseAPIException):
        logger.warning(
            "API error",
            path=request.url.path,
            error_code=exc.error_code,
            status_code=exc.status_code,
            detail=exc.detail,
        )
        return JSONResponse(
            status_code=exc.status_code,
            content=exc.to_dict(),
            headers=exc.headers,
        )

    app.include_router(health_router, tags=["health"])
    app.include_router(webhook_router, tags=["webhook"])

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "app.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_level=settings.log_level.lower()
    )

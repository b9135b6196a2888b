"""
FastAPI application factory with health and metrics routes.
"""
import uuid
from contextlib import asynccontextmanager
from typing import AsyncGenerator, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse
from starlette.middleware.base import BaseHTTPMiddleware

from crm_platform import __version__
from crm_platform.api.dependencies import ServiceContainer, build_services, build_store
from crm_platform.api.middleware.error_handler import register_exception_handlers
from crm_platform.api.routes import analytics, campaigns, customers, delivery, orders, segments
from crm_platform.jobs.campaign_finalizer import FINALIZER_JOB_ID, finalize_campaigns
from crm_platform.jobs.scheduler import SchedulerManager
from crm_platform.lib.logging import get_logger, set_correlation_id
from crm_platform.lib.metrics import get_metrics_collector
from crm_platform.lib.settings import settings

logger = get_logger(__name__)


# Correlation ID middleware
class CorrelationIdMiddleware(BaseHTTPMiddleware):
    """
    Middleware to add correlation_id to all requests for distributed tracing.
    Accepts X-Correlation-ID from incoming requests or generates a new one.
    """

    async def dispatch(self, request: Request, call_next):
        correlation_id = request.headers.get("X-Correlation-ID", str(uuid.uuid4()))

        # Store in request state for access in route handlers
        request.state.correlation_id = correlation_id
        set_correlation_id(correlation_id)

        logger.info(
            "Incoming request",
            extra={
                "correlation_id": correlation_id,
                "method": request.method,
                "path": request.url.path,
                "client": request.client.host if request.client else None,
            }
        )

        response = await call_next(request)
        response.headers["X-Correlation-ID"] = correlation_id

        logger.info(
            "Response sent",
            extra={
                "correlation_id": correlation_id,
                "status_code": response.status_code,
            }
        )

        return response


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Application lifespan manager: starts the finalizer sweep, drains
    in-flight deliveries on shutdown.
    """
    services: ServiceContainer = app.state.services
    scheduler: Optional[SchedulerManager] = None

    logger.info(f"{settings.app_name} starting up...")

    if app.state.enable_scheduler:
        scheduler = SchedulerManager()

        async def finalizer_job():
            return await finalize_campaigns(services.store, services.reconciler)

        scheduler.add_interval_job(
            finalizer_job,
            job_id=FINALIZER_JOB_ID,
            seconds=settings.finalizer_interval_seconds,
        )
        scheduler.start()
    app.state.scheduler = scheduler

    yield

    logger.info(f"{settings.app_name} shutting down...")
    if scheduler is not None:
        scheduler.shutdown()
    if services.queue.pending:
        logger.info(f"Waiting for {services.queue.pending} in-flight deliveries")
    await services.queue.drain()


def create_app(
    services: Optional[ServiceContainer] = None,
    enable_scheduler: Optional[bool] = None,
) -> FastAPI:
    """
    Build the application.

    Args:
        services: Pre-wired services (defaults to the configured store and settings)
        enable_scheduler: Run the campaign finalizer (defaults to settings.finalizer_enabled)
    """
    app = FastAPI(
        title=settings.app_name,
        version=__version__,
        description="Customer segmentation, campaign dispatch and delivery tracking",
        lifespan=lifespan,
    )
    app.state.services = services or build_services(build_store())
    app.state.enable_scheduler = settings.finalizer_enabled if enable_scheduler is None else enable_scheduler

    # CORS middleware - configure allowed origins
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[
            "http://localhost:3000",  # React dev server
            "http://localhost:5173",  # Vite dev server
            "http://127.0.0.1:3000",
            "http://127.0.0.1:5173",
        ],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(CorrelationIdMiddleware)

    register_exception_handlers(app)

    app.include_router(customers.router)
    app.include_router(orders.router)
    app.include_router(segments.router)
    app.include_router(campaigns.router)
    app.include_router(delivery.router)
    app.include_router(analytics.router)

    @app.get("/health")
    def health_check():
        """Health check endpoint."""
        return {"status": "ok"}

    @app.get("/metrics", include_in_schema=False)
    def metrics_endpoint():
        """
        Prometheus-compatible metrics endpoint.

        Metrics exposed:
        - campaign_launches_total: Launched campaigns by channel
        - messages_dispatched_total: Messages queued for delivery by channel
        - messages_delivered_total: Delivered messages by channel
        - messages_failed_total: Failed messages by channel and reason
        - delivery_receipts_ignored_total: Receipts that changed nothing, by reason
        """
        return PlainTextResponse(
            content=get_metrics_collector().export_prometheus(),
            media_type="text/plain; version=0.0.4; charset=utf-8",
        )

    return app

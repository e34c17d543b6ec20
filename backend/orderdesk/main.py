"""
OrderDesk API - Main Application Entry Point.

Order taking, pricing and payment reconciliation for a storefront.
"""
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from orderdesk.core.config import settings
from orderdesk.core.database import close_db, init_db
from orderdesk.core.exceptions import OrderDeskError, orderdesk_error_handler
from orderdesk.core.logging import configure_logging, get_logger
from orderdesk.middleware import ErrorHandlerMiddleware, RequestIdMiddleware
from orderdesk.routers import (
    delivery_router,
    health_router,
    offers_router,
    orders_router,
    payments_router,
    settings_router,
)
from orderdesk.services.payment_reconciler import ReconcilerConfig

# Configure logging before anything else
configure_logging()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Application lifespan manager.
    Handles startup and shutdown events.
    """
    logger.info(
        "Starting application",
        app_name=settings.app_name,
        version=settings.app_version,
        environment=settings.environment,
    )

    # Misconfigured payments must not serve traffic
    ReconcilerConfig.from_settings(settings).check_startup(settings.require_webhook_secret)
    if not settings.razorpay_webhook_secret:
        logger.warning("Webhook secret not configured, webhook signatures will not be verified")

    await init_db()

    if settings.sentry_dsn:
        import sentry_sdk

        sentry_sdk.init(
            dsn=settings.sentry_dsn,
            environment=settings.environment,
            traces_sample_rate=0.1,
        )
        logger.info("Sentry initialized")

    yield

    logger.info("Shutting down application")
    await close_db()


def create_app() -> FastAPI:
    """
    Application factory function.
    Creates and configures the FastAPI application.
    """
    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="Order and payment reconciliation API",
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        lifespan=lifespan,
    )

    app.add_exception_handler(OrderDeskError, orderdesk_error_handler)

    # Add middleware (order matters - last added = outermost)
    app.add_middleware(ErrorHandlerMiddleware)
    app.add_middleware(RequestIdMiddleware)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.allowed_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=[
            "Authorization",
            "Content-Type",
            "X-Request-ID",
        ],
    )

    app.include_router(health_router)
    app.include_router(orders_router, prefix="/api")
    app.include_router(offers_router, prefix="/api")
    app.include_router(delivery_router, prefix="/api")
    app.include_router(payments_router, prefix="/api")
    app.include_router(settings_router, prefix="/api")

    logger.info(
        "Application created",
        routes=len(app.routes),
        cors_origins=len(settings.allowed_origins),
    )

    return app


# Create the application instance
app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "orderdesk.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
    )

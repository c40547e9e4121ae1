"""
Checkout Service
Order creation, pricing and payment reconciliation
"""

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
from typing import Optional
import subprocess
import os

from shared.core import ServiceHealth, setup_logging, RequestLoggingMiddleware, get_logger
from checkout.api.routes import router as orders_router
from checkout.api.payment_routes import router as payments_router
from checkout.api.pricing_routes import promotions_router, shipping_router
from checkout.application.webhooks import WebhookVerifier
from checkout.core_settings import Settings, get_settings
from checkout.domain.errors import CheckoutError
from checkout.domain.models import PaymentProvider
from checkout.infrastructure.db import build_engine, build_session_factory, init_models
from checkout.infrastructure.gateway import GatewayRegistry, MonnifyClient, PaystackClient

SERVICE_DESCRIPTION = "Order creation, pricing and payment reconciliation service"

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifecycle management"""
    settings: Settings = app.state.settings
    logger.info(f"Starting {settings.SERVICE_NAME} version {settings.SERVICE_VERSION}")

    if settings.RUN_MIGRATIONS:
        logger.info("Running database migrations")
        result = subprocess.run(
            ["alembic", "upgrade", "head"],
            cwd=os.path.join(os.path.dirname(__file__), ".."),
            capture_output=True,
            text=True,
            check=False,
        )
        if result.returncode != 0:
            logger.warning(f"Migration output: {result.stderr}")
        else:
            logger.info("Database migrations completed")

    try:
        init_models(app.state.engine)
        logger.info("Database models initialized")
    except Exception as e:
        logger.error(f"Failed to initialize database models: {e}")
        raise

    for gateway in app.state.gateways:
        if not gateway.configured:
            logger.warning(f"{gateway.provider} credentials are not set; its payments and webhooks will be rejected")

    logger.info(f"{settings.SERVICE_NAME} started successfully")

    yield

    app.state.engine.dispose()
    logger.info(f"Shutting down {settings.SERVICE_NAME}")


async def handle_checkout_error(request: Request, exc: CheckoutError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(f"{type(exc).__name__}: {exc.message}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.message, "error": type(exc).__name__},
    )


def build_gateways(settings: Settings) -> GatewayRegistry:
    common = {
        "timeout": settings.GATEWAY_TIMEOUT_SECONDS,
        "reference_prefix": settings.PAYMENT_REFERENCE_PREFIX,
    }
    return GatewayRegistry(
        [
            PaystackClient(
                secret_key=settings.PAYSTACK_SECRET_KEY,
                base_url=settings.PAYSTACK_BASE_URL,
                **common,
            ),
            MonnifyClient(
                api_key=settings.MONNIFY_API_KEY,
                secret_key=settings.MONNIFY_SECRET_KEY,
                contract_code=settings.MONNIFY_CONTRACT_CODE,
                base_url=settings.MONNIFY_BASE_URL,
                **common,
            ),
        ],
        default_provider=settings.DEFAULT_PAYMENT_PROVIDER.upper(),
    )


def create_app(
    settings: Optional[Settings] = None,
    engine=None,
    gateways: Optional[GatewayRegistry] = None,
    configure_logging: bool = True,
) -> FastAPI:
    """
    Build the application with its dependencies wired once.

    The engine, session factory, provider clients and webhook verifiers live
    on ``app.state`` and reach request handlers through FastAPI dependencies.
    """
    settings = settings or get_settings()
    if configure_logging:
        setup_logging(
            service_name=settings.SERVICE_NAME,
            level=settings.LOG_LEVEL,
            version=settings.SERVICE_VERSION,
            environment=settings.ENVIRONMENT,
        )

    engine = engine if engine is not None else build_engine(settings.database_url)
    gateways = gateways if gateways is not None else build_gateways(settings)

    app = FastAPI(
        title=settings.SERVICE_NAME,
        description=SERVICE_DESCRIPTION,
        version=settings.SERVICE_VERSION,
        lifespan=lifespan,
        docs_url="/api/docs",
        redoc_url="/api/redoc",
        openapi_url="/api/openapi.json",
    )
    app.state.settings = settings
    app.state.engine = engine
    app.state.session_factory = build_session_factory(engine)
    app.state.gateways = gateways
    # both providers sign webhooks with the account secret key
    app.state.webhook_verifiers = {
        PaymentProvider.PAYSTACK.value: WebhookVerifier(settings.PAYSTACK_SECRET_KEY),
        PaymentProvider.MONNIFY.value: WebhookVerifier(settings.MONNIFY_SECRET_KEY),
    }

    # browsers refuse credentials for a wildcard origin
    origins = settings.cors_origins
    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials="*" not in origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(RequestLoggingMiddleware)
    app.add_exception_handler(CheckoutError, handle_checkout_error)

    health_service = ServiceHealth(
        settings.SERVICE_NAME,
        settings.SERVICE_VERSION,
        engine=engine,
        required_config={"PAYSTACK_SECRET_KEY": settings.PAYSTACK_SECRET_KEY},
    )
    app.include_router(health_service.create_health_router())

    app.include_router(orders_router)
    app.include_router(payments_router)
    app.include_router(promotions_router)
    app.include_router(shipping_router)

    @app.get("/")
    async def root():
        return {
            "service": settings.SERVICE_NAME,
            "version": settings.SERVICE_VERSION,
            "status": "running",
            "docs": "/api/docs",
        }

    @app.get("/info")
    async def info():
        """Service information endpoint"""
        return {
            "service": settings.SERVICE_NAME,
            "version": settings.SERVICE_VERSION,
            "description": SERVICE_DESCRIPTION,
            "environment": settings.ENVIRONMENT,
            "currency": settings.CURRENCY,
            "payment_provider": gateways.default_provider,
            "payment_providers": gateways.available,
            "endpoints": {
                "health": "/health",
                "ready": "/health/ready",
                "live": "/health/live",
                "metrics": "/metrics",
                "docs": "/api/docs",
            },
        }

    return app


app = create_app()

"""
Checkout service
Hosts the checkout initiator and the Stripe webhook reconciler
"""

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager

from vokatra_checkout.api.routes import router as checkout_router
from vokatra_checkout.core import ServiceHealth, setup_logging, RequestLoggingMiddleware, get_logger
from vokatra_checkout.core_settings import Settings, get_settings
from vokatra_checkout.infrastructure.datastore import SqlDatastore
from vokatra_checkout.infrastructure.db import build_engine, build_session_factory, init_models
from vokatra_checkout.infrastructure.payments import StripeGateway

SERVICE_DESCRIPTION = "Checkout and payment confirmation service"

logger = get_logger(__name__)

def create_app(settings: Settings = None, datastore=None, gateway=None) -> FastAPI:
    """Build the application.

    ``datastore`` and ``gateway`` replace the SQL datastore and the Stripe
    gateway built at startup; tests pass fakes here.
    """
    settings = settings or get_settings()

    setup_logging(
        service_name=settings.SERVICE_NAME,
        level=settings.LOG_LEVEL,
        environment=settings.ENVIRONMENT,
        version=settings.SERVICE_VERSION,
    )

    health_service = ServiceHealth(settings.SERVICE_NAME, settings.SERVICE_VERSION)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(f"Starting {settings.SERVICE_NAME} version {settings.SERVICE_VERSION}")

        engine = None
        if datastore is None:
            engine = build_engine(settings.database_url)
            try:
                init_models(engine)
                logger.info("Database models initialized")
            except Exception as e:
                logger.error(f"Failed to initialize database models: {e}")
                raise
            app.state.datastore = SqlDatastore(build_session_factory(engine))
        else:
            app.state.datastore = datastore
        app.state.gateway = gateway or StripeGateway.from_settings(settings)
        app.state.settings = settings
        health_service.add_check("database:connectivity", app.state.datastore.ping)

        logger.info(f"{settings.SERVICE_NAME} started successfully")

        yield

        logger.info(f"Shutting down {settings.SERVICE_NAME}")
        if engine is not None:
            engine.dispose()

    app = FastAPI(
        title=settings.SERVICE_NAME,
        description=SERVICE_DESCRIPTION,
        version=settings.SERVICE_VERSION,
        lifespan=lifespan,
        docs_url="/api/docs",
        redoc_url=None,
        openapi_url="/api/openapi.json"
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["POST", "OPTIONS"],
        allow_headers=["*"],
    )
    app.add_middleware(RequestLoggingMiddleware)

    app.include_router(health_service.create_health_router())
    app.include_router(checkout_router)

    @app.get("/")
    async def root():
        return {
            "service": settings.SERVICE_NAME,
            "version": settings.SERVICE_VERSION,
            "status": "running",
            "endpoints": {
                "checkout": "/create_checkout_session",
                "webhook": "/stripe_webhook",
                "health": "/health",
                "ready": "/health/ready",
            }
        }

    return app

app = create_app()

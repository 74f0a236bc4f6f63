"""Main FastAPI application"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from smart_product import __version__
from smart_product.api import admin, commands, devices, events, registration
from smart_product.api.schemas import HealthResponse
from smart_product.core.config import settings
from smart_product.core.deps import build_services
from smart_product.core.errors import InvalidRequestError, SmartProductError
from smart_product.handlers import DeviceMessageHandlers
from smart_product.services.identity import IdentityProvider
from smart_product.services.iot_registry import ThingRegistry
from smart_product.services.metrics import UsageMetrics
from smart_product.services.mqtt_client import MQTTService
from smart_product.services.notifier import SmsNotifier
from smart_product.services.transport import IotDataTransport
from smart_product.store import create_store

# Configure logging
logging.basicConfig(
    level=logging.DEBUG if settings.DEBUG else logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


async def start_services(app_settings):
    """Build the store, device transport and AWS collaborators"""
    logger.info(f"Initializing {app_settings.STORE_BACKEND} store...")
    store = create_store(app_settings)
    await store.initialize()

    # Device traffic only arrives over MQTT, whichever client carries shadow calls
    mqtt_service = None
    if app_settings.TRANSPORT_BACKEND == "mqtt" or app_settings.MQTT_SUBSCRIBE:
        mqtt_service = MQTTService(app_settings)

    if app_settings.TRANSPORT_BACKEND == "mqtt":
        transport = mqtt_service
    else:
        transport = IotDataTransport(app_settings.AWS_REGION)

    services = build_services(
        app_settings,
        store=store,
        transport=transport,
        registry=ThingRegistry(app_settings.AWS_REGION, app_settings.THING_TYPE),
        identity=IdentityProvider(app_settings.AWS_REGION, app_settings.USER_POOL_ID),
        notifier=SmsNotifier(app_settings.AWS_REGION),
        metrics=UsageMetrics(app_settings),
        mqtt=mqtt_service,
    )

    if mqtt_service is not None:
        logger.info("Connecting to MQTT broker...")
        mqtt_service.initialize()
        DeviceMessageHandlers(services).register(mqtt_service)
        try:
            mqtt_service.connect()
            logger.info("MQTT client connected successfully")
        except (OSError, ValueError) as e:
            logger.error(f"Failed to connect to MQTT broker: {e}")

    return services


async def stop_services(services):
    if services.mqtt is not None:
        services.mqtt.disconnect()
    await services.metrics.close()
    await services.store.close()


def create_app(app_settings=settings) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan events"""
        # Startup
        logger.info("Starting Smart Product Server...")
        owned = getattr(app.state, "services", None) is None
        if owned:
            app.state.services = await start_services(app_settings)
        logger.info("Server startup complete")

        yield

        # Shutdown
        logger.info("Shutting down Smart Product Server...")
        if owned:
            await stop_services(app.state.services)
            app.state.services = None
        logger.info("Server shutdown complete")

    app = FastAPI(
        title=app_settings.PROJECT_NAME,
        version=__version__,
        description="Cloud backend for smart product HVAC devices",
        lifespan=lifespan,
    )
    app.state.settings = app_settings

    # Configure CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=app_settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(SmartProductError)
    async def smart_product_error_handler(request: Request, exc: SmartProductError):
        logger.info(f"{request.method} {request.url.path} failed: {exc!r}")
        return JSONResponse(status_code=exc.code, content=exc.to_dict())

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        errors = exc.errors()
        if any(error.get("type") == "json_invalid" for error in errors):
            error = InvalidRequestError("BadRequest", "Request body is not valid JSON.")
        else:
            error = InvalidRequestError(
                "InvalidParameter", f"Request parameters are invalid: {errors}"
            )
        return JSONResponse(status_code=error.code, content=error.to_dict())

    # Include routers; event routes go first so /devices/events is not a device id
    app.include_router(events.router, prefix=app_settings.API_PREFIX)
    app.include_router(commands.router, prefix=app_settings.API_PREFIX)
    app.include_router(devices.router, prefix=app_settings.API_PREFIX)
    app.include_router(registration.router, prefix=app_settings.API_PREFIX)
    app.include_router(admin.router, prefix=app_settings.API_PREFIX)

    @app.get("/")
    async def root():
        """Root endpoint"""
        return {
            "name": app_settings.PROJECT_NAME,
            "version": __version__,
            "status": "running",
        }

    @app.get("/health", response_model=HealthResponse)
    async def health_check(request: Request):
        """Health check endpoint"""
        services = request.app.state.services
        database_connected = await services.store.ping()
        mqtt_connected = getattr(services.mqtt or services.transport, "connected", False)
        return HealthResponse(
            status="healthy" if database_connected else "degraded",
            mqtt_connected=mqtt_connected,
            database_connected=database_connected,
            version=__version__,
        )

    return app


# Create FastAPI app
app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "smart_product.main:app",
        host=settings.SERVER_HOST,
        port=settings.SERVER_PORT,
        reload=settings.DEBUG,
    )

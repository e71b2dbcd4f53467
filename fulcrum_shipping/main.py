"""
Fulcrum Shipping
FastAPI application entry point

- Checkout webhook resolving shipping offers from registry carriers and
  local customizations
- Admin API keeping registry carriers and customizations in step
"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.responses import JSONResponse

from fulcrum_shipping.api.deps import get_customization_repository
from fulcrum_shipping.api.routes import carriers, shipping_methods
from fulcrum_shipping.core.config import settings
from fulcrum_shipping.core.exceptions import FulcrumBaseError
from fulcrum_shipping.schemas.shipping import HealthResponse

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Log effective resolution settings on startup."""
    logger.info(
        f"{settings.APP_NAME} starting (env={settings.ENVIRONMENT}, "
        f"store_policy={settings.STORE_FILTER_POLICY.value}, "
        f"group_policy={settings.GROUP_FILTER_POLICY.value}, "
        f"storage={settings.STORAGE_BACKEND})"
    )
    if not settings.COMMERCE_BASE_URL:
        logger.warning("COMMERCE_BASE_URL is not set; checkout will receive diagnostic results only")
    yield
    logger.info(f"{settings.APP_NAME} stopped")


app = FastAPI(
    lifespan=lifespan,
    title=f"{settings.APP_NAME} API",
    version="1.0.0",
    debug=settings.DEBUG,
)


@app.exception_handler(FulcrumBaseError)
async def fulcrum_error_handler(request, exc: FulcrumBaseError):
    logger.error(f"Unhandled {exc!r} on {request.url.path}: {exc.details}")
    return JSONResponse(status_code=500, content=exc.to_dict())


app.include_router(shipping_methods.router)
app.include_router(carriers.router)


@app.get("/health", response_model=HealthResponse)
async def health_check():
    registry_configured = bool(settings.COMMERCE_BASE_URL)
    storage_ready = get_customization_repository() is not None
    return HealthResponse(
        status="ok" if registry_configured and storage_ready else "degraded",
        environment=settings.ENVIRONMENT,
        registry_configured=registry_configured,
        storage_backend=settings.STORAGE_BACKEND if storage_ready else "unavailable",
    )

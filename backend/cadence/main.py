# backend/cadence/main.py
"""
Cadence booking core API.

Run with: uvicorn cadence.main:app
"""

from contextlib import asynccontextmanager
import logging
from typing import AsyncGenerator

from fastapi import APIRouter, FastAPI
from fastapi.routing import APIRoute

from .core.config import is_running_tests, settings
from .routes.v1 import (
    bookings as bookings_v1,
    health as health_v1,
    payments as payments_v1,
    slots as slots_v1,
    subscriptions as subscriptions_v1,
    tracking as tracking_v1,
    waitlist as waitlist_v1,
    webhooks as webhooks_v1,
)
from .services.stripe_service import configure_stripe

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level, logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)

logger = logging.getLogger(__name__)

API_TITLE = "Cadence Booking API"
API_VERSION = "1.0.0"


@asynccontextmanager
async def app_lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Handle application startup/shutdown."""
    logger.info("Cadence API starting up...")
    logger.info(f"Environment: {settings.environment}")
    if is_running_tests():
        logger.info("Running under pytest")

    if not configure_stripe():
        logger.warning("Stripe is not configured; paid studios cannot take bookings")

    yield

    logger.info("Cadence API shutting down...")


def _unique_operation_id(route: APIRoute) -> str:
    methods = "_".join(sorted(m.lower() for m in route.methods or []))
    path = route.path_format.replace("/", "_").replace("{", "").replace("}", "").strip("_")
    name = (route.name or "operation").lower().replace(" ", "_")
    return f"{methods}__{path}__{name}".strip("_")


app = FastAPI(
    title=API_TITLE,
    version=API_VERSION,
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=app_lifespan,
    generate_unique_id_function=_unique_operation_id,
)

api_v1 = APIRouter(prefix="/api/v1")
api_v1.include_router(slots_v1.router)
api_v1.include_router(payments_v1.router)
api_v1.include_router(bookings_v1.router)
api_v1.include_router(subscriptions_v1.router)
api_v1.include_router(tracking_v1.router)
api_v1.include_router(waitlist_v1.router)
api_v1.include_router(webhooks_v1.router)

app.include_router(api_v1)
app.include_router(health_v1.router)

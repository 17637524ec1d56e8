"""
FastAPI application factory.

* Registers routes for rides, drivers, maps and settings.
* Opens / closes the shared Maps ``httpx.AsyncClient`` via lifespan events.
* Renders every ``CarpoolError`` as ``{"kind", "detail", ...}``.
* Applies rate-limiting middleware.
* Swagger / OpenAPI UI available at ``/docs``.
"""

from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from carpool.api.middleware import limiter
from carpool.api.routes import admin, drivers, maps, rides
from carpool.config import settings
from carpool.domain.errors import CarpoolError, UpstreamDependencyError, WriteConflictError
from carpool.infrastructure.geo import build_http_client

logging.basicConfig(level=settings.log_level)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Open the Maps HTTP client on startup; close it on shutdown."""
    app.state.http_client = build_http_client()
    yield
    await app.state.http_client.aclose()


async def carpool_error_handler(request: Request, exc: CarpoolError) -> JSONResponse:
    # Validation and state conflicts are routine outcomes, not failures
    if isinstance(exc, (UpstreamDependencyError, WriteConflictError)):
        level = logging.WARNING
    else:
        level = logging.INFO
    logger.log(
        level, "%s %s -> %s: %s", request.method, request.url.path, exc.kind, exc.message
    )
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


async def request_validation_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    return JSONResponse(
        status_code=400,
        content={
            "kind": "validation",
            "detail": "Invalid request.",
            "errors": jsonable_encoder(exc.errors()),
        },
    )


def create_app() -> FastAPI:
    app = FastAPI(
        title="Carpool Seat Booking API",
        description=(
            "Drivers post scheduled rides, riders book seats on them. "
            "Seat inventory is protected against overselling under "
            "concurrent bookings; cancellations follow time-window policy; "
            "completed rides settle driver earnings and ratings."
        ),
        version="1.0.0",
        lifespan=lifespan,
    )

    # Errors
    app.add_exception_handler(CarpoolError, carpool_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)

    # Rate limiter
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

    # Routers
    app.include_router(rides.router, prefix="/api/v1")
    app.include_router(drivers.router, prefix="/api/v1")
    app.include_router(maps.router, prefix="/api/v1")
    app.include_router(admin.router, prefix="/api/v1")

    return app
